"""
Shared test fakes.

- ScriptedChatModel: replays StepResults / exceptions / coroutine functions
- RecordingRouter: AuthRouter that hands out queued resolutions and records reports
- RecordingLogger: StructuredLogger that keeps every call
"""

import os
from typing import Any

import pytest

from agentcore.errors import ResolutionError
from agentcore.providers.contracts import (
    AuthProfile,
    AuthRequest,
    AuthResolution,
    FailureReport,
    ProviderDefinition,
    ProviderModel,
)
from agentcore.providers.registry import ProviderRegistry
from agentcore.types import StepResult
from agentcore.utils.config import reset_config


class ScriptedChatModel:
    """ChatModel that returns scripted steps in order."""

    def __init__(self, script: list | None = None, name: str = "model", order: list[str] | None = None):
        self.script = list(script or [])
        self.name = name
        self.order = order
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def complete(self, messages, tools, *, max_tokens=None) -> StepResult:
        self.calls.append({"messages": list(messages), "tools": tools, "max_tokens": max_tokens})
        if self.order is not None:
            self.order.append(self.name)

        if not self.script:
            return StepResult(text="done")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return await item(messages)
        return item

    async def aclose(self) -> None:
        self.closed = True


class RecordingRouter:
    """AuthRouter fake. Items are AuthResolutions or exceptions to raise."""

    def __init__(self, resolutions: list | None = None):
        self.resolutions = list(resolutions or [])
        self.requests: list[AuthRequest] = []
        self.failures: list[FailureReport] = []
        self.rate_limits: list[tuple[str, str]] = []

    async def resolve(self, request: AuthRequest) -> AuthResolution:
        self.requests.append(request)
        if not self.resolutions:
            raise ResolutionError("No more profiles")
        item = self.resolutions.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def report_failure(self, report: FailureReport) -> None:
        self.failures.append(report)

    def report_provider_rate_limit(self, session_id: str, provider_id: str) -> None:
        self.rate_limits.append((session_id, provider_id))


class RecordingLogger:
    """StructuredLogger fake."""

    def __init__(self):
        self.records: list[tuple[str, str, Any]] = []

    def debug(self, message, data=None):
        self.records.append(("debug", message, data))

    def info(self, message, data=None):
        self.records.append(("info", message, data))

    def warn(self, message, data=None):
        self.records.append(("warn", message, data))

    def error(self, message, error=None):
        self.records.append(("error", message, error))

    def messages(self, level: str | None = None) -> list[str]:
        return [message for lvl, message, _ in self.records if level is None or lvl == level]


def make_provider(
    provider_id: str,
    model: ScriptedChatModel | None = None,
    context_limit: int | None = 128_000,
    models: tuple[ProviderModel, ...] | None = None
) -> ProviderDefinition:
    """ProviderDefinition whose transport always hands back the given model."""
    model = model or ScriptedChatModel()
    return ProviderDefinition(
        id=provider_id,
        display_name=provider_id.title(),
        transport_factory=lambda execution, provider: model,
        models=models if models is not None else (ProviderModel(f"{provider_id}-model", 10),),
        context_limit=context_limit,
    )


def make_resolution(provider_id: str, profile_id: str, model_id: str = "", **data) -> AuthResolution:
    """AuthResolution with an api_key profile (override data to change it)."""
    payload = data or {"api_key": f"key-{profile_id}"}
    return AuthResolution(
        provider_id=provider_id,
        model_id=model_id or f"{provider_id}-default",
        profile=AuthProfile(profile_id=profile_id, provider_id=provider_id, data=payload),
    )


def make_registry(*providers: ProviderDefinition) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    return registry


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep real credentials and config overrides out of every test."""
    for name in list(os.environ):
        if name.endswith("_API_KEY") or name.startswith(("AGENT_", "CONTEXT_")):
            monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
