"""
Auth/Provider Resolution
========================

Turns one request (session, agent, optional pins) into an ordered list of
CompletionExecution candidates. Nothing here calls a model.

Two mutually exclusive paths:

Proxied (token mode)
    A ProxyResolver reports a shared proxy. One execution is returned that
    carries a placeholder token and a ProxyAuthTransport; the transport
    re-checks the proxy and swaps in its auth headers on every request, and
    refuses to send anything once the proxy is gone.

Direct
    Up to MAX_RESOLVE_ATTEMPTS rounds against the auth router, each excluding
    the profiles already returned. Broken profiles (unknown provider, no
    usable credential) are reported back to the router and skipped.
"""

from dataclasses import dataclass, field
from typing import Callable

import httpx

from agentcore.errors import ProxyUnavailableError
from agentcore.providers.contracts import (
    AuthProfile,
    AuthRequest,
    AuthRouter,
    FailureReport,
    ProviderLookup,
    ProxyResolver,
)
from agentcore.types import CompletionExecution
from agentcore.utils.logger import Logger, StructuredLogger

MAX_RESOLVE_ATTEMPTS = 3
PROXY_PLACEHOLDER_TOKEN = "token-mode-placeholder"
DEFAULT_PROXY_PROVIDER = "xai"
DEFAULT_PROXY_MODEL = "grok-4-1"

# Caller-supplied credentials never reach the proxy
STRIPPED_AUTH_HEADERS = ("authorization", "api-key", "x-api-key")

ProxyLocator = Callable[[], ProxyResolver | None]


def no_proxy() -> ProxyResolver | None:
    """Default locator: token mode off."""
    return None


@dataclass
class ResolutionDeps:
    """
    Collaborators for resolve_executions().

    Attributes:
        auth_router: Resolves profiles and receives failure reports
        providers: Provider registry
        resolve_proxy: Returns the live proxy resolver, or None when token mode is off
        proxy_provider_id: Provider the proxy speaks for
        logger: Structured logger
    """
    auth_router: AuthRouter
    providers: ProviderLookup
    resolve_proxy: ProxyLocator = no_proxy
    proxy_provider_id: str = DEFAULT_PROXY_PROVIDER
    logger: StructuredLogger = field(default_factory=lambda: Logger("Resolution"))


@dataclass(frozen=True)
class ResolveRequest:
    session_id: str
    agent_id: str
    pinned_provider_id: str | None = None
    pinned_model_id: str | None = None


class ProxyAuthTransport(httpx.AsyncBaseTransport):
    """
    httpx transport that routes requests through the token-mode proxy.

    For every request it asks the live resolver (with the request body)
    for fresh headers, drops any caller auth headers, and applies the
    proxy's. If the resolver disappeared or reports itself disabled the
    request is refused with ProxyUnavailableError.
    """

    def __init__(
        self,
        resolve_proxy: ProxyLocator,
        inner: httpx.AsyncBaseTransport | None = None
    ):
        self._resolve_proxy = resolve_proxy
        self._inner = inner or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        live = self._resolve_proxy()
        if live is None:
            raise ProxyUnavailableError("Token mode proxy unavailable")

        body = (await request.aread()).decode("utf-8", errors="replace")
        resolution = await live.resolve_proxy_request(body)
        if not resolution.enabled:
            raise ProxyUnavailableError(resolution.reason or "Proxy unavailable")

        for name in STRIPPED_AUTH_HEADERS:
            request.headers.pop(name, None)
        for key, value in (resolution.headers or {}).items():
            if value is not None and value != "":
                request.headers[key] = str(value)

        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()


def extract_token(profile: AuthProfile) -> str | None:
    """Usable bearer credential from a profile: "api_key" first, then "access"."""
    for key in ("api_key", "access"):
        value = profile.data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def _resolve_proxied(
    proxy: ProxyResolver,
    deps: ResolutionDeps
) -> list[CompletionExecution] | None:
    """
    Probe the proxy. Returns None when the direct path should run instead.
    """
    probe = await proxy.resolve_proxy_request("")

    if probe.enabled:
        base_url = (probe.base_url or "").strip()
        if not base_url:
            deps.logger.warn("Token mode proxy enabled without a base URL")
            return []

        provider = deps.providers.get(deps.proxy_provider_id)
        model_id = (provider.select_model() if provider else None) or DEFAULT_PROXY_MODEL

        deps.logger.info("Using token mode proxy", {
            "provider_id": deps.proxy_provider_id,
            "model_id": model_id,
        })
        return [CompletionExecution(
            provider_id=deps.proxy_provider_id,
            model_id=model_id,
            token=PROXY_PLACEHOLDER_TOKEN,
            base_url=base_url,
            transport=ProxyAuthTransport(deps.resolve_proxy),
        )]

    if probe.reason:
        deps.logger.info("Token mode proxy unavailable", {"reason": probe.reason})
        return []

    return None


async def resolve_executions(
    request: ResolveRequest,
    deps: ResolutionDeps
) -> list[CompletionExecution]:
    """
    Build the ordered candidate list for one agent loop run.

    Args:
        request: Session, agent and optional provider/model pins
        deps: Router, registry and optional proxy locator

    Returns:
        Candidates in preference order; may be empty

    Raises:
        Whatever the auth router raises on the first attempt. Failures on
        later attempts end resolution with the candidates found so far.
    """
    proxy = deps.resolve_proxy()
    if proxy is not None:
        proxied = await _resolve_proxied(proxy, deps)
        if proxied is not None:
            return proxied

    tried: list[str] = []
    executions: list[CompletionExecution] = []

    for attempt in range(1, MAX_RESOLVE_ATTEMPTS + 1):
        try:
            resolved = await deps.auth_router.resolve(AuthRequest(
                session_id=request.session_id,
                agent_id=request.agent_id,
                exclude_profile_ids=tuple(tried),
                pinned_provider_id=request.pinned_provider_id,
            ))
        except Exception as e:
            if attempt == 1:
                raise
            deps.logger.debug("Auth router exhausted", {"attempt": attempt, "reason": str(e)})
            break

        profile = resolved.profile
        tried.append(profile.profile_id)
        report = FailureReport(
            session_id=request.session_id,
            provider_id=resolved.provider_id,
            profile_id=profile.profile_id,
        )

        provider = deps.providers.get(resolved.provider_id)
        if provider is None:
            deps.logger.warn("Skipping profile for unknown provider", {
                "provider_id": resolved.provider_id,
                "profile_id": profile.profile_id,
            })
            deps.auth_router.report_failure(report)
            continue

        token = extract_token(profile)
        if not token:
            deps.logger.warn("Skipping profile without a usable credential", {
                "provider_id": resolved.provider_id,
                "profile_id": profile.profile_id,
            })
            deps.auth_router.report_failure(report)
            continue

        model_id = (
            request.pinned_model_id
            or provider.select_model(resolved.model_id)
            or resolved.model_id
        )
        base_url = profile.data.get("base_url") or None

        executions.append(CompletionExecution(
            provider_id=provider.id,
            model_id=model_id,
            token=token,
            base_url=base_url,
            profile_id=profile.profile_id,
        ))

    return executions
