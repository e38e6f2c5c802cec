"""
Auth Profile Router
===================

Reference AuthRouter kept entirely in memory.

Profiles come from three places, first match wins per provider:
1. Profiles added with add_profile() (a host's credential store)
2. The configured AGENT_API_KEY, for the configured default provider
3. The provider's API-key environment variables

Per session the router remembers which profile last worked for a provider
(sticky) and puts failing profiles and rate-limited providers on cooldown:

    profile failure      60s -> 5min -> 25min (x5, capped at 25 min)
    provider rate limit  60s -> 2min -> 4min  (x2, capped at 5 min)
"""

import os
import time
from dataclasses import dataclass, field
from typing import Callable

from agentcore.errors import ResolutionError
from agentcore.providers.contracts import (
    AuthMethod,
    AuthProfile,
    AuthRequest,
    AuthResolution,
    FailureReport,
    ProviderDefinition,
    ProviderLookup,
)
from agentcore.utils.config import ProviderSettings
from agentcore.utils.logger import Logger, StructuredLogger

PROFILE_BACKOFF_BASE_SECONDS = 60.0
PROFILE_BACKOFF_FACTOR = 5
PROFILE_BACKOFF_MAX_SECONDS = 25 * 60.0
PROVIDER_BACKOFF_BASE_SECONDS = 60.0
PROVIDER_BACKOFF_FACTOR = 2
PROVIDER_BACKOFF_MAX_SECONDS = 5 * 60.0

_METHOD_PRIORITY: tuple[AuthMethod, ...] = ("oauth_pkce", "setup_token", "api_key", "env")


@dataclass
class _Cooldown:
    until: float
    failure_count: int


@dataclass
class _SessionState:
    sticky_profiles: dict[str, str] = field(default_factory=dict)
    cooldowns: dict[tuple[str, str], _Cooldown] = field(default_factory=dict)
    provider_cooldowns: dict[str, _Cooldown] = field(default_factory=dict)


def _backoff(failure_count: int, base: float, factor: int, cap: float) -> float:
    return min(base * factor ** (failure_count - 1), cap)


def _env_var_name(provider_id: str) -> str:
    return f"{provider_id.upper().replace('-', '_')}_API_KEY"


def _method_rank(method: str) -> int:
    return _METHOD_PRIORITY.index(method) if method in _METHOD_PRIORITY else len(_METHOD_PRIORITY)


def rank_profiles(
    profiles: list[AuthProfile],
    provider: ProviderDefinition,
    pinned_profile_id: str | None = None
) -> list[AuthProfile]:
    """
    Order profiles for one provider.

    Pinned (or sticky) profile first, then the provider's preferred auth
    methods, then the general method priority, then profile id.
    """
    preferred = provider.preferred_auth_order

    def key(profile: AuthProfile) -> tuple:
        pinned = 0 if pinned_profile_id and profile.profile_id == pinned_profile_id else 1
        preferred_rank = preferred.index(profile.method) if profile.method in preferred else len(preferred)
        return (pinned, preferred_rank, _method_rank(profile.method), profile.profile_id)

    return sorted(profiles, key=key)


class AuthProfileRouter:
    """
    In-memory AuthRouter with sticky profiles and cooldowns.

    Example:
        router = AuthProfileRouter(registry, config.provider)
        resolution = await router.resolve(AuthRequest(session_id="s1", agent_id="default"))
        ...
        router.report_failure(FailureReport("s1", resolution.provider_id, resolution.profile.profile_id))
    """

    def __init__(
        self,
        providers: ProviderLookup,
        settings: ProviderSettings,
        logger: StructuredLogger | None = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the router.

        Args:
            providers: Provider registry
            settings: Default provider, model and API key
            logger: Structured logger (defaults to Logger("AuthRouter"))
            clock: Monotonic seconds, injectable for tests
        """
        self.providers = providers
        self.settings = settings
        self.logger = logger or Logger("AuthRouter")
        self._clock = clock
        self._profiles: dict[str, list[AuthProfile]] = {}
        self._sessions: dict[str, _SessionState] = {}

    # ==========================================================================
    # Profiles
    # ==========================================================================

    def add_profile(self, profile: AuthProfile) -> None:
        """Store a profile; it takes precedence over config and env keys."""
        existing = [p for p in self._profiles.get(profile.provider_id, []) if p.profile_id != profile.profile_id]
        self._profiles[profile.provider_id] = existing + [profile]

    def _configured_profile(self, provider_id: str) -> AuthProfile | None:
        if provider_id != self.settings.provider_id or not self.settings.api_key:
            return None
        return AuthProfile(
            profile_id=f"config:{provider_id}",
            provider_id=provider_id,
            label=f"{provider_id} (config)",
            method="api_key",
            data=self._with_base_url(provider_id, {"api_key": self.settings.api_key}),
        )

    def _env_profile(self, provider: ProviderDefinition) -> AuthProfile | None:
        names = provider.env_vars or (_env_var_name(provider.id),)
        for name in names:
            value = os.getenv(name, "").strip()
            if value:
                return AuthProfile(
                    profile_id=f"env:{name}",
                    provider_id=provider.id,
                    label=f"{name} (env)",
                    method="env",
                    data=self._with_base_url(provider.id, {"api_key": value}),
                )
        return None

    def _with_base_url(self, provider_id: str, data: dict) -> dict:
        if provider_id == self.settings.provider_id and self.settings.base_url:
            data["base_url"] = self.settings.base_url
        return data

    def profiles_for(self, provider: ProviderDefinition) -> list[AuthProfile]:
        """All usable profiles for a provider, in source precedence."""
        stored = self._profiles.get(provider.id)
        if stored:
            return list(stored)
        configured = self._configured_profile(provider.id)
        if configured:
            return [configured]
        env = self._env_profile(provider)
        return [env] if env else []

    # ==========================================================================
    # Cooldowns
    # ==========================================================================

    def _session(self, session_id: str) -> _SessionState:
        if session_id not in self._sessions:
            self._sessions[session_id] = _SessionState()
        return self._sessions[session_id]

    def _cooling(self, table: dict, key) -> bool:
        entry = table.get(key)
        if entry is None:
            return False
        if self._clock() >= entry.until:
            del table[key]
            return False
        return True

    def report_failure(self, report: FailureReport) -> None:
        """Put a profile on exponential cooldown for this session."""
        state = self._session(report.session_id)
        key = (report.provider_id, report.profile_id)
        existing = state.cooldowns.get(key)
        failure_count = (existing.failure_count if existing else 0) + 1
        backoff = _backoff(
            failure_count,
            PROFILE_BACKOFF_BASE_SECONDS,
            PROFILE_BACKOFF_FACTOR,
            PROFILE_BACKOFF_MAX_SECONDS,
        )
        state.cooldowns[key] = _Cooldown(until=self._clock() + backoff, failure_count=failure_count)
        if state.sticky_profiles.get(report.provider_id) == report.profile_id:
            del state.sticky_profiles[report.provider_id]
        self.logger.debug("Profile cooling down", {
            "provider_id": report.provider_id,
            "profile_id": report.profile_id,
            "backoff_seconds": backoff,
            "failure_count": failure_count,
        })

    def report_provider_rate_limit(self, session_id: str, provider_id: str) -> None:
        """Cool down a whole provider (org-level rate limit)."""
        state = self._session(session_id)
        existing = state.provider_cooldowns.get(provider_id)
        failure_count = (existing.failure_count if existing else 0) + 1
        backoff = _backoff(
            failure_count,
            PROVIDER_BACKOFF_BASE_SECONDS,
            PROVIDER_BACKOFF_FACTOR,
            PROVIDER_BACKOFF_MAX_SECONDS,
        )
        state.provider_cooldowns[provider_id] = _Cooldown(
            until=self._clock() + backoff,
            failure_count=failure_count,
        )
        self.logger.warn("Provider rate-limited, applying cooldown", {
            "provider_id": provider_id,
            "backoff_seconds": backoff,
            "failure_count": failure_count,
        })

    # ==========================================================================
    # Resolution
    # ==========================================================================

    async def resolve(self, request: AuthRequest) -> AuthResolution:
        """
        Pick the best available profile.

        Raises:
            ResolutionError: No provider configured, provider unknown or
                rate-limited, no profiles, or every profile excluded or cooling
        """
        state = self._session(request.session_id)
        provider_id = request.pinned_provider_id or self.settings.provider_id
        if not provider_id:
            raise ResolutionError("No provider configured. Set AGENT_PROVIDER to configure one.")

        provider = self.providers.get(provider_id)
        if provider is None:
            raise ResolutionError(f'Provider "{provider_id}" is not registered.')

        if self._cooling(state.provider_cooldowns, provider_id):
            raise ResolutionError(f'Provider "{provider_id}" is rate-limited. Try again later.')

        configured_model = self.settings.model if provider_id == self.settings.provider_id else None
        model_id = configured_model or provider.select_model() or provider_id

        profiles = self.profiles_for(provider)
        if not profiles:
            raise ResolutionError(
                f'No auth profile for provider "{provider_id}". '
                f"Set AGENT_API_KEY or {_env_var_name(provider_id)}."
            )

        excluded = set(request.exclude_profile_ids)
        for profile in rank_profiles(profiles, provider, state.sticky_profiles.get(provider_id)):
            if profile.profile_id in excluded:
                continue
            if self._cooling(state.cooldowns, (provider_id, profile.profile_id)):
                continue
            state.sticky_profiles[provider_id] = profile.profile_id
            return AuthResolution(provider_id=provider_id, model_id=model_id, profile=profile)

        raise ResolutionError(
            f'All auth profiles for provider "{provider_id}" are excluded or cooling down. Try again later.'
        )
