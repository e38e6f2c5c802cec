import pytest

from conftest import RecordingLogger, make_provider, make_registry

from agentcore.errors import ResolutionError
from agentcore.providers.auth_router import (
    PROFILE_BACKOFF_MAX_SECONDS,
    PROVIDER_BACKOFF_MAX_SECONDS,
    AuthProfileRouter,
    rank_profiles,
)
from agentcore.providers.contracts import AuthProfile, AuthRequest, FailureReport, ProviderDefinition
from agentcore.utils.config import ProviderSettings


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _settings(**overrides) -> ProviderSettings:
    fields = {
        "provider_id": "openai",
        "model": None,
        "api_key": None,
        "base_url": None,
        "proxy_provider_id": "xai",
    }
    fields.update(overrides)
    return ProviderSettings(**fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    openai = make_provider("openai")
    # env_vars drive the env profile lookup
    return make_registry(ProviderDefinition(
        id=openai.id,
        display_name=openai.display_name,
        transport_factory=openai.transport_factory,
        models=openai.models,
        context_limit=openai.context_limit,
        env_vars=("OPENAI_API_KEY",),
    ), make_provider("anthropic"))


def _router(registry, clock, **settings) -> AuthProfileRouter:
    return AuthProfileRouter(registry, _settings(**settings), logger=RecordingLogger(), clock=clock)


def _request(**overrides) -> AuthRequest:
    fields = {"session_id": "s1", "agent_id": "agent"}
    fields.update(overrides)
    return AuthRequest(**fields)


class TestProfileSources:

    @pytest.mark.asyncio
    async def test_env_profile(self, registry, clock, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

        resolution = await _router(registry, clock).resolve(_request())

        assert resolution.provider_id == "openai"
        assert resolution.profile.profile_id == "env:OPENAI_API_KEY"
        assert resolution.profile.method == "env"
        assert resolution.profile.data["api_key"] == "sk-env"
        assert resolution.model_id == "openai-model"

    @pytest.mark.asyncio
    async def test_configured_key_wins_over_env(self, registry, clock, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        router = _router(registry, clock, api_key="sk-config", base_url="http://gateway/v1", model="gpt-test")

        resolution = await router.resolve(_request())

        assert resolution.profile.profile_id == "config:openai"
        assert resolution.profile.data == {"api_key": "sk-config", "base_url": "http://gateway/v1"}
        assert resolution.model_id == "gpt-test"

    @pytest.mark.asyncio
    async def test_stored_profiles_win(self, registry, clock):
        router = _router(registry, clock, api_key="sk-config")
        router.add_profile(AuthProfile("stored", "openai", method="oauth_pkce", data={"access": "tok"}))

        resolution = await router.resolve(_request())

        assert resolution.profile.profile_id == "stored"

    @pytest.mark.asyncio
    async def test_missing_profiles_raise(self, registry, clock):
        with pytest.raises(ResolutionError, match="No auth profile"):
            await _router(registry, clock).resolve(_request())

    @pytest.mark.asyncio
    async def test_unknown_provider_raises(self, registry, clock):
        with pytest.raises(ResolutionError, match="not registered"):
            await _router(registry, clock).resolve(_request(pinned_provider_id="ghost"))

    @pytest.mark.asyncio
    async def test_pinned_provider(self, registry, clock, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")

        resolution = await _router(registry, clock).resolve(_request(pinned_provider_id="anthropic"))

        assert resolution.provider_id == "anthropic"
        assert resolution.profile.profile_id == "env:ANTHROPIC_API_KEY"


class TestRanking:

    def test_method_priority_then_id(self):
        provider = make_provider("openai")
        profiles = [
            AuthProfile("z-env", "openai", method="env"),
            AuthProfile("b-key", "openai", method="api_key"),
            AuthProfile("a-key", "openai", method="api_key"),
            AuthProfile("oauth", "openai", method="oauth_pkce"),
        ]

        ranked = rank_profiles(profiles, provider)

        assert [p.profile_id for p in ranked] == ["oauth", "a-key", "b-key", "z-env"]

    def test_pinned_profile_first(self):
        provider = make_provider("openai")
        profiles = [AuthProfile("a", "openai", method="oauth_pkce"), AuthProfile("b", "openai", method="env")]

        assert rank_profiles(profiles, provider, pinned_profile_id="b")[0].profile_id == "b"


class TestCooldowns:

    @pytest.mark.asyncio
    async def test_exclusions_and_exhaustion(self, registry, clock):
        router = _router(registry, clock)
        router.add_profile(AuthProfile("a", "openai", data={"api_key": "1"}))
        router.add_profile(AuthProfile("b", "openai", data={"api_key": "2"}))

        first = await router.resolve(_request())
        second = await router.resolve(_request(exclude_profile_ids=(first.profile.profile_id,)))

        assert {first.profile.profile_id, second.profile.profile_id} == {"a", "b"}
        with pytest.raises(ResolutionError, match="excluded or cooling"):
            await router.resolve(_request(exclude_profile_ids=("a", "b")))

    @pytest.mark.asyncio
    async def test_failed_profile_cools_down_then_returns(self, registry, clock):
        router = _router(registry, clock)
        router.add_profile(AuthProfile("a", "openai", data={"api_key": "1"}))
        router.add_profile(AuthProfile("b", "openai", data={"api_key": "2"}))

        assert (await router.resolve(_request())).profile.profile_id == "a"
        router.report_failure(FailureReport("s1", "openai", "a"))
        assert (await router.resolve(_request())).profile.profile_id == "b"

        clock.advance(61)
        router.report_failure(FailureReport("s1", "openai", "b"))
        assert (await router.resolve(_request())).profile.profile_id == "a"

    @pytest.mark.asyncio
    async def test_cooldowns_are_per_session(self, registry, clock):
        router = _router(registry, clock)
        router.add_profile(AuthProfile("a", "openai", data={"api_key": "1"}))
        router.report_failure(FailureReport("s1", "openai", "a"))

        resolution = await router.resolve(_request(session_id="s2"))

        assert resolution.profile.profile_id == "a"

    def test_profile_backoff_grows_and_caps(self, registry, clock):
        router = _router(registry, clock)
        backoffs = []
        for _ in range(5):
            router.report_failure(FailureReport("s1", "openai", "a"))
            backoffs.append(router._sessions["s1"].cooldowns[("openai", "a")].until - clock.now)

        assert backoffs == [60, 300, 1500, PROFILE_BACKOFF_MAX_SECONDS, PROFILE_BACKOFF_MAX_SECONDS]

    @pytest.mark.asyncio
    async def test_provider_rate_limit_blocks_provider(self, registry, clock, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        router = _router(registry, clock)

        router.report_provider_rate_limit("s1", "openai")

        with pytest.raises(ResolutionError, match="rate-limited"):
            await router.resolve(_request())
        clock.advance(61)
        assert (await router.resolve(_request())).provider_id == "openai"

    def test_provider_backoff_caps_at_five_minutes(self, registry, clock):
        router = _router(registry, clock)
        for _ in range(6):
            router.report_provider_rate_limit("s1", "openai")

        cooldown = router._sessions["s1"].provider_cooldowns["openai"]
        assert cooldown.until - clock.now == PROVIDER_BACKOFF_MAX_SECONDS
        assert cooldown.failure_count == 6
