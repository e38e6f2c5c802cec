"""
Provider Contracts
==================

Narrow interfaces the engine consumes. The agent loop never reaches into a
router or registry directly; it only calls the methods declared here, so any
object with matching methods can stand in (the reference implementations in
this package, or a host application's own).

    AuthRouter      resolves a credential profile, takes failure reports
    ProviderLookup  provider id -> ProviderDefinition
    ProxyResolver   token-mode proxy: is it on, where, which headers
    ChatModel       one model call: messages + tools -> StepResult
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol

from agentcore.types import CompletionExecution, RichMessage, StepResult

AuthMethod = Literal["oauth_pkce", "setup_token", "api_key", "env"]


@dataclass(frozen=True)
class AuthProfile:
    """
    A stored credential for one provider.

    Attributes:
        profile_id: Unique id (e.g. "env:OPENAI_API_KEY")
        provider_id: Provider the credential belongs to
        label: Human-readable label
        method: How the credential was obtained
        data: Credential payload ("api_key" or "access", optional "base_url")
    """
    profile_id: str
    provider_id: str
    label: str = ""
    method: AuthMethod = "api_key"
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthRequest:
    """Arguments of AuthRouter.resolve()."""
    session_id: str
    agent_id: str
    exclude_profile_ids: tuple[str, ...] = ()
    pinned_provider_id: str | None = None


@dataclass(frozen=True)
class AuthResolution:
    """A profile the router picked, plus the model it suggests."""
    provider_id: str
    model_id: str
    profile: AuthProfile


@dataclass(frozen=True)
class FailureReport:
    """A profile that failed during resolution or a model call."""
    session_id: str
    provider_id: str
    profile_id: str


@dataclass(frozen=True)
class ProviderModel:
    """A model a provider offers. Lower priority values are preferred."""
    id: str
    priority: int = 100


@dataclass(frozen=True)
class ProxyResolution:
    """Answer from the token-mode proxy resolver."""
    enabled: bool
    base_url: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    reason: str | None = None


class ChatModel(Protocol):
    """One provider-bound model client."""

    async def complete(
        self,
        messages: list[RichMessage],
        tools: list[dict[str, Any]] | None,
        *,
        max_tokens: int | None = None
    ) -> StepResult:
        ...


TransportFactory = Callable[[CompletionExecution, "ProviderDefinition"], ChatModel]


@dataclass(frozen=True)
class ProviderDefinition:
    """
    Everything the loop needs to know about a provider.

    Attributes:
        id: Registry key
        display_name: Human-readable name
        models: Offered models with selection priority
        transport_factory: Builds a ChatModel for a resolved execution
        context_limit: Context window in tokens (None means the loop default)
        temperature: Sampling temperature (omitted for reasoning models)
        max_tokens: Default completion budget
        base_url: Default endpoint for OpenAI-compatible providers
        env_vars: Environment variables that may hold an API key
        preferred_auth_order: Profile methods ranked first for this provider
    """
    id: str
    display_name: str
    transport_factory: TransportFactory
    models: tuple[ProviderModel, ...] = ()
    context_limit: int | None = None
    temperature: float = 0.0
    max_tokens: int = 2048
    base_url: str | None = None
    env_vars: tuple[str, ...] = ()
    preferred_auth_order: tuple[AuthMethod, ...] = ()

    def select_model(self, preferred: str | None = None) -> str | None:
        """
        Pick a model id.

        A non-empty preferred id wins. Otherwise the model with the lowest
        priority value; None when the provider lists no models.
        """
        if preferred and preferred.strip():
            return preferred.strip()
        if not self.models:
            return None
        return min(self.models, key=lambda model: model.priority).id

    def create_model(self, execution: CompletionExecution) -> ChatModel:
        return self.transport_factory(execution, self)


class AuthRouter(Protocol):
    """Resolves credential profiles and learns from failures."""

    async def resolve(self, request: AuthRequest) -> AuthResolution:
        ...

    def report_failure(self, report: FailureReport) -> None:
        ...

    def report_provider_rate_limit(self, session_id: str, provider_id: str) -> None:
        ...


class ProviderLookup(Protocol):
    def get(self, provider_id: str) -> ProviderDefinition | None:
        ...


class ProxyResolver(Protocol):
    """Token-mode proxy. Called with the outgoing request body ("" to probe)."""

    async def resolve_proxy_request(self, body: str) -> ProxyResolution:
        ...
