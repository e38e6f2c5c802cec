"""
Provider Registry
=================

Maps provider ids to ProviderDefinitions. The agent loop reads context
limits and builds ChatModels from here; resolution looks up providers and
their model selectors.

Built-in providers all use the OpenAI-compatible transport. Ollama and vLLM
are local servers; the others are hosted APIs with an OpenAI-compatible
endpoint.

Example:
    registry = ProviderRegistry()
    register_builtin_providers(registry)

    provider = registry.get("anthropic")
    provider.context_limit  # 200000
"""

from agentcore.providers.contracts import ProviderDefinition, ProviderModel
from agentcore.providers.openai_model import openai_transport
from agentcore.utils.logger import Logger

logger = Logger("ProviderRegistry")


class ProviderRegistry:
    """
    Central registry for model providers.

    Registering an id that already exists replaces the old definition, so a
    host can override a built-in (for instance to point openai at a gateway).
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._providers: dict[str, ProviderDefinition] = {}

    def register(self, provider: ProviderDefinition) -> None:
        """
        Register (or replace) a provider.

        Args:
            provider: The provider definition
        """
        if provider.id in self._providers:
            logger.debug(f"Replacing provider: {provider.id}")
        self._providers[provider.id] = provider
        logger.debug(f"Registered provider: {provider.id}")

    def get(self, provider_id: str) -> ProviderDefinition | None:
        """Get a provider by id, or None if it is not registered."""
        return self._providers.get(provider_id)

    def list_ids(self) -> list[str]:
        """Get list of all provider ids."""
        return list(self._providers.keys())

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers


BUILTIN_PROVIDERS: tuple[ProviderDefinition, ...] = (
    ProviderDefinition(
        id="openai",
        display_name="OpenAI",
        transport_factory=openai_transport,
        models=(ProviderModel("gpt-4o", 10), ProviderModel("gpt-4o-mini", 20)),
        context_limit=128_000,
        temperature=0.6,
        max_tokens=3072,
        env_vars=("OPENAI_API_KEY",),
    ),
    ProviderDefinition(
        id="anthropic",
        display_name="Anthropic",
        transport_factory=openai_transport,
        models=(ProviderModel("claude-sonnet-4-5", 10),),
        context_limit=200_000,
        temperature=0.0,
        max_tokens=3072,
        base_url="https://api.anthropic.com/v1/",
        env_vars=("ANTHROPIC_API_KEY",),
        preferred_auth_order=("oauth_pkce", "setup_token", "api_key"),
    ),
    ProviderDefinition(
        id="xai",
        display_name="xAI",
        transport_factory=openai_transport,
        models=(ProviderModel("grok-4-1", 10),),
        context_limit=128_000,
        temperature=0.0,
        max_tokens=4096,
        base_url="https://api.x.ai/v1",
        env_vars=("XAI_API_KEY",),
    ),
    ProviderDefinition(
        id="google",
        display_name="Google Gemini",
        transport_factory=openai_transport,
        models=(ProviderModel("gemini-2.5-flash", 10),),
        context_limit=1_000_000,
        temperature=0.0,
        max_tokens=3072,
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        env_vars=("GOOGLE_GENERATIVE_AI_API_KEY", "GEMINI_API_KEY"),
    ),
    ProviderDefinition(
        id="ollama",
        display_name="Ollama (local)",
        transport_factory=openai_transport,
        models=(ProviderModel("llama3.1", 10),),
        context_limit=128_000,
        temperature=0.0,
        max_tokens=2048,
        base_url="http://localhost:11434/v1",
        env_vars=("OLLAMA_API_KEY",),
    ),
    ProviderDefinition(
        id="vllm",
        display_name="vLLM (local)",
        transport_factory=openai_transport,
        context_limit=32_768,
        temperature=0.0,
        max_tokens=2048,
        base_url="http://localhost:8000/v1",
        env_vars=("VLLM_API_KEY",),
    ),
    ProviderDefinition(
        id="openrouter",
        display_name="OpenRouter",
        transport_factory=openai_transport,
        models=(ProviderModel("openai/gpt-4o", 10),),
        context_limit=128_000,
        temperature=0.0,
        max_tokens=2048,
        base_url="https://openrouter.ai/api/v1",
        env_vars=("OPENROUTER_API_KEY",),
    ),
)


def register_builtin_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """
    Register every built-in provider.

    Args:
        registry: Registry to fill

    Returns:
        The same registry, for chaining
    """
    for provider in BUILTIN_PROVIDERS:
        registry.register(provider)
    logger.info(f"Registered {len(BUILTIN_PROVIDERS)} built-in providers")
    return registry
