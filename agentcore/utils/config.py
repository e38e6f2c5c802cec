"""
Configuration Management
========================

Centralized configuration for the agent engine. All environment variables
are validated and typed here:

1. See all configuration options in one place
2. Get type-safe access to configuration values
3. Defaults that work without any environment at all

Nothing here is required: a bare environment yields a working loop that
simply has no credentials, which the auth router reports per request.

Usage:
    from agentcore.utils.config import get_config

    config = get_config()
    print(config.loop.max_steps)
    print(config.provider.provider_id)
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from agentcore.context.pipeline import ContextPipelineConfig
from agentcore.utils.logger import Logger

logger = Logger("Config")


def _optional(name: str, default: str) -> str:
    """
    Get an optional environment variable with a default.

    Args:
        name: The environment variable name
        default: Default value if not set

    Returns:
        The value or the default
    """
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """
    Get an optional integer environment variable.

    Args:
        name: The environment variable name
        default: Default value if not set or invalid

    Returns:
        The integer value or the default
    """
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"{name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Get an optional float environment variable."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


def _optional_bool(name: str, default: bool) -> bool:
    """
    Get an optional boolean environment variable.

    Args:
        name: The environment variable name
        default: Default value if not set

    Returns:
        True if value is 'true' (case-insensitive), False otherwise
    """
    value = os.getenv(name)
    if not value:
        return default
    return value.lower() == "true"


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class ProviderSettings:
    """Default provider selection for the CLI and the reference auth router."""
    provider_id: str           # Provider tried when nothing is pinned
    model: str | None          # Model override for that provider
    api_key: str | None        # Key used before falling back to env profiles
    base_url: str | None       # Endpoint override (local gateways, vLLM)
    proxy_provider_id: str     # Provider used for the token-mode proxy path


@dataclass(frozen=True)
class LoopSettings:
    """Agent loop knobs."""
    max_steps: int = 25
    timeout_seconds: float = 600.0
    reserve_tokens: int = 20_000
    overflow_recovery: bool = True


@dataclass(frozen=True)
class ContextSettings:
    """Context pipeline policy. The budget itself comes from each provider."""
    tool_result_max_context_share: float = 0.25
    tool_result_hard_max: int = 100_000
    tool_result_min_keep: int = 500
    soft_trim_threshold: float = 0.7
    hard_clear_threshold: float = 0.9
    soft_trim_min_chars: int = 500
    soft_trim_keep_chars: int = 200
    protected_recent_messages: int = 2
    max_history_turns: int = 0
    chars_per_token: float = 4.0

    def to_pipeline_config(
        self,
        context_limit: int,
        reserve_tokens: int,
        provider_id: str | None = None
    ) -> ContextPipelineConfig:
        """
        Build a pipeline config for one candidate execution.

        Args:
            context_limit: The provider's context window in tokens
            reserve_tokens: Tokens held back for the response
            provider_id: Selects the provider normalizer

        Returns:
            ContextPipelineConfig for prepare_context()
        """
        return ContextPipelineConfig(
            context_limit=context_limit,
            reserve_tokens=reserve_tokens,
            tool_result_max_context_share=self.tool_result_max_context_share,
            tool_result_hard_max=self.tool_result_hard_max,
            tool_result_min_keep=self.tool_result_min_keep,
            soft_trim_threshold=self.soft_trim_threshold,
            hard_clear_threshold=self.hard_clear_threshold,
            soft_trim_min_chars=self.soft_trim_min_chars,
            soft_trim_keep_chars=self.soft_trim_keep_chars,
            protected_recent_messages=self.protected_recent_messages,
            max_history_turns=self.max_history_turns,
            provider_id=provider_id,
            chars_per_token=self.chars_per_token,
        )


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.provider.provider_id
        config.loop.max_steps
        config.context.max_history_turns
    """
    provider: ProviderSettings
    loop: LoopSettings
    context: ContextSettings
    log_level: str


def load_config() -> Config:
    """
    Load and validate all configuration from environment.

    Loads .env first, then reads every section with its defaults.

    Returns:
        Config: The validated configuration
    """
    load_dotenv()

    return Config(
        provider=ProviderSettings(
            provider_id=_optional("AGENT_PROVIDER", "openai"),
            model=os.getenv("AGENT_MODEL"),
            api_key=os.getenv("AGENT_API_KEY"),
            base_url=os.getenv("AGENT_BASE_URL"),
            proxy_provider_id=_optional("AGENT_PROXY_PROVIDER", "xai"),
        ),
        loop=LoopSettings(
            max_steps=_optional_int("AGENT_MAX_STEPS", 25),
            timeout_seconds=_optional_float("AGENT_TIMEOUT_SECONDS", 600.0),
            reserve_tokens=_optional_int("AGENT_RESERVE_TOKENS", 20_000),
            overflow_recovery=_optional_bool("AGENT_OVERFLOW_RECOVERY", True),
        ),
        context=ContextSettings(
            tool_result_max_context_share=_optional_float("CONTEXT_TOOL_RESULT_MAX_SHARE", 0.25),
            tool_result_hard_max=_optional_int("CONTEXT_TOOL_RESULT_HARD_MAX", 100_000),
            tool_result_min_keep=_optional_int("CONTEXT_TOOL_RESULT_MIN_KEEP", 500),
            soft_trim_threshold=_optional_float("CONTEXT_SOFT_TRIM_THRESHOLD", 0.7),
            hard_clear_threshold=_optional_float("CONTEXT_HARD_CLEAR_THRESHOLD", 0.9),
            soft_trim_min_chars=_optional_int("CONTEXT_SOFT_TRIM_MIN_CHARS", 500),
            soft_trim_keep_chars=_optional_int("CONTEXT_SOFT_TRIM_KEEP_CHARS", 200),
            protected_recent_messages=_optional_int("CONTEXT_PROTECTED_RECENT", 2),
            max_history_turns=_optional_int("CONTEXT_MAX_HISTORY_TURNS", 0),
            chars_per_token=_optional_float("CONTEXT_CHARS_PER_TOKEN", 4.0),
        ),
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton Pattern
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """
    Get the singleton configuration instance.

    The configuration is loaded on first access and cached for subsequent calls.

    Returns:
        Config: The application configuration
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the env."""
    global _config_instance
    _config_instance = None
