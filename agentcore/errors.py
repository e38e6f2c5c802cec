"""
Error Taxonomy
==============

Exceptions raised by the engine and classifiers for provider failures.

Categories and how the loop treats them:
    cancellation      AgentAborted; ends the whole invocation
    rate limit        provider blocked for the rest of the invocation
    auth/profile      profile reported to the router, next candidate
    context overflow  next candidate; surfaced as actionable prose
    transient/other   next candidate
    resolution        no usable candidates; fallback prose
"""

import asyncio

import openai

CONTEXT_OVERFLOW_TEXT = (
    "Context overflow: prompt too large for the model. Try /reset (or /new) to start "
    "a fresh session, or use a larger-context model. You can also reduce system prompt "
    "size in config."
)

FALLBACK_TEXT = (
    "I cannot answer right now because no valid AI auth profile is configured. "
    "Configure a provider/API key, then try again."
)

ABORTED_TEXT = "Operation cancelled."

_OVERFLOW_SIGNATURES = (
    "request too large",
    "request_too_large",
    "request exceeds the maximum size",
    "context length exceeded",
    "context_length_exceeded",
    "maximum context length",
    "prompt is too long",
    "exceeds model context window",
    "context overflow",
)

_RATE_LIMIT_SIGNATURES = ("rate limit", "rate_limit", "too many requests")


class AgentCoreError(Exception):
    """Base class for engine errors."""


class AgentAborted(AgentCoreError):
    """The invocation was cancelled by the caller or hit its deadline."""

    def __init__(self, reason: str = "aborted"):
        super().__init__(f"Agent loop aborted: {reason}")
        self.reason = reason


class ResolutionError(AgentCoreError):
    """The auth router could not produce a usable profile."""


class ProxyUnavailableError(AgentCoreError):
    """The token-mode proxy disappeared or refused a request mid-run."""


def is_abort_error(error: BaseException) -> bool:
    """Check whether an exception represents cancellation."""
    if isinstance(error, (AgentAborted, asyncio.CancelledError)):
        return True
    return "aborted" in str(error).lower()


def is_rate_limit_error(error: BaseException) -> bool:
    """
    Detect provider rate limiting.

    Matches the OpenAI SDK's RateLimitError, any exception carrying an HTTP
    429 status, or rate-limit wording in the message.
    """
    if isinstance(error, openai.RateLimitError):
        return True
    for attr in ("status_code", "status"):
        if getattr(error, attr, None) == 429:
            return True
    message = str(error).lower()
    return any(signature in message for signature in _RATE_LIMIT_SIGNATURES)


def is_context_overflow_error(error_message: str | None) -> bool:
    """Detect context-overflow / request-too-large errors by message."""
    if not error_message:
        return False
    lower = error_message.lower()
    if any(signature in lower for signature in _OVERFLOW_SIGNATURES):
        return True
    if "request size exceeds" in lower and ("context window" in lower or "context length" in lower):
        return True
    return "413" in lower and "too large" in lower


def describe_error(error: BaseException) -> str:
    """
    Render an exception for logs and overflow matching.

    API errors carry a response body that often holds the useful part
    (for instance the provider's context-length complaint), so include it.
    """
    message = str(error) or type(error).__name__
    body = getattr(error, "body", None)
    if body and str(body) not in message:
        return f"{message} - {body}"
    return message
