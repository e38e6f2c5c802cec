"""
Overflow recovery for a single model call.

The pipeline works from an estimate, so a provider can still reject a
prepared prompt as too large. with_overflow_recovery() retries the call with
progressively harsher trimming:

    1. aggressive-trim       re-run the pipeline with 25% of the window added to the reserve
    2. truncate-oversized    cut every non-system message over 8000 chars to 4000
    3. hard-clear-old        keep the system message plus the last 4 messages

Errors that are not context overflows, and the failure after the last
strategy, are re-raised unchanged.
"""

import math
from dataclasses import replace
from typing import Awaitable, Callable, TypeVar

from agentcore.context.normalizers import sanitize_messages
from agentcore.context.pipeline import (
    ContextPipelineConfig,
    message_text,
    prepare_context,
    with_message_text,
)
from agentcore.errors import describe_error, is_context_overflow_error
from agentcore.types import RichMessage

T = TypeVar("T")

OVERFLOW_MAX_RETRIES = 3
OVERFLOW_AGGRESSIVE_TRIM_FACTOR = 0.25
OVERSIZED_CHARS = 8000
OVERSIZED_KEEP_CHARS = 4000
HARD_CLEAR_KEEP_MESSAGES = 4
OVERFLOW_TRUNCATION_MARKER = "\n\n[... content truncated for overflow recovery ...]"

STRATEGIES = {
    1: "aggressive-trim",
    2: "truncate-oversized",
    3: "hard-clear-old",
}


def _aggressive_trim(messages: list[RichMessage], config: ContextPipelineConfig) -> list[RichMessage]:
    extra = math.floor(config.context_limit * OVERFLOW_AGGRESSIVE_TRIM_FACTOR)
    tighter = replace(config, reserve_tokens=config.reserve_tokens + extra)
    return prepare_context(messages, tighter).messages


def _truncate_oversized(messages: list[RichMessage]) -> list[RichMessage]:
    result: list[RichMessage] = []
    for message in messages:
        text = message_text(message)
        if message.role != "system" and len(text) > OVERSIZED_CHARS:
            message = with_message_text(message, text[:OVERSIZED_KEEP_CHARS] + OVERFLOW_TRUNCATION_MARKER)
        result.append(message)
    return result


def _hard_clear_old(messages: list[RichMessage]) -> list[RichMessage]:
    system = [m for m in messages if m.role == "system"]
    rest = [m for m in messages if m.role != "system"]
    return sanitize_messages(system + rest[-HARD_CLEAR_KEEP_MESSAGES:])


def apply_recovery_strategy(
    messages: list[RichMessage],
    config: ContextPipelineConfig,
    attempt: int
) -> list[RichMessage]:
    """Apply the strategy for a retry attempt (1-based)."""
    if attempt == 1:
        return _aggressive_trim(messages, config)
    if attempt == 2:
        return _truncate_oversized(messages)
    if attempt == 3:
        return _hard_clear_old(messages)
    return messages


async def with_overflow_recovery(
    messages: list[RichMessage],
    config: ContextPipelineConfig,
    execute_fn: Callable[[list[RichMessage]], Awaitable[T]],
    on_retry: Callable[[int, str], None] | None = None
) -> T:
    """
    Call execute_fn, retrying with harsher trimming on context overflow.

    Args:
        messages: Prepared messages for the first try
        config: Pipeline config of the current candidate
        execute_fn: Coroutine function that performs the model call
        on_retry: Optional hook receiving (attempt, strategy name)

    Returns:
        Whatever execute_fn returns on the first successful try
    """
    current = messages
    attempt = 0

    while True:
        try:
            return await execute_fn(current)
        except Exception as error:
            if attempt >= OVERFLOW_MAX_RETRIES or not is_context_overflow_error(describe_error(error)):
                raise
            attempt += 1
            if on_retry:
                on_retry(attempt, STRATEGIES[attempt])
            current = apply_recovery_strategy(current, config, attempt)
