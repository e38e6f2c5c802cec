"""
Token Estimation
================

A deliberately cheap approximation of token counts: characters divided by a
per-provider constant (4 by default), plus a fixed per-message overhead.

This is NOT tokenization. It undercounts dense code and non-Latin text and
overcounts whitespace-heavy text; the reserve held back for the response
absorbs the error. Callers that need exact counts must tokenize themselves.
"""

import json
import math
from typing import Iterable

from agentcore.types import (
    ImagePart,
    MessageContent,
    RichMessage,
    ToolCallMessage,
)

DEFAULT_CHARS_PER_TOKEN = 4.0
MESSAGE_OVERHEAD_TOKENS = 4
MIN_CONTEXT_BUDGET = 1000
IMAGE_PLACEHOLDER = "[Image attached]"


def content_to_text(content: MessageContent) -> str:
    """Flatten message content to text; images become a placeholder."""
    if isinstance(content, str):
        return content
    return "\n".join(
        IMAGE_PLACEHOLDER if isinstance(part, ImagePart) else part.text
        for part in content
    )


def estimate_tokens(text: str, chars_per_token: float = DEFAULT_CHARS_PER_TOKEN) -> int:
    """Rough token count for a piece of text."""
    return math.ceil(len(text) / chars_per_token)


def estimate_message_tokens(
    message: RichMessage,
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN
) -> int:
    """Token estimate for one message, including tool-call arguments."""
    text = content_to_text(message.content)
    if isinstance(message, ToolCallMessage):
        calls = [{"name": call.name, "args": call.args} for call in message.tool_calls]
        text += json.dumps(calls, default=str)
    return estimate_tokens(text, chars_per_token) + MESSAGE_OVERHEAD_TOKENS


def estimate_total_tokens(
    messages: Iterable[RichMessage],
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN
) -> int:
    """Sum of per-message estimates."""
    return sum(estimate_message_tokens(message, chars_per_token) for message in messages)


def resolve_context_budget(context_limit: int, reserve_tokens: int) -> int:
    """Input budget: the context window minus the response reserve, floored."""
    return max(MIN_CONTEXT_BUDGET, math.floor(context_limit - reserve_tokens))
