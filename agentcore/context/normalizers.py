"""
Post-trim message repair and provider-specific normalization.

sanitize_messages() runs for every provider: it removes empty turns and tool
messages whose partner was trimmed away, since providers reject an assistant
tool call without its result (and vice versa).

Provider rules live in a strategy table keyed by provider id. Register new
ones with register_normalizer() instead of branching inside the pipeline.
"""

from dataclasses import replace
from typing import Callable

from agentcore.context.estimation import content_to_text
from agentcore.types import (
    Message,
    MessagePart,
    RichMessage,
    TextPart,
    ToolCallMessage,
    ToolResultMessage,
)

Normalizer = Callable[[list[RichMessage]], list[RichMessage]]


def _has_content(message: RichMessage) -> bool:
    return len(content_to_text(message.content)) > 0


def _drop_orphaned_tool_messages(messages: list[RichMessage]) -> list[RichMessage]:
    answered = {m.tool_call_id for m in messages if isinstance(m, ToolResultMessage)}
    requested: set[str] = set()
    result: list[RichMessage] = []

    for message in messages:
        if isinstance(message, ToolCallMessage):
            calls = [call for call in message.tool_calls if call.id in answered]
            if not calls:
                # Keep whatever the model said alongside the dead calls.
                if _has_content(message):
                    result.append(Message(role="assistant", content=message.content))
                continue
            if len(calls) != len(message.tool_calls):
                message = replace(message, tool_calls=calls)
            requested.update(call.id for call in calls)
            result.append(message)
        elif isinstance(message, ToolResultMessage):
            if message.tool_call_id in requested:
                result.append(message)
        else:
            result.append(message)

    return result


def sanitize_messages(messages: list[RichMessage]) -> list[RichMessage]:
    """Remove empty plain turns and orphaned tool calls/results."""
    kept = [
        message for message in messages
        if not isinstance(message, Message) or message.role == "system" or _has_content(message)
    ]
    return _drop_orphaned_tool_messages(kept)


def _as_parts(message: Message) -> list[MessagePart]:
    if isinstance(message.content, str):
        return [TextPart(text=message.content)]
    return list(message.content)


def merge_consecutive_roles(messages: list[RichMessage]) -> list[RichMessage]:
    """
    Merge adjacent plain messages that share a role (system excepted).

    Text is joined with a blank line. If either side carries image parts the
    merged content keeps every part in order.
    """
    result: list[RichMessage] = []

    for message in messages:
        previous = result[-1] if result else None
        mergeable = (
            isinstance(message, Message)
            and isinstance(previous, Message)
            and previous.role == message.role
            and message.role != "system"
        )
        if not mergeable:
            result.append(message)
            continue

        if isinstance(previous.content, str) and isinstance(message.content, str):
            merged = Message(role=previous.role, content=f"{previous.content}\n\n{message.content}")
        else:
            merged = Message(role=previous.role, content=_as_parts(previous) + _as_parts(message))
        result[-1] = merged

    return result


NORMALIZERS: dict[str, Normalizer] = {
    "google": merge_consecutive_roles,
}


def register_normalizer(provider_id: str, normalizer: Normalizer) -> None:
    """Install (or replace) the normalizer for a provider."""
    NORMALIZERS[provider_id] = normalizer


def normalize_for_provider(messages: list[RichMessage], provider_id: str | None) -> list[RichMessage]:
    """Apply the provider's normalizer, if it has one."""
    normalizer = NORMALIZERS.get(provider_id) if provider_id else None
    if normalizer is None:
        return messages
    return normalizer(messages)
