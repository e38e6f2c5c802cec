"""
History turn limiting.

A turn starts at a user message (consecutive user messages open a single
turn) and runs through the assistant response, including any tool calls and
tool results in between. A trailing user message with no response yet is the
pending turn; it is always kept and does not count against the limit.
"""

from agentcore.types import RichMessage


def _turn_starts(body: list[RichMessage]) -> list[int]:
    return [
        index for index, message in enumerate(body)
        if message.role == "user" and (index == 0 or body[index - 1].role != "user")
    ]


def limit_history_turns(messages: list[RichMessage], max_turns: int) -> list[RichMessage]:
    """
    Keep the newest max_turns completed turns plus any pending user turn.

    The leading system message is always preserved. Messages before the
    first kept turn are dropped.

    Args:
        messages: Conversation in order
        max_turns: Completed turns to keep; 0 or less keeps everything

    Returns:
        A new list; the input is not modified
    """
    if max_turns <= 0:
        return list(messages)

    lead = messages[:1] if messages and messages[0].role == "system" else []
    body = list(messages[len(lead):])

    starts = _turn_starts(body)
    if not starts:
        return list(messages)

    last = starts[-1]
    answered = any(message.role in ("assistant", "tool") for message in body[last:])
    completed = starts if answered else starts[:-1]

    if len(completed) <= max_turns:
        return list(messages)

    keep_from = completed[-max_turns]
    return lead + body[keep_from:]
