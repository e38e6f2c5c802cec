"""
Context Preparation Pipeline
============================

Fits a conversation into one provider's token budget.

Stages, in order:
    1. Turn limiting     keep the newest N completed turns (history policy)
    2. Normalize         apply the provider normalizer before any size check
    3. Tool-result prune cap any single oversized message
    4. Soft trim         shrink older long messages while over the soft threshold
    5. Hard clear        drop older messages while over the hard threshold
    6. Repair            drop orphaned tool messages, normalize again and
                         re-cap anything a late merge made oversized

The leading system message and the protected tail are never touched.
Everything here is pure: the input list is never modified and the same
input always yields the same output. A second pass over the output is a
no-op because trimmed text carries a marker the stages recognise.

Usage:
    config = ContextPipelineConfig(context_limit=128_000)
    result = prepare_context(messages, config)
    if result.trimmed:
        ...
"""

from dataclasses import dataclass, replace

from agentcore.context.estimation import (
    DEFAULT_CHARS_PER_TOKEN,
    estimate_message_tokens,
    estimate_total_tokens,
    resolve_context_budget,
)
from agentcore.context.history import limit_history_turns
from agentcore.context.normalizers import normalize_for_provider, sanitize_messages
from agentcore.context.truncation import (
    is_soft_trimmed,
    soft_trim_text,
    tool_result_char_limit,
    truncate_text,
)
from agentcore.types import (
    ImagePart,
    Message,
    RichMessage,
    TextPart,
    ToolCallMessage,
    ToolResultMessage,
)


@dataclass(frozen=True)
class ContextPipelineConfig:
    """
    Budget and trimming policy for one candidate execution.

    Attributes:
        context_limit: Provider context window in tokens
        reserve_tokens: Tokens held back for the response
        tool_result_max_context_share: Largest share of the budget one message may use
        tool_result_hard_max: Absolute character ceiling per message
        tool_result_min_keep: Characters always kept when pruning
        soft_trim_threshold: Budget fraction that starts soft trimming
        hard_clear_threshold: Budget fraction that starts dropping messages
        soft_trim_min_chars: Messages at or below this length are not soft trimmed
        soft_trim_keep_chars: Characters a soft-trimmed message keeps
        protected_recent_messages: Tail messages no stage may touch
        max_history_turns: Completed turns to keep (0 keeps all)
        provider_id: Selects the provider normalizer
        chars_per_token: Estimation constant
    """
    context_limit: int
    reserve_tokens: int = 20_000
    tool_result_max_context_share: float = 0.25
    tool_result_hard_max: int = 100_000
    tool_result_min_keep: int = 500
    soft_trim_threshold: float = 0.7
    hard_clear_threshold: float = 0.9
    soft_trim_min_chars: int = 500
    soft_trim_keep_chars: int = 200
    protected_recent_messages: int = 2
    max_history_turns: int = 0
    provider_id: str | None = None
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN


@dataclass
class PipelineResult:
    """Prepared messages plus diagnostics for logging."""
    messages: list[RichMessage]
    estimated_tokens: int
    trimmed: bool = False
    pruned: bool = False


# ==============================================================================
# Message helpers
# ==============================================================================

def message_text(message: RichMessage) -> str:
    """Text a trimming stage may shorten (image parts are left alone)."""
    content = message.content
    if isinstance(content, str):
        return content
    return "\n".join(part.text for part in content if isinstance(part, TextPart))


def with_message_text(message: RichMessage, text: str) -> RichMessage:
    """Copy of message with its text replaced; image parts are kept."""
    if isinstance(message.content, str):
        return replace(message, content=text)
    images = [part for part in message.content if isinstance(part, ImagePart)]
    return replace(message, content=[TextPart(text=text), *images])


def _is_system(message: RichMessage) -> bool:
    return isinstance(message, Message) and message.role == "system"


def _protected_indices(messages: list[RichMessage], count: int) -> set[int]:
    """
    Indices no stage may modify or drop.

    The last `count` messages, widened so a protected tool result keeps its
    originating call and a protected call keeps all of its results.
    """
    if count <= 0:
        return set()

    protected = set(range(max(0, len(messages) - count), len(messages)))

    result_ids = {
        messages[i].tool_call_id for i in protected
        if isinstance(messages[i], ToolResultMessage)
    }
    for index, message in enumerate(messages):
        if isinstance(message, ToolCallMessage) and any(c.id in result_ids for c in message.tool_calls):
            protected.add(index)

    call_ids = {
        call.id
        for i in protected if isinstance(messages[i], ToolCallMessage)
        for call in messages[i].tool_calls
    }
    for index, message in enumerate(messages):
        if isinstance(message, ToolResultMessage) and message.tool_call_id in call_ids:
            protected.add(index)

    return protected


def _trimmable(messages: list[RichMessage], protected: set[int]) -> list[int]:
    return [
        index for index, message in enumerate(messages)
        if index not in protected and not _is_system(message)
    ]


# ==============================================================================
# Stages
# ==============================================================================

def _prune_tool_results(
    messages: list[RichMessage],
    protected: set[int],
    budget: int,
    config: ContextPipelineConfig
) -> bool:
    max_chars = tool_result_char_limit(
        budget,
        config.tool_result_max_context_share,
        config.tool_result_hard_max,
        config.chars_per_token,
    )
    pruned = False
    for index in _trimmable(messages, protected):
        text = message_text(messages[index])
        if len(text) <= max_chars:
            continue
        shortened = truncate_text(text, max_chars, config.tool_result_min_keep)
        if shortened != text:
            messages[index] = with_message_text(messages[index], shortened)
            pruned = True
    return pruned


def _soft_trim(
    messages: list[RichMessage],
    protected: set[int],
    limit: float,
    config: ContextPipelineConfig
) -> bool:
    cpt = config.chars_per_token
    total = estimate_total_tokens(messages, cpt)
    trimmed = False

    for index in _trimmable(messages, protected):
        if total <= limit:
            break
        text = message_text(messages[index])
        if len(text) <= config.soft_trim_min_chars or is_soft_trimmed(text):
            continue
        shortened = soft_trim_text(text, config.soft_trim_keep_chars)
        if shortened == text:
            continue
        before = estimate_message_tokens(messages[index], cpt)
        messages[index] = with_message_text(messages[index], shortened)
        total += estimate_message_tokens(messages[index], cpt) - before
        trimmed = True

    return trimmed


def _hard_clear(
    messages: list[RichMessage],
    protected: set[int],
    limit: float,
    config: ContextPipelineConfig
) -> tuple[list[RichMessage], bool]:
    cpt = config.chars_per_token
    total = estimate_total_tokens(messages, cpt)
    dropped: set[int] = set()

    for index in _trimmable(messages, protected):
        if total <= limit:
            break
        total -= estimate_message_tokens(messages[index], cpt)
        dropped.add(index)

    kept = [message for index, message in enumerate(messages) if index not in dropped]
    return kept, bool(dropped)


def _repair(
    messages: list[RichMessage],
    budget: int,
    config: ContextPipelineConfig
) -> tuple[list[RichMessage], bool]:
    """
    Final sanitize and normalize pass.

    Dropping messages can leave same-role neighbours that the normalizer
    merges, so the per-message ceiling is applied once more afterwards.
    """
    repaired = normalize_for_provider(sanitize_messages(messages), config.provider_id)
    protected = _protected_indices(repaired, config.protected_recent_messages)
    pruned = _prune_tool_results(repaired, protected, budget, config)
    return repaired, pruned


# ==============================================================================
# Entry point
# ==============================================================================

def prepare_context(messages: list[RichMessage], config: ContextPipelineConfig) -> PipelineResult:
    """
    Run every stage and return the prepared conversation.

    Args:
        messages: Conversation in order; the first may be a system message
        config: Budget and policy for the target provider

    Returns:
        PipelineResult with the prepared messages, their estimated size and
        whether anything was trimmed or pruned
    """
    cpt = config.chars_per_token
    budget = resolve_context_budget(config.context_limit, config.reserve_tokens)
    trimmed = False

    working = sanitize_messages(list(messages))

    if config.max_history_turns > 0:
        limited = limit_history_turns(working, config.max_history_turns)
        trimmed = len(limited) < len(working)
        working = limited

    working = normalize_for_provider(working, config.provider_id)

    protected = _protected_indices(working, config.protected_recent_messages)
    pruned = _prune_tool_results(working, protected, budget, config)

    soft_limit = config.soft_trim_threshold * budget
    if estimate_total_tokens(working, cpt) > soft_limit:
        trimmed = _soft_trim(working, protected, soft_limit, config) or trimmed

    hard_limit = min(config.hard_clear_threshold, 1.0) * budget
    if estimate_total_tokens(working, cpt) > hard_limit:
        working, cleared = _hard_clear(working, protected, hard_limit, config)
        trimmed = cleared or trimmed

    working, repruned = _repair(working, budget, config)
    pruned = repruned or pruned

    return PipelineResult(
        messages=working,
        estimated_tokens=estimate_total_tokens(working, cpt),
        trimmed=trimmed,
        pruned=pruned,
    )
