"""
Context Preparation
===================

Keeps a growing conversation inside a provider's token budget without
losing what the model still needs.

Usage:
    from agentcore.context import ContextPipelineConfig, prepare_context

    result = prepare_context(messages, ContextPipelineConfig(context_limit=128_000))
    send(result.messages)
"""

from agentcore.context.estimation import (
    estimate_message_tokens,
    estimate_tokens,
    estimate_total_tokens,
    resolve_context_budget,
)
from agentcore.context.history import limit_history_turns
from agentcore.context.normalizers import (
    merge_consecutive_roles,
    normalize_for_provider,
    register_normalizer,
    sanitize_messages,
)
from agentcore.context.overflow import with_overflow_recovery
from agentcore.context.pipeline import ContextPipelineConfig, PipelineResult, prepare_context
from agentcore.context.truncation import truncate_text, truncate_tool_result

__all__ = [
    "ContextPipelineConfig",
    "PipelineResult",
    "prepare_context",
    "limit_history_turns",
    "sanitize_messages",
    "merge_consecutive_roles",
    "normalize_for_provider",
    "register_normalizer",
    "with_overflow_recovery",
    "truncate_text",
    "truncate_tool_result",
    "estimate_tokens",
    "estimate_message_tokens",
    "estimate_total_tokens",
    "resolve_context_budget",
]
