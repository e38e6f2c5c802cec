"""
Content truncation helpers shared by the pipeline and the tool bridge.

Two markers exist so later passes can tell what already happened to a
message: tool-result pruning leaves "truncated", soft trim leaves "trimmed".
Neither stage touches text that already carries its own marker.
"""

import re
from typing import TYPE_CHECKING

from agentcore.context.estimation import resolve_context_budget

if TYPE_CHECKING:
    from agentcore.context.pipeline import ContextPipelineConfig

# Room left for the marker when cutting to a character ceiling
_MARKER_ALLOWANCE = 48

# Accept a newline cut only if it keeps at least this share of the target
_NEWLINE_CUT_RATIO = 0.8

_TRUNCATED_RE = re.compile(r"\[\.\.\. truncated \d+ characters \.\.\.\]$")
_TRIMMED_RE = re.compile(r"\[\.\.\. trimmed \d+ characters \.\.\.\]$")


def truncation_marker(removed: int) -> str:
    return f"\n\n[... truncated {removed} characters ...]"


def trim_marker(removed: int) -> str:
    return f"\n\n[... trimmed {removed} characters ...]"


def is_truncated(text: str) -> bool:
    """True if the text already ends with a truncation or trim marker."""
    return bool(_TRUNCATED_RE.search(text) or _TRIMMED_RE.search(text))


def is_soft_trimmed(text: str) -> bool:
    return bool(_TRIMMED_RE.search(text))


def tool_result_char_limit(
    budget_tokens: int,
    max_context_share: float,
    hard_max: int,
    chars_per_token: float
) -> int:
    """
    Character ceiling for a single tool result.

    The share applies to the token budget, converted to characters with the
    same constant the estimator uses.
    """
    return int(min(max_context_share * budget_tokens * chars_per_token, hard_max))


def truncate_text(text: str, max_chars: int, min_keep: int) -> str:
    """
    Cut text down to roughly max_chars, keeping at least min_keep characters.

    The result (marker included) fits within max_chars whenever max_chars
    leaves room for min_keep plus the marker. Prefers to cut on a newline
    near the target so the last kept line is whole.
    """
    if len(text) <= max_chars or is_truncated(text):
        return text

    keep = max(min_keep, max_chars - _MARKER_ALLOWANCE)
    if keep >= len(text):
        return text

    newline = text.rfind("\n", 0, keep)
    if newline >= max(min_keep, int(keep * _NEWLINE_CUT_RATIO)):
        keep = newline

    return text[:keep] + truncation_marker(len(text) - keep)


def soft_trim_text(text: str, keep_chars: int) -> str:
    """Cut text to its first keep_chars characters plus a trim marker."""
    if keep_chars >= len(text):
        return text
    return text[:keep_chars] + trim_marker(len(text) - keep_chars)


def truncate_tool_result(text: str, config: "ContextPipelineConfig") -> str:
    """Apply the pipeline's tool-result ceiling to a fresh tool payload."""
    budget = resolve_context_budget(config.context_limit, config.reserve_tokens)
    max_chars = tool_result_char_limit(
        budget,
        config.tool_result_max_context_share,
        config.tool_result_hard_max,
        config.chars_per_token,
    )
    return truncate_text(text, max_chars, config.tool_result_min_keep)
