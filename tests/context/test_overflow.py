import pytest

from agentcore.context.overflow import (
    HARD_CLEAR_KEEP_MESSAGES,
    OVERFLOW_MAX_RETRIES,
    OVERSIZED_KEEP_CHARS,
    apply_recovery_strategy,
    with_overflow_recovery,
)
from agentcore.context.pipeline import ContextPipelineConfig
from agentcore.types import Message


def _messages(count: int, chars: int) -> list:
    return [Message("system", "sys")] + [
        Message("user" if i % 2 == 0 else "assistant", f"{i} " + "m" * chars)
        for i in range(count)
    ]


class TestStrategies:

    def test_truncate_oversized_cuts_long_non_system_messages(self):
        messages = [Message("system", "s" * 10_000), Message("user", "u" * 10_000), Message("assistant", "ok")]

        result = apply_recovery_strategy(messages, ContextPipelineConfig(context_limit=128_000), attempt=2)

        assert result[0] == messages[0]
        assert result[1].content.startswith("u" * OVERSIZED_KEEP_CHARS)
        assert len(result[1].content) < 5000
        assert result[2] == messages[2]

    def test_hard_clear_keeps_system_and_tail(self):
        messages = _messages(10, 10)

        result = apply_recovery_strategy(messages, ContextPipelineConfig(context_limit=128_000), attempt=3)

        assert result == [messages[0], *messages[-HARD_CLEAR_KEEP_MESSAGES:]]

    def test_aggressive_trim_tightens_the_budget(self):
        messages = _messages(80, 2000)
        config = ContextPipelineConfig(context_limit=40_000, reserve_tokens=1000)

        result = apply_recovery_strategy(messages, config, attempt=1)

        assert len("".join(m.content for m in result)) < len("".join(m.content for m in messages))


class TestWithOverflowRecovery:

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        seen = []

        async def execute(messages):
            seen.append(messages)
            return "answer"

        result = await with_overflow_recovery(_messages(2, 10), ContextPipelineConfig(context_limit=128_000), execute)

        assert result == "answer"
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_retries_overflow_with_strategies(self):
        attempts = []

        async def execute(messages):
            attempts.append(messages)
            if len(attempts) < 3:
                raise RuntimeError("This model's maximum context length is 8192 tokens")
            return "recovered"

        retries = []
        result = await with_overflow_recovery(
            _messages(10, 10),
            ContextPipelineConfig(context_limit=128_000),
            execute,
            on_retry=lambda attempt, strategy: retries.append((attempt, strategy)),
        )

        assert result == "recovered"
        assert retries == [(1, "aggressive-trim"), (2, "truncate-oversized")]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        async def execute(messages):
            calls.append(1)
            raise RuntimeError("context_length_exceeded")

        with pytest.raises(RuntimeError, match="context_length_exceeded"):
            await with_overflow_recovery(_messages(4, 10), ContextPipelineConfig(context_limit=128_000), execute)

        assert len(calls) == OVERFLOW_MAX_RETRIES + 1

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        async def execute(messages):
            calls.append(1)
            raise ValueError("bad request")

        with pytest.raises(ValueError):
            await with_overflow_recovery(_messages(4, 10), ContextPipelineConfig(context_limit=128_000), execute)

        assert len(calls) == 1
