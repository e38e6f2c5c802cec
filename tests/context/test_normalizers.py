from agentcore.context.history import limit_history_turns
from agentcore.context.normalizers import (
    NORMALIZERS,
    merge_consecutive_roles,
    normalize_for_provider,
    register_normalizer,
    sanitize_messages,
)
from agentcore.types import ImagePart, Message, TextPart, ToolCallInfo, ToolCallMessage, ToolResultMessage


class TestSanitize:

    def test_drops_empty_plain_messages_but_keeps_system(self):
        messages = [Message("system", ""), Message("user", ""), Message("user", "hi")]

        assert sanitize_messages(messages) == [Message("system", ""), Message("user", "hi")]

    def test_drops_result_without_call(self):
        messages = [Message("user", "hi"), ToolResultMessage(tool_call_id="gone", content="x")]

        assert sanitize_messages(messages) == [Message("user", "hi")]

    def test_call_without_result_becomes_plain_text(self):
        call = ToolCallMessage(content="Checking", tool_calls=[ToolCallInfo("c1", "lookup")])

        assert sanitize_messages([Message("user", "hi"), call]) == [
            Message("user", "hi"),
            Message("assistant", "Checking"),
        ]

    def test_call_without_result_and_text_is_dropped(self):
        call = ToolCallMessage(content="", tool_calls=[ToolCallInfo("c1", "lookup")])

        assert sanitize_messages([Message("user", "hi"), call]) == [Message("user", "hi")]

    def test_partial_results_keep_only_answered_calls(self):
        call = ToolCallMessage(content="", tool_calls=[ToolCallInfo("c1", "a"), ToolCallInfo("c2", "b")])
        result = ToolResultMessage(tool_call_id="c2", content="ok")

        cleaned = sanitize_messages([call, result])

        assert [c.id for c in cleaned[0].tool_calls] == ["c2"]
        assert cleaned[1] == result


class TestMerge:

    def test_merges_text_of_same_role(self):
        merged = merge_consecutive_roles([
            Message("assistant", "one"),
            Message("assistant", "two"),
            Message("user", "three"),
        ])

        assert merged == [Message("assistant", "one\n\ntwo"), Message("user", "three")]

    def test_never_merges_system(self):
        messages = [Message("system", "a"), Message("system", "b")]

        assert merge_consecutive_roles(messages) == messages

    def test_keeps_parts_when_images_present(self):
        image = ImagePart(data="aGk=")
        merged = merge_consecutive_roles([Message("user", "look"), Message("user", [image])])

        assert merged == [Message("user", [TextPart("look"), image])]

    def test_unknown_provider_is_passthrough(self):
        messages = [Message("assistant", "one"), Message("assistant", "two")]

        assert normalize_for_provider(messages, "openai") == messages
        assert normalize_for_provider(messages, None) == messages

    def test_register_normalizer(self):
        try:
            register_normalizer("reverse-test", lambda messages: list(reversed(messages)))
            messages = [Message("user", "a"), Message("assistant", "b")]

            assert normalize_for_provider(messages, "reverse-test") == list(reversed(messages))
        finally:
            NORMALIZERS.pop("reverse-test", None)


class TestHistoryTurns:

    def _turns(self, count):
        messages = [Message("system", "sys")]
        for i in range(count):
            messages += [Message("user", f"u{i}"), Message("assistant", f"a{i}")]
        return messages

    def test_zero_keeps_everything(self):
        messages = self._turns(4)

        assert limit_history_turns(messages, 0) == messages

    def test_keeps_newest_completed_turns(self):
        messages = self._turns(4)

        assert limit_history_turns(messages, 2) == [messages[0], *messages[5:]]

    def test_tool_exchange_stays_inside_its_turn(self):
        call = ToolCallMessage(content="", tool_calls=[ToolCallInfo("c1", "lookup")])
        messages = [
            *self._turns(2),
            Message("user", "u2"),
            call,
            ToolResultMessage(tool_call_id="c1", content="r"),
            Message("assistant", "a2"),
        ]

        assert limit_history_turns(messages, 1) == [messages[0], *messages[5:]]

    def test_consecutive_user_messages_open_one_turn(self):
        messages = [
            Message("user", "a"),
            Message("user", "b"),
            Message("assistant", "c"),
            Message("user", "d"),
            Message("assistant", "e"),
        ]

        assert limit_history_turns(messages, 2) == messages
        assert limit_history_turns(messages, 1) == messages[3:]
