import asyncio

import pytest

from agentcore.agent.tool_bridge import (
    NO_OUTPUT_TEXT,
    ToolActionTracker,
    ToolBridgeCallbacks,
    build_tool_set,
    format_tool_result,
)
from agentcore.agent.tools_executor import ToolExecutor
from agentcore.context.pipeline import ContextPipelineConfig
from agentcore.tools import (
    ToolCallContext,
    ToolCatalog,
    ToolDefinition,
    ToolResult,
    dual_result,
    silent_result,
    user_result,
)
from agentcore.types import ToolCallInfo

SCHEMA = {"type": "object", "properties": {"text": {"type": "string"}}}


def _tool(tool_id, execute, parameters=SCHEMA, title=None):
    return ToolDefinition(id=tool_id, description=f"{tool_id} tool", parameters=parameters, execute=execute, title=title)


def _returning(result):
    async def execute(args, context):
        return result
    return execute


async def _echo(args, context):
    return ToolResult(ok=True, output=args.get("text"))


@pytest.fixture
def catalog():
    catalog = ToolCatalog()
    catalog.register(_tool("demo.echo", _echo, title="Echo"))
    catalog.register(_tool("demo.no_schema", _echo, parameters=None))
    catalog.register(_tool("demo.secret", _echo))
    return catalog


class TestBuildToolSet:

    def test_sanitizes_names_and_skips_tools_without_schema(self, catalog):
        tools = build_tool_set(catalog, ToolCallContext(session_id="s1"))

        assert set(tools) == {"demo_echo", "demo_secret"}
        assert tools["demo_echo"].tool_id == "demo.echo"
        assert tools["demo_echo"].to_openai_function()["function"]["name"] == "demo_echo"

    def test_allowlist_and_denylist(self, catalog):
        context = ToolCallContext()

        assert set(build_tool_set(catalog, context, allowlist=["demo.echo"])) == {"demo_echo"}
        assert set(build_tool_set(catalog, context, denylist=["demo.secret"])) == {"demo_echo"}


class TestBridgedTool:

    @pytest.mark.asyncio
    async def test_dual_track_output(self):
        catalog = ToolCatalog()
        catalog.register(_tool("demo.read", _returning(dual_result("full text for the model", "Read 1 file"))))
        user_output = []
        tools = build_tool_set(
            catalog,
            ToolCallContext(),
            ToolBridgeCallbacks(on_tool_user_output=lambda tool_id, text: user_output.append((tool_id, text))),
        )

        text = await tools["demo_read"]({})

        assert text == "full text for the model"
        assert user_output == [("demo.read", "Read 1 file")]

    @pytest.mark.asyncio
    async def test_silent_result_skips_user_channel(self):
        catalog = ToolCatalog()
        catalog.register(_tool("demo.quiet", _returning(silent_result("only for the model"))))
        user_output = []
        tools = build_tool_set(
            catalog,
            ToolCallContext(),
            ToolBridgeCallbacks(on_tool_user_output=lambda tool_id, text: user_output.append(text)),
        )

        assert await tools["demo_quiet"]({}) == "only for the model"
        assert user_output == []

    @pytest.mark.asyncio
    async def test_user_result_reaches_both_channels(self):
        catalog = ToolCatalog()
        catalog.register(_tool("demo.note", _returning(user_result("Deployed"))))
        user_output = []
        tools = build_tool_set(
            catalog,
            ToolCallContext(),
            ToolBridgeCallbacks(on_tool_user_output=lambda tool_id, text: user_output.append(text)),
        )

        assert await tools["demo_note"]({}) == "Deployed"
        assert user_output == ["Deployed"]

    @pytest.mark.asyncio
    async def test_callbacks_receive_canonical_id_and_meta(self, catalog):
        events = []
        tools = build_tool_set(
            catalog,
            ToolCallContext(),
            ToolBridgeCallbacks(
                on_tool_start=lambda tool_id, args, meta: events.append(("start", tool_id, meta.name)),
                on_tool_end=lambda tool_id, args, result, meta: events.append(("end", tool_id, result.output)),
            ),
        )

        await tools["demo_echo"]({"text": "hi"})

        assert events == [("start", "demo.echo", "Echo"), ("end", "demo.echo", "hi")]


class TestFormatToolResult:

    def test_error_with_hint_and_partial_output(self):
        result = ToolResult.failure("BUILD_FAILED", "Build failed", hint="Fix the import", output="x" * 10_000)

        text = format_tool_result(result)

        assert text.startswith("ERROR [BUILD_FAILED]: Build failed (hint: Fix the import)")
        assert "Tool output:" in text
        assert len(text) < 4200

    def test_no_output(self):
        assert format_tool_result(ToolResult(ok=True)) == NO_OUTPUT_TEXT

    def test_structured_output_is_json(self):
        assert format_tool_result(ToolResult(ok=True, output={"a": 1})) == '{"a": 1}'

    def test_long_output_is_truncated_to_budget(self):
        config = ContextPipelineConfig(context_limit=5000, reserve_tokens=1000)

        text = format_tool_result(ToolResult(ok=True, output="z" * 50_000), config)

        assert len(text) <= 4000
        assert "truncated" in text


class TestToolActionTracker:

    def test_fifo_matching_for_same_tool(self):
        tracker = ToolActionTracker()
        started = [tracker.start("demo.echo", {"n": n}) for n in range(3)]

        finished = [
            tracker.finish("demo.echo", {"n": n}, ToolResult(ok=True, output=n))
            for n in range(3)
        ]

        assert [a.id for a in finished] == [a.id for a in started]
        assert [a.status for a in finished] == ["done", "done", "done"]
        extra = tracker.finish("demo.echo", {}, ToolResult(ok=True))
        assert extra.id not in {a.id for a in started}

    def test_error_result_marks_action(self):
        tracker = ToolActionTracker()
        action = tracker.start("demo.echo", {})

        finished = tracker.finish("demo.echo", {}, ToolResult.failure("X", "went wrong"))

        assert finished is action
        assert action.status == "error"
        assert action.error == "went wrong"

    @pytest.mark.asyncio
    async def test_sequential_bridge_calls_pair_start_and_end(self, catalog):
        tracker = ToolActionTracker()
        start_ids, end_ids = [], []

        def on_start(tool_id, args, meta):
            start_ids.append(tracker.start(tool_id, args, meta).id)

        def on_end(tool_id, args, result, meta):
            end_ids.append(tracker.finish(tool_id, args, result, meta).id)

        tools = build_tool_set(catalog, ToolCallContext(), ToolBridgeCallbacks(on_tool_start=on_start, on_tool_end=on_end))
        for n in range(4):
            await tools["demo_echo"]({"text": str(n)})

        assert end_ids == start_ids
        assert len(set(start_ids)) == 4


class TestToolExecutor:

    @pytest.mark.asyncio
    async def test_results_keep_request_order(self, catalog):
        executor = ToolExecutor(build_tool_set(catalog, ToolCallContext()))

        results = await executor.execute_all([
            ToolCallInfo("c1", "demo_echo", {"text": "first"}),
            ToolCallInfo("c2", "demo_echo", {"text": "second"}),
        ])

        assert [(r.tool_call_id, r.content) for r in results] == [("c1", "first"), ("c2", "second")]

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_result(self, catalog):
        executor = ToolExecutor(build_tool_set(catalog, ToolCallContext()))

        result = await executor.execute_one(ToolCallInfo("c1", "demo_missing"))

        assert result.content.startswith("ERROR [TOOL_NOT_FOUND]")
        assert "demo_echo" in result.content

    @pytest.mark.asyncio
    async def test_invalid_arguments_become_error_result(self, catalog):
        executor = ToolExecutor(build_tool_set(catalog, ToolCallContext()))

        result = await executor.execute_one(ToolCallInfo("c1", "demo_echo", invalid_arguments="{not json"))

        assert result.content.startswith("ERROR [INVALID_ARGUMENTS]")

    @pytest.mark.asyncio
    async def test_runner_wraps_each_call(self, catalog):
        wrapped = []

        async def runner(awaitable):
            wrapped.append(1)
            return await asyncio.ensure_future(awaitable)

        executor = ToolExecutor(build_tool_set(catalog, ToolCallContext()), runner=runner)
        await executor.execute_all([ToolCallInfo("c1", "demo_echo", {"text": "a"})])

        assert wrapped == [1]
