"""
Tool Call Bridge
================

Turns catalog tools into callables the model can invoke.

Each BridgedTool:
1. Fires on_tool_start
2. Runs the tool through the catalog (which never raises)
3. Fires on_tool_end with the full ToolResult
4. Fires on_tool_user_output for non-silent for_user content
5. Returns the text the model should see

Names are sanitized for OpenAI-compatible APIs (dots become underscores);
callbacks always receive the canonical tool id.

ToolActionTracker turns start/end events into AgentToolAction records. It
matches an end to its start with a per-tool-id FIFO queue, which is exact
while calls run one at a time (as the agent loop runs them). Under truly
parallel dispatch of the same tool the pairing may be wrong; a call-site
correlation id would be needed then.
"""

import json
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from agentcore.context.pipeline import ContextPipelineConfig
from agentcore.context.truncation import truncate_tool_result
from agentcore.tools import ToolCallContext, ToolCatalog, ToolDefinition, ToolResult
from agentcore.types import AgentToolAction
from agentcore.utils.logger import Logger

logger = Logger("ToolBridge")

NO_OUTPUT_TEXT = "OK (no output)"
PARTIAL_OUTPUT_LIMIT = 4000


@dataclass(frozen=True)
class ToolBridgeToolMeta:
    """Display metadata passed to lifecycle callbacks."""
    name: str
    description: str


@dataclass
class ToolBridgeCallbacks:
    """
    Lifecycle hooks. All optional, all called synchronously.

    Attributes:
        on_tool_start: (tool_id, args, meta)
        on_tool_end: (tool_id, args, result, meta)
        on_tool_user_output: (tool_id, text)
    """
    on_tool_start: Callable[[str, dict[str, Any], ToolBridgeToolMeta], None] | None = None
    on_tool_end: Callable[[str, dict[str, Any], ToolResult, ToolBridgeToolMeta], None] | None = None
    on_tool_user_output: Callable[[str, str], None] | None = None


def sanitize_tool_name(tool_id: str) -> str:
    """OpenAI function names must match ^[a-zA-Z0-9_-]+$; dots are replaced."""
    return tool_id.replace(".", "_")


def serialize_payload(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def format_tool_error(code: str, message: str, hint: str | None = None) -> str:
    """Model-facing error line: ERROR [CODE]: message (hint: ...)."""
    hint_text = f" (hint: {hint})" if hint else ""
    return f"ERROR [{code}]: {message}{hint_text}"


def format_tool_result(result: ToolResult, context_config: ContextPipelineConfig | None = None) -> str:
    """
    Render a ToolResult as the text the model sees.

    Failures keep up to PARTIAL_OUTPUT_LIMIT characters of output so the
    model can decide what to do next. Successes use for_llm when set,
    otherwise output, truncated to the context budget when a config is given.
    """
    if not result.ok:
        error = result.error
        text = format_tool_error(
            error.code if error else "UNKNOWN",
            error.message if error else "Unknown tool error",
            error.hint if error else None,
        )
        if result.output is not None:
            text += f"\n\nTool output:\n{serialize_payload(result.output)[:PARTIAL_OUTPUT_LIMIT]}"
        return text

    payload = result.for_llm if result.for_llm is not None else result.output
    if payload is None:
        return NO_OUTPUT_TEXT

    raw = serialize_payload(payload)
    if context_config is not None:
        return truncate_tool_result(raw, context_config)
    return raw


class BridgedTool:
    """
    One catalog tool wrapped for the model.

    Example:
        tool = tools["workspace_read_file"]
        text = await tool({"path": "README.md"})
    """

    def __init__(
        self,
        definition: ToolDefinition,
        catalog: ToolCatalog,
        context: ToolCallContext,
        callbacks: ToolBridgeCallbacks,
        context_config: ContextPipelineConfig | None = None
    ):
        self.tool_id = definition.id
        self.name = sanitize_tool_name(definition.id)
        self.description = definition.description
        self.parameters = definition.parameters
        self.meta = ToolBridgeToolMeta(name=definition.title or definition.id, description=definition.description)
        self._catalog = catalog
        self._context = context
        self._callbacks = callbacks
        self._context_config = context_config

    def to_openai_function(self) -> dict:
        """
        Convert to OpenAI function calling format.

        Returns:
            Dict in the format expected by OpenAI's API
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def __call__(self, args: dict[str, Any]) -> str:
        callbacks = self._callbacks
        if callbacks.on_tool_start:
            callbacks.on_tool_start(self.tool_id, args, self.meta)

        result = await self._catalog.run(self.tool_id, args, self._context)

        if callbacks.on_tool_end:
            callbacks.on_tool_end(self.tool_id, args, result, self.meta)

        if not result.silent and result.for_user is not None and callbacks.on_tool_user_output:
            callbacks.on_tool_user_output(self.tool_id, serialize_payload(result.for_user))

        text = format_tool_result(result, self._context_config)
        logger.debug(f"Tool {self.tool_id} returned {len(text)} chars", {"ok": result.ok})
        return text


def build_tool_set(
    catalog: ToolCatalog,
    context: ToolCallContext,
    callbacks: ToolBridgeCallbacks | None = None,
    *,
    context_config: ContextPipelineConfig | None = None,
    allowlist: list[str] | None = None,
    denylist: list[str] | None = None
) -> dict[str, BridgedTool]:
    """
    Build the model-facing tool map.

    Args:
        catalog: Source of tool definitions
        context: Passed to every tool execution
        callbacks: Lifecycle hooks
        context_config: Enables truncation of long results to the budget
        allowlist: When given, only these tool ids are exposed
        denylist: Tool ids never exposed

    Returns:
        Sanitized name -> BridgedTool. Tools without a parameter schema are
        skipped.
    """
    callbacks = callbacks or ToolBridgeCallbacks()
    tools: dict[str, BridgedTool] = {}
    skipped: list[str] = []

    for definition in catalog.list():
        if definition.parameters is None:
            skipped.append(definition.id)
            continue
        if allowlist is not None and definition.id not in allowlist:
            continue
        if denylist and definition.id in denylist:
            continue

        bridged = BridgedTool(definition, catalog, context, callbacks, context_config)
        tools[bridged.name] = bridged

    logger.debug(f"Built {len(tools)} tools, skipped {len(skipped)} without parameters", {
        "tools": list(tools),
        "skipped": skipped,
        "session_id": context.session_id,
    })
    return tools


class ToolActionTracker:
    """
    Pairs tool start/end events into AgentToolAction records.

    start() creates a running action and queues it under its tool id;
    finish() takes the oldest queued action for that tool id and moves it
    to "done" or "error".
    """

    def __init__(self):
        self._active: dict[str, deque[AgentToolAction]] = {}

    def start(self, tool_id: str, args: dict[str, Any], meta: ToolBridgeToolMeta | None = None) -> AgentToolAction:
        action = AgentToolAction(
            id=str(uuid.uuid4()),
            name=meta.name if meta else tool_id,
            description=meta.description if meta else "",
            tool_id=tool_id,
            args=args,
        )
        self._active.setdefault(tool_id, deque()).append(action)
        return action

    def finish(
        self,
        tool_id: str,
        args: dict[str, Any],
        result: ToolResult,
        meta: ToolBridgeToolMeta | None = None
    ) -> AgentToolAction:
        queue = self._active.get(tool_id)
        if queue:
            action = queue.popleft()
            if not queue:
                del self._active[tool_id]
        else:
            logger.debug(f"Tool end without a matching start: {tool_id}")
            action = AgentToolAction(
                id=str(uuid.uuid4()),
                name=meta.name if meta else tool_id,
                description=meta.description if meta else "",
                tool_id=tool_id,
                args=args,
            )

        if result.ok:
            action.status = "done"
            action.result = serialize_payload(result.output) if result.output is not None else None
        else:
            action.status = "error"
            action.error = result.error.message if result.error else "Unknown tool error"
        return action
