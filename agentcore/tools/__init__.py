"""
Tool Catalog
============

Tools are functions the agent can call. Each tool has an id, a description,
a JSON Schema for its arguments and an async execute function.

How Tools Work:
1. The tool bridge exposes catalog tools to the model
2. The model decides which tool(s) to call
3. The catalog runs the tool with a timeout; failures become results
4. The result goes back to the model (and, separately, to the user)

Results have two channels. `output` (or `for_llm` when set) is what the
model sees; `for_user` is shown to the person immediately and never enters
the conversation. `silent` suppresses the user channel.

This module provides:
- ToolDefinition for defining tools
- ToolResult / ToolError for standardized responses
- ToolCallContext passed to every execution
- ToolCatalog for managing and running tools
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from agentcore.utils.logger import Logger

logger = Logger("Tools")

DEFAULT_TOOL_TIMEOUT_SECONDS = 120.0


@dataclass(frozen=True)
class ToolError:
    """
    Structured tool failure.

    Attributes:
        code: Machine-readable code (e.g. TOOL_NOT_FOUND, TOOL_TIMEOUT)
        message: What went wrong
        hint: Optional suggestion for the model
    """
    code: str
    message: str
    hint: str | None = None


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        ok: Whether the tool executed successfully
        output: The result data (varies by tool)
        error: Populated when ok is False
        for_llm: When set, the model sees this instead of output
        for_user: Side-channel content shown to the user, never to the model
        silent: Suppress the user channel for this result
        metadata: Free-form diagnostics
    """
    ok: bool
    output: Any = None
    error: ToolError | None = None
    for_llm: Any = None
    for_user: Any = None
    silent: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, code: str, message: str, hint: str | None = None, output: Any = None) -> "ToolResult":
        return cls(ok=False, output=output, error=ToolError(code=code, message=message, hint=hint))


def silent_result(for_llm: Any) -> ToolResult:
    """Result for the model only."""
    return ToolResult(ok=True, for_llm=for_llm, silent=True)


def user_result(content: Any) -> ToolResult:
    """Result shown to the user; the model sees the same content."""
    return ToolResult(ok=True, output=content, for_user=content)


def dual_result(for_llm: Any, for_user: Any) -> ToolResult:
    """Different content for the model and for the user."""
    return ToolResult(ok=True, for_llm=for_llm, for_user=for_user)


@dataclass(frozen=True)
class ToolCallContext:
    """
    Ambient information for one tool execution.

    Attributes:
        session_id: Conversation session
        agent_id: Agent running the loop
        request_id: Correlates logs for one model step
        timeout_seconds: Overrides the tool's own timeout
        abort_event: Set when the whole invocation is cancelled
    """
    session_id: str = ""
    agent_id: str = ""
    request_id: str | None = None
    timeout_seconds: float | None = None
    abort_event: asyncio.Event | None = None


ToolExecute = Callable[[dict[str, Any], ToolCallContext], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """
    Definition of a tool.

    Attributes:
        id: Unique identifier, may contain dots (e.g. "workspace.read_file")
        description: What the tool does (shown to the model)
        parameters: JSON Schema for the arguments; tools without one are not
            exposed to the model
        execute: Async function that runs the tool
        title: Display name for UIs
        timeout_seconds: Per-call timeout

    Example:
        async def read_file(args: dict, context: ToolCallContext) -> ToolResult:
            return ToolResult(ok=True, output=Path(args["path"]).read_text())

        tool = ToolDefinition(
            id="workspace.read_file",
            description="Read a text file from the workspace",
            parameters={
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"]
            },
            execute=read_file
        )
    """
    id: str
    description: str
    parameters: dict[str, Any] | None
    execute: ToolExecute
    title: str | None = None
    timeout_seconds: float | None = None


class ToolCatalog:
    """
    Central registry for all available tools.

    The catalog never lets a tool exception escape: run() always returns a
    ToolResult, converting exceptions and timeouts into failures.

    Example:
        catalog = ToolCatalog()
        catalog.register(my_tool)

        result = await catalog.run("my.tool", {"x": 1}, ToolCallContext(session_id="s1"))
    """

    def __init__(self):
        """Initialize an empty catalog."""
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool.

        Args:
            tool: The tool to register

        Raises:
            ValueError: If a tool with this id already exists
        """
        if tool.id in self._tools:
            raise ValueError(f"Tool '{tool.id}' is already registered")

        self._tools[tool.id] = tool
        logger.debug(f"Registered tool: {tool.id}")

    def get(self, tool_id: str) -> ToolDefinition | None:
        """
        Get a tool by id.

        Args:
            tool_id: The tool id

        Returns:
            The tool, or None if not found
        """
        return self._tools.get(tool_id)

    def list_ids(self) -> list[str]:
        """Get list of all tool ids."""
        return list(self._tools.keys())

    def list(self) -> list[ToolDefinition]:
        """Get all registered tools in registration order."""
        return list(self._tools.values())

    async def run(
        self,
        tool_id: str,
        args: dict[str, Any],
        context: ToolCallContext | None = None
    ) -> ToolResult:
        """
        Execute a tool by id.

        Args:
            tool_id: The tool id
            args: Parameters to pass to the tool
            context: Call context (session, timeout, abort event)

        Returns:
            ToolResult from the tool, or a failure result
        """
        context = context or ToolCallContext()
        tool = self.get(tool_id)
        if not tool:
            return ToolResult.failure("TOOL_NOT_FOUND", f"Tool not found: {tool_id}")

        timeout = context.timeout_seconds or tool.timeout_seconds or DEFAULT_TOOL_TIMEOUT_SECONDS

        try:
            logger.debug(f"Executing tool: {tool_id}")
            return await asyncio.wait_for(tool.execute(args, context), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tool timed out: {tool_id}", {"timeout_seconds": timeout})
            return ToolResult.failure(
                "TOOL_TIMEOUT",
                f"Tool {tool_id} timed out after {timeout:g}s",
                hint="Try a narrower request",
            )
        except Exception as e:
            logger.error(f"Tool execution failed: {tool_id}", e)
            return ToolResult.failure("TOOL_EXECUTE_ERROR", f"Tool {tool_id} threw: {e}")


__all__ = [
    "ToolCallContext",
    "ToolCatalog",
    "ToolDefinition",
    "ToolError",
    "ToolResult",
    "dual_result",
    "silent_result",
    "user_result",
]
