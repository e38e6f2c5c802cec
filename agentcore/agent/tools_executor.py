"""
Tool Executor
=============

Runs the tool calls the model requested in one step.

The executor:
1. Looks up each call in the bridged tool set
2. Runs the tool (through the caller's runner, so cancellation applies)
3. Wraps the text in a ToolResultMessage for the next model call
4. Turns unknown tools and unparseable arguments into error results

Tool Execution Loop:
    1. Model responds with tool calls
    2. Executor runs each call, one at a time, in request order
    3. Results are appended to the conversation
    4. Model continues with the results (may call more tools)
    5. Repeat until the model answers without tool calls

Calls never overlap, which is what keeps the FIFO pairing in
ToolActionTracker exact.
"""

from typing import Awaitable, Callable

from agentcore.agent.tool_bridge import BridgedTool, format_tool_error
from agentcore.types import ToolCallInfo, ToolResultMessage
from agentcore.utils.logger import Logger

logger = Logger("ToolExecutor")

Runner = Callable[[Awaitable[str]], Awaitable[str]]


async def _direct(awaitable: Awaitable[str]) -> str:
    return await awaitable


class ToolExecutor:
    """
    Executes tools called by the model.

    Example:
        executor = ToolExecutor(tools, runner=scope.run)
        results = await executor.execute_all(step.tool_calls)

        messages.append(ToolCallMessage(content=step.text, tool_calls=step.tool_calls))
        messages.extend(results)
    """

    def __init__(self, tools: dict[str, BridgedTool], runner: Runner | None = None):
        """
        Initialize the tool executor.

        Args:
            tools: Sanitized name -> BridgedTool, from build_tool_set()
            runner: Awaits each tool call; AbortScope.run makes calls cancellable
        """
        self.tools = tools
        self._runner = runner or _direct

    async def execute_one(self, tool_call: ToolCallInfo) -> ToolResultMessage:
        """
        Execute a single tool call.

        Args:
            tool_call: The tool call to execute

        Returns:
            ToolResultMessage answering the call id
        """
        if tool_call.invalid_arguments is not None:
            logger.warning(f"Tool {tool_call.name} called with invalid arguments")
            content = format_tool_error(
                "INVALID_ARGUMENTS",
                f"Arguments for {tool_call.name} are not a JSON object",
                hint="Call the tool again with valid JSON arguments",
            )
            return ToolResultMessage(tool_call_id=tool_call.id, content=content)

        tool = self.tools.get(tool_call.name)
        if tool is None:
            logger.warning(f"Model called unknown tool: {tool_call.name}")
            content = format_tool_error(
                "TOOL_NOT_FOUND",
                f"Tool not found: {tool_call.name}",
                hint=f"Available tools: {', '.join(self.tools) or 'none'}",
            )
            return ToolResultMessage(tool_call_id=tool_call.id, content=content)

        logger.info(f"Executing tool: {tool.tool_id}")
        content = await self._runner(tool(tool_call.args))
        return ToolResultMessage(tool_call_id=tool_call.id, content=content)

    async def execute_all(self, tool_calls: list[ToolCallInfo]) -> list[ToolResultMessage]:
        """
        Execute tool calls sequentially, preserving request order.

        Args:
            tool_calls: Calls from one model step

        Returns:
            One ToolResultMessage per call, in the same order
        """
        results = []

        for tool_call in tool_calls:
            result = await self.execute_one(tool_call)
            results.append(result)

        return results
