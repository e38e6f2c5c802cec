"""
Agent System
============

The agent loop is the brain of the engine. It:
1. Resolves candidate provider executions
2. Prepares the conversation for each candidate's context window
3. Calls the model and executes tools as needed
4. Fails over to the next candidate when an attempt fails

This module provides:
- AgentLoop: Runs one request to completion
- AbortScope: Merged cancellation signal and deadline
- ToolExecutor: Runs the tool calls of one step
- build_tool_set / ToolActionTracker: Catalog tools bridged to the model
"""

from agentcore.agent.cancellation import AbortScope
from agentcore.agent.core import AgentLoop, AgentLoopCallbacks, AgentLoopRequest, LoopDeps
from agentcore.agent.tool_bridge import ToolActionTracker, ToolBridgeCallbacks, build_tool_set
from agentcore.agent.tools_executor import ToolExecutor

__all__ = [
    "AgentLoop",
    "AgentLoopCallbacks",
    "AgentLoopRequest",
    "LoopDeps",
    "AbortScope",
    "ToolExecutor",
    "ToolActionTracker",
    "ToolBridgeCallbacks",
    "build_tool_set",
]
