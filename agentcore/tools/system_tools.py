"""
System Tools
============

A small built-in tool set for the CLI:
- system.time: current date and time
- workspace.read_file: read a text file under the workspace root

File access is confined to the workspace root; paths that resolve outside
it are refused.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from agentcore.tools import ToolCallContext, ToolCatalog, ToolDefinition, ToolResult, dual_result
from agentcore.utils.logger import Logger

logger = Logger("SystemTools")

MAX_READ_BYTES = 512 * 1024


# ==============================================================================
# Tool: Current Time
# ==============================================================================

async def _current_time(params: dict, context: ToolCallContext) -> ToolResult:
    """Report the current time in UTC and in the local timezone."""
    now = datetime.now(timezone.utc)
    local = now.astimezone()
    return ToolResult(ok=True, output={
        "utc": now.isoformat(timespec="seconds"),
        "local": local.isoformat(timespec="seconds"),
        "timezone": local.tzname(),
    })


time_tool = ToolDefinition(
    id="system.time",
    title="Current time",
    description="Get the current date and time (UTC and local).",
    parameters={"type": "object", "properties": {}},
    execute=_current_time,
    timeout_seconds=5.0,
)


# ==============================================================================
# Tool: Read File
# ==============================================================================

def _make_read_file(root: Path):
    root = root.resolve()

    async def _read_file(params: dict, context: ToolCallContext) -> ToolResult:
        """
        Read a text file relative to the workspace root.

        Large files are returned whole to the bridge, which truncates them to
        the context budget; the user only sees a one-line note.
        """
        raw_path = params.get("path")
        if not raw_path:
            return ToolResult.failure("INVALID_ARGUMENTS", "path is required")

        target = (root / raw_path).resolve()
        if not target.is_relative_to(root):
            return ToolResult.failure(
                "PATH_OUTSIDE_WORKSPACE",
                f"{raw_path} is outside the workspace",
                hint=f"Use a path relative to {root}",
            )
        if not target.is_file():
            return ToolResult.failure("FILE_NOT_FOUND", f"No such file: {raw_path}")

        size = target.stat().st_size
        if size > MAX_READ_BYTES:
            return ToolResult.failure(
                "FILE_TOO_LARGE",
                f"{raw_path} is {size} bytes (limit {MAX_READ_BYTES})",
            )

        text = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        logger.debug(f"Read {raw_path} ({size} bytes)")
        return dual_result(text, f"Read {raw_path} ({size} bytes)")

    return _read_file


def read_file_tool(root: Path) -> ToolDefinition:
    """Build the workspace.read_file tool for a workspace root."""
    return ToolDefinition(
        id="workspace.read_file",
        title="Read file",
        description="Read a UTF-8 text file from the workspace. Paths are relative to the workspace root.",
        parameters={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path relative to the workspace root",
                },
            },
            "required": ["path"],
        },
        execute=_make_read_file(root),
        timeout_seconds=10.0,
    )


# ==============================================================================
# Register all system tools
# ==============================================================================

def register_system_tools(catalog: ToolCatalog, workspace_root: Path | None = None) -> ToolCatalog:
    """Register the system tools with a catalog."""
    catalog.register(time_tool)
    catalog.register(read_file_tool(workspace_root or Path.cwd()))
    logger.info("Registered system tools")
    return catalog
