"""
AgentCore - Command Line Entry Point
====================================

Runs one agent loop invocation from the terminal. It:
1. Loads configuration
2. Builds the provider registry, auth router and tool catalog
3. Runs the loop with callbacks that print progress
4. Cancels cleanly on Ctrl+C

Run with:
    python -m agentcore.main "What time is it?"

Or after installing:
    agentcore "Summarize README.md"
"""

import argparse
import asyncio
import signal
import sys
import uuid
from pathlib import Path

from agentcore.agent import AgentLoop, AgentLoopCallbacks, AgentLoopRequest, LoopDeps
from agentcore.providers import AuthProfileRouter, ProviderRegistry, register_builtin_providers
from agentcore.tools import ToolCatalog
from agentcore.tools.system_tools import register_system_tools
from agentcore.types import AgentLoopResult, AgentToolAction, Message
from agentcore.utils.config import get_config
from agentcore.utils.logger import Logger

main_logger = Logger("Main")

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools when they help, "
    "and answer concisely."
)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agentcore", description="Run one agent loop request.")
    parser.add_argument("prompt", help="User message")
    parser.add_argument("--system", default=DEFAULT_SYSTEM_PROMPT, help="System prompt")
    parser.add_argument("--provider", help="Pin a provider id (e.g. openai, xai, ollama)")
    parser.add_argument("--model", help="Pin a model id")
    parser.add_argument("--no-tools", action="store_true", help="Call the model without tools")
    parser.add_argument("--max-steps", type=int, help="Override the step ceiling")
    parser.add_argument("--timeout", type=float, help="Override the deadline in seconds")
    parser.add_argument("--workspace", type=Path, default=Path.cwd(), help="Root for workspace.read_file")
    return parser.parse_args(argv)


def _print_callbacks() -> AgentLoopCallbacks:
    """Callbacks that render loop progress on the terminal."""

    def on_tool_start(action: AgentToolAction) -> None:
        print(f"  -> {action.name} {action.args}")

    def on_tool_end(action: AgentToolAction) -> None:
        if action.status == "error":
            print(f"  x  {action.name}: {action.error}")
        else:
            print(f"  ok {action.name}")

    def on_tool_user_output(tool_id: str, text: str) -> None:
        print(f"  [{tool_id}] {text}")

    def on_done(result: AgentLoopResult) -> None:
        main_logger.debug("Run finished", {
            "steps": result.steps,
            "tool_calls": result.tool_calls,
            "finish_reason": result.finish_reason,
        })

    return AgentLoopCallbacks(
        on_title=lambda title: print(f"# {title}"),
        on_tool_start=on_tool_start,
        on_tool_end=on_tool_end,
        on_tool_user_output=on_tool_user_output,
        on_done=on_done,
    )


async def main(argv: list[str] | None = None) -> int:
    """
    Main async entry point.

    Returns:
        Process exit code: 0 on an answer, 1 on failure, 130 on abort
    """
    args = _parse_args(argv)

    # 1. Load configuration
    config = get_config()

    # 2. Providers and credentials
    registry = register_builtin_providers(ProviderRegistry())
    router = AuthProfileRouter(registry, config.provider)

    # 3. Tools
    catalog = register_system_tools(ToolCatalog(), args.workspace)

    # 4. The loop
    loop = AgentLoop(LoopDeps(
        auth_router=router,
        providers=registry,
        catalog=catalog,
        proxy_provider_id=config.provider.proxy_provider_id,
        loop_settings=config.loop,
        context_settings=config.context,
    ))

    # Ctrl+C cancels the run instead of killing the process
    abort_event = asyncio.Event()
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            event_loop.add_signal_handler(sig, abort_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    request = AgentLoopRequest(
        session_id=f"cli-{uuid.uuid4()}",
        agent_id="cli",
        messages=[Message("system", args.system), Message("user", args.prompt)],
        abort_event=abort_event,
        max_steps=args.max_steps,
        timeout_seconds=args.timeout,
        no_tools=args.no_tools,
        pinned_provider_id=args.provider,
        pinned_model_id=args.model,
    )

    main_logger.info("Running agent loop", {"provider_id": args.provider or config.provider.provider_id})
    result = await loop.run(request, callbacks=_print_callbacks())

    print()
    print(result.text)

    if result.finish_reason == "abort":
        return 130
    if result.finish_reason == "error":
        return 1
    return 0


def run():
    """
    Synchronous entry point.

    This is called when running with the `agentcore` command.
    """
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
