"""
Cancellation
============

One AbortScope governs one agent loop invocation. It merges the caller's
abort event with the loop's own deadline; whichever fires first wins and
the reason ("cancelled" or "timeout") is kept.

Every model call and tool call is awaited through scope.run(), which races
the work against the scope. If the scope fires first the work is cancelled
and AgentAborted is raised, so cancellation preempts a step in flight.

Usage:
    async with AbortScope(request.abort_event, timeout_seconds=600) as scope:
        result = await scope.run(model.complete(messages, tools))
"""

import asyncio
from typing import Awaitable, TypeVar

from agentcore.errors import AgentAborted

T = TypeVar("T")


class AbortScope:
    """Merged cancellation signal plus deadline for one invocation."""

    def __init__(self, external: asyncio.Event | None = None, timeout_seconds: float | None = None):
        self._external = external
        self._timeout = timeout_seconds
        self._event = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None
        self._watcher: asyncio.Task | None = None
        self.reason: str | None = None

    @property
    def event(self) -> asyncio.Event:
        """Set once the scope has fired. Hand this to tools that poll for cancellation."""
        return self._event

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "cancelled") -> None:
        """Fire the scope. Only the first reason is kept."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def _watch_external(self) -> None:
        await self._external.wait()
        self.abort("cancelled")

    async def __aenter__(self) -> "AbortScope":
        loop = asyncio.get_running_loop()
        if self._timeout is not None and self._timeout > 0:
            self._timer = loop.call_later(self._timeout, self.abort, "timeout")
        if self._external is not None:
            if self._external.is_set():
                self.abort("cancelled")
            else:
                self._watcher = asyncio.create_task(self._watch_external())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._timer is not None:
            self._timer.cancel()
        if self._watcher is not None:
            self._watcher.cancel()
            await asyncio.gather(self._watcher, return_exceptions=True)

    def check(self) -> None:
        """Raise AgentAborted if the scope has fired."""
        if self.aborted:
            raise AgentAborted(self.reason or "cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await work unless the scope fires first.

        Raises:
            AgentAborted: The scope fired before the work finished; the work
                has been cancelled
        """
        if self.aborted:
            # Close a never-started coroutine so it does not warn
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.check()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()

        # Collect the cancelled work so its outcome is not reported as unretrieved
        await asyncio.gather(work, return_exceptions=True)
        raise AgentAborted(self.reason or "cancelled")
