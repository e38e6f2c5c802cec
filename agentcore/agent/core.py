"""
Agent Loop
==========

Drives one conversational request: model call -> tool execution -> model
call, failing over across candidate executions.

For each candidate, in resolution order:

    Selecting
         │   skip providers rate-limited earlier in this run
         ▼
    Guarding
         │   context window below the hard minimum -> skip
         │   below the recommended size -> warn, continue
         ▼
    Prepare context (pipeline, this provider's budget)
         │
         ▼
    ┌── Step: call the model ──────────────────┐
    │        │                                 │
    │   Tool calls?                            │
    │    Yes: run tools, append results ───────┘
    │    No:  final answer
    ▼
    Finished (result)  |  Failed (record error, next candidate)

One AbortScope covers the whole invocation. Cancellation or the deadline
preempts whatever is in flight and ends the run as "abort" without trying
further candidates.

Every other failure stays inside the run: the caller always gets an
AgentLoopResult with prose, never an exception.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from agentcore.agent.cancellation import AbortScope
from agentcore.agent.tool_bridge import (
    BridgedTool,
    ToolActionTracker,
    ToolBridgeCallbacks,
    ToolBridgeToolMeta,
    build_tool_set,
)
from agentcore.agent.tools_executor import ToolExecutor
from agentcore.context.overflow import with_overflow_recovery
from agentcore.context.pipeline import ContextPipelineConfig, prepare_context
from agentcore.errors import (
    ABORTED_TEXT,
    CONTEXT_OVERFLOW_TEXT,
    FALLBACK_TEXT,
    AgentAborted,
    describe_error,
    is_abort_error,
    is_context_overflow_error,
    is_rate_limit_error,
)
from agentcore.providers.contracts import (
    AuthRouter,
    FailureReport,
    ProviderDefinition,
    ProviderLookup,
)
from agentcore.providers.resolution import (
    DEFAULT_PROXY_PROVIDER,
    ProxyLocator,
    ResolutionDeps,
    ResolveRequest,
    no_proxy,
    resolve_executions,
)
from agentcore.tools import ToolCallContext, ToolCatalog, ToolResult
from agentcore.types import (
    AgentLoopResult,
    AgentToolAction,
    CompletionExecution,
    Message,
    RichMessage,
    StepResult,
    ToolCallMessage,
)
from agentcore.utils.config import ContextSettings, LoopSettings
from agentcore.utils.logger import Logger, StructuredLogger

DEFAULT_CONTEXT_TOKENS = 128_000
CONTEXT_WINDOW_HARD_MIN_TOKENS = 16_000
CONTEXT_WINDOW_WARN_BELOW_TOKENS = 32_000

TITLE_MAX_CHARS = 100
SUMMARY_THRESHOLD_CHARS = 280
SUMMARY_KEEP_CHARS = 260
NO_RESPONSE_TEXT = "(no response)"


@dataclass
class AgentLoopCallbacks:
    """
    Lifecycle callbacks, fired synchronously in call order.

    Attributes:
        on_title: (title) once per run, from the first non-empty text
        on_thoughts: (text, step) for every step that produced text
        on_tool_start: (action) when a tool begins
        on_tool_end: (action) when it finishes, same action id
        on_tool_user_output: (tool_id, text) side-channel tool output
        on_summary: (summary) compact form of the answer
        on_done: (result) final result, whatever the outcome
    """
    on_title: Callable[[str], None] | None = None
    on_thoughts: Callable[[str, int], None] | None = None
    on_tool_start: Callable[[AgentToolAction], None] | None = None
    on_tool_end: Callable[[AgentToolAction], None] | None = None
    on_tool_user_output: Callable[[str, str], None] | None = None
    on_summary: Callable[[str], None] | None = None
    on_done: Callable[[AgentLoopResult], None] | None = None


@dataclass
class AgentLoopRequest:
    """
    One invocation.

    Attributes:
        session_id: Conversation session (router stickiness and cooldowns)
        agent_id: Agent identity passed to the router and tools
        messages: Plain messages; the first may be the system prompt
        abort_event: Caller cancellation, merged with the loop deadline
        max_tokens: Completion budget override
        max_steps: Step ceiling override
        timeout_seconds: Deadline override
        no_tools: Call the model without tools
        pinned_provider_id: Restrict resolution to one provider
        pinned_model_id: Force a model id
        tool_allowlist: Only these tool ids are exposed
        tool_denylist: These tool ids are never exposed
    """
    session_id: str
    agent_id: str
    messages: list[Message]
    abort_event: asyncio.Event | None = None
    max_tokens: int | None = None
    max_steps: int | None = None
    timeout_seconds: float | None = None
    no_tools: bool = False
    pinned_provider_id: str | None = None
    pinned_model_id: str | None = None
    tool_allowlist: list[str] | None = None
    tool_denylist: list[str] | None = None


@dataclass
class LoopDeps:
    """
    Collaborators shared by every invocation.

    The router and registry may be shared across concurrent runs; nothing
    per-run is stored here.
    """
    auth_router: AuthRouter
    providers: ProviderLookup
    catalog: ToolCatalog | None = None
    resolve_proxy: ProxyLocator = no_proxy
    proxy_provider_id: str = DEFAULT_PROXY_PROVIDER
    loop_settings: LoopSettings = field(default_factory=LoopSettings)
    context_settings: ContextSettings = field(default_factory=ContextSettings)
    logger: StructuredLogger = field(default_factory=lambda: Logger("AgentLoop"))


@dataclass
class _RunState:
    """Per-invocation accumulators. Never shared between runs."""
    tool_calls: int = 0
    rate_limited: set[str] = field(default_factory=set)
    last_error: str | None = None
    title_set: bool = False


def summarize(text: str) -> str:
    """Compact form of an answer for downstream consumers."""
    if len(text) > SUMMARY_THRESHOLD_CHARS:
        return f"{text.strip()[:SUMMARY_KEEP_CHARS]}…"
    return text.strip()


def derive_title(text: str) -> str | None:
    """First line of text, at most TITLE_MAX_CHARS; None if it is blank."""
    first_line = text.split("\n", 1)[0].strip()
    return first_line[:TITLE_MAX_CHARS] or None


class AgentLoop:
    """
    The multi-step, multi-provider agent loop.

    Example:
        loop = AgentLoop(LoopDeps(auth_router=router, providers=registry, catalog=catalog))

        result = await loop.run(AgentLoopRequest(
            session_id="s1",
            agent_id="default",
            messages=[Message("system", "You are helpful"), Message("user", "What's 2+2?")],
        ))

        print(result.text, result.finish_reason)
    """

    def __init__(self, deps: LoopDeps):
        """
        Initialize the loop.

        Args:
            deps: Router, registry, tool catalog and settings
        """
        self.deps = deps
        self.logger = deps.logger

    async def run(
        self,
        request: AgentLoopRequest,
        tools: ToolCatalog | None = None,
        callbacks: AgentLoopCallbacks | None = None
    ) -> AgentLoopResult:
        """
        Run one request to completion.

        Args:
            request: Messages, identity, pins and overrides
            tools: Tool catalog for this run (defaults to deps.catalog)
            callbacks: Lifecycle callbacks

        Returns:
            AgentLoopResult. finish_reason is the provider's on success,
            "error" when every candidate failed, "abort" on cancellation.
        """
        callbacks = callbacks or AgentLoopCallbacks()
        catalog = tools if tools is not None else self.deps.catalog
        timeout = request.timeout_seconds or self.deps.loop_settings.timeout_seconds

        async with AbortScope(request.abort_event, timeout) as scope:
            try:
                return await self._run(request, catalog, callbacks, scope)
            except AgentAborted as e:
                self.logger.info("Agent loop aborted", {"reason": e.reason, "session_id": request.session_id})
                return self._finish(
                    AgentLoopResult(text=ABORTED_TEXT, steps=0, tool_calls=0, finish_reason="abort"),
                    callbacks,
                )

    # ==========================================================================
    # Candidates
    # ==========================================================================

    async def _run(
        self,
        request: AgentLoopRequest,
        catalog: ToolCatalog | None,
        callbacks: AgentLoopCallbacks,
        scope: AbortScope
    ) -> AgentLoopResult:
        state = _RunState()
        context = ToolCallContext(
            session_id=request.session_id,
            agent_id=request.agent_id,
            request_id=str(uuid.uuid4()),
            abort_event=scope.event,
        )
        bridge_callbacks = self._bridge_callbacks(state, callbacks)

        try:
            executions = await scope.run(resolve_executions(
                ResolveRequest(
                    session_id=request.session_id,
                    agent_id=request.agent_id,
                    pinned_provider_id=request.pinned_provider_id,
                    pinned_model_id=request.pinned_model_id,
                ),
                ResolutionDeps(
                    auth_router=self.deps.auth_router,
                    providers=self.deps.providers,
                    resolve_proxy=self.deps.resolve_proxy,
                    proxy_provider_id=self.deps.proxy_provider_id,
                    logger=self.logger,
                ),
            ))
        except AgentAborted:
            raise
        except Exception as e:
            reason = describe_error(e)
            self.logger.warn("Agent loop failed, fallback selected", {"reason": reason})
            return self._exhausted(reason, callbacks)

        if not executions:
            self.logger.warn("No candidate executions resolved", {"session_id": request.session_id})
            if callbacks.on_summary:
                callbacks.on_summary(FALLBACK_TEXT)
            return self._finish(
                AgentLoopResult(text=FALLBACK_TEXT, steps=0, tool_calls=0, finish_reason="error"),
                callbacks,
            )

        for execution in executions:
            fields = {"provider_id": execution.provider_id, "model_id": execution.model_id}

            if execution.provider_id in state.rate_limited:
                self.logger.info("Skipping rate-limited provider", fields)
                continue

            provider = self.deps.providers.get(execution.provider_id)
            if provider is None:
                state.last_error = f"Provider unsupported: {execution.provider_id}"
                self.logger.warn("Skipping unsupported provider", fields)
                continue

            context_limit = provider.context_limit or DEFAULT_CONTEXT_TOKENS
            if context_limit < CONTEXT_WINDOW_HARD_MIN_TOKENS:
                self.logger.warn("Skipping provider: context window below minimum", {
                    **fields,
                    "context_limit": context_limit,
                    "minimum": CONTEXT_WINDOW_HARD_MIN_TOKENS,
                })
                state.last_error = (
                    f"Context window too small ({context_limit} < {CONTEXT_WINDOW_HARD_MIN_TOKENS})"
                )
                continue
            if context_limit < CONTEXT_WINDOW_WARN_BELOW_TOKENS:
                self.logger.warn("Low context window", {
                    **fields,
                    "context_limit": context_limit,
                    "recommend_above": CONTEXT_WINDOW_WARN_BELOW_TOKENS,
                })

            pipeline_config = self.deps.context_settings.to_pipeline_config(
                context_limit,
                self.deps.loop_settings.reserve_tokens,
                provider.id,
            )

            try:
                return await self._attempt(
                    request, execution, provider, pipeline_config,
                    catalog, context, bridge_callbacks, state, callbacks, scope,
                )
            except AgentAborted:
                raise
            except Exception as e:
                if scope.aborted or is_abort_error(e):
                    raise AgentAborted(scope.reason or "cancelled") from e
                self._record_failure(request, execution, e, state)

        return self._exhausted(state.last_error, callbacks)

    def _record_failure(
        self,
        request: AgentLoopRequest,
        execution: CompletionExecution,
        error: Exception,
        state: _RunState
    ) -> None:
        fields = {"provider_id": execution.provider_id, "model_id": execution.model_id}
        state.last_error = describe_error(error)

        # A rate limit is org-wide: block the whole provider for this run
        if is_rate_limit_error(error):
            state.rate_limited.add(execution.provider_id)
            self.deps.auth_router.report_provider_rate_limit(request.session_id, execution.provider_id)
            self.logger.warn("Provider rate-limited, skipping remaining attempts for this provider", fields)

        if execution.profile_id:
            self.deps.auth_router.report_failure(FailureReport(
                session_id=request.session_id,
                provider_id=execution.provider_id,
                profile_id=execution.profile_id,
            ))

        self.logger.warn("Agent loop attempt failed, trying next provider", {
            **fields,
            "reason": state.last_error,
        })

    def _exhausted(self, last_error: str | None, callbacks: AgentLoopCallbacks) -> AgentLoopResult:
        self.logger.warn("Agent loop failed, all providers exhausted", {"last_error": last_error or "unknown"})
        text = CONTEXT_OVERFLOW_TEXT if is_context_overflow_error(last_error) else FALLBACK_TEXT
        return self._finish(
            AgentLoopResult(text=text, steps=0, tool_calls=0, finish_reason="error"),
            callbacks,
        )

    def _finish(self, result: AgentLoopResult, callbacks: AgentLoopCallbacks) -> AgentLoopResult:
        if callbacks.on_done:
            callbacks.on_done(result)
        return result

    def _bridge_callbacks(self, state: _RunState, callbacks: AgentLoopCallbacks) -> ToolBridgeCallbacks:
        """Adapt bridge events to AgentToolAction callbacks; counts completed calls."""
        tracker = ToolActionTracker()

        def on_tool_start(tool_id: str, args: dict, meta: ToolBridgeToolMeta) -> None:
            action = tracker.start(tool_id, args, meta)
            self.logger.debug("Tool started", {"tool_id": tool_id, "action_id": action.id})
            if callbacks.on_tool_start:
                callbacks.on_tool_start(action)

        def on_tool_end(tool_id: str, args: dict, result: ToolResult, meta: ToolBridgeToolMeta) -> None:
            state.tool_calls += 1
            action = tracker.finish(tool_id, args, result, meta)
            self.logger.debug("Tool finished", {
                "tool_id": tool_id,
                "action_id": action.id,
                "status": action.status,
            })
            if callbacks.on_tool_end:
                callbacks.on_tool_end(action)

        def on_tool_user_output(tool_id: str, text: str) -> None:
            if callbacks.on_tool_user_output:
                callbacks.on_tool_user_output(tool_id, text)

        return ToolBridgeCallbacks(
            on_tool_start=on_tool_start,
            on_tool_end=on_tool_end,
            on_tool_user_output=on_tool_user_output,
        )

    # ==========================================================================
    # One attempt
    # ==========================================================================

    async def _attempt(
        self,
        request: AgentLoopRequest,
        execution: CompletionExecution,
        provider: ProviderDefinition,
        pipeline_config: ContextPipelineConfig,
        catalog: ToolCatalog | None,
        context: ToolCallContext,
        bridge_callbacks: ToolBridgeCallbacks,
        state: _RunState,
        callbacks: AgentLoopCallbacks,
        scope: AbortScope
    ) -> AgentLoopResult:
        fields = {"provider_id": execution.provider_id, "model_id": execution.model_id}

        prepared = prepare_context(list(request.messages), pipeline_config)
        if prepared.trimmed or prepared.pruned:
            self.logger.info("Context trimmed to fit model limit", {
                **fields,
                "context_limit": pipeline_config.context_limit,
                "reserve_tokens": pipeline_config.reserve_tokens,
                "estimated_tokens": prepared.estimated_tokens,
                "trimmed": prepared.trimmed,
                "pruned": prepared.pruned,
            })

        tools: dict[str, BridgedTool] = {}
        if catalog is not None and not request.no_tools:
            tools = build_tool_set(
                catalog,
                context,
                bridge_callbacks,
                context_config=pipeline_config,
                allowlist=request.tool_allowlist,
                denylist=request.tool_denylist,
            )
        api_tools = [tool.to_openai_function() for tool in tools.values()] or None
        executor = ToolExecutor(tools, runner=scope.run)

        max_steps = request.max_steps or self.deps.loop_settings.max_steps
        model = provider.create_model(execution)
        self.logger.info("Attempting provider", {**fields, "tools": len(tools)})

        try:
            loop_messages: list[RichMessage] = list(prepared.messages)
            appended: list[RichMessage] = []
            step_count = 0
            final_text = ""
            last_step_text = ""
            finish_reason = "unknown"

            for _ in range(max_steps):
                step, loop_messages = await self._step(model, loop_messages, api_tools, request, pipeline_config, scope)

                step_count += 1
                finish_reason = step.finish_reason

                if not state.title_set and step.text:
                    title = derive_title(step.text)
                    if title:
                        state.title_set = True
                        if callbacks.on_title:
                            callbacks.on_title(title)

                if step.text:
                    last_step_text = step.text
                    if callbacks.on_thoughts:
                        callbacks.on_thoughts(step.text, step_count)

                if not step.tool_calls:
                    final_text = step.text
                    break

                results = await executor.execute_all(step.tool_calls)
                if not results:
                    # Nothing to feed back; stop instead of looping on the same request
                    final_text = step.text
                    break

                new_messages = [ToolCallMessage(content=step.text, tool_calls=list(step.tool_calls)), *results]
                loop_messages = [*loop_messages, *new_messages]
                appended.extend(new_messages)
            else:
                self.logger.warn("Reached max steps", {**fields, "max_steps": max_steps})

            response_text = final_text or last_step_text or NO_RESPONSE_TEXT
            if callbacks.on_summary:
                callbacks.on_summary(summarize(response_text))

            self.logger.info("Agent loop finished", {
                **fields,
                "steps": step_count,
                "tool_calls": state.tool_calls,
                "finish_reason": finish_reason,
            })
            return self._finish(
                AgentLoopResult(
                    text=response_text,
                    steps=step_count,
                    tool_calls=state.tool_calls,
                    finish_reason=finish_reason,
                    rich_messages=appended,
                ),
                callbacks,
            )
        finally:
            aclose = getattr(model, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _step(
        self,
        model: Any,
        messages: list[RichMessage],
        api_tools: list[dict] | None,
        request: AgentLoopRequest,
        pipeline_config: ContextPipelineConfig,
        scope: AbortScope
    ) -> tuple[StepResult, list[RichMessage]]:
        """
        One model call. Returns the step and the messages actually sent,
        which differ from the input only after overflow recovery.
        """
        sent = messages

        async def call(current: list[RichMessage]) -> StepResult:
            nonlocal sent
            sent = current
            return await scope.run(model.complete(current, api_tools, max_tokens=request.max_tokens))

        if not self.deps.loop_settings.overflow_recovery:
            return await call(messages), sent

        def on_retry(attempt: int, strategy: str) -> None:
            self.logger.warn("Context overflow, retrying with tighter context", {
                "attempt": attempt,
                "strategy": strategy,
                "provider_id": pipeline_config.provider_id,
            })

        step = await with_overflow_recovery(messages, pipeline_config, call, on_retry)
        return step, sent
