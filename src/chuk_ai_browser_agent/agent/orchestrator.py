# chuk_ai_browser_agent/agent/orchestrator.py
"""
Step-Loop Orchestrator.

The top-level state machine of a run::

    idle -> running <-> paused_waiting_user -> done | failed

Each step: check abort, check for a captcha/login wall (pause until the
host resumes), watch context pressure, make one model call with the allowed
tool subset, then execute the returned tool calls in order. Tool failures
go through the loop guards; ``done`` goes through the done contract;
provider errors are retried with backoff or terminate the run.

The orchestrator owns its memory components (window, summary compressor,
retrieval memory, observation cache) and nothing is shared across runs.

Usage::

    orchestrator = StepLoopOrchestrator(provider, driver, tools=browser_tools)
    result = await orchestrator.run("Find the price of the cheapest plan")

    # from the host, while paused
    orchestrator.resume()
    orchestrator.abort()
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from chuk_ai_browser_agent.config import (
    DEFAULT_MAX_CONVERSATION_MESSAGES,
    DEFAULT_MAX_STEPS,
    DEFAULT_TOKEN_LIMIT,
    env_float,
    env_int,
    env_optional_int,
)
from chuk_ai_browser_agent.exceptions import (
    AgentRuntimeError,
    ProviderCapabilityError,
    ToolArgumentError,
    is_rate_limit_error,
)
from chuk_ai_browser_agent.guards import (
    DoneRepair,
    DoneValidation,
    EvidenceTracker,
    LoopGuard,
    LoopGuardConfig,
    check_premature_done,
    repair_done_args,
    validate_done,
    validate_done_coverage,
)
from chuk_ai_browser_agent.guards.constants import (
    ABORTED_BY_NAVIGATION,
    DRIVER_ERROR,
    DUPLICATE_CALL,
    INTERACTION_TOOLS,
    INVALID_ARGUMENTS,
    JS_DOMAIN_DENIED,
    NAVIGATION_TOOLS,
    OBSERVATION_TOOLS,
    RECOVERY_TOOLS_NO_PAGE,
    RECOVERY_TOOLS_ON_PAGE,
    STRUCTURAL_READ_TOOLS,
)
from chuk_ai_browser_agent.memory import (
    BudgetState,
    ConversationWindow,
    ObservationCache,
    RetrievalConfig,
    RetrievalMemory,
    RetrievalQuery,
    RunningSummaryCompressor,
    SummaryConfig,
    WindowConfig,
    estimate_message_tokens,
    estimate_tool_schema_tokens,
    precheck_budget,
)
from chuk_ai_browser_agent.models import (
    AgentStatus,
    BudgetPolicy,
    InterventionEvent,
    InterventionKind,
    Message,
    PartialResult,
    PressureLevel,
    RunMetrics,
    RunResult,
    StepEvent,
    StepType,
    TokenUsage,
    ToolCall,
)
from chuk_ai_browser_agent.utils import normalize_user_text, truncate_text

from .checkpoint import AgentCheckpoint
from .diagnostics import DiagnosticsSink
from .intervention import detect_intervention
from .prompts import (
    NO_TOOL_CALL_NUDGE,
    PLAN_PROMPT,
    TOOL_CALL_REMINDER,
    build_goal_message,
    build_system_prompt,
    build_task_state_message,
)
from .protocols import AutomationDriver, ChatOptions, ChatResponse, ModelProvider, PageInfo, ToolDefinition
from .reflection import ReflectionState
from .scratchpad import merge_scratchpad
from .serialization import serialize_tool_result
from .tool_args import DoneArgs, FailArgs, SaveProgressArgs, ToolArgs, normalize_tool_args
from .tools import resolve_tools

logger = logging.getLogger(__name__)

PLAN_MAX_TOKENS = 800

HostCallback = Callable[[Any], Awaitable[None] | None]
SleepFn = Callable[[float], Awaitable[Any]]


# =============================================================================
# Configuration
# =============================================================================


class AgentConfig(BaseModel):
    """Run-level configuration."""

    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)
    max_conversation_messages: int = Field(default=DEFAULT_MAX_CONVERSATION_MESSAGES, ge=4)
    token_limit: int | None = Field(default=DEFAULT_TOKEN_LIMIT, description="Run-wide token allowance")
    context_window_tokens: int | None = Field(default=None, description="Overrides the provider's value")
    reserved_output_tokens: int = Field(default=4096, ge=0)
    warn_context_ratio: float = 0.8
    compact_context_ratio: float = 0.9
    compaction_cooldown_steps: int = Field(default=3, ge=1)
    no_tool_call_streak_limit: int = Field(default=2, ge=1)
    max_text_retries_per_step: int = Field(default=3, ge=1, description="Text-only replies before the step counts")
    navigation_timeout_s: float = 10.0
    plan_mode: bool = False
    detect_interventions: bool = True
    auto_observe: bool = True
    observation_ttl_s: float = 3.0
    retrieval_limit: int = 4
    retrieval_max_chars: int = 1200
    max_scratchpad_chars: int = 4000
    temperature: float | None = None
    guards: LoopGuardConfig = Field(default_factory=LoopGuardConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)

    @field_validator("navigation_timeout_s")
    @classmethod
    def _clamp_navigation_timeout(cls, v: float) -> float:
        return max(1.0, min(60.0, v))

    @classmethod
    def from_env(cls, **overrides: Any) -> AgentConfig:
        """Build from ``CHUK_AGENT_*`` environment variables read now."""
        values: dict[str, Any] = {
            "max_steps": env_int("CHUK_AGENT_MAX_STEPS", DEFAULT_MAX_STEPS),
            "max_conversation_messages": env_int(
                "CHUK_AGENT_MAX_CONVERSATION_MESSAGES", DEFAULT_MAX_CONVERSATION_MESSAGES
            ),
            "token_limit": env_optional_int("CHUK_AGENT_TOKEN_LIMIT"),
            "navigation_timeout_s": env_float("CHUK_AGENT_NAVIGATION_TIMEOUT", 10.0),
        }
        values.update(overrides)
        return cls(**values)


class _Batch(BaseModel):
    """Per-turn bookkeeping while tool calls execute."""

    model_config = {"arbitrary_types_allowed": True}

    notes: list[Message] = Field(default_factory=list)
    vision: Message | None = None
    navigated: bool = False
    self_healed: bool = False
    progress: bool = False


# =============================================================================
# Orchestrator
# =============================================================================


class StepLoopOrchestrator:
    """Drives one tool-using model through a bounded observe/decide/act loop."""

    def __init__(
        self,
        provider: ModelProvider,
        driver: AutomationDriver,
        tools: Sequence[ToolDefinition | dict[str, Any]] | None = None,
        config: AgentConfig | None = None,
        diagnostics: DiagnosticsSink | None = None,
        *,
        on_step: HostCallback | None = None,
        on_status: HostCallback | None = None,
        on_intervention: HostCallback | None = None,
        on_plan: HostCallback | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.driver = driver
        self.config = config or AgentConfig()
        self.diagnostics = diagnostics or DiagnosticsSink()
        self.tools = resolve_tools(tools)
        self._on_step = on_step
        self._on_status = on_status
        self._on_intervention = on_intervention
        self._on_plan = on_plan
        self._sleep = sleep

        context_window = self.config.context_window_tokens or getattr(provider, "context_window_tokens", None)
        self.budget = BudgetState(token_limit=self.config.token_limit)
        if context_window:
            self.budget.context_window_tokens = context_window
        self.budget.reserved_output_tokens = self.config.reserved_output_tokens

        self.retrieval = RetrievalMemory(self.config.retrieval)
        self.compressor = RunningSummaryCompressor(
            self.retrieval,
            self.config.summary,
            summarize_fn=self._summarize_call,
            budget_check=self._summary_budget_check,
        )
        self.window = ConversationWindow(
            WindowConfig(
                max_messages=self.config.max_conversation_messages,
                context_window_tokens=self.budget.context_window_tokens,
                reserved_output_tokens=self.config.reserved_output_tokens,
            ),
            compressor=self.compressor,
        )
        self.cache = ObservationCache(ttl_seconds=self.config.observation_ttl_s)
        self.guard = LoopGuard(self.config.guards)
        self.evidence = EvidenceTracker()
        self.reflection = ReflectionState()

        self.status = AgentStatus.IDLE
        self.goal = ""
        self.step = 0
        self.scratchpad: dict[str, Any] = {}
        self.history: list[StepEvent] = []
        self.metrics = RunMetrics()

        self._aborted = False
        self._waiter: asyncio.Future[bool] | None = None
        self._waiting_for: InterventionKind | str | None = None
        self._trusted_js_domains: set[str] = set()
        self._last_compaction_step: int | None = None
        self._context_warning_emitted = False
        self._restricted_tools: frozenset[str] | None = None
        self._last_done: DoneRepair | None = None
        self._last_reasoning = ""
        self._last_success_signature: str | None = None
        self._seen_reads: set[int] = set()
        self._last_page = PageInfo()

    # =========================================================================
    # Host controls
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self.status in (AgentStatus.RUNNING, AgentStatus.PAUSED_WAITING_USER)

    def abort(self) -> None:
        """Stop the run; any pending pause resolves negatively."""
        self._aborted = True
        self._resolve_waiter(None, False)

    def resume(self) -> bool:
        """Resume after a captcha/login intervention."""
        return self._resolve_waiter((InterventionKind.CAPTCHA, InterventionKind.LOGIN), True)

    def approve_plan(self) -> bool:
        return self._resolve_waiter(("plan",), True)

    def reject_plan(self) -> bool:
        return self._resolve_waiter(("plan",), False)

    def allow_js_domain(self) -> bool:
        return self._resolve_waiter((InterventionKind.JS_DOMAIN_PERMISSION,), True)

    def deny_js_domain(self) -> bool:
        return self._resolve_waiter((InterventionKind.JS_DOMAIN_PERMISSION,), False)

    def _resolve_waiter(self, kinds: tuple[Any, ...] | None, value: bool) -> bool:
        waiter = self._waiter
        if waiter is None or waiter.done():
            return False
        if kinds is not None and self._waiting_for not in kinds:
            return False
        waiter.set_result(value)
        return True

    # =========================================================================
    # Run
    # =========================================================================

    async def run(
        self,
        goal: str,
        *,
        plan_mode: bool | None = None,
        checkpoint: AgentCheckpoint | None = None,
    ) -> RunResult:
        """Run the task to a terminal result."""
        if self.is_running:
            raise AgentRuntimeError("A run is already in progress on this orchestrator")

        if checkpoint is not None:
            self.restore_checkpoint(checkpoint)
        else:
            self._reset(goal)
        await self._set_status(AgentStatus.RUNNING)
        logger.info("Run started: %s", truncate_text(self.goal, 120))

        try:
            result = await self._run_loop(
                self.config.plan_mode if plan_mode is None else plan_mode,
                fresh=checkpoint is None,
            )
        except asyncio.CancelledError:
            self._aborted = True
            await self._finish(self._aborted_result())
            raise
        return await self._finish(result)

    def _reset(self, goal: str) -> None:
        self.goal = normalize_user_text(goal)
        self.step = 0
        self.scratchpad = {}
        self.history = []
        self.metrics = RunMetrics()
        self.budget.reset()
        self.budget.reserved_output_tokens = self.config.reserved_output_tokens
        self.retrieval.clear()
        self.compressor.reset()
        self.window.set_head([])
        self.guard.reset()
        self.evidence = EvidenceTracker()
        self.reflection = ReflectionState.for_goal(self.goal)
        self._reset_transient()

    def _reset_transient(self) -> None:
        self.cache.clear()
        self._aborted = False
        self._waiter = None
        self._waiting_for = None
        self._trusted_js_domains = set()
        self._last_compaction_step = None
        self._context_warning_emitted = False
        self._restricted_tools = None
        self._last_done = None
        self._last_reasoning = ""
        self._last_success_signature = None
        self._seen_reads = set()

    async def _run_loop(self, plan_mode: bool, fresh: bool) -> RunResult:
        if not getattr(self.provider, "supports_tools", True):
            provider_id = getattr(self.provider, "provider_id", "provider")
            return self._terminal(False, reason=f"{provider_id} does not support tool calling; the agent cannot run")

        if fresh:
            page = await self._page_info()
            system = build_system_prompt(
                getattr(self.provider, "provider_id", None),
                getattr(self.provider, "model", None),
            )
            self.window.set_head([Message.system(system), build_goal_message(self.goal, page.url, page.title)])
            if plan_mode:
                terminal = await self._plan_phase()
                if terminal is not None:
                    return terminal
            if self.config.auto_observe and not page.is_blank:
                await self._auto_observe(page)

        text_retries = 0
        while self.step < self.config.max_steps:
            if self._aborted:
                return self._aborted_result()
            self.window.step = self.step

            if self.config.detect_interventions and not await self._check_intervention():
                return self._aborted_result()

            tools = self._offered_tools()
            tool_dicts = [t.to_provider_dict() for t in tools]
            await self._monitor_context_pressure(tool_dicts)
            await self.compressor.maybe_summarize(step=self.step)
            if self._aborted:
                return self._aborted_result()

            options = self._chat_options()
            messages = self.window.build_for_model(self._task_state_message())

            check = precheck_budget(
                messages,
                tool_dicts,
                options,
                BudgetPolicy.TERMINAL,
                self.budget,
                partial=self._salvage_partial(),
                steps=self.step,
            )
            if not check.ok and check.terminal is not None:
                return check.terminal

            try:
                raw = await self.provider.chat(messages, tool_dicts, options)
            except ProviderCapabilityError as e:
                return self._terminal(False, reason=str(e))
            except Exception as e:
                terminal = await self._handle_provider_error(e)
                if terminal is not None:
                    return terminal
                continue

            if self._aborted:
                return self._aborted_result()

            response = self._parse_response(raw)
            self.guard.record_provider_success()
            if response.text:
                self._last_reasoning = response.text
                self.evidence.note(response.text)
                await self._record_step(StepType.THOUGHT, content=response.text)

            if not response.tool_calls:
                text_retries += 1
                if self._handle_text_only(response, text_retries):
                    text_retries = 0
                    self.step += 1
                continue

            text_retries = 0
            self.guard.state.no_tool_call_streak = 0
            self._restricted_tools = None

            terminal = await self._handle_tool_calls(response)
            if terminal is not None:
                return terminal
            self.step += 1

        return self._step_limit_result()

    # =========================================================================
    # Model calls
    # =========================================================================

    def _chat_options(self) -> dict[str, Any]:
        options = ChatOptions(
            temperature=self.config.temperature,
            tool_choice="required" if self._restricted_tools else None,
        )
        return options.to_dict()

    def _parse_response(self, raw: ChatResponse | dict[str, Any]) -> ChatResponse:
        response = raw if isinstance(raw, ChatResponse) else ChatResponse.model_validate(raw or {})
        self._record_usage(response.usage)
        return response

    def _record_usage(self, usage: dict[str, Any] | None) -> None:
        self.metrics.llm_calls += 1
        tokens = TokenUsage.from_provider(usage)
        self.metrics.usage.add(tokens)
        self.budget.record_usage(tokens)

    async def _handle_provider_error(self, error: Exception) -> RunResult | None:
        self.metrics.errors += 1
        rate_limited = is_rate_limit_error(error)
        decision = self.guard.record_provider_error(rate_limited, str(error))
        await self._record_step(StepType.ERROR, content=str(error))
        logger.warning("Provider error (rate_limited=%s): %s", rate_limited, error)

        if decision.terminal_reason is not None:
            return self._terminal(False, reason=decision.terminal_reason)

        if decision.delay_seconds > 0:
            await self._sleep(decision.delay_seconds)
        if decision.note:
            self.window.append(Message.user(f"[SYSTEM] {decision.note}"))
        if not rate_limited:
            self.step += 1
        return None

    def _handle_text_only(self, response: ChatResponse, attempt: int) -> bool:
        """Returns True when the step should be counted."""
        state = self.guard.state
        state.no_tool_call_streak += 1
        self.window.append(Message.assistant(response.text or "(no tool call)"))

        if state.no_tool_call_streak < self.config.no_tool_call_streak_limit:
            self.window.append(Message.user(TOOL_CALL_REMINDER))
        else:
            self.window.append(Message.user(NO_TOOL_CALL_NUDGE))
            self._restricted_tools = RECOVERY_TOOLS_NO_PAGE if self._last_page.is_blank else RECOVERY_TOOLS_ON_PAGE
            logger.info("No tool call %d times, restricting tools", state.no_tool_call_streak)
        return attempt >= self.config.max_text_retries_per_step

    async def _summarize_call(self, messages: list[dict[str, Any]], options: dict[str, Any]) -> str:
        raw = await self.provider.chat(messages, [], options)
        return self._parse_response(raw).text

    def _summary_budget_check(self, messages: list[dict[str, Any]], options: dict[str, Any]):
        return precheck_budget(messages, [], options, BudgetPolicy.SKIP, self.budget)

    async def _plan_phase(self) -> RunResult | None:
        """Ask for a plan and wait for approval. Returns a terminal result when the run must stop."""
        messages = [
            self.window.messages[0].to_provider_dict(),
            {"role": "user", "content": PLAN_PROMPT.format(goal=self.goal)},
        ]
        options = {"max_tokens": PLAN_MAX_TOKENS}
        check = precheck_budget(messages, [], options, BudgetPolicy.TERMINAL, self.budget, steps=self.step)
        if not check.ok and check.terminal is not None:
            return check.terminal

        try:
            raw = await self.provider.chat(messages, [], options)
        except Exception as e:
            self.diagnostics.warn("plan", e)
            return None
        plan = self._parse_response(raw).text.strip()
        if not plan:
            return None

        await self._record_step(StepType.PLAN, content=plan)
        if not await self._wait_for_user("plan", self._on_plan, plan):
            if self._aborted:
                return self._aborted_result()
            return self._terminal(False, reason="Task cancelled: the plan was not approved")
        self.window.append(Message.user("Approved plan:\n" + plan))
        self.reflection.seed_plan(plan)
        return None

    # =========================================================================
    # Tool calls
    # =========================================================================

    async def _handle_tool_calls(self, response: ChatResponse) -> RunResult | None:
        pairs: list[tuple[ToolCall, ToolArgs | ToolArgumentError]] = []
        normalized_calls: list[ToolCall] = []
        for call in response.tool_calls:
            try:
                args: ToolArgs | ToolArgumentError = normalize_tool_args(call.name, call.arguments)
                normalized = ToolCall(id=call.id, name=call.name, arguments=args.to_payload())
            except ToolArgumentError as e:
                args = e
                normalized = call
            pairs.append((normalized, args))
            normalized_calls.append(normalized)

        self.window.append(Message.assistant(response.text, tool_calls=normalized_calls, step=self.step))
        batch = _Batch()

        for index, (call, args) in enumerate(pairs):
            remaining = pairs[index + 1 :]

            if self._aborted:
                self._skip_calls([(call, args), *remaining], "ABORTED", "Run aborted")
                return self._aborted_result()

            if batch.navigated or batch.self_healed:
                reason = (
                    "Skipped: the page navigated after an earlier call in this turn. Re-observe before acting."
                    if batch.navigated
                    else "Skipped: the page was re-observed after repeated failures. Plan again from the fresh observation."
                )
                self._append_result(call, {"success": False, "code": ABORTED_BY_NAVIGATION, "error": reason})
                continue

            if isinstance(args, ToolArgumentError):
                result = {"success": False, "code": INVALID_ARGUMENTS, "error": str(args)}
                self._append_result(call, result)
                terminal = await self._apply_guards(call.name, result, batch, remaining)
                if terminal is not None:
                    return terminal
                continue

            if isinstance(args, DoneArgs):
                terminal = await self._handle_done(call, args, response.text, batch)
                if terminal is not None:
                    self._skip_calls(remaining, "RUN_FINISHED", "Run finished")
                    return terminal
                continue

            if isinstance(args, FailArgs):
                self._append_result(call, {"success": True})
                self._skip_calls(remaining, "RUN_FINISHED", "Run finished")
                reason = args.reason or "The agent reported that the task cannot be completed"
                return self._terminal(False, reason=reason)

            if isinstance(args, SaveProgressArgs):
                written = merge_scratchpad(self.scratchpad, args.data, self.config.max_scratchpad_chars)
                self.reflection.record_saved(args.data)
                self.evidence.record(call.name, True)
                self.evidence.note(json.dumps(args.data, ensure_ascii=False, default=str))
                self._append_result(call, {"success": True, "saved_keys": written})
                batch.progress = batch.progress or bool(written)
                await self._record_step(StepType.ACTION, tool=call.name, args=args.data, result={"success": True})
                continue

            result = await self._execute_tool(call, args, batch)
            terminal = await self._apply_guards(call.name, result, batch, remaining)
            if terminal is not None:
                return terminal

        self._flush_batch(batch)
        decision = self.guard.record_step_progress(batch.progress)
        if decision.blocked:
            return self._terminal(False, reason=decision.result.reason)
        if decision.fired and decision.instruction:
            await self._record_step(StepType.WARNING, content=decision.result.reason)
            self.window.append(Message.user(decision.instruction))
        return None

    def _append_result(self, call: ToolCall, result: dict[str, Any]) -> None:
        self.window.append(Message.tool_result(call.id, call.name, result, step=self.step))

    def _skip_calls(self, pairs: Sequence[tuple[ToolCall, Any]], code: str, reason: str) -> None:
        for call, _ in pairs:
            self._append_result(call, {"success": False, "code": code, "error": reason})

    def _flush_batch(self, batch: _Batch) -> None:
        for note in batch.notes:
            self.window.append(note)
        if batch.vision is not None:
            self.window.append(batch.vision)
        batch.notes = []
        batch.vision = None

    async def _execute_tool(self, call: ToolCall, args: ToolArgs, batch: _Batch) -> dict[str, Any]:
        name = call.name
        payload = args.to_payload()
        signature = f"{name}:{json.dumps(payload, sort_keys=True, default=str)}"

        if name in OBSERVATION_TOOLS and signature == self._last_success_signature:
            self.metrics.duplicate_tool_calls += 1
            result = {
                "success": False,
                "code": DUPLICATE_CALL,
                "error": "Identical call already succeeded and nothing changed since. Use its result or act.",
            }
            self._append_result(call, result)
            return result

        if name == "javascript" and not await self._check_js_permission():
            result = {"success": False, "code": JS_DOMAIN_DENIED, "error": "JavaScript is not allowed on this domain"}
            self._append_result(call, result)
            return result

        url_before = self._last_page.url
        try:
            raw = await self.driver.execute(name, payload)
        except Exception as e:
            logger.warning("Driver call %s raised: %s", name, e)
            raw = {"success": False, "code": DRIVER_ERROR, "error": str(e)}
        result = raw if isinstance(raw, dict) else {"success": bool(raw), "data": raw}
        success = bool(result.get("success"))
        self.metrics.tool_calls += 1

        page = await self._page_info()
        navigated = success and (
            name in NAVIGATION_TOOLS
            or result.get("navigated") is True
            or bool(url_before and page.url and page.url != url_before)
        )
        if navigated:
            await self._wait_for_navigation()
            page = await self._page_info()
            batch.navigated = True

        if success and name in OBSERVATION_TOOLS:
            self._last_success_signature = signature
            if name == "read_page":
                self.cache.put(ObservationCache.page_key(page.tab_id, page.url), result)
        elif success or navigated:
            self._last_success_signature = None
            self.cache.invalidate()

        self.evidence.record(name, success, result, payload)
        advanced = self.reflection.record_action(self.step, name, payload, result)
        batch.progress = batch.progress or advanced or self._is_progress(name, success, navigated, result)

        serialized = serialize_tool_result(name, result, current_url=page.url or None)
        self.window.append(Message.tool_result(call.id, name, serialized.text, step=self.step))
        if serialized.image_data and getattr(self.provider, "supports_vision", False):
            batch.vision = Message.vision(
                f"Screenshot from {name} at {page.url or 'current page'}",
                serialized.image_data,
                serialized.mime_type,
                step=self.step,
            )

        await self._record_step(StepType.ACTION, tool=name, args=payload, result=self._result_digest(result))
        return result

    def _is_progress(self, name: str, success: bool, navigated: bool, result: dict[str, Any]) -> bool:
        if navigated:
            return True
        if not success:
            return False
        if name in INTERACTION_TOOLS:
            return True
        if name in STRUCTURAL_READ_TOOLS or name in OBSERVATION_TOOLS:
            fingerprint = hash(json.dumps(result, sort_keys=True, default=str))
            if fingerprint not in self._seen_reads:
                self._seen_reads.add(fingerprint)
                return True
        return False

    @staticmethod
    def _result_digest(result: dict[str, Any]) -> dict[str, Any]:
        digest = {k: result[k] for k in ("success", "code", "error") if k in result}
        return digest

    async def _apply_guards(
        self,
        tool: str,
        result: dict[str, Any],
        batch: _Batch,
        remaining: Sequence[tuple[ToolCall, Any]],
    ) -> RunResult | None:
        success = bool(result.get("success"))
        if not success:
            self.metrics.errors += 1
        decision = self.guard.record_tool_result(tool, success, result.get("code"))
        if not decision.fired:
            return None

        await self._record_step(StepType.WARNING, tool=tool, content=decision.result.reason)
        if decision.blocked:
            self._skip_calls(remaining, "RUN_FINISHED", "Run finished")
            self._flush_batch(batch)
            return self._terminal(False, reason=decision.result.reason)

        if decision.instruction:
            batch.notes.append(Message.user(decision.instruction))
        if decision.self_heal:
            batch.notes.extend(await self._self_heal(tool, str(result.get("code")), decision.screenshot_hint))
            batch.self_healed = True
        return None

    async def _handle_done(
        self,
        call: ToolCall,
        args: DoneArgs,
        reasoning: str,
        batch: _Batch,
    ) -> RunResult | None:
        repair = repair_done_args(args.summary, args.answer, reasoning)
        warning = self.guard.record_done_attempt(repair.repaired)
        if warning:
            self.diagnostics.warn("done_repair", warning)
        self._last_done = repair

        validation = self._validate_done(repair)
        if validation.ok:
            self._append_result(call, {"success": True, "repaired": repair.repaired})
            await self._record_step(StepType.ACTION, tool="done", args=repair.model_dump(), result={"success": True})
            return self._terminal(True, summary=repair.summary, answer=repair.answer, repaired=repair.repaired)

        self._append_result(call, validation.to_tool_result())
        await self._record_step(StepType.ACTION, tool="done", args=repair.model_dump(), result=validation.to_tool_result())
        decision = self.guard.record_done_rejection()
        if decision.fired and decision.instruction:
            batch.notes.append(Message.user(decision.instruction))
        return None

    def _validate_done(self, repair: DoneRepair) -> DoneValidation:
        """Contract, then premature-done, then goal coverage; the first rejection wins."""
        validation = validate_done(repair.summary, repair.answer, self.evidence)
        if validation.ok:
            validation = check_premature_done(self.evidence)
        if validation.ok:
            validation = validate_done_coverage(
                repair.summary,
                repair.answer,
                self.evidence,
                self.reflection.subtasks,
                navigate_only=self.reflection.navigate_only,
            )
            if validation.uncovered:
                self.reflection.apply_coverage(validation.uncovered)
        if not validation.ok:
            logger.info("done rejected: %s", validation.code)
        return validation

    # =========================================================================
    # Observation, self-heal, interventions
    # =========================================================================

    async def _page_info(self) -> PageInfo:
        try:
            raw = await self.driver.page_info()
        except Exception as e:
            self.diagnostics.warn("page_info", e)
            return self._last_page
        self._last_page = raw if isinstance(raw, PageInfo) else PageInfo.model_validate(raw or {})
        return self._last_page

    async def _wait_for_navigation(self) -> None:
        try:
            await self.driver.wait_for_navigation(self.config.navigation_timeout_s)
        except Exception as e:
            self.diagnostics.warn("navigation_wait", e)

    async def _observe(self, page: PageInfo, force: bool = False) -> dict[str, Any] | None:
        key = ObservationCache.page_key(page.tab_id, page.url)
        if not force:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        try:
            result = await self.driver.execute("read_page", {"max_depth": 10, "max_nodes": 180})
        except Exception as e:
            self.diagnostics.warn("observe", e)
            return None
        if isinstance(result, dict) and result.get("success"):
            self.cache.put(key, result)
            return result
        return None

    async def _auto_observe(self, page: PageInfo) -> None:
        observation = await self._observe(page)
        if observation is None:
            return
        self._record_observation(observation)
        serialized = serialize_tool_result("read_page", observation, current_url=page.url)
        self.window.append(Message.user("Initial page observation:\n" + serialized.text))

    def _record_observation(self, observation: dict[str, Any]) -> None:
        self.evidence.record("read_page", True, observation)
        self.reflection.record_action(self.step, "read_page", {}, observation)

    async def _self_heal(self, tool: str, code: str, screenshot_hint: bool) -> list[Message]:
        """Re-observe the page (and optionally attach a screenshot) after repeated target failures."""
        self.metrics.self_heals += 1
        page = await self._page_info()
        self.cache.invalidate()
        notes: list[Message] = []

        observation = await self._observe(page, force=True)
        if observation is not None:
            self._record_observation(observation)
            serialized = serialize_tool_result("read_page", observation, current_url=page.url)
            notes.append(
                Message.user(f"[SELF-HEAL] Fresh page observation after repeated {code} on {tool}:\n{serialized.text}")
            )

        if screenshot_hint and getattr(self.provider, "supports_vision", False):
            try:
                shot = await self.driver.execute("screenshot", {})
            except Exception as e:
                self.diagnostics.warn("self_heal_screenshot", e)
                shot = None
            if isinstance(shot, dict) and shot.get("success"):
                serialized = serialize_tool_result("screenshot", shot)
                if serialized.image_data:
                    notes.append(
                        Message.vision(
                            f"[SELF-HEAL] Screenshot after repeated {code}. Find the intended element here "
                            "and use its id from the observation above.",
                            serialized.image_data,
                            serialized.mime_type,
                            step=self.step,
                        )
                    )

        await self._record_step(StepType.SELF_HEAL, tool=tool, content=f"Re-observed page after repeated {code}")
        logger.info("Self-heal after repeated %s on %s (%d notes)", code, tool, len(notes))
        return notes

    async def _check_intervention(self) -> bool:
        """Pause for captcha/login walls. Returns False when the run was aborted."""
        page = await self._page_info()
        if page.is_blank:
            return True

        key = ObservationCache.page_key(page.tab_id, page.url, kind="text")
        text = self.cache.get(key)
        if text is None:
            text = ""
            try:
                result = await self.driver.execute("get_page_text", {"max_chars": 4000})
            except Exception as e:
                self.diagnostics.warn("intervention_check", e)
                result = None
            if isinstance(result, dict) and result.get("success"):
                text = str(result.get("text") or result.get("content") or "")
            self.cache.put(key, text)

        event = detect_intervention(page, text, self.goal)
        if event is None:
            return True

        await self._record_step(StepType.PAUSE, content=event.message)
        resumed = await self._wait_for_user(event.kind, self._on_intervention, event)
        if resumed:
            self.cache.invalidate()
        return resumed

    async def _check_js_permission(self) -> bool:
        page = self._last_page
        domain = (urlparse(page.url).hostname or "").lower()
        if domain in self._trusted_js_domains:
            return True
        event = InterventionEvent(
            kind=InterventionKind.JS_DOMAIN_PERMISSION,
            message=f"Allow JavaScript execution on {domain or 'this page'}?",
            url=page.url,
            domain=domain,
        )
        allowed = await self._wait_for_user(event.kind, self._on_intervention, event)
        if allowed:
            self._trusted_js_domains.add(domain)
        return allowed

    async def _wait_for_user(
        self,
        kind: InterventionKind | str,
        notify: HostCallback | None = None,
        payload: Any = None,
    ) -> bool:
        """Block until the host resolves the pause. No timeout; abort resolves it negatively.

        The host is notified after the waiter exists, so it may resolve the
        pause from inside the callback.
        """
        if self._aborted:
            return False
        loop = asyncio.get_running_loop()
        self._waiter = loop.create_future()
        self._waiting_for = kind
        await self._set_status(AgentStatus.PAUSED_WAITING_USER)
        if payload is not None:
            await self._emit(notify, payload)
        try:
            outcome = await self._waiter
        finally:
            self._waiter = None
            self._waiting_for = None
        if self._aborted:
            return False
        await self._set_status(AgentStatus.RUNNING)
        return outcome

    # =========================================================================
    # Context management
    # =========================================================================

    def _prompt_tokens(self, tool_dicts: Sequence[dict[str, Any]]) -> int:
        """Estimated prompt size of the next call: window, task state and tool schemas."""
        messages = self.window.build_for_model(self._task_state_message())
        return estimate_message_tokens(messages) + estimate_tool_schema_tokens(tool_dicts)

    async def _monitor_context_pressure(self, tool_dicts: Sequence[dict[str, Any]]) -> None:
        level = self.budget.update_pressure(
            self._prompt_tokens(tool_dicts),
            warn_ratio=self.config.warn_context_ratio,
            critical_ratio=self.config.compact_context_ratio,
        )
        self.window.pressure = level
        ratio = self.budget.context_ratio

        if level >= PressureLevel.HIGH and not self._context_warning_emitted:
            self._context_warning_emitted = True
            await self._record_step(StepType.WARNING, content=f"Context usage at {ratio:.0%} of the model window")

        if level >= PressureLevel.CRITICAL:
            cooling = (
                self._last_compaction_step is not None
                and self.step - self._last_compaction_step < self.config.compaction_cooldown_steps
            )
            if cooling:
                return
            self._last_compaction_step = self.step
            report = self.window.compact_heavy(PressureLevel.CRITICAL)
            self.window.reduce_vision(PressureLevel.CRITICAL)
            self.window.trim()
            await self.compressor.maybe_summarize(force=True, step=self.step)
            self.metrics.compactions += 1
            await self._record_step(
                StepType.COMPACTION,
                content=f"Context at {ratio:.0%}: compacted {report.compacted} messages",
            )

    def _known_facts(self) -> list[str]:
        saved = self.scratchpad.get("facts")
        facts = [str(f) for f in saved] if isinstance(saved, list) else []
        return facts + [f for f in self.reflection.facts if f not in facts]

    def _task_state_message(self) -> Message:
        recent = [
            f"{event.tool} {'ok' if (event.result or {}).get('success') else 'failed'}"
            for event in self.history[-6:]
            if event.type == StepType.ACTION and event.tool
        ][-4:]
        query = RetrievalQuery(
            goal=self.goal,
            facts=self._known_facts(),
            unknowns=self.reflection.unknowns,
            scratch_keys=list(self.scratchpad),
            recent_actions=recent,
        )
        retrieved = self.retrieval.query(query, limit=self.config.retrieval_limit, max_chars=self.config.retrieval_max_chars)
        return build_task_state_message(
            self.goal,
            self.step,
            self.config.max_steps,
            scratchpad=self.scratchpad,
            summary_block=self.compressor.summary_block(),
            retrieved=retrieved,
            max_scratchpad_chars=self.config.max_scratchpad_chars,
            subgoals=self.reflection.tracker_text() if len(self.reflection.sub_goals) >= 2 else "",
        )

    def _offered_tools(self) -> list[ToolDefinition]:
        tools = self.tools
        if not getattr(self.provider, "supports_vision", False):
            tools = [t for t in tools if t.name != "screenshot"]
        if self._restricted_tools:
            restricted = [t for t in tools if t.name in self._restricted_tools]
            if restricted:
                return restricted
        return tools

    # =========================================================================
    # Results
    # =========================================================================

    def _salvage_partial(self) -> PartialResult:
        done = self._last_done
        summary = done.summary if done and done.summary else ""
        answer = done.answer if done and done.answer else ""
        if not summary:
            summary = truncate_text(self.compressor.state.running or self._last_reasoning, 500)
        if not answer and self.scratchpad:
            answer = truncate_text(json.dumps(self.scratchpad, ensure_ascii=False, default=str), 7000)
        if not answer:
            answer = truncate_text(self.reflection.best_effort_answer(), 7000)
        return PartialResult(
            summary=summary,
            answer=answer,
            facts=self._known_facts(),
            remaining_subgoals=self.reflection.remaining(),
        )

    def _terminal(
        self,
        success: bool,
        *,
        reason: str | None = None,
        summary: str = "",
        answer: str = "",
        repaired: bool = False,
    ) -> RunResult:
        partial = None if success else self._salvage_partial()
        if partial is not None and partial.is_empty:
            partial = None
        return RunResult(
            success=success,
            status=AgentStatus.DONE if success else AgentStatus.FAILED,
            summary=summary,
            answer=answer,
            reason=reason,
            steps=self.step + 1,
            partial_result=partial,
            repaired=repaired,
        )

    def _aborted_result(self) -> RunResult:
        return self._terminal(False, reason="Task aborted by user")

    def _step_limit_result(self) -> RunResult:
        self.metrics.step_limit_reached = True
        partial = self._salvage_partial()
        return RunResult(
            success=False,
            status=AgentStatus.FAILED,
            summary=partial.summary,
            answer=partial.answer,
            reason=f"Step limit reached ({self.config.max_steps} steps) before the task was completed",
            steps=self.config.max_steps,
            partial_result=partial,
        )

    async def _finish(self, result: RunResult) -> RunResult:
        self.metrics.finish()
        result.metrics = self.metrics
        await self._set_status(result.status)
        logger.info("Run finished: success=%s reason=%s", result.success, result.reason)
        return result

    # =========================================================================
    # Checkpoints
    # =========================================================================

    def get_checkpoint(self) -> AgentCheckpoint:
        return AgentCheckpoint(
            goal=self.goal,
            status=self.status,
            step=self.step,
            messages=self.window.snapshot(),
            history_summary=self.compressor.state.model_copy(deep=True),
            retrieval=self.retrieval.snapshot(),
            loop_guard=self.guard.state.model_copy(deep=True),
            budget=self.budget.model_copy(),
            evidence=self.evidence.model_copy(),
            reflection=self.reflection.model_copy(deep=True),
            scratchpad=json.loads(json.dumps(self.scratchpad, default=str)),
        )

    def restore_checkpoint(self, checkpoint: AgentCheckpoint) -> None:
        """Load saved state; caches and pauses start fresh."""
        self.goal = checkpoint.goal
        self.step = checkpoint.step
        self.window.replace(m.model_copy(deep=True) for m in checkpoint.messages)
        self.compressor.restore(checkpoint.history_summary)
        self.retrieval.restore(checkpoint.retrieval)
        self.guard.state = checkpoint.loop_guard.model_copy(deep=True)
        self.budget = checkpoint.budget.model_copy()
        self.evidence = checkpoint.evidence.model_copy()
        self.reflection = checkpoint.reflection.model_copy(deep=True)
        self.scratchpad = dict(checkpoint.scratchpad)
        self.history = []
        self.metrics = RunMetrics()
        self._reset_transient()

    # =========================================================================
    # Host events
    # =========================================================================

    async def _set_status(self, status: AgentStatus) -> None:
        if status == self.status:
            return
        self.status = status
        await self._emit(self._on_status, status)

    async def _record_step(self, step_type: StepType, **fields: Any) -> None:
        event = StepEvent(step=self.step, type=step_type, **fields)
        self.history.append(event)
        await self._emit(self._on_step, event)

    async def _emit(self, callback: HostCallback | None, payload: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(payload)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self.diagnostics.warn("host_callback", e)
