# chuk_ai_browser_agent/guards/loop_guard.py
"""
Loop guards for the step loop.

``LoopGuard`` owns every per-run failure counter and turns them into
``GuardResult`` verdicts (from chuk-tool-processor):

- ALLOW: keep going
- WARN: inject ``instruction`` (and run a self-heal when asked), keep going
- BLOCK: terminate the run with ``result.reason``

Tool-error handling is driven by the declarative ``GuardTable``; the done,
progress and provider-error guards have fixed shapes configured through
``LoopGuardConfig``.

Usage::

    guard = LoopGuard()
    decision = guard.record_tool_result("click", success=False, code="MISSING_TARGET")
    if decision.self_heal:
        await orchestrator.self_heal(...)
"""

from __future__ import annotations

import logging

from chuk_tool_processor.guards import GuardResult, GuardVerdict
from pydantic import BaseModel, Field

from chuk_ai_browser_agent.config import (
    DEFAULT_MAX_CONSECUTIVE_ERRORS,
    DEFAULT_RATE_LIMIT_BASE_DELAY,
    DEFAULT_RATE_LIMIT_MAX_DELAY,
    DEFAULT_RATE_LIMIT_MAX_RETRIES,
)

from .constants import DONE_CONTRACT_FAILED, PRIMARY_INTERACTION_TOOL, TERMINAL_TOOLS, UNKNOWN_ERROR
from .policy import GuardRule, GuardTable

logger = logging.getLogger(__name__)

PROGRESS_WARNING = (
    "[SYSTEM] No progress for {count} steps: no navigation, no successful interaction and no new "
    "information. Change strategy now. If the answer is already known, call done; if the task is "
    "impossible, call fail with the reason."
)


class LoopGuardConfig(BaseModel):
    """Thresholds for the fixed-shape guards."""

    primary_tool: str = Field(default=PRIMARY_INTERACTION_TOOL, description="Tool with the soft target guard")
    max_self_heal_attempts: int = Field(default=3, ge=0, description="Self-heal budget per run")
    progress_warn_steps: int = Field(default=6, ge=1)
    progress_fail_steps: int = Field(default=12, ge=2)
    repair_warn_ratio: float = Field(default=0.5, description="Warn once repairs/done attempts reaches this")
    repair_warn_min_attempts: int = Field(default=2, ge=1)
    rate_limit_max_retries: int = Field(default=DEFAULT_RATE_LIMIT_MAX_RETRIES, ge=0)
    rate_limit_base_delay: float = Field(default=DEFAULT_RATE_LIMIT_BASE_DELAY, ge=0)
    rate_limit_max_delay: float = Field(default=DEFAULT_RATE_LIMIT_MAX_DELAY, ge=0)
    max_consecutive_errors: int = Field(default=DEFAULT_MAX_CONSECUTIVE_ERRORS, ge=1)


class LoopGuardState(BaseModel):
    """Per-run counters. Reset wholesale at the start of every run."""

    last_error_tool: str | None = None
    last_error_code: str | None = None
    repeat_count: int = 0
    last_action_error_code: str | None = None
    action_repeat_count: int = 0
    activations: dict[str, int] = Field(default_factory=dict)
    self_heal_attempts: int = 0
    done_attempts: int = 0
    done_repairs: int = 0
    done_rejections: int = 0
    done_rejection_streak: int = 0
    repair_warning_emitted: bool = False
    steps_without_progress: int = 0
    progress_warned: bool = False
    consecutive_rate_limits: int = 0
    consecutive_errors: int = 0
    no_tool_call_streak: int = 0

    @property
    def repair_ratio(self) -> float:
        return self.done_repairs / self.done_attempts if self.done_attempts else 0.0


class GuardDecision(BaseModel):
    """A guard verdict plus what the orchestrator should do about it."""

    model_config = {"arbitrary_types_allowed": True}

    result: GuardResult
    instruction: str | None = None
    rule: GuardRule | None = None
    self_heal: bool = False
    screenshot_hint: bool = False

    @property
    def fired(self) -> bool:
        return self.result.verdict != GuardVerdict.ALLOW

    @property
    def blocked(self) -> bool:
        return self.result.verdict == GuardVerdict.BLOCK

    @classmethod
    def allow(cls) -> GuardDecision:
        return cls(result=GuardResult(verdict=GuardVerdict.ALLOW, reason=""))


class ProviderErrorDecision(BaseModel):
    """What to do after a failed model call."""

    rate_limited: bool = False
    delay_seconds: float = 0.0
    note: str | None = None
    terminal_reason: str | None = None

    @property
    def terminal(self) -> bool:
        return self.terminal_reason is not None


class LoopGuard:
    """Tracks repeating failures and decides warn / self-heal / fail."""

    def __init__(self, config: LoopGuardConfig | None = None, table: GuardTable | None = None) -> None:
        self.config = config or LoopGuardConfig()
        self.table = table or GuardTable.default(self.config.primary_tool)
        self.state = LoopGuardState()

    def reset(self) -> None:
        self.state = LoopGuardState()

    # =========================================================================
    # Tool errors
    # =========================================================================

    def record_tool_result(self, tool: str, success: bool, code: str | None = None) -> GuardDecision:
        """Feed one tool outcome; returns the verdict for this call."""
        state = self.state
        if tool in TERMINAL_TOOLS:
            return GuardDecision.allow()

        if success:
            if tool == state.last_error_tool:
                state.last_error_tool = None
                state.last_error_code = None
                state.repeat_count = 0
            if tool == self.config.primary_tool:
                state.last_action_error_code = None
                state.action_repeat_count = 0
            return GuardDecision.allow()

        code = code or UNKNOWN_ERROR
        rule = self.table.lookup(tool, code)

        if tool == self.config.primary_tool and rule.tool == tool:
            if state.last_action_error_code == code:
                state.action_repeat_count += 1
            else:
                state.last_action_error_code = code
                state.action_repeat_count = 1
            count = state.action_repeat_count
        else:
            if state.last_error_tool == tool and state.last_error_code == code:
                state.repeat_count += 1
            else:
                state.last_error_tool = tool
                state.last_error_code = code
                state.repeat_count = 1
            count = state.repeat_count

        if count < rule.threshold:
            return GuardDecision.allow()

        return self._activate(rule, tool, code, count)

    def _activate(self, rule: GuardRule, tool: str, code: str, count: int) -> GuardDecision:
        state = self.state
        if rule.tool == tool and tool == self.config.primary_tool:
            state.action_repeat_count = 0
        else:
            state.repeat_count = 0

        key = f"{tool}:{code}"
        state.activations[key] = state.activations.get(key, 0) + 1
        activations = state.activations[key]
        instruction = rule.render(tool, code, count)

        if not rule.recoverable and activations >= rule.max_activations:
            reason = (
                f"Tool '{tool}' kept failing with {code}: the loop guard fired {activations} times "
                "and the recovery instructions did not help"
            )
            logger.warning("Loop guard hard failure: %s", reason)
            return GuardDecision(
                result=GuardResult(verdict=GuardVerdict.BLOCK, reason=reason),
                instruction=instruction,
                rule=rule,
            )

        self_heal = rule.self_heal and state.self_heal_attempts < self.config.max_self_heal_attempts
        if self_heal:
            state.self_heal_attempts += 1

        logger.info("Loop guard fired for %s (%s, activation %d, self_heal=%s)", tool, code, activations, self_heal)
        return GuardDecision(
            result=GuardResult(verdict=GuardVerdict.WARN, reason=f"{tool} repeated {code} {count} times"),
            instruction=instruction,
            rule=rule,
            self_heal=self_heal,
            screenshot_hint=self_heal and rule.screenshot_hint,
        )

    # =========================================================================
    # Done contract
    # =========================================================================

    def record_done_attempt(self, repaired: bool) -> str | None:
        """Count a done call; returns a one-time warning once the repair ratio is too high."""
        state = self.state
        state.done_attempts += 1
        if repaired:
            state.done_repairs += 1

        if (
            not state.repair_warning_emitted
            and state.done_attempts >= self.config.repair_warn_min_attempts
            and state.repair_ratio >= self.config.repair_warn_ratio
        ):
            state.repair_warning_emitted = True
            return (
                f"done arguments needed repair in {state.done_repairs}/{state.done_attempts} attempts; "
                "the provider is dropping tool-call fields"
            )
        return None

    def record_done_rejection(self) -> GuardDecision:
        """Repeated contract rejections force an extraction-first instruction, never a failure."""
        state = self.state
        state.done_rejections += 1
        state.done_rejection_streak += 1
        rule = self.table.lookup("done", DONE_CONTRACT_FAILED)
        if state.done_rejection_streak < rule.threshold:
            return GuardDecision.allow()

        count = state.done_rejection_streak
        state.done_rejection_streak = 0
        return GuardDecision(
            result=GuardResult(verdict=GuardVerdict.WARN, reason=f"done rejected {count} times"),
            instruction=rule.render("done", DONE_CONTRACT_FAILED, count),
            rule=rule,
        )

    # =========================================================================
    # Progress watchdog
    # =========================================================================

    def record_step_progress(self, advanced: bool) -> GuardDecision:
        state = self.state
        if advanced:
            state.steps_without_progress = 0
            state.progress_warned = False
            return GuardDecision.allow()

        state.steps_without_progress += 1
        count = state.steps_without_progress
        if count >= self.config.progress_fail_steps:
            reason = f"No progress for {count} consecutive steps"
            logger.warning("Progress watchdog hard failure: %s", reason)
            return GuardDecision(result=GuardResult(verdict=GuardVerdict.BLOCK, reason=reason))

        if count >= self.config.progress_warn_steps and not state.progress_warned:
            state.progress_warned = True
            return GuardDecision(
                result=GuardResult(verdict=GuardVerdict.WARN, reason=f"No progress for {count} steps"),
                instruction=PROGRESS_WARNING.format(count=count),
            )
        return GuardDecision.allow()

    # =========================================================================
    # Provider errors
    # =========================================================================

    def record_provider_error(self, rate_limited: bool, message: str) -> ProviderErrorDecision:
        state = self.state
        cfg = self.config

        if rate_limited:
            state.consecutive_rate_limits += 1
            attempt = state.consecutive_rate_limits
            if attempt > cfg.rate_limit_max_retries:
                return ProviderErrorDecision(
                    rate_limited=True,
                    terminal_reason=f"Rate limit persisted after {cfg.rate_limit_max_retries} retries: {message}",
                )
            delay = min(cfg.rate_limit_base_delay * (2 ** (attempt - 1)), cfg.rate_limit_max_delay)
            return ProviderErrorDecision(
                rate_limited=True,
                delay_seconds=delay,
                note=(
                    "API rate limit error (429). The previous request was not processed. "
                    "Retry the SAME action you were about to take."
                ),
            )

        state.consecutive_errors += 1
        if state.consecutive_errors >= cfg.max_consecutive_errors:
            return ProviderErrorDecision(
                terminal_reason=f"Too many consecutive errors ({state.consecutive_errors}). Last error: {message}",
            )
        return ProviderErrorDecision(note=f"Error occurred: {message}. Try a different approach.")

    def record_provider_success(self) -> None:
        self.state.consecutive_rate_limits = 0
        self.state.consecutive_errors = 0
