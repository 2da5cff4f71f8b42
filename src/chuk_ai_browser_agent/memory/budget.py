# chuk_ai_browser_agent/memory/budget.py
"""
Budget state and the admission-control precheck.

``precheck_budget`` runs before every model call. When the projected cost
of a request exceeds the remaining token allowance no call is issued:
optional work (summarization) is skipped, the main loop terminates with an
"insufficient budget" result that carries whatever partial answer exists.

Usage::

    result = precheck_budget(messages, tools, {"max_tokens": 600}, BudgetPolicy.SKIP, budget)
    if not result.ok:
        return  # skipped
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.config import DEFAULT_CONTEXT_WINDOW_TOKENS
from chuk_ai_browser_agent.models import (
    AgentStatus,
    BudgetPolicy,
    Message,
    PartialResult,
    PressureLevel,
    RunResult,
    TokenUsage,
)

from .tokens import (
    estimate_expected_output_tokens,
    estimate_message_tokens,
    estimate_tool_schema_tokens,
)

logger = logging.getLogger(__name__)

WARN_CONTEXT_RATIO = 0.8
CRITICAL_CONTEXT_RATIO = 0.9


class BudgetState(BaseModel):
    """Token allowance and context pressure, recomputed every step."""

    token_limit: int | None = Field(default=None, description="Run-wide token allowance; None = unlimited")
    used_tokens: int = Field(default=0, ge=0)
    context_window_tokens: int = Field(default=DEFAULT_CONTEXT_WINDOW_TOKENS, gt=0)
    reserved_output_tokens: int = Field(default=0, ge=0)
    pressure_level: PressureLevel = PressureLevel.NORMAL
    context_ratio: float = 0.0

    @property
    def remaining_tokens(self) -> int | None:
        if self.token_limit is None:
            return None
        return max(0, self.token_limit - self.used_tokens)

    @property
    def usable_context_tokens(self) -> int:
        return max(1, self.context_window_tokens - self.reserved_output_tokens)

    def record_usage(self, usage: TokenUsage) -> None:
        self.used_tokens += usage.total_tokens

    def update_pressure(
        self,
        prompt_tokens: int,
        warn_ratio: float = WARN_CONTEXT_RATIO,
        critical_ratio: float = CRITICAL_CONTEXT_RATIO,
    ) -> PressureLevel:
        """Recompute the usage ratio of the usable context window."""
        self.context_ratio = prompt_tokens / self.usable_context_tokens
        if self.context_ratio >= critical_ratio:
            self.pressure_level = PressureLevel.CRITICAL
        elif self.context_ratio >= warn_ratio:
            self.pressure_level = PressureLevel.HIGH
        else:
            self.pressure_level = PressureLevel.NORMAL
        return self.pressure_level

    def reset(self) -> None:
        self.used_tokens = 0
        self.reserved_output_tokens = 0
        self.pressure_level = PressureLevel.NORMAL
        self.context_ratio = 0.0


class PrecheckResult(BaseModel):
    """Outcome of an admission check."""

    ok: bool
    skipped: bool = False
    estimated_tokens: int = 0
    remaining_tokens: int | None = None
    reason: str | None = None
    terminal: RunResult | None = None


def estimate_request_tokens(
    messages: Iterable[Message | Mapping[str, Any]],
    tools: Iterable[Mapping[str, Any]] | None = None,
    options: Mapping[str, Any] | None = None,
    context_window_tokens: int | None = None,
) -> int:
    """Prompt + tool schema + expected output for one call."""
    tools = list(tools or [])
    return (
        estimate_message_tokens(messages)
        + estimate_tool_schema_tokens(tools)
        + estimate_expected_output_tokens(options, tools, context_window_tokens)
    )


def precheck_budget(
    messages: Iterable[Message | Mapping[str, Any]],
    tools: Iterable[Mapping[str, Any]] | None,
    options: Mapping[str, Any] | None,
    policy: BudgetPolicy,
    budget: BudgetState,
    partial: PartialResult | None = None,
    steps: int = 0,
) -> PrecheckResult:
    """
    Admission control for one model call.

    The decision is a pure function of the request and the budget state:
    the same request against an unchanged budget always gets the same answer.
    """
    estimated = estimate_request_tokens(messages, tools, options, budget.context_window_tokens)
    remaining = budget.remaining_tokens

    if remaining is None or estimated <= remaining:
        return PrecheckResult(ok=True, estimated_tokens=estimated, remaining_tokens=remaining)

    reason = f"Insufficient token budget: request needs ~{estimated} tokens but only {remaining} remain"

    if policy == BudgetPolicy.SKIP:
        logger.debug("Budget precheck skipped optional call: %s", reason)
        return PrecheckResult(
            ok=False,
            skipped=True,
            estimated_tokens=estimated,
            remaining_tokens=remaining,
            reason="budget_predicted_exceed",
        )

    logger.warning("Budget precheck rejected model call: %s", reason)
    salvage = partial if partial is not None and not partial.is_empty else None
    terminal = RunResult(
        success=False,
        status=AgentStatus.FAILED,
        summary=salvage.summary if salvage else "",
        answer=salvage.answer if salvage else "",
        reason=reason,
        steps=steps,
        partial_result=salvage,
    )
    return PrecheckResult(
        ok=False,
        estimated_tokens=estimated,
        remaining_tokens=remaining,
        reason=reason,
        terminal=terminal,
    )
