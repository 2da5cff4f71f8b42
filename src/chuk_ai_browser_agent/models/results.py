# chuk_ai_browser_agent/models/results.py
"""Host-facing result and event models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.base_models import DictCompatModel

from .enums import AgentStatus, InterventionKind, StepType
from .usage import TokenUsage


class PartialResult(DictCompatModel):
    """Best-effort output salvaged from a run that did not finish."""

    status: str = "stuck"
    summary: str = ""
    answer: str = ""
    facts: list[str] = Field(default_factory=list)
    remaining_subgoals: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.summary or self.answer or self.facts)


class RunMetrics(DictCompatModel):
    """Counters collected during one run."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    duration_ms: int = 0
    llm_calls: int = 0
    tool_calls: int = 0
    errors: int = 0
    duplicate_tool_calls: int = 0
    self_heals: int = 0
    compactions: int = 0
    step_limit_reached: bool = False
    usage: TokenUsage = Field(default_factory=TokenUsage)

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.finished_at - self.started_at).total_seconds() * 1000)


class RunResult(DictCompatModel):
    """Terminal outcome of a run."""

    success: bool
    status: AgentStatus
    summary: str = ""
    answer: str = ""
    reason: str | None = None
    steps: int = 0
    partial_result: PartialResult | None = None
    repaired: bool = Field(default=False, description="done arguments were recovered from the reasoning text")
    metrics: RunMetrics = Field(default_factory=RunMetrics)


class StepEvent(BaseModel):
    """A step record emitted to the host and kept in run history."""

    step: int
    type: StepType
    tool: str | None = None
    args: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    content: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InterventionEvent(BaseModel):
    """A pause request that needs a human decision."""

    kind: InterventionKind
    message: str
    url: str = ""
    domain: str | None = None
