# chuk_ai_browser_agent/agent/checkpoint.py
"""Checkpoint surface: everything needed to resume an interrupted run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.guards import EvidenceTracker, LoopGuardState
from chuk_ai_browser_agent.memory import BudgetState, HistorySummaryState, RetrievalSnapshot
from chuk_ai_browser_agent.models import AgentStatus, Message

from .reflection import ReflectionState


class AgentCheckpoint(BaseModel):
    """Serializable run state."""

    goal: str
    status: AgentStatus
    step: int = 0
    messages: list[Message] = Field(default_factory=list)
    history_summary: HistorySummaryState = Field(default_factory=HistorySummaryState)
    retrieval: RetrievalSnapshot = Field(default_factory=RetrievalSnapshot)
    loop_guard: LoopGuardState = Field(default_factory=LoopGuardState)
    budget: BudgetState = Field(default_factory=BudgetState)
    evidence: EvidenceTracker = Field(default_factory=EvidenceTracker)
    reflection: ReflectionState = Field(default_factory=ReflectionState)
    scratchpad: dict[str, Any] = Field(default_factory=dict)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> AgentCheckpoint:
        return cls.model_validate_json(data)
