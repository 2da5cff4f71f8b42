# chuk_ai_browser_agent/memory/models.py
"""Models for the conversation memory subsystem."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.models import RetrievalSource


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Retrieval
# =============================================================================


class RetrievalEntry(BaseModel):
    """A condensed history fragment in retrieval memory."""

    id: int
    step: int | None = None
    source: RetrievalSource = RetrievalSource.EVICTED_TURN
    text: str
    created_at: datetime = Field(default_factory=_utcnow)


class RetrievalHit(BaseModel):
    """A scored retrieval match."""

    entry: RetrievalEntry
    score: float
    cosine: float
    lexical: float

    def format(self) -> str:
        step = self.entry.step if self.entry.step is not None else "?"
        return f"- [step {step} | {self.entry.source.value} | {self.score:.2f}] {self.entry.text}"


class RetrievalQuery(BaseModel):
    """Inputs the query string is built from."""

    goal: str = ""
    facts: list[str] = Field(default_factory=list)
    unknowns: list[str] = Field(default_factory=list)
    scratch_keys: list[str] = Field(default_factory=list)
    recent_actions: list[str] = Field(default_factory=list)

    def to_text(self) -> str:
        parts = [self.goal, *self.facts, *self.unknowns, *self.scratch_keys, *self.recent_actions]
        return " ".join(p for p in parts if p)


class RetrievalSnapshot(BaseModel):
    """Serializable retrieval memory contents."""

    entries: list[RetrievalEntry] = Field(default_factory=list)
    next_id: int = 1


# =============================================================================
# Summary
# =============================================================================


class HistorySummaryState(BaseModel):
    """Running summary plus the queue of evicted chunks awaiting compaction."""

    running: str = ""
    pending: list[str] = Field(default_factory=list)
    pending_message_counts: list[int] = Field(default_factory=list)
    evicted_messages: int = 0
    evicted_chars: int = 0
    summarized_chunks: int = 0
    summarized_messages: int = 0
    updated_at: datetime | None = None

    @property
    def pending_chars(self) -> int:
        return sum(len(chunk) for chunk in self.pending)


class SummaryOutcome(BaseModel):
    """Result of one summarization attempt."""

    summarized: bool = False
    mode: str | None = None  # "model" | "fallback"
    reason: str | None = None
    drained_chunks: int = 0


# =============================================================================
# Window
# =============================================================================


class TrimReport(BaseModel):
    """Result of a trim pass."""

    removed: int = 0
    removed_groups: int = 0
    removed_chars: int = 0


class CompactionReport(BaseModel):
    """Result of a heavy-payload compaction pass."""

    eligible: int = 0
    compacted: int = 0
    chars_saved: int = 0
    vision_reduced: int = 0
