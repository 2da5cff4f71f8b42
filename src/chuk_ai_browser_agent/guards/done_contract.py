# chuk_ai_browser_agent/guards/done_contract.py
"""
Done-contract validation and repair.

A ``done`` call only ends the run when both ``summary`` and ``answer`` are
non-empty and the evidence behind them is a structural read: if the most
recent qualifying action was a free-text search, a structural read must
follow before done is accepted.

Two more checks run after the contract: ``check_premature_done`` rejects a
done with no successful work behind it, and ``validate_done_coverage``
requires a read after the last page load plus evidence for every part of
a multi-part goal (see ``coverage``).

Models sometimes drop tool-call fields and put the values in their prose.
``repair_done_args`` recovers empty fields from the reasoning text, first
as strict JSON, then as labeled lines (``summary: ...`` / ``answer: ...``).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.utils import extract_json_object

from .constants import (
    CONTENT_READ_TOOLS,
    DONE_CONTRACT_FAILED,
    DONE_COVERAGE_FAILED,
    PAGE_LOAD_TOOLS,
    PREMATURE_DONE,
    STRUCTURAL_READ_TOOLS,
    TEXT_SEARCH_TOOLS,
)
from .coverage import action_evidence_text, observation_text, uncovered_subtasks

logger = logging.getLogger(__name__)

RECENT_ACTIONS = 8
MAX_SNIPPETS = 24
MIN_READ_CHARS = 40
READ_AFTER_NAVIGATE = "page not read after last navigation"

_LABELED_LINE_RE = re.compile(
    r"^[\s>*_#-]*(summary|answer)[*_]*\s*[:=]\s*(.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


class DoneRepair(BaseModel):
    """Done arguments after repair."""

    summary: str = ""
    answer: str = ""
    repaired: bool = False
    source: Literal["json", "labeled"] | None = None


class DoneValidation(BaseModel):
    """Outcome of the contract check."""

    ok: bool
    code: str | None = None
    error: str | None = None
    missing: list[str] = Field(default_factory=list)
    uncovered: list[str] = Field(default_factory=list)

    def to_tool_result(self) -> dict[str, Any]:
        payload = {"success": self.ok, "code": self.code, "error": self.error, "missing": self.missing}
        if self.uncovered:
            payload["uncovered"] = self.uncovered
        return payload


class EvidenceTracker(BaseModel):
    """Page-state flags and recent evidence the contract reasons about."""

    last_qualifying: Literal["text_search", "structural_read"] | None = None
    structural_reads: int = 0
    text_searches: int = 0
    actions: int = 0
    successes: int = 0
    recent: list[tuple[str, bool]] = Field(default_factory=list)
    awaiting_read: bool = False
    snippets: list[str] = Field(default_factory=list)

    def record(
        self,
        tool: str,
        success: bool,
        result: Mapping[str, Any] | None = None,
        args: Mapping[str, Any] | None = None,
    ) -> None:
        self.actions += 1
        self.recent = [*self.recent, (tool, success)][-RECENT_ACTIONS:]
        self.note(action_evidence_text(tool, args, result))
        if not success:
            return
        self.successes += 1

        if tool in PAGE_LOAD_TOOLS:
            # a load that already returned readable text counts as read
            self.awaiting_read = len(observation_text(result)) < MIN_READ_CHARS
        elif tool in CONTENT_READ_TOOLS:
            self.awaiting_read = False

        if tool in TEXT_SEARCH_TOOLS:
            self.last_qualifying = "text_search"
            self.text_searches += 1
        elif tool in STRUCTURAL_READ_TOOLS:
            self.last_qualifying = "structural_read"
            self.structural_reads += 1

    def note(self, text: str | None) -> None:
        """Add reasoning or result text to the coverage corpus."""
        text = (text or "").strip()
        if text:
            self.snippets = [*self.snippets, text[:600].lower()][-MAX_SNIPPETS:]

    def corpus(self, *extra: str) -> str:
        return "\n".join([*self.snippets, *(e.lower() for e in extra if e)])


def repair_done_args(summary: Any, answer: Any, reasoning: str | None) -> DoneRepair:
    """Fill empty ``summary``/``answer`` from the assistant's free-form text."""
    repair = DoneRepair(summary=_clean(summary), answer=_clean(answer))
    if (repair.summary and repair.answer) or not reasoning:
        return repair

    parsed = extract_json_object(reasoning)
    if parsed:
        filled = False
        if not repair.summary and _clean(parsed.get("summary")):
            repair.summary = _clean(parsed.get("summary"))
            filled = True
        if not repair.answer and _clean(parsed.get("answer")):
            repair.answer = _clean(parsed.get("answer"))
            filled = True
        if filled:
            repair.repaired = True
            repair.source = "json"

    if repair.summary and repair.answer:
        return repair

    labeled: dict[str, str] = {}
    for match in _LABELED_LINE_RE.finditer(reasoning):
        labeled.setdefault(match.group(1).lower(), match.group(2).strip())

    filled = False
    if not repair.summary and labeled.get("summary"):
        repair.summary = labeled["summary"]
        filled = True
    if not repair.answer and labeled.get("answer"):
        repair.answer = labeled["answer"]
        filled = True
    if filled:
        repair.repaired = True
        repair.source = repair.source or "labeled"

    if repair.repaired:
        logger.debug("Repaired done arguments from reasoning text (%s)", repair.source)
    return repair


def validate_done(summary: str, answer: str, evidence: EvidenceTracker | None = None) -> DoneValidation:
    """Check the done contract; a rejection is a typed, recoverable failure."""
    missing = [name for name, value in (("summary", summary), ("answer", answer)) if not value.strip()]
    if missing:
        return DoneValidation(
            ok=False,
            code=DONE_CONTRACT_FAILED,
            missing=missing,
            error=(
                f"done requires a non-empty summary and answer (missing: {', '.join(missing)}). "
                "Put the final result in the answer field."
            ),
        )

    if evidence is not None and evidence.last_qualifying == "text_search":
        return DoneValidation(
            ok=False,
            code=DONE_CONTRACT_FAILED,
            error=(
                "The latest evidence is a find_text match, which is not enough on its own. "
                "Call get_page_text or read_page to confirm the answer, then call done again."
            ),
        )

    return DoneValidation(ok=True)


def check_premature_done(evidence: EvidenceTracker) -> DoneValidation:
    """Reject done when nothing was accomplished or recent work mostly failed unread."""
    if evidence.actions == 0:
        error = (
            "Completion rejected: you have not performed any actions yet. Read the page first with "
            "read_page or get_page_text, then act on the user's request."
        )
    elif evidence.successes == 0:
        error = (
            "Completion rejected: every action you attempted has failed. Use read_page or get_page_text "
            "to understand the page, navigate to a different URL, or use find to locate targets."
        )
    else:
        recent = evidence.recent
        failures = sum(1 for _, ok in recent if not ok)
        reads = sum(1 for tool, ok in recent if ok and tool in CONTENT_READ_TOOLS)
        if len(recent) < 2 or failures / len(recent) < 0.5 or reads:
            return DoneValidation(ok=True)
        error = (
            "Completion rejected: most recent actions failed and no page content was read. "
            "Navigate to a direct URL, read the page with get_page_text, or try a different site."
        )
    return DoneValidation(ok=False, code=PREMATURE_DONE, error=error)


def validate_done_coverage(
    summary: str,
    answer: str,
    evidence: EvidenceTracker,
    subtasks: Sequence[str] = (),
    navigate_only: bool = False,
) -> DoneValidation:
    """Require a read after the last page load and evidence for every part of the goal."""
    if not navigate_only and evidence.awaiting_read:
        return DoneValidation(
            ok=False,
            code=DONE_COVERAGE_FAILED,
            missing=[READ_AFTER_NAVIGATE],
            error=(
                "Completion rejected: the page was not read after the last navigation. "
                "Call get_page_text or read_page before done."
            ),
        )

    if len(subtasks) < 2:
        return DoneValidation(ok=True)
    uncovered = uncovered_subtasks(subtasks, evidence.corpus(summary, answer))
    if not uncovered:
        return DoneValidation(ok=True)
    logger.debug("Done rejected, uncovered parts: %s", uncovered)
    return DoneValidation(
        ok=False,
        code=DONE_COVERAGE_FAILED,
        uncovered=uncovered,
        error=(
            "Completion rejected: no evidence yet for part of the task: "
            + "; ".join(uncovered)
            + ". Finish these parts, or include what you found for them in the answer."
        ),
    )
