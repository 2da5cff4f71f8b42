# chuk_ai_browser_agent/agent/reflection.py
"""
Reflection state: what the run knows, what it still needs, and how far along it is.

The goal is split into sub-goals when it is created (or, for single-part
goals, from an approved plan). Every tool result is matched against the
open sub-goals by keyword; a successful content read that mentions a
sub-goal's keywords completes it. Saved progress becomes facts.

Facts and unknowns (the open sub-goals) feed the retrieval query, the
task-state message shows the tracker, and a run that ends early reports
the open sub-goals as its remaining work.

Usage::

    reflection = ReflectionState.for_goal("find the mug price, then check shipping")
    reflection.record_action(step=0, tool="get_page_text", args={}, result=result)
    reflection.unknowns  # open sub-goals
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.guards import extract_goal_subtasks, is_navigate_only
from chuk_ai_browser_agent.guards.constants import CONTENT_READ_TOOLS
from chuk_ai_browser_agent.guards.coverage import (
    MAX_SUBTASKS,
    action_evidence_text,
    extract_coverage_keywords,
    keyword_hits,
    observation_text,
)
from chuk_ai_browser_agent.utils import truncate_text

logger = logging.getLogger(__name__)

MAX_FACTS = 16
MAX_EVIDENCE = 4
HIGH_SIGNAL_CHARS = 40
BLOCKING_CODES = frozenset({"SITE_BLOCKED", "POLICY_CONFLICT", "ACTION_LOOP_GUARD"})

_PLAN_STEP_RE = re.compile(r"^\s*(?:\d+[.)]|[-*])\s+(.+?)\s*$", re.MULTILINE)


class SubGoalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class SubGoal(BaseModel):
    """One tracked part of the goal."""

    id: str
    text: str
    status: SubGoalStatus = SubGoalStatus.PENDING
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    attempts: int = 0
    evidence: list[str] = Field(default_factory=list)
    last_tool: str = ""
    last_step: int = -1

    @property
    def is_open(self) -> bool:
        return self.status != SubGoalStatus.COMPLETED

    def add_evidence(self, text: str) -> None:
        text = re.sub(r"\s+", " ", text).strip()[:220]
        if text and text not in self.evidence:
            self.evidence = [text, *self.evidence][:MAX_EVIDENCE]


def _sub_goals(texts: Iterable[str]) -> list[SubGoal]:
    return [SubGoal(id=f"sg_{i + 1}", text=text.strip()[:220]) for i, text in enumerate(texts) if text.strip()]


class ReflectionState(BaseModel):
    """Facts, open questions and sub-goal progress for one run."""

    goal: str = ""
    subtasks: list[str] = Field(default_factory=list, description="Goal parts the done check requires")
    navigate_only: bool = False
    sub_goals: list[SubGoal] = Field(default_factory=list)
    facts: list[str] = Field(default_factory=list)

    @classmethod
    def for_goal(cls, goal: str) -> ReflectionState:
        subtasks = extract_goal_subtasks(goal)
        texts = subtasks or ([goal] if goal.strip() else [])
        return cls(
            goal=goal,
            subtasks=subtasks,
            navigate_only=is_navigate_only(goal),
            sub_goals=_sub_goals(texts[:MAX_SUBTASKS]),
        )

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def unknowns(self) -> list[str]:
        return self.remaining()

    @property
    def progress(self) -> float:
        """Rough 0..1 progress estimate, weighted towards completed sub-goals."""
        unknowns = len(self.unknowns)
        facts_ratio = min(len(self.facts) / 8, 1.0)
        evidence_ratio = len(self.facts) / max(len(self.facts) + unknowns, 1)
        if not self.sub_goals:
            return round(0.6 * facts_ratio + 0.4 * evidence_ratio, 3)
        done = sum(1 for sg in self.sub_goals if sg.status == SubGoalStatus.COMPLETED)
        ratio = done / len(self.sub_goals)
        return round(0.7 * ratio + 0.2 * evidence_ratio + 0.1 * facts_ratio, 3)

    def remaining(self, limit: int = 6) -> list[str]:
        return [sg.text for sg in self.sub_goals if sg.is_open][:limit]

    def tracker_text(self, max_items: int = 6) -> str:
        items = self.sub_goals[:max_items]
        if not items:
            return ""
        completed = sum(1 for sg in items if sg.status == SubGoalStatus.COMPLETED)
        blocked = sum(1 for sg in items if sg.status == SubGoalStatus.BLOCKED)
        header = f"Progress: {completed}/{len(items)} completed"
        if blocked:
            header += f", {blocked} blocked"
        lines = [header]
        for sg in items:
            line = f"- [{sg.status.value}] {sg.text} (conf={round(sg.confidence * 100)}%, attempts={sg.attempts})"
            if sg.evidence:
                line += f"; evidence: {truncate_text(sg.evidence[0], 120)}"
            lines.append(line)
        return "\n".join(lines)

    def best_effort_answer(self) -> str:
        parts = []
        if self.facts:
            parts.append("Collected findings:\n" + "\n".join(f"- {f}" for f in self.facts))
        if self.facts and self.unknowns:
            parts.append("Potential gaps:\n" + "\n".join(f"- {u}" for u in self.unknowns))
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def seed_plan(self, plan: str) -> bool:
        """Use an approved plan's steps as sub-goals for a single-part goal."""
        if len(self.subtasks) >= 2 or any(sg.attempts for sg in self.sub_goals):
            return False
        steps = [s for s in _PLAN_STEP_RE.findall(plan) if len(s) >= 6]
        if len(steps) < 2:
            return False
        self.sub_goals = _sub_goals(steps[:MAX_SUBTASKS])
        logger.debug("Seeded %d sub-goals from the approved plan", len(self.sub_goals))
        return True

    def record_action(
        self,
        step: int,
        tool: str,
        args: Mapping[str, Any] | None,
        result: Mapping[str, Any] | None,
    ) -> bool:
        """Update sub-goals from one tool result. Returns True when one was completed."""
        if not self.sub_goals:
            return False
        result = result or {}
        evidence = action_evidence_text(tool, args, result)
        targets = self._match(evidence)
        if not targets:
            fallback = next((sg for sg in self.sub_goals if sg.status == SubGoalStatus.IN_PROGRESS), None)
            fallback = fallback or next((sg for sg in self.sub_goals if sg.status == SubGoalStatus.PENDING), None)
            targets = [fallback] if fallback else []

        success = result.get("success") is not False
        page_text = observation_text(result)
        high_signal = success and tool in CONTENT_READ_TOOLS and len(page_text) >= HIGH_SIGNAL_CHARS
        completed = False

        for sg in targets:
            sg.attempts += 1
            sg.last_tool = tool
            sg.last_step = step
            sg.add_evidence(evidence)

            if not success:
                if str(result.get("code") or "") in BLOCKING_CODES:
                    sg.status = SubGoalStatus.BLOCKED
                    sg.confidence = min(max(sg.confidence, 0.05), 0.35)
                else:
                    if sg.status == SubGoalStatus.PENDING:
                        sg.status = SubGoalStatus.IN_PROGRESS
                    sg.confidence = max(0.05, sg.confidence - 0.08)
                continue

            if sg.status == SubGoalStatus.PENDING:
                sg.status = SubGoalStatus.IN_PROGRESS
            sg.confidence = min(0.95, max(sg.confidence, 0.2) + (0.28 if high_signal else 0.12))

            keywords = extract_coverage_keywords(sg.text)
            if high_signal and keywords and keyword_hits(keywords, evidence.lower()) >= min(2, len(keywords)):
                sg.status = SubGoalStatus.COMPLETED
                sg.confidence = max(sg.confidence, 0.85)
                self.add_fact(f"{sg.text}: {truncate_text(page_text, 160)}")
                completed = True
        return completed

    def record_saved(self, data: Mapping[str, Any]) -> None:
        for key, value in data.items():
            text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
            self.add_fact(f"{key}: {text}")

    def add_fact(self, fact: str) -> None:
        fact = truncate_text(fact.strip(), 280)
        if fact and fact not in self.facts:
            self.facts = [*self.facts, fact][-MAX_FACTS:]

    def apply_coverage(self, uncovered: Iterable[str]) -> None:
        """Reconcile sub-goals with a done-coverage verdict."""
        missing = {u.strip().lower() for u in uncovered if u.strip()}
        for sg in self.sub_goals:
            if sg.status == SubGoalStatus.BLOCKED:
                continue
            if sg.text.strip().lower() in missing:
                if sg.status == SubGoalStatus.COMPLETED:
                    sg.status = SubGoalStatus.IN_PROGRESS
                sg.confidence = min(sg.confidence, 0.74)
            else:
                sg.status = SubGoalStatus.COMPLETED
                sg.confidence = max(sg.confidence, 0.9)

    def _match(self, evidence: str, limit: int = 2) -> list[SubGoal]:
        corpus = evidence.lower()
        scored: list[tuple[float, SubGoal]] = []
        for sg in self.sub_goals:
            if not sg.is_open:
                continue
            keywords = extract_coverage_keywords(sg.text)
            hits = keyword_hits(keywords, corpus) if keywords else 0
            if hits:
                scored.append((hits / len(keywords) * 10 + hits, sg))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [sg for _, sg in scored[:limit]]
