# chuk_ai_browser_agent/guards/policy.py
"""
Declarative loop-guard policy.

One table maps (tool, error code) to how repeated failures are handled:
how many consecutive repeats trigger the guard, whether it may ever turn
into a hard failure, whether a self-heal re-observation runs, and which
recovery instruction is injected. Rules are matched most specific first:
exact tool + exact code, then tool + family, then any tool.

Usage::

    table = GuardTable.default(primary_tool="click")
    rule = table.lookup("click", "MISSING_TARGET")
    rule.self_heal  # True
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from .constants import (
    DONE_CONTRACT_FAILED,
    PRIMARY_INTERACTION_TOOL,
    ErrorFamily,
    error_family,
)

logger = logging.getLogger(__name__)

ANY_TOOL = "*"

# =============================================================================
# Recovery prompt templates
# =============================================================================

TARGET_PROMPT = (
    "[SYSTEM] {tool} failed {count} times in a row with {code}: the target id you are using "
    "does not exist on the current page. Do NOT reuse old ids. Call read_page or find to get "
    "fresh element ids, then retry with an id from that result."
)
TARGET_SELF_HEAL_PROMPT = (
    "[SYSTEM] {tool} failed {count} times with {code}. A fresh page observation was attached below. "
    "Pick the target from it (or from the screenshot) instead of repeating the previous id."
)
VANISHED_PROMPT = (
    "[SYSTEM] The element for {tool} disappeared {count} times ({code}). The page is changing under you: "
    "wait for it to settle (wait_for) and re-read the page before acting again."
)
INVALID_ACTION_PROMPT = (
    "[SYSTEM] {tool} was rejected {count} times with {code}. This element does not support that action. "
    "Use a different tool or a different element (e.g. select for dropdowns, type for inputs)."
)
WAIT_TIMEOUT_PROMPT = (
    "[SYSTEM] {tool} timed out {count} times ({code}). Stop waiting for this condition; check the "
    "page state with get_page_text and continue with what is actually there."
)
EXTRACTION_FIRST_PROMPT = (
    "[SYSTEM] done was rejected {count} times. Before calling done again, extract the answer from the page: "
    "call get_page_text or read_page, then call done with a non-empty summary and answer taken from that result."
)
GENERIC_PROMPT = (
    "[SYSTEM] STOP and RETHINK. {tool} failed {count} times in a row with {code}. "
    "Repeating the same call will not work. Try a different approach or a different tool."
)


# =============================================================================
# Rules
# =============================================================================


class GuardRule(BaseModel):
    """One row of the guard table."""

    tool: str = Field(default=ANY_TOOL, description="Tool name or '*'")
    codes: frozenset[str] = Field(default_factory=frozenset, description="Exact codes; empty = match by family")
    family: ErrorFamily | None = Field(default=None, description="Code family; None = any")
    threshold: int = Field(default=3, ge=1, description="Consecutive repeats that trigger the guard")
    recoverable: bool = Field(default=False, description="Never escalates to a hard failure")
    max_activations: int = Field(default=2, ge=1, description="Activations for the same code before hard failure")
    self_heal: bool = False
    screenshot_hint: bool = False
    prompt: str = GENERIC_PROMPT

    def matches(self, tool: str, code: str) -> bool:
        if self.tool != ANY_TOOL and self.tool != tool:
            return False
        if self.codes:
            return code in self.codes
        if self.family is not None:
            return error_family(code) == self.family
        return True

    @property
    def specificity(self) -> int:
        score = 0
        if self.tool != ANY_TOOL:
            score += 4
        if self.codes:
            score += 2
        elif self.family is not None:
            score += 1
        return score

    def render(self, tool: str, code: str, count: int) -> str:
        return self.prompt.format(tool=tool, code=code, count=count)


class GuardTable:
    """Ordered lookup over guard rules."""

    def __init__(self, rules: Iterable[GuardRule]) -> None:
        # stable sort keeps declaration order among equally specific rules
        self.rules = sorted(rules, key=lambda r: -r.specificity)
        if not any(r.tool == ANY_TOOL and not r.codes and r.family is None for r in self.rules):
            self.rules.append(GuardRule())

    def lookup(self, tool: str, code: str) -> GuardRule:
        for rule in self.rules:
            if rule.matches(tool, code):
                return rule
        return self.rules[-1]

    @classmethod
    def default(cls, primary_tool: str = PRIMARY_INTERACTION_TOOL) -> GuardTable:
        return cls(
            [
                GuardRule(
                    tool=primary_tool,
                    family=ErrorFamily.TARGET,
                    threshold=3,
                    recoverable=True,
                    self_heal=True,
                    screenshot_hint=True,
                    prompt=TARGET_SELF_HEAL_PROMPT,
                ),
                GuardRule(
                    tool=primary_tool,
                    family=ErrorFamily.VANISHED,
                    threshold=3,
                    recoverable=True,
                    self_heal=True,
                    prompt=VANISHED_PROMPT,
                ),
                GuardRule(
                    tool="done",
                    codes=frozenset({DONE_CONTRACT_FAILED}),
                    threshold=2,
                    recoverable=True,
                    prompt=EXTRACTION_FIRST_PROMPT,
                ),
                GuardRule(family=ErrorFamily.TARGET, threshold=3, prompt=TARGET_PROMPT),
                GuardRule(family=ErrorFamily.VANISHED, threshold=3, prompt=VANISHED_PROMPT),
                GuardRule(family=ErrorFamily.INVALID_ACTION, threshold=3, prompt=INVALID_ACTION_PROMPT),
                GuardRule(family=ErrorFamily.WAIT_TIMEOUT, threshold=3, prompt=WAIT_TIMEOUT_PROMPT),
                GuardRule(threshold=3, prompt=GENERIC_PROMPT),
            ]
        )
