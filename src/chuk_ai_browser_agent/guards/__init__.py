# chuk_ai_browser_agent/guards/__init__.py
"""Loop guards and the done contract.

Components:
- GuardTable / GuardRule: declarative (tool, error code) -> policy table
- LoopGuard: per-run failure counters, self-heal budget, progress watchdog,
  provider-error backoff
- done contract: repair and validation of ``done`` arguments, premature-done
  and goal-coverage checks
- coverage: goal sub-task extraction and keyword evidence matching

Verdicts use ``GuardResult``/``GuardVerdict`` from chuk-tool-processor.
"""

from chuk_tool_processor.guards import GuardResult, GuardVerdict

from chuk_ai_browser_agent.guards.constants import ErrorFamily, error_family
from chuk_ai_browser_agent.guards.coverage import extract_goal_subtasks, is_navigate_only, uncovered_subtasks
from chuk_ai_browser_agent.guards.done_contract import (
    DoneRepair,
    DoneValidation,
    EvidenceTracker,
    check_premature_done,
    repair_done_args,
    validate_done,
    validate_done_coverage,
)
from chuk_ai_browser_agent.guards.loop_guard import (
    GuardDecision,
    LoopGuard,
    LoopGuardConfig,
    LoopGuardState,
    ProviderErrorDecision,
)
from chuk_ai_browser_agent.guards.policy import GuardRule, GuardTable

__all__ = [
    "DoneRepair",
    "DoneValidation",
    "ErrorFamily",
    "EvidenceTracker",
    "GuardDecision",
    "GuardResult",
    "GuardRule",
    "GuardTable",
    "GuardVerdict",
    "LoopGuard",
    "LoopGuardConfig",
    "LoopGuardState",
    "ProviderErrorDecision",
    "check_premature_done",
    "error_family",
    "extract_goal_subtasks",
    "is_navigate_only",
    "repair_done_args",
    "uncovered_subtasks",
    "validate_done",
    "validate_done_coverage",
]
