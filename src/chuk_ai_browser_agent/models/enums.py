# chuk_ai_browser_agent/models/enums.py
"""Enums shared across the runtime."""

from enum import Enum, IntEnum

# =============================================================================
# Conversation
# =============================================================================


class MessageRole(str, Enum):
    """Roles in the provider-facing conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class RetrievalSource(str, Enum):
    """Origin tag of a retrieval memory entry."""

    EVICTED_TURN = "evicted_turn"
    RUNNING_SUMMARY = "running_summary"
    VISION_SUMMARY = "vision_summary"


# =============================================================================
# Budget
# =============================================================================


class PressureLevel(IntEnum):
    """Leveled context pressure (0..2)."""

    NORMAL = 0
    HIGH = 1  # >= warn ratio
    CRITICAL = 2  # >= compact ratio


class BudgetPolicy(str, Enum):
    """What a failed budget precheck does."""

    SKIP = "skip"  # optional work is silently dropped
    TERMINAL = "terminal"  # the run ends with an insufficient-budget result


# =============================================================================
# Orchestrator
# =============================================================================


class AgentStatus(str, Enum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED_WAITING_USER = "paused_waiting_user"
    DONE = "done"
    FAILED = "failed"


class InterventionKind(str, Enum):
    """Reasons the run pauses for a human."""

    CAPTCHA = "captcha"
    LOGIN = "login"
    JS_DOMAIN_PERMISSION = "js_domain_permission"


class StepType(str, Enum):
    """Kinds of step events emitted to the host."""

    THOUGHT = "thought"
    ACTION = "action"
    ERROR = "error"
    WARNING = "warning"
    PAUSE = "pause"
    SELF_HEAL = "self_heal"
    COMPACTION = "compaction"
    PLAN = "plan"
