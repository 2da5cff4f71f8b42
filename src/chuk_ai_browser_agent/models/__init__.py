# chuk_ai_browser_agent/models/__init__.py
from .enums import (
    AgentStatus,
    BudgetPolicy,
    InterventionKind,
    MessageRole,
    PressureLevel,
    RetrievalSource,
    StepType,
)
from .message import ContentPart, Message, ToolCall
from .results import InterventionEvent, PartialResult, RunMetrics, RunResult, StepEvent
from .usage import TokenUsage

__all__ = [
    "AgentStatus",
    "BudgetPolicy",
    "ContentPart",
    "InterventionEvent",
    "InterventionKind",
    "Message",
    "MessageRole",
    "PartialResult",
    "PressureLevel",
    "RetrievalSource",
    "RunMetrics",
    "RunResult",
    "StepEvent",
    "StepType",
    "TokenUsage",
    "ToolCall",
]
