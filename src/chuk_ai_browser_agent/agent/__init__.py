# chuk_ai_browser_agent/agent/__init__.py
"""Step-loop orchestration and the pieces it drives.

Components:
- StepLoopOrchestrator / AgentConfig: the observe/decide/act loop
- protocols: ModelProvider and AutomationDriver boundaries
- tool_args: per-tool argument normalization
- serialization: tool result rendering for the model
- intervention: captcha / login wall detection
- reflection: sub-goal tracking, facts and unknowns for one run
- checkpoint: resumable run state
"""

from chuk_ai_browser_agent.agent.checkpoint import AgentCheckpoint
from chuk_ai_browser_agent.agent.diagnostics import DiagnosticsSink, TelemetryRecord
from chuk_ai_browser_agent.agent.intervention import detect_intervention
from chuk_ai_browser_agent.agent.orchestrator import AgentConfig, StepLoopOrchestrator
from chuk_ai_browser_agent.agent.prompts import build_system_prompt, select_prompt_variant
from chuk_ai_browser_agent.agent.protocols import (
    AutomationDriver,
    ChatOptions,
    ChatResponse,
    ModelProvider,
    PageInfo,
    ToolDefinition,
)
from chuk_ai_browser_agent.agent.reflection import ReflectionState, SubGoal, SubGoalStatus
from chuk_ai_browser_agent.agent.scratchpad import merge_scratchpad
from chuk_ai_browser_agent.agent.serialization import SerializedResult, serialize_tool_result
from chuk_ai_browser_agent.agent.tool_args import ToolArgs, normalize_tool_args
from chuk_ai_browser_agent.agent.tools import CORE_TOOLS, resolve_tools

__all__ = [
    "AgentCheckpoint",
    "AgentConfig",
    "AutomationDriver",
    "CORE_TOOLS",
    "ChatOptions",
    "ChatResponse",
    "DiagnosticsSink",
    "ModelProvider",
    "PageInfo",
    "ReflectionState",
    "SerializedResult",
    "StepLoopOrchestrator",
    "SubGoal",
    "SubGoalStatus",
    "TelemetryRecord",
    "ToolArgs",
    "ToolDefinition",
    "build_system_prompt",
    "detect_intervention",
    "merge_scratchpad",
    "normalize_tool_args",
    "resolve_tools",
    "select_prompt_variant",
    "serialize_tool_result",
]
