# chuk_ai_browser_agent/__init__.py
"""
CHUK AI Browser Agent - a bounded step-loop runtime for tool-using LLM agents.

Usage::

    from chuk_ai_browser_agent import StepLoopOrchestrator, AgentConfig

    agent = StepLoopOrchestrator(provider, driver, tools=browser_tools, config=AgentConfig.from_env())
    result = await agent.run("Find the opening hours of the city library")
    print(result.success, result.answer)
"""

import logging

from chuk_ai_browser_agent.agent import (
    AgentCheckpoint,
    AgentConfig,
    AutomationDriver,
    ChatResponse,
    DiagnosticsSink,
    ModelProvider,
    PageInfo,
    StepLoopOrchestrator,
    ToolDefinition,
)
from chuk_ai_browser_agent.exceptions import (
    AgentRuntimeError,
    ProviderCapabilityError,
    ProviderError,
    RateLimitError,
    ToolArgumentError,
)
from chuk_ai_browser_agent.models import (
    AgentStatus,
    InterventionEvent,
    InterventionKind,
    Message,
    PartialResult,
    RunMetrics,
    RunResult,
    StepEvent,
    StepType,
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AgentCheckpoint",
    "AgentConfig",
    "AgentRuntimeError",
    "AgentStatus",
    "AutomationDriver",
    "ChatResponse",
    "DiagnosticsSink",
    "InterventionEvent",
    "InterventionKind",
    "Message",
    "ModelProvider",
    "PageInfo",
    "PartialResult",
    "ProviderCapabilityError",
    "ProviderError",
    "RateLimitError",
    "RunMetrics",
    "RunResult",
    "StepEvent",
    "StepLoopOrchestrator",
    "StepType",
    "ToolArgumentError",
    "ToolDefinition",
    "__version__",
]
