# chuk_ai_browser_agent/exceptions.py
"""Exception hierarchy for the agent runtime.

Only the orchestrator raises past its own boundary; every component below it
returns result values. These types describe what the model provider or the
caller can throw *into* the runtime.
"""

from __future__ import annotations

import re

_RATE_LIMIT_RE = re.compile(r"429|rate.?limit", re.IGNORECASE)


class AgentRuntimeError(Exception):
    """Base class for all runtime errors."""


class ProviderError(AgentRuntimeError):
    """A model provider call failed."""

    def __init__(self, message: str, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class RateLimitError(ProviderError):
    """The provider rejected the call because of rate limiting."""

    def __init__(self, message: str = "Rate limit exceeded", status: int | None = 429) -> None:
        super().__init__(message, code="RATE_LIMIT_EXCEEDED", status=status)


class ProviderCapabilityError(AgentRuntimeError):
    """The configured provider cannot run the agent (e.g. no tool calling)."""


class ToolArgumentError(AgentRuntimeError):
    """Tool arguments could not be normalized."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool


def is_rate_limit_error(err: BaseException) -> bool:
    """Classify an exception raised by a provider as rate limiting."""
    if isinstance(err, RateLimitError):
        return True
    if getattr(err, "code", None) == "RATE_LIMIT_EXCEEDED":
        return True
    if getattr(err, "status", None) == 429:
        return True
    return bool(_RATE_LIMIT_RE.search(str(err)))
