# chuk_ai_browser_agent/agent/protocols.py
"""
Boundaries to the external collaborators.

The orchestrator depends only on these shapes:

- ``ModelProvider.chat(messages, tools, options)`` returning text, tool
  calls and usage
- ``AutomationDriver.execute(tool, args)`` returning the uniform
  ``{"success": bool, "code"?: str, "error"?: str, ...data}`` envelope
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field, field_validator

from chuk_ai_browser_agent.models import ToolCall


class ChatOptions(BaseModel):
    """Options recognized by providers."""

    max_tokens: int | None = None
    temperature: float | None = None
    tool_choice: Literal["required", "auto"] | None = None
    thinking: bool | None = None
    disable_thinking: bool = False

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _coerce_tool_call(raw: Any) -> Any:
    """Accept OpenAI-style ``{"id", "function": {"name", "arguments": "<json>"}}`` dicts."""
    if not isinstance(raw, dict):
        return raw
    function = raw.get("function")
    name = raw.get("name")
    arguments: Any = raw.get("arguments", raw.get("input"))
    if isinstance(function, dict):
        name = function.get("name", name)
        arguments = function.get("arguments", arguments)
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except ValueError:
            arguments = {"_raw": arguments}
    return {
        "id": raw.get("id") or f"call_{uuid.uuid4().hex[:12]}",
        "name": name or "",
        "arguments": arguments if isinstance(arguments, dict) else {},
    }


class ChatResponse(BaseModel):
    """Normalized model reply."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: dict[str, Any] | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _tool_calls(cls, v: Any) -> Any:
        if not v:
            return []
        return [_coerce_tool_call(call) for call in v]


class ToolDefinition(BaseModel):
    """A model-facing tool declaration."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_provider_dict(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": self.parameters},
        }


class PageInfo(BaseModel):
    """What the driver reports about the active page."""

    tab_id: Any = None
    url: str = ""
    title: str = ""
    has_password_field: bool = False
    has_otp_field: bool = False

    @property
    def is_blank(self) -> bool:
        return not self.url or self.url.startswith(("about:", "chrome://newtab"))


@runtime_checkable
class ModelProvider(Protocol):
    """LLM provider boundary."""

    provider_id: str
    model: str
    supports_tools: bool
    supports_vision: bool
    context_window_tokens: int | None

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> ChatResponse | dict[str, Any]: ...


@runtime_checkable
class AutomationDriver(Protocol):
    """Browser automation boundary."""

    async def execute(self, tool: str, args: dict[str, Any]) -> dict[str, Any]: ...

    async def page_info(self) -> PageInfo | dict[str, Any]: ...

    async def wait_for_navigation(self, timeout_s: float) -> bool: ...
