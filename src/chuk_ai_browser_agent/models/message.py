# chuk_ai_browser_agent/models/message.py
"""
Conversation message models.

A ``Message`` is one provider-facing turn unit. Assistant messages may carry
tool calls; each tool result references exactly one call id. Vision
observations are user messages with an image part plus a caption.

Usage::

    from chuk_ai_browser_agent.models import Message, ToolCall

    call = ToolCall(id="call_1", name="click", arguments={"target": 12})
    window.append(Message.assistant("Clicking search", tool_calls=[call]))
    window.append(Message.tool_result("call_1", "click", {"success": True}))
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, Field

from .enums import MessageRole


class ToolCall(BaseModel):
    """A single tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    def to_provider_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments, default=str)},
        }


class ContentPart(BaseModel):
    """One part of a multi-part message body."""

    type: Literal["text", "image"]
    text: str | None = None
    image_data: str | None = Field(default=None, description="Base64 image payload")
    mime_type: str = "image/png"

    def to_provider_dict(self) -> dict[str, Any]:
        if self.type == "image":
            return {
                "type": "image_url",
                "image_url": {"url": f"data:{self.mime_type};base64,{self.image_data or ''}"},
            }
        return {"type": "text", "text": self.text or ""}


class Message(BaseModel):
    """One conversation turn unit."""

    role: MessageRole
    content: str | list[ContentPart] = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = Field(default=None, description="Tool name on tool-result messages")
    step: int | None = None
    compacted: bool = Field(default=False, description="Set once content was replaced by a placeholder")

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str, step: int | None = None) -> Message:
        return cls(role=MessageRole.USER, content=text, step=step)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: list[ToolCall] | None = None,
        step: int | None = None,
    ) -> Message:
        return cls(role=MessageRole.ASSISTANT, content=text, tool_calls=tool_calls or None, step=step)

    @classmethod
    def tool_result(
        cls,
        tool_call_id: str,
        name: str,
        result: Any,
        step: int | None = None,
    ) -> Message:
        content = result if isinstance(result, str) else json.dumps(result, default=str)
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id, name=name, step=step)

    @classmethod
    def vision(
        cls,
        caption: str,
        image_data: str,
        mime_type: str = "image/png",
        step: int | None = None,
    ) -> Message:
        parts = [
            ContentPart(type="text", text=caption),
            ContentPart(type="image", image_data=image_data, mime_type=mime_type),
        ]
        return cls(role=MessageRole.USER, content=parts, step=step)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def has_tool_calls(self) -> bool:
        return self.role == MessageRole.ASSISTANT and bool(self.tool_calls)

    @property
    def is_vision(self) -> bool:
        if not isinstance(self.content, list):
            return False
        return any(part.type == "image" for part in self.content)

    @property
    def text(self) -> str:
        """Plain-text view of the content (image parts dropped)."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if part.type == "text" and part.text)

    @property
    def char_size(self) -> int:
        size = len(self.text)
        if self.tool_calls:
            size += sum(len(c.name) + len(json.dumps(c.arguments, default=str)) for c in self.tool_calls)
        return size

    def to_provider_dict(self) -> dict[str, Any]:
        """Render in the OpenAI-style chat format most providers accept."""
        payload: dict[str, Any] = {"role": self.role.value}
        if isinstance(self.content, list):
            payload["content"] = [part.to_provider_dict() for part in self.content]
        else:
            payload["content"] = self.content
        if self.tool_calls:
            payload["tool_calls"] = [call.to_provider_dict() for call in self.tool_calls]
        if self.role == MessageRole.TOOL:
            payload["tool_call_id"] = self.tool_call_id
        return payload
