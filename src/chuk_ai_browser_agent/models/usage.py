# chuk_ai_browser_agent/models/usage.py
"""Token usage accounting."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class TokenUsage(BaseModel):
    """Token usage reported by a model provider for one or more calls."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @classmethod
    def from_provider(cls, usage: dict[str, Any] | None) -> TokenUsage:
        """
        Normalize a provider usage dict.

        Accepts ``prompt_tokens``/``completion_tokens`` as well as the
        ``input_tokens``/``output_tokens`` spelling. A missing total is
        derived from the parts.
        """
        if not usage:
            return cls()
        prompt = _as_int(usage.get("prompt_tokens", usage.get("input_tokens", 0)))
        completion = _as_int(usage.get("completion_tokens", usage.get("output_tokens", 0)))
        total = _as_int(usage.get("total_tokens", 0)) or prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def add(self, other: TokenUsage) -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens
