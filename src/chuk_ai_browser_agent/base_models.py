# chuk_ai_browser_agent/base_models.py
"""Base model with dict-style access for host-facing results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class DictCompatModel(BaseModel):
    """Base for result models that hosts may consume as plain dicts.

    Allows ``result["answer"]``, ``result.get("answer")`` and ``"answer" in result``
    so UI layers that render JSON envelopes keep working on typed results.
    """

    def __getitem__(self, key: str) -> Any:
        return getattr(self, key)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, str):
            return key in type(self).model_fields
        return False

    def get(self, key: str, default: Any = None) -> Any:
        if key in self:
            return getattr(self, key)
        return default

    def __eq__(self, other: object) -> bool:
        if isinstance(other, dict):
            return self.model_dump() == other
        return super().__eq__(other)
