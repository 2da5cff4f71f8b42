# chuk_ai_browser_agent/utils.py
"""Small text helpers shared by memory, guards and the orchestrator."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\u200b-\u200f\u2028\u2029\u2060\ufeff]")


def truncate_text(text: str, max_chars: int, suffix: str = "...") -> str:
    if len(text) <= max_chars:
        return text
    if max_chars <= len(suffix):
        return text[:max_chars]
    return text[: max_chars - len(suffix)].rstrip() + suffix


def tail_text(text: str, max_chars: int) -> str:
    """Keep the most recent ``max_chars`` characters, starting at a line boundary when possible."""
    if len(text) <= max_chars:
        return text
    tail = text[-max_chars:]
    newline = tail.find("\n")
    if 0 <= newline < max_chars // 4:
        tail = tail[newline + 1 :]
    return tail


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """
    Parse the first JSON object embedded in free-form model text.

    Handles fenced code blocks and leading/trailing prose. Returns None
    when nothing parses to a dict.
    """
    if not text:
        return None
    candidate = _FENCE_RE.sub("", text.strip())
    try:
        parsed = json.loads(candidate)
    except (ValueError, TypeError):
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(candidate[start : end + 1])
        except (ValueError, TypeError):
            return None
    return parsed if isinstance(parsed, dict) else None


def normalize_user_text(text: str | None) -> str:
    """Strip control and zero-width characters and surrounding whitespace."""
    if not text:
        return ""
    return _CONTROL_RE.sub("", str(text)).strip()
