# chuk_ai_browser_agent/agent/scratchpad.py
"""Scratchpad merging for the ``save_progress`` tool."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

MAX_KEY_CHARS = 80


def _merge_value(existing: Any, value: Any) -> Any:
    if isinstance(existing, list):
        incoming = value if isinstance(value, list) else [value]
        return existing + [v for v in incoming if v not in existing]
    if isinstance(existing, dict) and isinstance(value, dict):
        return {**existing, **value}
    return value


def merge_scratchpad(scratchpad: dict[str, Any], data: dict[str, Any], max_chars: int = 4000) -> list[str]:
    """
    Merge ``data`` into ``scratchpad`` in place; returns the keys written.

    Lists are concatenated without duplicates, dicts shallow-merged, scalars
    replaced. Oldest keys are dropped while the serialized size exceeds
    ``max_chars``.
    """
    written: list[str] = []
    for raw_key, value in data.items():
        key = str(raw_key).strip()[:MAX_KEY_CHARS]
        if not key or value is None:
            continue
        scratchpad[key] = _merge_value(scratchpad.get(key), value)
        written.append(key)

    while len(json.dumps(scratchpad, default=str, ensure_ascii=False)) > max_chars:
        droppable = [k for k in scratchpad if k not in written]
        if not droppable:
            break
        logger.debug("Scratchpad over %d chars, dropping %s", max_chars, droppable[0])
        del scratchpad[droppable[0]]
    return written
