# chuk_ai_browser_agent/memory/tokens.py
"""
Token estimation without a tokenizer.

All estimates are length-proportional (~4 chars per token) with fixed
framing overheads. They are deliberately conservative: the budget layer only
needs to be right about order of magnitude, never exact.

Usage::

    from chuk_ai_browser_agent.memory.tokens import estimate_message_tokens

    tokens = estimate_message_tokens(window.messages)
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from typing import Any

from chuk_ai_browser_agent.models import Message

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
TOOL_CALL_OVERHEAD_TOKENS = 8
IMAGE_PART_TOKENS = 1100
TOOL_SCHEMA_OVERHEAD_TOKENS = 12

# Output reservations when no explicit max is given
REQUIRED_TOOL_OUTPUT_TOKENS = 1024
DEFAULT_OUTPUT_TOKENS = 512
CONTEXT_OUTPUT_FRACTION = 0.05
MIN_OUTPUT_TOKENS = 256
MAX_OUTPUT_TOKENS = 8192


def estimate_tokens(text: str | None) -> int:
    """Length-proportional token estimate for a string."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _estimate_dict_message(message: Mapping[str, Any]) -> int:
    tokens = MESSAGE_OVERHEAD_TOKENS
    content = message.get("content")
    if isinstance(content, str):
        tokens += estimate_tokens(content)
    elif isinstance(content, list):
        for part in content:
            if not isinstance(part, Mapping):
                continue
            if part.get("type") in ("image", "image_url"):
                tokens += IMAGE_PART_TOKENS
            else:
                tokens += estimate_tokens(str(part.get("text") or ""))
    for call in message.get("tool_calls") or []:
        tokens += TOOL_CALL_OVERHEAD_TOKENS + estimate_tokens(json.dumps(call, default=str))
    return tokens


def estimate_single_message_tokens(message: Message | Mapping[str, Any]) -> int:
    if not isinstance(message, Message):
        return _estimate_dict_message(message)

    tokens = MESSAGE_OVERHEAD_TOKENS
    if isinstance(message.content, str):
        tokens += estimate_tokens(message.content)
    else:
        for part in message.content:
            if part.type == "image":
                tokens += IMAGE_PART_TOKENS
            else:
                tokens += estimate_tokens(part.text)
    for call in message.tool_calls or []:
        tokens += TOOL_CALL_OVERHEAD_TOKENS + estimate_tokens(call.name)
        tokens += estimate_tokens(json.dumps(call.arguments, default=str))
    return tokens


def estimate_message_tokens(messages: Iterable[Message | Mapping[str, Any]]) -> int:
    """Per-message framing overhead plus content and tool-call estimation."""
    return sum(estimate_single_message_tokens(m) for m in messages)


def estimate_tool_schema_tokens(tools: Iterable[Mapping[str, Any]] | None) -> int:
    if not tools:
        return 0
    total = 0
    for tool in tools:
        total += TOOL_SCHEMA_OVERHEAD_TOKENS + estimate_tokens(json.dumps(tool, default=str))
    return total


def estimate_expected_output_tokens(
    options: Mapping[str, Any] | None = None,
    tools: Iterable[Mapping[str, Any]] | None = None,
    context_window_tokens: int | None = None,
) -> int:
    """
    Output tokens to reserve for a call.

    Explicit ``max_tokens`` wins; otherwise a fraction of the advertised
    context window; otherwise a fixed constant that is larger when tool use
    is required.
    """
    options = options or {}
    explicit = options.get("max_tokens") or options.get("maxTokens")
    if isinstance(explicit, (int, float)) and explicit > 0:
        return int(explicit)

    if context_window_tokens and context_window_tokens > 0:
        scaled = int(context_window_tokens * CONTEXT_OUTPUT_FRACTION)
        return max(MIN_OUTPUT_TOKENS, min(MAX_OUTPUT_TOKENS, scaled))

    tool_choice = options.get("tool_choice") or options.get("toolChoice")
    if tools and tool_choice == "required":
        return REQUIRED_TOOL_OUTPUT_TOKENS
    return DEFAULT_OUTPUT_TOKENS
