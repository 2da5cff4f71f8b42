# chuk_ai_browser_agent/memory/turns.py
"""Turn-group segmentation.

A turn group is an assistant message with tool calls, all of its tool-result
messages, and at most one trailing vision observation. Every other message
forms a group of its own. Eviction and compaction never split a group.
"""

from __future__ import annotations

from collections.abc import Sequence

from chuk_ai_browser_agent.models import Message, MessageRole


def group_end(messages: Sequence[Message], start: int) -> int:
    """Index one past the end of the turn group starting at ``start``."""
    message = messages[start]
    end = start + 1
    if not message.has_tool_calls:
        return end

    call_ids = {call.id for call in message.tool_calls or []}
    while end < len(messages):
        nxt = messages[end]
        if nxt.role == MessageRole.TOOL and (nxt.tool_call_id in call_ids or not call_ids):
            end += 1
            continue
        break

    if end < len(messages) and messages[end].is_vision:
        end += 1
    return end


def split_turn_groups(messages: Sequence[Message], start: int = 0) -> list[tuple[int, int]]:
    """(start, end) spans of consecutive turn groups from ``start``."""
    spans: list[tuple[int, int]] = []
    index = start
    while index < len(messages):
        end = group_end(messages, index)
        spans.append((index, end))
        index = end
    return spans


def orphaned_tool_results(messages: Sequence[Message]) -> list[int]:
    """Indexes of tool results whose originating call is not earlier in the sequence."""
    seen: set[str] = set()
    orphans: list[int] = []
    for i, message in enumerate(messages):
        if message.tool_calls:
            seen.update(call.id for call in message.tool_calls)
        elif message.role == MessageRole.TOOL and message.tool_call_id not in seen:
            orphans.append(i)
    return orphans
