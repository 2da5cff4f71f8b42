# chuk_ai_browser_agent/agent/tools.py
"""Tools the runtime itself implements or interprets.

Browser tools are declared by the host; ``done``, ``fail`` and
``save_progress`` are always offered because the step loop handles them.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .protocols import ToolDefinition

DONE_TOOL = ToolDefinition(
    name="done",
    description="Finish the task. Call only after reading the page content that contains the answer.",
    parameters={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "What was done, in one or two sentences"},
            "answer": {"type": "string", "description": "The complete final answer for the user"},
        },
        "required": ["summary", "answer"],
    },
)

FAIL_TOOL = ToolDefinition(
    name="fail",
    description="Stop because the task cannot be completed.",
    parameters={
        "type": "object",
        "properties": {"reason": {"type": "string"}},
        "required": ["reason"],
    },
)

SAVE_PROGRESS_TOOL = ToolDefinition(
    name="save_progress",
    description="Remember facts for later steps. Values under an existing key are merged.",
    parameters={
        "type": "object",
        "properties": {"data": {"type": "object", "description": "Key/value facts to remember"}},
        "required": ["data"],
    },
)

CORE_TOOLS = (DONE_TOOL, FAIL_TOOL, SAVE_PROGRESS_TOOL)


def resolve_tools(tools: Iterable[ToolDefinition | dict[str, Any]] | None) -> list[ToolDefinition]:
    """Host tools (OpenAI-style dicts accepted) plus any missing core tools."""
    resolved: list[ToolDefinition] = []
    for tool in tools or []:
        if isinstance(tool, ToolDefinition):
            resolved.append(tool)
        elif isinstance(tool.get("function"), dict):
            resolved.append(ToolDefinition.model_validate(tool["function"]))
        else:
            resolved.append(ToolDefinition.model_validate(tool))

    names = {t.name for t in resolved}
    resolved.extend(core for core in CORE_TOOLS if core.name not in names)
    return resolved
