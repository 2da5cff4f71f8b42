# chuk_ai_browser_agent/agent/serialization.py
"""Tool-result serialization for the model.

Driver envelopes can be large: accessibility trees, page text, base64
screenshots. Before a result enters the conversation it is reduced:

- base64 image payloads are lifted out (the orchestrator sends them as a
  separate vision message)
- ``read_page`` trees are pruned by depth, node count and child count
- anything still longer than ``max_chars`` becomes a truncation envelope
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.utils import truncate_text

MAX_RESULT_CHARS = 10000
IMAGE_KEYS = ("screenshot", "image", "image_data", "base64", "data_url")


class TreeLimits(BaseModel):
    """Bounds for pruning a structural page tree."""

    max_depth: int = 10
    max_nodes: int = 180
    max_children: int = 20
    max_name_chars: int = 60


class SerializedResult(BaseModel):
    """Text for the tool message plus an optional lifted image."""

    text: str
    image_data: str | None = None
    mime_type: str = "image/png"
    truncated: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)


def compress_tree(node: Any, limits: TreeLimits | None = None) -> Any:
    """Prune a ``{"name", "children": [...]}`` tree breadth-limited and depth-limited."""
    limits = limits or TreeLimits()
    budget = [limits.max_nodes]

    def visit(current: Any, depth: int) -> Any:
        if not isinstance(current, dict):
            return current
        budget[0] -= 1
        pruned = {k: v for k, v in current.items() if k != "children"}
        if isinstance(pruned.get("name"), str):
            pruned["name"] = truncate_text(pruned["name"], limits.max_name_chars)

        children = current.get("children")
        if not isinstance(children, list) or not children:
            return pruned
        if depth >= limits.max_depth:
            pruned["children_omitted"] = len(children)
            return pruned

        kept: list[Any] = []
        for child in children[: limits.max_children]:
            if budget[0] <= 0:
                break
            kept.append(visit(child, depth + 1))
        if kept:
            pruned["children"] = kept
        omitted = len(children) - len(kept)
        if omitted:
            pruned["children_omitted"] = omitted
        return pruned

    return visit(node, 0)


def _split_data_url(value: str) -> tuple[str, str]:
    if value.startswith("data:") and "," in value:
        header, payload = value.split(",", 1)
        mime = header[5:].split(";", 1)[0] or "image/png"
        return payload, mime
    return value, "image/png"


def serialize_tool_result(
    tool: str,
    result: dict[str, Any],
    current_url: str | None = None,
    max_chars: int = MAX_RESULT_CHARS,
    tree_limits: TreeLimits | None = None,
) -> SerializedResult:
    data = dict(result)
    image_data: str | None = None
    mime_type = "image/png"

    for key in IMAGE_KEYS:
        value = data.get(key)
        if isinstance(value, str) and len(value) > 200:
            image_data, mime_type = _split_data_url(value)
            data[key] = "[image attached separately]"
            break

    if tool == "read_page" and isinstance(data.get("tree"), (dict, list)):
        tree = data["tree"]
        if isinstance(tree, list):
            data["tree"] = [compress_tree(node, tree_limits) for node in tree[: (tree_limits or TreeLimits()).max_children]]
        else:
            data["tree"] = compress_tree(tree, tree_limits)

    if current_url:
        data["_current_url"] = current_url

    text = json.dumps(data, default=str, ensure_ascii=False)
    truncated = False
    if len(text) > max_chars:
        truncated = True
        envelope = {
            "success": data.get("success"),
            "code": data.get("code"),
            "truncated": True,
            "original_length": len(text),
            "excerpt": text[: max(0, max_chars - 200)],
        }
        text = json.dumps({k: v for k, v in envelope.items() if v is not None}, ensure_ascii=False)

    return SerializedResult(text=text, image_data=image_data, mime_type=mime_type, truncated=truncated)
