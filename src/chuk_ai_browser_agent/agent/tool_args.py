# chuk_ai_browser_agent/agent/tool_args.py
"""
Tagged-union tool arguments.

Models emit loosely typed arguments: ids as ``"12"`` or ``"[12]"``, numbers
as strings, booleans as ``"yes"``, scalars where lists are expected. Every
tool call passes through ``normalize_tool_args`` at the orchestrator
boundary, which validates it into the per-tool model tagged by ``tool``.
Out-of-range numbers are clamped rather than rejected.

Usage::

    args = normalize_tool_args("click", {"target": "[12]", "clickCount": "2"})
    args.target        # 12
    args.to_payload()  # {"target": 12, "button": "left", "click_count": 2, ...}
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from chuk_ai_browser_agent.exceptions import ToolArgumentError

_NUMERIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
_BRACKETED_RE = re.compile(r"^[\[\(#<]?\s*(\d+)\s*[\]\)>]?$")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})

# =============================================================================
# Coercion helpers
# =============================================================================


def snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def coerce_number(value: Any) -> Any:
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        text = value.strip()
        return float(text) if "." in text else int(text)
    return value


def coerce_target(value: Any) -> Any:
    """``"[12]"``/``"12"``/``12.0`` -> 12; other strings (refs, selectors) pass through."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, bool) or value is None:
        return None if value is None else value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _BRACKETED_RE.match(value.strip())
        if match:
            return int(match.group(1))
        return value.strip() or None
    return value


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def clamp(value: Any, low: int, high: int, default: int) -> int:
    value = coerce_number(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(max(low, min(high, value)))


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


# =============================================================================
# Base
# =============================================================================


class ToolArgs(BaseModel):
    """Base for per-tool argument models."""

    model_config = ConfigDict(extra="allow")

    tool: str

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"tool"}, exclude_none=True)


class TargetedArgs(ToolArgs):
    target: int | str | None = None

    @field_validator("target", mode="before")
    @classmethod
    def _target(cls, v: Any) -> Any:
        return coerce_target(v)


# =============================================================================
# Interaction
# =============================================================================


class ClickArgs(TargetedArgs):
    tool: Literal["click"] = "click"
    x: float | None = None
    y: float | None = None
    button: Literal["left", "right", "middle"] = "left"
    click_count: int = 1
    confirm: bool = False

    @field_validator("x", "y", mode="before")
    @classmethod
    def _coords(cls, v: Any) -> Any:
        return coerce_number(v)

    @field_validator("button", mode="before")
    @classmethod
    def _button(cls, v: Any) -> str:
        text = str(v or "left").strip().lower()
        return text if text in ("left", "right", "middle") else "left"

    @field_validator("click_count", mode="before")
    @classmethod
    def _click_count(cls, v: Any) -> int:
        return clamp(v, 1, 3, 1)

    @field_validator("confirm", mode="before")
    @classmethod
    def _confirm(cls, v: Any) -> bool:
        return coerce_bool(v)


class TypeArgs(TargetedArgs):
    tool: Literal["type"] = "type"
    text: str = ""
    clear: bool = False
    submit: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return coerce_text(v)

    @field_validator("clear", "submit", mode="before")
    @classmethod
    def _flags(cls, v: Any) -> bool:
        return coerce_bool(v)


class SelectArgs(TargetedArgs):
    tool: Literal["select"] = "select"
    values: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw = data.get("values", data.get("value"))
            if raw is None:
                raw = []
            elif not isinstance(raw, list):
                raw = [raw]
            data = {**data, "values": [coerce_text(v) for v in raw]}
            data.pop("value", None)
        return data


class HoverArgs(TargetedArgs):
    tool: Literal["hover"] = "hover"


class ScrollArgs(TargetedArgs):
    tool: Literal["scroll"] = "scroll"
    direction: Literal["up", "down"] = "down"
    amount: int = 600

    @field_validator("direction", mode="before")
    @classmethod
    def _direction(cls, v: Any) -> str:
        return "up" if str(v or "").strip().lower() == "up" else "down"

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> int:
        return clamp(v, 50, 4000, 600)


class PressKeyArgs(ToolArgs):
    tool: Literal["press_key"] = "press_key"
    key: str

    @field_validator("key", mode="before")
    @classmethod
    def _key(cls, v: Any) -> str:
        return coerce_text(v).strip()


class JavascriptArgs(ToolArgs):
    tool: Literal["javascript"] = "javascript"
    code: str


# =============================================================================
# Observation
# =============================================================================


class ReadPageArgs(ToolArgs):
    tool: Literal["read_page"] = "read_page"
    max_depth: int = 10
    max_nodes: int = 180

    @field_validator("max_depth", mode="before")
    @classmethod
    def _depth(cls, v: Any) -> int:
        return clamp(v, 1, 30, 10)

    @field_validator("max_nodes", mode="before")
    @classmethod
    def _nodes(cls, v: Any) -> int:
        return clamp(v, 20, 1000, 180)


class GetPageTextArgs(ToolArgs):
    tool: Literal["get_page_text"] = "get_page_text"
    max_chars: int = 15000

    @field_validator("max_chars", mode="before")
    @classmethod
    def _max_chars(cls, v: Any) -> int:
        return clamp(v, 200, 50000, 15000)


class FindArgs(ToolArgs):
    tool: Literal["find"] = "find"
    query: str

    @model_validator(mode="before")
    @classmethod
    def _query(cls, data: Any) -> Any:
        if isinstance(data, dict) and "query" not in data:
            data = {**data, "query": coerce_text(data.get("description") or data.get("text"))}
        return data


class FindTextArgs(ToolArgs):
    tool: Literal["find_text"] = "find_text"
    text: str
    max_results: int = 20
    cursor: Literal["next", "prev"] | None = None

    @model_validator(mode="before")
    @classmethod
    def _text(cls, data: Any) -> Any:
        if isinstance(data, dict) and "text" not in data:
            data = {**data, "text": coerce_text(data.get("query"))}
        return data

    @field_validator("max_results", mode="before")
    @classmethod
    def _max_results(cls, v: Any) -> int:
        return clamp(v, 1, 200, 20)

    @field_validator("cursor", mode="before")
    @classmethod
    def _cursor(cls, v: Any) -> str | None:
        text = str(v or "").strip().lower()
        return text if text in ("next", "prev") else None


class ScreenshotArgs(ToolArgs):
    tool: Literal["screenshot"] = "screenshot"
    full_page: bool = False

    @field_validator("full_page", mode="before")
    @classmethod
    def _full_page(cls, v: Any) -> bool:
        return coerce_bool(v)


_WAIT_CONDITIONS = {
    "element": "selector",
    "selector": "selector",
    "visible": "selector",
    "text": "text",
    "url": "url",
    "navigation": "navigation",
    "idle": "network_idle",
    "network_idle": "network_idle",
    "networkidle": "network_idle",
}


class WaitForArgs(ToolArgs):
    tool: Literal["wait_for"] = "wait_for"
    condition: Literal["selector", "text", "url", "navigation", "network_idle"] = "selector"
    value: str | None = None
    timeout_ms: int = 10000
    poll_ms: int = 250
    idle_ms: int = 500

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, v: Any) -> str:
        return _WAIT_CONDITIONS.get(str(v or "").strip().lower(), "selector")

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _timeout(cls, v: Any) -> int:
        return clamp(v, 100, 120000, 10000)

    @field_validator("poll_ms", mode="before")
    @classmethod
    def _poll(cls, v: Any) -> int:
        return clamp(v, 50, 5000, 250)

    @field_validator("idle_ms", mode="before")
    @classmethod
    def _idle(cls, v: Any) -> int:
        return clamp(v, 200, 30000, 500)


# =============================================================================
# Navigation, tabs, network
# =============================================================================


class NavigateArgs(ToolArgs):
    tool: Literal["navigate"] = "navigate"
    url: str

    @field_validator("url", mode="before")
    @classmethod
    def _url(cls, v: Any) -> str:
        url = coerce_text(v).strip()
        if url and "://" not in url and not url.startswith(("about:", "data:")) and "." in url:
            url = "https://" + url
        return url


class OpenTabArgs(NavigateArgs):
    tool: Literal["open_tab"] = "open_tab"  # type: ignore[assignment]
    url: str = ""


class SwitchTabArgs(ToolArgs):
    tool: Literal["switch_tab"] = "switch_tab"
    tab_id: int

    @field_validator("tab_id", mode="before")
    @classmethod
    def _tab_id(cls, v: Any) -> Any:
        return coerce_target(v)


class CloseTabArgs(ToolArgs):
    tool: Literal["close_tab"] = "close_tab"
    tab_id: int | None = None

    @field_validator("tab_id", mode="before")
    @classmethod
    def _tab_id(cls, v: Any) -> Any:
        return coerce_target(v)


class HttpRequestArgs(ToolArgs):
    tool: Literal["http_request"] = "http_request"
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    headers: dict[str, str] = {}
    body: str | None = None
    timeout_ms: int = 15000

    @field_validator("method", mode="before")
    @classmethod
    def _method(cls, v: Any) -> str:
        method = str(v or "GET").strip().upper()
        return method if method in ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD") else "GET"

    @field_validator("body", mode="before")
    @classmethod
    def _body(cls, v: Any) -> str | None:
        return None if v is None else coerce_text(v)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _timeout(cls, v: Any) -> int:
        return clamp(v, 1000, 60000, 15000)


# =============================================================================
# Terminal and local tools
# =============================================================================


class DoneArgs(ToolArgs):
    tool: Literal["done"] = "done"
    summary: str = ""
    answer: str = ""

    @field_validator("summary", "answer", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return coerce_text(v).strip()


class FailArgs(ToolArgs):
    tool: Literal["fail"] = "fail"
    reason: str = ""

    @field_validator("reason", mode="before")
    @classmethod
    def _reason(cls, v: Any) -> str:
        return coerce_text(v).strip()


class SaveProgressArgs(ToolArgs):
    tool: Literal["save_progress"] = "save_progress"
    data: dict[str, Any] = {}

    @model_validator(mode="before")
    @classmethod
    def _data(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("data"), dict):
            flat = {k: v for k, v in data.items() if k not in ("tool", "data")}
            # scalar or list payloads are kept under a generic key
            if data.get("data") is not None:
                flat.setdefault("value", data["data"])
            return {"tool": data.get("tool", "save_progress"), "data": flat}
        return data


class GenericToolArgs(ToolArgs):
    """Arguments for tools without a dedicated model; passed through as-is."""


TOOL_ARG_MODELS: dict[str, type[ToolArgs]] = {
    model.model_fields["tool"].default: model
    for model in (
        ClickArgs,
        TypeArgs,
        SelectArgs,
        HoverArgs,
        ScrollArgs,
        PressKeyArgs,
        JavascriptArgs,
        ReadPageArgs,
        GetPageTextArgs,
        FindArgs,
        FindTextArgs,
        ScreenshotArgs,
        WaitForArgs,
        NavigateArgs,
        OpenTabArgs,
        SwitchTabArgs,
        CloseTabArgs,
        HttpRequestArgs,
        DoneArgs,
        FailArgs,
        SaveProgressArgs,
    )
}


def normalize_tool_args(name: str, raw: dict[str, Any] | str | None) -> ToolArgs:
    """
    Validate raw model arguments into the tagged model for ``name``.

    Raises ToolArgumentError when the arguments cannot be made valid.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except ValueError as e:
            raise ToolArgumentError(name, f"arguments are not valid JSON: {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ToolArgumentError(name, "arguments must be an object")

    data = {snake_case(str(k)): v for k, v in raw.items()}
    data["tool"] = name
    model = TOOL_ARG_MODELS.get(name, GenericToolArgs)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ToolArgumentError(name, problems) from e
