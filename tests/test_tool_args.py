# tests/test_tool_args.py
"""
Tests for tool argument normalization.
"""

import pytest

from chuk_ai_browser_agent.agent.tool_args import (
    ClickArgs,
    GenericToolArgs,
    SaveProgressArgs,
    coerce_bool,
    coerce_target,
    normalize_tool_args,
    snake_case,
)
from chuk_ai_browser_agent.exceptions import ToolArgumentError


class TestCoercion:
    @pytest.mark.parametrize(
        "raw, expected",
        [("[12]", 12), ("12", 12), (12.0, 12), ("#7", 7), ([5], 5), ("ref_3", "ref_3"), ("  ", None)],
    )
    def test_target(self, raw, expected):
        assert coerce_target(raw) == expected

    def test_bool(self):
        assert coerce_bool("Yes")
        assert coerce_bool(1)
        assert not coerce_bool("nope")
        assert not coerce_bool(None)

    def test_snake_case(self):
        assert snake_case("clickCount") == "click_count"
        assert snake_case("maxChars") == "max_chars"
        assert snake_case("already_snake") == "already_snake"


class TestNormalize:
    def test_click(self):
        args = normalize_tool_args("click", {"target": "[12]", "clickCount": "2", "button": "RIGHT"})
        assert isinstance(args, ClickArgs)
        assert args.target == 12
        assert args.click_count == 2
        assert args.button == "right"
        assert args.to_payload()["click_count"] == 2
        assert "tool" not in args.to_payload()

    def test_clamps_out_of_range(self):
        assert normalize_tool_args("click", {"target": 1, "click_count": 9}).click_count == 3
        assert normalize_tool_args("scroll", {"amount": "99999"}).amount == 4000
        assert normalize_tool_args("get_page_text", {"max_chars": 5}).max_chars == 200

    def test_unknown_button_falls_back(self):
        assert normalize_tool_args("click", {"target": 1, "button": "side"}).button == "left"

    def test_navigate_adds_scheme(self):
        assert normalize_tool_args("navigate", {"url": "example.com/path"}).url == "https://example.com/path"
        assert normalize_tool_args("navigate", {"url": "about:blank"}).url == "about:blank"

    def test_json_string_arguments(self):
        args = normalize_tool_args("type", '{"target": "4", "text": "hello", "submit": "true"}')
        assert args.target == 4
        assert args.text == "hello"
        assert args.submit is True

    def test_empty_string_arguments(self):
        assert normalize_tool_args("read_page", "").max_depth == 10

    def test_invalid_json(self):
        with pytest.raises(ToolArgumentError) as exc:
            normalize_tool_args("click", "{not json")
        assert exc.value.tool == "click"

    def test_missing_required_field(self):
        with pytest.raises(ToolArgumentError, match="navigate"):
            normalize_tool_args("navigate", {})

    def test_non_object(self):
        with pytest.raises(ToolArgumentError):
            normalize_tool_args("click", [1, 2])  # type: ignore[arg-type]

    def test_select_scalar_value(self):
        args = normalize_tool_args("select", {"target": 3, "value": "Large"})
        assert args.values == ["Large"]

    def test_find_text_accepts_query(self):
        args = normalize_tool_args("find_text", {"query": "price", "cursor": "NEXT"})
        assert args.text == "price"
        assert args.cursor == "next"

    def test_wait_for_aliases(self):
        args = normalize_tool_args("wait_for", {"condition": "networkidle", "timeoutMs": 50})
        assert args.condition == "network_idle"
        assert args.timeout_ms == 100

    def test_save_progress_flat_keys(self):
        args = normalize_tool_args("save_progress", {"price": "49.99", "currency": "USD"})
        assert isinstance(args, SaveProgressArgs)
        assert args.data == {"price": "49.99", "currency": "USD"}

    def test_save_progress_nested(self):
        args = normalize_tool_args("save_progress", {"data": {"step": "cart"}})
        assert args.data == {"step": "cart"}

    def test_save_progress_scalar_and_list_data_kept(self):
        assert normalize_tool_args("save_progress", {"data": "price is 49.99"}).data == {"value": "price is 49.99"}
        args = normalize_tool_args("save_progress", {"data": ["a", "b"], "page": 2})
        assert args.data == {"page": 2, "value": ["a", "b"]}

    def test_done_coerces_to_text(self):
        args = normalize_tool_args("done", {"summary": "  ok ", "answer": 42})
        assert args.summary == "ok"
        assert args.answer == "42"

    def test_unknown_tool_passes_through(self):
        args = normalize_tool_args("custom_tool", {"someFlag": True})
        assert isinstance(args, GenericToolArgs)
        assert args.to_payload() == {"some_flag": True}
