# tests/test_window.py
"""
Tests for the conversation window.

Covers:
- Count-ceiling trimming with head protection and eviction handoff
- Turn integrity: tool results never outlive their calls
- The live group is never evicted
- Token-ceiling trimming
- Heavy-payload compaction (idempotent, tail protected, placeholders)
- Screenshot reduction
- Model view with the synthetic task-state message
"""

import json

from chuk_ai_browser_agent.memory.retrieval import RetrievalMemory
from chuk_ai_browser_agent.memory.summarizer import RunningSummaryCompressor
from chuk_ai_browser_agent.memory.turns import orphaned_tool_results, split_turn_groups
from chuk_ai_browser_agent.memory.window import ConversationWindow, WindowConfig
from chuk_ai_browser_agent.models import Message, MessageRole, PressureLevel, RetrievalSource, ToolCall


def _window(**config) -> ConversationWindow:
    compressor = RunningSummaryCompressor(RetrievalMemory())
    window = ConversationWindow(WindowConfig(**config), compressor=compressor)
    window.set_head([Message.system("system prompt"), Message.user("Task: find the price")])
    return window


def _append_turn(window: ConversationWindow, i: int, tool: str = "click", payload: str = "ok") -> None:
    call = ToolCall(id=f"c{i}", name=tool, arguments={"target": i})
    window.append(Message.assistant(f"step {i}", tool_calls=[call]))
    window.append(Message.tool_result(f"c{i}", tool, payload))


# =============================================================================
# Turn groups
# =============================================================================


class TestTurnGroups:
    def test_assistant_group_includes_results_and_one_vision(self):
        call_a = ToolCall(id="a", name="click")
        call_b = ToolCall(id="b", name="screenshot")
        messages = [
            Message.user("hello"),
            Message.assistant("", tool_calls=[call_a, call_b]),
            Message.tool_result("a", "click", "ok"),
            Message.tool_result("b", "screenshot", "ok"),
            Message.vision("shot", "AAAA"),
            Message.vision("another", "BBBB"),
        ]
        assert split_turn_groups(messages) == [(0, 1), (1, 5), (5, 6)]

    def test_orphans_detected(self):
        messages = [Message.tool_result("x", "click", "ok")]
        assert orphaned_tool_results(messages) == [0]


# =============================================================================
# Trimming
# =============================================================================


class TestTrim:
    def test_forty_appends_with_ceiling_28(self):
        window = _window(max_messages=28)
        for i in range(40):
            window.append(Message.user(f"note {i}"))

        messages = window.messages
        assert len(messages) <= 28
        assert messages[0].text == "system prompt"
        assert messages[1].text == "Task: find the price"
        assert messages[-1].text == "note 39"

        state = window.compressor.state
        assert state.evicted_messages == 40 + 2 - len(messages)
        pending = "\n".join(state.pending)
        assert "note 0" in pending
        assert "note 39" not in pending

    def test_turn_integrity_under_pressure(self):
        window = _window(max_messages=10)
        for i in range(20):
            _append_turn(window, i)
            assert orphaned_tool_results(window.messages) == []

        assert len(window.messages) <= 10
        assert window.messages[2].role == MessageRole.ASSISTANT
        for message in window.messages[2:]:
            if message.tool_calls:
                ids = {c.id for c in message.tool_calls}
                results = [m for m in window.messages if m.role == MessageRole.TOOL and m.tool_call_id in ids]
                assert len(results) == len(ids)

    def test_live_group_never_evicted(self):
        window = _window(max_messages=6)
        window.append(Message.user("older note"))
        calls = [ToolCall(id=f"k{i}", name="click") for i in range(12)]
        window.append(Message.assistant("many clicks", tool_calls=calls))
        for call in calls:
            window.append(Message.tool_result(call.id, "click", "ok"))

        assert len(window.messages) == 2 + 1 + 12
        assert window.messages[2].has_tool_calls
        assert orphaned_tool_results(window.messages) == []

    def test_token_ceiling(self):
        window = _window(max_messages=100, context_window_tokens=2000, reserved_output_tokens=0)
        for i in range(10):
            window.append(Message.user(f"{i} " + "x" * 800))
        ceiling = 0.75 * window.usable_context_tokens
        assert window.context_tokens() <= ceiling or len(window.messages) <= 2 + 2

    def test_trim_is_idempotent(self):
        window = _window(max_messages=8)
        for i in range(12):
            window.append(Message.user(f"note {i}"))
        before = [m.text for m in window.messages]
        report = window.trim()
        assert report.removed == 0
        assert [m.text for m in window.messages] == before


# =============================================================================
# Compaction
# =============================================================================


class TestCompaction:
    def _heavy_window(self) -> ConversationWindow:
        window = _window(max_messages=100)
        for i in range(6):
            _append_turn(window, i, tool="read_page", payload="x" * 2000)
        return window

    def test_compacts_oldest_heavy_results_first(self):
        window = self._heavy_window()
        report = window.compact_heavy(PressureLevel.HIGH)
        assert report.eligible == 5
        assert report.compacted == 2
        assert report.chars_saved > 0
        assert window.messages[3].compacted
        assert window.messages[5].compacted
        assert not window.messages[7].compacted

    def test_placeholder_shape(self):
        window = self._heavy_window()
        window.compact_heavy(PressureLevel.HIGH)
        placeholder = json.loads(window.messages[3].content)
        assert placeholder["compacted"] is True
        assert placeholder["tool"] == "read_page"
        assert placeholder["original_chars"] == 2000
        assert "Call read_page again" in placeholder["note"]
        assert window.messages[3].tool_call_id == "c0"

    def test_idempotent(self):
        window = self._heavy_window()
        window.compact_heavy(PressureLevel.HIGH)
        snapshot = [m.model_dump() for m in window.messages]
        report = window.compact_heavy(PressureLevel.HIGH)
        assert report.compacted == 0
        assert [m.model_dump() for m in window.messages] == snapshot

    def test_critical_compacts_more(self):
        window = self._heavy_window()
        window.compact_heavy(PressureLevel.HIGH)
        report = window.compact_heavy(PressureLevel.CRITICAL)
        assert report.compacted == 2
        assert sum(1 for m in window.messages if m.compacted) == 4

    def test_recent_group_protected(self):
        window = self._heavy_window()
        window.compact_heavy(PressureLevel.CRITICAL)
        last_result = window.messages[-1]
        assert last_result.role == MessageRole.TOOL
        assert not last_result.compacted

    def test_assistant_placeholder_keeps_calls(self):
        window = _window(max_messages=100)
        for i in range(3):
            call = ToolCall(id=f"c{i}", name="click")
            window.append(Message.assistant("r" * 900, tool_calls=[call]))
            window.append(Message.tool_result(f"c{i}", "click", "ok"))
        window.compact_heavy(PressureLevel.CRITICAL)
        compacted = [m for m in window.messages if m.compacted]
        assert compacted
        assert all(m.tool_calls for m in compacted)
        assert compacted[0].content.startswith("[compacted: 900 chars")
        assert orphaned_tool_results(window.messages) == []


# =============================================================================
# Vision
# =============================================================================


class TestVision:
    def test_keeps_recent_screenshots(self):
        window = _window(max_messages=100)
        for i in range(4):
            window.append(Message.vision(f"screenshot {i}", "AAAA"))

        images = [m for m in window.messages if m.is_vision]
        assert [m.text for m in images] == ["screenshot 2", "screenshot 3"]
        reduced = [m for m in window.messages if m.compacted]
        assert reduced[0].content == "Snapshot summary: screenshot 0"

        sources = {e.source for e in window.compressor.retrieval.entries}
        assert RetrievalSource.VISION_SUMMARY in sources

    def test_critical_keeps_one(self):
        window = _window(max_messages=100)
        for i in range(3):
            window.append(Message.vision(f"screenshot {i}", "AAAA"))
        window.reduce_vision(PressureLevel.CRITICAL)
        assert sum(1 for m in window.messages if m.is_vision) == 1


# =============================================================================
# Model view
# =============================================================================


class TestBuildForModel:
    def test_state_message_after_system(self):
        window = _window()
        window.append(Message.user("hello"))
        rendered = window.build_for_model(Message.system("Task state:\nGoal: x"))
        assert rendered[0]["content"] == "system prompt"
        assert rendered[1]["content"].startswith("Task state:")
        assert len(rendered) == len(window.messages) + 1

    def test_without_state_message(self):
        window = _window()
        assert len(window.build_for_model()) == 2

    def test_snapshot_is_deep_copy(self):
        window = _window()
        snapshot = window.snapshot()
        snapshot[0].content = "changed"
        assert window.messages[0].content == "system prompt"
