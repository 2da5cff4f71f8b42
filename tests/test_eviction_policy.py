# tests/test_eviction_policy.py
"""
Tests for compaction ordering policies.

Covers:
- CompactionCandidate / CompactionContext models
- ImportanceWeightedPolicy (default): recency, role and size weighting
- RecencyCompactionPolicy
- Custom policies plugged into ConversationWindow
"""

from chuk_ai_browser_agent.memory.eviction_policy import (
    CompactionCandidate,
    CompactionContext,
    CompactionPolicy,
    ImportanceWeightedConfig,
    ImportanceWeightedPolicy,
    RecencyCompactionPolicy,
)
from chuk_ai_browser_agent.memory.window import ConversationWindow, WindowConfig
from chuk_ai_browser_agent.models import Message, PressureLevel, ToolCall


def _messages() -> list[Message]:
    call = ToolCall(id="c1", name="click")
    return [
        Message.system("sys"),
        Message.user("u" * 100),
        Message.tool_result("c0", "read_page", "t" * 100),
        Message.assistant("a" * 100, tool_calls=[call]),
        Message.vision("shot", "AAAA"),
    ]


class TestModels:
    def test_candidate(self):
        candidate = CompactionCandidate(index=3, score=0.5)
        assert candidate.index == 3

    def test_context_defaults(self):
        context = CompactionContext()
        assert context.messages == []
        assert context.eligible == []


class TestImportanceWeightedPolicy:
    def test_satisfies_protocol(self):
        assert isinstance(ImportanceWeightedPolicy(), CompactionPolicy)
        assert isinstance(RecencyCompactionPolicy(), CompactionPolicy)

    def test_role_weights(self):
        policy = ImportanceWeightedPolicy()
        messages = _messages()
        assert policy.role_weight(messages[2]) == 1.0
        assert policy.role_weight(messages[3]) == 0.75
        assert policy.role_weight(messages[4]) == 0.5
        assert policy.role_weight(messages[1]) == 0.25

    def test_plain_user_message_goes_first(self):
        policy = ImportanceWeightedPolicy()
        context = CompactionContext(messages=_messages(), eligible=[1, 2, 3])
        ranked = policy.score_candidates(context)
        assert ranked[0].index == 1
        assert [c.score for c in ranked] == sorted(c.score for c in ranked)

    def test_recency_only_config(self):
        config = ImportanceWeightedConfig(recency_weight=1.0, role_weight=0.0, size_weight=0.0)
        ranked = ImportanceWeightedPolicy(config).score_candidates(
            CompactionContext(messages=_messages(), eligible=[3, 2, 1])
        )
        assert [c.index for c in ranked] == [1, 2, 3]

    def test_empty_eligible(self):
        assert ImportanceWeightedPolicy().score_candidates(CompactionContext(messages=_messages())) == []

    def test_ties_break_by_index(self):
        messages = [Message.user("x" * 50) for _ in range(3)]
        config = ImportanceWeightedConfig(recency_weight=0.0, role_weight=0.5, size_weight=0.5)
        ranked = ImportanceWeightedPolicy(config).score_candidates(
            CompactionContext(messages=messages, eligible=[2, 0, 1])
        )
        assert [c.index for c in ranked] == [0, 1, 2]


class TestRecencyPolicy:
    def test_oldest_first(self):
        ranked = RecencyCompactionPolicy().score_candidates(
            CompactionContext(messages=_messages(), eligible=[3, 1, 2])
        )
        assert [c.index for c in ranked] == [1, 2, 3]


class NewestFirstPolicy:
    def score_candidates(self, context):
        return [CompactionCandidate(index=i, score=-i) for i in sorted(context.eligible, reverse=True)]


class TestWindowIntegration:
    def test_custom_policy_changes_order(self):
        window = ConversationWindow(WindowConfig(max_messages=100), policy=NewestFirstPolicy())
        window.set_head([Message.system("sys"), Message.user("goal")])
        for i in range(4):
            call = ToolCall(id=f"c{i}", name="read_page")
            window.append(Message.assistant("", tool_calls=[call]))
            window.append(Message.tool_result(f"c{i}", "read_page", "x" * 1000))

        window.compact_heavy(PressureLevel.HIGH)
        # candidates are the first three results; newest-first compacts the later two
        assert window.messages[7].compacted
        assert not window.messages[3].compacted
