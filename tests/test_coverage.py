# tests/test_coverage.py
"""
Tests for goal sub-task extraction and keyword coverage.
"""

import pytest

from chuk_ai_browser_agent.guards import extract_goal_subtasks, is_navigate_only, uncovered_subtasks
from chuk_ai_browser_agent.guards.coverage import action_evidence_text, extract_coverage_keywords


class TestSubtasks:
    def test_comma_then(self):
        assert extract_goal_subtasks("Find the price of the blue mug, then check the shipping cost") == [
            "find the price of the blue mug",
            "check the shipping cost",
        ]

    def test_and_split(self):
        assert extract_goal_subtasks("Open example.com and read the headline") == [
            "open example.com",
            "read the headline",
        ]

    def test_compare_phrase_kept_whole(self):
        assert extract_goal_subtasks("Compare iPhone 15 and Pixel 8 prices") == ["compare iphone 15 and pixel 8 prices"]

    def test_quoted_span_kept_whole(self):
        subtasks = extract_goal_subtasks('Search for "salt and pepper" then open the first result')
        assert subtasks == ['search for "salt and pepper"', "open the first result"]

    def test_short_and_duplicate_parts_dropped(self):
        assert extract_goal_subtasks("Read the news; ok; read the news") == ["read the news"]

    def test_capped(self):
        goal = ", ".join(f"check item number {i}" for i in range(12))
        assert len(extract_goal_subtasks(goal)) == 8

    def test_empty(self):
        assert extract_goal_subtasks("   ") == []


class TestNavigateOnly:
    @pytest.mark.parametrize(
        "goal, expected",
        [
            ("Open example.com", True),
            ("go to https://news.example/today", True),
            ("Open example.com and find the price", False),
            ("Open example.com, read the title", False),
            ("Find the price of the mug", False),
        ],
    )
    def test_goals(self, goal, expected):
        assert is_navigate_only(goal) is expected


class TestKeywords:
    def test_stopwords_and_short_tokens_removed(self):
        assert extract_coverage_keywords("Find the price of the blue mug") == ["price", "blue", "mug"]

    def test_capped_and_deduplicated(self):
        keywords = extract_coverage_keywords("alpha beta alpha gamma delta epsilon zeta eta theta")
        assert keywords == ["alpha", "beta", "gamma", "delta", "epsilon", "zeta"]

    def test_two_hits_required(self):
        subtasks = ["find the price of the blue mug", "check the shipping cost"]
        assert uncovered_subtasks(subtasks, "The Blue mug costs $12") == ["check the shipping cost"]

    def test_single_keyword_subtask_needs_one_hit(self):
        assert uncovered_subtasks(["check the weather"], "weather: sunny") == []


class TestEvidenceText:
    def test_includes_args_and_result_text(self):
        text = action_evidence_text(
            "find_text",
            {"text": "shipping"},
            {"success": True, "url": "https://shop.test/mug", "text": "Free shipping over $50"},
        )
        assert text == "find_text | text:shipping | url:https://shop.test/mug | Free shipping over $50"

    def test_without_result(self):
        assert action_evidence_text("scroll", None, None) == "scroll"
