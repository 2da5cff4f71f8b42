# tests/test_tokens_budget.py
"""
Tests for token estimation and the budget precheck.

Covers:
- Length-based estimates with message, tool-call and image overheads
- Expected-output reservation rules
- BudgetState pressure levels and usage accounting
- precheck_budget skip / terminal policies
"""

import pytest

from chuk_ai_browser_agent.memory.budget import BudgetState, estimate_request_tokens, precheck_budget
from chuk_ai_browser_agent.memory.tokens import (
    IMAGE_PART_TOKENS,
    estimate_expected_output_tokens,
    estimate_message_tokens,
    estimate_single_message_tokens,
    estimate_tokens,
    estimate_tool_schema_tokens,
)
from chuk_ai_browser_agent.models import (
    AgentStatus,
    BudgetPolicy,
    Message,
    PartialResult,
    PressureLevel,
    TokenUsage,
    ToolCall,
)

# =============================================================================
# Estimation
# =============================================================================


class TestEstimateTokens:
    def test_chars_per_token(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_text_message_overhead(self):
        assert estimate_single_message_tokens(Message.user("abcd")) == 4 + 1

    def test_image_part(self):
        message = Message.vision("cap", "AAAA")
        assert estimate_single_message_tokens(message) == 4 + 1 + IMAGE_PART_TOKENS

    def test_dict_image_part(self):
        message = {"role": "user", "content": [{"type": "image_url", "image_url": {"url": "data:..."}}]}
        assert estimate_single_message_tokens(message) == 4 + IMAGE_PART_TOKENS

    def test_tool_call_overhead(self):
        call = ToolCall(id="c", name="click", arguments={"target": 1})
        message = Message.assistant("", tool_calls=[call])
        # 4 framing + 8 call + ceil(5/4) name + ceil(13/4) arguments
        assert estimate_single_message_tokens(message) == 4 + 8 + 2 + 4

    def test_sum_of_messages(self):
        messages = [Message.user("abcd"), Message.user("abcdefgh")]
        assert estimate_message_tokens(messages) == 5 + 6

    def test_tool_schema_tokens(self):
        assert estimate_tool_schema_tokens(None) == 0
        assert estimate_tool_schema_tokens([{"name": "x"}]) > 12


class TestExpectedOutput:
    def test_explicit_max_tokens_wins(self):
        assert estimate_expected_output_tokens({"max_tokens": 300}, None, 128_000) == 300
        assert estimate_expected_output_tokens({"maxTokens": 200}) == 200

    def test_context_fraction(self):
        assert estimate_expected_output_tokens({}, None, 128_000) == 6400

    def test_context_fraction_clamped(self):
        assert estimate_expected_output_tokens({}, None, 1000) == 256
        assert estimate_expected_output_tokens({}, None, 1_000_000) == 8192

    def test_required_tool_choice(self):
        tools = [{"name": "click"}]
        assert estimate_expected_output_tokens({"tool_choice": "required"}, tools) == 1024

    def test_default(self):
        assert estimate_expected_output_tokens() == 512


# =============================================================================
# Budget state
# =============================================================================


class TestBudgetState:
    def test_remaining_unlimited(self):
        assert BudgetState().remaining_tokens is None

    def test_usage_is_monotonic(self):
        budget = BudgetState(token_limit=1000)
        remaining = [budget.remaining_tokens]
        for total in (100, 0, 250, 900):
            budget.record_usage(TokenUsage(total_tokens=total))
            remaining.append(budget.remaining_tokens)
        assert remaining == sorted(remaining, reverse=True)
        assert budget.remaining_tokens == 0
        assert budget.used_tokens == 1250

    @pytest.mark.parametrize(
        "prompt_tokens, expected",
        [(100, PressureLevel.NORMAL), (850, PressureLevel.HIGH), (950, PressureLevel.CRITICAL)],
    )
    def test_pressure_levels(self, prompt_tokens, expected):
        budget = BudgetState(context_window_tokens=1000)
        assert budget.update_pressure(prompt_tokens) == expected
        assert budget.context_ratio == pytest.approx(prompt_tokens / 1000)

    def test_usable_context_subtracts_reserve(self):
        budget = BudgetState(context_window_tokens=1000, reserved_output_tokens=200)
        assert budget.usable_context_tokens == 800

    def test_reset(self):
        budget = BudgetState(token_limit=10, used_tokens=5, pressure_level=PressureLevel.HIGH)
        budget.reset()
        assert budget.used_tokens == 0
        assert budget.pressure_level == PressureLevel.NORMAL


# =============================================================================
# Precheck
# =============================================================================


class TestPrecheck:
    def _messages(self):
        return [Message.user("hi")]

    def test_request_estimate(self):
        estimated = estimate_request_tokens(self._messages(), None, {"max_tokens": 500})
        assert estimated == 5 + 500

    def test_skip_policy(self):
        budget = BudgetState(token_limit=100)
        result = precheck_budget(self._messages(), None, {"max_tokens": 500}, BudgetPolicy.SKIP, budget)
        assert result.ok is False
        assert result.skipped is True
        assert result.terminal is None
        assert result.remaining_tokens == 100
        assert result.estimated_tokens >= 500
        assert result.reason == "budget_predicted_exceed"

    def test_terminal_policy_carries_partial(self):
        budget = BudgetState(token_limit=100)
        partial = PartialResult(summary="Opened pricing page", answer="$10/mo")
        result = precheck_budget(
            self._messages(), None, {"max_tokens": 500}, BudgetPolicy.TERMINAL, budget, partial=partial, steps=4
        )
        assert result.ok is False
        assert result.skipped is False
        terminal = result.terminal
        assert terminal is not None
        assert terminal.success is False
        assert terminal.status == AgentStatus.FAILED
        assert terminal.reason.startswith("Insufficient token budget")
        assert terminal.partial_result.answer == "$10/mo"
        assert terminal.steps == 4

    def test_terminal_policy_drops_empty_partial(self):
        budget = BudgetState(token_limit=1)
        result = precheck_budget(
            self._messages(), None, None, BudgetPolicy.TERMINAL, budget, partial=PartialResult()
        )
        assert result.terminal.partial_result is None

    def test_within_budget(self):
        budget = BudgetState(token_limit=10_000)
        result = precheck_budget(self._messages(), None, {"max_tokens": 500}, BudgetPolicy.TERMINAL, budget)
        assert result.ok is True
        assert result.terminal is None

    def test_unlimited(self):
        result = precheck_budget(self._messages(), None, None, BudgetPolicy.SKIP, BudgetState())
        assert result.ok is True
        assert result.remaining_tokens is None

    def test_deterministic(self):
        budget = BudgetState(token_limit=100)
        first = precheck_budget(self._messages(), None, {"max_tokens": 500}, BudgetPolicy.SKIP, budget)
        second = precheck_budget(self._messages(), None, {"max_tokens": 500}, BudgetPolicy.SKIP, budget)
        assert first == second
