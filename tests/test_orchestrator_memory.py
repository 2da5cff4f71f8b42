# tests/test_orchestrator_memory.py
"""
Orchestrator tests for memory, completion checks and run isolation.

Covers:
- Retrieved history, the running summary and sub-goals in the task-state message
- Reflection facts and open sub-goals feeding the retrieval query
- A second run on the same orchestrator starting from clean state
- Premature done and read-after-navigate rejections, uncovered sub-goals in salvage
- Context pressure: warning alongside compaction, tool schemas counted
"""

import pytest
from conftest import FakeDriver, FakeProvider, done_response, respond, tool_call

from chuk_ai_browser_agent.agent import AgentCheckpoint, AgentConfig, StepLoopOrchestrator, ToolDefinition
from chuk_ai_browser_agent.models import StepType

BROWSER_TOOLS = [
    ToolDefinition(name=name)
    for name in ("navigate", "read_page", "get_page_text", "find", "find_text", "click", "type", "scroll")
]

MISSING_TARGET = {"success": False, "code": "MISSING_TARGET", "error": "No element with that id"}
TWO_PART_GOAL = "Find the price of the blue mug, then check the shipping cost"


def _orchestrator(provider, driver, tools=BROWSER_TOOLS, **config) -> StepLoopOrchestrator:
    return StepLoopOrchestrator(provider, driver, tools=tools, config=AgentConfig(**config))


def _contents(messages) -> list[str]:
    return [m["content"] if isinstance(m["content"], str) else str(m["content"]) for m in messages]


def _task_states(provider) -> list[str]:
    """Task-state message of every main-loop call (summary calls carry no tools)."""
    return [call["messages"][1]["content"] for call in provider.calls if call["tools"]]


def _events(orchestrator, step_type) -> list:
    return [e for e in orchestrator.history if e.type == step_type]


# =============================================================================
# Task-state memory
# =============================================================================


class TestTaskStateMemory:
    @pytest.mark.asyncio
    async def test_running_summary_reaches_task_state(self, fake_driver):
        provider = FakeProvider(default=respond(tool_call("scroll", direction="down")))
        orchestrator = _orchestrator(provider, fake_driver, max_steps=12, max_conversation_messages=6)

        await orchestrator.run("Scroll through the page")

        assert orchestrator.compressor.state.running
        assert len(orchestrator.retrieval) > 0
        states = _task_states(provider)
        assert "Compressed history summary:" not in states[0]
        assert any("Compressed history summary:" in s for s in states[1:])

    @pytest.mark.asyncio
    async def test_retrieved_history_and_query_inputs(self, fake_driver):
        provider = FakeProvider(
            [
                respond(tool_call("save_progress", call_id="p1", price="49.99")),
                done_response(summary="Found the mug price and shipping cost", answer="mug $12, shipping $5"),
            ]
        )
        orchestrator = _orchestrator(provider, fake_driver)
        queries = []

        def query(context, limit=4, max_chars=1200):
            queries.append(context)
            return "- [step 0 | evicted_turn | 0.90] clicked the blue mug listing"

        orchestrator.retrieval.query = query
        result = await orchestrator.run(TWO_PART_GOAL)

        assert result.success
        assert queries[-1].facts == ["price: 49.99"]
        assert queries[-1].unknowns == ["find the price of the blue mug", "check the shipping cost"]
        state = _task_states(provider)[1]
        assert "Relevant archived history:\n- [step 0 | evicted_turn | 0.90] clicked the blue mug listing" in state

    @pytest.mark.asyncio
    async def test_subgoal_tracker_in_task_state(self):
        driver = FakeDriver(page_texts=["The blue mug sells for a price of $12 in the shop"])
        provider = FakeProvider([respond(tool_call("get_page_text", call_id="g1"))])
        orchestrator = _orchestrator(provider, driver, max_steps=2, detect_interventions=False, auto_observe=False)

        await orchestrator.run(TWO_PART_GOAL)

        states = _task_states(provider)
        assert "Sub-goals:\nProgress: 0/2 completed" in states[0]
        assert "Progress: 1/2 completed" in states[1]
        assert "- [completed] find the price of the blue mug" in states[1]

    @pytest.mark.asyncio
    async def test_single_part_goal_has_no_tracker(self, fake_driver):
        provider = FakeProvider([done_response()])
        await _orchestrator(provider, fake_driver).run("Find the answer")
        assert "Sub-goals:" not in _task_states(provider)[0]


# =============================================================================
# Run isolation
# =============================================================================


class TestRunReset:
    @pytest.mark.asyncio
    async def test_second_run_starts_clean(self):
        driver = FakeDriver({"click": [MISSING_TARGET] * 2})
        provider = FakeProvider(
            [
                respond(tool_call("save_progress", call_id="p1", price="49.99")),
                respond(tool_call("click", call_id="c1", target=9)),
                respond(tool_call("click", call_id="c2", target=9)),
                done_response(answer="49.99"),
                done_response(answer="7 items"),
            ]
        )
        orchestrator = _orchestrator(provider, driver)

        first = await orchestrator.run("Find the price")
        assert first.success
        assert first.metrics.llm_calls == 4
        assert orchestrator.guard.state.action_repeat_count == 2

        second = await orchestrator.run("Count the cart items")

        assert second.success
        assert second.steps == 1
        assert second.metrics.llm_calls == 1
        assert second.metrics.errors == 0
        assert orchestrator.scratchpad == {}
        assert orchestrator.guard.state.action_repeat_count == 0
        assert orchestrator.guard.state.done_attempts == 1
        assert orchestrator.evidence.actions == 1
        assert orchestrator.reflection.goal == "Count the cart items"
        assert orchestrator.reflection.facts == []
        assert orchestrator.compressor.state.running == ""

        # cache cleared: the second run observes the page again
        assert len(driver.calls_for("read_page")) == 2

        messages = provider.calls[4]["messages"]
        assert not any("Find the price" in c for c in _contents(messages))
        assert "Saved progress" not in messages[1]["content"]
        assert len(messages) == 4

    @pytest.mark.asyncio
    async def test_checkpoint_carries_reflection(self, fake_driver):
        provider = FakeProvider([respond(tool_call("save_progress", call_id="p1", price="49.99")), done_response()])
        orchestrator = _orchestrator(provider, fake_driver)
        await orchestrator.run("Find the price")

        checkpoint = AgentCheckpoint.from_json(orchestrator.get_checkpoint().to_json())
        assert checkpoint.reflection.facts == ["price: 49.99"]
        assert checkpoint.evidence.actions == orchestrator.evidence.actions

        resumed = _orchestrator(FakeProvider([done_response()]), FakeDriver())
        resumed.restore_checkpoint(checkpoint)
        assert resumed.reflection == orchestrator.reflection


# =============================================================================
# Completion checks
# =============================================================================


class TestCompletionChecks:
    @pytest.mark.asyncio
    async def test_done_after_navigation_needs_a_read(self, fake_driver):
        provider = FakeProvider(
            [
                respond(tool_call("get_page_text", call_id="g1")),
                respond(tool_call("navigate", call_id="n1", url="https://other.example/pricing")),
                respond(tool_call("done", call_id="d1", summary="Found the plan", answer="$10")),
                respond(tool_call("get_page_text", call_id="g2")),
                respond(tool_call("done", call_id="d2", summary="Found the plan", answer="$10")),
            ]
        )
        result = await _orchestrator(provider, fake_driver, detect_interventions=False).run("Find the pricing plan")

        assert result.success
        assert result.steps == 5
        rejection = [m for m in provider.calls[3]["messages"] if m.get("tool_call_id") == "d1"][0]
        assert "DONE_COVERAGE_FAILED" in rejection["content"]
        assert "not read after the last navigation" in rejection["content"]

    @pytest.mark.asyncio
    async def test_navigate_only_goal_accepts_done(self, fake_driver):
        provider = FakeProvider(
            [
                respond(tool_call("navigate", call_id="n1", url="https://example.org")),
                respond(tool_call("done", call_id="d1", summary="Opened the site", answer="https://example.org")),
            ]
        )
        result = await _orchestrator(provider, fake_driver, detect_interventions=False).run("Open example.org")
        assert result.success
        assert result.steps == 2

    @pytest.mark.asyncio
    async def test_done_after_only_failures_is_premature(self):
        driver = FakeDriver({"click": [MISSING_TARGET]})
        provider = FakeProvider(
            [
                respond(tool_call("click", call_id="c1", target=4)),
                respond(tool_call("done", call_id="d1", summary="Clicked", answer="done")),
                respond(tool_call("get_page_text", call_id="g1")),
                done_response(),
            ]
        )
        orchestrator = _orchestrator(provider, driver, detect_interventions=False, auto_observe=False)

        result = await orchestrator.run("Press the subscribe button")

        assert result.success
        assert result.steps == 4
        rejection = [m for m in provider.calls[2]["messages"] if m.get("tool_call_id") == "d1"][0]
        assert "PREMATURE_DONE" in rejection["content"]

    @pytest.mark.asyncio
    async def test_uncovered_subgoal_left_in_partial_result(self):
        driver = FakeDriver(page_texts=["The blue mug sells for a price of $12 in the shop"])
        provider = FakeProvider(
            [
                respond(tool_call("get_page_text", call_id="g1")),
                respond(tool_call("done", call_id="d1", summary="Found the mug price", answer="$12")),
            ],
            default=respond(tool_call("scroll", direction="down")),
        )
        orchestrator = _orchestrator(provider, driver, max_steps=3, detect_interventions=False, auto_observe=False)

        result = await orchestrator.run(TWO_PART_GOAL)

        assert not result.success
        rejection = [m for m in provider.calls[2]["messages"] if m.get("tool_call_id") == "d1"][0]
        assert "DONE_COVERAGE_FAILED" in rejection["content"]
        assert "check the shipping cost" in rejection["content"]
        assert result.partial_result.remaining_subgoals == ["check the shipping cost"]
        assert result.partial_result.answer == "$12"
        assert result.partial_result.facts[0].startswith("find the price of the blue mug:")


# =============================================================================
# Context pressure
# =============================================================================


class TestContextPressure:
    @pytest.mark.asyncio
    async def test_warning_emitted_with_first_compaction(self):
        page = {"success": True, "text": "lorem " * 3000}
        driver = FakeDriver({"get_page_text": [page, page, page]})
        provider = FakeProvider(
            [
                respond(
                    tool_call("get_page_text", call_id="g1", max_chars=20000),
                    tool_call("get_page_text", call_id="g2", max_chars=30000),
                    tool_call("get_page_text", call_id="g3", max_chars=40000),
                ),
                done_response(),
            ]
        )
        orchestrator = _orchestrator(
            provider,
            driver,
            context_window_tokens=6000,
            reserved_output_tokens=1000,
            max_conversation_messages=100,
            detect_interventions=False,
            auto_observe=False,
        )

        result = await orchestrator.run("Read the page")

        assert result.metrics.compactions == 1
        warnings = [e for e in _events(orchestrator, StepType.WARNING) if "Context usage" in (e.content or "")]
        assert len(warnings) == 1
        compaction = _events(orchestrator, StepType.COMPACTION)[0]
        assert orchestrator.history.index(warnings[0]) < orchestrator.history.index(compaction)

    @pytest.mark.asyncio
    async def test_tool_schemas_count_towards_pressure(self, fake_driver):
        catalog = ToolDefinition(name="lookup_catalog", description="catalog entry " * 3000)
        provider = FakeProvider([done_response()])
        orchestrator = _orchestrator(
            provider,
            fake_driver,
            tools=[*BROWSER_TOOLS, catalog],
            context_window_tokens=8000,
            reserved_output_tokens=0,
        )

        await orchestrator.run("Find the answer")

        assert orchestrator.budget.context_ratio > 1.0
        warnings = [e for e in _events(orchestrator, StepType.WARNING) if "Context usage" in (e.content or "")]
        assert warnings and warnings[0].step == 0
