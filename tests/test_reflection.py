# tests/test_reflection.py
"""
Tests for the per-run reflection state (sub-goals, facts, unknowns).
"""

from chuk_ai_browser_agent.agent import ReflectionState, SubGoalStatus

GOAL = "find apple info, then check samsung info"
APPLE_PAGE = {"success": True, "text": "Apple info: the new apple phone launches in May with a larger battery"}


class TestSubGoals:
    def test_for_goal(self):
        state = ReflectionState.for_goal(GOAL)
        assert [sg.text for sg in state.sub_goals] == ["find apple info", "check samsung info"]
        assert [sg.id for sg in state.sub_goals] == ["sg_1", "sg_2"]
        assert state.subtasks == ["find apple info", "check samsung info"]
        assert state.unknowns == ["find apple info", "check samsung info"]
        assert not state.navigate_only

    def test_tracker_text(self):
        tracker = ReflectionState.for_goal(GOAL).tracker_text()
        assert tracker.startswith("Progress: 0/2 completed")
        assert "- [pending] find apple info (conf=0%, attempts=0)" in tracker

    def test_low_signal_action_starts_progress(self):
        state = ReflectionState.for_goal(GOAL)
        completed = state.record_action(1, "find_text", {"query": "apple info"}, {"success": True, "query": "apple info"})

        assert not completed
        touched = state.sub_goals[0]
        assert touched.status == SubGoalStatus.IN_PROGRESS
        assert touched.attempts == 1
        assert touched.confidence >= 0.2
        assert touched.last_tool == "find_text"
        assert touched.evidence

    def test_content_read_completes_matching_subgoal(self):
        state = ReflectionState.for_goal(GOAL)
        assert state.record_action(2, "get_page_text", {}, APPLE_PAGE)

        assert state.sub_goals[0].status == SubGoalStatus.COMPLETED
        assert state.sub_goals[1].status != SubGoalStatus.COMPLETED
        assert state.remaining() == ["check samsung info"]
        assert state.facts[0].startswith("find apple info: Apple info:")

    def test_unmatched_action_goes_to_first_open_subgoal(self):
        state = ReflectionState.for_goal(GOAL)
        state.record_action(0, "scroll", {"direction": "down"}, {"success": True})
        assert state.sub_goals[0].attempts == 1
        assert state.sub_goals[1].attempts == 0

    def test_failure_lowers_confidence_and_blocks(self):
        state = ReflectionState.for_goal(GOAL)
        state.record_action(0, "click", {"target": 3}, {"success": False, "code": "MISSING_TARGET"})
        assert state.sub_goals[0].status == SubGoalStatus.IN_PROGRESS
        assert state.sub_goals[0].confidence == 0.05

        state.record_action(1, "navigate", {"url": "https://apple.example"}, {"success": False, "code": "SITE_BLOCKED"})
        assert state.sub_goals[0].status == SubGoalStatus.BLOCKED

    def test_apply_coverage(self):
        state = ReflectionState.for_goal(GOAL)
        state.apply_coverage(["check samsung info"])
        assert state.sub_goals[0].status == SubGoalStatus.COMPLETED
        assert state.sub_goals[1].status != SubGoalStatus.COMPLETED
        assert state.sub_goals[1].confidence <= 0.74

    def test_seed_plan_for_single_part_goal(self):
        state = ReflectionState.for_goal("Find the price")
        assert state.seed_plan("Plan:\n1. Read the product page\n2) Report the price\n- x")
        assert [sg.text for sg in state.sub_goals] == ["Read the product page", "Report the price"]

    def test_seed_plan_ignored_for_multi_part_goal(self):
        state = ReflectionState.for_goal(GOAL)
        assert not state.seed_plan("1. Read the page\n2. Report both")
        assert len(state.sub_goals) == 2


class TestFacts:
    def test_saved_progress_becomes_facts(self):
        state = ReflectionState.for_goal("Find the price")
        state.record_saved({"price": "49.99", "sizes": ["S", "M"]})
        assert state.facts == ["price: 49.99", 'sizes: ["S", "M"]']

    def test_facts_capped_and_deduplicated(self):
        state = ReflectionState()
        for i in range(20):
            state.add_fact(f"fact {i}")
        state.add_fact("fact 19")
        assert len(state.facts) == 16
        assert state.facts[0] == "fact 4"
        assert state.facts[-1] == "fact 19"

    def test_best_effort_answer(self):
        state = ReflectionState.for_goal(GOAL)
        state.record_action(2, "get_page_text", {}, APPLE_PAGE)
        answer = state.best_effort_answer()
        assert answer.startswith("Collected findings:\n- find apple info:")
        assert "Potential gaps:\n- check samsung info" in answer

    def test_progress(self):
        state = ReflectionState.for_goal(GOAL)
        assert state.progress == 0.0
        state.apply_coverage([])
        assert state.progress >= 0.7

    def test_json_round_trip(self):
        state = ReflectionState.for_goal(GOAL)
        state.record_action(2, "get_page_text", {}, APPLE_PAGE)
        restored = ReflectionState.model_validate_json(state.model_dump_json())
        assert restored == state
