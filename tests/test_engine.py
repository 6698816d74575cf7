"""OnboardingFlow tests — lifecycle, validation gating, skipping, progress and persistence.

Uses the shipped v1 ruleset and the in-memory progress sink.  The
``muscle_building`` scenario walks a full session end to end.
"""

import logging
import random

import pytest

from onboarding_flow.engine import OnboardingFlow
from onboarding_flow.errors import (
    DanglingStepError,
    InvalidTransitionError,
    UnknownPackError,
)
from onboarding_flow.graph import StepGraph
from onboarding_flow.interfaces import ProgressSink
from onboarding_flow.models.session import FlowState
from onboarding_flow.resolvers import build_resolvers
from onboarding_flow.sinks import InMemoryProgressSink

from helpers.answers import VALID_PERSONAL_INFO, pick_answer

# Deterministic answers for a full muscle_building session
MUSCLE_ANSWERS = {
    "welcome": None,
    "get_name": "Alex",
    "main_objective": "muscle_gain",
    "personal_info": VALID_PERSONAL_INFO,
    "equipment_level": "full_gym",
    "strength_setup": "hypertrophy",
    "strength_experience": "intermediate",
    "nutrition_setup": "omnivore",
    "nutrition_objective": "muscle_gain",
    "nutrition_allergies": ["none"],
    "final_questions": "Build muscle and keep my energy up",
    "privacy_consent": True,
}

ATHLETE_ANSWERS = {
    "welcome": None,
    "get_name": "Jordan",
    "main_objective": "performance",
    "personal_info": VALID_PERSONAL_INFO,
    "sport_selection": "football",
    "sport_position": "Striker",
    "sport_level": "amateur_competitive",
    "season_period": "in_season",
    "training_frequency": 4,
    "equipment_level": "some_equipment",
    "strength_setup": "power",
    "strength_experience": "advanced",
    "nutrition_setup": "omnivore",
    "nutrition_objective": "performance",
    "final_questions": "Score more goals this season",
    "privacy_consent": True,
}


class FailingSink(ProgressSink):
    """Sink whose every save raises."""

    def __init__(self):
        self.calls = 0

    def save(self, user_id, data):
        self.calls += 1
        raise RuntimeError("profile store unavailable")


@pytest.fixture
def sink():
    return InMemoryProgressSink()


@pytest.fixture
def flow(store, sink, lenient_settings):
    return OnboardingFlow(store, "user-1", sink=sink, settings=lenient_settings)


def _answer_until(flow, answers, stop_at=None):
    """Submit scripted answers until *stop_at* is current or the flow ends."""
    while flow.state is FlowState.IN_PROGRESS and flow.current_step_id != stop_at:
        outcome = flow.submit(answers[flow.current_step_id])
        assert outcome.accepted, f"{flow.current_step_id}: {outcome.error}"


# =====================================================================
# Start
# =====================================================================


class TestStart:
    def test_start_pack(self, flow):
        view = flow.start("muscle_building")
        assert flow.state is FlowState.IN_PROGRESS
        assert view.id == "welcome"
        data = flow.data
        assert data.selected_pack == "muscle_building"
        assert data.selected_modules == ["strength", "nutrition"]
        assert data.started_at is not None
        assert data.progress.current_step == "welcome"
        assert data.progress.completed_steps == []

    def test_start_with_module_list_means_custom(self, flow):
        flow.start(["nutrition", "sleep"])
        assert flow.data.selected_pack == "custom"
        assert flow.active_modules == ["nutrition", "sleep"]
        assert "sleep_setup" in flow.sequence

    def test_start_custom_pack_with_modules(self, flow):
        flow.start("custom", ["hydration"])
        assert flow.sequence[4:6] == ["hydration_setup", "hydration_reminders"]

    def test_unknown_pack(self, flow):
        with pytest.raises(UnknownPackError) as exc_info:
            flow.start("does-not-exist")
        assert exc_info.value.pack_id == "does-not-exist"
        assert flow.state is FlowState.NOT_STARTED

    def test_unknown_pack_is_value_error(self, flow):
        with pytest.raises(ValueError):
            flow.start("does-not-exist")

    def test_custom_without_modules_cannot_start(self, flow):
        with pytest.raises(UnknownPackError):
            flow.start("custom")

    def test_restart_resets_progress(self, flow):
        flow.start("daily_health")
        flow.submit()
        flow.start("daily_health")
        assert flow.data.progress.completed_steps == []
        assert flow.current_step_id == "welcome"

    def test_view_of_select_step(self, flow):
        flow.start("muscle_building")
        _answer_until(flow, MUSCLE_ANSWERS, stop_at="main_objective")
        view = flow.view()
        assert view.type == "question"
        assert view.input_type == "single-select"
        assert {"id": "holistic", "label": "Holistic", "value": "holistic"} in view.options

    def test_view_of_slider_step(self, flow):
        flow.start(["sleep"])
        flow.submit()
        flow.submit("Sam")
        flow.submit("energy_sleep")
        flow.submit(VALID_PERSONAL_INFO)
        view = flow.view()
        assert view.id == "sleep_setup"
        assert view.constraints == {"min": 4, "max": 12, "step": 0.5}
        assert view.default_value == 8


# =====================================================================
# Submit & validation gating
# =====================================================================


class TestSubmit:
    def test_submit_before_start(self, flow):
        with pytest.raises(InvalidTransitionError):
            flow.submit("x")

    def test_required_failure_changes_nothing(self, flow):
        """A failing required rule leaves the step and the data untouched."""
        flow.start("muscle_building")
        flow.submit()
        before = flow.data.model_dump()
        outcome = flow.submit("")
        assert not outcome.accepted
        assert outcome.error.rule == "required"
        assert outcome.error.step_id == "get_name"
        assert outcome.current_step == "get_name"
        assert flow.current_step_id == "get_name"
        assert flow.data.model_dump() == before

    def test_type_error_is_a_validation_failure(self, flow):
        """A response the data model cannot hold is reported, not raised."""
        flow.start(["sport"])
        _answer_until(flow, {**ATHLETE_ANSWERS, "sport_level": "recreational"}, stop_at="training_frequency")
        before = flow.data.model_dump()
        outcome = flow.submit("lots")
        assert not outcome.accepted
        assert outcome.error.rule == "type"
        assert flow.data.model_dump() == before

    @pytest.mark.parametrize("response", ["99", "0", True])
    def test_number_step_stores_only_real_numbers(self, flow, response):
        """Numeric strings and bools are rejected rather than coerced into the data."""
        flow.start("performance_athlete")
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="training_frequency")
        before = flow.data.model_dump()
        outcome = flow.submit(response)
        assert not outcome.accepted
        assert outcome.error.rule == "type"
        assert flow.current_step_id == "training_frequency"
        assert flow.data.model_dump() == before
        assert flow.data.training_frequency is None

    def test_form_rejects_unknown_fields(self, flow):
        flow.start("muscle_building")
        _answer_until(flow, MUSCLE_ANSWERS, stop_at="personal_info")
        outcome = flow.submit({**VALID_PERSONAL_INFO, "progress": {}})
        assert not outcome.accepted
        assert outcome.error.rule == "fields"

    def test_form_merged_key_by_key(self, flow):
        flow.start("muscle_building")
        _answer_until(flow, MUSCLE_ANSWERS, stop_at="equipment_level")
        data = flow.data
        assert data.age == 29
        assert data.current_weight == 62.5
        assert data.available_time_per_day == 45

    def test_passive_step_ignores_response(self, flow):
        flow.start("muscle_building")
        outcome = flow.submit("ignored")
        assert outcome.accepted
        assert outcome.current_step == "get_name"

    def test_completed_steps_monotonic_and_unique(self, flow):
        flow.start("muscle_building")
        sizes = []
        while flow.state is FlowState.IN_PROGRESS:
            flow.submit(MUSCLE_ANSWERS[flow.current_step_id])
            completed = flow.data.progress.completed_steps
            assert len(completed) == len(set(completed))
            sizes.append(len(completed))
        assert sizes == sorted(sizes)


# =====================================================================
# Scenario — muscle_building end to end
# =====================================================================


def test_muscle_building_scenario(flow, sink):
    flow.start("muscle_building")
    seq = flow.sequence
    assert "strength_setup" in seq and "nutrition_objective" in seq
    assert "sleep_setup" not in seq and "hydration_setup" not in seq

    visited = []
    while flow.state is FlowState.IN_PROGRESS:
        visited.append(flow.current_step_id)
        outcome = flow.submit(MUSCLE_ANSWERS[flow.current_step_id])
        assert outcome.accepted, outcome.error

    assert visited[-1] == "privacy_consent"
    assert visited == seq
    assert flow.state is FlowState.COMPLETED
    assert flow.progress_percentage() == 1.0
    data = flow.data
    assert data.completed_at is not None
    assert data.progress.current_step is None
    assert data.progress.skip_count == 0
    assert data.strength_objective == "hypertrophy"
    assert data.food_allergies == ["none"]
    assert flow.estimated_time_remaining() == 0
    assert sink.latest["user-1"].completed_at is not None


def test_performance_athlete_passes_over_allergies(flow):
    """nutrition_allergies is not in the pack: advancing records it as skipped."""
    flow.start("performance_athlete")
    _answer_until(flow, ATHLETE_ANSWERS, stop_at="nutrition_objective")
    outcome = flow.submit("performance")
    assert outcome.current_step == "final_questions"
    assert outcome.auto_skipped == ["nutrition_allergies"]
    progress = flow.data.progress
    assert progress.skip_count == 1
    assert "nutrition_allergies" in progress.skipped_steps
    assert "nutrition_allergies" not in progress.completed_steps
    _answer_until(flow, ATHLETE_ANSWERS)
    assert flow.progress_percentage() == 1.0


def test_wellness_balance_follows_sequence_order(flow):
    """Modules are visited in the order the pack asks them, not the pack's module list."""
    rng = random.Random(7)
    flow.start("wellness_balance")
    visited = []
    while flow.state is FlowState.IN_PROGRESS:
        visited.append(flow.current_step_id)
        flow.submit(pick_answer(flow.current_step, rng))
    assert visited == [q for q in flow.sequence if q in visited]
    assert visited.index("nutrition_setup") < visited.index("sleep_setup") < visited.index("hydration_setup")


def test_other_sport_bypasses_position(flow):
    flow.start(["sport"])
    answers = {**ATHLETE_ANSWERS, "sport_selection": "other", "sport_level": "recreational"}
    _answer_until(flow, answers, stop_at="sport_level")
    assert "sport_position" not in flow.data.progress.completed_steps
    outcome = flow.submit("recreational")
    assert outcome.current_step == "training_frequency"
    # neither bypassed step counts towards the total
    _answer_until(flow, answers)
    assert flow.progress_percentage() == 1.0
    assert flow.data.progress.skip_count == 0


# =====================================================================
# Skip
# =====================================================================


class TestSkip:
    def test_skip_skippable_step(self, flow):
        flow.start(["sport"])
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="season_period")
        outcome = flow.skip()
        assert outcome.accepted
        assert outcome.current_step == "training_frequency"
        progress = flow.data.progress
        assert progress.skip_count == 1
        assert progress.skipped_steps == ["season_period"]
        assert "season_period" not in progress.completed_steps
        assert flow.data.season_period is None

    def test_skipped_step_leaves_total(self, flow):
        flow.start(["sport"])
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="season_period")
        before = flow.total_steps()
        flow.skip("season_period")
        assert flow.total_steps() == before - 1

    def test_skip_required_step_raises(self, flow):
        flow.start("muscle_building")
        flow.submit()
        with pytest.raises(InvalidTransitionError):
            flow.skip()
        assert flow.current_step_id == "get_name"

    def test_skip_wrong_step_id(self, flow):
        flow.start("muscle_building")
        with pytest.raises(InvalidTransitionError):
            flow.skip("privacy_consent")

    def test_skip_after_completion(self, flow):
        flow.start("muscle_building")
        _answer_until(flow, MUSCLE_ANSWERS)
        with pytest.raises(InvalidTransitionError):
            flow.skip()


# =====================================================================
# go_back & abort
# =====================================================================


class TestNavigation:
    def test_go_back_and_resubmit(self, flow):
        flow.start("muscle_building")
        flow.submit()
        flow.submit("Alex")
        view = flow.go_back()
        assert view.id == "get_name"
        assert "get_name" in flow.data.progress.completed_steps
        outcome = flow.submit("Sam")
        assert outcome.current_step == "main_objective"
        data = flow.data
        assert data.first_name == "Sam"
        assert data.progress.completed_steps.count("get_name") == 1

    def test_go_back_at_first_step(self, flow):
        flow.start("muscle_building")
        with pytest.raises(InvalidTransitionError):
            flow.go_back()

    def test_go_back_twice(self, flow):
        flow.start("muscle_building")
        flow.submit()
        flow.submit("Alex")
        flow.go_back()
        assert flow.go_back().id == "welcome"

    def test_changed_branch_clears_hidden_answer(self, flow):
        """Switching sport to "other" drops the position answered on the old branch."""
        flow.start(["sport"])
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="sport_level")
        assert flow.data.sport_position == "Striker"
        flow.go_back()
        assert flow.go_back().id == "sport_selection"
        outcome = flow.submit("other")
        assert outcome.current_step == "sport_level"
        data = flow.data
        assert data.sport == "other"
        assert data.sport_position is None
        assert "sport_position" in data.progress.completed_steps
        assert "sport_position" not in data.progress.skipped_steps

    def test_skip_revisited_step_withdraws_answer(self, flow):
        flow.start(["sport"])
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="training_frequency")
        assert flow.go_back().id == "season_period"
        outcome = flow.skip()
        assert outcome.current_step == "training_frequency"
        data = flow.data
        assert data.season_period is None
        assert "season_period" in data.progress.completed_steps
        assert "season_period" not in data.progress.skipped_steps
        assert data.progress.skip_count == 0

    def test_rewalk_does_not_recount_skips(self, flow):
        flow.start("performance_athlete")
        _answer_until(flow, ATHLETE_ANSWERS, stop_at="final_questions")
        assert flow.data.progress.skip_count == 1
        assert flow.go_back().id == "nutrition_objective"
        outcome = flow.submit("performance")
        assert outcome.auto_skipped == ["nutrition_allergies"]
        progress = flow.data.progress
        assert progress.skip_count == 1
        assert progress.skipped_steps == ["nutrition_allergies"]

    def test_abort_discards_data(self, flow):
        flow.start("muscle_building")
        flow.submit()
        flow.submit("Alex")
        flow.abort()
        assert flow.state is FlowState.ABORTED
        assert flow.data.first_name is None
        assert flow.sequence == []
        assert flow.view() is None
        with pytest.raises(InvalidTransitionError):
            flow.submit("x")

    def test_abort_before_start(self, flow):
        flow.abort()
        assert flow.state is FlowState.ABORTED

    def test_restart_after_abort(self, flow):
        flow.start("muscle_building")
        flow.abort()
        flow.start("daily_health")
        assert flow.state is FlowState.IN_PROGRESS


# =====================================================================
# Progress & estimates
# =====================================================================


class TestProgress:
    def test_initial_progress(self, flow):
        flow.start("muscle_building")
        assert flow.progress_percentage() == 0.0
        assert flow.total_steps() == 12
        assert flow.data.progress.total_steps == 12
        assert flow.estimated_time_remaining() > 0

    def test_progress_grows(self, flow):
        flow.start("muscle_building")
        flow.submit()
        assert flow.progress_percentage() == pytest.approx(1 / 12)

    def test_time_remaining_shrinks(self, flow):
        flow.start("muscle_building")
        start = flow.estimated_time_remaining()
        _answer_until(flow, MUSCLE_ANSWERS, stop_at="final_questions")
        assert flow.estimated_time_remaining() < start
        assert flow.data.progress.estimated_time_left == flow.estimated_time_remaining()

    def test_not_started(self, flow):
        assert flow.progress_percentage() == 0.0
        assert flow.total_steps() == 0
        assert flow.estimated_time_remaining() == 0


# =====================================================================
# Persistence side channel
# =====================================================================


class TestSink:
    def test_saved_after_each_transition(self, flow, sink):
        flow.start("muscle_building")
        assert sink.history == []
        flow.submit()
        flow.submit("")  # rejected, not saved
        flow.submit("Alex")
        assert len(sink.history) == 2
        assert sink.load("user-1").first_name == "Alex"

    def test_sink_receives_copies(self, flow, sink):
        flow.start("muscle_building")
        flow.submit()
        sink.latest["user-1"].progress.completed_steps.append("tampered")
        assert "tampered" not in flow.data.progress.completed_steps

    def test_failing_sink_does_not_roll_back(self, store, lenient_settings, caplog):
        failing = FailingSink()
        f = OnboardingFlow(store, "user-2", sink=failing, settings=lenient_settings)
        f.start("muscle_building")
        with caplog.at_level(logging.ERROR, logger="onboarding_flow.engine"):
            outcome = f.submit()
        assert outcome.accepted
        assert f.current_step_id == "get_name"
        assert failing.calls == 1
        assert any("user-2" in r.getMessage() for r in caplog.records)


# =====================================================================
# Dangling successors
# =====================================================================


class TestDangling:
    @pytest.fixture
    def broken_graph(self, store):
        resolvers = build_resolvers(store.catalog)
        resolvers["get_name"] = lambda response, data: "nowhere"
        return StepGraph(store, resolvers=resolvers)

    def test_strict_raises_and_keeps_state(self, store, strict_settings, broken_graph):
        f = OnboardingFlow(store, "dev", settings=strict_settings, graph=broken_graph)
        f.start("muscle_building")
        f.submit()
        with pytest.raises(DanglingStepError) as exc_info:
            f.submit("Alex")
        assert exc_info.value.target_id == "nowhere"
        assert f.current_step_id == "get_name"
        assert f.data.first_name is None
        assert "get_name" not in f.data.progress.completed_steps

    def test_lenient_completes(self, store, lenient_settings, broken_graph, caplog):
        f = OnboardingFlow(store, "prod", settings=lenient_settings, graph=broken_graph)
        f.start("muscle_building")
        f.submit()
        with caplog.at_level(logging.ERROR, logger="onboarding_flow.engine"):
            outcome = f.submit("Alex")
        assert outcome.accepted
        assert outcome.completed
        assert f.state is FlowState.COMPLETED
        assert any("nowhere" in r.getMessage() for r in caplog.records)

    def test_dangling_is_lookup_error(self):
        assert issubclass(DanglingStepError, LookupError)
