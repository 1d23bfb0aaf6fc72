"""Tests for live state classification and threshold detection."""

import pytest

from conftest import make_state, make_template
from repcoach.cv.exercise_config import get_exercise_config
from repcoach.cv.state_classifier import (
    AngleThreshold,
    StateClassifier,
    StateDefinition,
    detect_state,
    select_driver_angle,
)
from repcoach.cv.state_learner import ExerciseTemplate
from repcoach.exceptions import NoTemplateLoadedError


class TestStateClassifier:

    def test_driver_angle_has_widest_spread(self):
        template = ExerciseTemplate(
            exercise_name="Squat",
            exercise_type="squat",
            states=(
                make_state("state_0", "Standing", {"right_knee": (170, 165, 175, 2),
                                                   "right_hip": (170, 165, 175, 2)}, 0.0, 1.0),
                make_state("state_1", "Squat", {"right_knee": (90, 85, 95, 2),
                                                "right_hip": (120, 115, 125, 2)}, 1.1, 2.0),
            ),
            transitions=(),
            canonical_state_sequence=("state_0", "state_1"),
            total_duration=2.0,
            recommended_reps=1,
            confidence_score=50.0,
        )
        assert select_driver_angle(template) == "right_knee"

    def test_nearest_state(self, learned_template):
        classifier = StateClassifier(learned_template)

        assert classifier.classify({"right_knee": 95.0, "right_leg_segment": 85.0}).state_id == "state_0"
        assert classifier.classify({"right_knee": 160.0, "right_leg_segment": 20.0}).state_id == "state_1"

    def test_partial_vector_uses_available_angles(self, learned_template):
        match = StateClassifier(learned_template).classify({"right_knee": 168.0})
        assert match.state_id == "state_1"
        assert match.driver_angle == "right_knee"

    def test_zero_std_uses_scale_floor(self, learned_template):
        classifier = StateClassifier(learned_template, scale_floor=10.0)
        state = learned_template.state_by_id("state_0")
        # right_knee 20° off, right_leg_segment exact -> sqrt((2^2 + 0) / 2)
        d = classifier.distance(state, {"right_knee": 110.0, "right_leg_segment": 90.0})
        assert d == pytest.approx(2 ** 0.5)

    def test_std_scales_distance(self, template):
        classifier = StateClassifier(template)
        state = template.state_by_id("state_0")
        assert classifier.distance(state, {"right_knee": 100.0}) == pytest.approx(2.0)

    def test_exact_tie_is_deterministic(self, learned_template):
        classifier = StateClassifier(learned_template)
        midpoint = {"right_knee": 130.0, "right_leg_segment": 50.0}
        assert classifier.classify(midpoint).state_id == "state_0"

    def test_no_overlap_returns_none(self, learned_template):
        assert StateClassifier(learned_template).classify({"left_elbow": 40.0}) is None

    def test_requires_template(self):
        with pytest.raises(NoTemplateLoadedError):
            StateClassifier(None)


class TestDetectState:

    @pytest.fixture
    def states(self):
        return get_exercise_config("knee-extension").states

    @pytest.mark.parametrize("angles, expected", [
        ({"right_knee": 95.0}, "flexed"),
        ({"right_knee": 165.0, "left_knee": 170.0}, "extended"),
        ({"right_knee": 110.0}, "flexed"),
        ({"right_knee": 130.0}, None),
        ({"right_knee": 95.0, "left_knee": 170.0}, None),
        ({"right_elbow": 95.0}, None),
        ({}, None),
    ])
    def test_threshold_states(self, states, angles, expected):
        assert detect_state(angles, states) == expected

    def test_first_matching_state_wins(self):
        overlapping = (
            StateDefinition("a", "A", (AngleThreshold("right_knee", 0, 100),)),
            StateDefinition("b", "B", (AngleThreshold("right_knee", 50, 180),)),
        )
        assert detect_state({"right_knee": 75.0}, overlapping) == "a"
        assert detect_state({"right_knee": 150.0}, overlapping) == "b"
