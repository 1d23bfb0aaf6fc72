"""Tests for per-rep form scoring and session trends."""

import pytest

from repcoach.cv.rep_error_scorer import (
    AngleError,
    ErrorTrend,
    RepError,
    RepErrorScorer,
    analyze_rep_trends,
    feedback_for,
)


def rep(number, overall, percent=0.0, angle="right_knee", actual=100.0, expected=90.0):
    return RepError(
        rep_number=number,
        timestamp=float(number),
        per_angle_error={angle: AngleError(expected=expected, actual=actual,
                                           absolute_error=overall, percent_error=percent)},
        overall_error=overall,
        form_score=max(0.0, min(100.0, 100 - overall / 2)),
        matched_state_name="Flexed/Bent",
    )


class TestScorer:

    def test_exact_state_mean_scores_perfect(self, template):
        scorer = RepErrorScorer(template)
        rep_error = scorer.score({"right_knee": 170.0, "right_leg_segment": 10.0}, 1, 2.0)

        assert rep_error.overall_error == 0.0
        assert rep_error.form_score == 100.0
        assert rep_error.matched_state_name == "Extended/Straight"
        assert all(e.percent_error == 0.0 for e in rep_error.per_angle_error.values())

    def test_errors_against_nearest_state(self, template):
        scorer = RepErrorScorer(template)
        rep_error = scorer.score({"right_knee": 100.0, "right_leg_segment": 90.0}, 1, 1.0)

        knee = rep_error.per_angle_error["right_knee"]
        assert knee.expected == 90.0
        assert knee.absolute_error == pytest.approx(10.0)
        assert knee.percent_error == pytest.approx(50.0)  # state range is 20°
        assert rep_error.overall_error == pytest.approx(5.0)
        assert rep_error.form_score == pytest.approx(97.5)

    def test_zero_range_percent_is_zero(self, learned_template):
        rep_error = RepErrorScorer(learned_template).score({"right_knee": 95.0}, 1, 1.0)
        assert rep_error.per_angle_error["right_knee"].percent_error == 0.0

    def test_form_score_clamped(self, template):
        rep_error = RepErrorScorer(template).score({"right_knee": 0.0, "right_leg_segment": 400.0}, 1, 1.0)
        assert 0.0 <= rep_error.form_score <= 100.0

    def test_no_overlap_returns_none(self, template):
        scorer = RepErrorScorer(template)
        assert scorer.score({"left_elbow": 40.0}, 1, 1.0) is None
        assert scorer.rep_errors == []

    def test_summary_refreshed_every_rep(self, template):
        scorer = RepErrorScorer(template)
        scorer.score({"right_knee": 90.0, "right_leg_segment": 90.0}, 1, 1.0)
        scorer.score({"right_knee": 170.0, "right_leg_segment": 30.0}, 2, 3.0)

        assert len(scorer.summary.rep_errors) == 2
        assert scorer.summary.best_rep == 1
        assert scorer.summary.worst_rep == 2
        assert scorer.summary.average_error == pytest.approx(5.0)

        scorer.reset()
        assert scorer.rep_errors == []
        assert scorer.summary.rep_errors == []


class TestTrends:

    def test_empty(self):
        summary = analyze_rep_trends([])
        assert summary.average_error == 0.0
        assert summary.best_rep == 0
        assert summary.error_trend == ErrorTrend.STABLE
        assert summary.common_mistakes == []

    @pytest.mark.parametrize("errors, trend", [
        ([10, 10, 2, 2], ErrorTrend.IMPROVING),
        ([2, 2, 10, 10], ErrorTrend.DECLINING),
        ([5, 5, 3, 3], ErrorTrend.IMPROVING),
        ([5, 5, 4, 4], ErrorTrend.STABLE),
        ([10, 2, 2], ErrorTrend.STABLE),
    ])
    def test_first_half_vs_second_half(self, errors, trend):
        summary = analyze_rep_trends([rep(i + 1, e) for i, e in enumerate(errors)])
        assert summary.error_trend == trend

    def test_best_and_worst(self):
        summary = analyze_rep_trends([rep(1, 8.0), rep(2, 3.0), rep(3, 12.0)])
        assert summary.best_rep == 2
        assert summary.worst_rep == 3
        assert summary.average_error == pytest.approx(23.0 / 3)

    def test_common_mistakes(self):
        reps = [rep(1, 8.0, percent=30.0), rep(2, 8.0, percent=40.0),
                rep(3, 1.0, percent=5.0, angle="left_knee")]
        summary = analyze_rep_trends(reps)
        # right knee averages 70/3 = 23% over all three reps
        assert summary.common_mistakes == ["right knee (23% off)"]


class TestFeedback:

    def test_no_rep(self):
        assert feedback_for(None) == "Keep moving..."

    @pytest.mark.parametrize("overall, text", [
        (0.0, "Perfect form!"),
        (4.9, "Perfect form!"),
        (7.0, "Good form, minor adjustments"),
        (25.0, "Check your form"),
    ])
    def test_levels(self, overall, text):
        assert feedback_for(rep(1, overall)) == text

    def test_adjust_direction(self):
        assert feedback_for(rep(1, 12.0, actual=102.0, expected=90.0)) == "Adjust right knee - less bend"
        assert feedback_for(rep(1, 12.0, actual=78.0, expected=90.0)) == "Adjust right knee - more bend"
