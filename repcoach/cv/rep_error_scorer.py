"""
Per-repetition form scoring against a learned template.

At each counted repetition the live angle vector is matched to its nearest
template state and every tracked angle is compared with that state's mean:

    absolute_error = |actual - expected_mean|
    percent_error  = absolute_error / (state max - state min) * 100   (0 if range is 0)
    overall_error  = mean(absolute_error)
    form_score     = clamp(100 - overall_error / 2, 0, 100)

The session summary (average, best/worst rep, trend and common mistakes) is
recomputed from the full list after every rep.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
import logging

from repcoach.cv.state_classifier import StateClassifier
from repcoach.cv.state_learner import ExerciseTemplate

logger = logging.getLogger(__name__)


class ErrorTrend:
    """Direction of form across a session."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass(frozen=True)
class AngleError:
    expected: float
    actual: float
    absolute_error: float
    percent_error: float


@dataclass(frozen=True)
class RepError:
    """Form error of one counted repetition."""
    rep_number: int
    timestamp: float
    per_angle_error: Dict[str, AngleError]
    overall_error: float
    form_score: float
    matched_state_name: str


@dataclass
class RepErrorSummary:
    """Aggregate of every RepError in a session."""
    rep_errors: List[RepError] = field(default_factory=list)
    average_error: float = 0.0
    best_rep: int = 0
    worst_rep: int = 0
    error_trend: str = ErrorTrend.STABLE
    common_mistakes: List[str] = field(default_factory=list)


def readable_angle_name(angle_name: str) -> str:
    return angle_name.replace("_", " ")


def analyze_rep_trends(
    rep_errors: List[RepError],
    trend_threshold: float = 2.0,
    min_reps_for_trend: int = 4,
    common_mistake_percent: float = 20.0
) -> RepErrorSummary:
    """
    Summarize a session's rep errors.

    Trend compares the mean overall error of the first and second half of the
    reps; a difference of at least `trend_threshold` degrees moves it away
    from stable. Fewer than `min_reps_for_trend` reps are always stable.
    """
    if not rep_errors:
        return RepErrorSummary()

    n = len(rep_errors)
    average = sum(r.overall_error for r in rep_errors) / n

    # min()/max() keep the first rep on ties
    best = min(rep_errors, key=lambda r: r.overall_error).rep_number
    worst = max(rep_errors, key=lambda r: r.overall_error).rep_number

    trend = ErrorTrend.STABLE
    if n >= min_reps_for_trend:
        mid = n // 2
        first = sum(r.overall_error for r in rep_errors[:mid]) / mid
        second = sum(r.overall_error for r in rep_errors[mid:]) / (n - mid)
        if first - second >= trend_threshold:
            trend = ErrorTrend.IMPROVING
        elif second - first >= trend_threshold:
            trend = ErrorTrend.DECLINING

    totals: Dict[str, float] = {}
    for rep in rep_errors:
        for name, err in rep.per_angle_error.items():
            totals[name] = totals.get(name, 0.0) + err.percent_error

    mistakes = []
    for name, total in totals.items():
        avg_percent = total / n
        if avg_percent > common_mistake_percent:
            mistakes.append(f"{readable_angle_name(name)} ({avg_percent:.0f}% off)")

    return RepErrorSummary(
        rep_errors=list(rep_errors),
        average_error=average,
        best_rep=best,
        worst_rep=worst,
        error_trend=trend,
        common_mistakes=mistakes,
    )


def feedback_for(rep_error: Optional[RepError]) -> str:
    """Short coaching cue for the latest rep."""
    if rep_error is None:
        return "Keep moving..."

    if rep_error.overall_error < 5:
        return "Perfect form!"
    if rep_error.overall_error < 10:
        return "Good form, minor adjustments"
    if rep_error.overall_error < 20 and rep_error.per_angle_error:
        name, worst = max(rep_error.per_angle_error.items(), key=lambda item: item[1].absolute_error)
        direction = "less" if worst.actual > worst.expected else "more"
        return f"Adjust {readable_angle_name(name)} - {direction} bend"
    return "Check your form"


class RepErrorScorer:
    """
    Scores counted repetitions for one session.

    Usage:
        scorer = RepErrorScorer(template)
        rep_error = scorer.score(angles, rep_number=1, timestamp=2.4)
        scorer.summary.average_error
    """

    def __init__(
        self,
        template: ExerciseTemplate,
        classifier: Optional[StateClassifier] = None,
        trend_threshold: float = 2.0,
        min_reps_for_trend: int = 4,
        common_mistake_percent: float = 20.0
    ):
        self.template = template
        self.classifier = classifier or StateClassifier(template)
        self.trend_threshold = trend_threshold
        self.min_reps_for_trend = min_reps_for_trend
        self.common_mistake_percent = common_mistake_percent

        self.rep_errors: List[RepError] = []
        self.summary = RepErrorSummary()

    def score(
        self,
        angles: Mapping[str, float],
        rep_number: int,
        timestamp: float
    ) -> Optional[RepError]:
        """
        Score one repetition and refresh the summary.

        Returns None when the angles share nothing with the template.
        """
        match = self.classifier.classify(angles)
        if match is None:
            logger.debug(f"Rep #{rep_number}: no template state to score against")
            return None

        state = self.template.state_by_id(match.state_id)
        per_angle: Dict[str, AngleError] = {}

        for name in self.template.tracked_angles:
            actual = angles.get(name)
            stats = state.angle_stats.get(name)
            if actual is None or stats is None:
                continue
            error = abs(actual - stats.mean)
            percent = error / stats.range * 100 if stats.range > 0 else 0.0
            per_angle[name] = AngleError(
                expected=stats.mean,
                actual=actual,
                absolute_error=error,
                percent_error=percent,
            )

        if not per_angle:
            return None

        overall = sum(e.absolute_error for e in per_angle.values()) / len(per_angle)
        rep_error = RepError(
            rep_number=rep_number,
            timestamp=timestamp,
            per_angle_error=per_angle,
            overall_error=overall,
            form_score=max(0.0, min(100.0, 100 - overall / 2)),
            matched_state_name=state.name,
        )

        self.rep_errors.append(rep_error)
        self.summary = analyze_rep_trends(
            self.rep_errors,
            trend_threshold=self.trend_threshold,
            min_reps_for_trend=self.min_reps_for_trend,
            common_mistake_percent=self.common_mistake_percent,
        )

        logger.info(f"Rep #{rep_number}: error {overall:.1f}°, form score "
                    f"{rep_error.form_score:.0f} ({state.name})")
        return rep_error

    def reset(self):
        self.rep_errors = []
        self.summary = RepErrorSummary()
