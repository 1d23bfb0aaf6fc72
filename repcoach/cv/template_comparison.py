"""
Template-to-template comparison.

Compares a performed recording's learned template with a reference template:
each reference state is matched to its most similar performed state, and each
angle's average state mean is compared across the two templates.
"""

from dataclasses import dataclass, field
from typing import Dict, List
import logging

from repcoach.cv.state_learner import ExerciseTemplate, LearnedState

logger = logging.getLogger(__name__)


@dataclass
class TemplateComparison:
    """Similarity of a performed template to a reference template."""
    similarity: int  # 0-100
    reference_reps: int
    performed_reps: int
    state_matches: Dict[str, float] = field(default_factory=dict)  # reference state name -> %
    angle_deviations: Dict[str, float] = field(default_factory=dict)  # angle -> degrees


def state_similarity(a: LearnedState, b: LearnedState) -> float:
    """Average per-angle similarity of two states' means, 0-100 (0 if no common angle)."""
    common = [name for name in a.angle_stats if name in b.angle_stats]
    if not common:
        return 0.0

    scores = [
        max(0.0, 100 - abs(a.angle_stats[n].mean - b.angle_stats[n].mean) / 180 * 100)
        for n in common
    ]
    return sum(scores) / len(scores)


def _average_mean(template: ExerciseTemplate, angle_name: str) -> List[float]:
    return [s.angle_stats[angle_name].mean for s in template.states if angle_name in s.angle_stats]


def compare_templates(reference: ExerciseTemplate, performed: ExerciseTemplate) -> TemplateComparison:
    """
    Score how closely `performed` reproduces `reference`.

    overall = 0.6 * mean state similarity + 0.4 * (100 - min(100, mean angle deviation))
    """
    state_matches: Dict[str, float] = {}
    for ref_state in reference.states:
        best = 0.0
        for state in performed.states:
            best = max(best, state_similarity(ref_state, state))
        state_matches[ref_state.name] = best

    angle_deviations: Dict[str, float] = {}
    for name in reference.tracked_angles:
        ref_means = _average_mean(reference, name)
        perf_means = _average_mean(performed, name)
        if ref_means and perf_means:
            angle_deviations[name] = abs(
                sum(ref_means) / len(ref_means) - sum(perf_means) / len(perf_means)
            )

    state_score = sum(state_matches.values()) / len(state_matches)
    if angle_deviations:
        mean_deviation = sum(angle_deviations.values()) / len(angle_deviations)
    else:
        mean_deviation = 100.0
    angle_accuracy = 100 - min(100.0, mean_deviation)

    similarity = int(round(state_score * 0.6 + angle_accuracy * 0.4))
    logger.info(f"Compared '{performed.exercise_name}' with reference "
                f"'{reference.exercise_name}': {similarity}% similar")

    return TemplateComparison(
        similarity=similarity,
        reference_reps=reference.recommended_reps,
        performed_reps=performed.recommended_reps,
        state_matches=state_matches,
        angle_deviations=angle_deviations,
    )
