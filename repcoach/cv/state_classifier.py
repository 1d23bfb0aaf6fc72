"""
Live state classification.

Two ways to label a live angle vector:
- StateClassifier: nearest learned state of an ExerciseTemplate, using a
  per-angle normalized Euclidean distance
- detect_state(): fixed angle thresholds from an exercise configuration,
  used when no template is loaded
"""

import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple
import logging

from repcoach.cv.state_learner import ExerciseTemplate, LearnedState
from repcoach.exceptions import NoTemplateLoadedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateMatch:
    """Nearest template state for one angle vector."""
    state_id: str
    state_name: str
    distance: float
    driver_angle: Optional[str] = None


def select_driver_angle(template: ExerciseTemplate) -> Optional[str]:
    """
    The tracked angle whose state means are spread widest.

    Returns None when no angle has statistics in any state.
    """
    return template.driver_angle


class StateClassifier:
    """
    Maps a smoothed angle vector to the nearest learned state.

    distance(state) = sqrt(mean_i(((value_i - mean_i) / scale_i) ** 2))
    with scale_i the state's std for angle i, or `scale_floor` when that std
    is zero. Only angles present in both the vector and the state count.
    """

    def __init__(self, template: Optional[ExerciseTemplate], scale_floor: float = 10.0):
        if template is None:
            raise NoTemplateLoadedError("StateClassifier requires a learned template")
        if scale_floor <= 0:
            raise ValueError("scale_floor must be positive")

        self.template = template
        self.scale_floor = scale_floor
        self.driver_angle = select_driver_angle(template)
        self._tracked = template.tracked_angles

        logger.debug(f"StateClassifier ready: {len(template.states)} states, "
                     f"driver angle={self.driver_angle}")

    def distance(self, state: LearnedState, angles: Mapping[str, float]) -> Optional[float]:
        """Normalized distance to one state, or None if nothing overlaps."""
        terms: List[float] = []
        for name in self._tracked:
            value = angles.get(name)
            stats = state.angle_stats.get(name)
            if value is None or stats is None:
                continue
            scale = stats.std_dev if stats.std_dev > 0 else self.scale_floor
            terms.append(((value - stats.mean) / scale) ** 2)

        if not terms:
            return None
        return math.sqrt(sum(terms) / len(terms))

    def classify(self, angles: Mapping[str, float]) -> Optional[StateMatch]:
        """Nearest state, or None when the vector shares no angle with the template."""
        best: Optional[Tuple[float, float, LearnedState]] = None

        for state in self.template.states:
            d = self.distance(state, angles)
            if d is None:
                continue
            # Ties go to the state whose driver-angle mean is closer
            tiebreak = 0.0
            if self.driver_angle is not None and self.driver_angle in angles:
                mean = state.mean(self.driver_angle)
                if mean is not None:
                    tiebreak = abs(angles[self.driver_angle] - mean)
            key = (d, tiebreak)
            if best is None or key < best[:2]:
                best = (d, tiebreak, state)

        if best is None:
            return None

        d, _, state = best
        return StateMatch(
            state_id=state.id,
            state_name=state.name,
            distance=d,
            driver_angle=self.driver_angle,
        )


# =============================================================================
# Threshold-based detection
# =============================================================================

@dataclass(frozen=True)
class AngleThreshold:
    """Allowed range of one angle within a configured state."""
    angle_name: str
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class StateDefinition:
    """A hand-configured exercise state."""
    id: str
    name: str
    thresholds: Tuple[AngleThreshold, ...]
    description: str = ""


def detect_state(
    angles: Mapping[str, float],
    states: Sequence[StateDefinition]
) -> Optional[str]:
    """
    First configured state whose thresholds hold for the angles present.

    At least one of the state's angles must be present; angles missing from
    the vector are ignored rather than treated as failures.
    """
    for state in states:
        matched_any = False
        all_match = True
        for threshold in state.thresholds:
            value = angles.get(threshold.angle_name)
            if value is None:
                continue
            matched_any = True
            if not threshold.contains(value):
                all_match = False
                break
        if matched_any and all_match:
            return state.id
    return None
