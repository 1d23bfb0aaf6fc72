"""
Exercise state learning from a reference recording.

Turns the full angle time series of one reference performance into an
ExerciseTemplate:
1. Quantize samples onto a common timeline (0.01s) -> one feature vector per frame
2. Pick K = clamp(frames // 30, 2, 4) states
3. Lloyd's k-means with a seeded, injectable random generator
4. Per-state angle statistics and occurrence intervals
5. Deterministic state ordering by first occurrence
6. Transitions and the canonical state sequence
7. Recommended reps and a confidence score

Templates are immutable once built. A learning call either returns a complete
template or raises; there are no partial results.
"""

import threading
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np
from scipy.spatial.distance import cdist

from repcoach.cv.angle_extractor import AngleSample
from repcoach.exceptions import (
    EmptyClusterWarning,
    InsufficientDataError,
    LearningCancelledError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Template data structures
# =============================================================================

@dataclass(frozen=True)
class AngleStats:
    """Distribution of one angle within one state."""
    mean: float
    min: float
    max: float
    std_dev: float

    @property
    def range(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class StateOccurrence:
    """A continuous interval during which the reference held a state."""
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class LearnedState:
    """One pose phase of the exercise."""
    id: str
    name: str
    angle_stats: Dict[str, AngleStats]
    occurrences: Tuple[StateOccurrence, ...]
    representative_timestamp: float
    description: str = ""

    @property
    def first_start(self) -> float:
        return self.occurrences[0].start_time

    def mean(self, angle_name: str) -> Optional[float]:
        stats = self.angle_stats.get(angle_name)
        return stats.mean if stats else None


@dataclass(frozen=True)
class AngleChange:
    """Mean angle change across one transition."""
    start_angle: float
    end_angle: float
    delta: float


@dataclass(frozen=True)
class StateTransition:
    """A move from one state to another in the reference timeline."""
    from_state_id: str
    to_state_id: str
    duration: float
    angle_changes: Dict[str, AngleChange]


@dataclass(frozen=True)
class TemplateMetadata:
    """Provenance of a learned template."""
    detected_at: str  # ISO-8601 UTC
    video_length: float  # seconds
    fps: float
    frame_count: int = 0


@dataclass(frozen=True)
class ExerciseTemplate:
    """
    Learned set of states, transitions and canonical sequence.

    Never mutated after construction; live sessions swap in a new instance
    when a template is relearned.
    """
    exercise_name: str
    exercise_type: str
    states: Tuple[LearnedState, ...]
    transitions: Tuple[StateTransition, ...]
    canonical_state_sequence: Tuple[str, ...]
    total_duration: float
    recommended_reps: int
    confidence_score: float
    metadata: Optional[TemplateMetadata] = None
    angle_names: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if len(self.states) < 2:
            raise ValueError(f"A template needs at least 2 states, got {len(self.states)}")
        ids = {s.id for s in self.states}
        unknown = [sid for sid in self.canonical_state_sequence if sid not in ids]
        if unknown:
            raise ValueError(f"Canonical sequence references unknown states: {unknown}")
        if not 0.0 <= self.confidence_score <= 100.0:
            raise ValueError(f"confidence_score out of range: {self.confidence_score}")

    def state_by_id(self, state_id: str) -> Optional[LearnedState]:
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    @property
    def tracked_angles(self) -> List[str]:
        """Angle names with statistics in at least one state."""
        names: List[str] = list(self.angle_names)
        for state in self.states:
            for name in state.angle_stats:
                if name not in names:
                    names.append(name)
        return [n for n in names if any(n in s.angle_stats for s in self.states)]

    @property
    def driver_angle(self) -> Optional[str]:
        """Tracked angle whose state means are spread widest, or None."""
        best_name: Optional[str] = None
        best_spread = -1.0
        for name in self.tracked_angles:
            means = [s.angle_stats[name].mean for s in self.states if name in s.angle_stats]
            if not means:
                continue
            spread = max(means) - min(means)
            if spread > best_spread:
                best_spread = spread
                best_name = name
        return best_name

    def extreme_states(self) -> Tuple[str, str]:
        """Ids of the states with the lowest and highest driver-angle mean."""
        driver = self.driver_angle
        ranked = [s for s in self.states if driver is not None and driver in s.angle_stats]
        if len(ranked) < 2:
            return self.states[0].id, self.states[1].id
        ranked.sort(key=lambda s: s.angle_stats[driver].mean)
        return ranked[0].id, ranked[-1].id

    def phase_state(self, state_id: str) -> str:
        """
        Map a state to the dwell phase it belongs to.

        Every state collapses onto whichever extreme state (lowest or highest
        driver-angle mean) its own driver mean is closer to, so short-lived
        transition clusters and split dwell clusters share one label.
        """
        low, high = self.extreme_states()
        driver = self.driver_angle
        state = self.state_by_id(state_id)
        if state is None or driver is None or driver not in state.angle_stats:
            return state_id
        low_mean = self.state_by_id(low).angle_stats[driver].mean
        high_mean = self.state_by_id(high).angle_stats[driver].mean
        value = state.angle_stats[driver].mean
        return low if abs(value - low_mean) <= abs(value - high_mean) else high

    def rep_cycle(self) -> List[str]:
        """
        One repetition as a sequence of phase states.

        A repetition goes from the phase the reference starts in to the
        opposite extreme and back, e.g. [state_0, state_1, state_0]. Live
        labels must be mapped through phase_state() before counting.
        """
        low, high = self.extreme_states()
        seq = self.canonical_state_sequence
        start = self.phase_state(seq[0]) if seq else low
        if start not in (low, high):
            start = low
        other = high if start == low else low
        return [start, other, start]


# =============================================================================
# Learner
# =============================================================================

@dataclass
class KMeansResult:
    labels: np.ndarray
    centroids: np.ndarray
    iterations: int
    converged: bool


def cluster_count(frame_count: int, frames_per_state: int = 30,
                  min_states: int = 2, max_states: int = 4) -> int:
    """At least `frames_per_state` frames per state on average, clamped."""
    return max(min_states, min(max_states, frame_count // frames_per_state))


def state_name(angle_stats: Dict[str, AngleStats], angle_names: Sequence[str]) -> str:
    """Name a state from its most prominent (largest mean) angle."""
    primary_value = 0.0
    for name in angle_names:
        stats = angle_stats.get(name)
        if stats and abs(stats.mean) > abs(primary_value):
            primary_value = stats.mean

    if primary_value < 100:
        return f"Flexed/Bent ({round(primary_value)}°)"
    if primary_value > 150:
        return f"Extended/Straight ({round(primary_value)}°)"
    return f"Intermediate ({round(primary_value)}°)"


def state_description(angle_stats: Dict[str, AngleStats], angle_names: Sequence[str]) -> str:
    return ", ".join(
        f"{name}: {round(angle_stats[name].mean)}° (±{round(angle_stats[name].std_dev)}°)"
        for name in angle_names
        if name in angle_stats
    )


class StateLearner:
    """
    Learns an ExerciseTemplate from one reference recording.

    Usage:
        learner = StateLearner(seed=7)
        template = learner.learn(samples, "Knee Extension", "knee-extension",
                                 ["right_knee"])
    """

    def __init__(
        self,
        max_iterations: int = 100,
        tolerance: float = 0.001,
        frames_per_state: int = 30,
        min_states: int = 2,
        max_states: int = 4,
        timestamp_quantum: float = 0.01,
        merge_gap: float = 0.1,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            max_iterations: k-means iteration cap
            tolerance: Convergence threshold on per-coordinate centroid movement
            frames_per_state: Average frames per state used to size K
            min_states / max_states: Bounds on K
            timestamp_quantum: Timeline resolution for grouping samples into frames
            merge_gap: Member timestamps closer than this form one occurrence
            seed: Seed for the default random generator
            rng: Random generator for centroid initialization (overrides seed)
        """
        if min_states < 2:
            raise ValueError("min_states must be at least 2")
        if max_states < min_states:
            raise ValueError("max_states must be >= min_states")

        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.frames_per_state = frames_per_state
        self.min_states = min_states
        self.max_states = max_states
        self.timestamp_quantum = timestamp_quantum
        self.merge_gap = merge_gap
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def learn(
        self,
        samples: Iterable[AngleSample],
        exercise_name: str,
        exercise_type: str,
        angle_names: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> ExerciseTemplate:
        """
        Learn a template from a recording's angle samples.

        Raises:
            InsufficientDataError: too few frames or distinct feature vectors
            LearningCancelledError: cancel_event was set between iterations
        """
        angle_names = list(angle_names)
        if not angle_names:
            raise ValueError("At least one angle of interest is required")

        timestamps, raw = self._build_frames(samples, angle_names)
        frame_count = len(timestamps)
        logger.info(f"Learning states for '{exercise_name}' from {frame_count} frames "
                    f"({', '.join(angle_names)})")

        if frame_count < 2:
            raise InsufficientDataError(f"Need at least 2 frames, got {frame_count}")

        # Missing angles count as 0 so every vector has the same dimensionality
        features = np.nan_to_num(raw, nan=0.0)

        k = cluster_count(frame_count, self.frames_per_state, self.min_states, self.max_states)
        result = self.kmeans(features, k, cancel_event, progress_callback)

        states = self._build_states(result, timestamps, raw, angle_names)
        if len(states) < 2:
            raise InsufficientDataError(
                f"Only {len(states)} non-empty state(s) after clustering; need at least 2"
            )

        timeline = self._timeline(states)
        transitions = self._transitions(timeline, states, angle_names)
        sequence = self._sequence(timeline)

        total_duration = float(timestamps[-1] - timestamps[0])
        total_occurrences = sum(len(s.occurrences) for s in states)
        recommended_reps = max(1, total_occurrences // len(states))
        confidence = calculate_confidence(states)

        template = ExerciseTemplate(
            exercise_name=exercise_name,
            exercise_type=exercise_type,
            states=tuple(states),
            transitions=tuple(transitions),
            canonical_state_sequence=tuple(sequence),
            total_duration=total_duration,
            recommended_reps=recommended_reps,
            confidence_score=confidence,
            metadata=TemplateMetadata(
                detected_at=datetime.now(timezone.utc).isoformat(),
                video_length=total_duration,
                fps=float(round(frame_count / total_duration)) if total_duration > 0 else 0.0,
                frame_count=frame_count,
            ),
            angle_names=tuple(angle_names),
        )

        logger.info(f"Learned {len(states)} states, {len(transitions)} transitions, "
                    f"~{recommended_reps} reps, confidence {confidence:.0f}%")
        logger.debug("Sequence: " + " -> ".join(
            template.state_by_id(sid).name for sid in sequence
        ))
        return template

    # -------------------------------------------------------------------------
    # Frame assembly
    # -------------------------------------------------------------------------

    def _quantize(self, timestamp: float) -> float:
        q = self.timestamp_quantum
        return round(round(timestamp / q) * q, 6)

    def _build_frames(
        self,
        samples: Iterable[AngleSample],
        angle_names: List[str]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Group samples into frames: (timestamps, values with NaN for missing)."""
        index = {name: j for j, name in enumerate(angle_names)}
        frames: Dict[float, Dict[int, float]] = {}

        for s in samples:
            j = index.get(s.name)
            if j is None:
                continue
            frames.setdefault(self._quantize(s.timestamp), {})[j] = s.value

        timestamps = np.array(sorted(frames), dtype=float)
        raw = np.full((len(timestamps), len(angle_names)), np.nan)
        for i, t in enumerate(timestamps):
            for j, value in frames[float(t)].items():
                raw[i, j] = value

        return timestamps, raw

    # -------------------------------------------------------------------------
    # Clustering
    # -------------------------------------------------------------------------

    def kmeans(
        self,
        features: np.ndarray,
        k: int,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> KMeansResult:
        """
        Lloyd's k-means over frame feature vectors.

        Centroids start at K distinct feature vectors picked by the learner's
        random generator. Labels returned are the nearest-centroid assignment
        against the final centroids.
        """
        _, distinct_idx = np.unique(features, axis=0, return_index=True)
        if len(distinct_idx) < k:
            raise InsufficientDataError(
                f"Need {k} distinct feature vectors for {k} states, got {len(distinct_idx)}"
            )

        chosen = self.rng.choice(np.sort(distinct_idx), size=k, replace=False)
        centroids = features[chosen].astype(float).copy()

        converged = False
        iterations = 0
        for iteration in range(self.max_iterations):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"State learning cancelled at iteration {iteration}")
                raise LearningCancelledError(f"Cancelled after {iteration} k-means iterations")

            labels = np.argmin(cdist(features, centroids), axis=1)
            updated = centroids.copy()
            for c in range(k):
                members = labels == c
                if np.any(members):
                    updated[c] = features[members].mean(axis=0)

            shift = float(np.max(np.abs(updated - centroids)))
            centroids = updated
            iterations = iteration + 1

            if progress_callback:
                progress_callback(iterations / self.max_iterations)

            if shift <= self.tolerance:
                converged = True
                break

        labels = np.argmin(cdist(features, centroids), axis=1)

        if progress_callback:
            progress_callback(1.0)

        logger.debug(f"k-means K={k}: {iterations} iterations, converged={converged}")
        return KMeansResult(labels=labels, centroids=centroids,
                            iterations=iterations, converged=converged)

    # -------------------------------------------------------------------------
    # State construction
    # -------------------------------------------------------------------------

    def _occurrences(self, member_times: np.ndarray) -> List[StateOccurrence]:
        occurrences: List[StateOccurrence] = []
        start = prev = float(member_times[0])

        for t in member_times[1:]:
            t = float(t)
            if round(t - prev, 6) >= self.merge_gap:
                occurrences.append(StateOccurrence(start_time=start, end_time=prev))
                start = t
            prev = t

        occurrences.append(StateOccurrence(start_time=start, end_time=prev))
        return occurrences

    def _build_states(
        self,
        result: KMeansResult,
        timestamps: np.ndarray,
        raw: np.ndarray,
        angle_names: List[str]
    ) -> List[LearnedState]:
        clusters = []

        for c in range(len(result.centroids)):
            members = result.labels == c
            if not np.any(members):
                message = f"Cluster {c} received no frames; dropping it"
                logger.warning(message)
                warnings.warn(message, EmptyClusterWarning)
                continue

            member_values = raw[members]
            angle_stats: Dict[str, AngleStats] = {}
            for j, name in enumerate(angle_names):
                values = member_values[:, j]
                values = values[~np.isnan(values)]
                if values.size == 0:
                    continue
                angle_stats[name] = AngleStats(
                    mean=float(np.mean(values)),
                    min=float(np.min(values)),
                    max=float(np.max(values)),
                    std_dev=float(np.std(values)),
                )

            occurrences = self._occurrences(timestamps[members])
            longest = occurrences[0]
            for occ in occurrences[1:]:
                if occ.duration > longest.duration:
                    longest = occ

            clusters.append((angle_stats, occurrences, (longest.start_time + longest.end_time) / 2))

        clusters.sort(key=lambda item: item[1][0].start_time)

        return [
            LearnedState(
                id=f"state_{i}",
                name=state_name(angle_stats, angle_names),
                angle_stats=angle_stats,
                occurrences=tuple(occurrences),
                representative_timestamp=representative,
                description=state_description(angle_stats, angle_names),
            )
            for i, (angle_stats, occurrences, representative) in enumerate(clusters)
        ]

    # -------------------------------------------------------------------------
    # Timeline analysis
    # -------------------------------------------------------------------------

    @staticmethod
    def _timeline(states: List[LearnedState]) -> List[Tuple[float, str]]:
        """Occurrence boundaries of every state in chronological order."""
        timeline: List[Tuple[float, str]] = []
        for state in states:
            for occ in state.occurrences:
                timeline.append((occ.start_time, state.id))
                timeline.append((occ.end_time, state.id))
        return sorted(timeline, key=lambda point: point[0])

    @staticmethod
    def _transitions(
        timeline: List[Tuple[float, str]],
        states: List[LearnedState],
        angle_names: List[str]
    ) -> List[StateTransition]:
        by_id = {s.id: s for s in states}
        transitions: List[StateTransition] = []

        for (t0, from_id), (t1, to_id) in zip(timeline, timeline[1:]):
            if from_id == to_id:
                continue
            from_state, to_state = by_id[from_id], by_id[to_id]
            changes = {}
            for name in angle_names:
                start = from_state.mean(name) or 0.0
                end = to_state.mean(name) or 0.0
                changes[name] = AngleChange(start_angle=start, end_angle=end, delta=end - start)

            transitions.append(StateTransition(
                from_state_id=from_id,
                to_state_id=to_id,
                duration=t1 - t0,
                angle_changes=changes,
            ))

        return transitions

    @staticmethod
    def _sequence(timeline: List[Tuple[float, str]]) -> List[str]:
        """State ids visited along the timeline, immediate repeats removed."""
        sequence: List[str] = []
        for _, state_id in timeline:
            if not sequence or sequence[-1] != state_id:
                sequence.append(state_id)
        return sequence


def calculate_confidence(states: List[LearnedState]) -> float:
    """
    Cluster-quality score in [0, 100].

    Tight clusters (low angle std) and repeated occurrences both raise it.
    """
    if not states:
        raise InsufficientDataError("Cannot score a template with no states")

    per_state_std = []
    for state in states:
        stds = [s.std_dev for s in state.angle_stats.values()]
        per_state_std.append(sum(stds) / len(stds) if stds else 0.0)

    avg_std = sum(per_state_std) / len(states)
    avg_occurrences = sum(len(s.occurrences) for s in states) / len(states)

    confidence = (100 - avg_std) * 0.5 + min(avg_occurrences * 10, 50)
    return float(round(min(100.0, max(0.0, confidence))))
