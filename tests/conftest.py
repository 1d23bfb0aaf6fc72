"""Shared fixtures: synthetic landmark frames, angle traces and templates."""

import math
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from repcoach.config import Settings
from repcoach.cv.angle_extractor import AngleSample
from repcoach.cv.landmarks import NUM_LANDMARKS, Landmark, LandmarkFrame, PoseLandmark
from repcoach.cv.state_learner import (
    AngleStats,
    ExerciseTemplate,
    LearnedState,
    StateLearner,
    StateOccurrence,
)


BENT = 90.0
STRAIGHT = 170.0


def leg_frame(
    timestamp: float,
    knee_angle: float,
    side: str = "right",
    visibility: float = 1.0,
    frame_number: Optional[int] = None
) -> LandmarkFrame:
    """
    Frame with only one leg visible and the given hip-knee-ankle angle.

    Hip sits straight above the knee, so the thigh segment is 0° and the
    lower-leg segment is 180° - knee_angle.
    """
    landmarks: List[Optional[Landmark]] = [None] * NUM_LANDMARKS
    hip = PoseLandmark[f"{side.upper()}_HIP"]
    knee = PoseLandmark[f"{side.upper()}_KNEE"]
    ankle = PoseLandmark[f"{side.upper()}_ANKLE"]

    theta = math.radians(knee_angle)
    landmarks[hip] = Landmark(x=0.5, y=0.3, visibility=visibility)
    landmarks[knee] = Landmark(x=0.5, y=0.5, visibility=visibility)
    landmarks[ankle] = Landmark(
        x=0.5 + 0.2 * math.sin(theta),
        y=0.5 - 0.2 * math.cos(theta),
        visibility=visibility,
    )
    return LandmarkFrame(timestamp=timestamp, landmarks=landmarks, frame_number=frame_number)


def square_wave(
    phases: Sequence[float],
    frames_per_phase: int = 10,
    fps: float = 20.0
) -> List[Tuple[float, float]]:
    """(timestamp, value) pairs holding each phase value for frames_per_phase frames."""
    trace = []
    i = 0
    for value in phases:
        for _ in range(frames_per_phase):
            trace.append((i / fps, value))
            i += 1
    return trace


def triangle_wave(
    high: float,
    low: float,
    cycles: int = 3,
    period: float = 2.0,
    fps: float = 30.0
) -> List[Tuple[float, float]]:
    """Linear high -> low -> high oscillation, starting and ending at `high`."""
    half = period / 2
    trace = []
    for i in range(int(round(cycles * period * fps)) + 1):
        t = i / fps
        phase = t % period
        if phase < half:
            value = high - (high - low) * phase / half
        else:
            value = low + (high - low) * (phase - half) / half
        trace.append((t, value))
    return trace


def knee_samples(trace: Sequence[Tuple[float, float]]) -> List[AngleSample]:
    """right_knee plus its lower-leg segment (180 - knee) for each point."""
    samples = []
    for t, value in trace:
        samples.append(AngleSample(name="right_knee", value=value, timestamp=t))
        samples.append(AngleSample(name="right_leg_segment", value=180.0 - value, timestamp=t))
    return samples


def make_state(
    state_id: str,
    name: str,
    stats: Dict[str, Tuple[float, float, float, float]],
    start: float,
    end: float
) -> LearnedState:
    """stats: angle -> (mean, min, max, std)."""
    return LearnedState(
        id=state_id,
        name=name,
        angle_stats={
            angle: AngleStats(mean=m, min=lo, max=hi, std_dev=sd)
            for angle, (m, lo, hi, sd) in stats.items()
        },
        occurrences=(StateOccurrence(start_time=start, end_time=end),),
        representative_timestamp=(start + end) / 2,
    )


def make_template(
    bent: float = BENT,
    straight: float = STRAIGHT,
    spread: float = 10.0,
    std: float = 5.0,
    reps: int = 4
) -> ExerciseTemplate:
    """Hand-built two-state knee template with non-zero ranges."""
    states = (
        make_state("state_0", "Flexed/Bent", {
            "right_knee": (bent, bent - spread, bent + spread, std),
            "right_leg_segment": (180 - bent, 180 - bent - spread, 180 - bent + spread, std),
        }, 0.0, 0.45),
        make_state("state_1", "Extended/Straight", {
            "right_knee": (straight, straight - spread, straight + spread, std),
            "right_leg_segment": (180 - straight, 180 - straight - spread, 180 - straight + spread, std),
        }, 0.5, 0.95),
    )
    return ExerciseTemplate(
        exercise_name="Knee Extension",
        exercise_type="knee-extension",
        states=states,
        transitions=(),
        canonical_state_sequence=("state_0", "state_1", "state_0"),
        total_duration=1.0,
        recommended_reps=reps,
        confidence_score=80.0,
        angle_names=("right_knee", "right_leg_segment"),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(kmeans_seed=7)


@pytest.fixture
def reference_trace() -> List[Tuple[float, float]]:
    """Four bent/straight cycles at 20 fps, 0.5s per phase."""
    return square_wave([BENT, STRAIGHT] * 4)


@pytest.fixture
def learned_template(reference_trace) -> ExerciseTemplate:
    learner = StateLearner(seed=7)
    return learner.learn(
        knee_samples(reference_trace),
        exercise_name="Knee Extension",
        exercise_type="knee-extension",
        angle_names=["right_knee", "right_leg_segment"],
    )


@pytest.fixture
def template() -> ExerciseTemplate:
    return make_template()
