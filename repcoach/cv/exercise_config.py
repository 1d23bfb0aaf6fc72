"""
Exercise registry.

Each exercise names the angles worth tracking, optional threshold-based
states with a rep sequence (used when no template is loaded), and the
hysteresis limits for its primary angle.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from repcoach.cv.angle_extractor import AngleDefinition
from repcoach.cv.landmarks import PoseLandmark
from repcoach.cv.rep_counter import CountingStrategy, HysteresisThresholds
from repcoach.cv.state_classifier import AngleThreshold, StateDefinition


def _bilateral_definitions() -> List[AngleDefinition]:
    definitions: List[AngleDefinition] = []
    for side in ("left", "right"):
        lm = {
            part: PoseLandmark[f"{side.upper()}_{part.upper()}"]
            for part in ("shoulder", "elbow", "wrist", "hip", "knee", "ankle")
        }
        definitions.extend([
            AngleDefinition.joint(f"{side}_elbow", lm["shoulder"], lm["elbow"], lm["wrist"],
                                  f"{side.title()} elbow joint angle (shoulder-elbow-wrist)"),
            AngleDefinition.joint(f"{side}_knee", lm["hip"], lm["knee"], lm["ankle"],
                                  f"{side.title()} knee joint angle (hip-knee-ankle)"),
            AngleDefinition.joint(f"{side}_hip", lm["shoulder"], lm["hip"], lm["knee"],
                                  f"{side.title()} hip joint angle (shoulder-hip-knee)"),
            AngleDefinition.joint(f"{side}_shoulder", lm["elbow"], lm["shoulder"], lm["hip"],
                                  f"{side.title()} shoulder joint angle (elbow-shoulder-hip)"),
            AngleDefinition.segment(f"{side}_leg_segment", lm["knee"], lm["ankle"],
                                    f"{side.title()} lower leg angle from vertical (knee-ankle)"),
            AngleDefinition.segment(f"{side}_thigh_segment", lm["hip"], lm["knee"],
                                    f"{side.title()} thigh angle from vertical (hip-knee)"),
            AngleDefinition.segment(f"{side}_arm_segment", lm["shoulder"], lm["elbow"],
                                    f"{side.title()} upper arm angle from vertical (shoulder-elbow)"),
            AngleDefinition.segment(f"{side}_forearm_segment", lm["elbow"], lm["wrist"],
                                    f"{side.title()} forearm angle from vertical (elbow-wrist)"),
        ])
    return definitions


DEFAULT_ANGLE_DEFINITIONS: Tuple[AngleDefinition, ...] = tuple(_bilateral_definitions())


@dataclass(frozen=True)
class ExerciseConfig:
    """Static description of one supported exercise."""
    id: str
    name: str
    description: str
    angles_of_interest: Tuple[str, ...]
    states: Tuple[StateDefinition, ...] = ()
    rep_sequence: Tuple[str, ...] = ()
    hysteresis: Optional[HysteresisThresholds] = None
    counting_strategy: CountingStrategy = CountingStrategy.SEQUENCE
    angle_definitions: Tuple[AngleDefinition, ...] = field(default=DEFAULT_ANGLE_DEFINITIONS)

    @property
    def has_threshold_states(self) -> bool:
        return bool(self.states) and len(self.rep_sequence) >= 2

    def state(self, state_id: str) -> Optional[StateDefinition]:
        for state in self.states:
            if state.id == state_id:
                return state
        return None


def _state(state_id: str, name: str, description: str,
           angle_names: Iterable[str], low: float, high: float) -> StateDefinition:
    return StateDefinition(
        id=state_id,
        name=name,
        description=description,
        thresholds=tuple(AngleThreshold(n, low, high) for n in angle_names),
    )


KNEES = ("right_knee", "left_knee")
ELBOWS = ("right_elbow", "left_elbow")
KNEES_AND_HIPS = ("right_knee", "left_knee", "right_hip", "left_hip")


EXERCISE_CONFIGS: Dict[str, ExerciseConfig] = {
    "knee-extension": ExerciseConfig(
        id="knee-extension",
        name="Knee Extension",
        description="Extending the knee from bent to straight position",
        angles_of_interest=(
            "left_knee", "right_knee",
            "left_leg_segment", "right_leg_segment",
            "left_thigh_segment", "right_thigh_segment",
        ),
        states=(
            _state("flexed", "Flexed (Bent)", "Knee is bent", KNEES, 70, 110),
            _state("extended", "Extended (Straight)", "Knee is straight", KNEES, 160, 180),
        ),
        rep_sequence=("flexed", "extended", "flexed"),
        hysteresis=HysteresisThresholds(primary_angle="right_knee", peak_min=145, trough_max=115),
    ),
    "scap-wall-slides": ExerciseConfig(
        id="scap-wall-slides",
        name="Scap Wall Slides",
        description="Bilateral arm exercise against a wall - slide arms up and down "
                    "maintaining contact with wall",
        angles_of_interest=(
            "left_shoulder", "right_shoulder",
            "left_elbow", "right_elbow",
            "left_arm_segment", "right_arm_segment",
            "left_forearm_segment", "right_forearm_segment",
        ),
        hysteresis=HysteresisThresholds(primary_angle="right_shoulder", peak_min=120, trough_max=90),
        counting_strategy=CountingStrategy.HYSTERESIS,
    ),
    "bicep-curl": ExerciseConfig(
        id="bicep-curl",
        name="Bicep Curl",
        description="Curling the forearm up towards the shoulder",
        angles_of_interest=(
            "left_elbow", "right_elbow",
            "left_forearm_segment", "right_forearm_segment",
        ),
        states=(
            _state("extended", "Extended (Straight Arm)", "Arm is straight", ELBOWS, 160, 180),
            _state("flexed", "Flexed (Curled)", "Arm is curled", ELBOWS, 30, 60),
        ),
        rep_sequence=("extended", "flexed", "extended"),
        hysteresis=HysteresisThresholds(primary_angle="right_elbow", peak_min=140, trough_max=80),
    ),
    "squat": ExerciseConfig(
        id="squat",
        name="Squat",
        description="Lowering the hips from standing into a squat and back up",
        angles_of_interest=(
            "left_knee", "right_knee",
            "left_hip", "right_hip",
            "left_thigh_segment", "right_thigh_segment",
        ),
        states=(
            _state("standing", "Standing", "Standing upright", KNEES_AND_HIPS, 160, 180),
            _state("squat", "Squat Position", "In squat position", KNEES_AND_HIPS, 70, 110),
        ),
        rep_sequence=("standing", "squat", "standing"),
        hysteresis=HysteresisThresholds(primary_angle="right_knee", peak_min=150, trough_max=120),
    ),
}


def get_exercise_config(exercise_id: str) -> ExerciseConfig:
    """
    Look up an exercise by id.

    Raises:
        ValueError: Unknown exercise id
    """
    config = EXERCISE_CONFIGS.get(exercise_id)
    if config is None:
        raise ValueError(
            f"Unknown exercise: {exercise_id}. "
            f"Supported: {', '.join(sorted(EXERCISE_CONFIGS))}"
        )
    return config


def filter_angles_by_exercise(all_angles: Iterable[str], exercise_id: str) -> List[str]:
    """Keep only the exercise's angles of interest; unknown exercises keep everything."""
    all_angles = list(all_angles)
    config = EXERCISE_CONFIGS.get(exercise_id)
    if config is None:
        return all_angles
    return [a for a in all_angles if a in config.angles_of_interest]


def angles_for_joints(joints: Iterable[str]) -> List[str]:
    """
    Expand joint names into the joint plus its related segment angles.

    e.g. ["right_knee"] -> ["right_knee", "right_leg_segment", "right_thigh_segment"]
    """
    angles: List[str] = []

    def add(name: str):
        if name not in angles:
            angles.append(name)

    for joint in joints:
        add(joint)
        side = "left" if "left" in joint else "right"
        if "knee" in joint or "ankle" in joint:
            add(f"{side}_leg_segment")
            add(f"{side}_thigh_segment")
        if "hip" in joint:
            add(f"{side}_thigh_segment")
        if "elbow" in joint or "wrist" in joint:
            add(f"{side}_arm_segment")
            add(f"{side}_forearm_segment")
        if "shoulder" in joint:
            add(f"{side}_arm_segment")

    return angles
