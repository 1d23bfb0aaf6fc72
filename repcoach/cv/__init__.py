"""
Angle pipeline for exercise repetition counting and form scoring.

PIPELINE COMPONENTS:
1. LandmarkFrame: 33-point body landmarks from an external pose estimator
2. AngleExtractor: Joint (3-point) and segment (2-point) angles per frame
3. AngleSmoother: One-euro adaptive low-pass filter per angle
4. MovementSegmenter: Sustained angle changes for readable reports
5. StateLearner: k-means states, transitions and sequence -> ExerciseTemplate
6. StateClassifier: Nearest learned state for a live angle vector
7. RepetitionStrategy: Sequence or hysteresis repetition counting
8. RepErrorScorer: Per-rep form error and session trends
9. ExerciseSession: Live orchestration; learn_template_from_frames for references

Usage:
    from repcoach.cv import ExerciseSession, learn_template_from_frames

    learned = learn_template_from_frames(reference_frames, "knee-extension")
    session = ExerciseSession("knee-extension", template=learned.template)
    for frame in live_frames:
        result = session.process_frame(frame)
"""

from repcoach.cv.landmarks import PoseLandmark, Landmark, LandmarkFrame
from repcoach.cv.angle_extractor import (
    AngleMode, AngleDefinition, AngleSample, AngleExtractor,
    joint_angle, segment_angle,
)
from repcoach.cv.angle_smoother import AngleSmoother, OneEuroFilter, FilterState
from repcoach.cv.movement_segmenter import MovementSegmenter, MovementSegment, summarize_movements
from repcoach.cv.state_learner import (
    StateLearner, ExerciseTemplate, LearnedState, AngleStats,
    StateOccurrence, StateTransition, TemplateMetadata,
)
from repcoach.cv.state_classifier import (
    StateClassifier, StateMatch, StateDefinition, AngleThreshold, detect_state,
)
from repcoach.cv.rep_counter import (
    CountingStrategy, RepetitionStrategy, SequenceRepCounter, HysteresisRepCounter,
    HysteresisThresholds, RepEvent, RejectedAttempt, RejectionReason,
    create_repetition_strategy,
)
from repcoach.cv.rep_error_scorer import (
    RepErrorScorer, RepError, RepErrorSummary, AngleError,
    analyze_rep_trends, feedback_for,
)
from repcoach.cv.template_comparison import TemplateComparison, compare_templates
from repcoach.cv.exercise_config import (
    ExerciseConfig, EXERCISE_CONFIGS, DEFAULT_ANGLE_DEFINITIONS, get_exercise_config,
)
from repcoach.cv.exercise_session import (
    ExerciseSession, LiveFrameResult, StateSource,
    LearnedTemplateResult, learn_template_from_frames,
)

__all__ = [
    # Landmarks
    "PoseLandmark",
    "Landmark",
    "LandmarkFrame",

    # Angles
    "AngleMode",
    "AngleDefinition",
    "AngleSample",
    "AngleExtractor",
    "joint_angle",
    "segment_angle",

    # Smoothing
    "AngleSmoother",
    "OneEuroFilter",
    "FilterState",

    # Movement segmentation
    "MovementSegmenter",
    "MovementSegment",
    "summarize_movements",

    # Template learning
    "StateLearner",
    "ExerciseTemplate",
    "LearnedState",
    "AngleStats",
    "StateOccurrence",
    "StateTransition",
    "TemplateMetadata",

    # Classification
    "StateClassifier",
    "StateMatch",
    "StateDefinition",
    "AngleThreshold",
    "detect_state",

    # Rep counting
    "CountingStrategy",
    "RepetitionStrategy",
    "SequenceRepCounter",
    "HysteresisRepCounter",
    "HysteresisThresholds",
    "RepEvent",
    "RejectedAttempt",
    "RejectionReason",
    "create_repetition_strategy",

    # Scoring
    "RepErrorScorer",
    "RepError",
    "RepErrorSummary",
    "AngleError",
    "analyze_rep_trends",
    "feedback_for",

    # Comparison
    "TemplateComparison",
    "compare_templates",

    # Exercises
    "ExerciseConfig",
    "EXERCISE_CONFIGS",
    "DEFAULT_ANGLE_DEFINITIONS",
    "get_exercise_config",

    # Orchestration
    "ExerciseSession",
    "LiveFrameResult",
    "StateSource",
    "LearnedTemplateResult",
    "learn_template_from_frames",
]
