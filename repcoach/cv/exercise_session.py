"""
Pipeline orchestration for live sessions and reference learning.

LIVE PIPELINE (ExerciseSession.process_frame, one synchronous pass per frame):
1. Angle extraction (per-angle, missing landmarks skipped)
2. One-euro smoothing (per-session filter bank)
3. State labelling: nearest template state, or configured thresholds
4. Repetition counting (sequence or hysteresis strategy)
5. Form scoring of each counted rep against the template

BATCH PIPELINE (learn_template_from_frames):
1. Extraction + smoothing over the whole reference recording
2. Movement segmentation for the human-readable summary
3. State learning -> immutable ExerciseTemplate

A session owns its smoother, counter and scorer; nothing is shared between
sessions. Loading a new template swaps the reference in one assignment and
never mutates the old template.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union
import logging

import numpy as np

from repcoach.config import Settings, get_settings
from repcoach.cv.angle_extractor import AngleExtractor, AngleSample, samples_to_vector
from repcoach.cv.angle_smoother import AngleSmoother
from repcoach.cv.exercise_config import ExerciseConfig, get_exercise_config
from repcoach.cv.landmarks import LandmarkFrame
from repcoach.cv.movement_segmenter import MovementSegment, MovementSegmenter, summarize_movements
from repcoach.cv.rep_counter import (
    CountingStrategy,
    HysteresisThresholds,
    RepEvent,
    RepetitionStrategy,
    create_repetition_strategy,
)
from repcoach.cv.rep_error_scorer import RepError, RepErrorScorer, RepErrorSummary, feedback_for
from repcoach.cv.state_classifier import StateClassifier, detect_state
from repcoach.cv.state_learner import ExerciseTemplate, StateLearner
from repcoach.exceptions import LearningCancelledError

logger = logging.getLogger(__name__)


class StateSource:
    """Where a frame's state label came from."""
    TEMPLATE = "template"
    THRESHOLD = "threshold"
    NONE = "none"


@dataclass
class LiveFrameResult:
    """Output of one live pipeline pass."""
    timestamp: float
    angles: Dict[str, float] = field(default_factory=dict)
    state_label: Optional[str] = None  # template state id or configured state id
    state_name: Optional[str] = None
    state_source: str = StateSource.NONE
    rep_count: int = 0
    rep_event: Optional[RepEvent] = None
    rep_error: Optional[RepError] = None
    summary: Optional[RepErrorSummary] = None
    feedback: str = ""


class ExerciseSession:
    """
    One live exercise session.

    Usage:
        session = ExerciseSession("knee-extension", template=template)
        for frame in frames:
            result = session.process_frame(frame)
            print(result.rep_count, result.feedback)
        session.reset()
    """

    def __init__(
        self,
        config: Union[ExerciseConfig, str],
        template: Optional[ExerciseTemplate] = None,
        settings: Optional[Settings] = None,
        strategy: Optional[CountingStrategy] = None
    ):
        """
        Args:
            config: Exercise configuration or its registry id
            template: Learned reference template (optional)
            settings: Pipeline settings (default: get_settings())
            strategy: Overrides the exercise's counting strategy
        """
        self.settings = settings or get_settings()
        self.config = get_exercise_config(config) if isinstance(config, str) else config
        self.strategy_type = strategy or self.config.counting_strategy

        self.extractor = AngleExtractor(
            self.config.angle_definitions,
            confidence_floor=self.settings.landmark_confidence_floor,
            angles_of_interest=self.config.angles_of_interest,
        )
        self.smoother = AngleSmoother(
            min_cutoff=self.settings.smoother_min_cutoff,
            beta=self.settings.smoother_beta,
            d_cutoff=self.settings.smoother_d_cutoff,
        )

        self.template: Optional[ExerciseTemplate] = None
        self.classifier: Optional[StateClassifier] = None
        self.scorer: Optional[RepErrorScorer] = None
        self.phase_map: Dict[str, str] = {}
        self.counter: RepetitionStrategy = None
        self.last_rep_error: Optional[RepError] = None

        if template is not None:
            self.load_template(template)
        else:
            self.counter = self._build_counter()

        logger.info(f"Session started: {self.config.name} "
                    f"({self.counter.strategy.value} counting, "
                    f"template={'yes' if self.template else 'no'})")

    # -------------------------------------------------------------------------
    # Template management
    # -------------------------------------------------------------------------

    def load_template(self, template: ExerciseTemplate):
        """
        Switch the session to a new reference template.

        Counting and scoring restart, since state labels change meaning.
        """
        classifier = StateClassifier(template, scale_floor=self.settings.classifier_scale_floor)
        scorer = RepErrorScorer(
            template,
            classifier=classifier,
            trend_threshold=self.settings.trend_threshold_degrees,
            min_reps_for_trend=self.settings.min_reps_for_trend,
            common_mistake_percent=self.settings.common_mistake_percent,
        )

        self.template = template
        self.classifier = classifier
        self.scorer = scorer
        self.phase_map = {s.id: template.phase_state(s.id) for s in template.states}
        self.counter = self._build_counter()
        self.last_rep_error = None

        logger.info(f"Template loaded: '{template.exercise_name}' with "
                    f"{len(template.states)} states, rep cycle {template.rep_cycle()}")

    def _build_counter(self) -> RepetitionStrategy:
        if self.strategy_type == CountingStrategy.SEQUENCE:
            if self.template is not None:
                return create_repetition_strategy(
                    CountingStrategy.SEQUENCE,
                    rep_sequence=self.template.rep_cycle(),
                    settings=self.settings,
                )
            if self.config.has_threshold_states:
                return create_repetition_strategy(
                    CountingStrategy.SEQUENCE,
                    rep_sequence=self.config.rep_sequence,
                    settings=self.settings,
                )
            logger.info(f"{self.config.id} has no threshold states; "
                        f"using hysteresis counting until a template is loaded")

        thresholds = self.config.hysteresis
        if thresholds is None and self.classifier is not None and self.classifier.driver_angle:
            thresholds = HysteresisThresholds(primary_angle=self.classifier.driver_angle)
        if thresholds is None:
            raise ValueError(f"Exercise {self.config.id} has no primary angle for hysteresis counting")

        return create_repetition_strategy(
            CountingStrategy.HYSTERESIS,
            thresholds=thresholds,
            settings=self.settings,
        )

    # -------------------------------------------------------------------------
    # Live processing
    # -------------------------------------------------------------------------

    def process_frame(self, frame: LandmarkFrame) -> LiveFrameResult:
        """Run one landmark frame through the full live pipeline."""
        samples = self.extractor.extract(frame)
        smoothed = self.smoother.smooth(samples)
        return self._process(samples_to_vector(smoothed), frame.timestamp)

    def process_angles(self, angles: Mapping[str, float], timestamp: float) -> LiveFrameResult:
        """Run a raw (unsmoothed) angle vector through smoothing, labelling and counting."""
        samples = [AngleSample(name=n, value=v, timestamp=timestamp) for n, v in angles.items()]
        smoothed = self.smoother.smooth(samples)
        return self._process(samples_to_vector(smoothed), timestamp)

    def _process(self, angles: Dict[str, float], timestamp: float) -> LiveFrameResult:
        result = LiveFrameResult(timestamp=timestamp, angles=angles)

        if angles:
            self._label(result)

        counter_label = result.state_label
        if result.state_source == StateSource.TEMPLATE:
            counter_label = self.phase_map.get(counter_label, counter_label)

        event = self.counter.update(timestamp, state_label=counter_label, angles=angles)
        if event is not None:
            result.rep_event = event
            if self.scorer is not None:
                rep_error = self.scorer.score(angles, event.rep_number, timestamp)
                if rep_error is not None:
                    self.last_rep_error = rep_error

        result.rep_count = self.counter.rep_count
        result.rep_error = self.last_rep_error
        result.summary = self.scorer.summary if self.scorer is not None else None
        result.feedback = feedback_for(self.last_rep_error)
        return result

    def _label(self, result: LiveFrameResult):
        if self.classifier is not None:
            match = self.classifier.classify(result.angles)
            if match is not None:
                result.state_label = match.state_id
                result.state_name = match.state_name
                result.state_source = StateSource.TEMPLATE
            return

        if self.config.states:
            state_id = detect_state(result.angles, self.config.states)
            if state_id is not None:
                result.state_label = state_id
                result.state_name = self.config.state(state_id).name
                result.state_source = StateSource.THRESHOLD

    @property
    def rep_count(self) -> int:
        return self.counter.rep_count

    def reset(self):
        """Clear smoothing, counting and scoring state. The template stays loaded."""
        self.smoother.reset()
        self.counter.reset()
        if self.scorer is not None:
            self.scorer.reset()
        self.last_rep_error = None
        logger.info(f"Session reset: {self.config.name}")


# =============================================================================
# Reference learning
# =============================================================================

@dataclass
class LearnedTemplateResult:
    """Everything produced from one reference recording."""
    template: ExerciseTemplate
    samples: List[AngleSample]  # smoothed
    movements: List[MovementSegment]
    movement_summary: str


def learn_template_from_frames(
    frames: Iterable[LandmarkFrame],
    config: Union[ExerciseConfig, str],
    settings: Optional[Settings] = None,
    exercise_name: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[Callable[[float], None]] = None,
    rng: Optional[np.random.Generator] = None
) -> LearnedTemplateResult:
    """
    Learn a template from a reference recording's landmark frames.

    Progress runs 0.0-0.5 over extraction and 0.5-1.0 over clustering.

    Raises:
        InsufficientDataError: Recording too short or too uniform
        LearningCancelledError: cancel_event was set
    """
    settings = settings or get_settings()
    config = get_exercise_config(config) if isinstance(config, str) else config
    frames = list(frames)

    logger.info(f"Learning template for {config.name} from {len(frames)} frames")

    # STAGE 1: extraction + smoothing
    extractor = AngleExtractor(
        config.angle_definitions,
        confidence_floor=settings.landmark_confidence_floor,
        angles_of_interest=config.angles_of_interest,
    )
    smoother = AngleSmoother(
        min_cutoff=settings.smoother_min_cutoff,
        beta=settings.smoother_beta,
        d_cutoff=settings.smoother_d_cutoff,
    )

    samples: List[AngleSample] = []
    ordered = sorted(frames, key=lambda f: f.timestamp)
    for i, frame in enumerate(ordered):
        if cancel_event is not None and cancel_event.is_set():
            raise LearningCancelledError(f"Cancelled during extraction at frame {i}")
        samples.extend(smoother.smooth(extractor.extract(frame)))
        if progress_callback and (i + 1) % 10 == 0:
            progress_callback(0.5 * (i + 1) / len(ordered))

    if progress_callback:
        progress_callback(0.5)

    # STAGE 2: movement summary
    segmenter = MovementSegmenter(
        smoothing_factor=settings.segmenter_smoothing_factor,
        angle_threshold=settings.segmenter_angle_threshold,
        noise_floor=settings.segmenter_noise_floor,
        min_duration=settings.segmenter_min_duration,
    )
    movements = segmenter.detect_movements(samples)

    # STAGE 3: state learning
    learner = StateLearner(
        max_iterations=settings.kmeans_max_iterations,
        tolerance=settings.kmeans_tolerance,
        frames_per_state=settings.frames_per_state,
        min_states=settings.min_states,
        max_states=settings.max_states,
        timestamp_quantum=settings.timestamp_quantum,
        merge_gap=settings.occurrence_merge_gap,
        seed=settings.kmeans_seed,
        rng=rng,
    )

    def learning_progress(fraction: float):
        if progress_callback:
            progress_callback(0.5 + 0.5 * fraction)

    template = learner.learn(
        samples,
        exercise_name=exercise_name or config.name,
        exercise_type=config.id,
        angle_names=config.angles_of_interest,
        cancel_event=cancel_event,
        progress_callback=learning_progress,
    )

    return LearnedTemplateResult(
        template=template,
        samples=samples,
        movements=movements,
        movement_summary=summarize_movements(movements),
    )
