"""Pipeline configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    # Application
    app_name: str = "RepCoach"
    debug: bool = False

    # Angle extraction
    landmark_confidence_floor: float = 0.5  # Below this a landmark counts as missing

    # One-euro smoothing (jitter vs lag trade-off)
    smoother_min_cutoff: float = 1.0
    smoother_beta: float = 0.007
    smoother_d_cutoff: float = 1.0

    # Movement segmentation (diagnostic summaries only)
    segmenter_smoothing_factor: float = 0.35
    segmenter_angle_threshold: float = 20.0  # degrees
    segmenter_noise_floor: float = 5.0  # degrees
    segmenter_min_duration: float = 0.4  # seconds

    # Template learning
    kmeans_max_iterations: int = 100
    kmeans_tolerance: float = 0.001
    kmeans_seed: Optional[int] = None
    frames_per_state: int = 30
    min_states: int = 2
    max_states: int = 4
    timestamp_quantum: float = 0.01  # seconds
    occurrence_merge_gap: float = 0.1  # seconds

    # Live classification
    classifier_scale_floor: float = 10.0  # degrees, used when a state's std is zero

    # Repetition counting
    state_debounce_seconds: float = 0.2  # dwell time before a new state is accepted
    sequence_cooldown_seconds: float = 0.0
    hysteresis_band: float = 2.0  # degrees / second
    hysteresis_min_rom: float = 15.0  # degrees
    hysteresis_rom_window_fraction: float = 0.3
    hysteresis_window_seconds: float = 6.0
    hysteresis_cooldown_seconds: float = 0.8
    hysteresis_valley_settle_seconds: float = 0.8  # rest at the bottom that confirms a valley
    derivative_smoothing: float = 0.5

    # Rep error scoring
    common_mistake_percent: float = 20.0
    trend_threshold_degrees: float = 2.0
    min_reps_for_trend: int = 4

    class Config:
        env_file = ".env"
        env_prefix = "REPCOACH_"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
