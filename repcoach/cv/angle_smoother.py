"""
Temporal angle smoothing using a one-euro adaptive low-pass filter.

SMOOTHING STRATEGY:
- One filter per angle name, seeded by the first sample (passed through as-is)
- Cutoff frequency rises with the estimated speed of the signal, so slow
  drifts are heavily smoothed while fast, real movements keep little lag
- min_cutoff lowers jitter at rest, beta lowers lag during fast movement

Each AngleSmoother belongs to exactly one live session. reset() drops all
filter history.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging

from repcoach.cv.angle_extractor import AngleSample

logger = logging.getLogger(__name__)


@dataclass
class FilterState:
    """Mutable per-angle filter history."""
    previous_value: float
    previous_derivative: float
    previous_timestamp: float


def smoothing_factor(elapsed: float, cutoff: float) -> float:
    r = 2 * math.pi * cutoff * elapsed
    return r / (r + 1)


def exponential_smoothing(alpha: float, value: float, previous: float) -> float:
    return alpha * value + (1 - alpha) * previous


class OneEuroFilter:
    """Single-signal one-euro filter."""

    def __init__(
        self,
        min_cutoff: float = 1.0,
        beta: float = 0.007,
        d_cutoff: float = 1.0
    ):
        self.min_cutoff = min_cutoff
        self.beta = beta
        self.d_cutoff = d_cutoff
        self.state: Optional[FilterState] = None

    def filter(self, value: float, timestamp: float) -> float:
        if self.state is None:
            self.state = FilterState(
                previous_value=value,
                previous_derivative=0.0,
                previous_timestamp=timestamp
            )
            return value

        elapsed = timestamp - self.state.previous_timestamp
        if elapsed <= 0:
            # Duplicate or out-of-order timestamp: nothing to integrate over
            return value

        derivative = (value - self.state.previous_value) / elapsed
        smoothed_derivative = exponential_smoothing(
            smoothing_factor(elapsed, self.d_cutoff),
            derivative,
            self.state.previous_derivative
        )

        cutoff = self.min_cutoff + self.beta * abs(smoothed_derivative)
        filtered = exponential_smoothing(
            smoothing_factor(elapsed, cutoff),
            value,
            self.state.previous_value
        )

        self.state.previous_value = filtered
        self.state.previous_derivative = smoothed_derivative
        self.state.previous_timestamp = timestamp

        return filtered

    @property
    def derivative(self) -> float:
        """Most recent smoothed derivative (units per second)."""
        return self.state.previous_derivative if self.state else 0.0

    def reset(self):
        self.state = None


class AngleSmoother:
    """
    Bank of one-euro filters keyed by angle name.

    Filters are created lazily the first time an angle name is seen.
    """

    def __init__(
        self,
        min_cutoff: float = 1.0,
        beta: float = 0.007,
        d_cutoff: float = 1.0
    ):
        self.min_cutoff = min_cutoff
        self.beta = beta
        self.d_cutoff = d_cutoff
        self.filters: Dict[str, OneEuroFilter] = {}

    def filter(self, name: str, value: float, timestamp: float) -> float:
        """Filter one value for the named angle."""
        angle_filter = self.filters.get(name)
        if angle_filter is None:
            angle_filter = OneEuroFilter(self.min_cutoff, self.beta, self.d_cutoff)
            self.filters[name] = angle_filter
        return angle_filter.filter(value, timestamp)

    def smooth(self, samples: Iterable[AngleSample]) -> List[AngleSample]:
        """Filter a batch of samples (e.g. one frame's worth) in order."""
        return [
            AngleSample(
                name=s.name,
                value=self.filter(s.name, s.value, s.timestamp),
                timestamp=s.timestamp
            )
            for s in samples
        ]

    def smooth_series(self, samples: Iterable[AngleSample]) -> List[AngleSample]:
        """
        Filter a full recording.

        Samples are processed in timestamp order; the smoother's own state is
        used, so call reset() first when the recording is unrelated to
        previous input.
        """
        ordered = sorted(samples, key=lambda s: s.timestamp)
        return self.smooth(ordered)

    def derivative(self, name: str) -> float:
        angle_filter = self.filters.get(name)
        return angle_filter.derivative if angle_filter else 0.0

    def state(self, name: str) -> Optional[FilterState]:
        angle_filter = self.filters.get(name)
        return angle_filter.state if angle_filter else None

    def reset(self):
        """Reset all smoothing history."""
        self.filters.clear()
        logger.debug("Angle smoother reset")
