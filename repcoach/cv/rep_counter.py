"""
Repetition counting from a live angle / state stream.

TWO STRATEGIES behind one RepetitionStrategy interface:

1. SEQUENCE: discrete state labels must visit a canonical rep sequence,
   e.g. flexed -> extended -> flexed. A new label is accepted only after it
   has been observed for `debounce_seconds` (suppresses classifier flicker).

2. HYSTERESIS: one primary angle's smoothed derivative drives an up/down
   direction flag that only flips outside a +/- band. An up->down flip marks
   a provisional peak, a down->up flip marks a valley and closes a candidate
   repetition, which must pass range-of-motion, peak/trough and cooldown checks.
   A valley is also confirmed when the angle comes to rest at the bottom
   (derivative inside the band for `valley_settle_seconds`), so a set that
   ends in the low position still counts its last repetition.

Both strategies:
- only ever increase the count
- never count twice within the cooldown interval
- skip frames where their input is missing instead of treating them as a change
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Mapping, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


class CountingStrategy(Enum):
    """Available repetition counting strategies."""
    SEQUENCE = "sequence"
    HYSTERESIS = "hysteresis"


class Direction(Enum):
    """Movement direction of the primary angle."""
    UP = "up"
    DOWN = "down"


class RejectionReason:
    """Explicit reasons a candidate repetition was not counted."""
    INSUFFICIENT_ROM = "insufficient_rom"
    PEAK_BELOW_MINIMUM = "peak_below_minimum"
    VALLEY_ABOVE_MAXIMUM = "valley_above_maximum"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class RepEvent:
    """A counted repetition."""
    rep_number: int  # 1-based, strictly increasing
    timestamp: float
    valid: bool = True
    peak: Optional[float] = None
    valley: Optional[float] = None


@dataclass
class RejectedAttempt:
    """A candidate repetition that failed validation."""
    timestamp: float
    reasons: List[str] = field(default_factory=list)
    peak: Optional[float] = None
    valley: Optional[float] = None


@dataclass(frozen=True)
class HysteresisThresholds:
    """
    Exercise-specific limits for the hysteresis strategy.

    peak_min / trough_max are hand-tuned per exercise; None disables the check.
    """
    primary_angle: str
    peak_min: Optional[float] = None
    trough_max: Optional[float] = None
    min_rom: Optional[float] = None  # falls back to the counter default


class RepetitionStrategy(ABC):
    """Base class: monotonic rep count with cooldown enforcement."""

    strategy: CountingStrategy

    def __init__(self, cooldown_seconds: float = 0.0):
        self.cooldown_seconds = cooldown_seconds
        self.rep_count = 0
        self.events: List[RepEvent] = []
        self.rejected_attempts: List[RejectedAttempt] = []
        self._last_rep_time: Optional[float] = None

    @abstractmethod
    def update(
        self,
        timestamp: float,
        state_label: Optional[str] = None,
        angles: Optional[Mapping[str, float]] = None
    ) -> Optional[RepEvent]:
        """
        Feed one frame.

        Args:
            timestamp: Frame time in seconds
            state_label: Discrete state of the frame (sequence strategy)
            angles: Smoothed angle vector of the frame (hysteresis strategy)

        Returns:
            RepEvent if this frame completed a repetition, None otherwise
        """
        raise NotImplementedError

    def _in_cooldown(self, timestamp: float) -> bool:
        if self._last_rep_time is None:
            return False
        return timestamp - self._last_rep_time < self.cooldown_seconds

    def _count(self, timestamp: float, **metrics) -> RepEvent:
        self.rep_count += 1
        self._last_rep_time = timestamp
        event = RepEvent(rep_number=self.rep_count, timestamp=timestamp, **metrics)
        self.events.append(event)
        logger.info(f"Rep #{self.rep_count} counted at {timestamp:.2f}s ({self.strategy.value})")
        return event

    def _reject(self, timestamp: float, reasons: List[str], **metrics) -> None:
        self.rejected_attempts.append(
            RejectedAttempt(timestamp=timestamp, reasons=reasons, **metrics)
        )
        logger.warning(f"Rejected repetition at {timestamp:.2f}s: {', '.join(reasons)}")

    def reset(self):
        """Clear all counting state."""
        self.rep_count = 0
        self.events = []
        self.rejected_attempts = []
        self._last_rep_time = None


class SequenceRepCounter(RepetitionStrategy):
    """
    Counts repetitions by matching recent state labels to a canonical sequence.

    History holds at most len(sequence) + 2 labels. After a match the history
    collapses to the final label so the next cycle can start immediately.
    """

    strategy = CountingStrategy.SEQUENCE

    def __init__(
        self,
        rep_sequence: Sequence[str],
        debounce_seconds: float = 0.2,
        cooldown_seconds: float = 0.0
    ):
        super().__init__(cooldown_seconds)
        if len(rep_sequence) < 2:
            raise ValueError("rep_sequence needs at least two states")

        self.rep_sequence: Tuple[str, ...] = tuple(rep_sequence)
        self.debounce_seconds = debounce_seconds
        self.history: Deque[str] = deque(maxlen=len(self.rep_sequence) + 2)

        self.current_label: Optional[str] = None
        self._candidate: Optional[str] = None
        self._candidate_since: Optional[float] = None

    def update(
        self,
        timestamp: float,
        state_label: Optional[str] = None,
        angles: Optional[Mapping[str, float]] = None
    ) -> Optional[RepEvent]:
        if state_label is None:
            return None

        if state_label == self.current_label:
            self._candidate = None
            self._candidate_since = None
            return None

        if state_label != self._candidate:
            self._candidate = state_label
            self._candidate_since = timestamp

        if timestamp - self._candidate_since < self.debounce_seconds:
            return None

        logger.debug(f"State {self.current_label} -> {state_label} at {timestamp:.2f}s")
        self.current_label = state_label
        self._candidate = None
        self._candidate_since = None
        return self.add_state(state_label, timestamp)

    def add_state(self, state_label: str, timestamp: float) -> Optional[RepEvent]:
        """Append an accepted label (no debounce) and check for a completed rep."""
        if self.history and self.history[-1] == state_label:
            return None

        self.history.append(state_label)

        if not self._matches():
            return None

        self.history.clear()
        self.history.append(state_label)

        if self._in_cooldown(timestamp):
            self._reject(timestamp, [RejectionReason.COOLDOWN])
            return None

        return self._count(timestamp)

    def _matches(self) -> bool:
        n = len(self.rep_sequence)
        if len(self.history) < n:
            return False
        return tuple(self.history)[-n:] == self.rep_sequence

    @property
    def current_sequence(self) -> List[str]:
        return list(self.history)

    def reset(self):
        super().reset()
        self.history.clear()
        self.current_label = None
        self._candidate = None
        self._candidate_since = None


class HysteresisRepCounter(RepetitionStrategy):
    """
    Peak/valley repetition counter on one primary angle.

    A repetition is counted at the valley that follows a peak, either when the
    angle starts rising again or once it has rested at the bottom, when:
    - peak - valley >= max(min_rom, rom_window_fraction * recent range)
    - peak >= peak_min and valley <= trough_max (when configured)
    - cooldown_seconds have passed since the last counted repetition
    """

    strategy = CountingStrategy.HYSTERESIS

    def __init__(
        self,
        thresholds: HysteresisThresholds,
        band: float = 2.0,
        min_rom: float = 15.0,
        rom_window_fraction: float = 0.3,
        window_seconds: float = 6.0,
        cooldown_seconds: float = 0.8,
        derivative_smoothing: float = 0.5,
        valley_settle_seconds: float = 0.8
    ):
        """
        Args:
            thresholds: Primary angle and exercise-specific limits
            band: Derivative magnitude (degrees/second) needed to flip direction
            min_rom: Minimum peak-to-valley change when thresholds set none
            rom_window_fraction: Fraction of the recent range a rep must cover
            window_seconds: Length of the recent-range window
            cooldown_seconds: Minimum time between counted repetitions
            derivative_smoothing: EMA alpha applied to the raw derivative
            valley_settle_seconds: Time the derivative must stay inside the band,
                while moving down, before the lowest point counts as a valley
        """
        super().__init__(cooldown_seconds)
        self.thresholds = thresholds
        self.primary_angle = thresholds.primary_angle
        self.band = band
        self.min_rom = thresholds.min_rom if thresholds.min_rom is not None else min_rom
        self.rom_window_fraction = rom_window_fraction
        self.window_seconds = window_seconds
        self.derivative_smoothing = derivative_smoothing
        self.valley_settle_seconds = valley_settle_seconds

        self.direction: Optional[Direction] = None
        self.derivative: Optional[float] = None
        self.provisional_peak: Optional[float] = None

        self._prev_value: Optional[float] = None
        self._prev_time: Optional[float] = None
        self._segment_max: Optional[float] = None
        self._segment_min: Optional[float] = None
        self._window: Deque[Tuple[float, float]] = deque()
        self._settle_since: Optional[float] = None

    def update(
        self,
        timestamp: float,
        state_label: Optional[str] = None,
        angles: Optional[Mapping[str, float]] = None
    ) -> Optional[RepEvent]:
        value = angles.get(self.primary_angle) if angles else None
        if value is None:
            return None

        if self._prev_time is not None and timestamp <= self._prev_time:
            return None

        self._window.append((timestamp, value))
        while self._window and timestamp - self._window[0][0] > self.window_seconds:
            self._window.popleft()

        if self._prev_value is None:
            self._prev_value = value
            self._prev_time = timestamp
            self._segment_max = self._segment_min = value
            return None

        raw = (value - self._prev_value) / (timestamp - self._prev_time)
        if self.derivative is None:
            self.derivative = raw
        else:
            a = self.derivative_smoothing
            self.derivative = a * raw + (1 - a) * self.derivative

        self._prev_value = value
        self._prev_time = timestamp
        self._segment_max = max(self._segment_max, value)
        self._segment_min = min(self._segment_min, value)

        new_direction = self.direction
        if self.derivative > self.band:
            new_direction = Direction.UP
        elif self.derivative < -self.band:
            new_direction = Direction.DOWN

        if new_direction == self.direction:
            if self.direction == Direction.DOWN and abs(self.derivative) <= self.band:
                return self._settle(value, timestamp)
            self._settle_since = None
            return None

        self._settle_since = None

        event = None
        if new_direction == Direction.DOWN:
            # A peak survives rejected cycles until a higher one replaces it
            if self.provisional_peak is None or self._segment_max > self.provisional_peak:
                self.provisional_peak = self._segment_max
            logger.debug(f"Peak {self.provisional_peak:.1f}° at {timestamp:.2f}s")
        elif self.direction == Direction.DOWN:
            valley = self._segment_min
            logger.debug(f"Valley {valley:.1f}° at {timestamp:.2f}s")
            event = self._close_cycle(valley, timestamp)

        self.direction = new_direction
        self._segment_max = self._segment_min = value
        return event

    def _settle(self, value: float, timestamp: float) -> Optional[RepEvent]:
        """Close the cycle once the angle has rested at the bottom long enough."""
        if self._settle_since is None:
            self._settle_since = timestamp
            return None
        if timestamp - self._settle_since < self.valley_settle_seconds:
            return None

        valley = self._segment_min
        logger.debug(f"Valley {valley:.1f}° confirmed at rest, {timestamp:.2f}s")
        event = self._close_cycle(valley, timestamp)

        # No direction until the angle moves again, so the next rise does not close twice
        self.direction = None
        self._settle_since = None
        self._segment_max = self._segment_min = value
        return event

    @property
    def window_range(self) -> float:
        if not self._window:
            return 0.0
        values = [v for _, v in self._window]
        return max(values) - min(values)

    def _close_cycle(self, valley: float, timestamp: float) -> Optional[RepEvent]:
        peak = self.provisional_peak
        if peak is None:
            return None

        reasons: List[str] = []
        rom = peak - valley
        required_rom = max(self.min_rom, self.rom_window_fraction * self.window_range)

        if rom < required_rom:
            reasons.append(RejectionReason.INSUFFICIENT_ROM)
        if self.thresholds.peak_min is not None and peak < self.thresholds.peak_min:
            reasons.append(RejectionReason.PEAK_BELOW_MINIMUM)
        if self.thresholds.trough_max is not None and valley > self.thresholds.trough_max:
            reasons.append(RejectionReason.VALLEY_ABOVE_MAXIMUM)
        if self._in_cooldown(timestamp):
            reasons.append(RejectionReason.COOLDOWN)

        if reasons:
            self._reject(timestamp, reasons, peak=peak, valley=valley)
            return None

        self.provisional_peak = None
        return self._count(timestamp, peak=peak, valley=valley)

    def reset(self):
        super().reset()
        self.direction = None
        self.derivative = None
        self.provisional_peak = None
        self._prev_value = None
        self._prev_time = None
        self._segment_max = None
        self._segment_min = None
        self._window.clear()
        self._settle_since = None


def create_repetition_strategy(
    strategy: CountingStrategy,
    rep_sequence: Optional[Sequence[str]] = None,
    thresholds: Optional[HysteresisThresholds] = None,
    settings=None
) -> RepetitionStrategy:
    """
    Build a counting strategy from exercise configuration and settings.

    Args:
        strategy: Which strategy to build
        rep_sequence: Canonical rep sequence (SEQUENCE)
        thresholds: Primary angle and limits (HYSTERESIS)
        settings: repcoach Settings; defaults to get_settings()
    """
    if settings is None:
        from repcoach.config import get_settings
        settings = get_settings()

    if strategy == CountingStrategy.SEQUENCE:
        if not rep_sequence:
            raise ValueError("Sequence strategy requires a rep_sequence")
        return SequenceRepCounter(
            rep_sequence,
            debounce_seconds=settings.state_debounce_seconds,
            cooldown_seconds=settings.sequence_cooldown_seconds,
        )

    if strategy == CountingStrategy.HYSTERESIS:
        if thresholds is None:
            raise ValueError("Hysteresis strategy requires thresholds with a primary angle")
        return HysteresisRepCounter(
            thresholds,
            band=settings.hysteresis_band,
            min_rom=settings.hysteresis_min_rom,
            rom_window_fraction=settings.hysteresis_rom_window_fraction,
            window_seconds=settings.hysteresis_window_seconds,
            cooldown_seconds=settings.hysteresis_cooldown_seconds,
            derivative_smoothing=settings.derivative_smoothing,
            valley_settle_seconds=settings.hysteresis_valley_settle_seconds,
        )

    raise ValueError(f"Unknown counting strategy: {strategy}")
