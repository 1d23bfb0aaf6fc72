"""
Movement segmentation for human-readable reports.

Finds sustained angle changes in a recording. Change is measured from the
rest level a segment starts at, so slow movements accumulate until they pass
`angle_threshold`. The segment start follows the last sample still within
the noise floor of that level, so idle stretches do not count towards a
segment's duration, and a segment closes once at least `min_duration` has
passed since that start.

Diagnostic only: rep counting and scoring do not consume these segments.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List
import logging

from repcoach.cv.angle_extractor import AngleSample

logger = logging.getLogger(__name__)


@dataclass
class MovementSegment:
    """A sustained change of one angle."""
    angle_name: str
    start_angle: float
    end_angle: float
    start_time: float
    end_time: float

    @property
    def delta(self) -> float:
        return self.end_angle - self.start_angle

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def is_segment_angle(self) -> bool:
        return self.angle_name.endswith("_segment")


def ema_series(values: List[float], alpha: float) -> List[float]:
    """Exponential moving average; the first value passes through."""
    if not values:
        return []
    smoothed = [values[0]]
    for v in values[1:]:
        smoothed.append(alpha * v + (1 - alpha) * smoothed[-1])
    return smoothed


class MovementSegmenter:
    """Detects sustained angle changes in smoothed angle series."""

    def __init__(
        self,
        smoothing_factor: float = 0.35,
        angle_threshold: float = 20.0,
        noise_floor: float = 5.0,
        min_duration: float = 0.4
    ):
        """
        Args:
            smoothing_factor: EMA alpha of the secondary smoothing pass
            angle_threshold: Minimum change (degrees) for a segment
            noise_floor: Changes within this band (degrees) are treated as rest
            min_duration: Minimum segment duration (seconds)
        """
        self.smoothing_factor = smoothing_factor
        self.angle_threshold = angle_threshold
        self.noise_floor = noise_floor
        self.min_duration = min_duration

    def segment(self, series: Iterable[AngleSample]) -> List[MovementSegment]:
        """Segment one angle's series."""
        ordered = sorted(series, key=lambda s: s.timestamp)
        if len(ordered) < 2:
            return []

        name = ordered[0].name
        times = [s.timestamp for s in ordered]
        values = ema_series([s.value for s in ordered], self.smoothing_factor)

        segments: List[MovementSegment] = []
        anchor_idx = 0  # rest level the change is measured from
        start_idx = 0  # last sample still within the noise floor of the anchor

        for i in range(1, len(values)):
            total_delta = values[i] - values[anchor_idx]

            if abs(total_delta) <= self.noise_floor:
                start_idx = i
                continue

            elapsed = times[i] - times[start_idx]
            if abs(total_delta) > self.angle_threshold and elapsed >= self.min_duration:
                segments.append(MovementSegment(
                    angle_name=name,
                    start_angle=values[anchor_idx],
                    end_angle=values[i],
                    start_time=times[start_idx],
                    end_time=times[i],
                ))
                anchor_idx = start_idx = i

        logger.debug(f"{name}: {len(segments)} movement segments from {len(ordered)} samples")
        return segments

    def detect_movements(self, samples: Iterable[AngleSample]) -> List[MovementSegment]:
        """Segment every angle present in `samples`, ordered by start time."""
        groups: Dict[str, List[AngleSample]] = {}
        for s in samples:
            groups.setdefault(s.name, []).append(s)

        movements: List[MovementSegment] = []
        for series in groups.values():
            movements.extend(self.segment(series))

        return sorted(movements, key=lambda m: m.start_time)


def _describe_joint(movement: MovementSegment) -> str:
    name = movement.angle_name
    if "knee" in name or "elbow" in name:
        return "flexed (bent)" if movement.delta < 0 else "extended (straightened)"
    if "hip" in name or "shoulder" in name:
        return "closed" if movement.delta < 0 else "opened"
    return "increased" if movement.delta > 0 else "decreased"


def _format_line(index: int, label: str, verb: str, movement: MovementSegment) -> str:
    sign = "+" if movement.delta > 0 else ""
    return (
        f"{index}. {label}: {verb} by {abs(movement.delta):.1f}° "
        f"(went from {movement.start_angle:.0f}° to {movement.end_angle:.0f}°, "
        f"change: {sign}{movement.delta:.1f}°) "
        f"at {movement.start_time:.1f}s for {movement.duration:.1f}s"
    )


def summarize_movements(movements: List[MovementSegment]) -> str:
    """Render movements as a two-section plain-text report."""
    if not movements:
        return "No significant movements detected."

    joints = [m for m in movements if not m.is_segment_angle]
    segments = [m for m in movements if m.is_segment_angle]
    lines: List[str] = []

    if joints:
        lines.append("=== JOINT ANGLES (Flexion/Extension) ===")
        for i, m in enumerate(joints, start=1):
            label = m.angle_name.replace("_", " ").upper()
            lines.append(_format_line(i, label, _describe_joint(m), m))

    if segments:
        if joints:
            lines.append("")
        lines.append("=== SEGMENT ANGLES (Relative to Vertical) ===")
        for i, m in enumerate(segments, start=1):
            label = m.angle_name.replace("_segment", "").replace("_", " ").upper()
            verb = (
                "raised/moved away from vertical" if m.delta > 0
                else "lowered/moved toward vertical"
            )
            lines.append(_format_line(i, label, verb, m))

    return "\n".join(lines)
