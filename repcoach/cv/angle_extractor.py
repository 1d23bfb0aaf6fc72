"""
Angle extraction from landmark frames.

Two angle kinds are supported:
- JOINT angles (3-point): interior angle at the middle landmark, 0-180°
- SEGMENT angles (2-point): angle of a body segment relative to vertical,
  0° = pointing straight down the image, 180° = straight up

Extraction is per-angle: a missing or low-confidence landmark drops only the
angles that reference it. A frame where nothing can be measured yields an
empty result, which is not an error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

from repcoach.cv.landmarks import LandmarkFrame, PoseLandmark
from repcoach.exceptions import MissingLandmarkData

logger = logging.getLogger(__name__)


class AngleMode(Enum):
    """How an angle is measured."""
    JOINT = "joint"
    SEGMENT = "segment"


@dataclass(frozen=True)
class AngleDefinition:
    """
    A named angle and the landmarks it is measured from.

    JOINT: landmarks = (A, B, C), angle at B between B->A and B->C
    SEGMENT: landmarks = (start, end), angle of start->end from vertical
    """
    name: str
    mode: AngleMode
    landmarks: Tuple[PoseLandmark, ...]
    description: str = ""

    def __post_init__(self):
        expected = 3 if self.mode == AngleMode.JOINT else 2
        if len(self.landmarks) != expected:
            raise ValueError(
                f"Angle '{self.name}' ({self.mode.value}) needs {expected} landmarks, "
                f"got {len(self.landmarks)}"
            )

    @classmethod
    def joint(cls, name: str, a, b, c, description: str = "") -> "AngleDefinition":
        return cls(
            name=name,
            mode=AngleMode.JOINT,
            landmarks=(PoseLandmark.parse(a), PoseLandmark.parse(b), PoseLandmark.parse(c)),
            description=description,
        )

    @classmethod
    def segment(cls, name: str, start, end, description: str = "") -> "AngleDefinition":
        return cls(
            name=name,
            mode=AngleMode.SEGMENT,
            landmarks=(PoseLandmark.parse(start), PoseLandmark.parse(end)),
            description=description,
        )

    @property
    def is_segment(self) -> bool:
        return self.mode == AngleMode.SEGMENT


@dataclass(frozen=True)
class AngleSample:
    """One measured angle at one instant."""
    name: str
    value: float  # degrees, 0-180
    timestamp: float  # seconds


def joint_angle(
    a: Sequence[float],
    b: Sequence[float],
    c: Sequence[float]
) -> float:
    """Interior angle at b formed by b->a and b->c, in degrees (0-180)."""
    radians = np.arctan2(c[1] - b[1], c[0] - b[0]) - np.arctan2(a[1] - b[1], a[0] - b[0])
    angle = abs(float(np.degrees(radians)))
    if angle > 180.0:
        angle = 360.0 - angle
    return angle


def segment_angle(start: Sequence[float], end: Sequence[float]) -> float:
    """Angle of start->end relative to vertical, in degrees (0-180)."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    return abs(float(np.degrees(np.arctan2(dx, dy))))


def samples_to_vector(samples: Iterable[AngleSample]) -> Dict[str, float]:
    """Collapse samples into a name -> value mapping (last sample wins)."""
    return {s.name: s.value for s in samples}


class AngleExtractor:
    """
    Computes a configured set of angles from one landmark frame.

    Pure per frame: no history is kept between calls.
    """

    def __init__(
        self,
        definitions: Iterable[AngleDefinition],
        confidence_floor: float = 0.5,
        angles_of_interest: Optional[Iterable[str]] = None
    ):
        """
        Args:
            definitions: Angle definitions available for extraction
            confidence_floor: Minimum landmark visibility to use a point
            angles_of_interest: Optional subset of definition names to compute
        """
        self.definitions: Dict[str, AngleDefinition] = {d.name: d for d in definitions}
        self.confidence_floor = confidence_floor

        if angles_of_interest is None:
            self.active: List[AngleDefinition] = list(self.definitions.values())
        else:
            wanted = list(angles_of_interest)
            unknown = [n for n in wanted if n not in self.definitions]
            if unknown:
                raise ValueError(f"No angle definition for: {unknown}")
            self.active = [self.definitions[n] for n in wanted]

    @property
    def angle_names(self) -> List[str]:
        return [d.name for d in self.active]

    def extract(self, frame: LandmarkFrame) -> List[AngleSample]:
        """Compute every active angle that the frame supports."""
        samples: List[AngleSample] = []

        for definition in self.active:
            try:
                value = self._measure(definition, frame)
            except MissingLandmarkData as e:
                logger.debug(f"Skipping {definition.name} at t={frame.timestamp:.3f}: {e}")
                continue

            samples.append(AngleSample(
                name=definition.name,
                value=value,
                timestamp=frame.timestamp
            ))

        return samples

    def extract_vector(self, frame: LandmarkFrame) -> Dict[str, float]:
        """Same as extract(), as a name -> degrees mapping."""
        return samples_to_vector(self.extract(frame))

    def _measure(self, definition: AngleDefinition, frame: LandmarkFrame) -> float:
        points = [
            frame.require(lm, self.confidence_floor).xy
            for lm in definition.landmarks
        ]
        if definition.mode == AngleMode.JOINT:
            return joint_angle(points[0], points[1], points[2])
        return segment_angle(points[0], points[1])
