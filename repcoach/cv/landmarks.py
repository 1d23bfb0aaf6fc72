"""
Body landmark frames produced by the external pose estimator.

The pose model reports a fixed 33-point body layout per frame. Landmarks are
addressed through the PoseLandmark enum and every lookup is bounds-checked,
so a missing point surfaces as None (or MissingLandmarkData) instead of
propagating a bogus coordinate into the angle math.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple, Union

from repcoach.exceptions import MissingLandmarkData


class PoseLandmark(IntEnum):
    """Body landmark indices (33-point layout)."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

    @classmethod
    def parse(cls, value: Union[str, int, "PoseLandmark"]) -> "PoseLandmark":
        """Resolve a landmark from its enum, index or (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown landmark: {value!r}") from None


NUM_LANDMARKS = len(PoseLandmark)


@dataclass
class Landmark:
    """Single landmark with normalized position and visibility."""
    x: float  # Normalized x (0-1)
    y: float  # Normalized y (0-1), grows downward
    visibility: float = 1.0
    z: Optional[float] = None  # Relative depth, when the model provides it

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class LandmarkFrame:
    """
    All landmarks for a single captured frame.

    `landmarks` is indexed by PoseLandmark. Frames with fewer entries are
    allowed (truncated model output); lookups past the end report missing.
    """
    timestamp: float
    landmarks: List[Optional[Landmark]] = field(default_factory=list)
    frame_number: Optional[int] = None

    def get(self, landmark: Union[PoseLandmark, int, str]) -> Optional[Landmark]:
        """Bounds-checked lookup; returns None for absent, out-of-range or unknown landmarks."""
        if isinstance(landmark, int):
            idx = int(landmark)
        else:
            try:
                idx = PoseLandmark.parse(landmark)
            except ValueError:
                return None
        if idx < 0 or idx >= len(self.landmarks):
            return None
        return self.landmarks[idx]

    def require(
        self,
        landmark: Union[PoseLandmark, int, str],
        min_visibility: float = 0.0
    ) -> Landmark:
        """Lookup that raises MissingLandmarkData for absent or low-confidence points."""
        idx = PoseLandmark.parse(landmark)
        point = self.get(idx)
        if point is None:
            raise MissingLandmarkData(idx, "not detected")
        if point.visibility < min_visibility:
            raise MissingLandmarkData(
                idx, f"visibility {point.visibility:.2f} < {min_visibility:.2f}"
            )
        return point

    @property
    def visible_count(self) -> int:
        return sum(1 for lm in self.landmarks if lm is not None and lm.visibility > 0)

    @classmethod
    def from_points(
        cls,
        timestamp: float,
        points: Sequence[Sequence[float]],
        frame_number: Optional[int] = None
    ) -> "LandmarkFrame":
        """
        Build a frame from raw model output rows.

        Each row is (x, y), (x, y, visibility) or (x, y, z, visibility).
        """
        landmarks: List[Optional[Landmark]] = []
        for row in points[:NUM_LANDMARKS]:
            if row is None:
                landmarks.append(None)
            elif len(row) == 2:
                landmarks.append(Landmark(x=float(row[0]), y=float(row[1])))
            elif len(row) == 3:
                landmarks.append(Landmark(x=float(row[0]), y=float(row[1]), visibility=float(row[2])))
            elif len(row) == 4:
                landmarks.append(Landmark(
                    x=float(row[0]), y=float(row[1]), z=float(row[2]), visibility=float(row[3])
                ))
            else:
                raise ValueError(f"Landmark row must have 2-4 values, got {len(row)}")
        return cls(timestamp=timestamp, landmarks=landmarks, frame_number=frame_number)
