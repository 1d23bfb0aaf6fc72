"""Tests for landmark lookup and angle extraction."""

import pytest

from conftest import leg_frame
from repcoach.cv.angle_extractor import (
    AngleDefinition,
    AngleExtractor,
    AngleMode,
    joint_angle,
    segment_angle,
)
from repcoach.cv.exercise_config import DEFAULT_ANGLE_DEFINITIONS
from repcoach.cv.landmarks import Landmark, LandmarkFrame, PoseLandmark
from repcoach.exceptions import MissingLandmarkData


class TestLandmarkFrame:

    def test_get_out_of_range_is_none(self):
        frame = LandmarkFrame.from_points(0.0, [(0.1, 0.2)] * 5)
        assert frame.get(3) is not None
        assert frame.get(PoseLandmark.RIGHT_KNEE) is None
        assert frame.get(99) is None

    def test_get_unknown_name_is_none(self):
        frame = LandmarkFrame.from_points(0.0, [(0.1, 0.2)] * 5)
        assert frame.get("nose") is not None
        assert frame.get("tail") is None

    def test_parse_by_name(self):
        assert PoseLandmark.parse("left_hip") == PoseLandmark.LEFT_HIP
        assert PoseLandmark.parse(26) == PoseLandmark.RIGHT_KNEE
        with pytest.raises(ValueError):
            PoseLandmark.parse("tail")

    def test_require_low_visibility_raises(self):
        frame = leg_frame(0.0, 90, visibility=0.2)
        with pytest.raises(MissingLandmarkData) as exc:
            frame.require(PoseLandmark.RIGHT_KNEE, min_visibility=0.5)
        assert exc.value.landmark == PoseLandmark.RIGHT_KNEE

    def test_from_points_row_shapes(self):
        frame = LandmarkFrame.from_points(1.5, [(0.1, 0.2), (0.3, 0.4, 0.9), (0.5, 0.6, -0.1, 0.8)])
        assert frame.get(0).visibility == 1.0
        assert frame.get(1).visibility == 0.9
        assert frame.get(2).z == -0.1
        assert frame.visible_count == 3

        with pytest.raises(ValueError):
            LandmarkFrame.from_points(0.0, [(0.1,)])


class TestAngleMath:

    def test_joint_angle_right_and_straight(self):
        assert joint_angle((0, 0), (0, 1), (1, 1)) == pytest.approx(90.0)
        assert joint_angle((0, 0), (0, 1), (0, 2)) == pytest.approx(180.0)

    def test_joint_angle_never_exceeds_180(self):
        assert joint_angle((1, 0), (0, 0), (-1, -0.1)) <= 180.0

    def test_segment_angle_relative_to_vertical(self):
        assert segment_angle((0, 0), (0, 1)) == pytest.approx(0.0)
        assert segment_angle((0, 0), (1, 0)) == pytest.approx(90.0)
        assert segment_angle((0, 1), (0, 0)) == pytest.approx(180.0)


class TestAngleDefinition:

    def test_wrong_landmark_count_rejected(self):
        with pytest.raises(ValueError):
            AngleDefinition(name="bad", mode=AngleMode.JOINT,
                            landmarks=(PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE))

    def test_segment_flag(self):
        d = AngleDefinition.segment("left_thigh_segment", "left_hip", "left_knee")
        assert d.is_segment
        assert d.landmarks == (PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE)


class TestAngleExtractor:

    @pytest.mark.parametrize("knee", [60.0, 90.0, 135.0, 170.0])
    def test_knee_angle_recovered(self, knee):
        extractor = AngleExtractor(DEFAULT_ANGLE_DEFINITIONS,
                                   angles_of_interest=["right_knee", "right_leg_segment"])
        angles = extractor.extract_vector(leg_frame(0.0, knee))

        assert angles["right_knee"] == pytest.approx(knee, abs=1e-6)
        assert angles["right_leg_segment"] == pytest.approx(180.0 - knee, abs=1e-6)

    def test_missing_landmarks_drop_only_their_angles(self):
        extractor = AngleExtractor(DEFAULT_ANGLE_DEFINITIONS,
                                   angles_of_interest=["left_knee", "right_knee", "right_elbow"])
        samples = extractor.extract(leg_frame(2.0, 120))

        assert [s.name for s in samples] == ["right_knee"]
        assert samples[0].timestamp == 2.0

    def test_low_confidence_frame_yields_nothing(self):
        extractor = AngleExtractor(DEFAULT_ANGLE_DEFINITIONS, confidence_floor=0.5)
        assert extractor.extract(leg_frame(0.0, 90, visibility=0.3)) == []

    def test_empty_frame_is_not_an_error(self):
        extractor = AngleExtractor(DEFAULT_ANGLE_DEFINITIONS)
        assert extractor.extract(LandmarkFrame(timestamp=0.0)) == []

    def test_unknown_angle_of_interest(self):
        with pytest.raises(ValueError):
            AngleExtractor(DEFAULT_ANGLE_DEFINITIONS, angles_of_interest=["right_tail"])
