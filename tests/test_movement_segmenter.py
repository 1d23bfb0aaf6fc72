"""Tests for movement segmentation and the movement report."""

import math

from repcoach.cv.angle_extractor import AngleSample
from repcoach.cv.movement_segmenter import (
    MovementSegment,
    MovementSegmenter,
    ema_series,
    summarize_movements,
)


def _series(name, values, fps=30.0):
    return [AngleSample(name, v, i / fps) for i, v in enumerate(values)]


def _rest_ramp_rest(start, end, fps=30):
    ramp = [start + (end - start) * i / fps for i in range(fps)]
    return [start] * fps + ramp + [end] * fps


def test_ema_series_first_value_passes_through():
    assert ema_series([10.0, 20.0], 0.5) == [10.0, 15.0]
    assert ema_series([], 0.5) == []


def test_extension_ramp_produces_positive_segments():
    segmenter = MovementSegmenter()
    segments = segmenter.segment(_series("right_knee", _rest_ramp_rest(90.0, 170.0)))

    assert segments
    assert all(s.angle_name == "right_knee" for s in segments)
    assert all(s.delta > 20 for s in segments)
    assert all(s.duration >= 0.4 for s in segments)
    assert segments[0].start_time >= 0.5


def test_small_noise_produces_nothing():
    values = [120 + 2 * math.sin(i / 3) for i in range(150)]
    assert MovementSegmenter().segment(_series("right_knee", values)) == []


def test_detect_movements_groups_by_angle():
    samples = (
        _series("right_knee", _rest_ramp_rest(90.0, 170.0))
        + _series("left_arm_segment", _rest_ramp_rest(150.0, 60.0))
    )
    movements = MovementSegmenter().detect_movements(samples)

    names = {m.angle_name for m in movements}
    assert names == {"right_knee", "left_arm_segment"}
    assert [m.start_time for m in movements] == sorted(m.start_time for m in movements)


def test_summary_sections():
    movements = [
        MovementSegment("right_knee", 90.0, 170.0, 1.0, 2.0),
        MovementSegment("left_arm_segment", 20.0, 80.0, 3.0, 3.5),
    ]
    text = summarize_movements(movements)

    assert "=== JOINT ANGLES (Flexion/Extension) ===" in text
    assert "=== SEGMENT ANGLES (Relative to Vertical) ===" in text
    assert "1. RIGHT KNEE: extended (straightened) by 80.0°" in text
    assert "LEFT ARM: raised/moved away from vertical" in text


def test_empty_summary():
    assert summarize_movements([]) == "No significant movements detected."


def test_slow_ramp_is_reported():
    # 10°/s: never more than the noise floor per minimum-duration window
    fps = 30
    ramp = [90.0 + 30.0 * i / (3 * fps) for i in range(3 * fps)]
    values = [90.0] * fps + ramp + [120.0] * fps

    segments = MovementSegmenter().segment(_series("right_knee", values))

    assert len(segments) == 1
    assert segments[0].start_angle == 90.0
    assert segments[0].delta > 20
    assert segments[0].start_time >= 1.0
