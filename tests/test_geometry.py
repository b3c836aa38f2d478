from __future__ import annotations

import math

import pytest

from poseoverlay.logic.geometry import (
    angle_deg,
    angle_from_vertical,
    angular_difference,
    asymmetry_pct,
    joint_angle,
    line_angle,
    midpoint,
)
from poseoverlay.utils.structures import JointId
from tests.fakes import make_pose


def test_right_angle():
    assert angle_deg((0, 1), (0, 0), (1, 0)) == pytest.approx(90.0)


def test_collinear_points_are_straight():
    assert angle_deg((0, 0), (0, 90), (0, 180)) == pytest.approx(180.0, abs=1e-3)


def test_angle_stays_in_range_for_degenerate_segment():
    value = angle_deg((5, 5), (5, 5), (10, 5))
    assert 0.0 <= value <= 180.0


def test_asymmetry_is_symmetric_and_non_negative():
    assert asymmetry_pct(120.0, 100.0) == pytest.approx(asymmetry_pct(100.0, 120.0))
    assert asymmetry_pct(120.0, 100.0) > 0
    assert asymmetry_pct(95.0, 95.0) == 0.0


def test_asymmetry_of_zero_angles_is_finite():
    assert asymmetry_pct(0.0, 0.0) == 0.0


def test_joint_angle_missing_joint_is_nan():
    pose = make_pose(drop=(JointId.RIGHT_ANKLE,))
    assert math.isnan(joint_angle(pose, JointId.RIGHT_HIP, JointId.RIGHT_KNEE, JointId.RIGHT_ANKLE))


def test_joint_angle_respects_confidence():
    pose = make_pose(overrides={JointId.LEFT_ANKLE: 0.1})
    assert math.isnan(joint_angle(pose, JointId.LEFT_HIP, JointId.LEFT_KNEE, JointId.LEFT_ANKLE, min_confidence=0.3))
    assert joint_angle(pose, JointId.LEFT_HIP, JointId.LEFT_KNEE, JointId.LEFT_ANKLE) == pytest.approx(180.0, abs=1e-3)


def test_midpoint_and_line_angle():
    pose = make_pose()
    assert midpoint(pose, JointId.LEFT_HIP, JointId.RIGHT_HIP) == (320.0, 240.0)
    assert line_angle(pose, JointId.LEFT_SHOULDER, JointId.RIGHT_SHOULDER) == pytest.approx(0.0)
    assert line_angle(make_pose(drop=(JointId.LEFT_HIP,)), JointId.LEFT_HIP, JointId.RIGHT_HIP) is None


def test_angle_from_vertical():
    assert angle_from_vertical((0, 0), (0, 100)) == pytest.approx(0.0)
    assert angle_from_vertical((0, 0), (100, 100)) == pytest.approx(45.0)
    assert angle_from_vertical((100, 0), (0, 100)) == pytest.approx(45.0)


def test_angular_difference_wraps():
    assert angular_difference(170.0, -170.0) == pytest.approx(20.0)
    assert angular_difference(10.0, 55.0) == pytest.approx(45.0)


def test_opposite_rays_are_straight():
    assert angle_deg((-1, 0), (0, 0), (1, 0)) == pytest.approx(180.0, abs=0.01)
