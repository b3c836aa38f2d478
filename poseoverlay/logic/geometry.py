from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from poseoverlay.utils.structures import JointId, Keypoint, Pose

ANGLE_EPS = 1e-9
ASYMMETRY_EPS = 1e-3

Point = Sequence[float]


def _xy(point: Point | Keypoint) -> np.ndarray:
    if isinstance(point, Keypoint):
        return np.array([point.x, point.y], dtype=np.float64)
    return np.asarray(point[:2], dtype=np.float64)


def angle_deg(a: Point | Keypoint, b: Point | Keypoint, c: Point | Keypoint) -> float:
    """Angle at vertex ``b`` formed by ``a`` and ``c``, in degrees within [0, 180]."""
    ba = _xy(a) - _xy(b)
    bc = _xy(c) - _xy(b)
    cosine = float(np.dot(ba, bc)) / (float(np.hypot(*ba) * np.hypot(*bc)) + ANGLE_EPS)
    cosine = float(np.clip(cosine, -1.0, 1.0))
    return math.degrees(math.acos(cosine))


def joint_angle(pose: Pose, a: JointId, b: JointId, c: JointId, min_confidence: float = 0.0) -> float:
    """Angle at joint ``b``; NaN when any of the three joints is absent."""
    pa = pose.find(a, min_confidence)
    pb = pose.find(b, min_confidence)
    pc = pose.find(c, min_confidence)
    if pa is None or pb is None or pc is None:
        return math.nan
    return angle_deg(pa, pb, pc)


def midpoint(pose: Pose, left: JointId, right: JointId, min_confidence: float = 0.0) -> Optional[Tuple[float, float]]:
    pl = pose.find(left, min_confidence)
    pr = pose.find(right, min_confidence)
    if pl is None or pr is None:
        return None
    return ((pl.x + pr.x) / 2.0, (pl.y + pr.y) / 2.0)


def line_angle(pose: Pose, left: JointId, right: JointId, min_confidence: float = 0.0) -> Optional[float]:
    """Orientation of the left->right segment in degrees, ``atan2(dy, dx)``."""
    pl = pose.find(left, min_confidence)
    pr = pose.find(right, min_confidence)
    if pl is None or pr is None:
        return None
    return math.degrees(math.atan2(pr.y - pl.y, pr.x - pl.x))


def angle_from_vertical(top: Tuple[float, float], bottom: Tuple[float, float]) -> float:
    """Absolute tilt of the top->bottom vector away from image vertical."""
    dx = bottom[0] - top[0]
    dy = bottom[1] - top[1]
    return abs(math.degrees(math.atan2(dx, dy)))


def angular_difference(a: float, b: float) -> float:
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def asymmetry_pct(left: float, right: float) -> float:
    return 100.0 * abs(left - right) / (0.5 * (left + right) + ASYMMETRY_EPS)
