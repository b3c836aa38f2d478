from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from poseoverlay.logic.geometry import asymmetry_pct, joint_angle
from poseoverlay.logic.mapping import map_pose
from poseoverlay.logic.metrics import LEFT_LEG, RIGHT_LEG
from poseoverlay.pose.base import KeypointSource
from poseoverlay.ui.overlay import RenderResult, RenderSurface, SkeletonRenderer, composite
from poseoverlay.utils.structures import Pose


@dataclass
class StillAnalysis:
    pose: Optional[Pose]
    annotated: np.ndarray
    render: RenderResult
    left_knee: Optional[float] = None
    right_knee: Optional[float] = None
    asymmetry: Optional[float] = None


async def analyze_still(
    image: np.ndarray,
    estimator: KeypointSource,
    renderer: SkeletonRenderer,
    min_confidence: float = 0.3,
) -> StillAnalysis:
    """Skeleton and knee KPIs for one image, drawn at the image's natural size."""
    height, width = image.shape[:2]
    surface = RenderSurface(width, height)
    raw = await estimator.estimate(image)
    if raw is None:
        return StillAnalysis(pose=None, annotated=image.copy(), render=RenderResult())
    pose = map_pose(raw, (width, height), surface.size)
    render = renderer.render(surface, pose)
    left = joint_angle(pose, *LEFT_LEG, min_confidence=min_confidence)
    right = joint_angle(pose, *RIGHT_LEG, min_confidence=min_confidence)
    analysis = StillAnalysis(pose=pose, annotated=composite(image, surface), render=render)
    if math.isfinite(left):
        analysis.left_knee = left
    if math.isfinite(right):
        analysis.right_knee = right
    if math.isfinite(left) and math.isfinite(right):
        analysis.asymmetry = asymmetry_pct(left, right)
    return analysis
