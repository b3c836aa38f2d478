from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger

from poseoverlay.logic.mapping import Size, backing_size
from poseoverlay.utils.structures import JointId, Keypoint, Pose

SKELETON_EDGES: Tuple[Tuple[JointId, JointId], ...] = (
    (JointId.LEFT_SHOULDER, JointId.LEFT_ELBOW),
    (JointId.LEFT_ELBOW, JointId.LEFT_WRIST),
    (JointId.RIGHT_SHOULDER, JointId.RIGHT_ELBOW),
    (JointId.RIGHT_ELBOW, JointId.RIGHT_WRIST),
    (JointId.LEFT_HIP, JointId.LEFT_KNEE),
    (JointId.LEFT_KNEE, JointId.LEFT_ANKLE),
    (JointId.RIGHT_HIP, JointId.RIGHT_KNEE),
    (JointId.RIGHT_KNEE, JointId.RIGHT_ANKLE),
    (JointId.LEFT_SHOULDER, JointId.RIGHT_SHOULDER),
    (JointId.LEFT_HIP, JointId.RIGHT_HIP),
    (JointId.LEFT_SHOULDER, JointId.LEFT_HIP),
    (JointId.RIGHT_SHOULDER, JointId.RIGHT_HIP),
)

Color = Tuple[int, int, int]

__all__ = [
    "RenderResult",
    "RenderSurface",
    "SKELETON_EDGES",
    "SkeletonRenderer",
    "composite",
]


class RenderSurface:
    """BGRA drawing surface whose backing store is ``css size x device pixel ratio``."""

    def __init__(self, css_width: float, css_height: float, device_pixel_ratio: float = 1.0) -> None:
        self.css_size: Tuple[float, float] = (css_width, css_height)
        self.device_pixel_ratio = device_pixel_ratio
        self.reallocations = 0
        width, height = backing_size(self.css_size, device_pixel_ratio)
        self.image = np.zeros((height, width, 4), dtype=np.uint8)

    @property
    def size(self) -> Size:
        return self.image.shape[1], self.image.shape[0]

    def resize(self, css_width: float, css_height: float, device_pixel_ratio: Optional[float] = None) -> bool:
        """Track a new on-screen size; the store is only reallocated when its pixel size changes."""
        if device_pixel_ratio is not None:
            self.device_pixel_ratio = device_pixel_ratio
        self.css_size = (css_width, css_height)
        width, height = backing_size(self.css_size, self.device_pixel_ratio)
        if (width, height) == self.size:
            return False
        self.image = np.zeros((height, width, 4), dtype=np.uint8)
        self.reallocations += 1
        logger.debug("Render surface resized to {}x{} (dpr={})", width, height, self.device_pixel_ratio)
        return True

    def clear(self) -> None:
        self.image[:] = 0


@dataclass
class RenderResult:
    edges: List[Tuple[JointId, JointId]] = field(default_factory=list)
    joints: List[JointId] = field(default_factory=list)


class SkeletonRenderer:
    def __init__(
        self,
        confidence_threshold: float = 0.3,
        line_width: float = 2,
        joint_radius: float = 3,
        line_color: Sequence[int] = (255, 255, 255),
        joint_color: Sequence[int] = (255, 255, 255),
        highlight_color: Sequence[int] = (72, 199, 239),
    ) -> None:
        self.confidence_threshold = confidence_threshold
        self.line_width = line_width
        self.joint_radius = joint_radius
        self.line_color = _bgra(line_color)
        self.joint_color = _bgra(joint_color)
        self.highlight_color = _bgra(highlight_color)

    def render(
        self,
        surface: RenderSurface,
        pose: Optional[Pose],
        highlight: Iterable[JointId] = (),
    ) -> RenderResult:
        surface.clear()
        result = RenderResult()
        if pose is None:
            return result
        highlighted = set(highlight)
        by_name = {kp.name: kp for kp in pose}
        scale = surface.device_pixel_ratio
        thickness = max(1, int(round(self.line_width * scale)))
        radius = max(1, int(round(self.joint_radius * scale)))

        for start_name, end_name in SKELETON_EDGES:
            start = by_name.get(start_name)
            end = by_name.get(end_name)
            if not (self._visible(start) and self._visible(end)):
                continue
            both_primary = start_name in highlighted and end_name in highlighted
            color = self.highlight_color if both_primary else self.line_color
            cv2.line(surface.image, _point(start), _point(end), color, thickness, cv2.LINE_AA)
            result.edges.append((start_name, end_name))

        for kp in pose:
            if not self._visible(kp):
                continue
            cv2.circle(surface.image, _point(kp), radius, self.joint_color, -1, cv2.LINE_AA)
            result.joints.append(kp.name)
        return result

    def _visible(self, kp: Optional[Keypoint]) -> bool:
        return kp is not None and kp.score > self.confidence_threshold


def composite(frame: np.ndarray, surface: RenderSurface) -> np.ndarray:
    """Scale ``frame`` to the surface's backing size and blend the overlay on top."""
    width, height = surface.size
    base = frame
    if base.ndim == 2:
        base = cv2.cvtColor(base, cv2.COLOR_GRAY2BGR)
    if base.shape[1] != width or base.shape[0] != height:
        base = cv2.resize(base, (width, height))
    alpha = surface.image[:, :, 3:4].astype(np.float32) / 255.0
    blended = base[:, :, :3].astype(np.float32) * (1.0 - alpha) + surface.image[:, :, :3].astype(np.float32) * alpha
    return blended.astype(np.uint8)


def _bgra(color: Sequence[int]) -> Tuple[int, int, int, int]:
    b, g, r = (int(c) for c in color[:3])
    return b, g, r, 255


def _point(kp: Keypoint) -> Tuple[int, int]:
    return int(round(kp.x)), int(round(kp.y))
