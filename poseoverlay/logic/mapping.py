from __future__ import annotations

from typing import Tuple

from poseoverlay.utils.structures import Keypoint, Pose

Size = Tuple[int, int]


def backing_size(css_size: Tuple[float, float], device_pixel_ratio: float = 1.0) -> Size:
    """Pixel size of a drawing surface shown at ``css_size`` on a display with the given DPR."""
    ratio = device_pixel_ratio if device_pixel_ratio > 0 else 1.0
    width, height = css_size
    return max(1, int(round(width * ratio))), max(1, int(round(height * ratio)))


def map_pose(pose: Pose, src_size: Size, dst_size: Size) -> Pose:
    """Rescale ``pose`` from the source's intrinsic pixels into destination pixels.

    Pure: the input pose is left untouched and identical inputs give identical
    outputs, so a paused frame re-renders to exactly the same skeleton.
    Missing confidences come out as 1.0.
    """
    src_w, src_h = src_size
    dst_w, dst_h = dst_size
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"source size must be positive, got {src_size}")
    sx = dst_w / src_w
    sy = dst_h / src_h
    keypoints = tuple(
        Keypoint(name=kp.name, x=kp.x * sx, y=kp.y * sy, confidence=kp.score)
        for kp in pose.keypoints
    )
    return Pose(keypoints=keypoints, image_size=(int(dst_w), int(dst_h)), timestamp=pose.timestamp)
