from __future__ import annotations

from typing import Any, Dict, List, Union

import cv2

from poseoverlay.media.video_source import CaptureMediaSource


def enumerate_cameras(max_devices: int = 6) -> List[int]:
    indices: List[int] = []
    for idx in range(max_devices):
        cap = cv2.VideoCapture(idx)
        if cap.isOpened():
            indices.append(idx)
        cap.release()
    return indices


def parse_source_target(value: str) -> Union[int, str]:
    """Digits select a camera index; anything else is a file path or stream URL."""
    return int(value) if value.isdigit() else value


def build_media_source(target: Union[int, str], source_cfg: Dict[str, Any]) -> CaptureMediaSource:
    live = isinstance(target, int)
    return CaptureMediaSource(
        target,
        live=live,
        mirror=live and bool(source_cfg.get("mirror_live", True)),
        default_frame_rate=float(source_cfg.get("default_frame_rate", 30.0)),
        timeupdate_interval=float(source_cfg.get("timeupdate_interval", 0.25)),
    )
