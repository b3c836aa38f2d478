from __future__ import annotations

from typing import Optional

import numpy as np
from ultralytics import YOLO

from poseoverlay.utils.structures import COCO_JOINTS, Keypoint, Pose


class YoloKeypointEstimator:
    """Single-subject keypoints from a YOLO-pose model (COCO 17-point order)."""

    def __init__(self, weights_path: str, conf_threshold: float, device: str) -> None:
        self.model = YOLO(weights_path)
        self.model.to(device)
        self.conf_threshold = conf_threshold
        self.device = device

    def estimate(self, frame: np.ndarray) -> Optional[Pose]:
        results = self.model.predict(
            source=frame,
            conf=self.conf_threshold,
            max_det=5,
            device=self.device,
            verbose=False,
        )
        if not results:
            return None
        result = results[0]
        keypoints = result.keypoints
        if keypoints is None or keypoints.xy is None or len(keypoints.xy) == 0:
            return None
        subject = 0
        boxes = result.boxes
        if boxes is not None and boxes.conf is not None and len(boxes.conf) > 1:
            subject = int(boxes.conf.cpu().numpy().argmax())
        xy = keypoints.xy[subject].cpu().numpy()
        conf = keypoints.conf[subject].cpu().numpy() if keypoints.conf is not None else None
        h, w = frame.shape[:2]
        points = tuple(
            Keypoint(
                name=joint,
                x=float(xy[idx][0]),
                y=float(xy[idx][1]),
                confidence=float(conf[idx]) if conf is not None else None,
            )
            for idx, joint in enumerate(COCO_JOINTS)
            if idx < len(xy)
        )
        return Pose(keypoints=points, image_size=(w, h))

    def close(self) -> None:
        self.model = None
