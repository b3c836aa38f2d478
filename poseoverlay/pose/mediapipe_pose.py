from __future__ import annotations

from typing import Dict, Optional

import cv2
import numpy as np
import mediapipe as mp

from poseoverlay.utils.structures import JointId, Keypoint, Pose

# BlazePose landmark index for each joint we track
MEDIAPIPE_INDEX: Dict[JointId, int] = {
    JointId.NOSE: 0,
    JointId.LEFT_EYE: 2,
    JointId.RIGHT_EYE: 5,
    JointId.LEFT_EAR: 7,
    JointId.RIGHT_EAR: 8,
    JointId.LEFT_SHOULDER: 11,
    JointId.RIGHT_SHOULDER: 12,
    JointId.LEFT_ELBOW: 13,
    JointId.RIGHT_ELBOW: 14,
    JointId.LEFT_WRIST: 15,
    JointId.RIGHT_WRIST: 16,
    JointId.LEFT_HIP: 23,
    JointId.RIGHT_HIP: 24,
    JointId.LEFT_KNEE: 25,
    JointId.RIGHT_KNEE: 26,
    JointId.LEFT_ANKLE: 27,
    JointId.RIGHT_ANKLE: 28,
}


class MediaPipeKeypointEstimator:
    def __init__(
        self,
        model_complexity: int,
        smooth_landmarks: bool,
        min_detection_confidence: float,
        min_tracking_confidence: float,
    ) -> None:
        self.pose = mp.solutions.pose.Pose(
            model_complexity=model_complexity,
            smooth_landmarks=smooth_landmarks,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def estimate(self, frame: np.ndarray) -> Optional[Pose]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        result = self.pose.process(rgb)
        if not result.pose_landmarks:
            return None
        h, w = frame.shape[:2]
        landmarks = result.pose_landmarks.landmark
        keypoints = tuple(
            Keypoint(
                name=joint,
                x=float(landmarks[idx].x * w),
                y=float(landmarks[idx].y * h),
                confidence=float(np.clip(landmarks[idx].visibility, 0.0, 1.0)),
            )
            for joint, idx in MEDIAPIPE_INDEX.items()
        )
        return Pose(keypoints=keypoints, image_size=(w, h))

    def close(self) -> None:
        self.pose.close()
