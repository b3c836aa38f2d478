from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Protocol

import numpy as np
from loguru import logger

from poseoverlay.utils.structures import Pose


class EstimationError(RuntimeError):
    pass


class KeypointSource(Protocol):
    async def estimate(self, frame: np.ndarray) -> Optional[Pose]:
        ...

    def close(self) -> None:
        ...


class BlockingEstimator(Protocol):
    def estimate(self, frame: np.ndarray) -> Optional[Pose]:
        ...

    def close(self) -> None:
        ...


class ExecutorKeypointSource:
    """Awaitable wrapper running a blocking model on a single worker thread.

    One worker means model calls are serialized even if an abandoned request
    is still running when the next one is submitted.
    """

    def __init__(self, estimator: BlockingEstimator) -> None:
        self.estimator = estimator
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-estimator")
        self._closed = False

    async def estimate(self, frame: np.ndarray) -> Optional[Pose]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self.estimator.estimate, frame)
        except EstimationError:
            raise
        except Exception as exc:
            raise EstimationError(f"{type(self.estimator).__name__} failed: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # queued behind any running estimate on the same worker
        self._executor.submit(self.estimator.close)
        self._executor.shutdown(wait=False)


def build_keypoint_source(pose_cfg: Dict[str, Any]) -> ExecutorKeypointSource:
    backend = str(pose_cfg.get("backend", "mediapipe")).lower()
    if backend == "mediapipe":
        from poseoverlay.pose.mediapipe_pose import MediaPipeKeypointEstimator

        mp_cfg = pose_cfg.get("mediapipe", {}) or {}
        estimator: BlockingEstimator = MediaPipeKeypointEstimator(
            model_complexity=int(mp_cfg.get("model_complexity", 1)),
            smooth_landmarks=bool(mp_cfg.get("smooth_landmarks", True)),
            min_detection_confidence=float(mp_cfg.get("min_detection_confidence", 0.5)),
            min_tracking_confidence=float(mp_cfg.get("min_tracking_confidence", 0.5)),
        )
    elif backend == "yolo":
        from poseoverlay.pose.yolo_pose import YoloKeypointEstimator

        yolo_cfg = pose_cfg.get("yolo", {}) or {}
        estimator = YoloKeypointEstimator(
            weights_path=str(yolo_cfg.get("weights", "yolov8n-pose.pt")),
            conf_threshold=float(yolo_cfg.get("conf_threshold", 0.35)),
            device=str(yolo_cfg.get("device", "cpu")),
        )
    else:
        raise ValueError(f"Unsupported pose backend: {backend}")
    logger.info("Keypoint source ready: {}", backend)
    return ExecutorKeypointSource(estimator)
