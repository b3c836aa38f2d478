from __future__ import annotations

import asyncio
import base64
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from loguru import logger

from poseoverlay.media.camera import build_media_source, enumerate_cameras, parse_source_target
from poseoverlay.playback.pipeline import OverlayPipeline, build_pipeline, sport_labels
from poseoverlay.playback.scheduler import MediaSource
from poseoverlay.pose.base import KeypointSource
from poseoverlay.utils.config import (
    DEFAULT_RUNTIME_CONFIG,
    DEFAULT_SPORTS_CONFIG,
    RuntimeConfig,
    SportCatalog,
    SportId,
    load_runtime_config,
    load_sport_profiles,
)
from poseoverlay.utils.profiler import RateMeter

SourceFactory = Callable[[Union[int, str], Dict[str, Any]], MediaSource]
EstimatorFactory = Callable[[RuntimeConfig], KeypointSource]
TRANSPORT_ACTIONS = ("play", "pause", "step", "seek")


@dataclass
class SessionConfig:
    source: Optional[str] = None
    camera_index: int = -1
    sport: Optional[str] = None
    autoplay: bool = True


class SessionAlreadyRunningError(RuntimeError):
    pass


class SessionNotRunningError(RuntimeError):
    pass


class OverlaySession:
    """One overlay pipeline on the server's event loop, streamed to websocket clients."""

    def __init__(
        self,
        runtime_config_path: Path | str = DEFAULT_RUNTIME_CONFIG,
        sports_config_path: Path | str = DEFAULT_SPORTS_CONFIG,
        source_factory: SourceFactory = build_media_source,
        estimator_factory: Optional[EstimatorFactory] = None,
    ) -> None:
        self.runtime_config_path = Path(runtime_config_path)
        self.sports_config_path = Path(sports_config_path)
        self._source_factory = source_factory
        self._estimator_factory = estimator_factory
        self._lock = asyncio.Lock()
        self._runtime_cfg: Optional[RuntimeConfig] = None
        self._catalog: Optional[SportCatalog] = None
        self._pipeline: Optional[OverlayPipeline] = None
        self._frame_queue: Optional[asyncio.Queue[Dict[str, object]]] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._stream_rate = RateMeter()
        self._source_label: Optional[str] = None
        self._message = "idle"

    # configuration

    def runtime_config(self) -> RuntimeConfig:
        if self._runtime_cfg is None:
            self._runtime_cfg = load_runtime_config(self.runtime_config_path)
        return self._runtime_cfg

    def catalog(self) -> SportCatalog:
        if self._catalog is None:
            self._catalog = load_sport_profiles(self.sports_config_path)
        return self._catalog

    def list_sports(self) -> List[Dict[str, Any]]:
        return sport_labels(self.catalog())

    # lifecycle

    async def start(self, config: SessionConfig) -> Dict[str, object]:
        async with self._lock:
            if self._pipeline is not None:
                raise SessionAlreadyRunningError("A session is already running")
            runtime_cfg = self.runtime_config()
            target = self._resolve_target(config)
            estimator = self._estimator_factory(runtime_cfg) if self._estimator_factory is not None else None
            pipeline = build_pipeline(
                runtime_cfg,
                self.catalog(),
                sport=config.sport,
                estimator=estimator,
                enable_audio=False,
            )
            try:
                pipeline.open(self._source_factory(target, runtime_cfg.source))
            except Exception:
                pipeline.close()
                raise
            if config.autoplay:
                pipeline.scheduler.play()
            self._pipeline = pipeline
            self._source_label = str(target)
            self._message = "session running"
            self._frame_queue = asyncio.Queue(maxsize=2)
            self._stream_rate = RateMeter()
            server_cfg = runtime_cfg.server
            self._stream_task = asyncio.ensure_future(
                self._stream_loop(
                    pipeline,
                    self._frame_queue,
                    int(server_cfg.get("jpeg_quality", 80)),
                    float(server_cfg.get("stream_hz", 15)),
                )
            )
            logger.info("Session started: source={} sport={}", target, pipeline.context.sport.value)
            return self.get_status()

    async def stop(self) -> None:
        async with self._lock:
            pipeline = self._pipeline
            if pipeline is None:
                raise SessionNotRunningError("No active session")
            if self._stream_task is not None:
                self._stream_task.cancel()
                self._stream_task = None
            snapshot = pipeline.snapshot()
            pipeline.close()
            self._pipeline = None
            self._message = "session stopped"
            queue = self._frame_queue
            if queue is not None:
                await self._enqueue_frame(queue, {"running": False, "message": self._message})
            self._frame_queue = None
            logger.info("Session stopped | sport={} reps={}", snapshot["sport"], snapshot["repCount"])

    def is_running(self) -> bool:
        return self._pipeline is not None

    # controls

    def transport(self, action: str, frames: int = 1, seconds: Optional[float] = None) -> Dict[str, object]:
        scheduler = self._require().scheduler
        if action == "play":
            scheduler.play()
        elif action == "pause":
            scheduler.pause()
        elif action == "step":
            scheduler.step(frames)
        elif action == "seek":
            if seconds is None:
                raise ValueError("seek needs a target time in seconds")
            scheduler.seek(seconds)
        else:
            raise ValueError(f"Unsupported transport action: {action}")
        return self.get_status()

    def set_sport(self, sport: SportId | str) -> Dict[str, object]:
        context = self._require().select_sport(sport)
        logger.info("Sport changed to {}", context.profile.title)
        return self.get_status()

    def get_status(self) -> Dict[str, object]:
        status: Dict[str, object] = {"running": self.is_running(), "message": self._message}
        if self._pipeline is not None:
            status.update(self._pipeline.snapshot())
            status["source"] = self._source_label
            status["fps"] = self._stream_rate.get_rate()
        return status

    # streaming

    async def frame_generator(self) -> AsyncGenerator[Dict[str, object], None]:
        queue = self._frame_queue
        if queue is None:
            raise SessionNotRunningError("No streaming session")
        while True:
            payload = await queue.get()
            yield payload
            if not payload.get("running", True):
                break

    async def _stream_loop(
        self,
        pipeline: OverlayPipeline,
        queue: asyncio.Queue[Dict[str, object]],
        jpeg_quality: int,
        stream_hz: float,
    ) -> None:
        interval = 1.0 / max(1.0, stream_hz)
        while True:
            await asyncio.sleep(interval)
            view = pipeline.compose()
            if view is None:
                continue
            try:
                encoded = self._encode_frame(view, jpeg_quality)
            except RuntimeError as exc:
                logger.warning("Dropping frame: {}", exc)
                continue
            self._stream_rate.tick()
            payload: Dict[str, object] = {
                "timestamp": time.time(),
                "frame": encoded,
                "fps": self._stream_rate.get_rate(),
                "running": True,
            }
            payload.update(pipeline.snapshot())
            await self._enqueue_frame(queue, payload)

    @staticmethod
    async def _enqueue_frame(queue: asyncio.Queue[Dict[str, object]], payload: Dict[str, object]) -> None:
        try:
            if queue.full():
                queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        await queue.put(payload)

    @staticmethod
    def _encode_frame(frame: np.ndarray, quality: int = 80) -> str:
        success, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not success:
            raise RuntimeError("failed to encode frame")
        return base64.b64encode(buffer.tobytes()).decode("ascii")

    @staticmethod
    def _resolve_target(config: SessionConfig) -> Union[int, str]:
        source = config.source or os.getenv("CAMERA_SOURCE")
        if source:
            return parse_source_target(source)
        if config.camera_index >= 0:
            return config.camera_index
        cameras = enumerate_cameras()
        return cameras[0] if cameras else 0

    def _require(self) -> OverlayPipeline:
        if self._pipeline is None:
            raise SessionNotRunningError("No active session")
        return self._pipeline


def _config_paths() -> Tuple[Path, Path]:
    return (
        Path(os.getenv("POSEOVERLAY_RUNTIME_CONFIG", str(DEFAULT_RUNTIME_CONFIG))),
        Path(os.getenv("POSEOVERLAY_SPORTS_CONFIG", str(DEFAULT_SPORTS_CONFIG))),
    )


session_manager = OverlaySession(*_config_paths())
