from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from poseoverlay.logic.feedback import FeedbackBoard, FeedbackThrottle
from poseoverlay.logic.metrics import MetricBoard, MetricsEngine, SessionContext
from poseoverlay.playback.scheduler import FrameScheduler, MediaSource
from poseoverlay.pose.base import KeypointSource, build_keypoint_source
from poseoverlay.ui.audio_feedback import AudioFeedbackManager
from poseoverlay.ui.hud import HudOverlay
from poseoverlay.ui.overlay import RenderSurface, SkeletonRenderer, composite
from poseoverlay.utils.config import RuntimeConfig, SportCatalog, SportId


@dataclass
class OverlayPipeline:
    """The wired-up scheduler, sinks and display helpers for one viewer."""

    scheduler: FrameScheduler
    engine: MetricsEngine
    catalog: SportCatalog
    metric_board: MetricBoard
    feedback_board: FeedbackBoard
    surface: RenderSurface
    display_width: int = 0
    hud: Optional[HudOverlay] = None
    audio: Optional[AudioFeedbackManager] = None

    @property
    def context(self) -> SessionContext:
        return self.scheduler.context

    def open(self, source: MediaSource) -> None:
        self.scheduler.assign_source(source)

    def select_sport(self, sport: SportId | str) -> SessionContext:
        context = self.engine.start_session(sport)
        self.scheduler.set_context(context)
        return context

    def fit_display(self, css_width: float, css_height: float, device_pixel_ratio: Optional[float] = None) -> bool:
        return self.surface.resize(css_width, css_height, device_pixel_ratio)

    def fit_to_source(self, intrinsic_size: Tuple[int, int]) -> None:
        width, height = intrinsic_size
        if width <= 0 or height <= 0:
            return
        css_width = self.display_width or width
        self.fit_display(css_width, css_width * height / width)

    def compose(self) -> Optional[np.ndarray]:
        """Current frame with the skeleton layer and HUD on top, at backing-store size."""
        source = self.scheduler.source
        frame = source.current_frame() if source is not None else None
        if frame is None:
            return None
        view = composite(frame, self.surface)
        if self.hud is not None:
            header = [
                f"{self.context.profile.title} | {self.scheduler.state.value}",
                f"Status: {self.scheduler.status}",
            ]
            self.hud.draw(view, header, self.metric_board.formatted(), self.feedback_board.events())
        return view

    def snapshot(self) -> Dict[str, Any]:
        session = self.context.metrics
        stats = self.scheduler.stats
        return {
            "sport": self.context.sport.value,
            "state": self.scheduler.state.value,
            "status": self.scheduler.status,
            "position": self.scheduler.position,
            "metrics": self.metric_board.as_dict(),
            "feedback": [
                {"severity": e.severity.value, "message": e.message, "timestamp": e.timestamp}
                for e in self.feedback_board.events()
            ],
            "repCount": session.rep_count,
            "overallScore": session.overall_score,
            "stats": {
                "ticks": stats.ticks,
                "skipped": stats.skipped,
                "discarded": stats.discarded,
                "failures": stats.failures,
            },
        }

    def close(self) -> None:
        source = self.scheduler.source
        self.scheduler.close()
        close_source = getattr(source, "close", None)
        if close_source is not None:
            close_source()
        self.scheduler.estimator.close()
        if self.audio is not None:
            self.audio.stop()


def build_pipeline(
    runtime_cfg: RuntimeConfig,
    catalog: SportCatalog,
    sport: Optional[SportId | str] = None,
    estimator: Optional[KeypointSource] = None,
    enable_audio: bool = True,
    show_hud: Optional[bool] = None,
    clock: Callable[[], float] = time.monotonic,
) -> OverlayPipeline:
    display_cfg = runtime_cfg.display
    render_cfg = runtime_cfg.render
    metrics_cfg = runtime_cfg.metrics
    feedback_cfg = runtime_cfg.feedback
    audio_cfg = runtime_cfg.audio
    sampling_cfg = runtime_cfg.sampling

    audio: Optional[AudioFeedbackManager] = None
    if enable_audio and bool(audio_cfg.get("enable_beep", True)):
        audio = AudioFeedbackManager(
            enable_beep=True,
            beep_volume=float(audio_cfg.get("beep_volume", 0.6)),
        )
    feedback_board = FeedbackBoard(capacity=int(feedback_cfg.get("capacity", 6)))
    throttle = FeedbackThrottle(
        min_interval=float(feedback_cfg.get("min_interval", 1.1)),
        board=feedback_board,
        on_accept=audio.on_feedback if audio is not None else None,
        scope=str(feedback_cfg.get("scope", "shared")),
    )
    metric_board = MetricBoard()
    engine = MetricsEngine(
        catalog,
        throttle,
        board=metric_board,
        min_confidence=float(metrics_cfg.get("min_confidence", 0.3)),
        asymmetry_good_pct=float(metrics_cfg.get("asymmetry_good_pct", 15.0)),
    )
    context = engine.start_session(sport or metrics_cfg.get("default_sport", SportId.SQUAT.value))

    display_width = int(display_cfg.get("width", 0) or 0)
    surface = RenderSurface(
        display_width or 640,
        (display_width or 640) * 0.75,
        float(display_cfg.get("device_pixel_ratio", 1.0)),
    )
    renderer = build_renderer(render_cfg)
    if estimator is None:
        estimator = build_keypoint_source(runtime_cfg.pose)

    scheduler = FrameScheduler(
        estimator,
        surface,
        renderer,
        engine,
        context,
        tick_interval=float(sampling_cfg.get("tick_interval", 1 / 60)),
        use_frame_callbacks=bool(sampling_cfg.get("use_frame_callbacks", True)),
        default_frame_rate=float(runtime_cfg.source.get("default_frame_rate", 30.0)),
        clock=clock,
        on_status=_log_status,
    )
    if show_hud is None:
        show_hud = bool(display_cfg.get("show_hud", True))
    pipeline = OverlayPipeline(
        scheduler=scheduler,
        engine=engine,
        catalog=catalog,
        metric_board=metric_board,
        feedback_board=feedback_board,
        surface=surface,
        display_width=display_width,
        hud=HudOverlay() if show_hud else None,
        audio=audio,
    )
    scheduler.on_metadata = pipeline.fit_to_source
    return pipeline


def _log_status(status: str) -> None:
    logger.info("Status: {}", status)


def sport_labels(catalog: SportCatalog) -> List[Dict[str, Any]]:
    return [
        {"id": profile.sport.value, "title": profile.title, "metrics": list(profile.labels)}
        for profile in catalog
    ]


def build_renderer(render_cfg: Dict[str, Any]) -> SkeletonRenderer:
    return SkeletonRenderer(
        confidence_threshold=float(render_cfg.get("confidence_threshold", 0.3)),
        line_width=float(render_cfg.get("line_width", 2)),
        joint_radius=float(render_cfg.get("joint_radius", 3)),
        line_color=tuple(render_cfg.get("line_color", (255, 255, 255))),
        joint_color=tuple(render_cfg.get("joint_color", (255, 255, 255))),
    )
