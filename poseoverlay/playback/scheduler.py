from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional, Protocol, Tuple

import numpy as np
from loguru import logger

from poseoverlay.logic.mapping import map_pose
from poseoverlay.logic.metrics import MetricsEngine, SessionContext
from poseoverlay.playback.state import MediaEvent, MediaEventType, PlaybackState, next_state
from poseoverlay.pose.base import KeypointSource
from poseoverlay.ui.overlay import RenderSurface, SkeletonRenderer
from poseoverlay.utils.structures import Pose, TickAnalysis

DEFAULT_FRAME_RATE = 30.0
SEEK_END_EPSILON = 1e-3


class MediaSource(Protocol):
    """What the scheduler needs from a video element-like source.

    Transport calls (``play``/``pause``/``seek``) emit their events to
    subscribers synchronously; ``seeked`` may follow later.
    """

    @property
    def intrinsic_size(self) -> Tuple[int, int]:
        ...

    @property
    def duration(self) -> float:
        ...

    @property
    def current_time(self) -> float:
        ...

    @property
    def frame_rate(self) -> Optional[float]:
        ...

    def load(self) -> None:
        ...

    def current_frame(self) -> Optional[np.ndarray]:
        ...

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...

    def seek(self, seconds: float) -> None:
        ...

    def subscribe(self, listener: Callable[[MediaEvent], None]) -> None:
        ...

    def unsubscribe(self, listener: Callable[[MediaEvent], None]) -> None:
        ...

    def request_frame_callback(self, callback: Callable[[], None]) -> Optional[int]:
        ...

    def cancel_frame_callback(self, handle: int) -> None:
        ...


@dataclass
class SchedulerStats:
    ticks: int = 0
    skipped: int = 0
    renders: int = 0
    applied: int = 0
    discarded: int = 0
    failures: int = 0


class FrameScheduler:
    """Keeps pose sampling in step with a media source's play/pause/seek timeline.

    Every media event goes through :meth:`handle_event`, which advances the
    :class:`PlaybackState` and performs the side effects of the transition.
    While playing, one sampling tick fires per new frame (or per timer tick
    when the source cannot notify frames) and a tick is skipped while the
    previous estimation is unresolved. Leaving ``PLAYING`` bumps a generation
    counter; results from an older generation are dropped, never drawn.
    """

    def __init__(
        self,
        estimator: KeypointSource,
        surface: RenderSurface,
        renderer: SkeletonRenderer,
        engine: MetricsEngine,
        context: SessionContext,
        tick_interval: float = 1 / 60,
        use_frame_callbacks: bool = True,
        default_frame_rate: float = DEFAULT_FRAME_RATE,
        clock: Callable[[], float] = time.monotonic,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.estimator = estimator
        self.surface = surface
        self.renderer = renderer
        self.engine = engine
        self.context = context
        self.tick_interval = tick_interval
        self.use_frame_callbacks = use_frame_callbacks
        self.default_frame_rate = default_frame_rate
        self.clock = clock
        self.on_status = on_status
        self.on_metadata: Optional[Callable[[Tuple[int, int]], None]] = None
        self.source: Optional[MediaSource] = None
        self.stats = SchedulerStats()
        self.status = "idle"
        self.position = 0.0
        self.last_pose: Optional[Pose] = None
        self.last_analysis: Optional[TickAnalysis] = None
        self._state = PlaybackState.IDLE
        self._generation = 0
        self._inflight: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._frame_handle: Optional[int] = None
        self._stepping = False

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def assign_source(self, source: MediaSource) -> None:
        if self.source is not None:
            self._teardown()
            self.source.unsubscribe(self.handle_event)
        self.source = source
        source.subscribe(self.handle_event)
        self.handle_event(MediaEvent(MediaEventType.SOURCE))
        source.load()

    def set_context(self, context: SessionContext) -> None:
        self.context = context
        self.last_analysis = None
        if self._state in (PlaybackState.READY, PlaybackState.PAUSED, PlaybackState.ENDED):
            self._render_once()

    def close(self) -> None:
        self._teardown()
        if self.source is not None:
            self.source.unsubscribe(self.handle_event)
            self.source = None
        self._state = PlaybackState.IDLE

    # transport

    def play(self) -> None:
        if self.source is None or self._state in (PlaybackState.IDLE, PlaybackState.LOADING, PlaybackState.ERRORED):
            return
        self.source.play()

    def pause(self) -> None:
        if self.source is not None:
            self.source.pause()

    def seek(self, seconds: float) -> None:
        if self.source is None or self._state in (PlaybackState.IDLE, PlaybackState.LOADING, PlaybackState.ERRORED):
            return
        self.source.seek(self._clamp_time(seconds))

    def step(self, frames: int = 1) -> bool:
        """Move ``frames`` frames forward (negative: back) from the current position."""
        if self.source is None or self._state in (PlaybackState.IDLE, PlaybackState.LOADING, PlaybackState.ERRORED):
            return False
        if not math.isfinite(self.source.duration):
            # live input cannot seek: a step only freezes the current frame
            self.source.pause()
            return True
        self._stepping = True
        try:
            self.source.pause()
        finally:
            self._stepping = False
        self._teardown()
        rate = self.source.frame_rate or self.default_frame_rate
        target = self._clamp_time(self.source.current_time + frames / rate)
        self.source.seek(target)
        return True

    # transition function

    def handle_event(self, event: MediaEvent) -> bool:
        kind = event.kind
        if kind is MediaEventType.TIMEUPDATE:
            if self.source is not None:
                self.position = self.source.current_time
            return False
        if kind in (MediaEventType.STALLED, MediaEventType.WAITING):
            if self._state is PlaybackState.PLAYING:
                self._set_status("buffering")
            return False

        target = next_state(self._state, kind)
        if target is None:
            logger.debug("Ignoring '{}' while {}", kind.value, self._state.value)
            return False
        previous = self._state
        self._state = target
        logger.debug("Playback {} -> {} on '{}'", previous.value, target.value, kind.value)

        if kind is MediaEventType.SOURCE:
            self._teardown()
            self.last_pose = None
            self.last_analysis = None
            self._set_status("loading")
        elif kind is MediaEventType.LOADEDMETADATA:
            if self.on_metadata is not None and self.source is not None:
                self.on_metadata(self.source.intrinsic_size)
            self._set_status("ready")
            self._render_once()
        elif kind is MediaEventType.PLAY:
            self._start_loop()
            self._set_status("playing")
        elif kind is MediaEventType.PAUSE:
            self._teardown()
            self._set_status("paused")
            if not self._stepping:
                self._render_once()
        elif kind is MediaEventType.SEEKING:
            self._teardown()
            self._set_status("seeking")
        elif kind is MediaEventType.SEEKED:
            if self.source is not None:
                self.position = self.source.current_time
            self._set_status("ready")
            self._render_once()
        elif kind is MediaEventType.ENDED:
            self._teardown()
            self._set_status("ended")
        elif kind is MediaEventType.ERROR:
            self._teardown()
            code = event.error_code if event.error_code is not None else 0
            detail = f": {event.message}" if event.message else ""
            logger.error("Media error (code {}){}", code, detail)
            self._set_status(f"media error (code {code}){detail}")
        return True

    # sampling loop

    def _start_loop(self) -> None:
        self._teardown()
        self._arm(self._generation)

    def _arm(self, generation: int) -> None:
        if self.source is None:
            return
        if self.use_frame_callbacks:
            handle = self.source.request_frame_callback(partial(self._on_tick, generation))
            if handle is not None:
                self._frame_handle = handle
                return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.tick_interval, self._on_tick, generation)

    def _on_tick(self, generation: int) -> None:
        if generation != self._generation or self._state is not PlaybackState.PLAYING:
            return
        self._timer = None
        self._frame_handle = None
        if self._inflight is not None and not self._inflight.done():
            self.stats.skipped += 1
        else:
            frame = self.source.current_frame() if self.source is not None else None
            if frame is not None:
                self.stats.ticks += 1
                self._inflight = asyncio.ensure_future(self._estimate_and_apply(frame, generation))
        self._arm(generation)

    def _teardown(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._frame_handle is not None and self.source is not None:
            self.source.cancel_frame_callback(self._frame_handle)
        self._frame_handle = None
        # an unresolved request from the old generation no longer blocks sampling
        self._inflight = None

    def _render_once(self) -> None:
        if self.source is None:
            return
        frame = self.source.current_frame()
        if frame is None:
            return
        self.stats.renders += 1
        self._inflight = asyncio.ensure_future(self._estimate_and_apply(frame, self._generation))

    async def _estimate_and_apply(self, frame: np.ndarray, generation: int) -> None:
        try:
            raw = await self.estimator.estimate(frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.stats.failures += 1
            logger.warning("Pose estimation failed; skipping tick: {}", exc)
            return
        if generation != self._generation:
            self.stats.discarded += 1
            return
        try:
            self._apply(raw)
        except Exception as exc:
            logger.exception("Failed to apply pose result: {}", exc)
            self._set_status(f"analysis error: {exc}")

    def _apply(self, raw: Optional[Pose]) -> None:
        self.stats.applied += 1
        if raw is None or len(raw) == 0:
            self.renderer.render(self.surface, None)
            self.last_pose = None
            self.last_analysis = None
            self._set_status("no person detected")
            return
        src_size = self.source.intrinsic_size if self.source is not None else raw.image_size
        mapped = map_pose(raw, src_size, self.surface.size)
        self.renderer.render(self.surface, mapped, highlight=self.context.strategy.required())
        self.last_pose = mapped
        self.last_analysis = self.engine.analyze(self.context, mapped, self.clock())
        if self._state is PlaybackState.PLAYING:
            self._set_status("playing")
        else:
            self._set_status(self._state.value)

    def _clamp_time(self, seconds: float) -> float:
        duration = self.source.duration if self.source is not None else math.inf
        upper = max(0.0, duration - SEEK_END_EPSILON) if math.isfinite(duration) else math.inf
        return min(max(0.0, seconds), upper)

    def _set_status(self, status: str) -> None:
        if status == self.status:
            return
        self.status = status
        if self.on_status is not None:
            self.on_status(status)
