from __future__ import annotations

import asyncio
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from poseoverlay.playback.state import MediaErrorCode, MediaEvent, MediaEventType

Listener = Callable[[MediaEvent], None]


class CameraAccessError(RuntimeError):
    """The camera could not be opened: access refused, device busy or missing."""


class CaptureMediaSource:
    """A file or camera behind ``cv2.VideoCapture`` that behaves like a video element.

    Transport calls emit ``play``/``pause``/``seeking`` synchronously; a seek
    lands asynchronously and is announced with ``seeked``. All capture reads
    go through one worker thread, so decoding never blocks the event loop
    and never races a seek.
    """

    def __init__(
        self,
        target: int | str,
        live: bool = False,
        mirror: bool = False,
        default_frame_rate: float = 30.0,
        timeupdate_interval: float = 0.25,
        stall_after: float = 1.0,
        capture_factory: Callable[[Any], Any] = cv2.VideoCapture,
    ) -> None:
        self.target = target
        self.live = live
        self.mirror = mirror
        self.default_frame_rate = default_frame_rate
        self.timeupdate_interval = timeupdate_interval
        self.stall_after = stall_after
        self._capture_factory = capture_factory
        self._cap: Any = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._listeners: List[Listener] = []
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 1
        self._frame: Optional[np.ndarray] = None
        self._size: Tuple[int, int] = (0, 0)
        self._fps: Optional[float] = None
        self._frame_count = 0
        self._frame_index = 0
        self._playing = False
        self._ended = False
        self._decode_task: Optional[asyncio.Task] = None
        self._seek_task: Optional[asyncio.Task] = None
        self._last_timeupdate = 0.0

    # events

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: MediaEventType, error_code: Optional[int] = None, message: str = "") -> None:
        event = MediaEvent(kind=kind, error_code=error_code, message=message)
        for listener in list(self._listeners):
            listener(event)

    # properties

    @property
    def intrinsic_size(self) -> Tuple[int, int]:
        return self._size

    @property
    def frame_rate(self) -> Optional[float]:
        return self._fps

    @property
    def duration(self) -> float:
        if self.live or self._frame_count <= 0:
            return math.inf
        return self._frame_count / self._rate()

    @property
    def current_time(self) -> float:
        return self._frame_index / self._rate()

    @property
    def paused(self) -> bool:
        return not self._playing

    @property
    def ended(self) -> bool:
        return self._ended

    def current_frame(self) -> Optional[np.ndarray]:
        return self._frame

    def _rate(self) -> float:
        return self._fps or self.default_frame_rate

    # lifecycle

    def load(self) -> None:
        cap = self._capture_factory(self.target)
        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            if self.live:
                message = f"cannot open camera {self.target}"
                self._emit(MediaEventType.ERROR, MediaErrorCode.ABORTED, message)
                raise CameraAccessError(
                    f"Unable to open camera {self.target}. Check that camera access is allowed and the device is free."
                )
            self._emit(MediaEventType.ERROR, MediaErrorCode.SRC_NOT_SUPPORTED, f"cannot open {self.target}")
            return
        self._cap = cap
        fps = cap.get(cv2.CAP_PROP_FPS)
        self._fps = float(fps) if fps and math.isfinite(fps) and fps > 0 else None
        count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
        self._frame_count = int(count) if count and math.isfinite(count) and count > 0 else 0
        ok, frame = cap.read()
        if not ok or frame is None:
            self._emit(MediaEventType.ERROR, MediaErrorCode.DECODE, "no decodable frames")
            return
        self._frame = self._prepare(frame)
        self._size = (self._frame.shape[1], self._frame.shape[0])
        self._frame_index = 0
        self._ended = False
        logger.info(
            "Opened {} ({}x{}, {} fps, {} frames)",
            self.target,
            self._size[0],
            self._size[1],
            self._fps or "unknown",
            self._frame_count or "live",
        )
        self._emit(MediaEventType.LOADEDMETADATA)

    def close(self) -> None:
        self._playing = False
        self._stop_decoding()
        if self._seek_task is not None:
            self._seek_task.cancel()
            self._seek_task = None
        self._callbacks.clear()
        if self._cap is not None:
            self._executor.submit(self._cap.release)
            self._cap = None
        self._executor.shutdown(wait=False)

    # transport

    def play(self) -> None:
        if self._cap is None or self._playing:
            return
        self._playing = True
        if self._ended and not self.live:
            self._ended = False
            self._frame_index = -1
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        self._emit(MediaEventType.PLAY)
        if self._seek_task is None:
            self._start_decoding()

    def pause(self) -> None:
        if not self._playing:
            return
        self._playing = False
        self._stop_decoding()
        self._emit(MediaEventType.PAUSE)

    def seek(self, seconds: float) -> None:
        if self._cap is None:
            return
        if self.live:
            logger.warning("Live capture cannot seek")
            return
        self._stop_decoding()
        if self._seek_task is not None:
            self._seek_task.cancel()
        self._emit(MediaEventType.SEEKING)
        self._seek_task = asyncio.ensure_future(self._complete_seek(seconds))

    async def _complete_seek(self, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        index = max(0, int(round(seconds * self._rate())))
        if self._frame_count:
            index = min(index, self._frame_count - 1)
        ok, frame = await loop.run_in_executor(self._executor, self._read_at, index)
        self._seek_task = None
        if not ok or frame is None:
            self._emit(MediaEventType.ERROR, MediaErrorCode.DECODE, f"seek to {seconds:.3f}s failed")
            return
        self._frame = self._prepare(frame)
        self._frame_index = index
        self._ended = False
        self._emit(MediaEventType.SEEKED)
        if self._playing:
            self._emit(MediaEventType.PLAY)
            self._start_decoding()

    def _read_at(self, index: int) -> Tuple[bool, Optional[np.ndarray]]:
        self._cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        return self._cap.read()

    # frame notifications

    def request_frame_callback(self, callback: Callable[[], None]) -> Optional[int]:
        handle = self._next_handle
        self._next_handle += 1
        self._callbacks[handle] = callback
        return handle

    def cancel_frame_callback(self, handle: int) -> None:
        self._callbacks.pop(handle, None)

    def _fire_frame_callbacks(self) -> None:
        callbacks, self._callbacks = self._callbacks, {}
        for callback in callbacks.values():
            callback()

    # decoding

    def _start_decoding(self) -> None:
        if self._decode_task is None or self._decode_task.done():
            self._decode_task = asyncio.ensure_future(self._decode_loop())

    def _stop_decoding(self) -> None:
        if self._decode_task is not None and not self._decode_task.done():
            self._decode_task.cancel()
        self._decode_task = None

    async def _decode_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = 1.0 / self._rate()
        next_due = loop.time() + interval
        while self._playing:
            delay = next_due - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            next_due = max(next_due + interval, loop.time())
            started = loop.time()
            ok, frame = await loop.run_in_executor(self._executor, self._cap.read)
            if not self._playing:
                break
            if loop.time() - started > self.stall_after:
                self._emit(MediaEventType.STALLED)
            if not ok or frame is None:
                self._playing = False
                if self.live:
                    self._emit(MediaEventType.ERROR, MediaErrorCode.NETWORK, "camera stopped delivering frames")
                else:
                    self._ended = True
                    self._emit(MediaEventType.ENDED)
                break
            self._frame = self._prepare(frame)
            self._frame_index += 1
            self._fire_frame_callbacks()
            if loop.time() - self._last_timeupdate >= self.timeupdate_interval:
                self._last_timeupdate = loop.time()
                self._emit(MediaEventType.TIMEUPDATE)

    def _prepare(self, frame: np.ndarray) -> np.ndarray:
        return cv2.flip(frame, 1) if self.mirror else frame
