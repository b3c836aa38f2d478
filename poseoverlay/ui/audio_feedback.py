from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple

import numpy as np
from loguru import logger

from poseoverlay.utils.structures import FeedbackEvent, Severity

try:
    import simpleaudio as sa
except Exception:  # pragma: no cover - optional dependency in headless deployments
    sa = None  # type: ignore[assignment]

Cue = Literal["success", "alert"]

# frequency (Hz), duration (s)
CUE_TONES: Dict[str, Tuple[int, float]] = {
    "success": (880, 0.12),
    "alert": (440, 0.25),
}


def cue_for(severity: Severity) -> Optional[Cue]:
    if severity is Severity.GOOD:
        return "success"
    if severity in (Severity.WARNING, Severity.ERROR):
        return "alert"
    return None


@dataclass
class ToneEvent:
    cue: str
    stop: bool = False


class AudioFeedbackManager:
    def __init__(self, enable_beep: bool, beep_volume: float, sample_rate: int = 44100) -> None:
        self.enable_beep = enable_beep and sa is not None
        if enable_beep and sa is None:
            logger.warning("simpleaudio is not available; audible cues disabled")
        self.beep_volume = float(max(0.0, min(1.0, beep_volume)))
        self.sample_rate = sample_rate
        self.queue: "queue.Queue[ToneEvent]" = queue.Queue()
        self._stop_event = threading.Event()
        self.worker = threading.Thread(target=self._run, name="audio-cues", daemon=True)
        self.worker.start()

    def on_feedback(self, event: FeedbackEvent) -> None:
        cue = cue_for(event.severity)
        if cue is not None:
            self.enqueue_cue(cue)

    def enqueue_cue(self, cue: Cue) -> None:
        if not self.enable_beep:
            return
        self.queue.put(ToneEvent(cue=cue))

    def stop(self) -> None:
        self._stop_event.set()
        self.queue.put(ToneEvent(cue="", stop=True))
        self.worker.join(timeout=2)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                event = self.queue.get(timeout=0.2)
            except queue.Empty:
                continue
            if event.stop:
                break
            self._play(event.cue)

    def synthesize(self, cue: str) -> np.ndarray:
        freq, duration = CUE_TONES.get(cue, (0, 0.0))
        if freq <= 0 or duration <= 0:
            return np.zeros(0, dtype=np.int16)
        t = np.linspace(0, duration, int(self.sample_rate * duration), False)
        tone = np.sin(freq * 2 * np.pi * t)
        return (tone * (32767 * self.beep_volume)).astype(np.int16)

    def _play(self, cue: str) -> None:
        audio = self.synthesize(cue)
        if audio.size == 0 or sa is None:
            return
        sa.play_buffer(audio, 1, 2, self.sample_rate)
