from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    SEEKING = "seeking"
    ENDED = "ended"
    ERRORED = "errored"


class MediaEventType(str, Enum):
    SOURCE = "source"
    LOADEDMETADATA = "loadedmetadata"
    PLAY = "play"
    PAUSE = "pause"
    SEEKING = "seeking"
    SEEKED = "seeked"
    ENDED = "ended"
    STALLED = "stalled"
    WAITING = "waiting"
    ERROR = "error"
    TIMEUPDATE = "timeupdate"


class MediaErrorCode(IntEnum):
    """Same numbering as the HTML ``MediaError`` codes."""

    ABORTED = 1
    NETWORK = 2
    DECODE = 3
    SRC_NOT_SUPPORTED = 4


@dataclass(frozen=True)
class MediaEvent:
    kind: MediaEventType
    error_code: Optional[int] = None
    message: str = ""


_SEEKABLE = (
    PlaybackState.READY,
    PlaybackState.PLAYING,
    PlaybackState.PAUSED,
    PlaybackState.ENDED,
    PlaybackState.SEEKING,
)
_PLAYABLE = (PlaybackState.READY, PlaybackState.PAUSED, PlaybackState.ENDED)


def next_state(state: PlaybackState, kind: MediaEventType) -> Optional[PlaybackState]:
    """State reached from ``state`` on an event of ``kind``, or ``None`` if the event is ignored there."""
    if kind is MediaEventType.SOURCE:
        return PlaybackState.LOADING
    if kind is MediaEventType.ERROR:
        return None if state is PlaybackState.IDLE else PlaybackState.ERRORED
    if state is PlaybackState.ERRORED:
        return None
    if kind is MediaEventType.LOADEDMETADATA:
        return PlaybackState.READY if state is PlaybackState.LOADING else None
    if kind is MediaEventType.PLAY:
        return PlaybackState.PLAYING if state in _PLAYABLE else None
    if kind is MediaEventType.PAUSE:
        return PlaybackState.PAUSED if state is PlaybackState.PLAYING else None
    if kind is MediaEventType.SEEKING:
        return PlaybackState.SEEKING if state in _SEEKABLE else None
    if kind is MediaEventType.SEEKED:
        return PlaybackState.READY if state is PlaybackState.SEEKING else None
    if kind is MediaEventType.ENDED:
        return PlaybackState.ENDED if state is PlaybackState.PLAYING else None
    return None
