from __future__ import annotations

from collections import deque
from typing import Callable, Deque, Dict, Hashable, List, Optional

from loguru import logger

from poseoverlay.utils.structures import FeedbackEvent, FeedbackRequest

THROTTLE_SCOPES = ("shared", "severity", "topic")


class FeedbackBoard:
    """Most recent feedback first; the oldest entry falls off once full."""

    def __init__(self, capacity: int = 6) -> None:
        self.capacity = max(1, capacity)
        self._events: Deque[FeedbackEvent] = deque(maxlen=self.capacity)

    def push(self, event: FeedbackEvent) -> None:
        self._events.appendleft(event)

    def events(self) -> List[FeedbackEvent]:
        return list(self._events)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class FeedbackThrottle:
    """Rate-limits feedback so the user sees at most one cue per interval.

    With the default ``shared`` scope a single timestamp gates every request
    regardless of severity or message. ``severity`` and ``topic`` keep one
    timestamp per severity or per topic instead.
    """

    def __init__(
        self,
        min_interval: float = 1.1,
        board: Optional[FeedbackBoard] = None,
        on_accept: Optional[Callable[[FeedbackEvent], None]] = None,
        scope: str = "shared",
    ) -> None:
        if scope not in THROTTLE_SCOPES:
            raise ValueError(f"Unsupported throttle scope: {scope}")
        self.min_interval = float(min_interval)
        self.board = board if board is not None else FeedbackBoard()
        self.on_accept = on_accept
        self.scope = scope
        self.last_accepted_at: Optional[float] = None
        self._last: Dict[Hashable, float] = {}

    def offer(self, request: FeedbackRequest, now: float) -> Optional[FeedbackEvent]:
        key = self._key(request)
        last = self._last.get(key)
        if last is not None and now - last <= self.min_interval:
            return None
        self._last[key] = now
        self.last_accepted_at = now
        event = FeedbackEvent(
            severity=request.severity,
            message=request.message,
            timestamp=now,
            topic=request.topic,
        )
        self.board.push(event)
        logger.debug("Feedback accepted [{}] {}", event.severity.value, event.message)
        if self.on_accept is not None:
            self.on_accept(event)
        return event

    def reset(self) -> None:
        self._last.clear()
        self.last_accepted_at = None

    def _key(self, request: FeedbackRequest) -> Hashable:
        if self.scope == "severity":
            return request.severity
        if self.scope == "topic":
            return request.topic
        return None
