from __future__ import annotations

import pytest

from poseoverlay.logic.feedback import FeedbackBoard, FeedbackThrottle
from poseoverlay.utils.structures import FeedbackEvent, FeedbackRequest, Severity


def _request(severity=Severity.WARNING, message="Knees caving in.", topic="general"):
    return FeedbackRequest(severity, message, topic)


def test_shared_throttle_requires_strictly_greater_interval():
    throttle = FeedbackThrottle(min_interval=1.1)
    assert throttle.offer(_request(), 10.0) is not None
    assert throttle.offer(_request(Severity.ERROR, "Elbow too tight."), 10.5) is None
    assert throttle.offer(_request(), 11.1) is None
    accepted = throttle.offer(_request(Severity.GOOD, "Nice depth."), 11.2)
    assert accepted is not None
    assert accepted.timestamp == 11.2
    assert throttle.last_accepted_at == 11.2


def test_accepted_feedback_lands_on_board_newest_first():
    board = FeedbackBoard()
    throttle = FeedbackThrottle(min_interval=1.1, board=board)
    throttle.offer(_request(message="first"), 0.0)
    throttle.offer(_request(message="second"), 2.0)
    assert [e.message for e in board.events()] == ["second", "first"]


def test_board_keeps_six_most_recent():
    board = FeedbackBoard()
    for idx in range(8):
        board.push(FeedbackEvent(Severity.INFO, f"m{idx}", float(idx)))
    assert len(board) == 6
    assert [e.message for e in board.events()] == ["m7", "m6", "m5", "m4", "m3", "m2"]
    board.clear()
    assert board.events() == []


def test_on_accept_called_only_for_accepted():
    seen = []
    throttle = FeedbackThrottle(min_interval=1.1, on_accept=seen.append)
    throttle.offer(_request(), 0.0)
    throttle.offer(_request(), 0.5)
    assert len(seen) == 1


def test_topic_scope_gates_each_topic_separately():
    throttle = FeedbackThrottle(min_interval=1.1, scope="topic")
    assert throttle.offer(_request(topic="asymmetry"), 0.0) is not None
    assert throttle.offer(_request(topic="squat.depth"), 0.1) is not None
    assert throttle.offer(_request(topic="asymmetry"), 0.2) is None


def test_severity_scope():
    throttle = FeedbackThrottle(min_interval=1.1, scope="severity")
    assert throttle.offer(_request(Severity.GOOD), 0.0) is not None
    assert throttle.offer(_request(Severity.ERROR), 0.0) is not None
    assert throttle.offer(_request(Severity.GOOD), 0.5) is None


def test_reset_reopens_gate():
    throttle = FeedbackThrottle(min_interval=1.1)
    throttle.offer(_request(), 0.0)
    throttle.reset()
    assert throttle.last_accepted_at is None
    assert throttle.offer(_request(), 0.1) is not None


def test_unknown_scope_rejected():
    with pytest.raises(ValueError):
        FeedbackThrottle(scope="per-message")
