from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from poseoverlay.logic.feedback import FeedbackThrottle
from poseoverlay.logic.geometry import asymmetry_pct, joint_angle
from poseoverlay.logic.sports import SportStrategy, create_strategy
from poseoverlay.utils.config import SportCatalog, SportId, SportProfile
from poseoverlay.utils.structures import (
    SEVERITY_RANK,
    FeedbackRequest,
    JointId,
    Pose,
    SessionMetrics,
    Severity,
    TickAnalysis,
)

UNAVAILABLE = "—"
CORE_LABELS: Tuple[str, ...] = ("Left knee", "Right knee", "Asymmetry", "Overall score", "Reps")
LEFT_LEG = (JointId.LEFT_HIP, JointId.LEFT_KNEE, JointId.LEFT_ANKLE)
RIGHT_LEG = (JointId.RIGHT_HIP, JointId.RIGHT_KNEE, JointId.RIGHT_ANKLE)


def overall_score(left_knee: float, asymmetry: float) -> float:
    """Heuristic 10-98 score: knee extension near a 10° bend, minus a symmetry penalty."""
    raw = 100.0 - abs(10.0 - (180.0 - left_knee)) - 0.2 * asymmetry
    return max(10.0, min(98.0, raw))


class MetricBoard:
    """Label -> value sink backing the metric panel. ``None`` means unavailable."""

    def __init__(self, labels: Iterable[str] = ()) -> None:
        self._values: Dict[str, Optional[float]] = {}
        self.reset(labels)

    def reset(self, labels: Iterable[str]) -> None:
        self._values = {label: None for label in labels}

    def update(self, label: str, value: Optional[float]) -> None:
        if value is not None and not math.isfinite(value):
            value = None
        self._values[label] = value

    def get(self, label: str) -> Optional[float]:
        return self._values.get(label)

    def as_dict(self) -> Dict[str, Optional[float]]:
        return dict(self._values)

    def formatted(self) -> List[Tuple[str, str]]:
        lines: List[Tuple[str, str]] = []
        for label, value in self._values.items():
            if value is None:
                lines.append((label, UNAVAILABLE))
            elif label == "Reps":
                lines.append((label, str(int(value))))
            elif label == "Asymmetry":
                lines.append((label, f"{value:.1f}%"))
            elif label == "Overall score":
                lines.append((label, f"{value:.0f}"))
            else:
                lines.append((label, f"{value:.1f}"))
        return lines


@dataclass
class SessionContext:
    """Everything a sport session mutates; replaced wholesale when the sport changes."""

    profile: SportProfile
    strategy: SportStrategy
    metrics: SessionMetrics = field(default_factory=SessionMetrics)

    @property
    def sport(self) -> SportId:
        return self.profile.sport


class MetricsEngine:
    def __init__(
        self,
        catalog: SportCatalog,
        throttle: FeedbackThrottle,
        board: Optional[MetricBoard] = None,
        min_confidence: float = 0.3,
        asymmetry_good_pct: float = 15.0,
    ) -> None:
        self.catalog = catalog
        self.throttle = throttle
        self.board = board if board is not None else MetricBoard()
        self.min_confidence = min_confidence
        self.asymmetry_good_pct = asymmetry_good_pct

    def start_session(self, sport: SportId | str) -> SessionContext:
        profile = self.catalog.get(sport)
        context = SessionContext(profile=profile, strategy=create_strategy(profile, self.min_confidence))
        self.throttle.reset()
        self.throttle.board.clear()
        self.board.reset(CORE_LABELS + tuple(label for label in profile.labels if label not in CORE_LABELS))
        self.board.update("Reps", 0)
        logger.info("Sport session started: {} ({} metrics)", profile.title, len(profile.labels))
        return context

    def analyze(self, context: SessionContext, pose: Pose, now: float) -> Optional[TickAnalysis]:
        left = joint_angle(pose, *LEFT_LEG, min_confidence=self.min_confidence)
        right = joint_angle(pose, *RIGHT_LEG, min_confidence=self.min_confidence)
        if not (math.isfinite(left) and math.isfinite(right)):
            logger.debug("Knee angles unavailable (L={} R={}); skipping analysis", left, right)
            return None

        asymmetry = asymmetry_pct(left, right)
        requests: List[FeedbackRequest] = []
        if asymmetry <= self.asymmetry_good_pct:
            requests.append(FeedbackRequest(Severity.GOOD, "Left and right knees are balanced.", topic="asymmetry"))
        else:
            requests.append(
                FeedbackRequest(
                    Severity.WARNING,
                    f"Knee asymmetry {asymmetry:.0f}%; even out left and right.",
                    topic="asymmetry",
                )
            )

        sport_result = context.strategy.evaluate(pose, left, right, asymmetry)
        requests.extend(sport_result.feedback)

        session = context.metrics
        score = overall_score(left, asymmetry)
        session.overall_score = score
        if sport_result.rep_completed:
            session.rep_count += 1

        values: Dict[str, Optional[float]] = {
            "Left knee": left,
            "Right knee": right,
            "Asymmetry": asymmetry,
            "Overall score": score,
            "Reps": float(session.rep_count),
        }
        for label in context.profile.labels:
            values.setdefault(label, sport_result.metrics.get(label))
        for label, value in values.items():
            self.board.update(label, value)

        # most severe first; ties keep production order
        ordered = sorted(requests, key=lambda r: SEVERITY_RANK[r.severity], reverse=True)
        for request in ordered:
            if self.throttle.offer(request, now) is not None:
                session.last_feedback_at = now

        return TickAnalysis(
            left_knee=left,
            right_knee=right,
            asymmetry=asymmetry,
            overall_score=score,
            metrics=values,
            feedback=ordered,
        )
