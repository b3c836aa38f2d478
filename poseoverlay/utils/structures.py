from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class JointId(str, Enum):
    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


# COCO / MoveNet output order
COCO_JOINTS: Tuple[JointId, ...] = tuple(JointId)


class Severity(str, Enum):
    GOOD = "good"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


SEVERITY_RANK = {
    Severity.ERROR: 3,
    Severity.WARNING: 2,
    Severity.GOOD: 1,
    Severity.INFO: 0,
}


@dataclass(frozen=True)
class Keypoint:
    name: JointId
    x: float
    y: float
    confidence: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, JointId):
            object.__setattr__(self, "name", JointId(self.name))

    @property
    def score(self) -> float:
        return 1.0 if self.confidence is None else float(self.confidence)


@dataclass(frozen=True)
class Pose:
    """Keypoints of a single subject at one instant, in the pixel space of ``image_size``."""

    keypoints: Tuple[Keypoint, ...]
    image_size: Tuple[int, int]
    timestamp: Optional[float] = None

    def __iter__(self) -> Iterator[Keypoint]:
        return iter(self.keypoints)

    def __len__(self) -> int:
        return len(self.keypoints)

    def find(self, name: JointId | str, min_confidence: float = 0.0) -> Optional[Keypoint]:
        """Return the named keypoint, or ``None`` when absent or not confident enough."""
        joint = JointId(name)
        for kp in self.keypoints:
            if kp.name == joint:
                if kp.score < min_confidence:
                    return None
                return kp
        return None


@dataclass(frozen=True)
class FeedbackEvent:
    severity: Severity
    message: str
    timestamp: float = 0.0
    topic: str = "general"


@dataclass(frozen=True)
class FeedbackRequest:
    """Feedback produced by analysis, before the throttle stamps and accepts it."""

    severity: Severity
    message: str
    topic: str = "general"


@dataclass
class SessionMetrics:
    rep_count: int = 0
    overall_score: Optional[float] = None
    last_feedback_at: Optional[float] = None


@dataclass
class TickAnalysis:
    left_knee: float
    right_knee: float
    asymmetry: float
    overall_score: float
    metrics: Dict[str, Optional[float]] = field(default_factory=dict)
    feedback: List[FeedbackRequest] = field(default_factory=list)
