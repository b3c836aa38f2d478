from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Tuple, Type

from poseoverlay.logic.geometry import (
    angle_from_vertical,
    angular_difference,
    joint_angle,
    line_angle,
    midpoint,
)
from poseoverlay.utils.config import SportId, SportProfile
from poseoverlay.utils.structures import FeedbackRequest, JointId, Pose, Severity

SHOULDERS = (JointId.LEFT_SHOULDER, JointId.RIGHT_SHOULDER)
HIPS = (JointId.LEFT_HIP, JointId.RIGHT_HIP)
KNEES = (JointId.LEFT_KNEE, JointId.RIGHT_KNEE)
ANKLES = (JointId.LEFT_ANKLE, JointId.RIGHT_ANKLE)


@dataclass
class SportResult:
    metrics: Dict[str, Optional[float]] = field(default_factory=dict)
    feedback: List[FeedbackRequest] = field(default_factory=list)
    rep_completed: bool = False


class SportStrategy(ABC):
    """Per-sport metrics. One instance lives for one sport session."""

    sport: ClassVar[SportId]
    required_joints: ClassVar[Tuple[JointId, ...]] = ()
    produces: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, profile: SportProfile, min_confidence: float = 0.3) -> None:
        if profile.sport is not self.sport:
            raise ValueError(f"{type(self).__name__} cannot run profile '{profile.sport.value}'")
        self.profile = profile
        self.min_confidence = min_confidence

    def required(self) -> Tuple[JointId, ...]:
        return self.required_joints

    @abstractmethod
    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        ...


class SprintStrategy(SportStrategy):
    sport = SportId.SPRINT
    required_joints = SHOULDERS + HIPS + KNEES + ANKLES
    produces = ("Left knee drive", "Right knee drive", "Forward lean")

    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        result = SportResult(
            metrics={
                "Left knee drive": 180.0 - left_knee,
                "Right knee drive": 180.0 - right_knee,
            }
        )
        shoulders = midpoint(pose, *SHOULDERS, min_confidence=self.min_confidence)
        hips = midpoint(pose, *HIPS, min_confidence=self.min_confidence)
        if shoulders is None or hips is None:
            return result
        lean = angle_from_vertical(shoulders, hips)
        result.metrics["Forward lean"] = lean
        if lean < float(self.profile.threshold("min_forward_lean", 3.0)):
            result.feedback.append(
                FeedbackRequest(Severity.WARNING, "Lean slightly forward from the ankles.", topic="sprint.lean")
            )
        return result


class SquatStrategy(SportStrategy):
    sport = SportId.SQUAT
    required_joints = HIPS + KNEES + ANKLES
    produces = ("Left knee", "Right knee", "Asymmetry", "Hip depth")

    def __init__(self, profile: SportProfile, min_confidence: float = 0.3) -> None:
        super().__init__(profile, min_confidence)
        self.phase = "top"

    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        result = SportResult(
            metrics={
                "Left knee": left_knee,
                "Right knee": right_knee,
                "Asymmetry": asymmetry,
            }
        )
        hips = midpoint(pose, *HIPS, min_confidence=self.min_confidence)
        knees = midpoint(pose, *KNEES, min_confidence=self.min_confidence)
        if hips is not None and knees is not None:
            # positive while the hips are still above the knees
            result.metrics["Hip depth"] = knees[1] - hips[1]

        depth_angle = float(self.profile.threshold("depth_angle", 90.0))
        if left_knee < depth_angle and right_knee < depth_angle:
            result.feedback.append(
                FeedbackRequest(
                    Severity.GOOD, f"Depth reached: both knees past {depth_angle:.0f}°.", topic="squat.depth"
                )
            )

        bottom = float(self.profile.threshold("knee_bottom_angle", 90.0))
        top = float(self.profile.threshold("knee_top_angle", 160.0))
        knee = (left_knee + right_knee) / 2.0
        if knee <= bottom and self.phase != "bottom":
            self.phase = "bottom"
        elif knee >= top and self.phase == "bottom":
            self.phase = "top"
            result.rep_completed = True
        return result


class GolfStrategy(SportStrategy):
    sport = SportId.GOLF
    required_joints = SHOULDERS + HIPS
    produces = ("Shoulder line", "Hip line", "X-factor")

    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        result = SportResult()
        shoulder_line = line_angle(pose, *SHOULDERS, min_confidence=self.min_confidence)
        hip_line = line_angle(pose, *HIPS, min_confidence=self.min_confidence)
        if shoulder_line is not None:
            result.metrics["Shoulder line"] = shoulder_line
        if hip_line is not None:
            result.metrics["Hip line"] = hip_line
        if shoulder_line is None or hip_line is None:
            return result
        x_factor = angular_difference(shoulder_line, hip_line)
        result.metrics["X-factor"] = x_factor
        if x_factor > float(self.profile.threshold("x_factor_good", 45.0)):
            result.feedback.append(
                FeedbackRequest(Severity.GOOD, "Strong shoulder-hip separation.", topic="golf.x_factor")
            )
        else:
            result.feedback.append(
                FeedbackRequest(Severity.WARNING, "Turn the shoulders further against the hips.", topic="golf.x_factor")
            )
        return result


class ThrowingArmStrategy(SportStrategy):
    """Elbow angle of the trailing arm; a tight elbow is flagged as an injury risk."""

    produces = ("Elbow angle",)
    risk_message: ClassVar[str] = "Elbow under 90° here loads the joint; risk of injury."
    safe_message: ClassVar[str] = "Arm angle looks safe."

    def required(self) -> Tuple[JointId, ...]:
        return self._side_joints()

    def _side_joints(self) -> Tuple[JointId, JointId, JointId]:
        side = str(self.profile.threshold("trailing_side", "right")).lower()
        if side not in ("left", "right"):
            side = "right"
        return JointId(f"{side}_shoulder"), JointId(f"{side}_elbow"), JointId(f"{side}_wrist")

    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        result = SportResult()
        elbow = joint_angle(pose, *self._side_joints(), min_confidence=self.min_confidence)
        if not math.isfinite(elbow):
            return result
        result.metrics["Elbow angle"] = elbow
        topic = f"{self.sport.value}.elbow"
        if elbow < float(self.profile.threshold("min_elbow_angle", 90.0)):
            result.feedback.append(FeedbackRequest(Severity.ERROR, self.risk_message, topic=topic))
        else:
            result.feedback.append(FeedbackRequest(Severity.GOOD, self.safe_message, topic=topic))
        return result


class CricketStrategy(ThrowingArmStrategy):
    sport = SportId.CRICKET
    risk_message = "Bowling arm bent under 90°; risk of elbow injury."
    safe_message = "Bowling arm is extended."


class BaseballStrategy(ThrowingArmStrategy):
    sport = SportId.BASEBALL
    risk_message = "Throwing elbow under 90°; risk of UCL strain."
    safe_message = "Throwing elbow angle looks safe."


class TennisStrategy(SportStrategy):
    sport = SportId.TENNIS
    required_joints = (JointId.LEFT_HIP, JointId.LEFT_KNEE, JointId.LEFT_ANKLE)
    produces = ("Knee bend",)

    def evaluate(self, pose: Pose, left_knee: float, right_knee: float, asymmetry: float) -> SportResult:
        return SportResult(metrics={"Knee bend": 180.0 - left_knee})


STRATEGIES: Dict[SportId, Type[SportStrategy]] = {
    cls.sport: cls
    for cls in (
        SprintStrategy,
        SquatStrategy,
        GolfStrategy,
        CricketStrategy,
        BaseballStrategy,
        TennisStrategy,
    )
}


def create_strategy(profile: SportProfile, min_confidence: float = 0.3) -> SportStrategy:
    try:
        strategy_cls = STRATEGIES[profile.sport]
    except KeyError as exc:
        raise ValueError(f"No strategy registered for sport '{profile.sport.value}'") from exc
    return strategy_cls(profile, min_confidence)
