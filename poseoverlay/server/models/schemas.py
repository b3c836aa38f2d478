from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

SPORT_PATTERN = "^(golf|sprint|cricket|baseball|tennis|squat)$"


class SportInfo(BaseModel):
    id: str
    title: str
    metrics: List[str]


class SportsResponse(BaseModel):
    sports: List[SportInfo]


class StartSessionRequest(BaseModel):
    source: Optional[str] = Field(default=None, max_length=512)
    camera_index: int = Field(default=-1, ge=-1)
    sport: Optional[str] = Field(default=None, pattern=SPORT_PATTERN)
    autoplay: bool = True


class TransportRequest(BaseModel):
    action: str = Field(pattern="^(play|pause|step|seek)$")
    frames: int = 1
    seconds: Optional[float] = Field(default=None, ge=0)


class SportChangeRequest(BaseModel):
    sport: str = Field(pattern=SPORT_PATTERN)


class FeedbackItem(BaseModel):
    severity: str
    message: str
    timestamp: float


class SessionStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    running: bool
    message: str
    source: Optional[str] = None
    sport: Optional[str] = None
    state: Optional[str] = None
    status: Optional[str] = None
    position: Optional[float] = None
    metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    feedback: List[FeedbackItem] = Field(default_factory=list)
    repCount: Optional[int] = None
    overallScore: Optional[float] = None
    fps: Optional[float] = None


class SessionStopResponse(BaseModel):
    status: str
