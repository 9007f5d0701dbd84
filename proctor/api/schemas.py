from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

class Device(BaseModel):
    maxTouchPoints: int = 0
    screenWidth: Optional[int] = None
    userAgent: str = ""

class StartSessionRequest(BaseModel):
    sessionId: str
    submissionId: str
    # Epoch ms/seconds or ISO-8601, as returned by the paper-submit API
    startedAt: Union[int, float, str]
    timeLimitMinutes: float = Field(gt=0)
    device: Optional[Device] = None

class HostEvent(BaseModel):
    # Raw DOM event name: fullscreenchange, visibilitychange, blur, copy, ...
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

class FullscreenResult(BaseModel):
    granted: bool

class Answer(BaseModel):
    question_id: str
    answer: str = ""

class OutlineResponse(BaseModel):
    field_label: str
    response: str = ""

class AnswersSnapshot(BaseModel):
    answers: List[Answer] = Field(default_factory=list)
    outline_responses: List[OutlineResponse] = Field(default_factory=list)

class SubmitRequest(BaseModel):
    answers: Optional[List[Answer]] = None
    outline_responses: Optional[List[OutlineResponse]] = None

class BlockedResponse(BaseModel):
    status: Literal["blocked"] = "blocked"
    message: str
