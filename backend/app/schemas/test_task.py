from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Decision = Literal["approved", "rejected"]
FeedbackRating = Literal["easy", "ok", "hard", "very_hard"]


class SubmissionIn(BaseModel):
    token: str = Field(min_length=8, max_length=64)
    submission_text: str = Field(min_length=1, max_length=20000)
    feedback: Optional[FeedbackRating] = None


class SubmissionOut(BaseModel):
    status: str
    late_by_hours: int
    message: str


class ExtensionIn(BaseModel):
    request_text: str = Field(min_length=1, max_length=2000)


class ExtensionOut(BaseModel):
    granted: bool
    reason: str
    message: str
    new_deadline: Optional[datetime] = None
    extension_days: Optional[float] = None


class DecisionIn(BaseModel):
    decision: Decision
    request_id: Optional[int] = None
    message: Optional[str] = Field(default=None, max_length=4000)
