from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ActionType = Literal["send_outreach", "send_questionnaire", "send_test_task", "send_invite", "send_rejection"]


class AutomationJobCreate(BaseModel):
    action_type: ActionType
    candidate_id: int
    request_id: int
    scheduled_for: Optional[datetime] = None
    payload: dict[str, Any] = Field(default_factory=dict)


class AutomationJobOut(BaseModel):
    job_id: int
    action_type: str
    candidate_id: int
    request_id: int
    scheduled_for: datetime
    status: str
    payload: dict[str, Any] = Field(default_factory=dict)
    retry_count: int
    error_message: Optional[str] = None
    executed_at: Optional[datetime] = None


class AutomationEnqueueOut(BaseModel):
    job: AutomationJobOut
    duplicate: bool


class AutomationCancelOut(BaseModel):
    job_id: int
    cancelled: bool
