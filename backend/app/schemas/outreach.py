from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OutreachEdit(BaseModel):
    intro_message: Optional[str] = Field(default=None, max_length=4000)
    scheduled_for: Optional[datetime] = None


class OutreachCancel(BaseModel):
    candidate_id: int


class OutreachOut(BaseModel):
    outreach_id: int
    candidate_id: int
    request_id: Optional[int] = None
    intro_message: str
    delivery_method: str
    status: str
    scheduled_for: datetime
    scheduled_relative: Optional[str] = None
    retry_count: int
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
