from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ContactMethod = Literal["email", "telegram"]


class CandidateApplyIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=50)
    about_text: Optional[str] = None
    why_vamos: Optional[str] = None
    key_skills: list[str] = Field(default_factory=list)
    linkedin_url: Optional[str] = Field(default=None, max_length=500)
    portfolio_url: Optional[str] = Field(default=None, max_length=500)
    telegram_username: Optional[str] = Field(default=None, max_length=100)
    preferred_contact_methods: list[ContactMethod] = Field(default_factory=lambda: ["email"])


class CandidateApplyOut(BaseModel):
    candidate_id: int
    analysis_queued: bool


class CandidateStatusOut(BaseModel):
    candidate_id: int
    pipeline_stage: str
    allowed_actions: list[str]
    outreach_status: Optional[str] = None
    test_task_status: Optional[str] = None
    test_task_current_deadline: Optional[datetime] = None
    questionnaire_status: Optional[str] = None
    ai_score: Optional[float] = None
