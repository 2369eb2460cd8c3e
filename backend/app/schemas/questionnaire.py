from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class QuestionSnapshot(BaseModel):
    question_id: int
    competency_id: int
    competency_name: str = ""
    text: str


class QuestionnairePublicOut(BaseModel):
    status: str
    expires_at: datetime
    questions: Optional[list[QuestionSnapshot]] = None
    company_name: str = "Vamos"


class QuestionnaireSubmit(BaseModel):
    answers: dict[str, str] = Field(min_length=1)


class QuestionnaireSend(BaseModel):
    candidate_id: int
    request_id: int
