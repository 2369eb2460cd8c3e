from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


ResponseCategory = Literal[
    "positive_ready",
    "positive_with_questions",
    "request_deadline_extension",
    "questions_about_job",
    "negative",
    "unclear",
    "test_task_submission",
]


class AnalysisResult(BaseModel):
    score: float = Field(ge=0, le=10)
    category: str
    summary: str = ""
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    recommendation: str = ""
    reasoning: str = ""


class MatchResult(BaseModel):
    match_score: float = Field(ge=0, le=100)
    alignment: str = ""
    missing: str = ""
    recommendation: str = ""


class ExtractedInfo(BaseModel):
    requested_deadline_date: Optional[str] = None
    requested_extension_days: Optional[float] = None
    questions: list[str] = Field(default_factory=list)

    # Hints only: anything malformed is dropped instead of failing the reply.
    @field_validator("requested_deadline_date", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        return value if isinstance(value, str) and value.strip() else None

    @field_validator("requested_extension_days", mode="before")
    @classmethod
    def _coerce_days(cls, value):
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("questions", mode="before")
    @classmethod
    def _coerce_questions(cls, value):
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item is not None]


class ClassificationResult(BaseModel):
    category: ResponseCategory
    confidence: float = Field(default=0.5, ge=0, le=1)
    extracted_info: ExtractedInfo = Field(default_factory=ExtractedInfo)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value):
        try:
            return min(max(float(value), 0.0), 1.0)
        except (TypeError, ValueError):
            return 0.5

    @field_validator("extracted_info", mode="before")
    @classmethod
    def _coerce_extracted_info(cls, value):
        return value if isinstance(value, (dict, ExtractedInfo)) else {}


class DeadlineExtensionResult(BaseModel):
    requested_date: Optional[datetime] = None
    additional_days: Optional[float] = None
    is_reasonable: bool = False
    reason: Optional[str] = None


class SubmissionEvaluation(BaseModel):
    score: float = Field(ge=0, le=10)
    evaluation: str
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class CompetencyScore(BaseModel):
    competency_id: Optional[int] = None
    competency_name: str = ""
    score: float = Field(ge=0, le=10)
    comment: str = ""


class QuestionnaireEvaluation(BaseModel):
    score: float = Field(ge=0, le=10)
    summary: str = ""
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    recommendation: str = ""
    per_competency: list[CompetencyScore] = Field(default_factory=list)
