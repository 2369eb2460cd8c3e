from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utcnow
from app.db.base import Base


class Candidate(Base):
    __tablename__ = "candidates"

    candidate_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source: Mapped[str] = mapped_column(String(10), nullable=False, default="warm")

    about_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    why_vamos: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_skills_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    portfolio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    ai_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_strengths_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_concerns_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_recommendation: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ai_reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_analyzed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    pipeline_stage: Mapped[str] = mapped_column(String(32), nullable=False, default="new", index=True)

    outreach_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    outreach_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    preferred_contact_methods: Mapped[str | None] = mapped_column(Text, nullable=True)
    telegram_username: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    telegram_chat_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)

    test_task_status: Mapped[str | None] = mapped_column(String(32), nullable=True, default="not_sent")
    test_task_request_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    test_task_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    test_task_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    test_task_original_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    test_task_current_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    test_task_extensions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    test_task_submission: Mapped[str | None] = mapped_column(Text, nullable=True)
    test_task_submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    test_task_late_by_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    test_task_ai_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    test_task_ai_evaluation: Mapped[str | None] = mapped_column(Text, nullable=True)
    test_task_candidate_feedback: Mapped[str | None] = mapped_column(String(50), nullable=True)

    questionnaire_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()
