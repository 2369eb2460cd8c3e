from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utcnow
from app.db.base import Base


class HiringRequest(Base):
    """
    A hiring requisition (`requests` table). Read-mostly for the automation core.
    """

    __tablename__ = "requests"

    request_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)

    required_skills: Mapped[str | None] = mapped_column(Text, nullable=True)
    nice_to_have_skills: Mapped[str | None] = mapped_column(Text, nullable=True)
    soft_skills: Mapped[str | None] = mapped_column(Text, nullable=True)

    outreach_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    outreach_template_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    test_task_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    test_task_deadline_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    test_task_evaluation_criteria: Mapped[str | None] = mapped_column(Text, nullable=True)

    questionnaire_competency_ids_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    questionnaire_question_ids_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
