from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.datetime_utils import utcnow
from app.db.base import Base


class CandidateRequestMatch(Base):
    __tablename__ = "candidate_request_matches"
    __table_args__ = (UniqueConstraint("candidate_id", "request_id", name="uq_candidate_request_match"),)

    match_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    request_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    match_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    match_explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new")
    final_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)
    outreach_telegram_message_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
