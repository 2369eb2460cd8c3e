from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import to_utc_naive, utcnow
from app.core.errors import EntityNotFound, PreconditionFailed
from app.core.json_fields import dumps_compact, loads_dict, loads_list
from app.core.pipeline_machine import EV_QUESTIONNAIRE_COMPLETED
from app.models.questionnaire import QuestionnaireResponse
from app.repositories.candidates import CandidateRepository
from app.repositories.questionnaires import QuestionnaireRepository
from app.services import prompts
from app.services.ai_parsing import ParseError, parse_questionnaire_evaluation
from app.services.conversations import MSG_QUESTIONNAIRE_SUBMITTED, log_message
from app.services.llm_gateway import KIND_QUESTIONNAIRE_EVALUATION, LLMGateway, LLMGatewayError
from app.services.pipeline_transitions import apply_pipeline_event_if_allowed

logger = logging.getLogger("vamos.questionnaire")

Q_SENT = "sent"
Q_IN_PROGRESS = "in_progress"
Q_COMPLETED = "completed"
Q_EXPIRED = "expired"

OPEN_STATUSES = (Q_SENT, Q_IN_PROGRESS)

EVALUATION_FAILED = {"error": "Помилка автоматичної оцінки. Потрібна ручна перевірка."}
SUBMITTED_MESSAGE = "Дякуємо за заповнення анкети!"


class QuestionnaireClosed(PreconditionFailed):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class QuestionnaireView:
    status: str
    expires_at: datetime
    questions: list[dict[str, Any]] | None = None


def questions_of(response: QuestionnaireResponse) -> list[dict[str, Any]]:
    return [item for item in loads_list(response.questions_json) if isinstance(item, dict)]


def _is_expired(response: QuestionnaireResponse, now: datetime) -> bool:
    return response.expires_at is not None and response.expires_at < now


async def _require_by_token(session: AsyncSession, token: str) -> QuestionnaireResponse:
    response = await QuestionnaireRepository(session).response_by_token(token)
    if response is None:
        raise EntityNotFound("Questionnaire", token)
    return response


async def _expire(session: AsyncSession, response: QuestionnaireResponse) -> None:
    response.status = Q_EXPIRED
    response.updated_at = utcnow()
    candidate = await CandidateRepository(session).get(response.candidate_id)
    if candidate is not None:
        await CandidateRepository(session).update(candidate, questionnaire_status=Q_EXPIRED)
    await session.flush()


async def get_questionnaire(session: AsyncSession, token: str, *, now: datetime | None = None) -> QuestionnaireView:
    current = to_utc_naive(now) if now else utcnow()
    response = await _require_by_token(session, token)
    if _is_expired(response, current):
        if response.status in OPEN_STATUSES:
            await _expire(session, response)
        return QuestionnaireView(status=Q_EXPIRED, expires_at=response.expires_at)
    if response.status == Q_COMPLETED:
        return QuestionnaireView(status=Q_COMPLETED, expires_at=response.expires_at)
    return QuestionnaireView(status=response.status, expires_at=response.expires_at, questions=questions_of(response))


async def start_questionnaire(session: AsyncSession, token: str, *, now: datetime | None = None) -> QuestionnaireResponse:
    current = to_utc_naive(now) if now else utcnow()
    response = await _require_by_token(session, token)
    if _is_expired(response, current):
        raise QuestionnaireClosed("expired")
    if response.status == Q_SENT:
        response.status = Q_IN_PROGRESS
        response.started_at = current
        response.updated_at = current
        candidate = await CandidateRepository(session).get(response.candidate_id)
        if candidate is not None:
            await CandidateRepository(session).update(candidate, questionnaire_status=Q_IN_PROGRESS)
        await session.flush()
    return response


async def submit_questionnaire(
    session: AsyncSession,
    token: str,
    answers: dict[str, str],
    *,
    now: datetime | None = None,
) -> QuestionnaireResponse:
    current = to_utc_naive(now) if now else utcnow()
    response = await _require_by_token(session, token)
    if response.status == Q_COMPLETED:
        raise QuestionnaireClosed("already_submitted")
    if _is_expired(response, current):
        raise QuestionnaireClosed("expired")

    questions = questions_of(response)
    normalized = {str(key): (value or "").strip() for key, value in (answers or {}).items()}
    unanswered = [q for q in questions if not normalized.get(str(q.get("question_id")))]
    if unanswered:
        raise PreconditionFailed(f"Не всі питання заповнені ({len(unanswered)} залишилось)")

    response.answers_json = dumps_compact(
        {str(q["question_id"]): normalized[str(q["question_id"])] for q in questions}
    )
    response.status = Q_COMPLETED
    response.submitted_at = current
    response.updated_at = current

    candidate = await CandidateRepository(session).require(response.candidate_id)
    await apply_pipeline_event_if_allowed(
        session,
        candidate=candidate,
        event=EV_QUESTIONNAIRE_COMPLETED,
        source="questionnaire",
        fields={"questionnaire_status": Q_COMPLETED},
    )
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="inbound",
        message_type=MSG_QUESTIONNAIRE_SUBMITTED,
        content=f"Кандидат заповнив анкету soft skills ({len(questions)} питань)",
        metadata={"token": token, "questions_count": len(questions)},
    )
    return response


async def evaluate_response(session: AsyncSession, response: QuestionnaireResponse, *, llm: LLMGateway) -> bool:
    prompt = prompts.questionnaire_evaluation_prompt(questions_of(response), loads_dict(response.answers_json))
    now = utcnow()
    try:
        result = parse_questionnaire_evaluation(await llm.generate(prompt, kind=KIND_QUESTIONNAIRE_EVALUATION))
    except (LLMGatewayError, ParseError) as exc:
        logger.warning("questionnaire_evaluation_failed", extra={"response_id": response.response_id, "error": str(exc)})
        response.ai_evaluation_json = dumps_compact(EVALUATION_FAILED)
        response.evaluated_at = now
        response.updated_at = now
        await session.flush()
        return False

    response.ai_score = result.score
    response.ai_evaluation_json = dumps_compact(result.model_dump())
    response.evaluated_at = now
    response.updated_at = now
    await session.flush()
    logger.info("questionnaire_evaluated", extra={"response_id": response.response_id, "score": result.score})
    return True


async def evaluate_pending_questionnaires(
    session: AsyncSession,
    *,
    llm: LLMGateway,
    batch_size: int = 5,
) -> dict[str, int]:
    rows = (
        await session.execute(
            select(QuestionnaireResponse)
            .where(QuestionnaireResponse.status == Q_COMPLETED, QuestionnaireResponse.evaluated_at.is_(None))
            .order_by(QuestionnaireResponse.submitted_at.asc(), QuestionnaireResponse.response_id.asc())
            .limit(batch_size)
        )
    ).scalars().all()
    summary = {"processed": 0, "successful": 0, "failed": 0}
    for response in rows:
        summary["processed"] += 1
        ok = await evaluate_response(session, response, llm=llm)
        await session.commit()
        summary["successful" if ok else "failed"] += 1
    return summary


async def expire_overdue_questionnaires(session: AsyncSession, *, now: datetime | None = None) -> int:
    current = to_utc_naive(now) if now else utcnow()
    rows = (
        await session.execute(
            select(QuestionnaireResponse).where(
                QuestionnaireResponse.status.in_(OPEN_STATUSES),
                QuestionnaireResponse.expires_at < current,
            )
        )
    ).scalars().all()
    for response in rows:
        await _expire(session, response)
    if rows:
        logger.info("questionnaires_expired", extra={"count": len(rows)})
    return len(rows)
