from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.api.routes.automation import job_out
from app.core.errors import AutomationError
from app.repositories.candidates import CandidateRepository
from app.schemas.automation import AutomationEnqueueOut
from app.schemas.test_task import DecisionIn, ExtensionIn, ExtensionOut, SubmissionIn, SubmissionOut
from app.services.callback_payloads import FEEDBACK_LABELS
from app.services.llm_gateway import LLMGateway
from app.services.take_home_tasks import (
    TASK_SUBMITTED_LATE,
    decide_test_task,
    record_feedback,
    request_deadline_extension,
    submit_test_task,
)

router = APIRouter(prefix="/test-task", tags=["test-task"])
public_router = APIRouter(prefix="/public/test-task", tags=["test-task-public"])

SUBMITTED_ON_TIME_MESSAGE = "Дякуємо! Ваше тестове завдання отримано."
SUBMITTED_LATE_MESSAGE = "Дякуємо! Ваше тестове завдання отримано із запізненням на {hours} год."


@public_router.post("/submit", response_model=SubmissionOut)
async def submit(payload: SubmissionIn, session: AsyncSession = Depends(deps.get_db_session)):
    repo = CandidateRepository(session)
    candidate = await repo.find_by_test_task_token(payload.token)
    if candidate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid submission link")
    try:
        outcome = await submit_test_task(session, candidate=candidate, submission_text=payload.submission_text)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    if payload.feedback:
        await record_feedback(session, candidate_id=candidate.candidate_id, label=FEEDBACK_LABELS[payload.feedback])
    await session.commit()

    if outcome.status == TASK_SUBMITTED_LATE:
        message = SUBMITTED_LATE_MESSAGE.format(hours=outcome.late_by_hours)
    else:
        message = SUBMITTED_ON_TIME_MESSAGE
    return SubmissionOut(status=outcome.status, late_by_hours=outcome.late_by_hours, message=message)


@router.post("/{candidate_id}/extend-deadline", response_model=ExtensionOut)
async def extend_deadline(
    candidate_id: int,
    payload: ExtensionIn,
    session: AsyncSession = Depends(deps.get_db_session),
    llm: LLMGateway = Depends(deps.get_llm),
):
    try:
        candidate = await CandidateRepository(session).require(candidate_id)
        outcome = await request_deadline_extension(session, candidate=candidate, text=payload.request_text, llm=llm)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return ExtensionOut(
        granted=outcome.granted,
        reason=outcome.reason,
        message=outcome.message,
        new_deadline=outcome.new_deadline,
        extension_days=outcome.extension_days,
    )


@router.post("/{candidate_id}/decide", response_model=AutomationEnqueueOut)
async def decide(candidate_id: int, payload: DecisionIn, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        candidate = await CandidateRepository(session).require(candidate_id)
        result = await decide_test_task(
            session,
            candidate=candidate,
            decision=payload.decision,
            request_id=payload.request_id,
            message=payload.message,
        )
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return AutomationEnqueueOut(job=job_out(result.job), duplicate=result.duplicate)
