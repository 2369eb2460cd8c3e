from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.api.routes.automation import job_out
from app.core.errors import AutomationError
from app.core.pipeline_machine import ACTION_SEND_QUESTIONNAIRE
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import HiringRequestRepository
from app.schemas.automation import AutomationEnqueueOut
from app.schemas.questionnaire import QuestionnairePublicOut, QuestionnaireSend, QuestionnaireSubmit
from app.services.automation_queue import enqueue_job
from app.services.questionnaires import (
    SUBMITTED_MESSAGE,
    QuestionnaireClosed,
    get_questionnaire,
    start_questionnaire,
    submit_questionnaire,
)

router = APIRouter(prefix="/questionnaire", tags=["questionnaire"])
public_router = APIRouter(prefix="/public/questionnaire", tags=["questionnaire-public"])


def _closed(exc: QuestionnaireClosed) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": exc.reason})


@router.post("/send", response_model=AutomationEnqueueOut, status_code=status.HTTP_201_CREATED)
async def send_questionnaire(payload: QuestionnaireSend, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        await CandidateRepository(session).require(payload.candidate_id)
        await HiringRequestRepository(session).require(payload.request_id)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    result = await enqueue_job(
        session,
        action_type=ACTION_SEND_QUESTIONNAIRE,
        candidate_id=payload.candidate_id,
        request_id=payload.request_id,
    )
    await session.commit()
    return AutomationEnqueueOut(job=job_out(result.job), duplicate=result.duplicate)


@public_router.get("/{token}", response_model=QuestionnairePublicOut)
async def read_questionnaire(token: str, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        view = await get_questionnaire(session, token)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    # Lazy expiry may have written the status.
    await session.commit()
    return QuestionnairePublicOut(status=view.status, expires_at=view.expires_at, questions=view.questions)


@public_router.post("/{token}/start")
async def start(token: str, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        response = await start_questionnaire(session, token)
    except QuestionnaireClosed as exc:
        raise _closed(exc) from exc
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return {"success": True, "status": response.status}


@public_router.post("/{token}/submit")
async def submit(token: str, payload: QuestionnaireSubmit, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        await submit_questionnaire(session, token, payload.answers)
    except QuestionnaireClosed as exc:
        raise _closed(exc) from exc
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return {"success": True, "message": SUBMITTED_MESSAGE}
