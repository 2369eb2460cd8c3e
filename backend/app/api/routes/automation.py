from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import AutomationError
from app.models.automation_job import AutomationJob
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import HiringRequestRepository
from app.schemas.automation import AutomationCancelOut, AutomationEnqueueOut, AutomationJobCreate, AutomationJobOut
from app.services.automation_queue import cancel_job, enqueue_job, job_payload

router = APIRouter(prefix="/automation", tags=["automation"])


def job_out(job: AutomationJob) -> AutomationJobOut:
    return AutomationJobOut(
        job_id=job.job_id,
        action_type=job.action_type,
        candidate_id=job.candidate_id,
        request_id=job.request_id,
        scheduled_for=job.scheduled_for,
        status=job.status,
        payload=job_payload(job),
        retry_count=job.retry_count,
        error_message=job.error_message,
        executed_at=job.executed_at,
    )


@router.post("/jobs", response_model=AutomationEnqueueOut, status_code=status.HTTP_201_CREATED)
async def create_job(payload: AutomationJobCreate, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        await CandidateRepository(session).require(payload.candidate_id)
        await HiringRequestRepository(session).require(payload.request_id)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc

    result = await enqueue_job(
        session,
        action_type=payload.action_type,
        candidate_id=payload.candidate_id,
        request_id=payload.request_id,
        scheduled_for=payload.scheduled_for,
        payload=payload.payload,
    )
    await session.commit()
    return AutomationEnqueueOut(job=job_out(result.job), duplicate=result.duplicate)


@router.get("/jobs/{job_id}", response_model=AutomationJobOut)
async def get_job(job_id: int, session: AsyncSession = Depends(deps.get_db_session)):
    job = await session.get(AutomationJob, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job_out(job)


@router.post("/jobs/{job_id}/cancel", response_model=AutomationCancelOut)
async def cancel(job_id: int, session: AsyncSession = Depends(deps.get_db_session)):
    job = await session.get(AutomationJob, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    cancelled = await cancel_job(session, job_id)
    await session.commit()
    if not cancelled:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job is {job.status} and cannot be cancelled")
    return AutomationCancelOut(job_id=job_id, cancelled=True)
