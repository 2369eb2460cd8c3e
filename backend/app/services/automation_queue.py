from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import to_utc_naive, utcnow
from app.core.json_fields import dumps_compact, loads_dict
from app.core.pipeline_machine import ALL_ACTIONS
from app.models.automation_job import AutomationJob

logger = logging.getLogger("vamos.automation")

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)

MAX_RETRIES = 3
MAX_ERROR_CHARS = 2000


@dataclass(frozen=True)
class EnqueueResult:
    job: AutomationJob
    created: bool

    @property
    def duplicate(self) -> bool:
        return not self.created


def job_payload(job: AutomationJob) -> dict[str, Any]:
    return loads_dict(job.payload_json)


async def find_active_job(
    session: AsyncSession,
    *,
    action_type: str,
    candidate_id: int,
    request_id: int,
) -> AutomationJob | None:
    return (
        await session.execute(
            select(AutomationJob)
            .where(
                AutomationJob.action_type == action_type,
                AutomationJob.candidate_id == candidate_id,
                AutomationJob.request_id == request_id,
                AutomationJob.status.in_(ACTIVE_STATUSES),
            )
            .order_by(AutomationJob.job_id.asc())
            .limit(1)
        )
    ).scalars().first()


async def enqueue_job(
    session: AsyncSession,
    *,
    action_type: str,
    candidate_id: int,
    request_id: int,
    scheduled_for: datetime | None = None,
    payload: dict[str, Any] | None = None,
) -> EnqueueResult:
    action_type = (action_type or "").strip().lower()
    if action_type not in ALL_ACTIONS:
        raise ValueError(f"Unsupported action_type: {action_type}")

    existing = await find_active_job(
        session,
        action_type=action_type,
        candidate_id=candidate_id,
        request_id=request_id,
    )
    if existing:
        logger.info(
            "automation_job_duplicate",
            extra={"job_id": existing.job_id, "action_type": action_type, "candidate_id": candidate_id},
        )
        return EnqueueResult(job=existing, created=False)

    now = utcnow()
    job = AutomationJob(
        action_type=action_type,
        candidate_id=candidate_id,
        request_id=request_id,
        status=STATUS_PENDING,
        scheduled_for=to_utc_naive(scheduled_for) if scheduled_for else now,
        payload_json=dumps_compact(payload or {}),
        retry_count=0,
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    await session.flush()
    logger.info(
        "automation_job_enqueued",
        extra={"job_id": job.job_id, "action_type": action_type, "candidate_id": candidate_id, "request_id": request_id},
    )
    return EnqueueResult(job=job, created=True)


async def fetch_due_jobs(
    session: AsyncSession,
    *,
    batch_size: int = 10,
    now: datetime | None = None,
) -> list[AutomationJob]:
    current = to_utc_naive(now) if now else utcnow()
    return list(
        (
            await session.execute(
                select(AutomationJob)
                .where(
                    AutomationJob.status == STATUS_PENDING,
                    AutomationJob.retry_count < MAX_RETRIES,
                    AutomationJob.scheduled_for <= current,
                )
                .order_by(AutomationJob.scheduled_for.asc(), AutomationJob.job_id.asc())
                .limit(max(int(batch_size), 0))
            )
        ).scalars().all()
    )


async def mark_processing(session: AsyncSession, job: AutomationJob) -> bool:
    """Claim a pending job. Returns False when another poller got there first."""
    result = await session.execute(
        update(AutomationJob)
        .where(AutomationJob.job_id == job.job_id, AutomationJob.status == STATUS_PENDING)
        .values(status=STATUS_PROCESSING, updated_at=utcnow())
    )
    claimed = result.rowcount == 1
    if claimed:
        job.status = STATUS_PROCESSING
    return claimed


async def mark_completed(session: AsyncSession, job: AutomationJob) -> None:
    now = utcnow()
    job.status = STATUS_COMPLETED
    job.executed_at = now
    job.error_message = None
    job.updated_at = now
    await session.flush()


async def mark_failed(session: AsyncSession, job: AutomationJob, error: str, retry_count: int) -> str:
    new_retry_count = retry_count + 1
    job.retry_count = new_retry_count
    job.error_message = (error or "")[:MAX_ERROR_CHARS]
    job.updated_at = utcnow()
    # No backoff: a retried job is picked up again on the next poll.
    job.status = STATUS_FAILED if new_retry_count >= MAX_RETRIES else STATUS_PENDING
    await session.flush()
    logger.warning(
        "automation_job_failed",
        extra={
            "job_id": job.job_id,
            "action_type": job.action_type,
            "retry_count": new_retry_count,
            "status": job.status,
            "error": job.error_message,
        },
    )
    return job.status


async def cancel_job(session: AsyncSession, job_id: int) -> bool:
    """Cancel a pending job. In-flight and finished jobs are left untouched."""
    result = await session.execute(
        update(AutomationJob)
        .where(AutomationJob.job_id == job_id, AutomationJob.status == STATUS_PENDING)
        .values(status=STATUS_CANCELLED, updated_at=utcnow())
    )
    cancelled = result.rowcount == 1
    if cancelled:
        logger.info("automation_job_cancelled", extra={"job_id": job_id})
    return cancelled
