from __future__ import annotations

import logging

import anyio
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation_job import AutomationJob
from app.services.automation_handlers import HandlerDeps, execute_job
from app.services.automation_queue import fetch_due_jobs, mark_completed, mark_failed, mark_processing

logger = logging.getLogger("vamos.automation")


async def process_due_jobs(
    session: AsyncSession,
    *,
    deps: HandlerDeps,
    batch_size: int = 10,
    delay_seconds: float = 0.5,
) -> dict[str, int]:
    """Run one poll of the automation queue. Items run one at a time and each commits on its own."""
    # A rollback expires every loaded row, so each job is re-read by id.
    job_ids = [job.job_id for job in await fetch_due_jobs(session, batch_size=batch_size)]
    summary = {"processed": 0, "successful": 0, "failed": 0, "skipped": 0}

    for index, job_id in enumerate(job_ids):
        if index and delay_seconds > 0:
            await anyio.sleep(delay_seconds)

        job = await session.get(AutomationJob, job_id)
        if job is None:
            continue
        action_type = job.action_type
        retry_count = job.retry_count or 0

        if not await mark_processing(session, job):
            await session.rollback()
            summary["skipped"] += 1
            logger.info("automation_job_claim_lost", extra={"job_id": job_id})
            continue
        await session.commit()
        summary["processed"] += 1

        try:
            outcome = await execute_job(session, job, deps)
            await mark_completed(session, job)
            await session.commit()
        except Exception as exc:  # noqa: BLE001
            await session.rollback()
            logger.exception("automation_job_error", extra={"job_id": job_id, "action_type": action_type})
            failed_job = await session.get(AutomationJob, job_id)
            if failed_job is not None:
                await mark_failed(session, failed_job, str(exc) or exc.__class__.__name__, retry_count)
                await session.commit()
            summary["failed"] += 1
            continue

        if outcome.skipped:
            summary["skipped"] += 1
            logger.info("automation_job_skipped", extra={"job_id": job_id, "detail": outcome.detail})
        else:
            summary["successful"] += 1
            logger.info("automation_job_completed", extra={"job_id": job_id, "action_type": action_type})

    return summary
