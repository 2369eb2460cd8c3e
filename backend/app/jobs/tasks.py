from __future__ import annotations

import logging

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.analysis import process_analysis_queue
from app.services.automation_handlers import HandlerDeps
from app.services.automation_runner import process_due_jobs
from app.services.llm_gateway import get_llm_gateway
from app.services.messaging import get_messenger
from app.services.outreach import process_due_outreach
from app.services.questionnaires import evaluate_pending_questionnaires, expire_overdue_questionnaires
from app.services.take_home_tasks import evaluate_pending_submissions

logger = logging.getLogger("vamos.jobs")


def _delay_seconds() -> float:
    return max(settings.inter_item_delay_ms, 0) / 1000


async def run_process_automation() -> None:
    async with SessionLocal() as session:
        summary = await process_due_jobs(
            session,
            deps=HandlerDeps(llm=get_llm_gateway(), messenger=get_messenger()),
            batch_size=settings.automation_batch_size,
            delay_seconds=_delay_seconds(),
        )
    if summary["processed"]:
        logger.info("automation_run_finished", extra=summary)


async def run_process_ai_analysis() -> None:
    async with SessionLocal() as session:
        summary = await process_analysis_queue(
            session,
            llm=get_llm_gateway(),
            batch_size=settings.analysis_batch_size,
            delay_seconds=_delay_seconds(),
        )
    if summary["processed"]:
        logger.info("analysis_run_finished", extra=summary)


async def run_process_outreach() -> None:
    async with SessionLocal() as session:
        summary = await process_due_outreach(
            session,
            messenger=get_messenger(),
            batch_size=settings.outreach_batch_size,
            delay_seconds=_delay_seconds(),
        )
    if summary["processed"]:
        logger.info("outreach_run_finished", extra=summary)


async def run_expire_questionnaires() -> None:
    async with SessionLocal() as session:
        await expire_overdue_questionnaires(session)
        await session.commit()


async def run_evaluate_submissions() -> None:
    llm = get_llm_gateway()
    async with SessionLocal() as session:
        await evaluate_pending_submissions(session, llm=llm, batch_size=settings.evaluation_batch_size)
        await evaluate_pending_questionnaires(session, llm=llm, batch_size=settings.evaluation_batch_size)
