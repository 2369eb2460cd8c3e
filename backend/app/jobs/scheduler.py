from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.jobs.tasks import (
    run_evaluate_submissions,
    run_expire_questionnaires,
    run_process_ai_analysis,
    run_process_automation,
    run_process_outreach,
)


def start_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_process_automation,
        IntervalTrigger(minutes=settings.automation_interval_minutes),
        id="process_automation",
        replace_existing=True,
    )
    scheduler.add_job(
        run_process_ai_analysis,
        IntervalTrigger(minutes=settings.analysis_interval_minutes),
        id="process_ai_analysis",
        replace_existing=True,
    )
    scheduler.add_job(
        run_process_outreach,
        IntervalTrigger(minutes=settings.outreach_interval_minutes),
        id="process_outreach",
        replace_existing=True,
    )
    scheduler.add_job(
        run_evaluate_submissions,
        IntervalTrigger(minutes=settings.evaluation_interval_minutes),
        id="evaluate_submissions",
        replace_existing=True,
    )
    scheduler.add_job(
        run_expire_questionnaires,
        IntervalTrigger(minutes=settings.questionnaire_expiry_interval_minutes),
        id="expire_questionnaires",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler
