from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.config import settings
from app.services.analysis import process_analysis_queue
from app.services.automation_handlers import HandlerDeps
from app.services.automation_runner import process_due_jobs
from app.services.llm_gateway import LLMGateway
from app.services.messaging import TelegramGateway
from app.services.outreach import process_due_outreach
from app.services.questionnaires import evaluate_pending_questionnaires, expire_overdue_questionnaires
from app.services.take_home_tasks import evaluate_pending_submissions

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(deps.require_cron_secret)])


def _delay_seconds() -> float:
    return max(settings.inter_item_delay_ms, 0) / 1000


@router.api_route("/process-automation", methods=["GET", "POST"])
async def process_automation(
    session: AsyncSession = Depends(deps.get_db_session),
    llm: LLMGateway = Depends(deps.get_llm),
    messenger: TelegramGateway = Depends(deps.get_telegram),
):
    summary = await process_due_jobs(
        session,
        deps=HandlerDeps(llm=llm, messenger=messenger),
        batch_size=settings.automation_batch_size,
        delay_seconds=_delay_seconds(),
    )
    return {"success": True, **summary}


@router.api_route("/process-ai-analysis", methods=["GET", "POST"])
async def process_ai_analysis(
    session: AsyncSession = Depends(deps.get_db_session),
    llm: LLMGateway = Depends(deps.get_llm),
):
    summary = await process_analysis_queue(
        session,
        llm=llm,
        batch_size=settings.analysis_batch_size,
        delay_seconds=_delay_seconds(),
    )
    return {"success": True, **summary}


@router.api_route("/process-outreach", methods=["GET", "POST"])
async def process_outreach(
    session: AsyncSession = Depends(deps.get_db_session),
    messenger: TelegramGateway = Depends(deps.get_telegram),
):
    summary = await process_due_outreach(
        session,
        messenger=messenger,
        batch_size=settings.outreach_batch_size,
        delay_seconds=_delay_seconds(),
    )
    return {"success": True, **summary}


@router.api_route("/expire-questionnaires", methods=["GET", "POST"])
async def expire_questionnaires(session: AsyncSession = Depends(deps.get_db_session)):
    expired = await expire_overdue_questionnaires(session)
    await session.commit()
    return {"success": True, "expired": expired}


@router.api_route("/evaluate-submissions", methods=["GET", "POST"])
async def evaluate_submissions(
    session: AsyncSession = Depends(deps.get_db_session),
    llm: LLMGateway = Depends(deps.get_llm),
):
    submissions = await evaluate_pending_submissions(session, llm=llm, batch_size=settings.evaluation_batch_size)
    questionnaires = await evaluate_pending_questionnaires(
        session,
        llm=llm,
        batch_size=settings.evaluation_batch_size,
    )
    return {"success": True, "submissions": submissions, "questionnaires": questionnaires}
