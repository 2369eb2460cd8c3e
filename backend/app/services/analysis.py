from __future__ import annotations

import logging

import anyio
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utcnow
from app.core.errors import AutomationError
from app.core.json_fields import dumps_compact
from app.core.pipeline_machine import ACTION_SEND_OUTREACH, EV_ANALYSIS_COMPLETED
from app.models.analysis_queue import AiAnalysisQueueItem
from app.models.candidate import Candidate
from app.models.candidate_match import CandidateRequestMatch
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import REQUEST_STATUS_ACTIVE, HiringRequestRepository
from app.repositories.matches import MatchRepository
from app.schemas.ai import AnalysisResult
from app.services import prompts
from app.services.ai_parsing import parse_analysis_result, parse_match_result
from app.services.automation_queue import MAX_ERROR_CHARS, MAX_RETRIES, enqueue_job
from app.services.llm_gateway import KIND_ANALYSIS, KIND_MATCH, LLMGateway
from app.services.outreach import MIN_SCORE_FOR_OUTREACH, schedule_warm_outreach
from app.services.outreach_scheduler import RandomSource
from app.services.pipeline_transitions import apply_pipeline_event_if_allowed

logger = logging.getLogger("vamos.analysis")

ANALYSIS_PENDING = "pending"
ANALYSIS_PROCESSING = "processing"
ANALYSIS_COMPLETED = "completed"
ANALYSIS_FAILED = "failed"


async def enqueue_analysis(session: AsyncSession, candidate_id: int) -> AiAnalysisQueueItem:
    existing = (
        await session.execute(
            select(AiAnalysisQueueItem)
            .where(
                AiAnalysisQueueItem.candidate_id == candidate_id,
                AiAnalysisQueueItem.status.in_([ANALYSIS_PENDING, ANALYSIS_PROCESSING]),
            )
            .limit(1)
        )
    ).scalars().first()
    if existing is not None:
        return existing

    now = utcnow()
    item = AiAnalysisQueueItem(
        candidate_id=candidate_id,
        status=ANALYSIS_PENDING,
        retry_count=0,
        created_at=now,
        updated_at=now,
    )
    session.add(item)
    await session.flush()
    logger.info("analysis_enqueued", extra={"candidate_id": candidate_id, "analysis_id": item.analysis_id})
    return item


async def analyze_candidate(session: AsyncSession, candidate: Candidate, *, llm: LLMGateway) -> AnalysisResult:
    analysis = parse_analysis_result(
        await llm.generate(prompts.candidate_analysis_prompt(candidate), kind=KIND_ANALYSIS)
    )
    await apply_pipeline_event_if_allowed(
        session,
        candidate=candidate,
        event=EV_ANALYSIS_COMPLETED,
        source="ai_analysis",
        fields={
            "ai_score": analysis.score,
            "ai_category": analysis.category,
            "ai_summary": analysis.summary,
            "ai_strengths_json": dumps_compact(analysis.strengths),
            "ai_concerns_json": dumps_compact(analysis.concerns),
            "ai_recommendation": analysis.recommendation or None,
            "ai_reasoning": analysis.reasoning or None,
            "ai_analyzed_at": utcnow(),
        },
    )
    return analysis


async def match_active_requests(
    session: AsyncSession,
    candidate: Candidate,
    analysis: AnalysisResult,
    *,
    llm: LLMGateway,
) -> list[CandidateRequestMatch]:
    matches = []
    repo = MatchRepository(session)
    for request in await HiringRequestRepository(session).list_active():
        result = parse_match_result(
            await llm.generate(prompts.request_match_prompt(candidate, analysis, request), kind=KIND_MATCH)
        )
        matches.append(
            await repo.upsert(
                candidate_id=candidate.candidate_id,
                request_id=request.request_id,
                match_score=result.match_score,
                match_explanation=f"{result.alignment}\n\nMissing: {result.missing}",
            )
        )
    return matches


async def trigger_outreach(
    session: AsyncSession,
    candidate: Candidate,
    analysis: AnalysisResult,
    *,
    llm: LLMGateway,
    rng: RandomSource | None = None,
) -> str | None:
    """Hand a strong candidate to the right outreach path. Returns which one fired, if any."""
    if analysis.score < MIN_SCORE_FOR_OUTREACH:
        return None

    requests = HiringRequestRepository(session)
    matches = await MatchRepository(session).list_for_candidate(candidate.candidate_id)

    if candidate.telegram_chat_id:
        for match in matches:
            request = await requests.get(match.request_id)
            if request is None or request.status != REQUEST_STATUS_ACTIVE or not request.outreach_template_approved:
                continue
            await enqueue_job(
                session,
                action_type=ACTION_SEND_OUTREACH,
                candidate_id=candidate.candidate_id,
                request_id=request.request_id,
            )
            return "automation"
        return None

    best = matches[0] if matches else None
    best_request = await requests.get(best.request_id) if best else None
    item = await schedule_warm_outreach(
        session,
        candidate=candidate,
        analysis=analysis,
        llm=llm,
        best_request=best_request,
        match_score=best.match_score if best else None,
        rng=rng,
    )
    return "warm_intro" if item is not None else None


async def process_analysis_item(
    session: AsyncSession,
    item: AiAnalysisQueueItem,
    *,
    llm: LLMGateway,
) -> AnalysisResult:
    candidate = await CandidateRepository(session).require(item.candidate_id)
    analysis = await analyze_candidate(session, candidate, llm=llm)
    await match_active_requests(session, candidate, analysis, llm=llm)
    try:
        await trigger_outreach(session, candidate, analysis, llm=llm)
    except AutomationError as exc:
        logger.warning(
            "analysis_outreach_trigger_failed",
            extra={"candidate_id": candidate.candidate_id, "error": str(exc)},
        )

    now = utcnow()
    item.status = ANALYSIS_COMPLETED
    item.processed_at = now
    item.error_message = None
    item.updated_at = now
    await session.flush()
    return analysis


async def process_analysis_queue(
    session: AsyncSession,
    *,
    llm: LLMGateway,
    batch_size: int = 5,
    delay_seconds: float = 0.5,
) -> dict[str, int]:
    analysis_ids = list(
        (
            await session.execute(
                select(AiAnalysisQueueItem.analysis_id)
                .where(AiAnalysisQueueItem.status == ANALYSIS_PENDING, AiAnalysisQueueItem.retry_count < MAX_RETRIES)
                .order_by(AiAnalysisQueueItem.created_at.asc(), AiAnalysisQueueItem.analysis_id.asc())
                .limit(batch_size)
            )
        ).scalars().all()
    )
    summary = {"processed": 0, "successful": 0, "failed": 0}

    for index, analysis_id in enumerate(analysis_ids):
        if index and delay_seconds > 0:
            await anyio.sleep(delay_seconds)
        item = await session.get(AiAnalysisQueueItem, analysis_id)
        if item is None:
            continue
        retry_count = item.retry_count or 0

        claimed = await session.execute(
            update(AiAnalysisQueueItem)
            .where(AiAnalysisQueueItem.analysis_id == analysis_id, AiAnalysisQueueItem.status == ANALYSIS_PENDING)
            .values(status=ANALYSIS_PROCESSING, updated_at=utcnow())
        )
        if claimed.rowcount != 1:
            await session.rollback()
            continue
        await session.commit()
        summary["processed"] += 1

        try:
            analysis = await process_analysis_item(session, item, llm=llm)
            await session.commit()
            summary["successful"] += 1
            logger.info("analysis_completed", extra={"analysis_id": analysis_id, "score": analysis.score})
        except Exception as exc:  # noqa: BLE001
            await session.rollback()
            logger.exception("analysis_failed", extra={"analysis_id": analysis_id})
            failed = await session.get(AiAnalysisQueueItem, analysis_id)
            if failed is not None:
                failed.retry_count = retry_count + 1
                failed.status = ANALYSIS_FAILED if failed.retry_count >= MAX_RETRIES else ANALYSIS_PENDING
                failed.error_message = (str(exc) or exc.__class__.__name__)[:MAX_ERROR_CHARS]
                failed.updated_at = utcnow()
                await session.commit()
            summary["failed"] += 1
    return summary
