"""Warm-intro outreach queue.

Warm candidates (applied through our own form) with a strong analysis get a
personal intro message at a humanised time. Items are editable and cancellable
while `scheduled`; the cron sends due items one by one.
"""

from __future__ import annotations

import logging
from datetime import datetime

import anyio
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.datetime_utils import as_utc_aware, to_utc_naive, utcnow
from app.core.errors import EntityNotFound, PreconditionFailed
from app.core.json_fields import loads_list
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.models.outreach_queue import OutreachQueueItem
from app.repositories.candidates import CandidateRepository
from app.schemas.ai import AnalysisResult
from app.services.conversations import MSG_WARM_INTRO, log_message
from app.services.email import message_to_html, outreach_subject, send_email
from app.services.llm_gateway import LLMGateway
from app.services.message_generation import generate_warm_intro
from app.services.messaging import TelegramGateway
from app.services.outreach_scheduler import RandomSource, calculate_scheduled_time, determine_delivery_method

logger = logging.getLogger("vamos.outreach")

OUTREACH_SCHEDULED = "scheduled"
OUTREACH_PROCESSING = "processing"
OUTREACH_SENT = "sent"
OUTREACH_FAILED = "failed"
OUTREACH_CANCELLED = "cancelled"

OPEN_OUTREACH_STATUSES = (OUTREACH_SCHEDULED, OUTREACH_PROCESSING, OUTREACH_SENT)

MIN_SCORE_FOR_OUTREACH = 7
MIN_MATCH_SCORE_FOR_CONTEXT = 60


def analysis_from_candidate(candidate: Candidate) -> AnalysisResult:
    return AnalysisResult(
        score=candidate.ai_score or 0,
        category=candidate.ai_category or "unknown",
        summary=candidate.ai_summary or "",
        strengths=[str(item) for item in loads_list(candidate.ai_strengths_json)],
        concerns=[str(item) for item in loads_list(candidate.ai_concerns_json)],
        recommendation=candidate.ai_recommendation or "",
        reasoning=candidate.ai_reasoning or "",
    )


async def open_outreach_for_candidate(session: AsyncSession, candidate_id: int) -> OutreachQueueItem | None:
    return (
        await session.execute(
            select(OutreachQueueItem)
            .where(
                OutreachQueueItem.candidate_id == candidate_id,
                OutreachQueueItem.status.in_(OPEN_OUTREACH_STATUSES),
            )
            .order_by(OutreachQueueItem.outreach_id.asc())
            .limit(1)
        )
    ).scalars().first()


async def schedule_warm_outreach(
    session: AsyncSession,
    *,
    candidate: Candidate,
    analysis: AnalysisResult,
    llm: LLMGateway,
    best_request: HiringRequest | None = None,
    match_score: float | None = None,
    rng: RandomSource | None = None,
) -> OutreachQueueItem | None:
    """Queue the warm intro for a freshly analysed candidate. Returns None when nothing was queued."""
    if analysis.score < MIN_SCORE_FOR_OUTREACH:
        return None
    if candidate.source != "warm":
        logger.info("outreach_skipped_cold", extra={"candidate_id": candidate.candidate_id})
        return None
    existing = await open_outreach_for_candidate(session, candidate.candidate_id)
    if existing is not None:
        logger.info(
            "outreach_already_exists",
            extra={"candidate_id": candidate.candidate_id, "outreach_id": existing.outreach_id, "status": existing.status},
        )
        return None

    method = determine_delivery_method(candidate.preferred_contact_methods, candidate.telegram_username)
    if method == "telegram" and not candidate.telegram_chat_id:
        # The bot cannot open a chat on its own.
        method = "email"

    context_request = best_request if (match_score or 0) >= MIN_MATCH_SCORE_FOR_CONTEXT else None
    message = await generate_warm_intro(llm, candidate, analysis, context_request, match_score)
    scheduled_for = calculate_scheduled_time(candidate.created_at or utcnow(), rng=rng)

    now = utcnow()
    item = OutreachQueueItem(
        candidate_id=candidate.candidate_id,
        request_id=context_request.request_id if context_request else None,
        intro_message=message,
        delivery_method=method,
        status=OUTREACH_SCHEDULED,
        scheduled_for=to_utc_naive(scheduled_for),
        retry_count=0,
        created_at=now,
        updated_at=now,
    )
    session.add(item)
    await CandidateRepository(session).update(candidate, outreach_status=OUTREACH_SCHEDULED)
    logger.info(
        "outreach_scheduled",
        extra={
            "candidate_id": candidate.candidate_id,
            "outreach_id": item.outreach_id,
            "delivery_method": method,
            "scheduled_for": scheduled_for.isoformat(),
        },
    )
    return item


async def _require_item(session: AsyncSession, outreach_id: int) -> OutreachQueueItem:
    item = await session.get(OutreachQueueItem, outreach_id)
    if item is None:
        raise EntityNotFound("Outreach", outreach_id)
    return item


async def edit_outreach(
    session: AsyncSession,
    outreach_id: int,
    *,
    intro_message: str | None = None,
    scheduled_for: datetime | None = None,
) -> OutreachQueueItem:
    item = await _require_item(session, outreach_id)
    if item.status != OUTREACH_SCHEDULED:
        raise PreconditionFailed(f"Outreach {outreach_id} is {item.status} and can no longer be edited")
    if intro_message is not None:
        text = intro_message.strip()
        if not text:
            raise PreconditionFailed("Intro message cannot be empty")
        item.intro_message = text
    if scheduled_for is not None:
        if as_utc_aware(scheduled_for) <= as_utc_aware(utcnow()):
            raise PreconditionFailed("Scheduled time must be in the future")
        item.scheduled_for = to_utc_naive(scheduled_for)
    item.updated_at = utcnow()
    await session.flush()
    return item


async def cancel_outreach(session: AsyncSession, candidate_id: int) -> int:
    """Cancel every scheduled intro for the candidate. Returns how many rows changed."""
    result = await session.execute(
        update(OutreachQueueItem)
        .where(OutreachQueueItem.candidate_id == candidate_id, OutreachQueueItem.status == OUTREACH_SCHEDULED)
        .values(status=OUTREACH_CANCELLED, updated_at=utcnow())
    )
    candidate = await CandidateRepository(session).require(candidate_id)
    await CandidateRepository(session).update(candidate, outreach_status=OUTREACH_CANCELLED)
    logger.info("outreach_cancelled", extra={"candidate_id": candidate_id, "count": result.rowcount})
    return result.rowcount or 0


async def _deliver(
    item: OutreachQueueItem,
    candidate: Candidate,
    messenger: TelegramGateway,
) -> tuple[bool, str | None, str | None]:
    if item.delivery_method == "telegram" and candidate.telegram_chat_id:
        result = await messenger.send_message(candidate.telegram_chat_id, item.intro_message)
        return result.ok, str(result.message_id) if result.message_id else None, result.error

    meta = await send_email(
        to_email=candidate.email,
        subject=outreach_subject(candidate.first_name),
        template_name="outreach_intro",
        context={"message_html": message_to_html(item.intro_message), "sender_name": settings.gmail_sender_name},
        email_type="outreach_intro",
    )
    if meta["status"] == "sent":
        return True, meta.get("message_id"), None
    return False, None, meta.get("error") or meta.get("reason") or "email not sent"


async def claim_outreach_item(session: AsyncSession, outreach_id: int, from_statuses: tuple[str, ...]) -> bool:
    """Move the item to `processing` in its own commit. False when another worker got there first."""
    claimed = await session.execute(
        update(OutreachQueueItem)
        .where(OutreachQueueItem.outreach_id == outreach_id, OutreachQueueItem.status.in_(from_statuses))
        .values(status=OUTREACH_PROCESSING, updated_at=utcnow())
    )
    if claimed.rowcount != 1:
        await session.rollback()
        return False
    await session.commit()
    return True


async def deliver_outreach_item(session: AsyncSession, item: OutreachQueueItem, *, messenger: TelegramGateway) -> bool:
    """Send a claimed item and record the outcome; the caller commits."""
    candidate = await CandidateRepository(session).require(item.candidate_id)

    ok, external_id, error = await _deliver(item, candidate, messenger)
    now = utcnow()
    if not ok:
        item.status = OUTREACH_FAILED
        item.retry_count = (item.retry_count or 0) + 1
        item.error_message = (error or "")[:2000]
        item.updated_at = now
        await session.flush()
        logger.warning(
            "outreach_failed",
            extra={"outreach_id": item.outreach_id, "candidate_id": item.candidate_id, "error": item.error_message},
        )
        return False

    item.status = OUTREACH_SENT
    item.sent_at = now
    item.error_message = None
    item.updated_at = now
    await CandidateRepository(session).update(candidate, outreach_status=OUTREACH_SENT, outreach_sent_at=now)
    method = "telegram" if item.delivery_method == "telegram" and candidate.telegram_chat_id else "email"
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_WARM_INTRO,
        content=item.intro_message,
        metadata={
            "outreach_id": item.outreach_id,
            "request_id": item.request_id,
            "delivery_method": method,
            "external_message_id": external_id,
        },
    )
    logger.info("outreach_sent", extra={"outreach_id": item.outreach_id, "candidate_id": item.candidate_id})
    return True


async def send_outreach_now(session: AsyncSession, outreach_id: int, *, messenger: TelegramGateway) -> bool:
    item = await _require_item(session, outreach_id)
    if item.status not in (OUTREACH_SCHEDULED, OUTREACH_FAILED):
        raise PreconditionFailed(f"Outreach {outreach_id} is {item.status}")
    if not await claim_outreach_item(session, outreach_id, (OUTREACH_SCHEDULED, OUTREACH_FAILED)):
        raise PreconditionFailed(f"Outreach {outreach_id} is already being sent")
    return await deliver_outreach_item(session, item, messenger=messenger)


async def due_outreach_items(
    session: AsyncSession,
    *,
    batch_size: int = 10,
    now: datetime | None = None,
) -> list[OutreachQueueItem]:
    current = to_utc_naive(now) if now else utcnow()
    return list(
        (
            await session.execute(
                select(OutreachQueueItem)
                .where(OutreachQueueItem.status == OUTREACH_SCHEDULED, OutreachQueueItem.scheduled_for <= current)
                .order_by(OutreachQueueItem.scheduled_for.asc(), OutreachQueueItem.outreach_id.asc())
                .limit(batch_size)
            )
        ).scalars().all()
    )


async def process_due_outreach(
    session: AsyncSession,
    *,
    messenger: TelegramGateway,
    batch_size: int = 10,
    delay_seconds: float = 0.5,
) -> dict[str, int]:
    outreach_ids = [item.outreach_id for item in await due_outreach_items(session, batch_size=batch_size)]
    summary = {"processed": 0, "successful": 0, "failed": 0}
    for index, outreach_id in enumerate(outreach_ids):
        if index and delay_seconds > 0:
            await anyio.sleep(delay_seconds)
        if not await claim_outreach_item(session, outreach_id, (OUTREACH_SCHEDULED,)):
            continue
        item = await session.get(OutreachQueueItem, outreach_id)
        if item is None:
            continue
        summary["processed"] += 1
        try:
            sent = await deliver_outreach_item(session, item, messenger=messenger)
            await session.commit()
        except Exception as exc:  # noqa: BLE001
            await session.rollback()
            logger.exception("outreach_item_error", extra={"outreach_id": outreach_id})
            failed = await session.get(OutreachQueueItem, outreach_id)
            if failed is not None:
                failed.status = OUTREACH_FAILED
                failed.retry_count = (failed.retry_count or 0) + 1
                failed.error_message = str(exc)[:2000]
                failed.updated_at = utcnow()
                await session.commit()
            sent = False
        summary["successful" if sent else "failed"] += 1
    return summary
