from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import AutomationError
from app.models.outreach_queue import OutreachQueueItem
from app.schemas.outreach import OutreachCancel, OutreachEdit, OutreachOut
from app.services.messaging import TelegramGateway
from app.services.outreach import OUTREACH_SCHEDULED, cancel_outreach, edit_outreach, send_outreach_now
from app.services.outreach_scheduler import format_scheduled_time_relative

router = APIRouter(prefix="/outreach", tags=["outreach"])


def _outreach_out(item: OutreachQueueItem) -> OutreachOut:
    relative = format_scheduled_time_relative(item.scheduled_for) if item.status == OUTREACH_SCHEDULED else None
    return OutreachOut(
        outreach_id=item.outreach_id,
        candidate_id=item.candidate_id,
        request_id=item.request_id,
        intro_message=item.intro_message,
        delivery_method=item.delivery_method,
        status=item.status,
        scheduled_for=item.scheduled_for,
        scheduled_relative=relative,
        retry_count=item.retry_count or 0,
        error_message=item.error_message,
        sent_at=item.sent_at,
    )


@router.patch("/{outreach_id}", response_model=OutreachOut)
async def update_outreach(
    outreach_id: int,
    payload: OutreachEdit,
    session: AsyncSession = Depends(deps.get_db_session),
):
    try:
        item = await edit_outreach(
            session,
            outreach_id,
            intro_message=payload.intro_message,
            scheduled_for=payload.scheduled_for,
        )
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return _outreach_out(item)


@router.post("/cancel")
async def cancel(payload: OutreachCancel, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        count = await cancel_outreach(session, payload.candidate_id)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    return {"success": True, "cancelled": count}


@router.post("/{outreach_id}/send-now", response_model=OutreachOut)
async def send_now(
    outreach_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    messenger: TelegramGateway = Depends(deps.get_telegram),
):
    try:
        await send_outreach_now(session, outreach_id, messenger=messenger)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    await session.commit()
    item = await session.get(OutreachQueueItem, outreach_id)
    return _outreach_out(item)
