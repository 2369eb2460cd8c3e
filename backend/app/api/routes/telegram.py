import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.schemas.telegram import TelegramUpdate
from app.services.llm_gateway import LLMGateway
from app.services.messaging import TelegramGateway
from app.services.webhook import TelegramWebhookProcessor

logger = logging.getLogger("vamos.webhook")

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    session: AsyncSession = Depends(deps.get_db_session),
    llm: LLMGateway = Depends(deps.get_llm),
    messenger: TelegramGateway = Depends(deps.get_telegram),
):
    # Telegram retries any non-2xx answer, so failures are only logged.
    try:
        update = TelegramUpdate.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("telegram_update_invalid", extra={"error": str(exc)})
        return {"ok": True}

    processor = TelegramWebhookProcessor(session, llm=llm, messenger=messenger)
    await processor.handle(update)
    return {"ok": True}
