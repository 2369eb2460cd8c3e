import hmac

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import AutomationError, EntityNotFound
from app.core.pipeline_machine import InvalidTransition
from app.db.session import get_session
from app.services.llm_gateway import LLMGateway, get_llm_gateway
from app.services.messaging import TelegramGateway, get_messenger


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


def get_llm() -> LLMGateway:
    return get_llm_gateway()


def get_telegram() -> TelegramGateway:
    return get_messenger()


def require_cron_secret(request: Request) -> None:
    expected = (settings.cron_secret or "").strip()
    if not expected:
        return
    supplied = request.query_params.get("secret") or ""
    auth_header = request.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        supplied = auth_header[7:].strip()
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def http_error(exc: AutomationError) -> HTTPException:
    if isinstance(exc, EntityNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
