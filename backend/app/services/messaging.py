from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import httpx

from app.core.config import Settings, settings
from app.core.errors import AutomationError

logger = logging.getLogger("vamos.telegram")


class MessagingError(AutomationError):
    pass


@dataclass(frozen=True)
class SendResult:
    ok: bool
    message_id: int | None = None
    error: str | None = None


def inline_keyboard(rows: list[list[tuple[str, str]]]) -> dict[str, Any]:
    """Build reply_markup from rows of (button text, callback_data)."""
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


def web_app_keyboard(text: str, url: str) -> dict[str, Any]:
    return {"inline_keyboard": [[{"text": text, "web_app": {"url": url}}]]}


class TelegramGateway:
    def __init__(
        self,
        *,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, cfg: Settings) -> "TelegramGateway":
        return cls(
            bot_token=cfg.telegram_bot_token,
            api_base=cfg.telegram_api_base,
            timeout=cfg.telegram_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token)

    async def _call(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        if not self.enabled:
            logger.warning("telegram_disabled", extra={"method": method})
            return {"ok": False, "description": "Telegram bot token is not configured"}

        url = f"{self._api_base}/bot{self._bot_token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("telegram_call_failed", extra={"method": method, "error": str(exc)})
            return {"ok": False, "description": str(exc)}

        try:
            data = response.json()
        except ValueError:
            data = {"ok": False, "description": response.text[:500]}
        if not isinstance(data, dict):
            data = {"ok": False, "description": "Unexpected Telegram response"}
        if not data.get("ok"):
            logger.warning(
                "telegram_call_rejected",
                extra={"method": method, "status_code": response.status_code, "error": data.get("description")},
            )
        return data

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str | None = None,
    ) -> SendResult:
        body: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            body["reply_markup"] = reply_markup
        if parse_mode:
            body["parse_mode"] = parse_mode
        data = await self._call("sendMessage", body)
        if not data.get("ok"):
            return SendResult(ok=False, error=str(data.get("description") or "sendMessage failed"))
        result = data.get("result") or {}
        return SendResult(ok=True, message_id=result.get("message_id"))

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        data = await self._call("answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text or "OK"})
        return bool(data.get("ok"))

    async def edit_message_reply_markup(self, chat_id: int, message_id: int) -> bool:
        data = await self._call(
            "editMessageReplyMarkup",
            {"chat_id": chat_id, "message_id": message_id, "reply_markup": {"inline_keyboard": []}},
        )
        return bool(data.get("ok"))


@lru_cache(maxsize=1)
def get_messenger() -> TelegramGateway:
    return TelegramGateway.from_settings(settings)
