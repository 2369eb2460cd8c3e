"""Telegram webhook: classify inbound candidate messages and route them.

Every update is handled inside `TelegramWebhookProcessor.handle`, which never
raises; the HTTP route always answers Telegram with ``{"ok": true}``.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AutomationError, PreconditionFailed
from app.core.pipeline_machine import EV_OUTREACH_DECLINED, InvalidTransition
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import HiringRequestRepository
from app.repositories.matches import MatchRepository
from app.schemas.telegram import TelegramCallbackQuery, TelegramMessage, TelegramUpdate
from app.services.callback_payloads import (
    FEEDBACK_LABELS,
    FeedbackCallback,
    OutreachReplyCallback,
    decode_callback,
    encode_callback,
)
from app.services.classifier import (
    CATEGORY_DEADLINE_EXTENSION,
    CATEGORY_NEGATIVE,
    CATEGORY_POSITIVE_READY,
    CATEGORY_POSITIVE_WITH_QUESTIONS,
    CATEGORY_QUESTIONS_ABOUT_JOB,
    CATEGORY_SUBMISSION,
    ClassificationContext,
    classify_response,
)
from app.services.conversations import MSG_AI_REPLY, MSG_CANDIDATE_RESPONSE, log_message
from app.services.llm_gateway import LLMGateway
from app.services.message_generation import generate_question_answer
from app.services.messaging import TelegramGateway, inline_keyboard, web_app_keyboard
from app.services.pipeline_transitions import apply_pipeline_event_if_allowed
from app.services.public_links import apply_link
from app.services.take_home_tasks import (
    SUBMITTED_STATUSES,
    TASK_SENT,
    is_task_pending_send,
    record_feedback,
    request_deadline_extension,
    send_test_task,
    submit_test_task,
)

logger = logging.getLogger("vamos.webhook")

APPLY_BUTTON = "Подати заявку"
UNKNOWN_SENDER_MESSAGE = "Вибачте, не можу знайти ваш профіль. Будь ласка, спочатку подайте заявку через форму."
READY_ACK_MESSAGE = "Чудово! Незабаром надішлю вам тестове завдання."
TASK_ALREADY_SENT_MESSAGE = (
    "Тестове завдання вже надіслано вам вище в цьому чаті. Якщо потрібна допомога чи більше часу, напишіть."
)
TASK_ALREADY_SUBMITTED_MESSAGE = (
    "Ваше тестове завдання вже отримано. Ми перевіримо його найближчим часом і зв'яжемося з вами."
)
SUBMISSION_FEEDBACK_PROMPT = "Дякую за виконання! Поділіться враженнями про тестове завдання:"
NEGATIVE_REPLY = "Дякуємо за відповідь! Якщо передумаєте, завжди можете написати нам."
GENERIC_ACK = "Дякую за повідомлення! Ми переглянемо і відповімо найближчим часом."
FEEDBACK_CALLBACK_ACK = "Дякуємо за фідбек!"
FEEDBACK_THANKS = "Дякуємо за фідбек! Ми перевіримо ваше тестове найближчим часом і зв'яжемося з вами."
OUTREACH_YES_LOG = "[BUTTON] Так, цікаво дізнатись більше"
OUTREACH_NO_LOG = "[BUTTON] Дякую, не зараз"


def welcome_message(first_name: str | None) -> str:
    return (
        f"Привіт, {first_name or 'друже'}! Я Vamos Hiring Bot.\n\n"
        "Шукаєте роботу в інноваційній команді? Натисніть кнопку нижче!"
    )


def feedback_keyboard(candidate_id: int) -> dict:
    def button(rating: str) -> tuple[str, str]:
        return FEEDBACK_LABELS[rating], encode_callback(FeedbackCallback(rating, candidate_id))

    return inline_keyboard([[button("easy"), button("ok")], [button("hard"), button("very_hard")]])


class TelegramWebhookProcessor:
    def __init__(self, session: AsyncSession, *, llm: LLMGateway, messenger: TelegramGateway) -> None:
        self.session = session
        self.llm = llm
        self.messenger = messenger
        self.candidates = CandidateRepository(session)

    async def handle(self, update: TelegramUpdate) -> None:
        try:
            if update.callback_query is not None:
                await self.handle_callback(update.callback_query)
            elif update.message is not None and update.message.text:
                await self.handle_message(update.message)
            await self.session.commit()
        except Exception:  # noqa: BLE001
            await self.session.rollback()
            logger.exception("telegram_webhook_error", extra={"update_id": update.update_id})

    async def _reply(self, chat_id: int, text: str, **kwargs) -> None:
        result = await self.messenger.send_message(chat_id, text, **kwargs)
        if not result.ok:
            logger.warning("telegram_reply_failed", extra={"chat_id": chat_id, "error": result.error})

    async def handle_message(self, message: TelegramMessage) -> None:
        chat_id = message.chat.id
        text = (message.text or "").strip()
        sender = message.from_user

        if text.startswith("/start"):
            await self._reply(
                chat_id,
                welcome_message(sender.first_name if sender else None),
                reply_markup=web_app_keyboard(APPLY_BUTTON, apply_link()),
            )
            return

        candidate = await self.candidates.find_by_telegram_username(sender.username if sender else None)
        if candidate is None:
            await self._reply(chat_id, UNKNOWN_SENDER_MESSAGE)
            return

        if candidate.telegram_chat_id != chat_id:
            await self.candidates.update(candidate, telegram_chat_id=chat_id)
        await log_message(
            self.session,
            candidate_id=candidate.candidate_id,
            direction="inbound",
            message_type=MSG_CANDIDATE_RESPONSE,
            content=text,
        )
        # The inbound entry survives even if routing fails below.
        await self.session.commit()

        context = ClassificationContext(
            has_received_test_task=candidate.test_task_status == TASK_SENT,
            test_task_deadline=candidate.test_task_current_deadline,
        )
        classification = await classify_response(self.llm, text, context)
        logger.info(
            "telegram_message_classified",
            extra={
                "candidate_id": candidate.candidate_id,
                "category": classification.category,
                "confidence": classification.confidence,
            },
        )

        category = classification.category
        if category == CATEGORY_POSITIVE_READY:
            await self.on_ready(candidate, chat_id)
        elif category == CATEGORY_DEADLINE_EXTENSION:
            outcome = await request_deadline_extension(self.session, candidate=candidate, text=text, llm=self.llm)
            await self._reply(chat_id, outcome.message)
        elif category == CATEGORY_SUBMISSION:
            await self.on_submission(candidate, chat_id, text)
        elif category in (CATEGORY_POSITIVE_WITH_QUESTIONS, CATEGORY_QUESTIONS_ABOUT_JOB):
            await self.on_question(candidate, chat_id, text)
        elif category == CATEGORY_NEGATIVE:
            await self.on_negative(candidate, chat_id)
        else:
            await self._reply(chat_id, GENERIC_ACK)

    async def _task_request(self, candidate: Candidate, request_id: int | None = None) -> HiringRequest | None:
        requests = HiringRequestRepository(self.session)
        if request_id is not None:
            return await requests.get(request_id)
        if candidate.test_task_request_id is not None:
            return await requests.get(candidate.test_task_request_id)
        fallback = None
        for match in await MatchRepository(self.session).list_for_candidate(candidate.candidate_id):
            request = await requests.get(match.request_id)
            if request is None:
                continue
            if request.test_task_url:
                return request
            fallback = fallback or request
        return fallback

    async def on_ready(self, candidate: Candidate, chat_id: int, request_id: int | None = None) -> None:
        if candidate.test_task_status in SUBMITTED_STATUSES:
            await self._reply(chat_id, TASK_ALREADY_SUBMITTED_MESSAGE)
            return
        if not is_task_pending_send(candidate):
            await self._reply(chat_id, TASK_ALREADY_SENT_MESSAGE)
            return

        request = await self._task_request(candidate, request_id)
        if request is None or not request.test_task_url:
            # Nothing to send yet; a manager follows up manually.
            logger.info("test_task_unavailable", extra={"candidate_id": candidate.candidate_id})
            await self._reply(chat_id, READY_ACK_MESSAGE)
            return

        try:
            await send_test_task(
                self.session,
                candidate=candidate,
                request=request,
                llm=self.llm,
                messenger=self.messenger,
                source="telegram",
            )
        except (InvalidTransition, PreconditionFailed) as exc:
            logger.info("test_task_not_sent", extra={"candidate_id": candidate.candidate_id, "reason": str(exc)})
            await self._reply(chat_id, GENERIC_ACK)

    async def on_submission(self, candidate: Candidate, chat_id: int, text: str) -> None:
        if candidate.test_task_status in SUBMITTED_STATUSES:
            await self._reply(chat_id, TASK_ALREADY_SUBMITTED_MESSAGE)
            return
        try:
            await submit_test_task(self.session, candidate=candidate, submission_text=text, log_inbound=False)
        except PreconditionFailed as exc:
            logger.info("submission_rejected", extra={"candidate_id": candidate.candidate_id, "reason": str(exc)})
            await self._reply(chat_id, GENERIC_ACK)
            return
        await self._reply(chat_id, SUBMISSION_FEEDBACK_PROMPT, reply_markup=feedback_keyboard(candidate.candidate_id))

    async def on_question(self, candidate: Candidate, chat_id: int, text: str) -> None:
        best = await MatchRepository(self.session).best_for_candidate(candidate.candidate_id)
        request = await HiringRequestRepository(self.session).get(best.request_id) if best else None
        reply = await generate_question_answer(self.llm, text, candidate, request)
        await self._reply(chat_id, reply)
        await log_message(
            self.session,
            candidate_id=candidate.candidate_id,
            direction="outbound",
            message_type=MSG_AI_REPLY,
            content=reply,
        )

    async def on_negative(self, candidate: Candidate, chat_id: int) -> None:
        await self._reply(chat_id, NEGATIVE_REPLY)
        await apply_pipeline_event_if_allowed(
            self.session,
            candidate=candidate,
            event=EV_OUTREACH_DECLINED,
            source="telegram",
            fields={"outreach_status": "declined"},
        )

    async def handle_callback(self, query: TelegramCallbackQuery) -> None:
        payload = decode_callback(query.data)
        await self.messenger.answer_callback_query(
            query.id, FEEDBACK_CALLBACK_ACK if isinstance(payload, FeedbackCallback) else None
        )
        if payload is None:
            logger.info("telegram_callback_ignored", extra={"data": query.data})
            return

        chat_id = query.message.chat.id if query.message else None
        if isinstance(payload, FeedbackCallback):
            candidate = await record_feedback(self.session, candidate_id=payload.candidate_id, label=payload.label)
            if candidate is not None and chat_id is not None:
                await self._reply(chat_id, FEEDBACK_THANKS)
            return

        if isinstance(payload, OutreachReplyCallback):
            await self.on_outreach_reply(payload, query, chat_id)

    async def on_outreach_reply(
        self,
        payload: OutreachReplyCallback,
        query: TelegramCallbackQuery,
        chat_id: int | None,
    ) -> None:
        if chat_id is not None and query.message is not None:
            await self.messenger.edit_message_reply_markup(chat_id, query.message.message_id)

        candidate = await self.candidates.get(payload.candidate_id)
        if candidate is None:
            logger.warning("telegram_callback_unknown_candidate", extra={"candidate_id": payload.candidate_id})
            return
        chat_id = chat_id or candidate.telegram_chat_id

        await log_message(
            self.session,
            candidate_id=candidate.candidate_id,
            direction="inbound",
            message_type=MSG_CANDIDATE_RESPONSE,
            content=OUTREACH_YES_LOG if payload.interested else OUTREACH_NO_LOG,
            metadata={"request_id": payload.request_id, "callback": True},
        )
        if chat_id is None:
            return
        if payload.interested:
            await self.candidates.update(candidate, outreach_status="responded")
            try:
                await self.on_ready(candidate, chat_id, request_id=payload.request_id)
            except AutomationError as exc:
                logger.warning("outreach_yes_failed", extra={"candidate_id": candidate.candidate_id, "error": str(exc)})
        else:
            await self.on_negative(candidate, chat_id)
