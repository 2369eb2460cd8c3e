from __future__ import annotations

import logging
import random
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utcnow
from app.core.errors import PreconditionFailed
from app.core.json_fields import dumps_compact, loads_int_list
from app.core.pipeline_machine import (
    ACTION_SEND_INVITE,
    ACTION_SEND_OUTREACH,
    ACTION_SEND_QUESTIONNAIRE,
    ACTION_SEND_REJECTION,
    ACTION_SEND_TEST_TASK,
    EV_INVITE_SENT,
    EV_OUTREACH_SENT,
    EV_QUESTIONNAIRE_SENT,
    EV_REJECTION_SENT,
)
from app.models.automation_job import AutomationJob
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.models.questionnaire import QuestionnaireResponse
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import HiringRequestRepository
from app.repositories.matches import MatchRepository
from app.repositories.questionnaires import QuestionnaireRepository
from app.services.automation_queue import job_payload
from app.services.callback_payloads import OutreachReplyCallback, encode_callback
from app.services.conversations import MSG_OUTREACH, MSG_QUESTIONNAIRE_SENT, MSG_TEST_TASK_DECISION, log_message
from app.services.llm_gateway import LLMGateway
from app.services.message_generation import personalize_outreach
from app.services.messaging import MessagingError, TelegramGateway, inline_keyboard
from app.services.pipeline_transitions import log_transition, plan_transition
from app.services.public_links import questionnaire_link
from app.services.take_home_tasks import send_test_task

logger = logging.getLogger("vamos.automation")

QUESTIONNAIRE_TTL = timedelta(days=5)
QUESTIONS_PER_COMPETENCY_MIN = 3

OUTREACH_YES_BUTTON = "✅ Так, цікаво дізнатись більше"
OUTREACH_NO_BUTTON = "❌ Дякую, не зараз"

INVITE_MESSAGE = (
    "Вітаємо! Ми уважно розглянули вашу кандидатуру і раді запросити вас на інтерв'ю з нашою командою. "
    "Найближчим часом з вами зв'яжеться менеджер для узгодження часу. До зустрічі!"
)
REJECTION_MESSAGE = (
    "Дякуємо за час і зусилля, які ви вклали в наш процес відбору. "
    "На жаль, цього разу ми рухаємось з іншими кандидатами. Бажаємо успіхів у пошуку!"
)


@dataclass
class HandlerDeps:
    llm: LLMGateway
    messenger: TelegramGateway
    rng: random.Random = field(default_factory=random.Random)


@dataclass(frozen=True)
class HandlerOutcome:
    status: str
    detail: str | None = None

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


DONE = HandlerOutcome(status="done")


async def _load(session: AsyncSession, job: AutomationJob) -> tuple[Candidate, HiringRequest]:
    candidate = await CandidateRepository(session).require(job.candidate_id)
    request = await HiringRequestRepository(session).require(job.request_id)
    return candidate, request


async def _send_or_raise(messenger: TelegramGateway, chat_id: int, text: str, **kwargs: Any) -> int | None:
    result = await messenger.send_message(chat_id, text, **kwargs)
    if not result.ok:
        raise MessagingError(f"Telegram send failed: {result.error}")
    return result.message_id


async def handle_send_outreach(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    candidate, request = await _load(session, job)
    if not candidate.telegram_chat_id:
        raise PreconditionFailed("No telegram_chat_id, manual outreach required")
    if not request.outreach_template or not request.outreach_template_approved:
        raise PreconditionFailed("Outreach template not approved for this request")
    transition = plan_transition(candidate, EV_OUTREACH_SENT)

    text = await personalize_outreach(deps.llm, request.outreach_template, candidate, request)
    keyboard = inline_keyboard(
        [
            [
                (OUTREACH_YES_BUTTON, encode_callback(OutreachReplyCallback(True, candidate.candidate_id, request.request_id))),
                (OUTREACH_NO_BUTTON, encode_callback(OutreachReplyCallback(False, candidate.candidate_id, request.request_id))),
            ]
        ]
    )
    message_id = await _send_or_raise(deps.messenger, candidate.telegram_chat_id, text, reply_markup=keyboard)

    if message_id is not None:
        match = await MatchRepository(session).get(candidate.candidate_id, request.request_id)
        if match is not None:
            match.outreach_telegram_message_id = message_id
            match.updated_at = utcnow()

    await CandidateRepository(session).update(
        candidate,
        pipeline_stage=transition.to_stage,
        outreach_status="sent",
        outreach_sent_at=utcnow(),
    )
    log_transition(transition, source="automation")
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_OUTREACH,
        content=text,
        metadata={"automated": True, "request_id": request.request_id, "telegram_message_id": message_id},
    )
    return DONE


async def select_questionnaire_questions(
    session: AsyncSession,
    request: HiringRequest,
    rng: random.Random,
) -> list[dict[str, Any]]:
    """Sample 3 or 4 active questions per configured competency, plus any pinned question ids."""
    competency_ids = loads_int_list(request.questionnaire_competency_ids_json)
    question_ids = loads_int_list(request.questionnaire_question_ids_json)
    if not competency_ids and not question_ids:
        raise PreconditionFailed("No questionnaire competencies/questions configured for this request")

    repo = QuestionnaireRepository(session)
    picked = []
    for competency_id in competency_ids:
        pool = await repo.active_questions_for_competency(competency_id)
        count = min(len(pool), int(rng.random() * 2) + QUESTIONS_PER_COMPETENCY_MIN)
        rng.shuffle(pool)
        picked.extend(pool[:count])
    picked.extend(await repo.active_questions_by_id(question_ids))

    names = {
        competency_id: competency.name
        for competency_id, competency in (
            await repo.competencies_by_id(sorted({question.competency_id for question in picked}))
        ).items()
    }
    snapshot: list[dict[str, Any]] = []
    seen: set[int] = set()
    for question in picked:
        if question.question_id in seen:
            continue
        seen.add(question.question_id)
        snapshot.append(
            {
                "question_id": question.question_id,
                "competency_id": question.competency_id,
                "competency_name": names.get(question.competency_id, ""),
                "text": question.text,
            }
        )
    if not snapshot:
        raise PreconditionFailed("No active questions found for configured competencies")
    return snapshot


async def handle_send_questionnaire(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    candidate, request = await _load(session, job)
    questions = await select_questionnaire_questions(session, request, deps.rng)
    transition = plan_transition(candidate, EV_QUESTIONNAIRE_SENT)

    token = secrets.token_urlsafe(24)
    url = questionnaire_link(token)
    if candidate.telegram_chat_id:
        await _send_or_raise(
            deps.messenger,
            candidate.telegram_chat_id,
            f"Ось ваша анкета: {url}\n\nДедлайн — 5 днів. Якщо є питання, пишіть сюди.",
        )

    sent_at = utcnow()
    await QuestionnaireRepository(session).add_response(
        QuestionnaireResponse(
            candidate_id=candidate.candidate_id,
            request_id=request.request_id,
            token=token,
            status="sent",
            questions_json=dumps_compact(questions),
            sent_at=sent_at,
            expires_at=sent_at + QUESTIONNAIRE_TTL,
            created_at=sent_at,
            updated_at=sent_at,
        )
    )
    await CandidateRepository(session).update(
        candidate,
        pipeline_stage=transition.to_stage,
        questionnaire_status="sent",
    )
    log_transition(transition, source="automation")
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_QUESTIONNAIRE_SENT,
        content=f"Надіслано анкету soft skills ({len(questions)} питань)",
        metadata={
            "request_id": request.request_id,
            "token": token,
            "questions_count": len(questions),
            "automated": True,
        },
    )
    return DONE


async def handle_send_test_task(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    candidate, request = await _load(session, job)
    outcome = await send_test_task(
        session,
        candidate=candidate,
        request=request,
        llm=deps.llm,
        messenger=deps.messenger,
    )
    if not outcome.sent:
        return HandlerOutcome(status="skipped", detail=f"test task already {outcome.reason}")
    return DONE


async def _send_decision(
    session: AsyncSession,
    job: AutomationJob,
    deps: HandlerDeps,
    *,
    event: str,
    decision: str,
    default_message: str,
) -> HandlerOutcome:
    candidate, request = await _load(session, job)
    transition = plan_transition(candidate, event)
    message = str(job_payload(job).get("message") or "").strip() or default_message

    if candidate.telegram_chat_id:
        await _send_or_raise(deps.messenger, candidate.telegram_chat_id, message)

    match = await MatchRepository(session).get(candidate.candidate_id, request.request_id)
    if match is not None:
        match.final_decision = decision
        match.updated_at = utcnow()

    await CandidateRepository(session).update(candidate, pipeline_stage=transition.to_stage)
    log_transition(transition, source="automation")
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_TEST_TASK_DECISION,
        content=message,
        metadata={"decision": decision, "automated": True, "request_id": request.request_id},
    )
    return DONE


async def handle_send_invite(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    return await _send_decision(
        session, job, deps, event=EV_INVITE_SENT, decision="invite", default_message=INVITE_MESSAGE
    )


async def handle_send_rejection(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    return await _send_decision(
        session, job, deps, event=EV_REJECTION_SENT, decision="reject", default_message=REJECTION_MESSAGE
    )


Handler = Callable[[AsyncSession, AutomationJob, HandlerDeps], Awaitable[HandlerOutcome]]

HANDLERS: dict[str, Handler] = {
    ACTION_SEND_OUTREACH: handle_send_outreach,
    ACTION_SEND_QUESTIONNAIRE: handle_send_questionnaire,
    ACTION_SEND_TEST_TASK: handle_send_test_task,
    ACTION_SEND_INVITE: handle_send_invite,
    ACTION_SEND_REJECTION: handle_send_rejection,
}


async def execute_job(session: AsyncSession, job: AutomationJob, deps: HandlerDeps) -> HandlerOutcome:
    action_type = (job.action_type or "").strip().lower()
    handler = HANDLERS.get(action_type)
    if handler is None:
        raise ValueError(f"Unsupported action_type: {action_type}")
    return await handler(session, job, deps)
