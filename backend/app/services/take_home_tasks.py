from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.datetime_utils import as_utc_aware, company_tz, format_uk_datetime, to_local, to_utc_naive, utcnow
from app.core.errors import PreconditionFailed
from app.core.pipeline_machine import ACTION_SEND_INVITE, ACTION_SEND_REJECTION, EV_TEST_TASK_SENT, EV_TEST_TASK_SUBMITTED
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.repositories.candidates import CandidateRepository
from app.repositories.hiring_requests import HiringRequestRepository
from app.repositories.matches import MatchRepository
from app.services import prompts
from app.services.ai_parsing import ParseError, parse_deadline_extension, parse_submission_evaluation
from app.services.automation_queue import EnqueueResult, enqueue_job
from app.services.conversations import (
    MSG_CANDIDATE_RESPONSE,
    MSG_DEADLINE_EXTENSION_DENIED,
    MSG_DEADLINE_EXTENSION_GRANTED,
    MSG_TEST_TASK,
    log_message,
)
from app.services.llm_gateway import KIND_DEADLINE, KIND_SUBMISSION_EVALUATION, LLMGateway, LLMGatewayError
from app.services.message_generation import generate_task_message
from app.services.messaging import MessagingError, TelegramGateway
from app.services.pipeline_transitions import apply_pipeline_event_if_allowed, log_transition, plan_transition
from app.services.public_links import submission_link

logger = logging.getLogger("vamos.test_tasks")

TASK_NOT_SENT = "not_sent"
TASK_SCHEDULED = "scheduled"
TASK_SENT = "sent"
TASK_SUBMITTED_ON_TIME = "submitted_on_time"
TASK_SUBMITTED_LATE = "submitted_late"
TASK_EVALUATING = "evaluating"
TASK_EVALUATED = "evaluated"
TASK_APPROVED = "approved"
TASK_REJECTED = "rejected"

SUBMITTED_STATUSES = frozenset(
    {TASK_SUBMITTED_ON_TIME, TASK_SUBMITTED_LATE, TASK_EVALUATING, TASK_EVALUATED, TASK_APPROVED, TASK_REJECTED}
)

DEADLINE_HOUR = 18
MAX_EXTENSIONS = 2
MAX_EXTENSION_DAYS = 7
SUBMISSION_LOG_PREVIEW_CHARS = 500

EVALUATION_FAILED_TEXT = "Error during automatic evaluation. Manual review needed."

MAX_EXTENSIONS_MESSAGE = (
    "На жаль, дедлайн вже був продовжений двічі. Якщо вам потрібен особливий виняток, "
    "напишіть нам окремо, і ми обговоримо індивідуально."
)
EXTENSION_TOO_LONG_MESSAGE = (
    "На жаль, не можу продовжити дедлайн більше ніж на 7 днів. "
    "Якщо вам потрібно більше часу, зв'яжіться з нами напряму."
)
NO_DEADLINE_MESSAGE = "Наразі у вас немає активного тестового завдання з дедлайном."


@dataclass(frozen=True)
class TaskSendOutcome:
    status: str
    reason: str | None = None
    deadline: datetime | None = None
    message_id: int | None = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"


@dataclass(frozen=True)
class ExtensionOutcome:
    granted: bool
    reason: str
    message: str
    new_deadline: datetime | None = None
    extension_days: float | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    status: str
    late_by_hours: int


def is_task_pending_send(candidate: Candidate) -> bool:
    return candidate.test_task_status in (None, "", TASK_NOT_SENT)


def compute_deadline(now: datetime, days: int, tz: ZoneInfo | None = None) -> datetime:
    """now + days, pinned to 18:00 company-local time that day. Returns naive UTC."""
    tz = tz or company_tz()
    local = to_local(now, tz)
    target = datetime.combine(local.date() + timedelta(days=days), time(DEADLINE_HOUR, 0), tzinfo=tz)
    return target.astimezone(timezone.utc).replace(tzinfo=None)


def late_by_hours(submitted_at: datetime, deadline: datetime | None) -> int:
    if deadline is None:
        return 0
    delta = as_utc_aware(submitted_at) - as_utc_aware(deadline)
    return max(int(delta.total_seconds() // 3600), 0)


async def send_test_task(
    session: AsyncSession,
    *,
    candidate: Candidate,
    request: HiringRequest,
    llm: LLMGateway,
    messenger: TelegramGateway,
    now: datetime | None = None,
    source: str = "automation",
) -> TaskSendOutcome:
    """Shared by the automation handler and the chat flow; sends at most once per candidate."""
    task_url = (request.test_task_url or "").strip()
    if not task_url:
        raise PreconditionFailed(f"Request {request.request_id} has no test task URL")

    if not is_task_pending_send(candidate):
        logger.info(
            "test_task_already_sent",
            extra={"candidate_id": candidate.candidate_id, "status": candidate.test_task_status},
        )
        return TaskSendOutcome(status="skipped", reason=candidate.test_task_status)

    transition = plan_transition(candidate, EV_TEST_TASK_SENT)

    sent_at = to_utc_naive(now) if now else utcnow()
    deadline_days = request.test_task_deadline_days or settings.default_test_task_deadline_days
    deadline = compute_deadline(sent_at, deadline_days)
    token = candidate.test_task_token or secrets.token_urlsafe(24)

    message = await generate_task_message(
        llm,
        candidate,
        request,
        task_url=task_url,
        deadline_text=format_uk_datetime(deadline),
        submission_url=submission_link(token),
    )

    message_id = None
    if candidate.telegram_chat_id:
        result = await messenger.send_message(candidate.telegram_chat_id, message)
        if not result.ok:
            raise MessagingError(f"Telegram send failed: {result.error}")
        message_id = result.message_id

    await CandidateRepository(session).update(
        candidate,
        pipeline_stage=transition.to_stage,
        test_task_status=TASK_SENT,
        test_task_request_id=request.request_id,
        test_task_token=token,
        test_task_sent_at=sent_at,
        test_task_original_deadline=deadline,
        test_task_current_deadline=deadline,
        test_task_extensions_count=0,
    )
    log_transition(transition, source=source)

    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_TEST_TASK,
        content=message,
        metadata={
            "request_id": request.request_id,
            "deadline": as_utc_aware(deadline).isoformat(),
            "deadline_days": deadline_days,
            "automated": source == "automation",
            "delivered": message_id is not None,
        },
    )
    return TaskSendOutcome(status="sent", deadline=deadline, message_id=message_id)


async def _deny_extension(
    session: AsyncSession,
    candidate: Candidate,
    *,
    reason: str,
    message: str,
    extra: dict | None = None,
) -> ExtensionOutcome:
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_DEADLINE_EXTENSION_DENIED,
        content=message,
        metadata={"reason": reason, **(extra or {})},
    )
    return ExtensionOutcome(granted=False, reason=reason, message=message)


async def request_deadline_extension(
    session: AsyncSession,
    *,
    candidate: Candidate,
    text: str,
    llm: LLMGateway,
    now: datetime | None = None,
) -> ExtensionOutcome:
    current_deadline = candidate.test_task_current_deadline
    if current_deadline is None:
        return await _deny_extension(session, candidate, reason="no_deadline", message=NO_DEADLINE_MESSAGE)

    if (candidate.test_task_extensions_count or 0) >= MAX_EXTENSIONS:
        return await _deny_extension(
            session,
            candidate,
            reason="max_extensions_reached",
            message=MAX_EXTENSIONS_MESSAGE,
        )

    current = as_utc_aware(now or utcnow())
    prompt = prompts.deadline_request_prompt(text, current_deadline=as_utc_aware(current_deadline), now=current)
    try:
        parsed = parse_deadline_extension(await llm.generate(prompt, kind=KIND_DEADLINE))
    except (LLMGatewayError, ParseError) as exc:
        logger.warning("deadline_request_unparsed", extra={"candidate_id": candidate.candidate_id, "error": str(exc)})
        return await _deny_extension(
            session,
            candidate,
            reason="unparsed",
            message=EXTENSION_TOO_LONG_MESSAGE,
        )

    requested = parsed.requested_date
    extension_days = None
    if requested is not None:
        extension_days = round((as_utc_aware(requested) - as_utc_aware(current_deadline)).total_seconds() / 86400, 2)

    if (
        not parsed.is_reasonable
        or requested is None
        or extension_days is None
        or extension_days <= 0
        or extension_days > MAX_EXTENSION_DAYS
    ):
        return await _deny_extension(
            session,
            candidate,
            reason="exceeds_limit",
            message=EXTENSION_TOO_LONG_MESSAGE,
            extra={"requested_days": parsed.additional_days if extension_days is None else extension_days},
        )

    new_deadline = to_utc_naive(as_utc_aware(requested))
    await CandidateRepository(session).update(
        candidate,
        test_task_current_deadline=new_deadline,
        test_task_extensions_count=(candidate.test_task_extensions_count or 0) + 1,
    )
    message = f"Звісно! Продовжую дедлайн до {format_uk_datetime(new_deadline)}. Успіхів з виконанням!"
    await log_message(
        session,
        candidate_id=candidate.candidate_id,
        direction="outbound",
        message_type=MSG_DEADLINE_EXTENSION_GRANTED,
        content=message,
        metadata={
            "old_deadline": as_utc_aware(current_deadline).isoformat(),
            "new_deadline": as_utc_aware(new_deadline).isoformat(),
            "extension_days": extension_days,
        },
    )
    return ExtensionOutcome(
        granted=True,
        reason="granted",
        message=message,
        new_deadline=new_deadline,
        extension_days=extension_days,
    )


async def submit_test_task(
    session: AsyncSession,
    *,
    candidate: Candidate,
    submission_text: str,
    now: datetime | None = None,
    log_inbound: bool = True,
) -> SubmissionOutcome:
    text = (submission_text or "").strip()
    if not text:
        raise PreconditionFailed("Submission text is required")
    if candidate.test_task_status in SUBMITTED_STATUSES:
        raise PreconditionFailed("Test task already submitted")
    if candidate.test_task_status != TASK_SENT:
        raise PreconditionFailed("Test task has not been sent")

    submitted_at = to_utc_naive(now) if now else utcnow()
    late_hours = late_by_hours(submitted_at, candidate.test_task_current_deadline)
    status = TASK_SUBMITTED_LATE if late_hours > 0 else TASK_SUBMITTED_ON_TIME

    await apply_pipeline_event_if_allowed(
        session,
        candidate=candidate,
        event=EV_TEST_TASK_SUBMITTED,
        source="test_task_submission",
        fields={
            "test_task_status": status,
            "test_task_submission": text,
            "test_task_submitted_at": submitted_at,
            "test_task_late_by_hours": late_hours,
        },
    )

    if log_inbound:
        await log_message(
            session,
            candidate_id=candidate.candidate_id,
            direction="inbound",
            message_type=MSG_CANDIDATE_RESPONSE,
            content=f"[TEST TASK SUBMISSION]\n\n{text[:SUBMISSION_LOG_PREVIEW_CHARS]}",
            metadata={"late_by_hours": late_hours, "status": status},
        )
    return SubmissionOutcome(status=status, late_by_hours=late_hours)


async def evaluate_submission(session: AsyncSession, *, candidate: Candidate, llm: LLMGateway) -> bool:
    """Score a stored submission. Returns False when evaluation fell back to manual review."""
    request = None
    if candidate.test_task_request_id is not None:
        request = await HiringRequestRepository(session).get(candidate.test_task_request_id)
    repo = CandidateRepository(session)
    await repo.update(candidate, test_task_status=TASK_EVALUATING)

    prompt = prompts.submission_evaluation_prompt(
        candidate.test_task_submission or "",
        (request.test_task_evaluation_criteria if request else None) or "Загальна якість, повнота, структура",
        (request.description if request else None) or (request.title if request else ""),
    )
    try:
        result = parse_submission_evaluation(await llm.generate(prompt, kind=KIND_SUBMISSION_EVALUATION))
    except (LLMGatewayError, ParseError) as exc:
        logger.warning("submission_evaluation_failed", extra={"candidate_id": candidate.candidate_id, "error": str(exc)})
        await repo.update(
            candidate,
            test_task_status=TASK_SUBMITTED_ON_TIME
            if not candidate.test_task_late_by_hours
            else TASK_SUBMITTED_LATE,
            test_task_ai_evaluation=EVALUATION_FAILED_TEXT,
        )
        return False

    evaluation_text = result.evaluation
    if result.strengths:
        evaluation_text += "\n\nСильні сторони:\n" + "\n".join(f"- {item}" for item in result.strengths)
    if result.improvements:
        evaluation_text += "\n\nЩо покращити:\n" + "\n".join(f"- {item}" for item in result.improvements)
    await repo.update(
        candidate,
        test_task_status=TASK_EVALUATED,
        test_task_ai_score=result.score,
        test_task_ai_evaluation=evaluation_text,
    )
    return True


async def candidates_awaiting_evaluation(session: AsyncSession, *, limit: int) -> list[Candidate]:
    return list(
        (
            await session.execute(
                select(Candidate)
                .where(
                    Candidate.test_task_status.in_([TASK_SUBMITTED_ON_TIME, TASK_SUBMITTED_LATE]),
                    Candidate.test_task_ai_evaluation.is_(None),
                )
                .order_by(Candidate.test_task_submitted_at.asc(), Candidate.candidate_id.asc())
                .limit(limit)
            )
        ).scalars().all()
    )


async def record_feedback(session: AsyncSession, *, candidate_id: int, label: str) -> Candidate | None:
    repo = CandidateRepository(session)
    candidate = await repo.get(candidate_id)
    if candidate is None:
        return None
    await repo.update(candidate, test_task_candidate_feedback=label)
    return candidate


async def decide_test_task(
    session: AsyncSession,
    *,
    candidate: Candidate,
    decision: str,
    request_id: int | None = None,
    message: str | None = None,
) -> EnqueueResult:
    """Record the manager's approve/reject call and queue the matching candidate message."""
    if decision not in (TASK_APPROVED, TASK_REJECTED):
        raise ValueError(f"Unsupported decision: {decision}")
    request_id = request_id or candidate.test_task_request_id
    if request_id is None:
        raise PreconditionFailed("No request is linked to this test task")

    await CandidateRepository(session).update(candidate, test_task_status=decision)
    match = await MatchRepository(session).get(candidate.candidate_id, request_id)
    if match is not None:
        match.status = "interview" if decision == TASK_APPROVED else "rejected"
        match.updated_at = utcnow()
        await session.flush()

    payload = {"message": message.strip()} if message and message.strip() else {}
    return await enqueue_job(
        session,
        action_type=ACTION_SEND_INVITE if decision == TASK_APPROVED else ACTION_SEND_REJECTION,
        candidate_id=candidate.candidate_id,
        request_id=request_id,
        payload=payload,
    )


async def evaluate_pending_submissions(
    session: AsyncSession,
    *,
    llm: LLMGateway,
    batch_size: int = 5,
) -> dict[str, int]:
    summary = {"processed": 0, "successful": 0, "failed": 0}
    for candidate in await candidates_awaiting_evaluation(session, limit=batch_size):
        summary["processed"] += 1
        ok = await evaluate_submission(session, candidate=candidate, llm=llm)
        await session.commit()
        summary["successful" if ok else "failed"] += 1
    return summary
