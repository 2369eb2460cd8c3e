from __future__ import annotations

import asyncio
from datetime import timedelta

import anyio
import pytest
from conftest import FakeMessenger, add_candidate
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.datetime_utils import utcnow
from app.core.errors import PreconditionFailed
from app.db.init_db import create_tables
from app.models.outreach_queue import OutreachQueueItem
from app.repositories.conversations import ConversationRepository
from app.schemas.ai import AnalysisResult
from app.services.conversations import MSG_WARM_INTRO
from app.services.llm_gateway import MOCK_ANALYSIS_RESULT
from app.services.outreach import (
    OUTREACH_CANCELLED,
    OUTREACH_FAILED,
    OUTREACH_SCHEDULED,
    OUTREACH_SENT,
    cancel_outreach,
    claim_outreach_item,
    edit_outreach,
    process_due_outreach,
    schedule_warm_outreach,
    send_outreach_now,
)


def _analysis(score: float = 8.5) -> AnalysisResult:
    return AnalysisResult(**{**MOCK_ANALYSIS_RESULT, "score": score})


async def _item(session, candidate, **overrides) -> OutreachQueueItem:
    now = utcnow()
    fields = {
        "candidate_id": candidate.candidate_id,
        "intro_message": "Привіт, Олено! Дякуємо за заявку до Vamos.",
        "delivery_method": "telegram",
        "status": OUTREACH_SCHEDULED,
        "scheduled_for": now - timedelta(minutes=5),
        "retry_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    item = OutreachQueueItem(**fields)
    session.add(item)
    await session.flush()
    return item


async def test_schedule_prefers_telegram_only_with_an_open_chat(session, llm) -> None:
    methods = '["telegram", "email"]'
    without_chat = await add_candidate(session, telegram_username="olena", preferred_contact_methods=methods)
    with_chat = await add_candidate(
        session, email="chat@example.com", telegram_username="ivan", telegram_chat_id=777, preferred_contact_methods=methods
    )

    first = await schedule_warm_outreach(session, candidate=without_chat, analysis=_analysis(), llm=llm)
    second = await schedule_warm_outreach(session, candidate=with_chat, analysis=_analysis(), llm=llm)

    assert first.delivery_method == "email"
    assert second.delivery_method == "telegram"
    assert first.scheduled_for > without_chat.created_at
    assert first.request_id is None
    assert without_chat.outreach_status == OUTREACH_SCHEDULED


async def test_schedule_skips(session, llm) -> None:
    weak = await add_candidate(session)
    assert await schedule_warm_outreach(session, candidate=weak, analysis=_analysis(6.9), llm=llm) is None

    cold = await add_candidate(session, email="cold@example.com", source="cold")
    assert await schedule_warm_outreach(session, candidate=cold, analysis=_analysis(), llm=llm) is None

    warm = await add_candidate(session, email="warm@example.com")
    assert await schedule_warm_outreach(session, candidate=warm, analysis=_analysis(), llm=llm) is not None
    assert await schedule_warm_outreach(session, candidate=warm, analysis=_analysis(), llm=llm) is None


async def test_edit_only_while_scheduled(session) -> None:
    candidate = await add_candidate(session)
    item = await _item(session, candidate, scheduled_for=utcnow() + timedelta(hours=3))
    later = utcnow() + timedelta(hours=5)

    await edit_outreach(session, item.outreach_id, intro_message="  Новий текст  ", scheduled_for=later)
    assert item.intro_message == "Новий текст"
    assert item.scheduled_for == later

    with pytest.raises(PreconditionFailed):
        await edit_outreach(session, item.outreach_id, scheduled_for=utcnow() - timedelta(minutes=1))
    with pytest.raises(PreconditionFailed):
        await edit_outreach(session, item.outreach_id, intro_message="   ")

    item.status = OUTREACH_SENT
    with pytest.raises(PreconditionFailed):
        await edit_outreach(session, item.outreach_id, intro_message="Ще раз")


async def test_cancel_touches_only_scheduled_items(session) -> None:
    candidate = await add_candidate(session)
    scheduled = await _item(session, candidate)
    sent = await _item(session, candidate, status=OUTREACH_SENT)

    assert await cancel_outreach(session, candidate.candidate_id) == 1

    await session.refresh(scheduled)
    await session.refresh(sent)
    assert scheduled.status == OUTREACH_CANCELLED
    assert sent.status == OUTREACH_SENT
    assert candidate.outreach_status == OUTREACH_CANCELLED


async def test_due_telegram_intro_is_sent_and_logged(session, messenger) -> None:
    candidate = await add_candidate(session, telegram_chat_id=555)
    item = await _item(session, candidate)
    future = await _item(session, candidate, scheduled_for=utcnow() + timedelta(hours=1))

    summary = await process_due_outreach(session, messenger=messenger, delay_seconds=0)

    assert summary == {"processed": 1, "successful": 1, "failed": 0}
    assert [entry["chat_id"] for entry in messenger.sent] == [555]
    assert item.status == OUTREACH_SENT
    assert item.sent_at is not None
    assert future.status == OUTREACH_SCHEDULED
    assert candidate.outreach_status == OUTREACH_SENT
    logs = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_WARM_INTRO
    )
    assert len(logs) == 1


async def test_failed_delivery_is_terminal_until_sent_manually(session) -> None:
    candidate = await add_candidate(session, telegram_chat_id=555)
    item = await _item(session, candidate)
    outreach_id = item.outreach_id

    summary = await process_due_outreach(session, messenger=FakeMessenger(fail=True), delay_seconds=0)
    assert summary["failed"] == 1
    item = await session.get(OutreachQueueItem, outreach_id)
    assert item.status == OUTREACH_FAILED
    assert item.retry_count == 1
    assert "blocked" in item.error_message

    assert (await process_due_outreach(session, messenger=FakeMessenger(), delay_seconds=0))["processed"] == 0

    messenger = FakeMessenger()
    assert await send_outreach_now(session, outreach_id, messenger=messenger) is True
    assert item.status == OUTREACH_SENT
    assert len(messenger.sent) == 1


async def test_email_delivery_without_gmail_fails(session, messenger) -> None:
    candidate = await add_candidate(session)
    await _item(session, candidate, delivery_method="email")

    summary = await process_due_outreach(session, messenger=messenger, delay_seconds=0)

    assert summary["failed"] == 1
    assert messenger.sent == []
    item = (await session.execute(select(OutreachQueueItem))).scalars().one()
    assert item.status == OUTREACH_FAILED


class SlowMessenger(FakeMessenger):
    async def send_message(self, chat_id, text, *, reply_markup=None, parse_mode=None):
        await anyio.sleep(0.05)
        return await super().send_message(chat_id, text, reply_markup=reply_markup, parse_mode=parse_mode)


async def test_overlapping_pollers_send_an_intro_once(tmp_path) -> None:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'outreach.db'}")
    await create_tables(engine)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    try:
        async with factory() as session:
            candidate = await add_candidate(session, telegram_chat_id=555)
            item = await _item(session, candidate)
            outreach_id = item.outreach_id
            await session.commit()

        messenger = SlowMessenger()

        async def poll():
            async with factory() as session:
                return await process_due_outreach(session, messenger=messenger, delay_seconds=0)

        summaries = await asyncio.gather(poll(), poll())

        assert sorted(summary["processed"] for summary in summaries) == [0, 1]
        assert len(messenger.sent) == 1
        async with factory() as session:
            assert (await session.get(OutreachQueueItem, outreach_id)).status == OUTREACH_SENT
    finally:
        await engine.dispose()


async def test_send_now_refuses_an_item_already_in_flight(session, messenger) -> None:
    candidate = await add_candidate(session, telegram_chat_id=555)
    item = await _item(session, candidate)

    assert await claim_outreach_item(session, item.outreach_id, (OUTREACH_SCHEDULED,)) is True
    assert await claim_outreach_item(session, item.outreach_id, (OUTREACH_SCHEDULED,)) is False
    with pytest.raises(PreconditionFailed):
        await send_outreach_now(session, item.outreach_id, messenger=messenger)
    assert messenger.sent == []
