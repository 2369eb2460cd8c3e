from __future__ import annotations

import os

os.environ.setdefault("VAMOS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("VAMOS_LLM_MODE", "mock")
os.environ.setdefault("VAMOS_ENABLE_SCHEDULER", "false")
os.environ.setdefault("VAMOS_ENABLE_GMAIL", "false")

import random
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.json_fields import dumps_compact
from app.db.init_db import create_tables
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.services.automation_handlers import HandlerDeps
from app.services.llm_gateway import LLMGateway
from app.services.messaging import SendResult, TelegramGateway


class FakeLLM(LLMGateway):
    """Mock-mode gateway whose replies can be overridden per kind."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        super().__init__(mode="mock")
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, *, kind: str = "text", max_tokens: int | None = None) -> str:
        self.calls.append((kind, prompt))
        if kind in self.responses:
            reply = self.responses[kind]
            if isinstance(reply, Exception):
                raise reply
            return reply if isinstance(reply, str) else dumps_compact(reply)
        return await super().generate(prompt, kind=kind, max_tokens=max_tokens)


class FakeMessenger(TelegramGateway):
    def __init__(self, *, fail: bool = False) -> None:
        super().__init__(bot_token="test-token")
        self.fail = fail
        self.sent: list[dict[str, Any]] = []
        self.answered: list[tuple[str, str | None]] = []
        self.edited: list[tuple[int, int]] = []

    async def send_message(self, chat_id, text, *, reply_markup=None, parse_mode=None) -> SendResult:
        if self.fail:
            return SendResult(ok=False, error="Forbidden: bot was blocked by the user")
        self.sent.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup})
        return SendResult(ok=True, message_id=1000 + len(self.sent))

    async def answer_callback_query(self, callback_query_id, text=None) -> bool:
        self.answered.append((callback_query_id, text))
        return True

    async def edit_message_reply_markup(self, chat_id, message_id) -> bool:
        self.edited.append((chat_id, message_id))
        return True


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def handler_deps(llm, messenger) -> HandlerDeps:
    return HandlerDeps(llm=llm, messenger=messenger, rng=random.Random(7))


async def add_candidate(session, **overrides) -> Candidate:
    fields: dict[str, Any] = {
        "first_name": "Олена",
        "last_name": "Коваль",
        "email": "olena@example.com",
        "source": "warm",
        "pipeline_stage": "new",
        "test_task_status": "not_sent",
        "test_task_extensions_count": 0,
        "preferred_contact_methods": dumps_compact(["email"]),
    }
    fields.update(overrides)
    candidate = Candidate(**fields)
    session.add(candidate)
    await session.flush()
    return candidate


async def add_request(session, **overrides) -> HiringRequest:
    fields: dict[str, Any] = {
        "title": "Marketing Manager",
        "description": "Lead performance marketing for Vamos",
        "status": "active",
        "required_skills": "Google Ads, Analytics",
        "outreach_template": "Привіт, {first_name}! Маємо вакансію {position}, яка може вам підійти.",
        "outreach_template_approved": True,
        "test_task_url": "https://docs.example.com/task",
        "test_task_deadline_days": 3,
    }
    fields.update(overrides)
    request = HiringRequest(**fields)
    session.add(request)
    await session.flush()
    return request
