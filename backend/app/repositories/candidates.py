from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utcnow
from app.core.errors import EntityNotFound
from app.models.candidate import Candidate


def normalize_telegram_username(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = raw.strip().lstrip("@").strip()
    return value.lower() or None


class CandidateRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, candidate_id: int) -> Candidate | None:
        return await self.session.get(Candidate, candidate_id)

    async def require(self, candidate_id: int) -> Candidate:
        candidate = await self.get(candidate_id)
        if candidate is None:
            raise EntityNotFound("Candidate", candidate_id)
        return candidate

    async def find_by_telegram_username(self, username: str | None) -> Candidate | None:
        normalized = normalize_telegram_username(username)
        if not normalized:
            return None
        return (
            await self.session.execute(
                select(Candidate)
                .where(func.lower(func.trim(Candidate.telegram_username)) == normalized)
                .order_by(Candidate.candidate_id.desc())
                .limit(1)
            )
        ).scalars().first()

    async def find_by_test_task_token(self, token: str) -> Candidate | None:
        if not token:
            return None
        return (
            await self.session.execute(select(Candidate).where(Candidate.test_task_token == token))
        ).scalars().first()

    async def add(self, candidate: Candidate) -> Candidate:
        self.session.add(candidate)
        await self.session.flush()
        return candidate

    async def update(self, candidate: Candidate, **fields: Any) -> Candidate:
        for name, value in fields.items():
            if not hasattr(Candidate, name):
                raise AttributeError(f"Candidate has no field '{name}'")
            setattr(candidate, name, value)
        candidate.updated_at = utcnow()
        await self.session.flush()
        return candidate
