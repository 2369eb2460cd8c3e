from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.datetime_utils import utcnow
from app.models.candidate_match import CandidateRequestMatch


class MatchRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, candidate_id: int, request_id: int) -> CandidateRequestMatch | None:
        return (
            await self.session.execute(
                select(CandidateRequestMatch).where(
                    CandidateRequestMatch.candidate_id == candidate_id,
                    CandidateRequestMatch.request_id == request_id,
                )
            )
        ).scalars().first()

    async def list_for_candidate(self, candidate_id: int) -> list[CandidateRequestMatch]:
        return list(
            (
                await self.session.execute(
                    select(CandidateRequestMatch)
                    .where(CandidateRequestMatch.candidate_id == candidate_id)
                    .order_by(CandidateRequestMatch.match_score.desc(), CandidateRequestMatch.match_id.asc())
                )
            ).scalars().all()
        )

    async def best_for_candidate(self, candidate_id: int) -> CandidateRequestMatch | None:
        matches = await self.list_for_candidate(candidate_id)
        return matches[0] if matches else None

    async def upsert(
        self,
        *,
        candidate_id: int,
        request_id: int,
        match_score: float,
        match_explanation: str | None,
    ) -> CandidateRequestMatch:
        match = await self.get(candidate_id, request_id)
        now = utcnow()
        if match is None:
            match = CandidateRequestMatch(
                candidate_id=candidate_id,
                request_id=request_id,
                match_score=match_score,
                match_explanation=match_explanation,
                created_at=now,
                updated_at=now,
            )
            self.session.add(match)
        else:
            match.match_score = match_score
            match.match_explanation = match_explanation
            match.updated_at = now
        await self.session.flush()
        return match
