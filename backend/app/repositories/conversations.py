from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.conversation import CandidateConversation


class ConversationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_candidate(
        self,
        candidate_id: int,
        *,
        message_type: str | None = None,
        direction: str | None = None,
    ) -> list[CandidateConversation]:
        query = select(CandidateConversation).where(CandidateConversation.candidate_id == candidate_id)
        if message_type is not None:
            query = query.where(CandidateConversation.message_type == message_type)
        if direction is not None:
            query = query.where(CandidateConversation.direction == direction)
        query = query.order_by(CandidateConversation.created_at.asc(), CandidateConversation.conversation_id.asc())
        return list((await self.session.execute(query)).scalars().all())
