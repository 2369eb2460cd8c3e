from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import EntityNotFound
from app.models.hiring_request import HiringRequest

REQUEST_STATUS_ACTIVE = "active"
REQUEST_STATUS_PAUSED = "paused"
REQUEST_STATUS_CLOSED = "closed"


class HiringRequestRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, request_id: int) -> HiringRequest | None:
        return await self.session.get(HiringRequest, request_id)

    async def require(self, request_id: int) -> HiringRequest:
        request = await self.get(request_id)
        if request is None:
            raise EntityNotFound("Request", request_id)
        return request

    async def list_active(self) -> list[HiringRequest]:
        return list(
            (
                await self.session.execute(
                    select(HiringRequest)
                    .where(HiringRequest.status == REQUEST_STATUS_ACTIVE)
                    .order_by(HiringRequest.request_id.asc())
                )
            ).scalars().all()
        )
