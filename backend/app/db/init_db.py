from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from app.db.base import Base

# Model modules register their tables on Base.metadata at import time.
from app.models import analysis_queue as _analysis_queue  # noqa: F401
from app.models import automation_job as _automation_job  # noqa: F401
from app.models import candidate as _candidate  # noqa: F401
from app.models import candidate_match as _candidate_match  # noqa: F401
from app.models import conversation as _conversation  # noqa: F401
from app.models import hiring_request as _hiring_request  # noqa: F401
from app.models import outreach_queue as _outreach_queue  # noqa: F401
from app.models import questionnaire as _questionnaire  # noqa: F401


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
