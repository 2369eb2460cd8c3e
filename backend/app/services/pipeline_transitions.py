from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.pipeline_machine import can_apply, next_stage, normalize_stage
from app.models.candidate import Candidate
from app.repositories.candidates import CandidateRepository

logger = logging.getLogger("vamos.pipeline")


@dataclass(frozen=True)
class PipelineTransition:
    candidate_id: int
    from_stage: str
    to_stage: str
    event: str

    @property
    def changed(self) -> bool:
        return self.from_stage != self.to_stage


def plan_transition(candidate: Candidate, event: str) -> PipelineTransition:
    """Validate `event` against the candidate's current stage without mutating anything."""
    from_stage = normalize_stage(candidate.pipeline_stage)
    return PipelineTransition(
        candidate_id=candidate.candidate_id,
        from_stage=from_stage,
        to_stage=next_stage(from_stage, event),
        event=event,
    )


def log_transition(transition: PipelineTransition, *, source: str | None = None) -> None:
    logger.info(
        "pipeline_stage_change",
        extra={
            "candidate_id": transition.candidate_id,
            "from_stage": transition.from_stage,
            "to_stage": transition.to_stage,
            "event": transition.event,
            "source": source,
        },
    )


async def apply_pipeline_event(
    session: AsyncSession,
    *,
    candidate: Candidate,
    event: str,
    source: str | None = None,
    fields: dict[str, Any] | None = None,
) -> PipelineTransition:
    transition = plan_transition(candidate, event)
    updates = dict(fields or {})
    updates["pipeline_stage"] = transition.to_stage
    await CandidateRepository(session).update(candidate, **updates)
    log_transition(transition, source=source)
    return transition


async def apply_pipeline_event_if_allowed(
    session: AsyncSession,
    *,
    candidate: Candidate,
    event: str,
    source: str | None = None,
    fields: dict[str, Any] | None = None,
) -> PipelineTransition | None:
    """Like apply_pipeline_event, but leaves the stage alone when the event is not allowed."""
    if can_apply(candidate.pipeline_stage, event):
        return await apply_pipeline_event(session, candidate=candidate, event=event, source=source, fields=fields)
    if fields:
        await CandidateRepository(session).update(candidate, **fields)
    logger.info(
        "pipeline_event_skipped",
        extra={"candidate_id": candidate.candidate_id, "stage": candidate.pipeline_stage, "event": event},
    )
    return None
