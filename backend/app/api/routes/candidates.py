import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import AutomationError
from app.core.json_fields import dumps_compact
from app.core.pipeline_machine import NEW, allowed_actions, normalize_stage
from app.models.candidate import Candidate
from app.repositories.candidates import CandidateRepository, normalize_telegram_username
from app.schemas.candidate import CandidateApplyIn, CandidateApplyOut, CandidateStatusOut
from app.services.analysis import enqueue_analysis

logger = logging.getLogger("vamos.candidates")

router = APIRouter(prefix="/candidates", tags=["candidates"])


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@router.post("/apply", response_model=CandidateApplyOut, status_code=status.HTTP_201_CREATED)
async def apply(payload: CandidateApplyIn, session: AsyncSession = Depends(deps.get_db_session)):
    skills = [skill.strip() for skill in payload.key_skills if skill and skill.strip()]
    candidate = Candidate(
        first_name=payload.first_name.strip(),
        last_name=_clean(payload.last_name),
        email=str(payload.email).strip().lower(),
        phone=_clean(payload.phone),
        source="warm",
        about_text=_clean(payload.about_text),
        why_vamos=_clean(payload.why_vamos),
        key_skills_json=dumps_compact(skills) if skills else None,
        linkedin_url=_clean(payload.linkedin_url),
        portfolio_url=_clean(payload.portfolio_url),
        telegram_username=normalize_telegram_username(payload.telegram_username),
        preferred_contact_methods=dumps_compact(list(dict.fromkeys(payload.preferred_contact_methods))),
        pipeline_stage=NEW,
        test_task_status="not_sent",
        test_task_extensions_count=0,
    )
    await CandidateRepository(session).add(candidate)
    await enqueue_analysis(session, candidate.candidate_id)
    await session.commit()
    logger.info("candidate_applied", extra={"candidate_id": candidate.candidate_id})
    return CandidateApplyOut(candidate_id=candidate.candidate_id, analysis_queued=True)


@router.get("/{candidate_id}/status", response_model=CandidateStatusOut)
async def candidate_status(candidate_id: int, session: AsyncSession = Depends(deps.get_db_session)):
    try:
        candidate = await CandidateRepository(session).require(candidate_id)
    except AutomationError as exc:
        raise deps.http_error(exc) from exc
    stage = normalize_stage(candidate.pipeline_stage)
    return CandidateStatusOut(
        candidate_id=candidate.candidate_id,
        pipeline_stage=stage,
        allowed_actions=sorted(allowed_actions(stage)),
        outreach_status=candidate.outreach_status,
        test_task_status=candidate.test_task_status,
        test_task_current_deadline=candidate.test_task_current_deadline,
        questionnaire_status=candidate.questionnaire_status,
        ai_score=candidate.ai_score,
    )
