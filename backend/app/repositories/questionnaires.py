from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.questionnaire import QuestionnaireQuestion, QuestionnaireResponse, SoftSkillCompetency


class QuestionnaireRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def competencies_by_id(self, competency_ids: list[int]) -> dict[int, SoftSkillCompetency]:
        if not competency_ids:
            return {}
        rows = (
            await self.session.execute(
                select(SoftSkillCompetency).where(SoftSkillCompetency.competency_id.in_(competency_ids))
            )
        ).scalars().all()
        return {row.competency_id: row for row in rows}

    async def active_questions_for_competency(self, competency_id: int) -> list[QuestionnaireQuestion]:
        return list(
            (
                await self.session.execute(
                    select(QuestionnaireQuestion)
                    .where(
                        QuestionnaireQuestion.competency_id == competency_id,
                        QuestionnaireQuestion.is_active.is_(True),
                    )
                    .order_by(QuestionnaireQuestion.question_id.asc())
                )
            ).scalars().all()
        )

    async def active_questions_by_id(self, question_ids: list[int]) -> list[QuestionnaireQuestion]:
        if not question_ids:
            return []
        rows = (
            await self.session.execute(
                select(QuestionnaireQuestion).where(
                    QuestionnaireQuestion.question_id.in_(question_ids),
                    QuestionnaireQuestion.is_active.is_(True),
                )
            )
        ).scalars().all()
        by_id = {row.question_id: row for row in rows}
        # Keep the configured order.
        return [by_id[qid] for qid in question_ids if qid in by_id]

    async def response_by_token(self, token: str) -> QuestionnaireResponse | None:
        return (
            await self.session.execute(select(QuestionnaireResponse).where(QuestionnaireResponse.token == token))
        ).scalars().first()

    async def add_response(self, response: QuestionnaireResponse) -> QuestionnaireResponse:
        self.session.add(response)
        await self.session.flush()
        return response
