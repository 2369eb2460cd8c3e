from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from conftest import FakeLLM, add_candidate

from app.core.errors import EntityNotFound, PreconditionFailed
from app.core.json_fields import dumps_compact, loads_dict
from app.models.questionnaire import QuestionnaireResponse
from app.repositories.conversations import ConversationRepository
from app.services.conversations import MSG_QUESTIONNAIRE_SUBMITTED
from app.services.llm_gateway import KIND_QUESTIONNAIRE_EVALUATION
from app.services.questionnaires import (
    EVALUATION_FAILED,
    Q_COMPLETED,
    Q_EXPIRED,
    Q_IN_PROGRESS,
    QuestionnaireClosed,
    evaluate_pending_questionnaires,
    expire_overdue_questionnaires,
    get_questionnaire,
    start_questionnaire,
    submit_questionnaire,
)

SENT_AT = datetime(2025, 3, 10, 9, 0)
QUESTIONS = [
    {"question_id": 1, "competency_id": 10, "competency_name": "Командна робота", "text": "Розкажіть про конфлікт"},
    {"question_id": 2, "competency_id": 11, "competency_name": "Відповідальність", "text": "Опишіть провал"},
]


async def _response(session, candidate, token="q-token-1", **overrides) -> QuestionnaireResponse:
    fields = {
        "candidate_id": candidate.candidate_id,
        "token": token,
        "status": "sent",
        "questions_json": dumps_compact(QUESTIONS),
        "sent_at": SENT_AT,
        "expires_at": SENT_AT + timedelta(days=5),
    }
    fields.update(overrides)
    response = QuestionnaireResponse(**fields)
    session.add(response)
    await session.flush()
    return response


async def test_view_lists_questions_while_open(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    await _response(session, candidate)

    view = await get_questionnaire(session, "q-token-1", now=SENT_AT + timedelta(days=1))

    assert view.status == "sent"
    assert [q["question_id"] for q in view.questions] == [1, 2]


async def test_view_expires_lazily(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent", questionnaire_status="sent")
    response = await _response(session, candidate)

    view = await get_questionnaire(session, "q-token-1", now=SENT_AT + timedelta(days=5, seconds=1))

    assert view.status == Q_EXPIRED
    assert view.questions is None
    assert response.status == Q_EXPIRED
    assert candidate.questionnaire_status == Q_EXPIRED


async def test_unknown_token(session) -> None:
    with pytest.raises(EntityNotFound):
        await get_questionnaire(session, "missing")


async def test_start_then_submit(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    response = await _response(session, candidate)
    now = SENT_AT + timedelta(hours=2)

    await start_questionnaire(session, "q-token-1", now=now)
    assert response.status == Q_IN_PROGRESS
    assert response.started_at == now

    await submit_questionnaire(session, "q-token-1", {"1": " Відповідь один ", "2": "Відповідь два"}, now=now)

    assert response.status == Q_COMPLETED
    assert loads_dict(response.answers_json) == {"1": "Відповідь один", "2": "Відповідь два"}
    assert candidate.pipeline_stage == "questionnaire_done"
    assert candidate.questionnaire_status == Q_COMPLETED
    logs = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_QUESTIONNAIRE_SUBMITTED
    )
    assert len(logs) == 1
    assert logs[0].direction == "inbound"


async def test_submit_requires_every_answer(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    await _response(session, candidate)

    with pytest.raises(PreconditionFailed) as exc:
        await submit_questionnaire(session, "q-token-1", {"1": "Так", "2": "   "}, now=SENT_AT)
    assert "1 залишилось" in str(exc.value)


async def test_closed_questionnaires_reject_submissions(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    await _response(session, candidate)
    answers = {"1": "a", "2": "b"}

    with pytest.raises(QuestionnaireClosed) as exc:
        await submit_questionnaire(session, "q-token-1", answers, now=SENT_AT + timedelta(days=6))
    assert exc.value.reason == "expired"

    await submit_questionnaire(session, "q-token-1", answers, now=SENT_AT)
    with pytest.raises(QuestionnaireClosed) as exc:
        await submit_questionnaire(session, "q-token-1", answers, now=SENT_AT)
    assert exc.value.reason == "already_submitted"


async def test_submit_outside_questionnaire_stage_keeps_stage(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="test_sent")
    await _response(session, candidate)

    await submit_questionnaire(session, "q-token-1", {"1": "a", "2": "b"}, now=SENT_AT)

    assert candidate.pipeline_stage == "test_sent"
    assert candidate.questionnaire_status == Q_COMPLETED


async def test_sweep_expires_only_open_overdue(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    overdue = await _response(session, candidate, token="old")
    fresh = await _response(session, candidate, token="new", expires_at=SENT_AT + timedelta(days=30))
    done = await _response(session, candidate, token="done", status=Q_COMPLETED)

    count = await expire_overdue_questionnaires(session, now=SENT_AT + timedelta(days=6))

    assert count == 1
    assert overdue.status == Q_EXPIRED
    assert fresh.status == "sent"
    assert done.status == Q_COMPLETED


async def test_completed_responses_are_evaluated(session, llm) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    response = await _response(session, candidate)
    await submit_questionnaire(session, "q-token-1", {"1": "a", "2": "b"}, now=SENT_AT)

    summary = await evaluate_pending_questionnaires(session, llm=llm)

    assert summary == {"processed": 1, "successful": 1, "failed": 0}
    assert response.ai_score == 7
    assert response.evaluated_at is not None
    assert (await evaluate_pending_questionnaires(session, llm=llm))["processed"] == 0


async def test_unparseable_evaluation_is_flagged(session) -> None:
    candidate = await add_candidate(session, pipeline_stage="questionnaire_sent")
    response = await _response(session, candidate)
    await submit_questionnaire(session, "q-token-1", {"1": "a", "2": "b"}, now=SENT_AT)

    summary = await evaluate_pending_questionnaires(
        session, llm=FakeLLM({KIND_QUESTIONNAIRE_EVALUATION: "Кандидат хороший"})
    )

    assert summary["failed"] == 1
    assert response.ai_score is None
    assert loads_dict(response.ai_evaluation_json) == EVALUATION_FAILED
