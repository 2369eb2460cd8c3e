from __future__ import annotations

from datetime import timedelta

from conftest import FakeLLM, FakeMessenger, add_candidate, add_request
from sqlalchemy import func, select

from app.core.datetime_utils import format_uk_datetime, utcnow
from app.models.candidate import Candidate
from app.models.conversation import CandidateConversation
from app.repositories.conversations import ConversationRepository
from app.repositories.matches import MatchRepository
from app.schemas.telegram import TelegramUpdate
from app.services.callback_payloads import (
    FEEDBACK_LABELS,
    FeedbackCallback,
    OutreachReplyCallback,
    encode_callback,
)
from app.services.conversations import MSG_AI_REPLY, MSG_CANDIDATE_RESPONSE, MSG_DEADLINE_EXTENSION_GRANTED
from app.services.llm_gateway import KIND_CLASSIFICATION, KIND_DEADLINE, KIND_TEXT, LLMGatewayError
from app.services.message_generation import QUESTION_FALLBACK_REPLY
from app.services.take_home_tasks import MAX_EXTENSIONS_MESSAGE
from app.services.webhook import (
    FEEDBACK_CALLBACK_ACK,
    FEEDBACK_THANKS,
    NEGATIVE_REPLY,
    OUTREACH_NO_LOG,
    SUBMISSION_FEEDBACK_PROMPT,
    UNKNOWN_SENDER_MESSAGE,
    TelegramWebhookProcessor,
)

CHAT_ID = 555


def _message_update(text: str, username: str | None = "Olena") -> TelegramUpdate:
    return TelegramUpdate.model_validate(
        {
            "update_id": 1,
            "message": {
                "message_id": 10,
                "chat": {"id": CHAT_ID, "type": "private"},
                "from": {"id": 99, "first_name": "Олена", "username": username},
                "text": text,
            },
        }
    )


def _callback_update(data: str) -> TelegramUpdate:
    return TelegramUpdate.model_validate(
        {
            "update_id": 2,
            "callback_query": {
                "id": "cb-1",
                "from": {"id": 99},
                "message": {"message_id": 42, "chat": {"id": CHAT_ID}},
                "data": data,
            },
        }
    )


def _classified(category: str) -> FakeLLM:
    return FakeLLM({KIND_CLASSIFICATION: {"category": category, "confidence": 0.9, "extracted_info": {}}})


async def _matched_candidate(session, **overrides):
    request = await add_request(session)
    fields = {"pipeline_stage": "outreach_sent", "telegram_username": "olena"}
    fields.update(overrides)
    candidate = await add_candidate(session, **fields)
    await MatchRepository(session).upsert(
        candidate_id=candidate.candidate_id,
        request_id=request.request_id,
        match_score=80,
        match_explanation="Strong fit",
    )
    return candidate, request


async def test_start_offers_the_application_form(session, llm, messenger) -> None:
    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(_message_update("/start"))

    assert (await session.execute(select(func.count(Candidate.candidate_id)))).scalar_one() == 0
    assert len(messenger.sent) == 1
    button = messenger.sent[0]["reply_markup"]["inline_keyboard"][0][0]
    assert button["web_app"]["url"].endswith("/apply")
    assert messenger.sent[0]["text"].startswith("Привіт, Олена!")
    assert (await session.execute(select(func.count(CandidateConversation.conversation_id)))).scalar_one() == 0


async def test_unknown_sender_is_pointed_to_the_form(session, llm, messenger) -> None:
    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(_message_update("Привіт", "stranger"))

    assert [entry["text"] for entry in messenger.sent] == [UNKNOWN_SENDER_MESSAGE]
    assert llm.calls == []


async def test_ready_reply_sends_the_test_task(session, messenger) -> None:
    candidate, request = await _matched_candidate(session)
    processor = TelegramWebhookProcessor(session, llm=_classified("positive_ready"), messenger=messenger)

    await processor.handle(_message_update("Так, готова!"))

    assert candidate.telegram_chat_id == CHAT_ID
    assert candidate.test_task_status == "sent"
    assert candidate.pipeline_stage == "test_sent"
    assert candidate.test_task_request_id == request.request_id
    assert len(messenger.sent) == 1
    assert request.test_task_url in messenger.sent[0]["text"]
    inbound = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_CANDIDATE_RESPONSE
    )
    assert [log.content for log in inbound] == ["Так, готова!"]


async def test_negative_reply_declines(session, messenger) -> None:
    candidate, _ = await _matched_candidate(session, telegram_chat_id=CHAT_ID)
    processor = TelegramWebhookProcessor(session, llm=_classified("negative"), messenger=messenger)

    await processor.handle(_message_update("Дякую, не цікаво"))

    assert [entry["text"] for entry in messenger.sent] == [NEGATIVE_REPLY]
    assert candidate.pipeline_stage == "outreach_declined"
    assert candidate.outreach_status == "declined"


async def test_feedback_button_is_recorded(session, llm, messenger) -> None:
    candidate = await add_candidate(session, telegram_chat_id=CHAT_ID)
    data = encode_callback(FeedbackCallback("hard", candidate.candidate_id))

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(_callback_update(data))

    assert messenger.answered == [("cb-1", FEEDBACK_CALLBACK_ACK)]
    assert candidate.test_task_candidate_feedback == FEEDBACK_LABELS["hard"]
    assert [entry["text"] for entry in messenger.sent] == [FEEDBACK_THANKS]


async def test_legacy_feedback_button_still_works(session, llm, messenger) -> None:
    candidate = await add_candidate(session, telegram_chat_id=CHAT_ID)

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(
        _callback_update(f"feedback_easy_{candidate.candidate_id}")
    )

    assert candidate.test_task_candidate_feedback == FEEDBACK_LABELS["easy"]


async def test_outreach_buttons(session, llm, messenger) -> None:
    candidate, request = await _matched_candidate(session, telegram_chat_id=CHAT_ID)
    processor = TelegramWebhookProcessor(session, llm=llm, messenger=messenger)

    await processor.handle(
        _callback_update(encode_callback(OutreachReplyCallback(True, candidate.candidate_id, request.request_id)))
    )

    assert messenger.edited == [(CHAT_ID, 42)]
    assert candidate.outreach_status == "responded"
    assert candidate.test_task_status == "sent"

    declined, other_request = await _matched_candidate(session, email="other@example.com", telegram_chat_id=CHAT_ID + 1)
    await processor.handle(
        _callback_update(encode_callback(OutreachReplyCallback(False, declined.candidate_id, other_request.request_id)))
    )

    assert declined.pipeline_stage == "outreach_declined"
    logs = await ConversationRepository(session).list_for_candidate(
        declined.candidate_id, message_type=MSG_CANDIDATE_RESPONSE
    )
    assert [log.content for log in logs] == [OUTREACH_NO_LOG]


async def test_foreign_callback_data_is_only_acknowledged(session, llm, messenger) -> None:
    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(_callback_update("something_else"))

    assert messenger.answered == [("cb-1", None)]
    assert messenger.sent == []


class ExplodingMessenger(FakeMessenger):
    async def send_message(self, chat_id, text, *, reply_markup=None, parse_mode=None):
        raise RuntimeError("network down")


async def test_handle_never_raises(session) -> None:
    candidate, _ = await _matched_candidate(session, telegram_chat_id=CHAT_ID)
    processor = TelegramWebhookProcessor(session, llm=_classified("negative"), messenger=ExplodingMessenger())

    await processor.handle(_message_update("Ні, дякую"))

    await session.refresh(candidate)
    inbound = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_CANDIDATE_RESPONSE
    )
    assert len(inbound) == 1
    assert candidate.pipeline_stage == "outreach_sent"


async def _candidate_with_task(session, **overrides):
    deadline = utcnow() + timedelta(days=2)
    fields = {
        "telegram_chat_id": CHAT_ID,
        "pipeline_stage": "test_sent",
        "test_task_status": "sent",
        "test_task_sent_at": utcnow(),
        "test_task_original_deadline": deadline,
        "test_task_current_deadline": deadline,
    }
    fields.update(overrides)
    return await _matched_candidate(session, **fields)


async def test_deadline_extension_reply_is_relayed(session, messenger) -> None:
    candidate, _ = await _candidate_with_task(session)
    requested = candidate.test_task_current_deadline + timedelta(days=2)
    llm = FakeLLM(
        {
            KIND_CLASSIFICATION: {"category": "request_deadline_extension", "confidence": 0.9},
            KIND_DEADLINE: {
                "requested_date": f"{requested.isoformat()}+00:00",
                "additional_days": 2,
                "is_reasonable": True,
                "reason": "Хвороба",
            },
        }
    )

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(
        _message_update("Можна ще 2 дні? Захворіла")
    )

    assert candidate.test_task_extensions_count == 1
    assert candidate.test_task_current_deadline == requested
    granted = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_DEADLINE_EXTENSION_GRANTED
    )
    assert [entry["text"] for entry in messenger.sent] == [granted[0].content]
    assert format_uk_datetime(requested) in messenger.sent[0]["text"]


async def test_deadline_extension_limit_reply_is_relayed(session, messenger) -> None:
    await _candidate_with_task(session, test_task_extensions_count=2)
    llm = FakeLLM({KIND_CLASSIFICATION: {"category": "request_deadline_extension", "confidence": 0.9}})

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(_message_update("Ще тиждень?"))

    assert [entry["text"] for entry in messenger.sent] == [MAX_EXTENSIONS_MESSAGE]
    assert [kind for kind, _ in llm.calls] == [KIND_CLASSIFICATION]


async def test_submission_is_saved_and_feedback_requested(session, messenger) -> None:
    candidate, _ = await _candidate_with_task(session)
    processor = TelegramWebhookProcessor(session, llm=_classified("test_task_submission"), messenger=messenger)

    await processor.handle(_message_update("Ось моє рішення: https://docs.example.com/solution"))

    assert candidate.test_task_status == "submitted_on_time"
    assert candidate.test_task_submission == "Ось моє рішення: https://docs.example.com/solution"
    assert candidate.pipeline_stage == "test_done"
    assert len(messenger.sent) == 1
    assert messenger.sent[0]["text"] == SUBMISSION_FEEDBACK_PROMPT
    rows = messenger.sent[0]["reply_markup"]["inline_keyboard"]
    assert [[button["text"] for button in row] for row in rows] == [
        [FEEDBACK_LABELS["easy"], FEEDBACK_LABELS["ok"]],
        [FEEDBACK_LABELS["hard"], FEEDBACK_LABELS["very_hard"]],
    ]
    assert [button["callback_data"] for row in rows for button in row] == [
        encode_callback(FeedbackCallback(rating, candidate.candidate_id))
        for rating in ("easy", "ok", "hard", "very_hard")
    ]
    inbound = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_CANDIDATE_RESPONSE
    )
    assert len(inbound) == 1


async def test_question_is_answered_about_the_best_match(session, messenger) -> None:
    candidate, request = await _matched_candidate(session, telegram_chat_id=CHAT_ID)
    other = await add_request(session, title="Data Analyst")
    await MatchRepository(session).upsert(
        candidate_id=candidate.candidate_id, request_id=other.request_id, match_score=40, match_explanation="Weak"
    )
    llm = FakeLLM(
        {
            KIND_CLASSIFICATION: {"category": "questions_about_job", "confidence": 0.9},
            KIND_TEXT: "Команда працює віддалено. Чи готові ви до тестового завдання?",
        }
    )

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(
        _message_update("Це віддалена робота?")
    )

    kind, prompt = llm.calls[-1]
    assert kind == KIND_TEXT
    assert request.title in prompt
    assert other.title not in prompt
    assert "Це віддалена робота?" in prompt
    answer = "Команда працює віддалено. Чи готові ви до тестового завдання?"
    assert [entry["text"] for entry in messenger.sent] == [answer]
    replies = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_AI_REPLY, direction="outbound"
    )
    assert [log.content for log in replies] == [answer]


async def test_question_falls_back_when_generation_fails(session, messenger) -> None:
    candidate, _ = await _matched_candidate(session, telegram_chat_id=CHAT_ID)
    llm = FakeLLM(
        {
            KIND_CLASSIFICATION: {"category": "positive_with_questions", "confidence": 0.9},
            KIND_TEXT: LLMGatewayError("timeout"),
        }
    )

    await TelegramWebhookProcessor(session, llm=llm, messenger=messenger).handle(
        _message_update("Так, цікаво! А який графік?")
    )

    assert [entry["text"] for entry in messenger.sent] == [QUESTION_FALLBACK_REPLY]
    replies = await ConversationRepository(session).list_for_candidate(
        candidate.candidate_id, message_type=MSG_AI_REPLY, direction="outbound"
    )
    assert [log.content for log in replies] == [QUESTION_FALLBACK_REPLY]
