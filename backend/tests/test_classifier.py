from __future__ import annotations

from datetime import datetime

from conftest import FakeLLM

from app.services.classifier import (
    CATEGORY_DEADLINE_EXTENSION,
    CATEGORY_NEGATIVE,
    CATEGORY_UNCLEAR,
    ClassificationContext,
    classify_response,
)
from app.services.llm_gateway import KIND_CLASSIFICATION, LLMGatewayError

EXTENSION_REPLY = {
    "category": "request_deadline_extension",
    "confidence": 0.92,
    "extracted_info": {"requested_extension_days": 2, "questions": []},
}


async def test_deadline_request_kept_when_task_was_sent() -> None:
    llm = FakeLLM({KIND_CLASSIFICATION: EXTENSION_REPLY})
    context = ClassificationContext(has_received_test_task=True, test_task_deadline=datetime(2025, 3, 13, 16, 0))

    result = await classify_response(llm, "можу я отримати ще 2 дні?", context)

    assert result.category == CATEGORY_DEADLINE_EXTENSION
    assert result.extracted_info.requested_extension_days == 2
    kind, prompt = llm.calls[0]
    assert kind == KIND_CLASSIFICATION
    assert "можу я отримати ще 2 дні?" in prompt
    assert "Has candidate received test task yet? YES" in prompt
    assert "Current test task deadline: 2025-03-13T16:00:00+00:00" in prompt


async def test_prompt_without_task_has_no_deadline_line() -> None:
    llm = FakeLLM({KIND_CLASSIFICATION: EXTENSION_REPLY})

    await classify_response(llm, "ще 2 дні?", ClassificationContext(has_received_test_task=False))

    _, prompt = llm.calls[0]
    assert "Has candidate received test task yet? NO" in prompt
    assert "Current test task deadline" not in prompt


async def test_fractional_extension_days_keep_the_category() -> None:
    reply = {**EXTENSION_REPLY, "extracted_info": {"requested_extension_days": 2.5}}
    context = ClassificationContext(has_received_test_task=True, test_task_deadline=datetime(2025, 3, 13, 16, 0))

    result = await classify_response(FakeLLM({KIND_CLASSIFICATION: reply}), "ще два з половиною дні", context)
    assert result.category == CATEGORY_DEADLINE_EXTENSION

    reply = {"category": "negative", "confidence": 0.9, "extracted_info": None}
    result = await classify_response(FakeLLM({KIND_CLASSIFICATION: reply}), "ні", context)
    assert result.category == CATEGORY_NEGATIVE


async def test_deadline_request_without_task_becomes_unclear() -> None:
    llm = FakeLLM({KIND_CLASSIFICATION: EXTENSION_REPLY})

    result = await classify_response(llm, "можу я отримати ще 2 дні?", ClassificationContext(has_received_test_task=False))

    assert result.category == CATEGORY_UNCLEAR


async def test_other_categories_pass_through() -> None:
    llm = FakeLLM({KIND_CLASSIFICATION: {"category": "negative", "confidence": 0.8}})

    result = await classify_response(llm, "Дякую, не цікаво", ClassificationContext(has_received_test_task=False))

    assert result.category == CATEGORY_NEGATIVE
    assert result.confidence == 0.8


async def test_garbage_output_falls_back_to_unclear() -> None:
    for reply in ("I think the candidate is happy", {"category": "ecstatic"}, "{}"):
        llm = FakeLLM({KIND_CLASSIFICATION: reply})
        result = await classify_response(llm, "так", ClassificationContext(has_received_test_task=True))
        assert result.category == CATEGORY_UNCLEAR
        assert result.confidence == 0.5


async def test_gateway_failure_falls_back_to_unclear() -> None:
    llm = FakeLLM({KIND_CLASSIFICATION: LLMGatewayError("rate limited")})

    result = await classify_response(llm, "так", ClassificationContext(has_received_test_task=True))

    assert result.category == CATEGORY_UNCLEAR
