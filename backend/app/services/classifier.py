from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from app.core.datetime_utils import as_utc_aware, utcnow
from app.schemas.ai import ClassificationResult
from app.services import prompts
from app.services.ai_parsing import ClassificationError, parse_classification
from app.services.llm_gateway import KIND_CLASSIFICATION, LLMGateway, LLMGatewayError

logger = logging.getLogger("vamos.classifier")

CATEGORY_POSITIVE_READY = "positive_ready"
CATEGORY_POSITIVE_WITH_QUESTIONS = "positive_with_questions"
CATEGORY_DEADLINE_EXTENSION = "request_deadline_extension"
CATEGORY_QUESTIONS_ABOUT_JOB = "questions_about_job"
CATEGORY_NEGATIVE = "negative"
CATEGORY_UNCLEAR = "unclear"
CATEGORY_SUBMISSION = "test_task_submission"


@dataclass(frozen=True)
class ClassificationContext:
    has_received_test_task: bool
    test_task_deadline: datetime | None = None


def fallback_classification() -> ClassificationResult:
    return ClassificationResult(category=CATEGORY_UNCLEAR, confidence=0.5)


async def classify_response(
    llm: LLMGateway,
    text: str,
    context: ClassificationContext,
    *,
    now: datetime | None = None,
) -> ClassificationResult:
    """Classify an inbound candidate message. Never raises: failures map to `unclear`."""
    prompt = prompts.classification_prompt(
        text,
        has_received_test_task=context.has_received_test_task,
        deadline=as_utc_aware(context.test_task_deadline) if context.test_task_deadline else None,
        now=as_utc_aware(now or utcnow()),
    )
    try:
        raw = await llm.generate(prompt, kind=KIND_CLASSIFICATION)
        result = parse_classification(raw)
    except (LLMGatewayError, ClassificationError) as exc:
        logger.warning("classification_failed", extra={"error": str(exc)})
        return fallback_classification()

    # A deadline extension is meaningless before a test task exists.
    if result.category == CATEGORY_DEADLINE_EXTENSION and not context.has_received_test_task:
        logger.info("classification_downgraded", extra={"from": result.category})
        return result.model_copy(update={"category": CATEGORY_UNCLEAR})
    return result
