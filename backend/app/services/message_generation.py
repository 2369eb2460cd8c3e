"""Candidate-facing message generation with template fallbacks.

Every generator returns usable text: gateway errors and too-short model output
fall back to a fixed Ukrainian template.
"""

from __future__ import annotations

import logging

from app.core.json_fields import loads_list
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.schemas.ai import AnalysisResult
from app.services import prompts
from app.services.ai_parsing import clean_message_text
from app.services.llm_gateway import KIND_TEXT, LLMGateway, LLMGatewayError

logger = logging.getLogger("vamos.messages")

MIN_INTRO_LENGTH = 50
MIN_TASK_MESSAGE_LENGTH = 30
MIN_OUTREACH_LENGTH = 30

QUESTION_FALLBACK_REPLY = (
    "Дякую за запитання! Уточню деталі у команди і повернуся з відповіддю найближчим часом."
)


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_outreach_template(template: str, candidate: Candidate, request: HiringRequest) -> str:
    context = _SafeDict(
        first_name=candidate.first_name or "",
        last_name=candidate.last_name or "",
        position=request.title or "",
        request_title=request.title or "",
    )
    try:
        return template.format_map(context).strip()
    except (ValueError, IndexError):
        # Templates with stray braces are sent as written.
        return template.strip()


def fallback_intro_message(candidate: Candidate, request: HiringRequest | None) -> str:
    skills = [str(item) for item in loads_list(candidate.key_skills_json)][:2]
    skills_text = " та ".join(skills) if skills else "твої навички"
    if request is not None:
        opportunity = (
            f'Зараз у нас відкрита позиція "{request.title}", яка може бути чудовим match для тебе.'
        )
    else:
        opportunity = "У нас є кілька можливостей, які можуть тебе зацікавити."
    return (
        f"Привіт, {candidate.first_name}!\n\n"
        "Дякую за твою заявку до Vamos! Ми переглянули твій профіль і він нас дуже зацікавив.\n\n"
        f"Твій досвід з {skills_text} виглядає дуже цікаво для нас. {opportunity}\n\n"
        "Чи готовий ти пройти невелике тестове завдання? "
        "Це допоможе нам краще зрозуміти твої навички на практиці."
    )


def fallback_task_message(candidate: Candidate, request: HiringRequest, task_url: str, deadline_text: str) -> str:
    return (
        f"Привіт, {candidate.first_name}!\n\n"
        f'Дякую за готовність пройти тестове завдання для позиції "{request.title}"!\n\n'
        f"Ось посилання на завдання: {task_url}\n\n"
        f"Дедлайн: {deadline_text}. Якщо потрібно більше часу, дай знати. "
        "Якщо виникнуть питання, пиши, із задоволенням допоможемо!"
    )


async def _generate(llm: LLMGateway, prompt: str, *, min_length: int, purpose: str) -> str | None:
    try:
        text = clean_message_text(await llm.generate(prompt, kind=KIND_TEXT))
    except LLMGatewayError as exc:
        logger.warning("message_generation_failed", extra={"purpose": purpose, "error": str(exc)})
        return None
    if len(text) < min_length:
        logger.info("message_generation_too_short", extra={"purpose": purpose, "length": len(text)})
        return None
    return text


async def personalize_outreach(
    llm: LLMGateway,
    template: str,
    candidate: Candidate,
    request: HiringRequest,
) -> str:
    rendered = render_outreach_template(template, candidate, request)
    prompt = prompts.outreach_personalization_prompt(rendered, candidate, request)
    generated = await _generate(llm, prompt, min_length=MIN_OUTREACH_LENGTH, purpose="outreach")
    return generated or rendered


async def generate_warm_intro(
    llm: LLMGateway,
    candidate: Candidate,
    analysis: AnalysisResult,
    best_request: HiringRequest | None = None,
    match_score: float | None = None,
) -> str:
    prompt = prompts.warm_intro_prompt(candidate, analysis, best_request, match_score)
    generated = await _generate(llm, prompt, min_length=MIN_INTRO_LENGTH, purpose="warm_intro")
    return generated or fallback_intro_message(candidate, best_request)


async def generate_task_message(
    llm: LLMGateway,
    candidate: Candidate,
    request: HiringRequest,
    *,
    task_url: str,
    deadline_text: str,
    submission_url: str | None = None,
) -> str:
    prompt = prompts.task_message_prompt(candidate, request, task_url, deadline_text)
    message = await _generate(llm, prompt, min_length=MIN_TASK_MESSAGE_LENGTH, purpose="test_task")
    if message is None:
        message = fallback_task_message(candidate, request, task_url, deadline_text)
    elif task_url not in message:
        message = f"{message}\n\n{task_url}"
    if submission_url:
        message = f"{message}\n\nНадіслати рішення можна тут: {submission_url}"
    return message


async def generate_question_answer(
    llm: LLMGateway,
    question: str,
    candidate: Candidate,
    request: HiringRequest | None,
) -> str:
    prompt = prompts.question_answer_prompt(question, candidate, request)
    generated = await _generate(llm, prompt, min_length=1, purpose="question_answer")
    return generated or QUESTION_FALLBACK_REPLY
