from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Literal

from anthropic import APIError, AsyncAnthropic

from app.core.config import Settings, settings
from app.core.errors import AutomationError
from app.core.json_fields import dumps_compact

logger = logging.getLogger("vamos.llm")

LLMMode = Literal["live", "mock"]

KIND_TEXT = "text"
KIND_ANALYSIS = "analysis"
KIND_MATCH = "match"
KIND_CLASSIFICATION = "classification"
KIND_DEADLINE = "deadline"
KIND_SUBMISSION_EVALUATION = "submission_evaluation"
KIND_QUESTIONNAIRE_EVALUATION = "questionnaire_evaluation"

MOCK_ANALYSIS_RESULT: dict[str, Any] = {
    "score": 8.5,
    "category": "strong",
    "summary": "Mock analysis for testing. This candidate shows strong potential.",
    "strengths": ["Good technical skills", "Strong communication", "Relevant experience"],
    "concerns": ["Could improve in specific area"],
    "recommendation": "yes",
    "reasoning": "Overall a good fit for the role based on skills and experience.",
}

MOCK_MATCH_RESULT: dict[str, Any] = {
    "match_score": 75,
    "alignment": "Good alignment with required skills and experience",
    "missing": "Some nice-to-have skills are not present",
    "recommendation": "moderate_match",
}

MOCK_CLASSIFICATION: dict[str, Any] = {
    "category": "unclear",
    "confidence": 0.5,
    "extracted_info": {"requested_deadline_date": None, "requested_extension_days": None, "questions": []},
}

MOCK_DEADLINE_EXTENSION: dict[str, Any] = {
    "requested_date": None,
    "additional_days": None,
    "is_reasonable": False,
    "reason": "Mock mode: deadline requests are reviewed manually",
}

MOCK_SUBMISSION_EVALUATION: dict[str, Any] = {
    "score": 7,
    "evaluation": "Тестова оцінка: рішення відповідає основним вимогам завдання.",
    "strengths": ["Чітка структура", "Зрозуміле пояснення підходу"],
    "improvements": ["Можна додати більше деталей"],
}

MOCK_QUESTIONNAIRE_EVALUATION: dict[str, Any] = {
    "score": 7,
    "summary": "Тестова оцінка анкети: відповіді послідовні та змістовні.",
    "strengths": ["Відкритість до зворотного зв'язку"],
    "concerns": [],
    "recommendation": "Рекомендуємо продовжити процес відбору.",
    "per_competency": [],
}

# Free-text kinds have no canned reply: callers fall back to their own templates.
_MOCK_RESPONSES: dict[str, str] = {
    KIND_TEXT: "",
    KIND_ANALYSIS: dumps_compact(MOCK_ANALYSIS_RESULT),
    KIND_MATCH: dumps_compact(MOCK_MATCH_RESULT),
    KIND_CLASSIFICATION: dumps_compact(MOCK_CLASSIFICATION),
    KIND_DEADLINE: dumps_compact(MOCK_DEADLINE_EXTENSION),
    KIND_SUBMISSION_EVALUATION: dumps_compact(MOCK_SUBMISSION_EVALUATION),
    KIND_QUESTIONNAIRE_EVALUATION: dumps_compact(MOCK_QUESTIONNAIRE_EVALUATION),
}


class LLMGatewayError(AutomationError):
    pass


class LLMGateway:
    """Send a prompt, get text back. Mode is fixed at construction time."""

    def __init__(
        self,
        *,
        mode: LLMMode = "mock",
        api_key: str = "",
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 2048,
        client: AsyncAnthropic | None = None,
    ) -> None:
        if mode not in ("live", "mock"):
            raise ValueError(f"Unsupported LLM mode: {mode}")
        self.mode = mode
        self.model = model
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._client = client

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LLMGateway":
        return cls(
            mode=cfg.llm_mode,
            api_key=cfg.anthropic_api_key,
            model=cfg.anthropic_model,
            max_tokens=cfg.anthropic_max_tokens,
        )

    @property
    def is_mock(self) -> bool:
        return self.mode == "mock"

    def _anthropic(self) -> AsyncAnthropic:
        if self._client is None:
            if not self._api_key:
                raise LLMGatewayError("Anthropic API key is not configured")
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str, *, kind: str = KIND_TEXT, max_tokens: int | None = None) -> str:
        if self.is_mock:
            if kind not in _MOCK_RESPONSES:
                raise LLMGatewayError(f"No mock response for kind '{kind}'")
            return _MOCK_RESPONSES[kind]

        client = self._anthropic()
        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens or self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as exc:
            logger.warning("llm_call_failed", extra={"kind": kind, "error": str(exc)})
            raise LLMGatewayError(f"Anthropic call failed: {exc}") from exc

        text = "".join(getattr(block, "text", "") for block in response.content if getattr(block, "type", "") == "text")
        if not text.strip():
            raise LLMGatewayError("Anthropic returned an empty response")
        return text


@lru_cache(maxsize=1)
def get_llm_gateway() -> LLMGateway:
    return LLMGateway.from_settings(settings)
