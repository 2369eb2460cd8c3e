"""Single adapter between free-form model output and typed AI results.

Model replies often wrap the JSON in prose or markdown fences. Every caller goes
through `extract_json_object` and a pydantic schema; anything that does not
decode or validate raises `ParseError`.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from app.core.errors import AutomationError
from app.schemas.ai import (
    AnalysisResult,
    ClassificationResult,
    DeadlineExtensionResult,
    MatchResult,
    QuestionnaireEvaluation,
    SubmissionEvaluation,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_decoder = json.JSONDecoder()


class ParseError(AutomationError):
    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ClassificationError(ParseError):
    pass


def _candidate_blocks(text: str) -> list[str]:
    blocks = [match.group(1) for match in _FENCE_RE.finditer(text)]
    blocks.append(text)
    return blocks


def extract_json_object(text: str | None) -> dict[str, Any]:
    """Return the first well-formed JSON object embedded in `text`."""
    if not text or not text.strip():
        raise ParseError("Empty model response", raw=text)

    for block in _candidate_blocks(text):
        index = block.find("{")
        while index != -1:
            try:
                value, _ = _decoder.raw_decode(block, index)
            except ValueError:
                index = block.find("{", index + 1)
                continue
            if isinstance(value, dict):
                return value
            index = block.find("{", index + 1)

    raise ParseError("No JSON object found in model response", raw=text)


def parse_model(
    text: str | None,
    model: type[ModelT],
    *,
    error_cls: type[ParseError] = ParseError,
) -> ModelT:
    try:
        data = extract_json_object(text)
    except ParseError as exc:
        raise error_cls(str(exc), raw=text) from exc
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise error_cls(f"{model.__name__} failed validation: {exc.error_count()} error(s)", raw=text) from exc


def parse_analysis_result(text: str | None) -> AnalysisResult:
    return parse_model(text, AnalysisResult)


def parse_match_result(text: str | None) -> MatchResult:
    return parse_model(text, MatchResult)


def parse_classification(text: str | None) -> ClassificationResult:
    return parse_model(text, ClassificationResult, error_cls=ClassificationError)


def parse_deadline_extension(text: str | None) -> DeadlineExtensionResult:
    return parse_model(text, DeadlineExtensionResult)


def parse_submission_evaluation(text: str | None) -> SubmissionEvaluation:
    return parse_model(text, SubmissionEvaluation)


def parse_questionnaire_evaluation(text: str | None) -> QuestionnaireEvaluation:
    return parse_model(text, QuestionnaireEvaluation)


_QUOTE_EDGES_RE = re.compile(r"^[\"'`]+|[\"'`]+$")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_ROLE_PREFIX_RE = re.compile(r"^(assistant|ai|bot):\s*", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def clean_message_text(response: str | None) -> str:
    """Strip quotes, code blocks and role prefixes from a generated chat message."""
    cleaned = (response or "").strip()
    cleaned = _QUOTE_EDGES_RE.sub("", cleaned)
    cleaned = _CODE_BLOCK_RE.sub("", cleaned)
    cleaned = _INLINE_CODE_RE.sub(r"\1", cleaned)
    cleaned = _ROLE_PREFIX_RE.sub("", cleaned.strip())
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()
