"""Inline-button callback payloads.

Payloads are tagged and versioned: ``v1|<tag>|<field>|<field>``. `decode_callback`
is the only parser; it also understands the pre-versioning forms
``feedback_<rating>_<candidate_id>`` and ``outreach_yes:<candidate_id>:<request_id>``
that may still sit on buttons in old chats.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

CALLBACK_VERSION = "v1"
TAG_FEEDBACK = "fb"
TAG_OUTREACH_YES = "oy"
TAG_OUTREACH_NO = "on"

FEEDBACK_LABELS: dict[str, str] = {
    "easy": "Легко",
    "ok": "Нормально",
    "hard": "Складно",
    "very_hard": "Дуже складно",
}

# Telegram rejects callback_data longer than 64 bytes.
MAX_CALLBACK_BYTES = 64

_LEGACY_FEEDBACK_RE = re.compile(r"^feedback_(easy|ok|hard|very_hard)_(\d+)$")
_LEGACY_OUTREACH_RE = re.compile(r"^outreach_(yes|no):(\d+):(\d+)$")


@dataclass(frozen=True)
class FeedbackCallback:
    rating: str
    candidate_id: int

    @property
    def label(self) -> str:
        return FEEDBACK_LABELS[self.rating]


@dataclass(frozen=True)
class OutreachReplyCallback:
    interested: bool
    candidate_id: int
    request_id: int


CallbackPayload = Union[FeedbackCallback, OutreachReplyCallback]


def encode_callback(payload: CallbackPayload) -> str:
    if isinstance(payload, FeedbackCallback):
        if payload.rating not in FEEDBACK_LABELS:
            raise ValueError(f"Unknown feedback rating: {payload.rating}")
        parts = [CALLBACK_VERSION, TAG_FEEDBACK, payload.rating, str(payload.candidate_id)]
    elif isinstance(payload, OutreachReplyCallback):
        tag = TAG_OUTREACH_YES if payload.interested else TAG_OUTREACH_NO
        parts = [CALLBACK_VERSION, tag, str(payload.candidate_id), str(payload.request_id)]
    else:
        raise TypeError(f"Unsupported callback payload: {type(payload).__name__}")

    data = "|".join(parts)
    if len(data.encode("utf-8")) > MAX_CALLBACK_BYTES:
        raise ValueError("Callback payload exceeds Telegram limit")
    return data


def _to_int(raw: str) -> int | None:
    return int(raw) if raw.isdigit() else None


def _decode_v1(parts: list[str]) -> CallbackPayload | None:
    if len(parts) != 4:
        return None
    _, tag, first, second = parts
    if tag == TAG_FEEDBACK:
        candidate_id = _to_int(second)
        if first not in FEEDBACK_LABELS or candidate_id is None:
            return None
        return FeedbackCallback(rating=first, candidate_id=candidate_id)
    if tag in (TAG_OUTREACH_YES, TAG_OUTREACH_NO):
        candidate_id = _to_int(first)
        request_id = _to_int(second)
        if candidate_id is None or request_id is None:
            return None
        return OutreachReplyCallback(
            interested=tag == TAG_OUTREACH_YES,
            candidate_id=candidate_id,
            request_id=request_id,
        )
    return None


def decode_callback(data: str | None) -> CallbackPayload | None:
    """Return the typed payload, or None when the data is not ours."""
    if not data:
        return None
    value = data.strip()

    if value.startswith(f"{CALLBACK_VERSION}|"):
        return _decode_v1(value.split("|"))

    legacy = _LEGACY_FEEDBACK_RE.match(value)
    if legacy:
        return FeedbackCallback(rating=legacy.group(1), candidate_id=int(legacy.group(2)))

    legacy = _LEGACY_OUTREACH_RE.match(value)
    if legacy:
        return OutreachReplyCallback(
            interested=legacy.group(1) == "yes",
            candidate_id=int(legacy.group(2)),
            request_id=int(legacy.group(3)),
        )
    return None
