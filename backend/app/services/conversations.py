from __future__ import annotations

import logging
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.json_fields import dumps_compact
from app.models.conversation import CandidateConversation

logger = logging.getLogger("vamos.conversations")

Direction = Literal["inbound", "outbound"]

# Message types written to the conversation log.
MSG_CANDIDATE_RESPONSE = "candidate_response"
MSG_OUTREACH = "outreach"
MSG_WARM_INTRO = "warm_intro"
MSG_QUESTIONNAIRE_SENT = "questionnaire_sent"
MSG_QUESTIONNAIRE_SUBMITTED = "questionnaire_submitted"
MSG_TEST_TASK = "test_task"
MSG_TEST_TASK_DECISION = "test_task_decision"
MSG_DEADLINE_EXTENSION_GRANTED = "deadline_extension_granted"
MSG_DEADLINE_EXTENSION_DENIED = "deadline_extension_denied"
MSG_AI_REPLY = "ai_reply"


async def log_message(
    session: AsyncSession,
    *,
    candidate_id: int,
    direction: Direction,
    message_type: str,
    content: str,
    metadata: dict[str, Any] | None = None,
) -> CandidateConversation:
    entry = CandidateConversation(
        candidate_id=candidate_id,
        direction=direction,
        message_type=message_type,
        content=content or "",
        metadata_json=dumps_compact(metadata) if metadata is not None else None,
    )
    session.add(entry)
    await session.flush()
    logger.info(
        "conversation_logged",
        extra={"candidate_id": candidate_id, "direction": direction, "message_type": message_type},
    )
    return entry
