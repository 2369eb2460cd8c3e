from __future__ import annotations

from typing import Iterable

from app.core.errors import AutomationError


# Canonical pipeline stages stored on candidates.pipeline_stage.
NEW = "new"
ANALYZED = "analyzed"
OUTREACH_SENT = "outreach_sent"
OUTREACH_DECLINED = "outreach_declined"
QUESTIONNAIRE_SENT = "questionnaire_sent"
QUESTIONNAIRE_DONE = "questionnaire_done"
TEST_SENT = "test_sent"
TEST_DONE = "test_done"
INTERVIEW = "interview"
REJECTED = "rejected"
HIRED = "hired"


ALL_STAGES: tuple[str, ...] = (
    NEW,
    ANALYZED,
    OUTREACH_SENT,
    OUTREACH_DECLINED,
    QUESTIONNAIRE_SENT,
    QUESTIONNAIRE_DONE,
    TEST_SENT,
    TEST_DONE,
    INTERVIEW,
    REJECTED,
    HIRED,
)

TERMINAL_STAGES: frozenset[str] = frozenset({REJECTED, HIRED})


# Events that move a candidate through the pipeline.
EV_ANALYSIS_COMPLETED = "analysis_completed"
EV_OUTREACH_SENT = "outreach_sent"
EV_OUTREACH_DECLINED = "outreach_declined"
EV_QUESTIONNAIRE_SENT = "questionnaire_sent"
EV_QUESTIONNAIRE_COMPLETED = "questionnaire_completed"
EV_TEST_TASK_SENT = "test_task_sent"
EV_TEST_TASK_SUBMITTED = "test_task_submitted"
EV_INVITE_SENT = "invite_sent"
EV_REJECTION_SENT = "rejection_sent"
EV_HIRED = "hired"

ALL_EVENTS: tuple[str, ...] = (
    EV_ANALYSIS_COMPLETED,
    EV_OUTREACH_SENT,
    EV_OUTREACH_DECLINED,
    EV_QUESTIONNAIRE_SENT,
    EV_QUESTIONNAIRE_COMPLETED,
    EV_TEST_TASK_SENT,
    EV_TEST_TASK_SUBMITTED,
    EV_INVITE_SENT,
    EV_REJECTION_SENT,
    EV_HIRED,
)


# Automation action types (closed set handled by the automation queue).
ACTION_SEND_OUTREACH = "send_outreach"
ACTION_SEND_QUESTIONNAIRE = "send_questionnaire"
ACTION_SEND_TEST_TASK = "send_test_task"
ACTION_SEND_INVITE = "send_invite"
ACTION_SEND_REJECTION = "send_rejection"

ALL_ACTIONS: tuple[str, ...] = (
    ACTION_SEND_OUTREACH,
    ACTION_SEND_QUESTIONNAIRE,
    ACTION_SEND_TEST_TASK,
    ACTION_SEND_INVITE,
    ACTION_SEND_REJECTION,
)

ACTION_EVENTS: dict[str, str] = {
    ACTION_SEND_OUTREACH: EV_OUTREACH_SENT,
    ACTION_SEND_QUESTIONNAIRE: EV_QUESTIONNAIRE_SENT,
    ACTION_SEND_TEST_TASK: EV_TEST_TASK_SENT,
    ACTION_SEND_INVITE: EV_INVITE_SENT,
    ACTION_SEND_REJECTION: EV_REJECTION_SENT,
}


# Explicit transition table: stage -> {event -> next stage}.
# Pairs that are not listed are invalid transitions.
TRANSITIONS: dict[str, dict[str, str]] = {
    NEW: {
        EV_ANALYSIS_COMPLETED: ANALYZED,
        EV_REJECTION_SENT: REJECTED,
    },
    ANALYZED: {
        EV_ANALYSIS_COMPLETED: ANALYZED,
        EV_OUTREACH_SENT: OUTREACH_SENT,
        EV_QUESTIONNAIRE_SENT: QUESTIONNAIRE_SENT,
        EV_TEST_TASK_SENT: TEST_SENT,
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    OUTREACH_SENT: {
        EV_OUTREACH_DECLINED: OUTREACH_DECLINED,
        EV_QUESTIONNAIRE_SENT: QUESTIONNAIRE_SENT,
        EV_TEST_TASK_SENT: TEST_SENT,
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    OUTREACH_DECLINED: {
        EV_OUTREACH_SENT: OUTREACH_SENT,
        EV_TEST_TASK_SENT: TEST_SENT,
        EV_REJECTION_SENT: REJECTED,
    },
    QUESTIONNAIRE_SENT: {
        EV_QUESTIONNAIRE_SENT: QUESTIONNAIRE_SENT,
        EV_QUESTIONNAIRE_COMPLETED: QUESTIONNAIRE_DONE,
        EV_TEST_TASK_SENT: TEST_SENT,
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    QUESTIONNAIRE_DONE: {
        EV_TEST_TASK_SENT: TEST_SENT,
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    TEST_SENT: {
        EV_TEST_TASK_SUBMITTED: TEST_DONE,
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    TEST_DONE: {
        EV_INVITE_SENT: INTERVIEW,
        EV_REJECTION_SENT: REJECTED,
    },
    INTERVIEW: {
        EV_HIRED: HIRED,
        EV_REJECTION_SENT: REJECTED,
    },
    REJECTED: {},
    HIRED: {},
}


class InvalidTransition(AutomationError):
    def __init__(self, stage: str | None, event: str) -> None:
        super().__init__(f"Event '{event}' is not allowed from pipeline stage '{stage}'")
        self.stage = stage
        self.event = event


def normalize_stage(raw: str | None) -> str:
    # Rows created before the stage column existed carry NULL; treat them as new.
    if raw is None:
        return NEW
    normalized = raw.strip().lower().replace(" ", "_")
    return normalized or NEW


def is_known_stage(stage: str | None) -> bool:
    return normalize_stage(stage) in TRANSITIONS


def is_terminal_stage(stage: str | None) -> bool:
    return normalize_stage(stage) in TERMINAL_STAGES


def allowed_events(stage: str | None) -> frozenset[str]:
    return frozenset(TRANSITIONS.get(normalize_stage(stage), {}).keys())


def allowed_actions(stage: str | None) -> frozenset[str]:
    events = allowed_events(stage)
    return frozenset(action for action, event in ACTION_EVENTS.items() if event in events)


def event_for_action(action_type: str) -> str:
    try:
        return ACTION_EVENTS[action_type]
    except KeyError:
        raise ValueError(f"Unsupported action_type: {action_type}") from None


def can_apply(stage: str | None, event: str) -> bool:
    return event in TRANSITIONS.get(normalize_stage(stage), {})


def next_stage(stage: str | None, event: str) -> str:
    normalized = normalize_stage(stage)
    edges = TRANSITIONS.get(normalized)
    if edges is None or event not in edges:
        raise InvalidTransition(normalized, event)
    return edges[event]


def path_is_valid(start: str | None, events: Iterable[str]) -> bool:
    current = normalize_stage(start)
    for event in events:
        if not can_apply(current, event):
            return False
        current = TRANSITIONS[current][event]
    return True
