from __future__ import annotations

import unittest

from app.core.pipeline_machine import (
    ACTION_SEND_OUTREACH,
    ACTION_SEND_QUESTIONNAIRE,
    ACTION_SEND_REJECTION,
    ACTION_SEND_TEST_TASK,
    ALL_ACTIONS,
    ALL_STAGES,
    ANALYZED,
    EV_ANALYSIS_COMPLETED,
    EV_HIRED,
    EV_INVITE_SENT,
    EV_OUTREACH_DECLINED,
    EV_OUTREACH_SENT,
    EV_QUESTIONNAIRE_COMPLETED,
    EV_QUESTIONNAIRE_SENT,
    EV_REJECTION_SENT,
    EV_TEST_TASK_SENT,
    EV_TEST_TASK_SUBMITTED,
    HIRED,
    INTERVIEW,
    NEW,
    REJECTED,
    TEST_SENT,
    TRANSITIONS,
    InvalidTransition,
    allowed_actions,
    can_apply,
    event_for_action,
    is_terminal_stage,
    next_stage,
    normalize_stage,
    path_is_valid,
)


class PipelineMachineTests(unittest.TestCase):
    def test_every_target_is_a_known_stage(self) -> None:
        for stage, edges in TRANSITIONS.items():
            self.assertIn(stage, ALL_STAGES)
            for target in edges.values():
                self.assertIn(target, ALL_STAGES)

    def test_full_happy_path_is_valid(self) -> None:
        events = [
            EV_ANALYSIS_COMPLETED,
            EV_OUTREACH_SENT,
            EV_QUESTIONNAIRE_SENT,
            EV_QUESTIONNAIRE_COMPLETED,
            EV_TEST_TASK_SENT,
            EV_TEST_TASK_SUBMITTED,
            EV_INVITE_SENT,
            EV_HIRED,
        ]
        self.assertTrue(path_is_valid(NEW, events))

    def test_declined_candidate_can_be_contacted_again(self) -> None:
        self.assertTrue(path_is_valid(NEW, [EV_ANALYSIS_COMPLETED, EV_OUTREACH_SENT, EV_OUTREACH_DECLINED, EV_OUTREACH_SENT]))

    def test_terminal_stages_accept_nothing(self) -> None:
        for stage in (REJECTED, HIRED):
            self.assertTrue(is_terminal_stage(stage))
            self.assertEqual(allowed_actions(stage), frozenset())
            with self.assertRaises(InvalidTransition):
                next_stage(stage, EV_REJECTION_SENT)

    def test_invite_from_new_is_rejected(self) -> None:
        self.assertFalse(can_apply(NEW, EV_INVITE_SENT))
        with self.assertRaises(InvalidTransition) as ctx:
            next_stage(NEW, EV_INVITE_SENT)
        self.assertEqual(ctx.exception.stage, NEW)
        self.assertEqual(ctx.exception.event, EV_INVITE_SENT)

    def test_new_candidate_only_allows_rejection(self) -> None:
        self.assertEqual(allowed_actions(NEW), frozenset({ACTION_SEND_REJECTION}))

    def test_analyzed_candidate_allows_contact_actions(self) -> None:
        actions = allowed_actions(ANALYZED)
        for action in (ACTION_SEND_OUTREACH, ACTION_SEND_QUESTIONNAIRE, ACTION_SEND_TEST_TASK):
            self.assertIn(action, actions)

    def test_test_task_cannot_be_sent_twice(self) -> None:
        self.assertEqual(next_stage(ANALYZED, EV_TEST_TASK_SENT), TEST_SENT)
        self.assertFalse(can_apply(TEST_SENT, EV_TEST_TASK_SENT))

    def test_normalize_stage(self) -> None:
        self.assertEqual(normalize_stage(None), NEW)
        self.assertEqual(normalize_stage(""), NEW)
        self.assertEqual(normalize_stage(" Interview "), INTERVIEW)
        self.assertEqual(normalize_stage("Outreach Sent"), "outreach_sent")

    def test_every_action_maps_to_an_event(self) -> None:
        for action in ALL_ACTIONS:
            self.assertTrue(event_for_action(action))
        with self.assertRaises(ValueError):
            event_for_action("send_fax")


if __name__ == "__main__":
    unittest.main()
