"""Tests for the status transition tables."""

import pytest

from fence_flow.utils.constants import JOB_STATUSES, STATUSES_BY_ENTITY
from fence_flow.workflow.transitions import (
    TRANSITIONS,
    can_transition,
    is_reopen,
    legal_next_states,
    reopen_edges,
    terminal_statuses,
)


class TestTableShape:
    @pytest.mark.parametrize("entity_type", ["request", "quote", "job",
                                             "invoice"])
    def test_every_status_has_a_row(self, entity_type):
        assert set(TRANSITIONS[entity_type]) == set(
            STATUSES_BY_ENTITY[entity_type]
        )

    @pytest.mark.parametrize("entity_type", ["request", "quote", "job",
                                             "invoice"])
    def test_no_self_loops(self, entity_type):
        for status, targets in TRANSITIONS[entity_type].items():
            assert status not in targets

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            TRANSITIONS["quote"]["draft"] = frozenset({"converted"})


class TestRequestTransitions:
    def test_pending_next_states(self):
        assert legal_next_states("request", "pending") == [
            "assessment_scheduled", "converted", "archived",
        ]

    def test_converted_is_terminal(self):
        assert legal_next_states("request", "converted") == []
        assert not can_transition("request", "converted",
                                  "assessment_scheduled")

    def test_archived_reopens(self):
        assert can_transition("request", "archived", "pending")
        assert is_reopen("request", "archived", "pending")

    def test_cannot_skip_to_overdue(self):
        assert not can_transition("request", "assessment_scheduled",
                                  "assessment_overdue")


class TestQuoteTransitions:
    def test_draft_can_be_sent(self):
        assert can_transition("quote", "draft", "sent")

    def test_only_approved_converts(self):
        sources = [s for s in STATUSES_BY_ENTITY["quote"]
                   if can_transition("quote", s, "converted")]
        assert sources == ["approved"]

    def test_follow_up_can_resend(self):
        assert can_transition("quote", "follow_up", "sent")

    def test_lost_reopens_to_draft(self):
        assert legal_next_states("quote", "lost") == ["draft"]
        assert reopen_edges("quote") == frozenset({("lost", "draft")})


class TestJobTransitions:
    def test_forward_chain(self):
        for current, nxt in zip(JOB_STATUSES, JOB_STATUSES[1:]):
            assert can_transition("job", current, nxt)

    def test_no_skipping(self):
        assert not can_transition("job", "scheduled", "picking")
        assert not can_transition("job", "won", "completed")

    def test_one_step_corrections(self):
        assert can_transition("job", "staged", "picking")
        assert can_transition("job", "scheduled", "won")
        assert not can_transition("job", "staged", "ready_for_yard")

    def test_completed_cannot_go_back(self):
        assert legal_next_states("job", "completed") == [
            "requires_invoicing",
        ]
        assert legal_next_states("job", "requires_invoicing") == []

    def test_job_has_no_reopen_edges(self):
        assert reopen_edges("job") == frozenset()


class TestInvoiceTransitions:
    def test_paid_and_bad_debt_terminal(self):
        assert terminal_statuses("invoice") == ["paid", "bad_debt"]

    def test_draft_cannot_be_paid(self):
        assert not can_transition("invoice", "draft", "paid")


class TestTerminalStatuses:
    def test_request_terminals(self):
        assert terminal_statuses("request") == ["converted", "archived"]

    def test_quote_terminals(self):
        assert terminal_statuses("quote") == ["converted", "lost"]


class TestUnknownInputs:
    def test_unknown_entity_type(self):
        with pytest.raises(ValueError, match="entity type"):
            can_transition("order", "draft", "sent")

    def test_unknown_status(self):
        with pytest.raises(ValueError, match="status"):
            legal_next_states("quote", "shipped")

    def test_unknown_target(self):
        with pytest.raises(ValueError):
            can_transition("job", "won", "cancelled")
