"""Tests for model helper properties."""

import dataclasses

import pytest

from fence_flow.database.models import (
    Actor,
    ApprovalEvaluation,
    FeasibilityResult,
    Invoice,
    Job,
    Quote,
    ServiceRequest,
    StatusHistoryEntry,
    TeamProfile,
    Territory,
    TerritoryCoverage,
)


class TestReferenceModels:
    def test_territory_zip_list(self):
        t = Territory(zip_codes='["78727", 78728]')
        assert t.zip_code_list == ["78727", "78728"]

    def test_territory_bad_json(self):
        assert Territory(zip_codes="not json").zip_code_list == []

    def test_team_profile_roles(self):
        p = TeamProfile(fsm_roles='["rep", "manager"]')
        assert p.has_role("manager")
        assert not p.has_role("dispatcher")

    def test_coverage_every_day_when_null(self):
        c = TerritoryCoverage(coverage_days=None)
        assert c.day_list is None
        assert c.covers_day("sun")

    def test_coverage_listed_days(self):
        c = TerritoryCoverage(coverage_days='["mon", "wed"]')
        assert c.covers_day("mon")
        assert not c.covers_day("tue")


class TestWorkflowModels:
    def test_request_is_converted(self):
        assert not ServiceRequest().is_converted
        assert ServiceRequest(converted_to_job_id=3).is_converted

    def test_quote_approval_reasons(self):
        q = Quote(approval_reason="QUOTE_TOTAL,DISCOUNT_MAXIMUM")
        assert q.approval_reasons == ["QUOTE_TOTAL", "DISCOUNT_MAXIMUM"]
        assert Quote().approval_reasons == []

    def test_effective_discount_from_amount(self):
        q = Quote(subtotal=2000.0, discount_amount=300.0)
        assert q.effective_discount_percent == 15.0

    def test_effective_discount_prefers_percent(self):
        q = Quote(subtotal=2000.0, discount_amount=300.0,
                  discount_percent=12.5)
        assert q.effective_discount_percent == 12.5

    def test_job_photo_list(self):
        assert Job(completion_photos='["a.jpg"]').photo_list == ["a.jpg"]
        assert Job().photo_list == []

    def test_job_is_direct(self):
        assert Job().is_direct
        assert not Job(quote_id=4).is_direct

    def test_invoice_settled(self):
        assert Invoice(balance_due=0.001).is_settled
        assert not Invoice(balance_due=10.0).is_settled


class TestValueObjects:
    def test_history_entry_is_frozen(self):
        entry = StatusHistoryEntry(
            entity_type="job", entity_id=1, to_status="won",
            changed_at="2025-06-09T08:00:00",
        )
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.to_status = "scheduled"

    def test_actor_privileged(self):
        assert Actor("Morgan", ("manager",)).is_privileged
        assert not Actor("Sam", ("rep",)).is_privileged

    def test_approval_reason_text(self):
        assert ApprovalEvaluation(False).reason_text is None
        ev = ApprovalEvaluation(True, ("QUOTE_TOTAL", "MARGIN_MINIMUM"))
        assert ev.reason_text == "QUOTE_TOTAL,MARGIN_MINIMUM"

    def test_feasibility_constructors(self):
        assert FeasibilityResult.passed().ok
        failed = FeasibilityResult.failed("SkillGap", "no WV skill")
        assert not failed.ok
        assert failed.reason == "SkillGap"
