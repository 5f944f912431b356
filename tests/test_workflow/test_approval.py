"""Tests for the quote approval gate."""

import pytest

from fence_flow.database.models import Quote
from fence_flow.workflow.approval import (
    approval_fields_after_save,
    ensure_sendable,
    evaluate_approval,
)
from fence_flow.workflow.errors import (
    ApprovalRequired,
    ConcurrentModification,
    OverrideNotPermitted,
)

THRESHOLDS = {
    "QUOTE_TOTAL": 25000.0,
    "MARGIN_MINIMUM": 15.0,
    "DISCOUNT_MAXIMUM": 10.0,
}


class TestEvaluateApproval:
    def test_large_total(self):
        quote = Quote(total=30000, margin_percent=20, discount_percent=5)
        ev = evaluate_approval(quote, THRESHOLDS)
        assert ev.required
        assert ev.reasons == ("QUOTE_TOTAL",)

    def test_within_limits(self):
        quote = Quote(total=12000, margin_percent=32, discount_percent=0)
        ev = evaluate_approval(quote, THRESHOLDS)
        assert not ev.required
        assert ev.reasons == ()

    def test_total_at_threshold_is_allowed(self):
        assert not evaluate_approval(Quote(total=25000), THRESHOLDS).required

    def test_low_margin(self):
        ev = evaluate_approval(Quote(total=5000, margin_percent=12),
                               THRESHOLDS)
        assert ev.reasons == ("MARGIN_MINIMUM",)

    def test_unknown_margin_not_held(self):
        ev = evaluate_approval(Quote(total=5000, margin_percent=None),
                               THRESHOLDS)
        assert not ev.required

    def test_discount_from_amount(self):
        quote = Quote(subtotal=4000, discount_amount=600, total=3400)
        ev = evaluate_approval(quote, THRESHOLDS)
        assert ev.reasons == ("DISCOUNT_MAXIMUM",)

    def test_all_reasons_in_order(self):
        quote = Quote(total=50000, margin_percent=5, discount_percent=20)
        ev = evaluate_approval(quote, THRESHOLDS)
        assert ev.reasons == (
            "QUOTE_TOTAL", "MARGIN_MINIMUM", "DISCOUNT_MAXIMUM",
        )

    def test_defaults_to_config(self, monkeypatch):
        from fence_flow.config import Config
        monkeypatch.setattr(Config, "QUOTE_TOTAL_THRESHOLD", 1000.0)
        assert evaluate_approval(Quote(total=1500)).required


class TestApprovalFieldsAfterSave:
    def test_same_reasons_keep_approval(self):
        quote = Quote(total=32000, approval_status="approved",
                      approved_by="Morgan Lee")
        ev = evaluate_approval(quote, THRESHOLDS)
        fields = approval_fields_after_save(quote, ev, ["QUOTE_TOTAL"])
        assert "approval_status" not in fields
        assert fields["approval_reason"] == "QUOTE_TOTAL"

    def test_changed_reasons_reset_approval(self):
        quote = Quote(total=32000, discount_percent=20,
                      approval_status="approved", approved_by="Morgan Lee")
        ev = evaluate_approval(quote, THRESHOLDS)
        fields = approval_fields_after_save(quote, ev, ["QUOTE_TOTAL"])
        assert fields["approval_status"] == "pending"
        assert fields["approved_by"] is None
        assert fields["approval_reason"] == "QUOTE_TOTAL,DISCOUNT_MAXIMUM"

    def test_no_longer_required_clears_pending(self):
        quote = Quote(total=8000, approval_status="pending")
        ev = evaluate_approval(quote, THRESHOLDS)
        fields = approval_fields_after_save(quote, ev, ["QUOTE_TOTAL"])
        assert fields == {
            "requires_approval": 0,
            "approval_reason": None,
            "approval_status": None,
        }


class TestEnsureSendable:
    def test_blocks_unapproved(self):
        quote = Quote(id=4, total=30000)
        with pytest.raises(ApprovalRequired) as exc_info:
            ensure_sendable(quote, THRESHOLDS)
        assert exc_info.value.reasons == ["QUOTE_TOTAL"]

    def test_allows_approved(self):
        quote = Quote(id=4, total=30000, approval_status="approved")
        assert ensure_sendable(quote, THRESHOLDS).required


class TestApprovalFlow:
    """Approval gate driven through the pipeline."""

    def test_large_quote_cannot_be_sent(self, pipeline, rep_actor, engine):
        quote = pipeline.create_quote(rep_actor, total=30000,
                                      margin_percent=20, discount_percent=5)
        assert quote.requires_approval == 1
        assert quote.approval_reasons == ["QUOTE_TOTAL"]
        assert engine.requires_approval(quote.id).reasons == ("QUOTE_TOTAL",)

        with pytest.raises(ApprovalRequired) as exc_info:
            pipeline.send_quote(quote.id, rep_actor)
        assert exc_info.value.reasons == ["QUOTE_TOTAL"]
        assert engine.get("quote", quote.id).status == "draft"
        assert len(engine.history_for("quote", quote.id)) == 1

    def test_approved_quote_can_be_sent(self, pipeline, rep_actor, manager):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        pipeline.request_quote_approval(quote.id, rep_actor, "Big job")
        approved = pipeline.approve_quote(quote.id, manager, "OK")
        assert approved.status == "pending_approval"
        assert approved.approval_status == "approved"
        assert approved.approved_by == "Morgan Lee"

        sent = pipeline.send_quote(quote.id, rep_actor, method="client_hub")
        assert sent.status == "sent"
        assert sent.sent_method == "client_hub"
        assert sent.sent_at == "2025-06-09T08:00:00"

    def test_rep_cannot_approve(self, pipeline, rep_actor):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        with pytest.raises(OverrideNotPermitted):
            pipeline.approve_quote(quote.id, rep_actor)

    def test_reject_returns_to_draft(self, pipeline, rep_actor, manager):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        pipeline.request_quote_approval(quote.id, rep_actor)
        rejected = pipeline.reject_quote_approval(quote.id, manager,
                                                  "Recheck posts")
        assert rejected.status == "draft"
        assert rejected.approval_status == "rejected"
        with pytest.raises(ApprovalRequired):
            pipeline.send_quote(quote.id, rep_actor)

    def test_reprice_with_new_reason_resets(self, pipeline, rep_actor,
                                            manager):
        quote = pipeline.create_quote(
            rep_actor, subtotal=30000, total_material_cost=12000,
            total_labor_cost=6000,
        )
        assert quote.margin_percent == 40.0
        pipeline.approve_quote(quote.id, manager)

        repriced = pipeline.save_quote(quote.id, rep_actor,
                                       discount_percent=20)
        assert repriced.total == 24000.0
        assert repriced.margin_percent == 25.0
        assert repriced.approval_reasons == ["DISCOUNT_MAXIMUM"]
        assert repriced.approval_status == "pending"
        with pytest.raises(ApprovalRequired):
            pipeline.send_quote(quote.id, rep_actor)

    def test_reprice_same_reason_keeps_approval(self, pipeline, rep_actor,
                                                manager):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        pipeline.approve_quote(quote.id, manager)
        repriced = pipeline.save_quote(quote.id, rep_actor, subtotal=32000)
        assert repriced.total == 32000.0
        assert repriced.approval_status == "approved"
        assert pipeline.send_quote(quote.id, rep_actor).status == "sent"

    def test_reprice_below_threshold(self, pipeline, rep_actor):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        repriced = pipeline.save_quote(quote.id, rep_actor, subtotal=9000)
        assert repriced.requires_approval == 0
        assert repriced.approval_reason is None
        assert pipeline.send_quote(quote.id, rep_actor).status == "sent"


class TestApprovalFieldsProtected:
    """Only the approval operations write a quote's approval columns."""

    def test_save_cannot_self_approve(self, pipeline, engine, rep_actor):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        with pytest.raises(ValueError, match="approval_status"):
            pipeline.save_quote(quote.id, rep_actor,
                                approval_status="approved")
        stored = engine.get("quote", quote.id)
        assert stored.approval_status is None
        assert stored.version == quote.version
        with pytest.raises(ApprovalRequired):
            pipeline.send_quote(quote.id, rep_actor)

    def test_create_cannot_preapprove(self, pipeline, engine, rep_actor):
        with pytest.raises(ValueError, match="approved_by"):
            pipeline.create_quote(rep_actor, subtotal=30000,
                                  approved_by="Sam Rivera")
        assert engine.repo.get_all_quotes() == []

    def test_send_cannot_carry_approval(self, pipeline, engine, rep_actor):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        with pytest.raises(ValueError, match="approval_status"):
            engine.apply_transition("quote", quote.id, "sent", rep_actor,
                                    approval_status="approved")
        assert engine.get("quote", quote.id).status == "draft"

    def test_update_fields_cannot_clear_gate(self, pipeline, engine,
                                             rep_actor):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        with pytest.raises(ValueError, match="requires_approval"):
            engine.update_fields("quote", quote.id,
                                 {"requires_approval": 0})

    def test_repricing_at_send_needs_new_approval(self, pipeline, engine,
                                                  rep_actor, manager):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        pipeline.approve_quote(quote.id, manager)
        with pytest.raises(ApprovalRequired) as exc_info:
            engine.apply_transition("quote", quote.id, "sent", rep_actor,
                                    discount_percent=25)
        assert "DISCOUNT_MAXIMUM" in exc_info.value.reasons
        assert engine.get("quote", quote.id).status == "draft"

    def test_approval_on_changed_quote_is_rejected(self, pipeline, engine,
                                                   rep_actor, manager):
        quote = pipeline.create_quote(rep_actor, subtotal=30000)
        pipeline.save_quote(quote.id, rep_actor, subtotal=31000)
        with pytest.raises(ConcurrentModification):
            pipeline.approve_quote(quote.id, manager,
                                   expected_version=quote.version)
        assert engine.get("quote", quote.id).approval_status is None

    def test_sent_quote_cannot_be_approved(self, pipeline, engine,
                                           rep_actor, manager):
        quote = pipeline.create_quote(rep_actor, subtotal=9000)
        pipeline.send_quote(quote.id, rep_actor)
        with pytest.raises(ValueError, match="cannot be approved"):
            pipeline.approve_quote(quote.id, manager)
        assert engine.get("quote", quote.id).approved_by is None
