"""End-to-end: a fence job from first call to final payment."""

from datetime import date

from fence_flow.io.csv_handler import export_history_csv
from fence_flow.workflow.lifecycle import refresh_time_based_statuses


class TestRequestToPayment:
    def test_full_pipeline(self, engine, pipeline, repo, clock, rep_actor,
                           manager, sales_rep, crew, tmp_path):
        # Inbound call
        request = pipeline.create_request(
            rep_actor, client_id=42, contact_name="Jordan Blake",
            address_line1="501 Cedar Run", city="Austin", zip="78727",
            product_type="Wood Vertical", linear_feet_estimate=260,
            source="web",
        )
        assert request.territory_id == crew.home_territory_id

        # Site visit tomorrow
        pipeline.schedule_assessment(request.id, sales_rep.id,
                                     "2025-06-10T10:00:00", rep_actor)
        clock.advance(days=1)
        refresh_time_based_statuses(engine)
        assert engine.get("request", request.id).status == "assessment_today"
        pipeline.complete_assessment(request.id, rep_actor,
                                     notes="Existing posts reusable")

        # Big quote needs sign-off
        quote = pipeline.convert_request_to_quote(
            request.id, rep_actor, subtotal=27500,
            total_material_cost=11000, total_labor_cost=7500,
        )
        assert quote.approval_reasons == ["QUOTE_TOTAL"]
        pipeline.request_quote_approval(quote.id, rep_actor)
        pipeline.approve_quote(quote.id, manager)
        pipeline.send_quote(quote.id, rep_actor)
        clock.advance(days=1)
        pipeline.mark_quote_viewed(quote.id)
        pipeline.accept_quote(quote.id, rep_actor, signature="J. Blake")

        # Win, schedule and build
        job = pipeline.convert_quote_to_job(quote.id, rep_actor)
        assert job.quoted_total == 27500.0
        pipeline.schedule_job(job.id, rep_actor, "2025-06-16",
                              crew_id=crew.id)
        assert [j.id for j in repo.get_jobs_due_for_yard(
            date(2025, 6, 14), lead_days=2)] == [job.id]
        for status in ("ready_for_yard", "picking", "staged", "loaded",
                       "in_progress"):
            clock.advance(hours=1)
            pipeline.advance_job(job.id, status, rep_actor)
        clock.advance(hours=6)
        pipeline.complete_job(job.id, rep_actor, photos=["done.jpg"])

        # Bill and collect
        invoice = pipeline.create_invoice_from_job(job.id, rep_actor)
        pipeline.send_invoice(invoice.id, rep_actor)
        pipeline.record_payment(invoice.id, 10000, rep_actor)
        paid = pipeline.record_payment(invoice.id, 17500, rep_actor,
                                       method="ach")
        assert paid.status == "paid"

        # Every entity's history ends at its current status
        for entity_type, entity_id in (("request", request.id),
                                       ("quote", quote.id),
                                       ("job", job.id),
                                       ("invoice", invoice.id)):
            history = engine.history_for(entity_type, entity_id)
            assert history[0].from_status is None
            assert history[-1].to_status == engine.get(
                entity_type, entity_id).status

        assert [h.to_status for h in engine.history_for("job", job.id)] == [
            "won", "scheduled", "ready_for_yard", "picking", "staged",
            "loaded", "in_progress", "completed", "requires_invoicing",
        ]
        assert engine.history_for("request", request.id)[2].changed_by == \
            "system"

        path = tmp_path / "history.csv"
        assert export_history_csv(repo, engine.ledger, path) == len(
            engine.ledger.entries()
        )
