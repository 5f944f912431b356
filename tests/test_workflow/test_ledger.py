"""Tests for status history queries."""

import pytest

from fence_flow.database.models import Actor, StatusHistoryEntry
from fence_flow.workflow.errors import LedgerWriteError


class TestLedgerQueries:
    def test_filter_by_entity_type(self, engine, pipeline, rep_actor,
                                   new_request):
        new_request()
        pipeline.create_quote(rep_actor, subtotal=1000)
        entries = engine.ledger.entries(entity_type="quote")
        assert [e.to_status for e in entries] == ["draft"]

    def test_filter_by_actor(self, engine, pipeline, rep_actor,
                             new_request):
        request = new_request()
        office = Actor(name="Office", roles=("dispatcher",))
        pipeline.archive_request(request.id, office)
        entries = engine.ledger.entries(changed_by="Office")
        assert [e.to_status for e in entries] == ["archived"]

    def test_filter_by_date(self, engine, pipeline, rep_actor, clock,
                            new_request):
        request = new_request()
        clock.advance(days=2)
        pipeline.archive_request(request.id, rep_actor)
        assert len(engine.ledger.entries(date_from="2025-06-10")) == 1
        assert len(engine.ledger.entries(date_to="2025-06-09")) == 1
        assert len(engine.ledger.entries(date_from="2025-06-09",
                                         date_to="2025-06-11")) == 2

    def test_last_entry_none(self, engine):
        assert engine.ledger.last_entry("job", 1) is None

    def test_record_needs_valid_entry(self, engine, db):
        entry = StatusHistoryEntry(entity_type="order", entity_id=1,
                                   to_status="draft",
                                   changed_at="2025-06-09T08:00:00")
        with pytest.raises(LedgerWriteError):
            with db.get_connection() as conn:
                engine.ledger.record(entry, conn)
