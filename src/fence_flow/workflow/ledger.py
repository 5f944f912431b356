"""Append-only status history for every workflow entity."""

import logging
import sqlite3
from typing import Optional

from fence_flow.database.connection import DatabaseConnection
from fence_flow.database.models import StatusHistoryEntry

from .errors import LedgerWriteError, StoreUnavailable

logger = logging.getLogger(__name__)


class StatusHistoryLedger:
    """Writes and reads ``status_history``.

    Entries are written inside the transaction that changes the status, so
    the two land together or not at all. The table itself rejects UPDATE and
    DELETE.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def record(self, entry: StatusHistoryEntry, conn) -> int:
        """Append ``entry`` using the caller's open connection.

        Raises:
            LedgerWriteError: The insert failed; the caller's transaction
                must be rolled back.
        """
        try:
            cursor = conn.execute(
                "INSERT INTO status_history "
                "(entity_type, entity_id, from_status, to_status, "
                "changed_at, changed_by, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (entry.entity_type, entry.entity_id, entry.from_status,
                 entry.to_status, entry.changed_at, entry.changed_by,
                 entry.notes),
            )
        except sqlite3.Error as exc:
            logger.error(
                "Ledger write failed for %s %s -> %s: %s",
                entry.entity_type, entry.entity_id, entry.to_status, exc,
            )
            raise LedgerWriteError(
                f"could not record {entry.entity_type} {entry.entity_id} "
                f"-> {entry.to_status}"
            ) from exc
        return cursor.lastrowid

    def history_for(self, entity_type: str,
                    entity_id: int) -> list[StatusHistoryEntry]:
        """All entries for one entity, oldest first."""
        rows = self._query(
            "SELECT * FROM status_history "
            "WHERE entity_type = ? AND entity_id = ? ORDER BY id",
            (entity_type, entity_id),
        )
        return [StatusHistoryEntry(**dict(r)) for r in rows]

    def last_entry(self, entity_type: str,
                   entity_id: int) -> Optional[StatusHistoryEntry]:
        rows = self._query(
            "SELECT * FROM status_history "
            "WHERE entity_type = ? AND entity_id = ? "
            "ORDER BY id DESC LIMIT 1",
            (entity_type, entity_id),
        )
        return StatusHistoryEntry(**dict(rows[0])) if rows else None

    def entries(
        self, entity_type: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        changed_by: str | None = None,
    ) -> list[StatusHistoryEntry]:
        """Ledger entries with optional filters, in append order.

        Args:
            entity_type: 'request', 'quote', 'job' or 'invoice'.
            date_from: Inclusive lower bound on ``changed_at`` (ISO date).
            date_to: Inclusive upper bound on the ``changed_at`` date.
            changed_by: Actor name.
        """
        clauses = []
        params: list = []
        if entity_type:
            clauses.append("entity_type = ?")
            params.append(entity_type)
        if date_from:
            clauses.append("changed_at >= ?")
            params.append(date_from)
        if date_to:
            clauses.append("substr(changed_at, 1, 10) <= ?")
            params.append(date_to[:10])
        if changed_by:
            clauses.append("changed_by = ?")
            params.append(changed_by)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._query(
            f"SELECT * FROM status_history{where} ORDER BY id",
            tuple(params),
        )
        return [StatusHistoryEntry(**dict(r)) for r in rows]

    def _query(self, sql: str, params: tuple):
        try:
            return self.db.execute(sql, params)
        except sqlite3.OperationalError as exc:
            raise StoreUnavailable(str(exc)) from exc
