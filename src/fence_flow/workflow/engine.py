"""Workflow engine: validated, atomic status changes with an audit trail."""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from fence_flow.config import Config
from fence_flow.database.models import (
    Actor,
    ApprovalEvaluation,
    FeasibilityResult,
    StatusHistoryEntry,
    YardSnapshot,
)
from fence_flow.database.repository import (
    ENTITY_TABLES,
    Repository,
    entity_columns,
)
from fence_flow.utils.constants import INITIAL_STATUS

from . import transitions, yard
from .approval import ensure_sendable, evaluate_approval
from .errors import (
    BalanceOutstanding,
    ConcurrentModification,
    EntityNotFound,
    IllegalTransition,
    MissingConversionLink,
    StoreUnavailable,
)
from .feasibility import FeasibilityChecker
from .ledger import StatusHistoryLedger

logger = logging.getLogger(__name__)

# Written only by the engine itself
_PROTECTED_FIELDS = {"status", "status_changed_at"}

# Owned by a dedicated operation, which passes them as ``managed_fields``
_MANAGED_FIELDS = {
    "quote": frozenset({
        "approval_status", "approved_by", "approved_at",
        "requires_approval", "approval_reason",
    }),
    "job": frozenset(yard.PHASE_FIELDS),
    "invoice": frozenset({"amount_paid", "balance_due"}),
}


def _check_managed(entity_type: str, fields, allowed=()):
    blocked = _MANAGED_FIELDS.get(entity_type, frozenset()) & set(fields)
    blocked -= set(allowed)
    if blocked:
        raise ValueError(
            f"{entity_type} field(s) {', '.join(sorted(blocked))} are "
            f"managed by the workflow and cannot be set directly"
        )


class WorkflowEngine:
    """Applies status transitions to requests, quotes, jobs and invoices.

    Every accepted transition updates the entity and appends a ledger entry
    in a single ``BEGIN IMMEDIATE`` transaction guarded by the entity's
    version counter. Domain rules are checked before anything is written.

    Args:
        repo: Repository over the workflow database.
        clock: Callable returning the current ``datetime``.
        thresholds: Approval thresholds; defaults to Config at call time.
    """

    def __init__(self, repo: Repository,
                 clock: Optional[Callable[[], datetime]] = None,
                 thresholds: Optional[dict] = None):
        self.repo = repo
        self.clock = clock or datetime.now
        self._thresholds = thresholds
        self.ledger = StatusHistoryLedger(repo.db)
        self.checker = FeasibilityChecker(repo)

    @property
    def thresholds(self) -> dict:
        if self._thresholds is not None:
            return self._thresholds
        return Config.approval_thresholds()

    def now(self) -> datetime:
        return self.clock()

    def timestamp(self) -> str:
        return self.now().isoformat(timespec="seconds")

    # ── Transactions ────────────────────────────────────────────

    @contextmanager
    def transaction(self, entity_type: str = "entity", entity_id=None):
        """Open a write transaction, translating store failures.

        A lock that outlasts the busy timeout surfaces as
        ConcurrentModification; any other SQLite failure as StoreUnavailable.
        """
        try:
            with self.repo.db.get_connection(immediate=True) as conn:
                yield conn
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if "locked" in message or "busy" in message:
                raise ConcurrentModification(entity_type, entity_id) from exc
            logger.error("Store failure on %s %s: %s",
                         entity_type, entity_id, exc)
            raise StoreUnavailable(str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("Store failure on %s %s: %s",
                         entity_type, entity_id, exc)
            raise StoreUnavailable(str(exc)) from exc

    # ── Reads ───────────────────────────────────────────────────

    def get(self, entity_type: str, entity_id: int, conn=None):
        entity = self.repo.get_entity(entity_type, entity_id, conn=conn)
        if entity is None:
            raise EntityNotFound(entity_type, entity_id)
        return entity

    def history_for(self, entity_type: str,
                    entity_id: int) -> list[StatusHistoryEntry]:
        return self.ledger.history_for(entity_type, entity_id)

    def legal_next_states(self, entity_type: str,
                          current_status: str) -> list[str]:
        return transitions.legal_next_states(entity_type, current_status)

    def can_transition(self, entity_type: str, from_status: str,
                       to_status: str) -> bool:
        return transitions.can_transition(entity_type, from_status, to_status)

    def requires_approval(self, quote_id: int) -> ApprovalEvaluation:
        return evaluate_approval(self.get("quote", quote_id), self.thresholds)

    def can_assign(self, assignee_type: str, assignee_id: int,
                   job_id: int) -> FeasibilityResult:
        job = self.get("job", job_id)
        return self.checker.can_assign(assignee_type, assignee_id, job)

    def yard_snapshot(self, job_id: int) -> YardSnapshot:
        return yard.yard_snapshot(self.get("job", job_id))

    # ── Creation ────────────────────────────────────────────────

    def create_entity(self, entity_type: str, values: dict, actor: Actor,
                      note: Optional[str] = None):
        """Insert a new entity in its initial status and log its creation."""
        with self.transaction(entity_type) as conn:
            entity = self.create_in(conn, entity_type, values, actor, note)
        return entity

    def create_in(self, conn, entity_type: str, values: dict, actor: Actor,
                  note: Optional[str] = None,
                  managed_fields: Optional[dict] = None):
        """Create inside an open transaction (for composite operations)."""
        values = dict(values)
        if _PROTECTED_FIELDS & set(values):
            raise ValueError("New entities always start in their initial "
                             "status")
        _check_managed(entity_type, values)
        values.update(managed_fields or {})
        status = INITIAL_STATUS[entity_type]
        now = self.timestamp()
        _, _, number_column = ENTITY_TABLES[entity_type]
        if not values.get(number_column):
            values[number_column] = self.repo.generate_number(
                entity_type, conn=conn, year=self.now().year,
            )
        values.setdefault("created_by", actor.name)
        values["status"] = status
        values["status_changed_at"] = now

        entity_id = self.repo.insert_entity(conn, entity_type, values)
        self.ledger.record(StatusHistoryEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            from_status=None,
            to_status=status,
            changed_at=now,
            changed_by=actor.name,
            notes=note,
        ), conn)
        logger.info("Created %s %s (%s) by %s", entity_type,
                    values[number_column], entity_id, actor.name)
        return self.get(entity_type, entity_id, conn=conn)

    # ── Field edits (no status change) ──────────────────────────

    def update_fields(self, entity_type: str, entity_id: int, values: dict,
                      expected_version: Optional[int] = None):
        with self.transaction(entity_type, entity_id) as conn:
            entity = self.update_in(conn, entity_type, entity_id, values,
                                    expected_version)
        return entity

    def update_in(self, conn, entity_type: str, entity_id: int,
                  values: dict, expected_version: Optional[int] = None,
                  managed_fields: Optional[dict] = None):
        """Version-checked edit of non-status fields."""
        if _PROTECTED_FIELDS & set(values):
            raise ValueError("Use apply_transition to change status")
        _check_managed(entity_type, values)
        values = {**values, **(managed_fields or {})}
        entity = self.get(entity_type, entity_id, conn=conn)
        self._check_version(entity_type, entity, expected_version)
        if values and not self.repo.update_entity(
                conn, entity_type, entity_id, values, entity.version):
            raise ConcurrentModification(entity_type, entity_id)
        return self.get(entity_type, entity_id, conn=conn)

    # ── Transitions ─────────────────────────────────────────────

    def apply_transition(self, entity_type: str, entity_id: int,
                         to_status: str, actor: Actor,
                         note: Optional[str] = None,
                         expected_version: Optional[int] = None,
                         **fields):
        """Move an entity to ``to_status`` and record it in the ledger.

        Extra keyword arguments are written to the entity in the same
        update (e.g. ``sent_method`` when sending a quote). For jobs, passing
        the target phase's timestamp column records that scan time instead
        of the clock.

        Returns:
            The refreshed entity.

        Raises:
            IllegalTransition: The move is not in the transition table.
            ApprovalRequired: A quote needs manager sign-off before sending.
            PhaseAlreadyRecorded: The job phase was already scanned.
            PhaseOutOfOrder: The scan time precedes an earlier phase.
            MissingConversionLink: Converting without a link to the result.
            BalanceOutstanding: Marking an invoice paid with money owed.
            ConcurrentModification: The entity changed since it was read
                (or since this call read it, when no version is given).
            InfrastructureError: The store failed; nothing was written.
        """
        unknown = set(fields) - entity_columns(entity_type)
        if unknown:
            raise ValueError(
                f"Unknown {entity_type} field(s): {', '.join(sorted(unknown))}"
            )
        if expected_version is None:
            expected_version = self.get(entity_type, entity_id).version
        with self.transaction(entity_type, entity_id) as conn:
            entity = self.transition_in(
                conn, entity_type, entity_id, to_status, actor,
                note=note, expected_version=expected_version, **fields,
            )
        return entity

    def transition_in(self, conn, entity_type: str, entity_id: int,
                      to_status: str, actor: Actor,
                      note: Optional[str] = None,
                      expected_version: Optional[int] = None,
                      managed_fields: Optional[dict] = None,
                      **fields):
        """Apply a transition inside an open transaction.

        ``managed_fields`` carries workflow-owned columns from the operation
        that owns them. For jobs, the only such column a caller may pass
        directly is the scan time of the phase being entered.
        """
        if _PROTECTED_FIELDS & set(fields):
            raise ValueError("status fields are set by the engine")
        scan_column = (yard.ENTRY_STAMPS.get(to_status)
                       if entity_type == "job" else None)
        _check_managed(entity_type, fields,
                       allowed=(scan_column,) if scan_column else ())
        fields.update(managed_fields or {})
        entity = self.get(entity_type, entity_id, conn=conn)
        self._check_version(entity_type, entity, expected_version)

        allowed = transitions.can_transition(
            entity_type, entity.status, to_status,
        )
        # A duplicate yard scan is reported as such, not as a self loop
        if entity_type == "job":
            yard.check_not_recorded(entity, to_status)
        if not allowed:
            raise IllegalTransition(
                entity_type, entity_id, entity.status, to_status,
            )

        now = self.now()
        changes = self._rule_fields(entity_type, entity, to_status, actor,
                                    now, dict(fields))
        changed_at = now.isoformat(timespec="seconds")
        changes["status"] = to_status
        changes["status_changed_at"] = changed_at

        if not self.repo.update_entity(conn, entity_type, entity_id,
                                       changes, entity.version):
            raise ConcurrentModification(entity_type, entity_id)
        self.ledger.record(StatusHistoryEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            from_status=entity.status,
            to_status=to_status,
            changed_at=changed_at,
            changed_by=actor.name,
            notes=note,
        ), conn)
        logger.info("%s %s: %s -> %s by %s", entity_type, entity_id,
                    entity.status, to_status, actor.name)
        return self.get(entity_type, entity_id, conn=conn)

    @staticmethod
    def _check_version(entity_type: str, entity,
                       expected_version: Optional[int]):
        if expected_version is not None and entity.version != expected_version:
            raise ConcurrentModification(
                entity_type, entity.id, expected_version, entity.version,
            )

    def _rule_fields(self, entity_type: str, entity, to_status: str,
                     actor: Actor, now: datetime, fields: dict) -> dict:
        """Check entity invariants for the move and fill derived fields."""
        stamp = now.isoformat(timespec="seconds")
        unknown = set(fields) - entity_columns(entity_type)
        if unknown:
            raise ValueError(
                f"Unknown {entity_type} field(s): {', '.join(sorted(unknown))}"
            )

        if entity_type == "request":
            if to_status == "converted":
                quote_link = fields.get("converted_to_quote_id",
                                        entity.converted_to_quote_id)
                job_link = fields.get("converted_to_job_id",
                                      entity.converted_to_job_id)
                if quote_link is None and job_link is None:
                    raise MissingConversionLink("request", entity.id)
            elif to_status == "assessment_completed":
                fields.setdefault("assessment_completed_at", stamp)

        elif entity_type == "quote":
            if to_status == "sent":
                candidate = replace(entity, **fields)
                evaluation = ensure_sendable(candidate, self.thresholds,
                                             entity.approval_reasons)
                fields.setdefault("requires_approval",
                                  int(evaluation.required))
                fields.setdefault("approval_reason", evaluation.reason_text)
                fields.setdefault("sent_at", stamp)
            elif to_status == "pending_approval":
                fields.setdefault("approval_status", "pending")
            elif to_status == "approved":
                fields.setdefault("client_approved_at", stamp)
            elif to_status == "converted":
                if fields.get("converted_to_job_id",
                              entity.converted_to_job_id) is None:
                    raise MissingConversionLink("quote", entity.id)
            elif transitions.is_reopen("quote", entity.status, to_status):
                fields.setdefault("lost_reason", None)
                fields.setdefault("lost_to_competitor", None)

        elif entity_type == "job":
            entry_column = yard.ENTRY_STAMPS.get(to_status)
            scanned_at = fields.pop(entry_column, None) if entry_column \
                else None
            fields.update(yard.phase_fields(entity, to_status, now,
                                            at=scanned_at))
            if to_status == "completed":
                fields.setdefault("completed_by", actor.name)

        elif entity_type == "invoice":
            if to_status == "sent":
                fields.setdefault("sent_at", stamp)
            elif to_status == "paid":
                balance = fields.get("balance_due", entity.balance_due)
                if balance > 0.005:
                    raise BalanceOutstanding(entity.id, balance)

        return fields

