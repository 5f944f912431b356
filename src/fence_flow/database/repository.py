"""Repository layer: CRUD operations, lookups and workflow queries."""

import json
from dataclasses import fields as dataclass_fields
from datetime import date, datetime, timedelta
from typing import Optional

from fence_flow.config import Config

from .connection import DatabaseConnection
from .models import (
    AssignmentCheck,
    Crew,
    Invoice,
    Job,
    Payment,
    ProjectType,
    Quote,
    ServiceRequest,
    Skill,
    TeamProfile,
    Territory,
    TerritoryCoverage,
)

# entity_type -> (table, model, number column)
ENTITY_TABLES = {
    "request": ("service_requests", ServiceRequest, "request_number"),
    "quote": ("quotes", Quote, "quote_number"),
    "job": ("jobs", Job, "job_number"),
    "invoice": ("invoices", Invoice, "invoice_number"),
}

# Columns the repository manages itself
_MANAGED_COLUMNS = {"id", "version", "created_at", "updated_at"}

# Request statuses that still hold a slot on the rep's calendar
_OPEN_ASSESSMENT_STATUSES = (
    "assessment_scheduled", "assessment_today", "assessment_overdue",
)


def _table_for(entity_type: str) -> tuple:
    try:
        return ENTITY_TABLES[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type!r}") from None


def entity_columns(entity_type: str) -> set[str]:
    """Stored column names for an entity type."""
    _, model, _ = _table_for(entity_type)
    return {f.name for f in dataclass_fields(model)}


class Repository:
    """Provides all database operations for the workflow engine."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Generic entity access ───────────────────────────────────

    def get_entity(self, entity_type: str, entity_id: int, conn=None):
        """Load a request, quote, job or invoice by id, or None."""
        table, model, _ = _table_for(entity_type)
        sql = f"SELECT * FROM {table} WHERE id = ?"
        if conn is not None:
            row = conn.execute(sql, (entity_id,)).fetchone()
        else:
            rows = self.db.execute(sql, (entity_id,))
            row = rows[0] if rows else None
        return model(**dict(row)) if row else None

    def get_entity_by_number(self, entity_type: str, number: str):
        table, model, number_column = _table_for(entity_type)
        rows = self.db.execute(
            f"SELECT * FROM {table} WHERE {number_column} = ?", (number,)
        )
        return model(**dict(rows[0])) if rows else None

    def insert_entity(self, conn, entity_type: str, values: dict) -> int:
        """Insert a new entity row inside the caller's transaction."""
        table, _, _ = _table_for(entity_type)
        self._check_columns(entity_type, values)
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        cursor = conn.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({placeholders})",
            tuple(values[c] for c in columns),
        )
        return cursor.lastrowid

    def update_entity(self, conn, entity_type: str, entity_id: int,
                      values: dict, expected_version: int) -> bool:
        """Version-checked UPDATE inside the caller's transaction.

        Bumps ``version`` and ``updated_at``. Returns False when no row
        matched, meaning the entity changed underneath the caller.
        """
        table, _, _ = _table_for(entity_type)
        self._check_columns(entity_type, values)
        assignments = [f"{c} = ?" for c in values]
        assignments.append("version = version + 1")
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        cursor = conn.execute(
            f"UPDATE {table} SET {', '.join(assignments)} "
            f"WHERE id = ? AND version = ?",
            (*values.values(), entity_id, expected_version),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _check_columns(entity_type: str, values: dict):
        unknown = set(values) - (entity_columns(entity_type)
                                 - _MANAGED_COLUMNS)
        if unknown:
            raise ValueError(
                f"Unknown {entity_type} field(s): {', '.join(sorted(unknown))}"
            )

    def generate_number(self, entity_type: str, conn=None,
                        year: Optional[int] = None) -> str:
        """Generate the next sequential number like Q-2026-0007."""
        table, _, number_column = _table_for(entity_type)
        prefix = {
            "request": Config.REQUEST_NUMBER_PREFIX,
            "quote": Config.QUOTE_NUMBER_PREFIX,
            "job": Config.JOB_NUMBER_PREFIX,
            "invoice": Config.INVOICE_NUMBER_PREFIX,
        }[entity_type]
        year = year or datetime.now().year
        stem = f"{prefix}-{year}-"
        sql = (f"SELECT {number_column} AS num FROM {table} "
               f"WHERE {number_column} LIKE ? "
               f"ORDER BY LENGTH({number_column}) DESC, {number_column} DESC "
               f"LIMIT 1")
        params = (f"{stem}%",)
        if conn is not None:
            row = conn.execute(sql, params).fetchone()
        else:
            rows = self.db.execute(sql, params)
            row = rows[0] if rows else None
        last = 0
        if row:
            tail = row["num"][len(stem):]
            last = int(tail) if tail.isdigit() else 0
        return f"{stem}{last + 1:04d}"

    # ── Service requests ────────────────────────────────────────

    def get_request_by_id(self, request_id: int) -> Optional[ServiceRequest]:
        return self.get_entity("request", request_id)

    def get_request_by_number(self, number: str) -> Optional[ServiceRequest]:
        return self.get_entity_by_number("request", number)

    def get_all_requests(self, status: Optional[str] = None
                         ) -> list[ServiceRequest]:
        if status and status != "all":
            rows = self.db.execute(
                "SELECT * FROM service_requests WHERE status = ? "
                "ORDER BY created_at DESC, id DESC",
                (status,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM service_requests "
                "ORDER BY created_at DESC, id DESC"
            )
        return [ServiceRequest(**dict(r)) for r in rows]

    def get_requests_with_assessment_on_or_before(
        self, on_date: str,
    ) -> list[ServiceRequest]:
        """Requests whose open assessment is scheduled on or before a day."""
        rows = self.db.execute(
            "SELECT * FROM service_requests "
            "WHERE status IN (?, ?, ?) "
            "AND assessment_scheduled_at IS NOT NULL "
            "AND substr(assessment_scheduled_at, 1, 10) <= ? "
            "ORDER BY assessment_scheduled_at, id",
            (*_OPEN_ASSESSMENT_STATUSES, on_date),
        )
        return [ServiceRequest(**dict(r)) for r in rows]

    def count_rep_assessments(self, rep_id: int, on_date: str,
                              exclude_request_id: Optional[int] = None
                              ) -> int:
        """Open assessments already on a rep's calendar for one day."""
        rows = self.db.execute(
            "SELECT COUNT(*) AS cnt FROM service_requests "
            "WHERE assessment_rep_id = ? "
            "AND substr(assessment_scheduled_at, 1, 10) = ? "
            "AND status IN (?, ?, ?) AND id != ?",
            (rep_id, on_date, *_OPEN_ASSESSMENT_STATUSES,
             exclude_request_id or 0),
        )
        return rows[0]["cnt"] if rows else 0

    def delete_request(self, request_id: int):
        """Delete a request that never left ``pending``."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT status FROM service_requests WHERE id = ?",
                (request_id,),
            ).fetchone()
            if row is None:
                return
            if row["status"] != "pending":
                raise ValueError("Only pending requests can be deleted")
            conn.execute(
                "DELETE FROM service_requests WHERE id = ?", (request_id,)
            )

    # ── Quotes ──────────────────────────────────────────────────

    def get_quote_by_id(self, quote_id: int) -> Optional[Quote]:
        return self.get_entity("quote", quote_id)

    def get_quote_by_number(self, number: str) -> Optional[Quote]:
        return self.get_entity_by_number("quote", number)

    def get_all_quotes(self, status: Optional[str] = None) -> list[Quote]:
        if status and status != "all":
            rows = self.db.execute(
                "SELECT * FROM quotes WHERE status = ? "
                "ORDER BY created_at DESC, id DESC",
                (status,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM quotes ORDER BY created_at DESC, id DESC"
            )
        return [Quote(**dict(r)) for r in rows]

    def get_quotes_for_request(self, request_id: int) -> list[Quote]:
        rows = self.db.execute(
            "SELECT * FROM quotes WHERE request_id = ? ORDER BY id",
            (request_id,),
        )
        return [Quote(**dict(r)) for r in rows]

    def get_quotes_awaiting_approval(self) -> list[Quote]:
        rows = self.db.execute(
            "SELECT * FROM quotes WHERE approval_status = 'pending' "
            "ORDER BY created_at, id"
        )
        return [Quote(**dict(r)) for r in rows]

    def delete_quote(self, quote_id: int):
        """Delete a draft quote."""
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT status FROM quotes WHERE id = ?", (quote_id,)
            ).fetchone()
            if row is None:
                return
            if row["status"] != "draft":
                raise ValueError("Only draft quotes can be deleted")
            conn.execute("DELETE FROM quotes WHERE id = ?", (quote_id,))

    # ── Jobs ────────────────────────────────────────────────────

    def get_job_by_id(self, job_id: int) -> Optional[Job]:
        return self.get_entity("job", job_id)

    def get_job_by_number(self, number: str) -> Optional[Job]:
        return self.get_entity_by_number("job", number)

    def get_all_jobs(self, status: Optional[str] = None) -> list[Job]:
        if status and status != "all":
            rows = self.db.execute(
                "SELECT * FROM jobs WHERE status = ? "
                "ORDER BY scheduled_date IS NULL, scheduled_date, id",
                (status,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM jobs "
                "ORDER BY scheduled_date IS NULL, scheduled_date, id"
            )
        return [Job(**dict(r)) for r in rows]

    def get_crew_jobs(self, crew_id: int, on_date: str) -> list[Job]:
        rows = self.db.execute(
            "SELECT * FROM jobs WHERE assigned_crew_id = ? "
            "AND scheduled_date = ? ORDER BY scheduled_time_start, id",
            (crew_id, on_date),
        )
        return [Job(**dict(r)) for r in rows]

    def get_crew_scheduled_lf(self, crew_id: int, on_date: str,
                              exclude_job_id: Optional[int] = None
                              ) -> float:
        """Linear feet already booked for a crew on one day."""
        rows = self.db.execute(
            "SELECT COALESCE(SUM(linear_feet), 0) AS lf FROM jobs "
            "WHERE assigned_crew_id = ? AND scheduled_date = ? AND id != ?",
            (crew_id, on_date, exclude_job_id or 0),
        )
        return float(rows[0]["lf"]) if rows else 0.0

    def get_jobs_due_for_yard(self, on_date,
                              lead_days: Optional[int] = None) -> list[Job]:
        """Scheduled jobs whose staging window has opened by ``on_date``.

        A job enters the window ``lead_days`` before its scheduled date.
        Jobs already in the yard pipeline are not listed; nothing is
        transitioned here.
        """
        if lead_days is None:
            lead_days = Config.YARD_LEAD_DAYS
        if isinstance(on_date, str):
            on_date = date.fromisoformat(on_date)
        horizon = (on_date + timedelta(days=lead_days)).isoformat()
        rows = self.db.execute(
            "SELECT * FROM jobs WHERE status = 'scheduled' "
            "AND scheduled_date IS NOT NULL AND scheduled_date <= ? "
            "ORDER BY scheduled_date, id",
            (horizon,),
        )
        return [Job(**dict(r)) for r in rows]

    # ── Invoices & payments ─────────────────────────────────────

    def get_invoice_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self.get_entity("invoice", invoice_id)

    def get_invoice_by_number(self, number: str) -> Optional[Invoice]:
        return self.get_entity_by_number("invoice", number)

    def get_all_invoices(self, status: Optional[str] = None
                         ) -> list[Invoice]:
        if status and status != "all":
            rows = self.db.execute(
                "SELECT * FROM invoices WHERE status = ? "
                "ORDER BY invoice_date DESC, id DESC",
                (status,),
            )
        else:
            rows = self.db.execute(
                "SELECT * FROM invoices ORDER BY invoice_date DESC, id DESC"
            )
        return [Invoice(**dict(r)) for r in rows]

    def get_invoices_past_due(self, on_date: str) -> list[Invoice]:
        """Sent invoices with a due date before ``on_date``."""
        rows = self.db.execute(
            "SELECT * FROM invoices WHERE status = 'sent' "
            "AND due_date IS NOT NULL AND due_date < ? "
            "AND balance_due > 0 ORDER BY due_date, id",
            (on_date,),
        )
        return [Invoice(**dict(r)) for r in rows]

    def get_unsynced_invoices(self) -> list[Invoice]:
        rows = self.db.execute(
            "SELECT * FROM invoices "
            "WHERE status != 'draft' "
            "AND (sync_status IS NULL OR sync_status != 'synced') "
            "ORDER BY id"
        )
        return [Invoice(**dict(r)) for r in rows]

    def insert_payment(self, conn, payment: Payment) -> int:
        cursor = conn.execute(
            "INSERT INTO payments "
            "(invoice_id, amount, payment_method, reference_number, "
            "payment_date, notes, external_payment_id, recorded_by) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (payment.invoice_id, payment.amount, payment.payment_method,
             payment.reference_number, payment.payment_date, payment.notes,
             payment.external_payment_id, payment.recorded_by),
        )
        return cursor.lastrowid

    def get_payments(self, invoice_id: int) -> list[Payment]:
        rows = self.db.execute(
            "SELECT * FROM payments WHERE invoice_id = ? "
            "ORDER BY payment_date, id",
            (invoice_id,),
        )
        return [Payment(**dict(r)) for r in rows]

    def get_payment_total(self, invoice_id: int) -> float:
        rows = self.db.execute(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM payments "
            "WHERE invoice_id = ?",
            (invoice_id,),
        )
        return round(float(rows[0]["total"]), 2) if rows else 0.0

    # ── Territories ─────────────────────────────────────────────

    def create_territory(self, territory: Territory) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO territories "
                "(name, code, zip_codes, location_code, is_active) "
                "VALUES (?, ?, ?, ?, ?)",
                (territory.name, territory.code, territory.zip_codes,
                 territory.location_code, territory.is_active),
            )
            return cursor.lastrowid

    def get_territory_by_id(self, territory_id: int) -> Optional[Territory]:
        rows = self.db.execute(
            "SELECT * FROM territories WHERE id = ?", (territory_id,)
        )
        return Territory(**dict(rows[0])) if rows else None

    def get_territory_by_code(self, code: str) -> Optional[Territory]:
        rows = self.db.execute(
            "SELECT * FROM territories WHERE code = ?", (code,)
        )
        return Territory(**dict(rows[0])) if rows else None

    def get_all_territories(self, active_only: bool = True
                            ) -> list[Territory]:
        sql = "SELECT * FROM territories"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY name")
        return [Territory(**dict(r)) for r in rows]

    def find_territory_for_zip(self, zip_code: str) -> Optional[Territory]:
        for territory in self.get_all_territories():
            if zip_code in territory.zip_code_list:
                return territory
        return None

    # ── Crews ───────────────────────────────────────────────────

    def create_crew(self, crew: Crew) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO crews "
                "(name, code, crew_size, max_daily_lf, crew_type, "
                "home_territory_id, lead_name, lead_phone, "
                "is_subcontractor, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (crew.name, crew.code, crew.crew_size, crew.max_daily_lf,
                 crew.crew_type, crew.home_territory_id, crew.lead_name,
                 crew.lead_phone, crew.is_subcontractor, crew.is_active),
            )
            return cursor.lastrowid

    def update_crew(self, crew: Crew):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE crews SET name = ?, code = ?, crew_size = ?, "
                "max_daily_lf = ?, crew_type = ?, home_territory_id = ?, "
                "lead_name = ?, lead_phone = ?, is_subcontractor = ?, "
                "is_active = ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ?",
                (crew.name, crew.code, crew.crew_size, crew.max_daily_lf,
                 crew.crew_type, crew.home_territory_id, crew.lead_name,
                 crew.lead_phone, crew.is_subcontractor, crew.is_active,
                 crew.id),
            )

    def get_crew_by_id(self, crew_id: int) -> Optional[Crew]:
        rows = self.db.execute("SELECT * FROM crews WHERE id = ?", (crew_id,))
        return Crew(**dict(rows[0])) if rows else None

    def get_crew_by_code(self, code: str) -> Optional[Crew]:
        rows = self.db.execute("SELECT * FROM crews WHERE code = ?", (code,))
        return Crew(**dict(rows[0])) if rows else None

    def get_all_crews(self, active_only: bool = True) -> list[Crew]:
        sql = "SELECT * FROM crews"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY name")
        return [Crew(**dict(r)) for r in rows]

    # ── Team profiles ───────────────────────────────────────────

    def create_team_profile(self, profile: TeamProfile) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO team_profiles "
                "(name, email, phone, fsm_roles, max_daily_assessments, "
                "crew_id, is_active) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (profile.name, profile.email, profile.phone,
                 profile.fsm_roles, profile.max_daily_assessments,
                 profile.crew_id, profile.is_active),
            )
            return cursor.lastrowid

    def get_team_profile_by_id(self, profile_id: int
                               ) -> Optional[TeamProfile]:
        rows = self.db.execute(
            "SELECT * FROM team_profiles WHERE id = ?", (profile_id,)
        )
        return TeamProfile(**dict(rows[0])) if rows else None

    def get_all_team_profiles(self, active_only: bool = True,
                              role: Optional[str] = None
                              ) -> list[TeamProfile]:
        sql = "SELECT * FROM team_profiles"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY name")
        profiles = [TeamProfile(**dict(r)) for r in rows]
        if role:
            profiles = [p for p in profiles if p.has_role(role)]
        return profiles

    # ── Project types & skills ──────────────────────────────────

    def get_all_project_types(self, active_only: bool = True
                              ) -> list[ProjectType]:
        sql = "SELECT * FROM project_types"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY display_order, name")
        return [ProjectType(**dict(r)) for r in rows]

    def get_project_type_by_id(self, type_id: int) -> Optional[ProjectType]:
        rows = self.db.execute(
            "SELECT * FROM project_types WHERE id = ?", (type_id,)
        )
        return ProjectType(**dict(rows[0])) if rows else None

    def find_project_type(self, name_or_code: str) -> Optional[ProjectType]:
        """Match a product type by code or name, ignoring case."""
        key = (name_or_code or "").strip()
        rows = self.db.execute(
            "SELECT * FROM project_types "
            "WHERE UPPER(code) = UPPER(?) OR UPPER(name) = UPPER(?)",
            (key, key),
        )
        return ProjectType(**dict(rows[0])) if rows else None

    def add_skill(self, skill: Skill) -> int:
        """Register or replace a skill record for a crew or rep."""
        with self.db.get_connection() as conn:
            conn.execute(
                "INSERT INTO skills "
                "(assignee_type, assignee_id, project_type_id, proficiency, "
                "duration_multiplier, certified_at, notes) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(assignee_type, assignee_id, project_type_id) "
                "DO UPDATE SET proficiency = excluded.proficiency, "
                "duration_multiplier = excluded.duration_multiplier, "
                "certified_at = excluded.certified_at, "
                "notes = excluded.notes",
                (skill.assignee_type, skill.assignee_id,
                 skill.project_type_id, skill.proficiency,
                 skill.duration_multiplier, skill.certified_at, skill.notes),
            )
            row = conn.execute(
                "SELECT id FROM skills WHERE assignee_type = ? "
                "AND assignee_id = ? AND project_type_id = ?",
                (skill.assignee_type, skill.assignee_id,
                 skill.project_type_id),
            ).fetchone()
            return row["id"]

    _SKILLS_SELECT = """
        SELECT s.*,
               COALESCE(pt.name, '') AS project_type_name,
               COALESCE(pt.code, '') AS project_type_code
        FROM skills s
        LEFT JOIN project_types pt ON s.project_type_id = pt.id
    """

    def get_skills(self, assignee_type: str, assignee_id: int) -> list[Skill]:
        rows = self.db.execute(
            self._SKILLS_SELECT
            + " WHERE s.assignee_type = ? AND s.assignee_id = ? "
            "ORDER BY pt.display_order",
            (assignee_type, assignee_id),
        )
        return [Skill(**dict(r)) for r in rows]

    def get_skill_for(self, assignee_type: str, assignee_id: int,
                      project_type_id: int) -> Optional[Skill]:
        rows = self.db.execute(
            self._SKILLS_SELECT
            + " WHERE s.assignee_type = ? AND s.assignee_id = ? "
            "AND s.project_type_id = ?",
            (assignee_type, assignee_id, project_type_id),
        )
        return Skill(**dict(rows[0])) if rows else None

    # ── Territory coverage ──────────────────────────────────────

    def add_coverage(self, coverage: TerritoryCoverage) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO territory_coverage "
                "(assignee_type, assignee_id, territory_id, coverage_days, "
                "is_primary, is_active) VALUES (?, ?, ?, ?, ?, ?)",
                (coverage.assignee_type, coverage.assignee_id,
                 coverage.territory_id, coverage.coverage_days,
                 coverage.is_primary, coverage.is_active),
            )
            return cursor.lastrowid

    def get_coverage(self, assignee_type: str, assignee_id: int,
                     territory_id: Optional[int] = None
                     ) -> list[TerritoryCoverage]:
        """Active coverage rows for an assignee, optionally one territory."""
        sql = ("SELECT * FROM territory_coverage "
               "WHERE assignee_type = ? AND assignee_id = ? "
               "AND is_active = 1")
        params: list = [assignee_type, assignee_id]
        if territory_id is not None:
            sql += " AND territory_id = ?"
            params.append(territory_id)
        rows = self.db.execute(sql + " ORDER BY is_primary DESC, id",
                               tuple(params))
        return [TerritoryCoverage(**dict(r)) for r in rows]

    # ── Assignment checks ───────────────────────────────────────

    def record_assignment_check(self, check: AssignmentCheck) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO assignment_checks "
                "(assignee_type, assignee_id, target_type, target_id, "
                "check_date, ok, reason, detail, overridden, checked_by, "
                "checked_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (check.assignee_type, check.assignee_id, check.target_type,
                 check.target_id, check.check_date, check.ok, check.reason,
                 check.detail, check.overridden, check.checked_by,
                 check.checked_at),
            )
            return cursor.lastrowid

    def get_assignment_checks(self, target_type: str, target_id: int
                              ) -> list[AssignmentCheck]:
        rows = self.db.execute(
            "SELECT * FROM assignment_checks "
            "WHERE target_type = ? AND target_id = ? ORDER BY id",
            (target_type, target_id),
        )
        return [AssignmentCheck(**dict(r)) for r in rows]

    # ── Summaries ───────────────────────────────────────────────

    def get_status_counts(self, entity_type: str) -> dict:
        """Number of entities in each status, for dashboards."""
        table, _, _ = _table_for(entity_type)
        rows = self.db.execute(
            f"SELECT status, COUNT(*) AS cnt FROM {table} GROUP BY status"
        )
        return {r["status"]: r["cnt"] for r in rows}

    def get_receivables_summary(self) -> dict:
        rows = self.db.execute(
            "SELECT COUNT(*) AS open_count, "
            "COALESCE(SUM(balance_due), 0) AS outstanding, "
            "COALESCE(SUM(CASE WHEN status = 'past_due' "
            "THEN balance_due ELSE 0 END), 0) AS past_due "
            "FROM invoices WHERE status IN ('sent', 'past_due')"
        )
        row = rows[0]
        return {
            "open_count": row["open_count"],
            "outstanding": round(row["outstanding"], 2),
            "past_due": round(row["past_due"], 2),
        }


def dump_json_list(values) -> str:
    """Serialize a list column value."""
    return json.dumps(list(values or []))
