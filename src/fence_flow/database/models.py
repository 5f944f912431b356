"""Data models for the database layer."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fence_flow.utils.constants import PRIVILEGED_ROLES


def _json_list(raw) -> list:
    """Decode a JSON array column, tolerating NULL and bad data."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


# ── Reference data ──────────────────────────────────────────────


@dataclass
class Territory:
    id: Optional[int] = None
    name: str = ""
    code: str = ""
    zip_codes: str = "[]"  # JSON array
    location_code: Optional[str] = None
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def zip_code_list(self) -> list[str]:
        return [str(z) for z in _json_list(self.zip_codes)]


@dataclass
class Crew:
    id: Optional[int] = None
    name: str = ""
    code: str = ""
    crew_size: int = 2
    max_daily_lf: int = 200
    crew_type: str = "standard"
    home_territory_id: Optional[int] = None
    lead_name: Optional[str] = None
    lead_phone: Optional[str] = None
    is_subcontractor: int = 0
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class TeamProfile:
    """A sales rep, project manager or other field staff member."""
    id: Optional[int] = None
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    fsm_roles: str = '["rep"]'  # JSON array
    max_daily_assessments: int = 4
    crew_id: Optional[int] = None
    is_active: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def role_list(self) -> list[str]:
        return _json_list(self.fsm_roles)

    def has_role(self, role: str) -> bool:
        return role in self.role_list


@dataclass
class ProjectType:
    id: Optional[int] = None
    name: str = ""
    code: str = ""
    description: Optional[str] = None
    display_order: int = 0
    is_active: int = 1
    created_at: Optional[datetime] = None


@dataclass
class Skill:
    id: Optional[int] = None
    assignee_type: str = "crew"  # 'crew' or 'rep'
    assignee_id: int = 0
    project_type_id: int = 0
    proficiency: str = "standard"
    duration_multiplier: float = 1.0
    certified_at: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    # Joined fields
    project_type_name: str = field(default="", repr=False)
    project_type_code: str = field(default="", repr=False)


@dataclass
class TerritoryCoverage:
    id: Optional[int] = None
    assignee_type: str = "crew"
    assignee_id: int = 0
    territory_id: int = 0
    coverage_days: Optional[str] = None  # JSON array, NULL = every day
    is_primary: int = 0
    is_active: int = 1
    created_at: Optional[datetime] = None

    @property
    def day_list(self) -> Optional[list[str]]:
        """Covered days, or None when the assignee covers every day."""
        if self.coverage_days is None:
            return None
        return _json_list(self.coverage_days)

    def covers_day(self, day: str) -> bool:
        days = self.day_list
        return days is None or day in days


# ── Workflow entities ───────────────────────────────────────────


@dataclass
class ServiceRequest:
    id: Optional[int] = None
    request_number: str = ""
    project_id: Optional[int] = None
    client_id: Optional[int] = None
    community_id: Optional[int] = None
    property_id: Optional[int] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: str = "TX"
    zip: Optional[str] = None
    source: str = "phone"
    request_type: str = "new_quote"
    product_type: Optional[str] = None
    linear_feet_estimate: Optional[float] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    requires_assessment: int = 1
    assessment_scheduled_at: Optional[str] = None
    assessment_completed_at: Optional[str] = None
    assessment_rep_id: Optional[int] = None
    assessment_notes: Optional[str] = None
    assigned_rep_id: Optional[int] = None
    territory_id: Optional[int] = None
    priority: str = "normal"
    status: str = "pending"
    status_changed_at: Optional[str] = None
    version: int = 1
    converted_to_quote_id: Optional[int] = None
    converted_to_job_id: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_converted(self) -> bool:
        return (self.converted_to_quote_id is not None
                or self.converted_to_job_id is not None)


@dataclass
class Quote:
    id: Optional[int] = None
    quote_number: str = ""
    project_id: Optional[int] = None
    request_id: Optional[int] = None
    client_id: Optional[int] = None
    community_id: Optional[int] = None
    property_id: Optional[int] = None
    job_address: Optional[str] = None
    subtotal: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    discount_amount: float = 0.0
    discount_percent: float = 0.0
    total: float = 0.0
    total_material_cost: float = 0.0
    total_labor_cost: float = 0.0
    margin_percent: Optional[float] = None
    valid_until: Optional[str] = None
    payment_terms: Optional[str] = None
    deposit_required: float = 0.0
    deposit_percent: float = 0.0
    product_type: Optional[str] = None
    linear_feet: Optional[float] = None
    scope_summary: Optional[str] = None
    requires_approval: int = 0
    approval_status: Optional[str] = None  # pending, approved, rejected
    approval_reason: Optional[str] = None  # comma separated threshold kinds
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    approval_notes: Optional[str] = None
    sent_at: Optional[str] = None
    sent_method: Optional[str] = None
    sent_to_email: Optional[str] = None
    viewed_at: Optional[str] = None
    client_approved_at: Optional[str] = None
    client_signature: Optional[str] = None
    client_po_number: Optional[str] = None
    lost_reason: Optional[str] = None
    lost_to_competitor: Optional[str] = None
    converted_to_job_id: Optional[int] = None
    sales_rep_id: Optional[int] = None
    territory_id: Optional[int] = None
    status: str = "draft"
    status_changed_at: Optional[str] = None
    version: int = 1
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def approval_reasons(self) -> list[str]:
        if not self.approval_reason:
            return []
        return [r for r in self.approval_reason.split(",") if r]

    @property
    def effective_discount_percent(self) -> float:
        """Discount as a percent of subtotal, derived when not set."""
        if self.discount_percent:
            return self.discount_percent
        if self.discount_amount and self.subtotal:
            return round(self.discount_amount / self.subtotal * 100, 2)
        return 0.0

    @property
    def is_approved_internally(self) -> bool:
        return self.approval_status == "approved"


@dataclass
class Job:
    id: Optional[int] = None
    job_number: str = ""
    project_id: Optional[int] = None
    quote_id: Optional[int] = None
    request_id: Optional[int] = None
    is_warranty: int = 0
    client_id: Optional[int] = None
    community_id: Optional[int] = None
    property_id: Optional[int] = None
    job_address: Optional[str] = None
    product_type: Optional[str] = None
    linear_feet: Optional[float] = None
    description: Optional[str] = None
    special_instructions: Optional[str] = None
    quoted_total: Optional[float] = None
    scheduled_date: Optional[str] = None  # YYYY-MM-DD
    scheduled_time_start: Optional[str] = None
    scheduled_time_end: Optional[str] = None
    estimated_duration_hours: Optional[float] = None
    assigned_crew_id: Optional[int] = None
    assigned_rep_id: Optional[int] = None
    territory_id: Optional[int] = None
    status: str = "won"
    status_changed_at: Optional[str] = None
    version: int = 1
    ready_for_yard_at: Optional[str] = None
    picking_started_at: Optional[str] = None
    picking_completed_at: Optional[str] = None
    staging_completed_at: Optional[str] = None
    loaded_at: Optional[str] = None
    work_started_at: Optional[str] = None
    work_completed_at: Optional[str] = None
    completion_photos: str = "[]"  # JSON array of photo references
    completion_signature: Optional[str] = None
    completion_notes: Optional[str] = None
    completed_by: Optional[str] = None
    invoice_id: Optional[int] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def photo_list(self) -> list[str]:
        return _json_list(self.completion_photos)

    @property
    def is_direct(self) -> bool:
        """True when the job was created without a quote."""
        return self.quote_id is None


@dataclass
class Invoice:
    id: Optional[int] = None
    invoice_number: str = ""
    project_id: Optional[int] = None
    job_id: Optional[int] = None
    quote_id: Optional[int] = None
    client_id: Optional[int] = None
    billing_address: Optional[str] = None
    subtotal: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    discount_amount: float = 0.0
    total: float = 0.0
    amount_paid: float = 0.0
    balance_due: float = 0.0
    invoice_date: str = ""
    due_date: Optional[str] = None
    payment_terms: Optional[str] = None
    po_number: Optional[str] = None
    sent_at: Optional[str] = None
    sent_method: Optional[str] = None
    sent_to_email: Optional[str] = None
    external_invoice_id: Optional[str] = None
    sync_status: Optional[str] = None
    synced_at: Optional[str] = None
    sync_error: Optional[str] = None
    status: str = "draft"
    status_changed_at: Optional[str] = None
    version: int = 1
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_settled(self) -> bool:
        return abs(self.balance_due) < 0.005


@dataclass
class Payment:
    id: Optional[int] = None
    invoice_id: int = 0
    amount: float = 0.0
    payment_method: str = "check"
    reference_number: Optional[str] = None
    payment_date: str = ""
    notes: Optional[str] = None
    external_payment_id: Optional[str] = None
    recorded_by: Optional[str] = None
    created_at: Optional[datetime] = None


# ── Audit ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One accepted status change. Never mutated once written."""
    entity_type: str
    entity_id: int
    to_status: str
    changed_at: str
    from_status: Optional[str] = None
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass
class AssignmentCheck:
    id: Optional[int] = None
    assignee_type: str = "crew"
    assignee_id: int = 0
    target_type: str = "job"  # 'job' or 'request'
    target_id: int = 0
    check_date: Optional[str] = None
    ok: int = 1
    reason: Optional[str] = None
    detail: Optional[str] = None
    overridden: int = 0
    checked_by: Optional[str] = None
    checked_at: str = ""


# ── Value objects ───────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    """Whoever is asking the engine to change something."""
    name: str
    roles: tuple = ()
    id: Optional[int] = None

    @property
    def is_privileged(self) -> bool:
        return any(role in PRIVILEGED_ROLES for role in self.roles)


@dataclass(frozen=True)
class ApprovalEvaluation:
    required: bool
    reasons: tuple = ()

    @property
    def reason_text(self) -> Optional[str]:
        return ",".join(self.reasons) if self.reasons else None


@dataclass(frozen=True)
class FeasibilityResult:
    ok: bool
    reason: Optional[str] = None
    detail: str = ""

    @classmethod
    def passed(cls, detail: str = "") -> "FeasibilityResult":
        return cls(ok=True, detail=detail)

    @classmethod
    def failed(cls, reason: str, detail: str) -> "FeasibilityResult":
        return cls(ok=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class YardSnapshot:
    """What the yard system needs to decide when to stage a job."""
    job_id: int
    job_number: str
    status: str
    scheduled_date: Optional[str]
    phase_index: int
    stamps: dict = field(default_factory=dict)
