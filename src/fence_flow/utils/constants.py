"""Application-wide constants."""

APP_NAME = "FenceFlow"
APP_VERSION = "1.0.0"

# Primary workflow entities, in pipeline order
ENTITY_TYPES = ["request", "quote", "job", "invoice"]

# ── Statuses ─────────────────────────────────────────────────────

REQUEST_STATUSES = [
    "pending",
    "assessment_scheduled",
    "assessment_today",
    "assessment_overdue",
    "assessment_completed",
    "converted",
    "archived",
]

QUOTE_STATUSES = [
    "draft",
    "pending_approval",
    "sent",
    "follow_up",
    "changes_requested",
    "approved",
    "converted",
    "lost",
]

# Linear yard/field pipeline, in order
JOB_STATUSES = [
    "won",
    "scheduled",
    "ready_for_yard",
    "picking",
    "staged",
    "loaded",
    "in_progress",
    "completed",
    "requires_invoicing",
]

INVOICE_STATUSES = ["draft", "sent", "past_due", "paid", "bad_debt"]

STATUSES_BY_ENTITY = {
    "request": REQUEST_STATUSES,
    "quote": QUOTE_STATUSES,
    "job": JOB_STATUSES,
    "invoice": INVOICE_STATUSES,
}

# Status a freshly created entity starts in
INITIAL_STATUS = {
    "request": "pending",
    "quote": "draft",
    "job": "won",
    "invoice": "draft",
}

STATUS_LABELS = {
    "pending": "Pending",
    "assessment_scheduled": "Assessment Scheduled",
    "assessment_today": "Assessment Today",
    "assessment_overdue": "Assessment Overdue",
    "assessment_completed": "Assessment Complete",
    "converted": "Converted",
    "archived": "Archived",
    "draft": "Draft",
    "pending_approval": "Pending Approval",
    "sent": "Sent",
    "follow_up": "Follow Up",
    "changes_requested": "Changes Requested",
    "approved": "Approved",
    "lost": "Lost",
    "won": "Won",
    "scheduled": "Scheduled",
    "ready_for_yard": "Ready for Yard",
    "picking": "Picking",
    "staged": "Staged",
    "loaded": "Loaded",
    "in_progress": "In Progress",
    "completed": "Completed",
    "requires_invoicing": "Requires Invoicing",
    "past_due": "Past Due",
    "paid": "Paid",
    "bad_debt": "Bad Debt",
}

# ── Request classification ───────────────────────────────────────

REQUEST_PRIORITIES = ["low", "normal", "high", "urgent"]
REQUEST_SOURCES = ["phone", "web", "referral", "walk_in", "builder_portal"]
REQUEST_TYPES = ["new_quote", "repair", "warranty"]

# ── Quotes ───────────────────────────────────────────────────────

# Reasons the approval gate can report
THRESHOLD_QUOTE_TOTAL = "QUOTE_TOTAL"
THRESHOLD_MARGIN_MINIMUM = "MARGIN_MINIMUM"
THRESHOLD_DISCOUNT_MAXIMUM = "DISCOUNT_MAXIMUM"
THRESHOLD_KINDS = [
    THRESHOLD_QUOTE_TOTAL,
    THRESHOLD_MARGIN_MINIMUM,
    THRESHOLD_DISCOUNT_MAXIMUM,
]

SEND_METHODS = ["email", "client_hub", "print", "manual"]

# ── Invoices & payments ──────────────────────────────────────────

PAYMENT_METHODS = ["card", "check", "cash", "ach", "external"]

# ── Team & reference data ────────────────────────────────────────

# Roles allowed to approve quotes and override feasibility results
PRIVILEGED_ROLES = ["manager"]

CREW_TYPES = ["standard", "internal", "small_jobs"]

ASSIGNEE_TYPES = ["crew", "rep"]

DAYS_OF_WEEK = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

# Ordered lowest to highest
PROFICIENCY_LEVELS = ["trainee", "basic", "standard", "expert"]
MINIMUM_ASSIGNABLE_PROFICIENCY = "basic"

PROFICIENCY_MULTIPLIERS = {
    "trainee": 1.30,
    "basic": 1.15,
    "standard": 1.00,
    "expert": 0.85,
}

DEFAULT_MAX_DAILY_LF = 200
DEFAULT_MAX_DAILY_ASSESSMENTS = 4

# Feasibility failure kinds
FEASIBILITY_TERRITORY = "TerritoryMismatch"
FEASIBILITY_SKILL = "SkillGap"
FEASIBILITY_CAPACITY = "CapacityExceeded"

# Seeded on a fresh database
DEFAULT_PROJECT_TYPES = [
    ("Wood Vertical", "WV"),
    ("Wood Horizontal", "WH"),
    ("Iron", "IR"),
    ("Chain Link", "CL"),
    ("Vinyl", "VY"),
    ("Gate", "GT"),
    ("Deck", "DK"),
    ("Glass Railing", "GR"),
]
