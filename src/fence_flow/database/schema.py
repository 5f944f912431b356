"""Database schema definition and initialization."""

from fence_flow.utils.constants import DEFAULT_PROJECT_TYPES

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # ── Reference data ──────────────────────────────────────────

    """CREATE TABLE IF NOT EXISTS territories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        code TEXT NOT NULL UNIQUE,
        zip_codes TEXT NOT NULL DEFAULT '[]',
        location_code TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    """CREATE TABLE IF NOT EXISTS crews (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        code TEXT NOT NULL UNIQUE,
        crew_size INTEGER NOT NULL DEFAULT 2 CHECK (crew_size > 0),
        max_daily_lf INTEGER NOT NULL DEFAULT 200 CHECK (max_daily_lf >= 0),
        crew_type TEXT NOT NULL DEFAULT 'standard'
            CHECK (crew_type IN ('standard', 'internal', 'small_jobs')),
        home_territory_id INTEGER,
        lead_name TEXT,
        lead_phone TEXT,
        is_subcontractor INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (home_territory_id) REFERENCES territories(id)
            ON DELETE SET NULL
    )""",

    # Sales reps and other field staff
    """CREATE TABLE IF NOT EXISTS team_profiles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        fsm_roles TEXT NOT NULL DEFAULT '["rep"]',
        max_daily_assessments INTEGER NOT NULL DEFAULT 4
            CHECK (max_daily_assessments >= 0),
        crew_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (crew_id) REFERENCES crews(id) ON DELETE SET NULL
    )""",

    """CREATE TABLE IF NOT EXISTS project_types (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        code TEXT NOT NULL UNIQUE,
        description TEXT,
        display_order INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Skill records for crews and reps, one per project type
    """CREATE TABLE IF NOT EXISTS skills (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        assignee_type TEXT NOT NULL CHECK (assignee_type IN ('crew', 'rep')),
        assignee_id INTEGER NOT NULL,
        project_type_id INTEGER NOT NULL,
        proficiency TEXT NOT NULL DEFAULT 'standard'
            CHECK (proficiency IN ('trainee', 'basic', 'standard', 'expert')),
        duration_multiplier REAL NOT NULL DEFAULT 1.0,
        certified_at TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (project_type_id) REFERENCES project_types(id)
            ON DELETE CASCADE,
        UNIQUE(assignee_type, assignee_id, project_type_id)
    )""",

    # coverage_days NULL = all days
    """CREATE TABLE IF NOT EXISTS territory_coverage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        assignee_type TEXT NOT NULL CHECK (assignee_type IN ('crew', 'rep')),
        assignee_id INTEGER NOT NULL,
        territory_id INTEGER NOT NULL,
        coverage_days TEXT,
        is_primary INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (territory_id) REFERENCES territories(id)
            ON DELETE CASCADE,
        UNIQUE(assignee_type, assignee_id, territory_id)
    )""",

    # ── Workflow entities ───────────────────────────────────────

    """CREATE TABLE IF NOT EXISTS service_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_number TEXT NOT NULL UNIQUE,
        project_id INTEGER,
        client_id INTEGER,
        community_id INTEGER,
        property_id INTEGER,
        contact_name TEXT,
        contact_email TEXT,
        contact_phone TEXT,
        address_line1 TEXT,
        city TEXT,
        state TEXT NOT NULL DEFAULT 'TX',
        zip TEXT,
        source TEXT NOT NULL DEFAULT 'phone'
            CHECK (source IN ('phone', 'web', 'referral', 'walk_in',
                              'builder_portal')),
        request_type TEXT NOT NULL DEFAULT 'new_quote'
            CHECK (request_type IN ('new_quote', 'repair', 'warranty')),
        product_type TEXT,
        linear_feet_estimate REAL,
        description TEXT,
        notes TEXT,
        requires_assessment INTEGER NOT NULL DEFAULT 1,
        assessment_scheduled_at TEXT,
        assessment_completed_at TEXT,
        assessment_rep_id INTEGER,
        assessment_notes TEXT,
        assigned_rep_id INTEGER,
        territory_id INTEGER,
        priority TEXT NOT NULL DEFAULT 'normal'
            CHECK (priority IN ('low', 'normal', 'high', 'urgent')),
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'assessment_scheduled',
                              'assessment_today', 'assessment_overdue',
                              'assessment_completed', 'converted',
                              'archived')),
        status_changed_at TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        converted_to_quote_id INTEGER,
        converted_to_job_id INTEGER,
        created_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (assessment_rep_id) REFERENCES team_profiles(id)
            ON DELETE SET NULL,
        FOREIGN KEY (assigned_rep_id) REFERENCES team_profiles(id)
            ON DELETE SET NULL,
        FOREIGN KEY (territory_id) REFERENCES territories(id)
            ON DELETE SET NULL,
        CHECK (status != 'converted' OR converted_to_quote_id IS NOT NULL
               OR converted_to_job_id IS NOT NULL)
    )""",

    """CREATE TABLE IF NOT EXISTS quotes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        quote_number TEXT NOT NULL UNIQUE,
        project_id INTEGER,
        request_id INTEGER,
        client_id INTEGER,
        community_id INTEGER,
        property_id INTEGER,
        job_address TEXT,
        subtotal REAL NOT NULL DEFAULT 0,
        tax_rate REAL NOT NULL DEFAULT 0,
        tax_amount REAL NOT NULL DEFAULT 0,
        discount_amount REAL NOT NULL DEFAULT 0,
        discount_percent REAL NOT NULL DEFAULT 0,
        total REAL NOT NULL DEFAULT 0,
        total_material_cost REAL NOT NULL DEFAULT 0,
        total_labor_cost REAL NOT NULL DEFAULT 0,
        margin_percent REAL,
        valid_until TEXT,
        payment_terms TEXT,
        deposit_required REAL NOT NULL DEFAULT 0,
        deposit_percent REAL NOT NULL DEFAULT 0,
        product_type TEXT,
        linear_feet REAL,
        scope_summary TEXT,
        requires_approval INTEGER NOT NULL DEFAULT 0,
        approval_status TEXT
            CHECK (approval_status IS NULL
                   OR approval_status IN ('pending', 'approved', 'rejected')),
        approval_reason TEXT,
        approved_by TEXT,
        approved_at TEXT,
        approval_notes TEXT,
        sent_at TEXT,
        sent_method TEXT,
        sent_to_email TEXT,
        viewed_at TEXT,
        client_approved_at TEXT,
        client_signature TEXT,
        client_po_number TEXT,
        lost_reason TEXT,
        lost_to_competitor TEXT,
        converted_to_job_id INTEGER,
        sales_rep_id INTEGER,
        territory_id INTEGER,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'pending_approval', 'sent',
                              'follow_up', 'changes_requested', 'approved',
                              'converted', 'lost')),
        status_changed_at TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        created_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (request_id) REFERENCES service_requests(id)
            ON DELETE SET NULL,
        FOREIGN KEY (sales_rep_id) REFERENCES team_profiles(id)
            ON DELETE SET NULL,
        CHECK (status != 'sent' OR sent_at IS NOT NULL),
        CHECK (status != 'approved' OR client_approved_at IS NOT NULL),
        CHECK (status != 'converted' OR converted_to_job_id IS NOT NULL)
    )""",

    """CREATE TABLE IF NOT EXISTS jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_number TEXT NOT NULL UNIQUE,
        project_id INTEGER,
        quote_id INTEGER,
        request_id INTEGER,
        is_warranty INTEGER NOT NULL DEFAULT 0,
        client_id INTEGER,
        community_id INTEGER,
        property_id INTEGER,
        job_address TEXT,
        product_type TEXT,
        linear_feet REAL,
        description TEXT,
        special_instructions TEXT,
        quoted_total REAL,
        scheduled_date TEXT,
        scheduled_time_start TEXT,
        scheduled_time_end TEXT,
        estimated_duration_hours REAL,
        assigned_crew_id INTEGER,
        assigned_rep_id INTEGER,
        territory_id INTEGER,
        status TEXT NOT NULL DEFAULT 'won'
            CHECK (status IN ('won', 'scheduled', 'ready_for_yard',
                              'picking', 'staged', 'loaded', 'in_progress',
                              'completed', 'requires_invoicing')),
        status_changed_at TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        ready_for_yard_at TEXT,
        picking_started_at TEXT,
        picking_completed_at TEXT,
        staging_completed_at TEXT,
        loaded_at TEXT,
        work_started_at TEXT,
        work_completed_at TEXT,
        completion_photos TEXT NOT NULL DEFAULT '[]',
        completion_signature TEXT,
        completion_notes TEXT,
        completed_by TEXT,
        invoice_id INTEGER,
        created_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (quote_id) REFERENCES quotes(id) ON DELETE SET NULL,
        FOREIGN KEY (request_id) REFERENCES service_requests(id)
            ON DELETE SET NULL,
        FOREIGN KEY (assigned_crew_id) REFERENCES crews(id)
            ON DELETE SET NULL,
        FOREIGN KEY (assigned_rep_id) REFERENCES team_profiles(id)
            ON DELETE SET NULL,
        FOREIGN KEY (territory_id) REFERENCES territories(id)
            ON DELETE SET NULL
    )""",

    """CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_number TEXT NOT NULL UNIQUE,
        project_id INTEGER,
        job_id INTEGER,
        quote_id INTEGER,
        client_id INTEGER,
        billing_address TEXT,
        subtotal REAL NOT NULL DEFAULT 0,
        tax_rate REAL NOT NULL DEFAULT 0,
        tax_amount REAL NOT NULL DEFAULT 0,
        discount_amount REAL NOT NULL DEFAULT 0,
        total REAL NOT NULL DEFAULT 0 CHECK (total >= 0),
        amount_paid REAL NOT NULL DEFAULT 0 CHECK (amount_paid >= 0),
        balance_due REAL NOT NULL DEFAULT 0,
        invoice_date TEXT NOT NULL,
        due_date TEXT,
        payment_terms TEXT,
        po_number TEXT,
        sent_at TEXT,
        sent_method TEXT,
        sent_to_email TEXT,
        external_invoice_id TEXT,
        sync_status TEXT
            CHECK (sync_status IS NULL
                   OR sync_status IN ('pending', 'synced', 'error')),
        synced_at TEXT,
        sync_error TEXT,
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'sent', 'past_due', 'paid',
                              'bad_debt')),
        status_changed_at TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        created_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE SET NULL,
        FOREIGN KEY (quote_id) REFERENCES quotes(id) ON DELETE SET NULL,
        CHECK (ABS(balance_due - (total - amount_paid)) < 0.005),
        CHECK (status != 'paid' OR ABS(balance_due) < 0.005)
    )""",

    """CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id INTEGER NOT NULL,
        amount REAL NOT NULL CHECK (amount > 0),
        payment_method TEXT NOT NULL DEFAULT 'check'
            CHECK (payment_method IN ('card', 'check', 'cash', 'ach',
                                      'external')),
        reference_number TEXT,
        payment_date TEXT NOT NULL,
        notes TEXT,
        external_payment_id TEXT,
        recorded_by TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE RESTRICT
    )""",

    # ── Audit ───────────────────────────────────────────────────

    # Append-only: see triggers below
    """CREATE TABLE IF NOT EXISTS status_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_type TEXT NOT NULL
            CHECK (entity_type IN ('request', 'quote', 'job', 'invoice')),
        entity_id INTEGER NOT NULL,
        from_status TEXT,
        to_status TEXT NOT NULL,
        changed_at TEXT NOT NULL,
        changed_by TEXT,
        notes TEXT
    )""",

    """CREATE TABLE IF NOT EXISTS assignment_checks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        assignee_type TEXT NOT NULL CHECK (assignee_type IN ('crew', 'rep')),
        assignee_id INTEGER NOT NULL,
        target_type TEXT NOT NULL CHECK (target_type IN ('job', 'request')),
        target_id INTEGER NOT NULL,
        check_date TEXT,
        ok INTEGER NOT NULL,
        reason TEXT,
        detail TEXT,
        overridden INTEGER NOT NULL DEFAULT 0,
        checked_by TEXT,
        checked_at TEXT NOT NULL
    )""",

    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # ── Triggers ────────────────────────────────────────────────

    """CREATE TRIGGER IF NOT EXISTS status_history_no_update
        BEFORE UPDATE ON status_history
        BEGIN
            SELECT RAISE(ABORT, 'status_history is append-only');
        END""",

    """CREATE TRIGGER IF NOT EXISTS status_history_no_delete
        BEFORE DELETE ON status_history
        BEGIN
            SELECT RAISE(ABORT, 'status_history is append-only');
        END""",

    # ── Indexes ─────────────────────────────────────────────────

    "CREATE INDEX IF NOT EXISTS idx_history_entity "
    "ON status_history(entity_type, entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_history_changed "
    "ON status_history(changed_at)",
    "CREATE INDEX IF NOT EXISTS idx_requests_status "
    "ON service_requests(status)",
    "CREATE INDEX IF NOT EXISTS idx_requests_assessment "
    "ON service_requests(assessment_rep_id, assessment_scheduled_at)",
    "CREATE INDEX IF NOT EXISTS idx_quotes_status ON quotes(status)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status)",
    "CREATE INDEX IF NOT EXISTS idx_jobs_crew_date "
    "ON jobs(assigned_crew_id, scheduled_date)",
    "CREATE INDEX IF NOT EXISTS idx_invoices_status ON invoices(status)",
    "CREATE INDEX IF NOT EXISTS idx_payments_invoice "
    "ON payments(invoice_id)",
    "CREATE INDEX IF NOT EXISTS idx_checks_target "
    "ON assignment_checks(target_type, target_id)",

    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]


def _get_schema_version(conn) -> int:
    """Return the current schema version, or 0 for a fresh database."""
    row = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if not row:
        return 0
    row = conn.execute(
        "SELECT MAX(version) AS version FROM schema_version"
    ).fetchone()
    return row["version"] or 0


def _seed_project_types(conn):
    """Insert the default fence product lines."""
    for order, (name, code) in enumerate(DEFAULT_PROJECT_TYPES):
        conn.execute(
            "INSERT OR IGNORE INTO project_types "
            "(name, code, display_order) VALUES (?, ?, ?)",
            (name, code, order),
        )


def initialize_database(db_connection):
    """Create all tables, indexes, triggers, and seed data.

    Safe to call on every start: an up-to-date database is left untouched.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)

        if version == 0:
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
            _seed_project_types(conn)
        elif version > SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{version} is newer than this "
                f"application (v{SCHEMA_VERSION})"
            )
