"""Shared test fixtures."""

from datetime import datetime, timedelta

import pytest

from fence_flow.database.connection import DatabaseConnection
from fence_flow.database.models import (
    Actor,
    Crew,
    Skill,
    TeamProfile,
    Territory,
    TerritoryCoverage,
)
from fence_flow.database.repository import Repository
from fence_flow.database.schema import initialize_database
from fence_flow.workflow.engine import WorkflowEngine
from fence_flow.workflow.pipeline import FieldServicePipeline

# Monday
START = datetime(2025, 6, 9, 8, 0, 0)

THRESHOLDS = {
    "QUOTE_TOTAL": 25000.0,
    "MARGIN_MINIMUM": 15.0,
    "DISCOUNT_MAXIMUM": 10.0,
}


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def engine(repo, clock):
    return WorkflowEngine(repo, clock=clock, thresholds=dict(THRESHOLDS))


@pytest.fixture
def pipeline(engine):
    return FieldServicePipeline(engine)


@pytest.fixture
def rep_actor():
    return Actor(name="Sam Rivera", roles=("rep",))


@pytest.fixture
def manager():
    return Actor(name="Morgan Lee", roles=("manager",))


# ── Reference data ──────────────────────────────────────────────


@pytest.fixture
def territory(repo):
    territory_id = repo.create_territory(Territory(
        name="North Austin", code="NA", zip_codes='["78727", "78728"]',
    ))
    return repo.get_territory_by_id(territory_id)


@pytest.fixture
def other_territory(repo):
    territory_id = repo.create_territory(Territory(
        name="Round Rock", code="RR", zip_codes='["78664"]',
    ))
    return repo.get_territory_by_id(territory_id)


@pytest.fixture
def wood(repo):
    return repo.find_project_type("WV")


@pytest.fixture
def crew(repo, territory, wood):
    """Crew based in ``territory`` with a standard wood skill."""
    crew_id = repo.create_crew(Crew(
        name="Crew Alpha", code="A1", max_daily_lf=500,
        home_territory_id=territory.id,
    ))
    repo.add_skill(Skill(
        assignee_type="crew", assignee_id=crew_id,
        project_type_id=wood.id, proficiency="standard",
    ))
    return repo.get_crew_by_id(crew_id)


@pytest.fixture
def sales_rep(repo, territory, wood):
    """Rep covering ``territory`` every day, skilled in wood."""
    rep_id = repo.create_team_profile(TeamProfile(
        name="Sam Rivera", email="sam@example.com",
        max_daily_assessments=2,
    ))
    repo.add_coverage(TerritoryCoverage(
        assignee_type="rep", assignee_id=rep_id,
        territory_id=territory.id, is_primary=1,
    ))
    repo.add_skill(Skill(
        assignee_type="rep", assignee_id=rep_id,
        project_type_id=wood.id, proficiency="expert",
    ))
    return repo.get_team_profile_by_id(rep_id)


# ── Workflow helpers ────────────────────────────────────────────


@pytest.fixture
def new_request(pipeline, rep_actor, territory):
    """Factory for a pending wood-fence request in ``territory``."""
    def _make(**values):
        values.setdefault("client_id", 1)
        values.setdefault("contact_name", "Pat Client")
        values.setdefault("territory_id", territory.id)
        values.setdefault("product_type", "WV")
        values.setdefault("linear_feet_estimate", 120)
        return pipeline.create_request(rep_actor, **values)
    return _make


@pytest.fixture
def new_job(pipeline, rep_actor, new_request):
    """Factory for a job in ``won`` created straight from a request."""
    def _make(linear_feet=120, request_values=None, **job_values):
        request = new_request(linear_feet_estimate=linear_feet,
                              **(request_values or {}))
        return pipeline.convert_request_to_job(request.id, rep_actor,
                                               **job_values)
    return _make


@pytest.fixture
def completed_job(pipeline, rep_actor, new_job, crew):
    """A job walked through every yard and field phase."""
    job = new_job(linear_feet=150, quoted_total=4500.0)
    pipeline.schedule_job(job.id, rep_actor, "2025-06-12", crew_id=crew.id)
    for status in ("ready_for_yard", "picking", "staged", "loaded",
                   "in_progress"):
        pipeline.advance_job(job.id, status, rep_actor)
    return pipeline.complete_job(job.id, rep_actor, photos=["after.jpg"])


@pytest.fixture
def sent_invoice(pipeline, rep_actor, completed_job):
    invoice = pipeline.create_invoice_from_job(completed_job.id, rep_actor)
    return pipeline.send_invoice(invoice.id, rep_actor,
                                 to_email="ap@example.com")
