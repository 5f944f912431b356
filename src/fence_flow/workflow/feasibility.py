"""Assignment feasibility: can this crew or rep take this work on this day?

Checks run in a fixed order (territory, skill, capacity) and the first
failure wins. A check that needs a date is skipped when none is known.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fence_flow.database.models import (
    FeasibilityResult,
    Job,
    ServiceRequest,
)
from fence_flow.database.repository import Repository
from fence_flow.utils.constants import (
    ASSIGNEE_TYPES,
    DAYS_OF_WEEK,
    FEASIBILITY_CAPACITY,
    FEASIBILITY_SKILL,
    FEASIBILITY_TERRITORY,
    MINIMUM_ASSIGNABLE_PROFICIENCY,
    PROFICIENCY_LEVELS,
)

from .errors import EntityNotFound

logger = logging.getLogger(__name__)


def _day_of(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def weekday_code(day: date) -> str:
    return DAYS_OF_WEEK[day.weekday()]


class FeasibilityChecker:
    """Reads reference data through the repository; never writes."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def can_assign(self, assignee_type: str, assignee_id: int, job: Job,
                   on_date=None) -> FeasibilityResult:
        """Evaluate a crew or rep for a job.

        Args:
            assignee_type: 'crew' or 'rep'.
            assignee_id: Crew or team profile id.
            job: The job being assigned.
            on_date: Day to check; defaults to ``job.scheduled_date``.
        """
        self._check_assignee_type(assignee_type)
        assignee = self._load_assignee(assignee_type, assignee_id)
        day = _day_of(on_date if on_date is not None else job.scheduled_date)

        result = self._check_territory(
            assignee_type, assignee, job.territory_id, day,
        )
        if result is None:
            result = self._check_skill(
                assignee_type, assignee_id, job.product_type,
            )
        if result is None and assignee_type == "crew" and day is not None:
            result = self._check_crew_capacity(assignee, job, day)

        result = result or FeasibilityResult.passed()
        logger.debug(
            "can_assign %s %s -> job %s on %s: %s",
            assignee_type, assignee_id, job.id, day, result,
        )
        return result

    def check_assessment(self, rep_id: int, request: ServiceRequest,
                         day) -> FeasibilityResult:
        """Evaluate a rep for an assessment visit on ``day``."""
        rep = self._load_assignee("rep", rep_id)
        day = _day_of(day)

        result = self._check_territory("rep", rep, request.territory_id, day)
        if result is None:
            result = self._check_skill("rep", rep_id, request.product_type)
        if result is None and day is not None:
            booked = self.repo.count_rep_assessments(
                rep_id, day.isoformat(), exclude_request_id=request.id,
            )
            if booked >= rep.max_daily_assessments:
                result = FeasibilityResult.failed(
                    FEASIBILITY_CAPACITY,
                    f"{rep.name} already has {booked} of "
                    f"{rep.max_daily_assessments} assessments on {day}",
                )
        return result or FeasibilityResult.passed()

    # ── Individual checks ───────────────────────────────────────

    @staticmethod
    def _check_assignee_type(assignee_type: str):
        if assignee_type not in ASSIGNEE_TYPES:
            raise ValueError(f"Unknown assignee type: {assignee_type!r}")

    def _load_assignee(self, assignee_type: str, assignee_id: int):
        if assignee_type == "crew":
            assignee = self.repo.get_crew_by_id(assignee_id)
        else:
            assignee = self.repo.get_team_profile_by_id(assignee_id)
        if assignee is None:
            raise EntityNotFound(assignee_type, assignee_id)
        return assignee

    def _check_territory(self, assignee_type: str, assignee,
                         territory_id: Optional[int],
                         day: Optional[date]) -> Optional[FeasibilityResult]:
        if territory_id is None:
            return None
        # A crew always works its home territory
        if (assignee_type == "crew"
                and assignee.home_territory_id == territory_id):
            return None

        rows = self.repo.get_coverage(
            assignee_type, assignee.id, territory_id=territory_id,
        )
        if not rows:
            return FeasibilityResult.failed(
                FEASIBILITY_TERRITORY,
                f"{assignee.name} does not cover territory {territory_id}",
            )
        if day is None:
            return None
        code = weekday_code(day)
        if any(row.covers_day(code) for row in rows):
            return None
        return FeasibilityResult.failed(
            FEASIBILITY_TERRITORY,
            f"{assignee.name} does not cover territory {territory_id} "
            f"on {code}",
        )

    def _check_skill(self, assignee_type: str, assignee_id: int,
                     product_type: Optional[str]
                     ) -> Optional[FeasibilityResult]:
        if not product_type:
            return None
        project_type = self.repo.find_project_type(product_type)
        skill = None
        if project_type is not None:
            skill = self.repo.get_skill_for(
                assignee_type, assignee_id, project_type.id,
            )
        if skill is None:
            return FeasibilityResult.failed(
                FEASIBILITY_SKILL,
                f"no {product_type} skill on record",
            )
        floor = PROFICIENCY_LEVELS.index(MINIMUM_ASSIGNABLE_PROFICIENCY)
        if PROFICIENCY_LEVELS.index(skill.proficiency) < floor:
            return FeasibilityResult.failed(
                FEASIBILITY_SKILL,
                f"{product_type} proficiency is {skill.proficiency}, "
                f"needs {MINIMUM_ASSIGNABLE_PROFICIENCY}",
            )
        return None

    def _check_crew_capacity(self, crew, job: Job,
                             day: date) -> Optional[FeasibilityResult]:
        booked = self.repo.get_crew_scheduled_lf(
            crew.id, day.isoformat(), exclude_job_id=job.id,
        )
        needed = job.linear_feet or 0
        if booked + needed > crew.max_daily_lf:
            return FeasibilityResult.failed(
                FEASIBILITY_CAPACITY,
                f"{crew.name} has {booked:g} LF on {day}; adding "
                f"{needed:g} exceeds {crew.max_daily_lf}",
            )
        return None
