"""Tests for crew and rep assignment feasibility."""

from dataclasses import replace
from datetime import date

import pytest

from fence_flow.database.models import (
    Crew,
    Skill,
    TeamProfile,
    TerritoryCoverage,
)
from fence_flow.workflow.errors import (
    CapacityExceeded,
    EntityNotFound,
    OverrideNotPermitted,
    SkillGap,
    TerritoryMismatch,
)
from fence_flow.workflow.feasibility import weekday_code


@pytest.fixture
def roaming_crew(repo, other_territory, territory, wood):
    """Crew based elsewhere that covers ``territory`` on Mon/Wed only."""
    crew_id = repo.create_crew(Crew(
        name="Crew Bravo", code="B2", max_daily_lf=300,
        home_territory_id=other_territory.id,
    ))
    repo.add_coverage(TerritoryCoverage(
        assignee_type="crew", assignee_id=crew_id,
        territory_id=territory.id, coverage_days='["mon", "wed"]',
    ))
    repo.add_skill(Skill(
        assignee_type="crew", assignee_id=crew_id,
        project_type_id=wood.id, proficiency="basic",
    ))
    return repo.get_crew_by_id(crew_id)


def test_weekday_code():
    assert weekday_code(date(2025, 6, 10)) == "tue"


class TestCanAssign:
    def test_home_crew_passes(self, engine, crew, new_job):
        job = new_job()
        assert engine.can_assign("crew", crew.id, job.id).ok

    def test_capacity_exceeded(self, engine, pipeline, rep_actor, crew,
                               new_job):
        booked = new_job(linear_feet=480)
        pipeline.schedule_job(booked.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        extra = new_job(linear_feet=50)
        candidate = replace(engine.get("job", extra.id),
                            scheduled_date="2025-06-10")

        result = engine.checker.can_assign("crew", crew.id, candidate)
        assert not result.ok
        assert result.reason == "CapacityExceeded"
        assert "480" in result.detail

    def test_capacity_exact_fit(self, engine, pipeline, rep_actor, crew,
                                new_job):
        booked = new_job(linear_feet=450)
        pipeline.schedule_job(booked.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        extra = new_job(linear_feet=50)
        result = engine.checker.can_assign(
            "crew", crew.id, engine.get("job", extra.id),
            on_date="2025-06-10",
        )
        assert result.ok

    def test_no_date_skips_capacity(self, engine, pipeline, rep_actor,
                                    crew, new_job):
        booked = new_job(linear_feet=500)
        pipeline.schedule_job(booked.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        extra = new_job(linear_feet=50)
        assert engine.can_assign("crew", crew.id, extra.id).ok

    def test_coverage_days(self, engine, roaming_crew, new_job):
        job = engine.get("job", new_job(linear_feet=100).id)
        monday = engine.checker.can_assign("crew", roaming_crew.id, job,
                                           on_date="2025-06-09")
        tuesday = engine.checker.can_assign("crew", roaming_crew.id, job,
                                            on_date="2025-06-10")
        assert monday.ok
        assert not tuesday.ok
        assert tuesday.reason == "TerritoryMismatch"
        assert "tue" in tuesday.detail

    def test_no_coverage(self, engine, repo, wood, other_territory,
                         new_job):
        crew_id = repo.create_crew(Crew(
            name="Crew Charlie", code="C3",
            home_territory_id=other_territory.id,
        ))
        repo.add_skill(Skill(assignee_type="crew", assignee_id=crew_id,
                             project_type_id=wood.id))
        result = engine.can_assign("crew", crew_id, new_job().id)
        assert result.reason == "TerritoryMismatch"

    def test_territory_checked_before_skill(self, engine, repo,
                                            other_territory, new_job):
        crew_id = repo.create_crew(Crew(
            name="Crew Delta", code="D4",
            home_territory_id=other_territory.id,
        ))
        result = engine.can_assign("crew", crew_id, new_job().id)
        assert result.reason == "TerritoryMismatch"

    def test_missing_skill(self, engine, crew, new_job):
        job = new_job(request_values={"product_type": "IR"})
        result = engine.can_assign("crew", crew.id, job.id)
        assert result.reason == "SkillGap"
        assert "IR" in result.detail

    def test_trainee_not_assignable(self, engine, repo, crew, wood,
                                    new_job):
        repo.add_skill(Skill(assignee_type="crew", assignee_id=crew.id,
                             project_type_id=wood.id,
                             proficiency="trainee"))
        result = engine.can_assign("crew", crew.id, new_job().id)
        assert result.reason == "SkillGap"

    def test_product_matched_by_name(self, engine, crew, new_job):
        job = new_job(request_values={"product_type": "wood vertical"})
        assert engine.can_assign("crew", crew.id, job.id).ok

    def test_rep_on_job(self, engine, sales_rep, new_job):
        assert engine.can_assign("rep", sales_rep.id, new_job().id).ok

    def test_unknown_crew(self, engine, new_job):
        with pytest.raises(EntityNotFound):
            engine.can_assign("crew", 999, new_job().id)

    def test_bad_assignee_type(self, engine, new_job):
        with pytest.raises(ValueError):
            engine.can_assign("truck", 1, new_job().id)


class TestScheduleJobEnforcement:
    def test_failure_blocks_and_is_recorded(self, pipeline, repo, engine,
                                            rep_actor, crew, new_job):
        booked = new_job(linear_feet=480)
        pipeline.schedule_job(booked.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        extra = new_job(linear_feet=50)

        with pytest.raises(CapacityExceeded):
            pipeline.schedule_job(extra.id, rep_actor, "2025-06-10",
                                  crew_id=crew.id)
        assert engine.get("job", extra.id).status == "won"
        checks = repo.get_assignment_checks("job", extra.id)
        assert len(checks) == 1
        assert checks[0].ok == 0
        assert checks[0].reason == "CapacityExceeded"
        assert checks[0].overridden == 0

    def test_manager_override(self, pipeline, repo, manager, rep_actor,
                              crew, new_job):
        booked = new_job(linear_feet=480)
        pipeline.schedule_job(booked.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        extra = new_job(linear_feet=50)

        job = pipeline.schedule_job(extra.id, manager, "2025-06-10",
                                    crew_id=crew.id, override=True)
        assert job.status == "scheduled"
        assert job.assigned_crew_id == crew.id
        check = repo.get_assignment_checks("job", extra.id)[0]
        assert check.overridden == 1
        assert check.checked_by == "Morgan Lee"

    def test_rep_cannot_override(self, pipeline, rep_actor, crew, new_job):
        job = new_job()
        with pytest.raises(OverrideNotPermitted):
            pipeline.schedule_job(job.id, rep_actor, "2025-06-10",
                                  crew_id=crew.id, override=True)

    def test_skill_gap_raised(self, pipeline, rep_actor, crew, new_job):
        job = new_job(request_values={"product_type": "GT"})
        with pytest.raises(SkillGap):
            pipeline.schedule_job(job.id, rep_actor, "2025-06-10",
                                  crew_id=crew.id)

    def test_territory_mismatch_raised(self, pipeline, rep_actor,
                                       roaming_crew, new_job):
        job = new_job(linear_feet=80)
        with pytest.raises(TerritoryMismatch):
            pipeline.schedule_job(job.id, rep_actor, "2025-06-10",
                                  crew_id=roaming_crew.id)

    def test_reschedule_excludes_own_footage(self, pipeline, rep_actor,
                                             crew, new_job):
        job = new_job(linear_feet=400)
        pipeline.schedule_job(job.id, rep_actor, "2025-06-10",
                              crew_id=crew.id)
        moved = pipeline.schedule_job(job.id, rep_actor, "2025-06-10",
                                      crew_id=crew.id, time_start="07:00")
        assert moved.status == "scheduled"
        assert moved.scheduled_time_start == "07:00"


class TestAssessmentFeasibility:
    def test_rep_daily_cap(self, pipeline, rep_actor, sales_rep,
                           new_request):
        first = new_request()
        second = new_request()
        third = new_request()
        pipeline.schedule_assessment(first.id, sales_rep.id,
                                     "2025-06-10T09:00:00", rep_actor)
        pipeline.schedule_assessment(second.id, sales_rep.id,
                                     "2025-06-10T13:00:00", rep_actor)
        with pytest.raises(CapacityExceeded):
            pipeline.schedule_assessment(third.id, sales_rep.id,
                                         "2025-06-10T15:00:00", rep_actor)

    def test_rep_outside_territory(self, pipeline, repo, rep_actor,
                                   other_territory, new_request):
        rep_id = repo.create_team_profile(TeamProfile(name="Jo Park"))
        repo.add_coverage(TerritoryCoverage(
            assignee_type="rep", assignee_id=rep_id,
            territory_id=other_territory.id,
        ))
        request = new_request()
        with pytest.raises(TerritoryMismatch):
            pipeline.schedule_assessment(request.id, rep_id,
                                         "2025-06-10T09:00:00", rep_actor)

    def test_rep_without_skill(self, pipeline, rep_actor, sales_rep,
                               new_request):
        request = new_request(product_type="DK")
        with pytest.raises(SkillGap):
            pipeline.schedule_assessment(request.id, sales_rep.id,
                                         "2025-06-10T09:00:00", rep_actor)
