"""Tests for import validation rules."""

from fence_flow.io.validators import (
    parse_flag,
    validate_crew_row,
    validate_skill_row,
)


class TestParseFlag:
    def test_truthy(self):
        for value in ("1", "Yes", "y", "TRUE", "x"):
            assert parse_flag(value) == 1

    def test_falsy(self):
        for value in (None, "", "no", "0"):
            assert parse_flag(value) == 0


class TestValidateCrewRow:
    def test_valid_row(self):
        row = {"code": "A1", "name": "Crew Alpha", "crew_size": "3",
               "max_daily_lf": "400", "crew_type": "internal"}
        assert validate_crew_row(row, 2) == []

    def test_missing_code_and_name(self):
        errors = validate_crew_row({"code": "", "name": ""}, 5)
        assert "Row 5: code is required" in errors
        assert "Row 5: name is required" in errors

    def test_long_code(self):
        errors = validate_crew_row({"code": "X" * 21, "name": "n"}, 2)
        assert any("exceeds 20" in e for e in errors)

    def test_non_numeric_capacity(self):
        errors = validate_crew_row(
            {"code": "A1", "name": "n", "max_daily_lf": "lots"}, 2,
        )
        assert errors == ["Row 2: max_daily_lf must be a whole number"]

    def test_crew_size_minimum(self):
        errors = validate_crew_row(
            {"code": "A1", "name": "n", "crew_size": "0"}, 2,
        )
        assert errors == ["Row 2: crew_size must be at least 1"]

    def test_bad_crew_type(self):
        errors = validate_crew_row(
            {"code": "A1", "name": "n", "crew_type": "night"}, 2,
        )
        assert len(errors) == 1
        assert "crew_type" in errors[0]

    def test_bad_flag(self):
        errors = validate_crew_row(
            {"code": "A1", "name": "n", "is_subcontractor": "maybe"}, 2,
        )
        assert errors == ["Row 2: is_subcontractor must be yes or no"]


class TestValidateSkillRow:
    def test_valid_row(self):
        row = {"assignee_type": "rep", "assignee": "Sam Rivera",
               "project_type": "WV", "proficiency": "expert"}
        assert validate_skill_row(row, 2) == []

    def test_bad_assignee_type(self):
        row = {"assignee_type": "vendor", "assignee": "x",
               "project_type": "WV"}
        errors = validate_skill_row(row, 3)
        assert errors == ["Row 3: assignee_type must be crew or rep"]

    def test_bad_proficiency(self):
        row = {"assignee_type": "crew", "assignee": "A1",
               "project_type": "WV", "proficiency": "master"}
        errors = validate_skill_row(row, 2)
        assert len(errors) == 1
        assert "proficiency" in errors[0]

    def test_missing_fields(self):
        errors = validate_skill_row({"assignee_type": "crew"}, 2)
        assert len(errors) == 2
