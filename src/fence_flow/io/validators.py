"""Validation rules for import data."""

from fence_flow.utils.constants import (
    ASSIGNEE_TYPES,
    CREW_TYPES,
    PROFICIENCY_LEVELS,
)

_TRUE_VALUES = {"1", "true", "yes", "y", "x"}
_FALSE_VALUES = {"", "0", "false", "no", "n"}


def parse_flag(value) -> int:
    """Read a yes/no spreadsheet cell as 0/1."""
    return 1 if str(value or "").strip().lower() in _TRUE_VALUES else 0


def _check_int(row: dict, key: str, row_num: int, errors: list,
               minimum: int = 0):
    raw = str(row.get(key, "") or "").strip()
    if raw == "":
        return
    try:
        value = int(float(raw))
    except ValueError:
        errors.append(f"Row {row_num}: {key} must be a whole number")
        return
    if value < minimum:
        errors.append(f"Row {row_num}: {key} must be at least {minimum}")


def validate_crew_row(row: dict, row_num: int) -> list[str]:
    """Validate a single row of crew import data. Returns list of error strings."""
    errors = []

    code = str(row.get("code", "") or "").strip()
    if not code:
        errors.append(f"Row {row_num}: code is required")
    elif len(code) > 20:
        errors.append(f"Row {row_num}: code exceeds 20 chars")

    if not str(row.get("name", "") or "").strip():
        errors.append(f"Row {row_num}: name is required")

    _check_int(row, "crew_size", row_num, errors, minimum=1)
    _check_int(row, "max_daily_lf", row_num, errors, minimum=0)

    crew_type = str(row.get("crew_type", "") or "").strip()
    if crew_type and crew_type not in CREW_TYPES:
        errors.append(
            f"Row {row_num}: crew_type must be one of {', '.join(CREW_TYPES)}"
        )

    flag = str(row.get("is_subcontractor", "") or "").strip().lower()
    if flag not in _TRUE_VALUES | _FALSE_VALUES:
        errors.append(f"Row {row_num}: is_subcontractor must be yes or no")

    return errors


def validate_skill_row(row: dict, row_num: int) -> list[str]:
    """Validate a skill row (assignee_type, assignee_code, project_type, proficiency)."""
    errors = []

    assignee_type = str(row.get("assignee_type", "") or "").strip()
    if assignee_type not in ASSIGNEE_TYPES:
        errors.append(
            f"Row {row_num}: assignee_type must be "
            f"{' or '.join(ASSIGNEE_TYPES)}"
        )
    if not str(row.get("assignee", "") or "").strip():
        errors.append(f"Row {row_num}: assignee is required")
    if not str(row.get("project_type", "") or "").strip():
        errors.append(f"Row {row_num}: project_type is required")

    proficiency = str(row.get("proficiency", "") or "").strip()
    if proficiency and proficiency not in PROFICIENCY_LEVELS:
        errors.append(
            f"Row {row_num}: proficiency must be one of "
            f"{', '.join(PROFICIENCY_LEVELS)}"
        )

    return errors
