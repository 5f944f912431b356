"""CSV export of the status ledger and pipeline; crew and skill import."""

import csv
import logging
from pathlib import Path

from fence_flow.database.models import Crew, Skill
from fence_flow.database.repository import Repository
from fence_flow.io.validators import (
    parse_flag,
    validate_crew_row,
    validate_skill_row,
)
from fence_flow.utils.constants import (
    DEFAULT_MAX_DAILY_LF,
    PROFICIENCY_MULTIPLIERS,
)
from fence_flow.workflow.ledger import StatusHistoryLedger

logger = logging.getLogger(__name__)

HISTORY_CSV_COLUMNS = [
    "id", "entity_type", "entity_id", "entity_number", "from_status",
    "to_status", "changed_at", "changed_by", "notes",
]

PIPELINE_CSV_COLUMNS = [
    "entity_type", "number", "status", "status_changed_at", "version",
]

CREW_CSV_COLUMNS = [
    "code", "name", "crew_size", "max_daily_lf", "crew_type",
    "home_territory", "lead_name", "lead_phone", "is_subcontractor",
]

SKILL_CSV_COLUMNS = [
    "assignee_type", "assignee", "project_type", "proficiency",
]

_NUMBER_ATTRS = {
    "request": "request_number",
    "quote": "quote_number",
    "job": "job_number",
    "invoice": "invoice_number",
}

_LOADERS = {
    "request": "get_all_requests",
    "quote": "get_all_quotes",
    "job": "get_all_jobs",
    "invoice": "get_all_invoices",
}


def _entity_numbers(repo: Repository) -> dict:
    """(entity_type, id) -> document number, for readable exports."""
    numbers = {}
    for entity_type, loader in _LOADERS.items():
        for entity in getattr(repo, loader)():
            numbers[(entity_type, entity.id)] = getattr(
                entity, _NUMBER_ATTRS[entity_type],
            )
    return numbers


def history_rows(repo: Repository, ledger: StatusHistoryLedger,
                 **filters) -> list[dict]:
    """Ledger entries as flat dicts, with document numbers resolved."""
    numbers = _entity_numbers(repo)
    rows = []
    for entry in ledger.entries(**filters):
        rows.append({
            "id": entry.id,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "entity_number": numbers.get(
                (entry.entity_type, entry.entity_id), "",
            ),
            "from_status": entry.from_status or "",
            "to_status": entry.to_status,
            "changed_at": entry.changed_at,
            "changed_by": entry.changed_by or "",
            "notes": entry.notes or "",
        })
    return rows


def export_history_csv(repo: Repository, ledger: StatusHistoryLedger,
                       filepath: str | Path, **filters) -> int:
    """Export ledger entries to CSV. Returns the number of rows written.

    Keyword filters are passed to ``StatusHistoryLedger.entries``.
    """
    rows = history_rows(repo, ledger, **filters)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=HISTORY_CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def export_pipeline_csv(repo: Repository, filepath: str | Path) -> int:
    """Export the current status of every entity. Returns row count."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    count = 0

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=PIPELINE_CSV_COLUMNS)
        writer.writeheader()
        for entity_type, loader in _LOADERS.items():
            for entity in getattr(repo, loader)():
                writer.writerow({
                    "entity_type": entity_type,
                    "number": getattr(entity, _NUMBER_ATTRS[entity_type]),
                    "status": entity.status,
                    "status_changed_at": entity.status_changed_at or "",
                    "version": entity.version,
                })
                count += 1
    return count


def import_crews_csv(
    repo: Repository,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import crews from CSV. Returns results dict with counts and errors."""
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    territories = {t.code: t.id for t in repo.get_all_territories()}

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row_num, row in enumerate(reader, start=2):
                errors = validate_crew_row(row, row_num)
                territory_code = (row.get("home_territory") or "").strip()
                if territory_code and territory_code not in territories:
                    errors.append(
                        f"Row {row_num}: unknown territory {territory_code}"
                    )
                if errors:
                    results["errors"].extend(errors)
                    results["skipped"] += 1
                    continue

                code = row["code"].strip()
                existing = repo.get_crew_by_code(code)
                crew = Crew(
                    id=existing.id if existing else None,
                    code=code,
                    name=row["name"].strip(),
                    crew_size=int(float(row.get("crew_size") or 2)),
                    max_daily_lf=int(float(
                        row.get("max_daily_lf") or DEFAULT_MAX_DAILY_LF
                    )),
                    crew_type=(row.get("crew_type") or "standard").strip(),
                    home_territory_id=territories.get(territory_code),
                    lead_name=(row.get("lead_name") or "").strip() or None,
                    lead_phone=(row.get("lead_phone") or "").strip() or None,
                    is_subcontractor=parse_flag(row.get("is_subcontractor")),
                )

                if existing and update_existing:
                    repo.update_crew(crew)
                    results["updated"] += 1
                elif existing:
                    results["skipped"] += 1
                else:
                    repo.create_crew(crew)
                    results["imported"] += 1

    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error("Crew import from %s failed: %s", filepath, e)
        results["errors"].append(f"File error: {e}")

    return results


def import_skills_csv(repo: Repository, filepath: str | Path) -> dict:
    """Import skill records for crews (by code) and reps (by name)."""
    filepath = Path(filepath)
    results = {"imported": 0, "skipped": 0, "errors": []}

    reps = {p.name: p.id for p in repo.get_all_team_profiles()}

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row_num, row in enumerate(reader, start=2):
                errors = validate_skill_row(row, row_num)
                if errors:
                    results["errors"].extend(errors)
                    results["skipped"] += 1
                    continue

                assignee_type = row["assignee_type"].strip()
                key = row["assignee"].strip()
                if assignee_type == "crew":
                    crew = repo.get_crew_by_code(key)
                    assignee_id = crew.id if crew else None
                else:
                    assignee_id = reps.get(key)
                project_type = repo.find_project_type(row["project_type"])

                if assignee_id is None or project_type is None:
                    results["errors"].append(
                        f"Row {row_num}: unknown "
                        f"{'assignee' if assignee_id is None else 'project type'}"
                    )
                    results["skipped"] += 1
                    continue

                proficiency = (row.get("proficiency") or "standard").strip()
                repo.add_skill(Skill(
                    assignee_type=assignee_type,
                    assignee_id=assignee_id,
                    project_type_id=project_type.id,
                    proficiency=proficiency,
                    duration_multiplier=PROFICIENCY_MULTIPLIERS[proficiency],
                ))
                results["imported"] += 1

    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error("Skill import from %s failed: %s", filepath, e)
        results["errors"].append(f"File error: {e}")

    return results
