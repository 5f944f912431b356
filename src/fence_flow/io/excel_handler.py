"""Excel (XLSX) export of the status ledger and the pipeline; crew import."""

import logging
from pathlib import Path
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from fence_flow.database.models import Crew
from fence_flow.database.repository import Repository
from fence_flow.io.csv_handler import history_rows
from fence_flow.io.validators import parse_flag, validate_crew_row
from fence_flow.utils.constants import DEFAULT_MAX_DAILY_LF, STATUS_LABELS
from fence_flow.utils.formatters import format_currency
from fence_flow.workflow.ledger import StatusHistoryLedger

logger = logging.getLogger(__name__)


def _autofit(ws):
    """Approximate column widths from content."""
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def _header(ws, headers: list[str]):
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.freeze_panes = "A2"


def export_history_excel(repo: Repository, ledger: StatusHistoryLedger,
                         filepath: str | Path, **filters) -> int:
    """Export ledger entries to an Excel workbook. Returns row count."""
    rows = history_rows(repo, ledger, **filters)
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Status History"
    _header(ws, [
        "Entry #", "Type", "ID", "Number", "From", "To",
        "Changed At", "Changed By", "Notes",
    ])
    for row in rows:
        ws.append([
            row["id"],
            row["entity_type"],
            row["entity_id"],
            row["entity_number"],
            STATUS_LABELS.get(row["from_status"], row["from_status"]),
            STATUS_LABELS.get(row["to_status"], row["to_status"]),
            row["changed_at"],
            row["changed_by"],
            row["notes"],
        ])
    _autofit(ws)
    wb.save(filepath)
    return len(rows)


def export_pipeline_excel(repo: Repository, filepath: str | Path) -> int:
    """One sheet per entity type with current status. Returns row count."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    count = 0

    ws = wb.active
    ws.title = "Requests"
    _header(ws, ["Request #", "Contact", "Product", "Priority", "Status",
                 "Assessment"])
    for r in repo.get_all_requests():
        ws.append([r.request_number, r.contact_name, r.product_type,
                   r.priority, STATUS_LABELS[r.status],
                   r.assessment_scheduled_at])
        count += 1
    _autofit(ws)

    ws = wb.create_sheet("Quotes")
    _header(ws, ["Quote #", "Total", "Margin %", "Approval", "Status",
                 "Sent"])
    for q in repo.get_all_quotes():
        ws.append([q.quote_number, format_currency(q.total),
                   q.margin_percent, q.approval_status or "",
                   STATUS_LABELS[q.status], q.sent_at])
        count += 1
    _autofit(ws)

    ws = wb.create_sheet("Jobs")
    _header(ws, ["Job #", "Product", "LF", "Scheduled", "Crew", "Status"])
    for j in repo.get_all_jobs():
        ws.append([j.job_number, j.product_type, j.linear_feet,
                   j.scheduled_date, j.assigned_crew_id,
                   STATUS_LABELS[j.status]])
        count += 1
    _autofit(ws)

    ws = wb.create_sheet("Invoices")
    _header(ws, ["Invoice #", "Total", "Paid", "Balance", "Due", "Status"])
    for i in repo.get_all_invoices():
        ws.append([i.invoice_number, format_currency(i.total),
                   format_currency(i.amount_paid),
                   format_currency(i.balance_due), i.due_date,
                   STATUS_LABELS[i.status]])
        count += 1
    _autofit(ws)

    wb.save(filepath)
    return count


def import_crews_excel(
    repo: Repository,
    filepath: str | Path,
    update_existing: bool = False,
) -> dict:
    """Import crews from Excel. Returns results dict."""
    filepath = Path(filepath)
    results = {"imported": 0, "updated": 0, "skipped": 0, "errors": []}

    territories = {t.code: t.id for t in repo.get_all_territories()}

    try:
        wb = load_workbook(filepath, read_only=True)
    except (OSError, BadZipFile, InvalidFileException) as e:
        logger.error("Crew import from %s failed: %s", filepath, e)
        results["errors"].append(f"File error: {e}")
        return results

    ws = wb.active
    rows = list(ws.iter_rows(values_only=True))
    wb.close()
    if not rows:
        results["errors"].append("Empty workbook")
        return results

    # First row is the header
    header = [str(h or "").strip().lower().replace(" ", "_") for h in rows[0]]
    header_map = {
        "crew_code": "code",
        "crew_name": "name",
        "size": "crew_size",
        "max_lf": "max_daily_lf",
        "territory": "home_territory",
        "subcontractor": "is_subcontractor",
    }
    header = [header_map.get(h, h) for h in header]

    for row_num, row_data in enumerate(rows[1:], start=2):
        row = dict(zip(header,
                       [str(v) if v is not None else "" for v in row_data]))
        errors = validate_crew_row(row, row_num)
        territory_code = row.get("home_territory", "").strip()
        if territory_code and territory_code not in territories:
            errors.append(f"Row {row_num}: unknown territory {territory_code}")
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
            lead_name=row.get("lead_name", "").strip() or None,
            lead_phone=row.get("lead_phone", "").strip() or None,
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

    return results
