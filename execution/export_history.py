"""Export the status history ledger for the analytics dashboards."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fence_flow.config import Config
from fence_flow.database.connection import DatabaseConnection
from fence_flow.database.repository import Repository
from fence_flow.database.schema import initialize_database
from fence_flow.io.csv_handler import export_history_csv
from fence_flow.io.excel_handler import export_history_excel
from fence_flow.workflow.ledger import StatusHistoryLedger


def main():
    if len(sys.argv) < 2:
        print("Usage: python export_history.py <output.csv|output.xlsx> "
              "[entity_type] [date_from]")
        sys.exit(1)

    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    filepath = Path(sys.argv[1])
    filters = {}
    if len(sys.argv) > 2:
        filters["entity_type"] = sys.argv[2]
    if len(sys.argv) > 3:
        filters["date_from"] = sys.argv[3]

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)
    ledger = StatusHistoryLedger(db)

    if filepath.suffix.lower() == ".xlsx":
        count = export_history_excel(repo, ledger, filepath, **filters)
    else:
        count = export_history_csv(repo, ledger, filepath, **filters)
    print(f"Exported {count} ledger entries to {filepath}")


if __name__ == "__main__":
    main()
