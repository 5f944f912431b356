"""Daily status sweep: assessments due, quotes to follow up, invoices past due.

Meant to run from cron once a day:

    python execution/run_lifecycle_sweep.py [YYYY-MM-DD]
"""

import logging
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fence_flow.config import Config
from fence_flow.database.connection import DatabaseConnection
from fence_flow.database.repository import Repository
from fence_flow.database.schema import initialize_database
from fence_flow.workflow.engine import WorkflowEngine
from fence_flow.workflow.lifecycle import refresh_time_based_statuses


def main():
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    today = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else None

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    engine = WorkflowEngine(Repository(db))

    summary = refresh_time_based_statuses(engine, today)
    print(f"Requests moved: {summary['request']}")
    print(f"Quotes moved:   {summary['quote']}")
    print(f"Invoices moved: {summary['invoice']}")


if __name__ == "__main__":
    main()
