"""Standalone crew import script: load crews from CSV or XLSX."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fence_flow.config import Config
from fence_flow.database.connection import DatabaseConnection
from fence_flow.database.repository import Repository
from fence_flow.database.schema import initialize_database
from fence_flow.io.csv_handler import import_crews_csv
from fence_flow.io.excel_handler import import_crews_excel


def main():
    if len(sys.argv) < 2:
        print("Usage: python import_crews.py <crews.csv|crews.xlsx> [--update]")
        sys.exit(1)

    logging.basicConfig(level=Config.LOG_LEVEL)
    filepath = Path(sys.argv[1])
    update = "--update" in sys.argv

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    print(f"Importing from: {filepath}")
    if filepath.suffix.lower() == ".xlsx":
        results = import_crews_excel(repo, filepath, update_existing=update)
    else:
        results = import_crews_csv(repo, filepath, update_existing=update)

    print("\nResults:")
    print(f"  Imported: {results['imported']}")
    print(f"  Updated:  {results['updated']}")
    print(f"  Skipped:  {results['skipped']}")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for err in results["errors"]:
            print(f"  - {err}")
        sys.exit(1)


if __name__ == "__main__":
    main()
