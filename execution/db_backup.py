"""Database backup script: creates a timestamped SQLite backup."""

import logging
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fence_flow.config import Config

logger = logging.getLogger("fence_flow.backup")

KEEP_BACKUPS = 10


def backup_database(db_path: Path = None, backup_dir: Path = None,
                    keep: int = KEEP_BACKUPS):
    """Snapshot the database into the backup directory.

    Uses SQLite's online backup so a sweep or import running at the same
    time cannot leave a torn copy. Returns the backup path, or None.
    """
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not db_path.exists():
        logger.warning("Database not found at %s", db_path)
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_file = backup_dir / f"fence_flow_{timestamp}.db"
    source = sqlite3.connect(str(db_path))
    target = sqlite3.connect(str(backup_file))
    try:
        source.backup(target)
    finally:
        target.close()
        source.close()
    logger.info("Backup created: %s", backup_file)

    # Keep only the newest backups
    backups = sorted(backup_dir.glob("fence_flow_*.db"), reverse=True)
    for old in backups[keep:]:
        old.unlink()
        logger.info("Removed old backup: %s", old.name)
    return backup_file


if __name__ == "__main__":
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    backup_database()
