"""Schema migration, backup and integrity checks for the SQLite database."""

from __future__ import annotations

import logging
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Engine, inspect
from sqlalchemy.orm import Session

from engui.db import repo
from engui.db.schema import Base

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "database_backup_"


class MigrationService:
    """Keeps the database file in step with the ORM schema.

    Backups are plain file copies written next to the database file.
    """

    def __init__(self, engine: Engine, db_path: Path | None = None):
        self.engine = engine
        self.db_path = Path(db_path) if db_path is not None else None

    @property
    def expected_tables(self) -> list[str]:
        return sorted(Base.metadata.tables.keys())

    def check_status(self) -> dict:
        """Compare expected tables with the tables present in the database."""
        existing = set(inspect(self.engine).get_table_names())
        missing = [name for name in self.expected_tables if name not in existing]
        return {
            "needs_migration": bool(missing),
            "missing_tables": missing,
            "existing_tables": sorted(existing),
        }

    def _backup_dir(self) -> Path:
        if self.db_path is None:
            raise RuntimeError("Backups require a file-backed database")
        return self.db_path.parent

    def create_backup(self) -> Path:
        """Copy the database file to database_backup_{timestamp}.db.

        Raises:
            FileNotFoundError: If the database file does not exist.
        """
        backup_dir = self._backup_dir()
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database file not found: {self.db_path}")
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        backup_path = backup_dir / f"{BACKUP_PREFIX}{stamp}.db"
        shutil.copy2(self.db_path, backup_path)
        logger.info(f"Database backup created: {backup_path}")
        return backup_path

    def restore_from_backup(self, backup_path: Path) -> None:
        """Replace the database file with a backup copy."""
        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise FileNotFoundError(f"Backup file not found: {backup_path}")
        self._backup_dir()
        self.engine.dispose()
        shutil.copy2(backup_path, self.db_path)
        logger.info(f"Database restored from {backup_path}")

    def run_migration(self) -> dict:
        """Back up the current file (if any) and create missing tables."""
        before = self.check_status()
        backup_path = None
        if self.db_path is not None and self.db_path.exists():
            backup_path = self.create_backup()
        Base.metadata.create_all(self.engine)
        logger.info(f"Migration complete, created tables: {before['missing_tables']}")
        return {
            "created_tables": before["missing_tables"],
            "backup_path": str(backup_path) if backup_path else None,
        }

    def validate_data_integrity(self) -> dict:
        """Record counts per table and orphan counts."""
        with Session(self.engine) as session:
            counts = repo.count_records(session)
            orphans = repo.count_orphans(session)
        return {
            "valid": not any(orphans.values()),
            "counts": counts,
            **orphans,
        }

    def list_backups(self) -> list[Path]:
        return sorted(self._backup_dir().glob(f"{BACKUP_PREFIX}*.db"))

    def cleanup_backups(self, max_age_days: int = 30) -> int:
        """Delete backups older than max_age_days. Returns count removed."""
        cutoff = time.time() - max_age_days * 86400
        removed = 0
        for backup in self.list_backups():
            if backup.stat().st_mtime < cutoff:
                backup.unlink()
                removed += 1
        if removed:
            logger.info(f"Removed {removed} old database backups")
        return removed
