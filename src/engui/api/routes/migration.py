"""Database maintenance API endpoints.

GET /api/migration - Schema status and available backups
POST /api/migration - Run an action: migrate, backup, restore, validate, cleanup
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Body, Request

from engui.api.errors import ApiError, bad_request
from engui.config import get_db_path
from engui.db.migration import MigrationService
from engui.db.session import get_engine

logger = logging.getLogger(__name__)

router = APIRouter()

ACTIONS = ("migrate", "backup", "restore", "validate", "cleanup")


def _service(request: Request) -> MigrationService:
    db_path = getattr(request.app.state, "db_path", None) or get_db_path()
    return MigrationService(get_engine(db_path), db_path)


@router.get("/migration")
def migration_status(request: Request) -> dict:
    service = _service(request)
    status = service.check_status()
    return {
        "success": True,
        "needsMigration": status["needs_migration"],
        "missingTables": status["missing_tables"],
        "existingTables": status["existing_tables"],
        "backups": [p.name for p in service.list_backups()],
    }


@router.post("/migration")
def run_migration_action(request: Request, body: dict = Body(...)) -> dict:
    """Dispatch body["action"]; restore also needs body["backupPath"].

    Raises:
        ApiError: 400 for an unknown action or a missing backup path, 404
            when the backup or database file does not exist.
    """
    action = body.get("action")
    if action not in ACTIONS:
        raise bad_request(f"Invalid action. Must be one of: {', '.join(ACTIONS)}")
    service = _service(request)

    try:
        if action == "migrate":
            result = service.run_migration()
            return {
                "success": True,
                "message": "Migration completed",
                "createdTables": result["created_tables"],
                "backupPath": result["backup_path"],
            }
        if action == "backup":
            return {"success": True, "backupPath": str(service.create_backup())}
        if action == "restore":
            backup_path = body.get("backupPath")
            if not backup_path:
                raise bad_request("backupPath is required")
            # Only backups written next to the database may be restored
            backups = {p.name: p for p in service.list_backups()}
            name = Path(backup_path).name
            if name not in backups:
                raise ApiError(404, f"Backup file not found: {name}")
            service.restore_from_backup(backups[name])
            return {"success": True, "message": "Database restored"}
        if action == "validate":
            result = service.validate_data_integrity()
            return {
                "success": True,
                "valid": result["valid"],
                "counts": result["counts"],
                "orphanedTracks": result["orphaned_tracks"],
                "orphanedKeyframes": result["orphaned_keyframes"],
            }
        removed = service.cleanup_backups(int(body.get("maxAgeDays", 30)))
        return {"success": True, "removedCount": removed}
    except FileNotFoundError as e:
        raise ApiError(404, str(e)) from e
