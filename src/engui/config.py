"""Process configuration read from environment variables.

Per-user service configuration (RunPod, S3) is not here; it lives in the
user_settings table and is managed by engui.settings.service.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_DB_PATH = Path("data/engui.db")
DEFAULT_PUBLIC_DIR = Path("public")
DEFAULT_USER_ID = "user-with-settings"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def get_db_path() -> Path:
    """Database file path (ENGUI_DB_PATH)."""
    return Path(os.environ.get("ENGUI_DB_PATH", str(DEFAULT_DB_PATH)))


def get_public_dir() -> Path:
    """Root directory for files served to the browser (ENGUI_PUBLIC_DIR)."""
    return Path(os.environ.get("ENGUI_PUBLIC_DIR", str(DEFAULT_PUBLIC_DIR)))


def get_results_dir() -> Path:
    return get_public_dir() / "results"


def get_exports_dir() -> Path:
    return get_public_dir() / "exports"


def get_default_user_id() -> str:
    """User whose settings drive the service routes (no auth layer)."""
    return os.environ.get("ENGUI_DEFAULT_USER_ID", DEFAULT_USER_ID)


def get_secret_key() -> str | None:
    """Fernet key for encrypting sensitive settings, if configured."""
    return os.environ.get("ENGUI_SECRET_KEY") or None


def get_log_level() -> str:
    level = os.environ.get("ENGUI_LOG_LEVEL")
    if level:
        return level.upper()
    return "DEBUG" if os.environ.get("ENGUI_ENV") == "development" else "INFO"


def get_cors_origins() -> list[str]:
    raw = os.environ.get("ENGUI_CORS_ORIGINS")
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
