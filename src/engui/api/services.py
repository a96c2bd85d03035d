"""Per-request access to the local user's configured services."""

from __future__ import annotations

from typing import Any

from engui.api.errors import bad_request
from engui.config import get_default_user_id
from engui.db.repo import DbSession
from engui.settings.service import SettingsService, is_s3_configured
from engui.storage.s3 import S3Service

S3_NOT_CONFIGURED = "S3 configuration not found. Please configure S3 settings first."


def load_settings(session: DbSession, user_id: str | None = None) -> dict[str, Any]:
    """Decrypted settings document for the user (default: the local user)."""
    settings, _ = SettingsService(session).get_settings(user_id or get_default_user_id())
    return settings


def get_s3_service(
    session: DbSession,
    bucket_name: str | None = None,
    user_id: str | None = None,
    require_bucket: bool = False,
) -> S3Service:
    """Build an S3Service from stored settings.

    Args:
        session: Database session.
        bucket_name: Overrides the configured bucket (network volume id).
        user_id: Settings owner; defaults to the local user.
        require_bucket: Also require bucketName and region in settings.

    Raises:
        ApiError: 400 when the required S3 settings are missing.
    """
    settings = load_settings(session, user_id)
    if not is_s3_configured(settings):
        raise bad_request(S3_NOT_CONFIGURED)

    s3 = settings["s3"]
    if require_bucket:
        missing = [f for f in ("bucketName", "region") if not s3.get(f)]
        if missing:
            raise bad_request(
                f"S3 configuration incomplete. Missing fields: {', '.join(missing)}",
                {"missingFields": missing},
            )
    bucket = bucket_name or s3.get("bucketName")
    if not bucket:
        raise bad_request("S3 bucket name is required")
    return S3Service.from_settings(s3, bucket_name=bucket)
