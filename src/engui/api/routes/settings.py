"""Settings API endpoints.

GET /api/settings - Masked settings with configuration status
POST /api/settings - Save settings
POST /api/settings/clear - Delete all stored settings
POST /api/settings/test - Test a RunPod endpoint or S3 connection
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends

from engui.api.app import get_db_session
from engui.api.errors import bad_request
from engui.config import get_default_user_id
from engui.db import repo
from engui.db.repo import DbSession
from engui.providers.runpod import RunPodService
from engui.settings.service import SettingsService, validate_settings_payload
from engui.storage.s3 import S3Service, S3StorageError

logger = logging.getLogger(__name__)

router = APIRouter()

S3_TEST_FIELDS = ("endpointUrl", "accessKeyId", "secretAccessKey", "bucketName", "region")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _settings_response(service: SettingsService, user_id: str) -> dict:
    settings, status = service.get_settings(user_id)
    return {
        "success": True,
        "settings": service.mask_sensitive_data(settings),
        "status": status,
        "timestamp": _now(),
    }


@router.get("/settings")
def get_settings(session: DbSession = Depends(get_db_session)) -> dict:
    return _settings_response(SettingsService(session), get_default_user_id())


@router.post("/settings")
def save_settings(body: dict = Body(...), session: DbSession = Depends(get_db_session)) -> dict:
    """Save the settings document in body["settings"].

    Masked secrets echoed back by the client are ignored, so saving the
    document returned by GET does not overwrite stored keys.
    """
    settings = body.get("settings")
    if not settings:
        raise bad_request("Settings data is required")
    error = validate_settings_payload(settings)
    if error:
        raise bad_request(error)

    user_id = get_default_user_id()
    service = SettingsService(session)
    service.save_settings(user_id, settings)
    repo.commit(session)

    response = _settings_response(service, user_id)
    response["message"] = "Settings saved successfully"
    return response


@router.post("/settings/clear")
def clear_settings(session: DbSession = Depends(get_db_session)) -> dict:
    count = SettingsService(session).clear_settings(get_default_user_id())
    repo.commit(session)
    return {
        "success": True,
        "message": f"Cleared {count} settings successfully",
        "clearedCount": count,
        "timestamp": _now(),
    }


def _test_runpod(body: dict) -> dict:
    api_key, endpoint_id = body.get("apiKey"), body.get("endpointId")
    if not api_key or not endpoint_id:
        raise bad_request("API key and endpoint ID are required")

    label = body.get("endpointType") or "RunPod"
    result = RunPodService(api_key, endpoint_id).test_connection()
    outcome = "connected" if result["success"] else "connection failed"
    return {
        "success": result["success"],
        "message": f"{label} endpoint {outcome}: {result['message']}",
        "responseTime": result["response_time_ms"],
        "statusCode": result["status_code"],
        "endpoint": endpoint_id,
    }


def _test_s3(body: dict) -> dict:
    config = body.get("config") or {}
    if not all(config.get(f) for f in S3_TEST_FIELDS):
        raise bad_request("All S3 fields are required")

    started = time.monotonic()
    try:
        S3Service.from_settings(config).list_files()
    except S3StorageError as e:
        logger.warning(f"S3 connection test failed: {e}")
        return {
            "success": False,
            "message": f"S3 connection failed: {e}",
            "responseTime": int((time.monotonic() - started) * 1000),
            "statusCode": e.status_code or 500,
            "endpoint": config["endpointUrl"],
        }
    return {
        "success": True,
        "message": "S3 connection successful",
        "responseTime": int((time.monotonic() - started) * 1000),
        "statusCode": 200,
        "endpoint": config["endpointUrl"],
    }


@router.post("/settings/test")
def test_settings(body: dict = Body(...)) -> dict:
    """Check credentials without saving them.

    body["service"] selects the probe: "runpod" (apiKey, endpointId,
    endpointType) or "s3" (config with the five connection fields).
    """
    service = body.get("service")
    if service == "runpod":
        return _test_runpod(body)
    if service == "s3":
        return _test_s3(body)
    raise bad_request("Invalid service type")
