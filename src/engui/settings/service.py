"""Per-user service settings (RunPod, S3) stored as flat key/value rows.

The nested document exposed to the API:

    {
      "runpod": {"apiKey", "endpoints": {type: endpoint_id}, "generateTimeout"},
      "s3": {"endpointUrl", "accessKeyId", "secretAccessKey", "bucketName",
             "region", "timeout", "useGlobalNetworking"},
    }

is stored one value per row, keyed by (user_id, service_name, config_key),
with endpoints flattened as "endpoints.{type}".
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Literal

from engui.config import get_secret_key
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import UserSettingEntity
from engui.settings.encryption import (
    SecretCipher,
    SettingsDecryptionError,
    is_masked,
    mask_secret,
)

logger = logging.getLogger(__name__)

ServiceStatus = Literal["configured", "partial", "missing"]

RUNPOD_ENDPOINT_TYPES = (
    "image",
    "video",
    "multitalk",
    "flux-kontext",
    "flux-krea",
    "wan22",
    "wan-animate",
    "infinite-talk",
    "video-upscale",
    "qwen-image-edit",
    "z-image",
    "upscale",
)
# Endpoints counted for the runpod configuration status
REQUIRED_RUNPOD_ENDPOINTS = (
    "image",
    "video",
    "multitalk",
    "flux-kontext",
    "flux-krea",
    "wan22",
    "infinite-talk",
    "video-upscale",
)
S3_STRING_FIELDS = ("endpointUrl", "accessKeyId", "secretAccessKey", "bucketName", "region")
SENSITIVE_KEYS = {("runpod", "apiKey"), ("s3", "accessKeyId"), ("s3", "secretAccessKey")}
DEFAULT_TIMEOUT = 3600

WORKSPACE_SERVICE = "workspace"
CURRENT_WORKSPACE_KEY = "currentWorkspaceId"


def default_settings() -> dict[str, Any]:
    return {
        "runpod": {
            "apiKey": "",
            "endpoints": {endpoint: "" for endpoint in RUNPOD_ENDPOINT_TYPES},
            "generateTimeout": DEFAULT_TIMEOUT,
        },
        "s3": {
            "endpointUrl": "",
            "accessKeyId": "",
            "secretAccessKey": "",
            "bucketName": "",
            "region": "",
            "timeout": DEFAULT_TIMEOUT,
            "useGlobalNetworking": False,
        },
    }


def _to_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _service_status(values: list[Any]) -> ServiceStatus:
    filled = sum(1 for v in values if isinstance(v, str) and v.strip())
    if filled == 0:
        return "missing"
    return "configured" if filled == len(values) else "partial"


def calculate_status(settings: dict[str, Any]) -> dict[str, ServiceStatus]:
    """Status per service from its required fields (timeouts excluded)."""
    runpod = settings.get("runpod", {})
    endpoints = runpod.get("endpoints", {})
    s3 = settings.get("s3", {})
    return {
        "runpod": _service_status(
            [runpod.get("apiKey")] + [endpoints.get(e) for e in REQUIRED_RUNPOD_ENDPOINTS]
        ),
        "s3": _service_status([s3.get(f) for f in S3_STRING_FIELDS]),
    }


def validate_settings_payload(settings: Any) -> str | None:
    """Return an error message for a malformed settings document, or None."""
    if not isinstance(settings, dict):
        return "Settings must be an object"
    runpod = settings.get("runpod")
    if runpod is not None:
        if not isinstance(runpod, dict):
            return "RunPod settings must be an object"
        if runpod.get("apiKey") and not isinstance(runpod["apiKey"], str):
            return "RunPod API key must be a string"
        endpoints = runpod.get("endpoints")
        if endpoints is None:
            endpoints = {}
        if not isinstance(endpoints, dict):
            return "RunPod endpoints must be an object"
        for key, value in endpoints.items():
            if value and not isinstance(value, str):
                return f"RunPod endpoint {key} must be a string"
    s3 = settings.get("s3")
    if s3 is not None:
        if not isinstance(s3, dict):
            return "S3 settings must be an object"
        for field in S3_STRING_FIELDS:
            if s3.get(field) and not isinstance(s3[field], str):
                return f"S3 {field} must be a string"
        use_global = s3.get("useGlobalNetworking")
        if use_global is not None and not isinstance(use_global, bool):
            return "S3 useGlobalNetworking must be a boolean"
    return None


class SettingsService:
    """Reads and writes a user's service settings."""

    def __init__(self, session: DbSession, cipher: SecretCipher | None = None):
        self.session = session
        self.cipher = cipher if cipher is not None else SecretCipher(get_secret_key())

    def _read_value(self, setting: UserSettingEntity) -> str:
        if setting.is_encrypted:
            return self.cipher.decrypt(setting.config_value)
        return setting.config_value

    def get_settings(self, user_id: str) -> tuple[dict[str, Any], dict[str, ServiceStatus]]:
        """Load the nested settings document and its configuration status."""
        settings = default_settings()
        runpod, s3 = settings["runpod"], settings["s3"]

        for setting in repo.list_user_settings(self.session, user_id):
            try:
                value = self._read_value(setting)
            except SettingsDecryptionError as e:
                logger.warning(
                    f"Skipping setting {setting.service_name}.{setting.config_key}: {e}"
                )
                continue

            key = setting.config_key
            if setting.service_name == "runpod":
                if key == "apiKey":
                    runpod["apiKey"] = value
                elif key.startswith("endpoints."):
                    runpod["endpoints"][key.split(".", 1)[1]] = value
                elif key == "generateTimeout":
                    runpod["generateTimeout"] = _to_int(value, DEFAULT_TIMEOUT)
            elif setting.service_name == "s3":
                if key in S3_STRING_FIELDS:
                    s3[key] = value
                elif key == "timeout":
                    s3["timeout"] = _to_int(value, DEFAULT_TIMEOUT)
                elif key == "useGlobalNetworking":
                    s3["useGlobalNetworking"] = value.lower() == "true"

        return settings, calculate_status(settings)

    def _flatten(self, settings: dict[str, Any]) -> list[tuple[str, str, str]]:
        flat: list[tuple[str, str, str]] = []
        runpod = settings.get("runpod") or {}
        if runpod.get("apiKey"):
            flat.append(("runpod", "apiKey", runpod["apiKey"]))
        for endpoint_type, endpoint_id in (runpod.get("endpoints") or {}).items():
            if endpoint_id:
                flat.append(("runpod", f"endpoints.{endpoint_type}", endpoint_id))
        if runpod.get("generateTimeout") is not None:
            flat.append(("runpod", "generateTimeout", str(runpod["generateTimeout"])))

        for key, value in (settings.get("s3") or {}).items():
            if value is None or value == "":
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            flat.append(("s3", key, str(value)))
        return flat

    def save_settings(self, user_id: str, settings: dict[str, Any]) -> int:
        """Upsert every non-empty value. Masked secrets are left untouched.

        Returns:
            Number of values written.
        """
        written = 0
        for service_name, key, value in self._flatten(settings):
            sensitive = (service_name, key) in SENSITIVE_KEYS
            if sensitive and is_masked(value):
                continue
            encrypt = sensitive and self.cipher.enabled
            repo.upsert_user_setting(
                self.session,
                UserSettingEntity(
                    user_id=user_id,
                    service_name=service_name,
                    config_key=key,
                    config_value=self.cipher.encrypt(value) if encrypt else value,
                    is_encrypted=encrypt,
                ),
            )
            written += 1
        logger.info(f"Saved {written} settings for user {user_id}")
        return written

    def get_decrypted_setting(self, user_id: str, service_name: str, config_key: str) -> str | None:
        setting = repo.get_user_setting(self.session, user_id, service_name, config_key)
        if setting is None:
            return None
        try:
            return self._read_value(setting)
        except SettingsDecryptionError as e:
            logger.warning(f"Could not read {service_name}.{config_key}: {e}")
            return None

    @staticmethod
    def mask_sensitive_data(settings: dict[str, Any]) -> dict[str, Any]:
        """Copy of settings with secrets masked for display."""
        masked = copy.deepcopy(settings)
        for service_name, key in SENSITIVE_KEYS:
            section = masked.get(service_name)
            if section and section.get(key):
                section[key] = mask_secret(section[key])
        return masked

    def clear_settings(self, user_id: str) -> int:
        count = repo.delete_user_settings(self.session, user_id)
        logger.info(f"Cleared {count} settings for user {user_id}")
        return count

    def get_current_workspace_id(self, user_id: str) -> str | None:
        return self.get_decrypted_setting(user_id, WORKSPACE_SERVICE, CURRENT_WORKSPACE_KEY)

    def set_current_workspace_id(self, user_id: str, workspace_id: str) -> None:
        repo.upsert_user_setting(
            self.session,
            UserSettingEntity(
                user_id=user_id,
                service_name=WORKSPACE_SERVICE,
                config_key=CURRENT_WORKSPACE_KEY,
                config_value=workspace_id,
            ),
        )


def is_s3_configured(settings: dict[str, Any]) -> bool:
    """Enough S3 settings to open a connection (bucket may come from the request)."""
    s3 = settings.get("s3", {})
    return all(s3.get(f) for f in ("endpointUrl", "accessKeyId", "secretAccessKey"))
