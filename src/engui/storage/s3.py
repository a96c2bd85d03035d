"""S3-compatible object storage client (RunPod network volumes).

Objects uploaded here are visible to RunPod workers under
/runpod-volume/{key}, which is the path handed to generation payloads.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RUNPOD_VOLUME_PREFIX = "/runpod-volume/"
FOLDER_MARKER = "folder-marker.txt"
MAX_RETRY_DELAY = 30.0
RETRYABLE_STATUS_CODES = {502, 503, 504}
RETRYABLE_ERROR_CODES = {"SlowDown", "RequestTimeout", "ServiceUnavailable", "BadGateway"}
NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3StorageError(RuntimeError):
    """Storage operation failed."""

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.code in NOT_FOUND_CODES or self.status_code == 404


@dataclass
class S3Config:
    """Connection settings for one bucket (network volume)."""

    endpoint_url: str
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    region: str = "us-east-1"
    timeout: int = 3600
    max_retries: int = 5
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        required = {
            "endpoint_url": self.endpoint_url,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
            "bucket_name": self.bucket_name,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"S3 configuration incomplete, missing: {', '.join(missing)}")
        if not self.region:
            self.region = "us-east-1"


def sanitize_file_name(name: str) -> str:
    """Make a file name safe for object keys.

    Brackets are dropped, other characters outside [A-Za-z0-9._-] become
    underscores, runs of underscores collapse and edge underscores go.
    """
    cleaned = re.sub(r"[()\[\]{}]", "", name)
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned)
    return cleaned.strip("_")


def strip_volume_prefix(path: str) -> str:
    """/runpod-volume/loras/x.safetensors -> loras/x.safetensors"""
    if path.startswith(RUNPOD_VOLUME_PREFIX):
        return path[len(RUNPOD_VOLUME_PREFIX):]
    return path.lstrip("/")


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, (EndpointConnectionError, ConnectionClosedError, ConnectTimeoutError, ReadTimeoutError)):
        return True
    if isinstance(error, ClientError):
        response = error.response or {}
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        code = response.get("Error", {}).get("Code")
        return status in RETRYABLE_STATUS_CODES or code in RETRYABLE_ERROR_CODES
    message = str(error)
    return any(s in message for s in ("timeout", "ECONNRESET", "ENOTFOUND", "Bad Gateway"))


def _wrap(error: Exception, operation: str) -> S3StorageError:
    if isinstance(error, ClientError):
        response = error.response or {}
        code = response.get("Error", {}).get("Code")
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return S3StorageError(f"S3 {operation} failed: {error}", code=code, status_code=status)
    return S3StorageError(f"S3 {operation} failed: {error}")


class S3Service:
    """Thin wrapper over a boto3 S3 client bound to one bucket."""

    def __init__(self, config: S3Config, client: Any = None, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._sleep = sleep
        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=60,
                read_timeout=config.timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    @classmethod
    def from_settings(cls, s3_settings: dict, bucket_name: str | None = None, client: Any = None) -> "S3Service":
        """Build from the s3 section of the user's settings document."""
        config = S3Config(
            endpoint_url=s3_settings.get("endpointUrl", ""),
            access_key_id=s3_settings.get("accessKeyId", ""),
            secret_access_key=s3_settings.get("secretAccessKey", ""),
            bucket_name=bucket_name or s3_settings.get("bucketName", ""),
            region=s3_settings.get("region") or "us-east-1",
            timeout=int(s3_settings.get("timeout") or 3600),
        )
        return cls(config, client=client)

    @property
    def bucket(self) -> str:
        return self.config.bucket_name

    def _with_retry(self, operation: str, func: Callable[[], T]) -> T:
        """Run func, retrying transient failures with capped exponential backoff."""
        attempt = 0
        while True:
            try:
                return func()
            except (ClientError, BotoCoreError) as e:
                attempt += 1
                if not _is_retryable(e) or attempt >= self.config.max_retries:
                    raise _wrap(e, operation) from e
                delay = min(self.config.retry_delay * (2 ** (attempt - 1)), MAX_RETRY_DELAY)
                logger.warning(
                    f"S3 {operation} failed (attempt {attempt}/{self.config.max_retries}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self._sleep(delay)

    # ------------------------------------------------------------------
    # Listing and reads
    # ------------------------------------------------------------------

    def list_files(self, prefix: str = "") -> list[dict]:
        """List the direct children of a prefix, directories first.

        Returns:
            Entries {key, size, lastModified, type, extension?}.
        """
        if prefix and not prefix.endswith("/"):
            prefix = f"{prefix}/"

        directories: list[dict] = []
        files: list[dict] = []
        token = None
        while True:
            kwargs = {"Bucket": self.bucket, "Prefix": prefix, "Delimiter": "/"}
            if token:
                kwargs["ContinuationToken"] = token
            response = self._with_retry("list", lambda: self.client.list_objects_v2(**kwargs))

            for common in response.get("CommonPrefixes", []):
                key = common.get("Prefix", "")
                if key and key != prefix:
                    directories.append(
                        {"key": key, "size": 0, "lastModified": None, "type": "directory"}
                    )
            for obj in response.get("Contents", []):
                key = obj.get("Key", "")
                relative = key[len(prefix):]
                if not relative or "/" in relative or relative == FOLDER_MARKER:
                    continue
                modified = obj.get("LastModified")
                entry = {
                    "key": key,
                    "size": obj.get("Size", 0),
                    "lastModified": modified.isoformat() if modified else None,
                    "type": "file",
                }
                suffix = PurePosixPath(key).suffix
                if suffix:
                    entry["extension"] = suffix.lstrip(".").lower()
                files.append(entry)

            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")

        return directories + files

    def file_exists(self, key: str) -> bool:
        try:
            self._with_retry("head", lambda: self.client.head_object(Bucket=self.bucket, Key=key))
        except S3StorageError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def download_file(self, key: str) -> bytes:
        response = self._with_retry(
            "download", lambda: self.client.get_object(Bucket=self.bucket, Key=key)
        )
        return response["Body"].read()

    def generate_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise _wrap(e, "presign") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def delete_file(self, key: str) -> None:
        self._with_retry("delete", lambda: self.client.delete_object(Bucket=self.bucket, Key=key))
        logger.info(f"Deleted s3://{self.bucket}/{key}")

    def create_folder(self, key: str) -> str:
        """Create a folder by writing a marker object inside it.

        A zero-length object stored under the folder's own name would
        shadow the folder, so it is removed first.
        """
        folder = key.strip("/")
        if self.file_exists(folder):
            self.delete_file(folder)
        marker = f"{folder}/{FOLDER_MARKER}"
        self._with_retry(
            "create folder",
            lambda: self.client.put_object(Bucket=self.bucket, Key=marker, Body=b""),
        )
        return f"{folder}/"

    def _unique_key(self, directory: str, file_name: str) -> str:
        path = PurePosixPath(file_name)
        stem, suffix = path.stem, path.suffix
        candidate = f"{directory}{file_name}"
        counter = 1
        while self.file_exists(candidate):
            candidate = f"{directory}{stem}_{counter}{suffix}"
            counter += 1
        return candidate

    def upload_file(
        self,
        data: bytes,
        file_name: str,
        content_type: str | None = None,
        upload_path: str = "",
    ) -> dict:
        """Upload bytes under upload_path with a sanitized, non-clashing name.

        Returns:
            {"s3Url": endpoint/bucket/key, "filePath": /runpod-volume/key, "key": key}
        """
        directory = upload_path.strip("/")
        directory = f"{directory}/" if directory else ""
        safe_name = sanitize_file_name(file_name) or "file"
        key = self._unique_key(directory, safe_name)

        extra = {"ContentType": content_type} if content_type else {}
        self._with_retry(
            "upload",
            lambda: self.client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra),
        )
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return {
            "s3Url": f"{self.config.endpoint_url.rstrip('/')}/{self.bucket}/{key}",
            "filePath": f"{RUNPOD_VOLUME_PREFIX}{key}",
            "key": key,
        }

    def upload_multiple_files(self, files: list[tuple[bytes, str, str | None]], upload_path: str = "") -> list[str]:
        """Upload (data, name, content_type) tuples; returns runpod-volume paths."""
        return [
            self.upload_file(data, name, content_type, upload_path)["filePath"]
            for data, name, content_type in files
        ]
