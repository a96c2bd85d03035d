"""S3 storage browser API endpoints.

GET /api/s3-storage/volumes - Configured network volumes
GET /api/s3-storage/files - List a folder
POST /api/s3-storage/upload - Upload a file
GET /api/s3-storage/download - Download a file
DELETE /api/s3-storage/delete - Delete a file
POST /api/s3-storage/create-folder - Create a folder
GET /api/s3-storage/test - Test the S3 connection
GET /api/s3-storage/loras - List LoRA weights split into high/low noise
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from engui.api.app import get_db_session
from engui.api.errors import ApiError, ErrorCode, bad_request, service_error
from engui.api.services import S3_NOT_CONFIGURED, get_s3_service, load_settings
from engui.core.files import get_mime_type
from engui.db.repo import DbSession
from engui.settings.service import is_s3_configured
from engui.storage.s3 import S3StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/s3-storage")

DATACENTER_PATTERN = re.compile(r"s3api-([^-]+-[^-]+-\d+)\.runpod\.io")


@router.get("/volumes")
def list_volumes(session: DbSession = Depends(get_db_session)) -> list[dict]:
    """The configured bucket as a network volume, datacenter taken from the endpoint."""
    settings = load_settings(session)
    if not is_s3_configured(settings):
        raise bad_request(S3_NOT_CONFIGURED)
    s3 = settings["s3"]
    region = s3.get("region") or "us-east-1"
    match = DATACENTER_PATTERN.search(s3["endpointUrl"])
    return [
        {
            "name": s3.get("bucketName") or "my-bucket",
            "region": match.group(1) if match else region,
            "endpoint": s3["endpointUrl"],
        }
    ]


@router.get("/files")
def list_files(
    volume: str | None = Query(None),
    path: str = Query(""),
    session: DbSession = Depends(get_db_session),
) -> dict:
    if not volume:
        raise bad_request("volume is required")
    s3 = get_s3_service(session, bucket_name=volume)
    try:
        return {"files": s3.list_files(path)}
    except S3StorageError as e:
        raise service_error(e, "Failed to list files") from e


@router.post("/upload")
def upload_file(
    file: UploadFile | None = File(None),
    volume: str | None = Form(None),
    path: str = Form(""),
    session: DbSession = Depends(get_db_session),
) -> dict:
    if file is None or not volume:
        raise bad_request("file and volume are required")
    s3 = get_s3_service(session, bucket_name=volume)
    data = file.file.read()
    try:
        result = s3.upload_file(data, file.filename or "file", file.content_type, path)
    except S3StorageError as e:
        raise service_error(e, "Failed to upload file") from e
    return {
        "success": True,
        "message": "File uploaded successfully",
        "key": result["filePath"],
        "s3Url": result["s3Url"],
    }


@router.get("/download")
def download_file(
    volume: str | None = Query(None),
    key: str | None = Query(None),
    session: DbSession = Depends(get_db_session),
) -> Response:
    if not volume or not key:
        raise bad_request("volume and key are required")
    s3 = get_s3_service(session, bucket_name=volume)
    try:
        data = s3.download_file(key)
    except S3StorageError as e:
        if e.is_not_found:
            raise ApiError(404, f"File not found: {key}") from e
        raise service_error(e, "Failed to download file") from e

    file_name = PurePosixPath(key).name or "download"
    return Response(
        content=data,
        media_type=get_mime_type(file_name),
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.delete("/delete")
def delete_file(body: dict = Body(...), session: DbSession = Depends(get_db_session)) -> dict:
    volume, key = body.get("volume"), body.get("key")
    if not volume or not key:
        raise bad_request("volume and key are required")
    s3 = get_s3_service(session, bucket_name=volume)
    try:
        s3.delete_file(key)
    except S3StorageError as e:
        raise service_error(e, "Failed to delete file") from e
    return {"success": True, "message": "File deleted successfully"}


@router.post("/create-folder")
def create_folder(body: dict = Body(...), session: DbSession = Depends(get_db_session)) -> dict:
    """Create a folder. A plain file already stored under the same key is a conflict."""
    volume, key = body.get("volume"), body.get("key")
    if not volume or not key:
        raise bad_request("volume and key are required")
    s3 = get_s3_service(session, bucket_name=volume)

    folder = key.strip("/")
    parent = str(PurePosixPath(folder).parent)
    try:
        siblings = s3.list_files("" if parent == "." else parent)
        if any(f["key"] == folder and f["type"] == "file" for f in siblings):
            raise ApiError(
                409,
                f"'{folder}' already exists as a file. Delete it or choose another folder name.",
                ErrorCode.CONFLICT,
                {"conflictType": "file_exists"},
            )
        s3.create_folder(folder)
    except S3StorageError as e:
        raise service_error(e, "Failed to create folder") from e
    return {"success": True, "message": "Folder created successfully"}


@router.get("/test")
def test_connection(
    volume: str | None = Query(None), session: DbSession = Depends(get_db_session)
) -> dict:
    """List the bucket root; failures are reported in the body, not as errors."""
    s3 = get_s3_service(session, bucket_name=volume)
    config = {"endpoint": s3.config.endpoint_url, "bucket": s3.bucket, "region": s3.config.region}
    try:
        files = s3.list_files()
    except S3StorageError as e:
        logger.warning(f"S3 connection test failed: {e}")
        return {
            "success": False,
            "message": "S3 connection failed",
            "error": str(e),
            "code": e.code,
            "config": config,
        }
    return {
        "success": True,
        "message": "S3 connection successful",
        "filesCount": len(files),
        "config": config,
    }


def _lora_entry(entry: dict) -> dict:
    return {
        "key": entry["key"],
        "name": entry["key"].removeprefix("loras/"),
        "size": entry["size"],
        "lastModified": entry["lastModified"],
    }


@router.get("/loras")
def list_lora_files(session: DbSession = Depends(get_db_session)) -> dict:
    """.safetensors files directly under loras/, plus the high and low noise subsets."""
    s3 = get_s3_service(session)
    try:
        entries = s3.list_files("loras/")
    except S3StorageError as e:
        raise service_error(e, "Failed to fetch LoRA files") from e

    files = [e for e in entries if e["type"] == "file" and e["key"].endswith(".safetensors")]
    return {
        "success": True,
        "files": [_lora_entry(f) for f in files],
        "highFiles": [_lora_entry(f) for f in files if "high" in f["key"].lower()],
        "lowFiles": [_lora_entry(f) for f in files if "low" in f["key"].lower()],
    }
