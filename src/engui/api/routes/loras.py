"""LoRA management API endpoints.

GET /api/lora - List LoRAs (optionally with presigned download URLs)
DELETE /api/lora/{lora_id} - Delete LoRA from S3 then database
POST /api/lora/sync - Register LoRA files found in S3
POST /api/lora/upload - Upload LoRA files
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from sqlalchemy.exc import SQLAlchemyError

from engui.api.app import get_db_session
from engui.api.errors import ApiError, bad_request, not_found, service_error
from engui.api.services import get_s3_service
from engui.core.validation import is_lora_file, lora_extension, validate_lora_file_server
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import LoraEntity
from engui.models.types import LoraOut
from engui.storage.s3 import RUNPOD_VOLUME_PREFIX, S3StorageError, strip_volume_prefix

logger = logging.getLogger(__name__)

router = APIRouter()

LORA_FOLDER = "loras"
PRESIGNED_EXPIRY = 3600


@router.get("/lora")
def list_loras(
    workspace_id: str | None = Query(None, alias="workspaceId"),
    presigned: bool = Query(False),
    session: DbSession = Depends(get_db_session),
) -> dict:
    """List LoRAs newest first.

    With presigned=true each entry carries a one hour download URL. A LoRA
    whose URL cannot be signed is still listed, without one.
    """
    loras = repo.list_loras(session, workspace_id)

    s3 = None
    if presigned:
        try:
            s3 = get_s3_service(session)
        except ApiError as e:
            logger.warning(f"Presigned URLs unavailable: {e.message}")

    items = []
    for lora in loras:
        url = None
        if s3 is not None:
            try:
                url = s3.generate_presigned_url(strip_volume_prefix(lora.s3_path), PRESIGNED_EXPIRY)
            except S3StorageError as e:
                logger.error(f"Failed to presign LoRA {lora.id}: {e}")
        items.append(LoraOut.from_entity(lora, url))

    logger.info(f"Fetched {len(items)} LoRAs for workspace: {workspace_id or 'all'}")
    return {"success": True, "loras": items}


@router.delete("/lora/{lora_id}")
def delete_lora(lora_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    """Delete the S3 object, then the record.

    A missing S3 object counts as deleted. Any other S3 failure leaves the
    record in place so storage and database stay in step.
    """
    lora = repo.get_lora(session, lora_id)
    if lora is None:
        raise not_found("LoRA")

    s3 = get_s3_service(session)
    key = strip_volume_prefix(lora.s3_path)
    try:
        s3.delete_file(key)
    except S3StorageError as e:
        if not e.is_not_found:
            raise service_error(e, "Failed to delete LoRA from S3") from e
        logger.warning(f"S3 object {key} already gone; deleting record only")

    repo.delete_lora(session, lora_id)
    repo.commit(session)
    logger.info(f"Deleted LoRA {lora.file_name} ({lora_id})")
    return {"success": True, "message": "LoRA deleted successfully"}


@router.post("/lora/sync")
def sync_loras(body: dict = Body(default={}), session: DbSession = Depends(get_db_session)) -> dict:
    """Create records for LoRA files under loras/ that are not tracked yet."""
    workspace_id = body.get("workspaceId")
    s3 = get_s3_service(session, user_id=body.get("userId"), require_bucket=True)

    try:
        entries = s3.list_files(f"{LORA_FOLDER}/")
    except S3StorageError as e:
        raise service_error(e, "Failed to list LoRAs in S3") from e
    files = [f for f in entries if f["type"] == "file" and is_lora_file(f["key"])]

    known = repo.get_lora_s3_paths(session)
    endpoint = s3.config.endpoint_url.rstrip("/")
    synced, skipped = [], []
    for entry in files:
        file_name = PurePosixPath(entry["key"]).name
        s3_path = f"{RUNPOD_VOLUME_PREFIX}{entry['key']}"
        if s3_path in known:
            skipped.append({"fileName": file_name, "reason": "Already exists in database"})
            continue
        lora = repo.create_lora(
            session,
            LoraEntity(
                id=repo.new_id(),
                name=PurePosixPath(file_name).stem,
                file_name=file_name,
                s3_path=s3_path,
                s3_url=f"{endpoint}/{s3.bucket}/{entry['key']}",
                file_size=entry["size"],
                extension=lora_extension(file_name),
                workspace_id=workspace_id,
            ),
        )
        synced.append(
            {"id": lora.id, "name": lora.name, "fileName": lora.file_name, "fileSize": str(lora.file_size)}
        )
    repo.commit(session)

    logger.info(f"LoRA sync completed: {len(synced)} synced, {len(skipped)} skipped")
    return {
        "success": True,
        "message": f"Synced {len(synced)} LoRAs from S3",
        "synced": synced,
        "skipped": skipped,
        "total": len(files),
    }


@router.post("/lora/upload")
def upload_loras(
    file: list[UploadFile] = File(default=[]),
    workspace_id: str | None = Form(None, alias="workspaceId"),
    user_id: str | None = Form(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    """Upload one or more LoRA files to loras/ and record them.

    Each file is validated on its own. If its record cannot be written the
    uploaded object is removed again.

    Raises:
        ApiError: 400 without files or S3 settings, 500 when every file failed.
    """
    if not file:
        raise bad_request("No files provided")
    s3 = get_s3_service(session, user_id=user_id, require_bucket=True)

    results: list[LoraOut] = []
    errors: list[dict] = []
    for upload in file:
        name = upload.filename or "lora"
        data = upload.file.read()
        validation = validate_lora_file_server(name, len(data))
        if not validation.valid:
            errors.append({"fileName": name, "error": validation.error})
            continue

        try:
            stored = s3.upload_file(
                data, name, upload.content_type or "application/octet-stream", LORA_FOLDER
            )
        except S3StorageError as e:
            logger.error(f"Failed to upload {name}: {e}")
            if len(file) == 1:
                raise service_error(e, "Failed to upload LoRA file") from e
            errors.append({"fileName": name, "error": str(e)})
            continue

        try:
            with session.begin_nested():
                lora = repo.create_lora(
                    session,
                    LoraEntity(
                        id=repo.new_id(),
                        name=PurePosixPath(name).stem,
                        file_name=name,
                        s3_path=stored["filePath"],
                        s3_url=stored["s3Url"],
                        file_size=len(data),
                        extension=lora_extension(name),
                        workspace_id=workspace_id,
                    ),
                )
        except SQLAlchemyError as e:
            logger.error(f"Database save failed for {name}, removing S3 object: {e}")
            try:
                s3.delete_file(stored["key"])
            except S3StorageError as cleanup_error:
                logger.error(f"Failed to remove {stored['key']}: {cleanup_error}")
            errors.append({"fileName": name, "error": "Database error"})
            continue

        logger.info(f"LoRA uploaded: {stored['s3Url']} ({lora.id})")
        results.append(LoraOut.from_entity(lora))

    repo.commit(session)
    if not results:
        raise ApiError(500, "All uploads failed", details={"errors": errors})
    return {
        "success": True,
        "message": f"Successfully uploaded {len(results)} of {len(file)} files",
        "loras": results,
        "errors": errors or None,
    }
