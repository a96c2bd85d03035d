"""Generation API endpoints.

GET /api/models - Model catalog (optionally filtered by type)
GET /api/models/{model_id} - One model with its parameters
POST /api/models/{model_id}/validate - Validate parameter values
POST /api/generate/{model_id} - Submit a RunPod generation (multipart)
POST /api/upscale - Upscale an existing result or volume file
POST /api/generate - Record a generation for an external worker
GET /api/generate/status - Proxy a RunPod status call
POST /api/webhook/complete - External worker completion callback
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from engui.api.app import get_db_session
from engui.api.errors import ApiError, bad_request, not_found, service_error, validate_required_fields
from engui.config import get_default_user_id
from engui.core.files import resolve_public_path, save_public_file
from engui.core.model_config import (
    MODELS,
    apply_defaults,
    coerce_parameter_value,
    get_model_by_id,
    get_models_by_type,
    validate_model_inputs,
)
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import JobEntity
from engui.models.types import (
    GenerateResponse,
    JobOut,
    LegacyGenerateRequest,
    UpscaleRequest,
    WebhookComplete,
)
from engui.providers.runpod import RunPodError, RunPodService
from engui.settings.service import SettingsService, is_s3_configured
from engui.storage.s3 import RUNPOD_VOLUME_PREFIX, S3Service, S3StorageError
from engui.worker.orchestrator import GenerationContext, output_media_type, run_generation_job

logger = logging.getLogger(__name__)

router = APIRouter()

# Form file field -> payload key holding its /runpod-volume path
FILE_FIELDS = {
    "image": "image_path",
    "image2": "image_path_2",
    "end_image": "end_image_path",
    "video": "video_path",
    "audio": "wav_path",
    "audio2": "wav_path_2",
    "condition_image": "condition_image",
}
AUDIO_FIELDS = ("audio", "audio2")
TEXT_FIELDS = {"prompt", "positive_prompt", "negativePrompt", "userId", "workspaceId", "endpointType"}
META_FIELDS = {"userId", "workspaceId", "endpointType"}
UPLOAD_FOLDER = "input"
UPSCALE_ENDPOINT = "upscale"
GENERATION_COST = 1


# ============================================================================
# Model catalog
# ============================================================================


@router.get("/models")
def list_models(model_type: str | None = Query(None, alias="type")) -> dict:
    models = get_models_by_type(model_type) if model_type else list(MODELS)
    return {"success": True, "models": [m.to_dict() for m in models]}


@router.get("/models/{model_id}")
def get_model(model_id: str) -> dict:
    model = get_model_by_id(model_id)
    if model is None:
        raise not_found("Model")
    return {"success": True, "model": model.to_dict()}


@router.post("/models/{model_id}/validate")
def validate_model(model_id: str, inputs: dict = Body(default={})) -> dict:
    if get_model_by_id(model_id) is None:
        raise not_found("Model")
    errors = validate_model_inputs(model_id, inputs)
    return {"valid": not errors, "errors": errors}


# ============================================================================
# Helpers
# ============================================================================


def _parse_scalar(raw: str) -> Any:
    """Best-effort typing of a free-form form value."""
    text = raw.strip()
    if text.lower() in ("true", "false"):
        return text.lower() == "true"
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            pass
    if text.startswith(("[", "{")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return raw
    return raw


def parse_generation_form(model_id: str, fields: dict[str, str]) -> dict[str, Any]:
    """Turn multipart text fields into typed generation inputs.

    Catalog parameters are converted by their declared type; other fields
    are typed by shape, except free text such as prompts.
    """
    model = get_model_by_id(model_id)
    params = {p.name: p for p in model.parameters} if model else {}
    inputs: dict[str, Any] = {}
    for key, raw in fields.items():
        if key in META_FIELDS or raw == "":
            continue
        if key in params:
            inputs[key] = coerce_parameter_value(params[key], raw)
        elif key in TEXT_FIELDS:
            inputs[key] = raw
        else:
            inputs[key] = _parse_scalar(raw)
    return apply_defaults(model_id, inputs) if model else inputs


def _requires_setup(message: str) -> ApiError:
    return ApiError(400, message, details={"requiresSetup": True})


def _resolve_workspace(session: DbSession, user_id: str, explicit: str | None) -> str | None:
    """Explicit workspace, else the user's current one, else their default."""
    if explicit and repo.get_workspace(session, explicit) is not None:
        return explicit
    current = SettingsService(session).get_current_workspace_id(user_id)
    if current and repo.get_workspace(session, current) is not None:
        return current
    default = repo.get_default_workspace(session, user_id)
    return default.id if default else None


def _charge(session: DbSession, user_id: str, label: str, job_id: str) -> None:
    repo.create_credit_activity(
        session, user_id, f"Generated {label} content (Job ID: {job_id})", -GENERATION_COST
    )


def _s3_for_uploads(settings: dict) -> S3Service:
    if not is_s3_configured(settings) or not settings["s3"].get("bucketName"):
        raise _requires_setup("S3 settings are required to upload input files")
    return S3Service.from_settings(settings["s3"])


def _schedule(
    request: Request,
    background_tasks: BackgroundTasks,
    job: JobEntity,
    settings: dict,
    endpoint_id: str,
) -> None:
    context = GenerationContext(
        job_id=job.id,
        model_id=job.model_id or job.type,
        runpod_job_id=job.runpod_job_id,
        api_key=settings["runpod"]["apiKey"],
        endpoint_id=endpoint_id,
        media_type=output_media_type(job.model_id or job.type, job.options),
        generate_timeout=settings["runpod"]["generateTimeout"],
        created_at=job.created_at,
        s3_settings=settings["s3"],
    )
    background_tasks.add_task(run_generation_job, context, request.app.state.db_path)


def _submit_or_fail(session: DbSession, job_id: str, submit) -> str:
    """Run submit(); on failure mark the job failed and raise 500."""
    try:
        return submit()
    except (RunPodError, ValueError) as e:
        logger.error(f"RunPod submission failed for job {job_id}: {e}")
        repo.update_job(session, job_id, status="failed", completed_at=datetime.now(timezone.utc))
        repo.merge_job_options(session, job_id, {"error": str(e)})
        repo.commit(session)
        raise ApiError(500, f"Failed to submit to RunPod: {e}", details={"jobId": job_id}) from e


# ============================================================================
# RunPod generation
# ============================================================================


@router.post("/generate/{model_id}", response_model=GenerateResponse)
async def generate(
    model_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    session: DbSession = Depends(get_db_session),
) -> GenerateResponse:
    """Submit a generation job to the model's RunPod endpoint.

    Text fields carry the model parameters (plus userId, workspaceId and
    an optional endpointType override); file fields are uploaded to the
    network volume first. The job is followed in the background.

    Raises:
        ApiError: 400 when settings are incomplete or inputs are invalid,
            500 when RunPod rejects the submission.
    """
    form = await request.form()
    fields = {k: v for k, v in form.multi_items() if isinstance(v, str)}
    files = {
        k: (v.filename, v.content_type, await v.read())
        for k, v in form.multi_items()
        if isinstance(v, UploadFile) and v.filename
    }
    return await run_in_threadpool(
        _generate_sync, model_id, fields, files, request, background_tasks, session
    )


def _generate_sync(
    model_id: str,
    fields: dict[str, str],
    files: dict[str, tuple[str, str | None, bytes]],
    request: Request,
    background_tasks: BackgroundTasks,
    session: DbSession,
) -> GenerateResponse:
    user_id = fields.get("userId") or get_default_user_id()
    settings, _ = SettingsService(session).get_settings(user_id)
    runpod = settings["runpod"]
    endpoint_type = fields.get("endpointType") or model_id
    endpoint_id = runpod["endpoints"].get(endpoint_type)
    if not runpod["apiKey"] or not endpoint_id:
        raise _requires_setup(
            f"RunPod configuration incomplete. Configure your API key and the "
            f"{endpoint_type} endpoint in Settings."
        )

    inputs = parse_generation_form(model_id, fields)
    if get_model_by_id(model_id) is not None:
        errors = validate_model_inputs(model_id, inputs)
        if errors:
            raise bad_request("Invalid generation parameters", {"errors": errors})

    job_id = repo.new_id()
    input_files: dict[str, str] = {}
    if files:
        s3 = _s3_for_uploads(settings)
        for field, (filename, content_type, data) in files.items():
            key = FILE_FIELDS.get(field, f"{field}_path")
            name = f"input_{job_id}_{filename}"
            try:
                stored = s3.upload_file(data, name, content_type, UPLOAD_FOLDER)
            except S3StorageError as e:
                raise service_error(e, f"Failed to upload {field} to S3") from e
            inputs[key] = stored["filePath"]
            _, input_files[field] = save_public_file(data, stored["key"].rsplit("/", 1)[-1], "results")
        audio = [inputs[FILE_FIELDS[f]] for f in AUDIO_FIELDS if f in files]
        if audio:
            inputs["audio_paths"] = audio

    workspace_id = _resolve_workspace(session, user_id, fields.get("workspaceId"))
    model = get_model_by_id(model_id)
    job = repo.create_job(
        session,
        JobEntity(
            id=job_id,
            user_id=user_id,
            workspace_id=workspace_id,
            type=model_id,
            status="processing",
            prompt=inputs.get("prompt"),
            model_id=model_id,
            options={**inputs, "endpointType": endpoint_type, "inputFiles": input_files},
        ),
    )
    _charge(session, user_id, model.name if model else model_id, job.id)
    repo.commit(session)

    service = RunPodService(runpod["apiKey"], endpoint_id, runpod["generateTimeout"])
    runpod_job_id = _submit_or_fail(session, job.id, lambda: service.submit_job(inputs, model_id))
    job = repo.update_job(session, job.id, runpod_job_id=runpod_job_id)
    repo.commit(session)

    _schedule(request, background_tasks, job, settings, endpoint_id)
    logger.info(f"Job {job.id} submitted as RunPod {runpod_job_id} ({model_id})")
    return GenerateResponse(
        job_id=job.id,
        runpod_job_id=runpod_job_id,
        message=f"{model.name if model else model_id} generation started",
    )


def _upscale_source(session: DbSession, settings: dict, job: JobEntity) -> str:
    """Network volume path of a job's result, uploading a local copy if needed."""
    for candidate in (job.options.get("runpodResultUrl"), job.result_url):
        if isinstance(candidate, str) and candidate.startswith(RUNPOD_VOLUME_PREFIX):
            return candidate
    if not job.result_url:
        raise bad_request("Original job has no result")
    if job.result_url.startswith(("http://", "https://")):
        raise bad_request("Remote results must be passed as a network volume path")

    s3 = _s3_for_uploads(settings)
    try:
        local = resolve_public_path(job.result_url)
    except ValueError as e:
        raise bad_request(str(e)) from e
    if not local.exists():
        raise not_found("Result file")
    try:
        return s3.upload_file(local.read_bytes(), local.name, None, UPLOAD_FOLDER)["filePath"]
    except S3StorageError as e:
        raise service_error(e, "Failed to upload result for upscaling") from e


@router.post("/upscale", response_model=GenerateResponse)
def upscale(
    body: UpscaleRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    session: DbSession = Depends(get_db_session),
) -> GenerateResponse:
    """Upscale (and optionally interpolate) a previous result or volume file."""
    if not body.job_id and not body.path:
        raise bad_request("jobId or path is required")

    user_id = get_default_user_id()
    source_job = None
    if body.job_id:
        source_job = repo.get_job(session, body.job_id)
        if source_job is None:
            raise not_found("Original job")
        user_id = source_job.user_id

    settings, _ = SettingsService(session).get_settings(user_id)
    runpod = settings["runpod"]
    endpoint_id = runpod["endpoints"].get(UPSCALE_ENDPOINT) or runpod["endpoints"].get("video-upscale")
    if not runpod["apiKey"] or not endpoint_id:
        raise _requires_setup("Upscale endpoint not configured")

    media_type = body.media_type or (
        output_media_type(source_job.model_id or source_job.type) if source_job else "video"
    )
    if media_type not in ("image", "video"):
        raise bad_request("mediaType must be one of: image, video")
    path = body.path or _upscale_source(session, settings, source_job)
    interpolate = body.interpolation and media_type == "video"

    job = repo.create_job(
        session,
        JobEntity(
            id=repo.new_id(),
            user_id=user_id,
            workspace_id=source_job.workspace_id if source_job else None,
            type="upscale",
            status="processing",
            prompt=f"Upscale of: {source_job.prompt}" if source_job and source_job.prompt else "Upscale",
            model_id="upscale",
            options={
                "mediaType": media_type,
                "sourcePath": path,
                "sourceJobId": body.job_id,
                "interpolation": interpolate,
                "endpointType": UPSCALE_ENDPOINT,
            },
        ),
    )
    repo.commit(session)

    service = RunPodService(runpod["apiKey"], endpoint_id, runpod["generateTimeout"])
    runpod_job_id = _submit_or_fail(
        session, job.id, lambda: service.submit_upscale_job(path, media_type, interpolate)
    )
    job = repo.update_job(session, job.id, runpod_job_id=runpod_job_id)
    repo.commit(session)

    _schedule(request, background_tasks, job, settings, endpoint_id)
    return GenerateResponse(
        job_id=job.id, runpod_job_id=runpod_job_id, message=f"{media_type.capitalize()} upscale started"
    )


# ============================================================================
# External worker flow
# ============================================================================


@router.post("/generate")
def generate_legacy(body: LegacyGenerateRequest, session: DbSession = Depends(get_db_session)) -> dict:
    """Record a processing job that an external worker completes via webhook."""
    validate_required_fields(body.model_dump(by_alias=True), ["userId", "type"])
    job = repo.create_job(
        session,
        JobEntity(
            id=repo.new_id(),
            user_id=body.user_id,
            workspace_id=body.workspace_id,
            type=body.type,
            status="processing",
            prompt=body.prompt,
            model_id=body.model_id,
            options=body.options or {},
        ),
    )
    _charge(session, body.user_id, body.type, job.id)
    repo.commit(session)
    return {"success": True, "jobId": job.id, "status": "processing"}


@router.get("/generate/status")
def generation_status(
    job_id: str | None = Query(None, alias="jobId"),
    endpoint_id: str | None = Header(None, alias="X-RunPod-Endpoint-Id"),
    api_key: str | None = Header(None, alias="X-RunPod-Key"),
) -> dict:
    if not job_id or not endpoint_id or not api_key:
        raise bad_request("Missing required parameters")
    try:
        data = RunPodService(api_key, endpoint_id).get_job_status(job_id)
    except RunPodError as e:
        raise service_error(e, "Failed to check status") from e
    return {
        "success": True,
        "status": data.get("status"),
        "output": data.get("output"),
        "error": data.get("error"),
    }


@router.post("/webhook/complete")
def webhook_complete(body: WebhookComplete, session: DbSession = Depends(get_db_session)) -> dict:
    validate_required_fields(body.model_dump(by_alias=True), ["jobId", "resultUrl"])
    job = repo.update_job(
        session,
        body.job_id,
        status="completed",
        result_url=body.result_url,
        thumbnail_url=body.thumbnail_url,
        completed_at=datetime.now(timezone.utc),
    )
    if job is None:
        raise not_found("Job")
    repo.commit(session)
    logger.info(f"Webhook completed job {job.id}")
    return {"success": True, "message": "Webhook received and job updated", "job": JobOut.model_validate(job)}
