"""Media utility API endpoints.

POST /api/upload - Upload form files to the network volume
GET /api/thumbnail - Thumbnail support status
POST /api/thumbnail - Extract a video thumbnail as a data URI
GET /api/results/{job_id} - Locate a completed job's result
POST /api/download - Save a remote URL or data URI under the public dir
POST /api/save-audio - Save a recorded audio file
"""

from __future__ import annotations

import base64
import logging
import tempfile
import time
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import requests
from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from starlette.datastructures import UploadFile as StarletteUploadFile

from engui.api.app import get_db_session
from engui.api.errors import ApiError, bad_request, not_found, service_error
from engui.api.services import get_s3_service
from engui.core.files import save_public_file
from engui.db import repo
from engui.db.repo import DbSession
from engui.media.ffmpeg import (
    SUPPORTED_VIDEO_EXTENSIONS,
    FFmpegError,
    check_ffmpeg_available,
    extract_thumbnail,
    is_supported_video_format,
    validate_video,
)
from engui.storage.s3 import S3StorageError, sanitize_file_name

logger = logging.getLogger(__name__)

router = APIRouter()

DOWNLOAD_TIMEOUT = 300
DEFAULT_DOWNLOAD_FOLDER = "generations"
AUDIO_FOLDER = "audio"
DATA_URI_EXTENSIONS = {
    "data:image/png": ".png",
    "data:image/jpeg": ".jpg",
    "data:video/mp4": ".mp4",
    "data:audio/mpeg": ".mp3",
    "data:audio/wav": ".wav",
}


@router.post("/upload")
async def upload_files(request: Request, session: DbSession = Depends(get_db_session)) -> dict:
    """Upload every file in the form; returns {field: /runpod-volume path}."""
    form = await request.form()
    uploads = [
        (field, value.filename, value.content_type, await value.read())
        for field, value in form.multi_items()
        if isinstance(value, StarletteUploadFile) and value.filename
    ]
    if not uploads:
        raise bad_request("No files provided")
    return await run_in_threadpool(_upload_files_sync, uploads, session)


def _upload_files_sync(
    uploads: list[tuple[str, str, str | None, bytes]], session: DbSession
) -> dict:
    s3 = get_s3_service(session)
    mapping: dict[str, str] = {}
    for field, filename, content_type, data in uploads:
        try:
            mapping[field] = s3.upload_file(data, filename, content_type)["filePath"]
        except S3StorageError as e:
            raise service_error(e, "File upload failed") from e
    logger.info(f"Uploaded {len(mapping)} files to the network volume")
    return {"success": True, "files": mapping}


@router.get("/thumbnail")
def thumbnail_status() -> dict:
    return {
        "ffmpegAvailable": check_ffmpeg_available(),
        "supportedFormats": list(SUPPORTED_VIDEO_EXTENSIONS),
        "defaultOptions": {"width": 320, "height": 240, "quality": 80, "format": "jpg"},
    }


@router.post("/thumbnail")
def create_thumbnail(
    video: UploadFile | None = File(None),
    width: int = Form(320),
    height: int = Form(240),
    quality: int = Form(80),
) -> dict:
    """Extract a JPEG frame from an uploaded video.

    Raises:
        ApiError: 400 for a missing, unsupported or unreadable video; 500
            when ffmpeg is unavailable or fails.
    """
    if video is None or not video.filename:
        raise bad_request("No files provided")
    if not is_supported_video_format(video.filename):
        raise bad_request(f"Unsupported video format: {PurePosixPath(video.filename).suffix.lower()}")
    if not check_ffmpeg_available():
        raise ApiError(500, "Failed to generate thumbnail: ffmpeg is not available")

    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp) / f"input{PurePosixPath(video.filename).suffix.lower()}"
        target = Path(tmp) / "thumb.jpg"
        source.write_bytes(video.file.read())
        if not validate_video(source):
            raise bad_request("Invalid video file")
        try:
            extract_thumbnail(source, target, width=width, height=height, quality=quality)
        except FFmpegError as e:
            logger.error(f"Thumbnail generation failed: {e}")
            raise ApiError(500, "Failed to generate thumbnail") from e
        encoded = base64.b64encode(target.read_bytes()).decode("ascii")

    return {
        "success": True,
        "thumbnail": f"data:image/jpeg;base64,{encoded}",
        "width": width,
        "height": height,
        "quality": quality,
    }


@router.get("/results/{job_id}")
def get_result(job_id: str, session: DbSession = Depends(get_db_session)):
    """Redirect to a remote result, or point the client at the local file."""
    job = repo.get_job(session, job_id.removesuffix(".mp4"))
    if job is None:
        raise not_found("Job")
    if job.status != "completed" or not job.result_url:
        raise ApiError(404, "Job not completed or no result available")
    if job.result_url.startswith(("http://", "https://")):
        return RedirectResponse(job.result_url)
    return {"redirectUrl": job.result_url, "message": "Please access the result directly"}


def _download_name(url: str, filename: str | None) -> str:
    is_data = url.startswith("data:")
    name = filename or ("" if is_data else PurePosixPath(urlparse(url).path).name)
    if not name:
        name = f"download-{int(time.time() * 1000)}"
        if not is_data:
            name += ".bin"
    if is_data and not PurePosixPath(name).suffix:
        for prefix, extension in DATA_URI_EXTENSIONS.items():
            if url.startswith(prefix):
                name += extension
                break
    return name


@router.post("/download")
def download(body: dict = Body(...)) -> dict:
    """Save a remote URL or data URI to {public}/{folder}/{filename}.

    Raises:
        ApiError: 400 without a url or for a path outside the public dir,
            502 when the remote fetch fails.
    """
    url = body.get("url")
    if not url:
        raise bad_request("Missing URL")
    name = _download_name(url, body.get("filename"))
    folder = body.get("folder") or DEFAULT_DOWNLOAD_FOLDER

    if url.startswith("data:"):
        try:
            data = base64.b64decode(url.split(",", 1)[1])
        except (IndexError, ValueError) as e:
            raise bad_request("Invalid data URI") from e
    else:
        try:
            response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Download of {url} failed: {e}")
            raise ApiError(502, f"Failed to fetch file: {e}") from e
        data = response.content

    try:
        path, web_path = save_public_file(data, name, folder)
    except ValueError as e:
        raise bad_request(f"Invalid download location: {e}") from e
    return {"success": True, "path": web_path, "fullPath": str(path)}


@router.post("/save-audio")
def save_audio(
    file: UploadFile | None = File(None),
    project_id: str | None = Form(None, alias="projectId"),
) -> dict:
    """Store a recorded or uploaded audio clip under public/audio."""
    if file is None or not file.filename:
        raise bad_request("No file provided")
    name = sanitize_file_name(file.filename) or "audio.webm"
    if project_id:
        name = f"{sanitize_file_name(project_id)}_{name}"
    _, web_path = save_public_file(file.file.read(), name, AUDIO_FOLDER)
    logger.info(f"Saved audio to {web_path}")
    return {"success": True, "path": web_path, "url": web_path}
