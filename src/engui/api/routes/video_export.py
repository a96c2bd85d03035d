"""Video export API endpoints.

GET /api/video-export - Export service status
POST /api/video-export - Render a timeline to a video file
GET /api/video-export/download - Download a rendered file
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from engui.api.errors import ApiError, bad_request, validate_enum
from engui.config import get_exports_dir
from engui.core.project_io import timeline_from_payload
from engui.media.ffmpeg import FFmpegError
from engui.media.timeline import compose_timeline
from engui.models.types import ExportRequest

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_FORMATS = ("mp4", "webm")
MEDIA_TYPES = {".mp4": "video/mp4", ".webm": "video/webm"}


@router.get("/video-export")
def export_status() -> dict:
    return {"status": "ok", "message": "Video export service is running"}


@router.post("/video-export")
def export_video(body: ExportRequest) -> dict:
    """Render the posted timeline with ffmpeg into the exports directory.

    An empty timeline is not an error: the response carries a null
    downloadUrl and a note for the user.

    Raises:
        ApiError: 400 without project data or for an unknown format, 500
            when rendering fails.
    """
    if not body.project:
        raise bad_request("Project data is required")
    fmt = body.options.get("format") or "mp4"
    validate_enum(fmt, EXPORT_FORMATS, "format")

    project, tracks, keyframes = timeline_from_payload(body.project, body.tracks, body.keyframes)
    clip_count = sum(len(k) for k in keyframes.values())
    if clip_count == 0:
        return {
            "success": True,
            "message": "Nothing to export",
            "downloadUrl": None,
            "note": "Add media to timeline before exporting",
        }

    file_name = f"export_{uuid.uuid4().hex}.{fmt}"
    output_path = get_exports_dir() / file_name
    logger.info(f"Exporting project {project.id} ({clip_count} clips) to {output_path}")
    try:
        compose_timeline(project, tracks, keyframes, output_path)
    except FFmpegError as e:
        logger.error(f"Export of project {project.id} failed: {e}")
        raise ApiError(500, f"Video export failed: {e}") from e

    return {
        "success": True,
        "message": "Video exported successfully",
        "downloadUrl": f"/exports/{file_name}",
        "fileName": file_name,
    }


@router.get("/video-export/download")
def download_export(file: str | None = Query(None)) -> FileResponse:
    """Send a rendered file; names with path separators are rejected."""
    if not file or ".." in file or "/" in file or "\\" in file:
        raise bad_request("Invalid file name")
    path = get_exports_dir() / file
    if not path.is_file():
        raise ApiError(404, "File not found")
    return FileResponse(
        path,
        media_type=MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        filename=file,
    )
