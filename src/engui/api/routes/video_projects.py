"""Video sequencer project API endpoints.

GET /api/video-projects - List projects with tracks and keyframes
POST /api/video-projects - Create project
POST /api/video-projects/import - Import an exported project document
GET /api/video-projects/{project_id} - Get project
PATCH /api/video-projects/{project_id} - Update project
DELETE /api/video-projects/{project_id} - Delete project (tracks cascade)
GET /api/video-projects/{project_id}/export - Download project document
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from engui.api.app import get_db_session
from engui.api.errors import bad_request, not_found, validate_enum, validate_positive_number
from engui.core.project_io import (
    DEFAULT_TRACKS,
    ProjectDataError,
    export_filename,
    export_project,
    import_project,
)
from engui.core.resolution import SUPPORTED_ASPECT_RATIOS, SUPPORTED_QUALITY_PRESETS, get_resolution
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import VideoProjectEntity, VideoTrackEntity
from engui.models.types import VideoProjectCreate, VideoProjectOut, VideoProjectUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_fields(aspect_ratio: Any, quality_preset: Any, duration: Any) -> None:
    """Validate optional project fields; None means not supplied."""
    if aspect_ratio is not None:
        validate_enum(aspect_ratio, SUPPORTED_ASPECT_RATIOS, "aspectRatio")
    if quality_preset is not None:
        validate_enum(quality_preset, SUPPORTED_QUALITY_PRESETS, "qualityPreset")
    if duration is not None:
        validate_positive_number(duration, "duration")


@router.get("/video-projects")
def list_projects(
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    projects = repo.list_video_projects(session, user_id)
    return {"success": True, "projects": [VideoProjectOut.model_validate(p) for p in projects]}


@router.post("/video-projects", status_code=201)
def create_project(body: VideoProjectCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Create a project sized from its aspect ratio and quality preset.

    Defaults: empty description, 16:9, 1080p, 30000 ms. With
    withDefaultTracks the project starts with video, music and voiceover
    tracks.
    """
    if not body.title:
        raise bad_request("title is required")
    _check_fields(body.aspect_ratio, body.quality_preset, body.duration)

    resolution = get_resolution(body.aspect_ratio or "16:9", body.quality_preset or "1080p")
    project = VideoProjectEntity(
        id=repo.new_id(),
        title=body.title,
        user_id=body.user_id,
        description=body.description or "",
        aspect_ratio=resolution.aspect_ratio,
        quality_preset=resolution.quality_preset,
        width=resolution.width,
        height=resolution.height,
        duration=int(body.duration or 30000),
    )
    if body.with_default_tracks:
        project.tracks = [
            VideoTrackEntity(
                id=repo.new_id(),
                project_id=project.id,
                type=track_type,
                label=label,
                locked=False,
                order=order,
            )
            for order, (track_type, label) in enumerate(DEFAULT_TRACKS)
        ]

    created = repo.create_video_project(session, project)
    repo.commit(session)
    logger.info(f"Created video project {created.id} ({created.title})")
    return {"success": True, "project": VideoProjectOut.model_validate(created)}


@router.post("/video-projects/import", status_code=201)
def import_project_document(
    body: dict = Body(...),
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    """Re-create an exported project with fresh ids."""
    try:
        project = import_project(body, user_id)
    except ProjectDataError as e:
        raise bad_request(str(e)) from e
    created = repo.create_video_project(session, project)
    repo.commit(session)
    logger.info(f"Imported video project {created.id} with {len(created.tracks)} tracks")
    return {"success": True, "project": VideoProjectOut.model_validate(created)}


@router.get("/video-projects/{project_id}")
def get_project(project_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    project = repo.get_video_project(session, project_id)
    if project is None:
        raise not_found("Video project")
    return {"success": True, "project": VideoProjectOut.model_validate(project)}


@router.patch("/video-projects/{project_id}")
def update_project(
    project_id: str, body: VideoProjectUpdate, session: DbSession = Depends(get_db_session)
) -> dict:
    """Update fields; a new aspect ratio or preset also resizes the canvas."""
    project = repo.get_video_project(session, project_id)
    if project is None:
        raise not_found("Video project")
    _check_fields(body.aspect_ratio, body.quality_preset, body.duration)

    width = height = None
    if body.aspect_ratio is not None or body.quality_preset is not None:
        resolution = get_resolution(
            body.aspect_ratio or project.aspect_ratio,
            body.quality_preset or project.quality_preset,
        )
        width, height = resolution.width, resolution.height

    updated = repo.update_video_project(
        session,
        project_id,
        title=body.title,
        description=body.description,
        aspect_ratio=body.aspect_ratio,
        quality_preset=body.quality_preset,
        width=width,
        height=height,
        duration=int(body.duration) if body.duration is not None else None,
    )
    repo.commit(session)
    return {"success": True, "project": VideoProjectOut.model_validate(updated)}


@router.delete("/video-projects/{project_id}")
def delete_project(project_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    if not repo.delete_video_project(session, project_id):
        raise not_found("Video project")
    repo.commit(session)
    logger.info(f"Deleted video project {project_id}")
    return {"success": True}


@router.get("/video-projects/{project_id}/export")
def export_project_document(project_id: str, session: DbSession = Depends(get_db_session)) -> JSONResponse:
    project = repo.get_video_project(session, project_id)
    if project is None:
        raise not_found("Video project")
    return JSONResponse(
        content=export_project(project),
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(project.title)}"'
        },
    )
