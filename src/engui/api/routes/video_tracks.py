"""Video track API endpoints.

POST /api/video-tracks - Create track
PATCH /api/video-tracks/{track_id} - Update track
DELETE /api/video-tracks/{track_id} - Delete track (keyframes cascade)
POST /api/video-tracks/create-muted - Write a copy of a video without audio
POST /api/video-tracks/detect-audio - Check a video for an audio stream
POST /api/video-tracks/extract-audio - Extract a video's audio as MP3
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends

from engui.api.app import get_db_session
from engui.api.errors import ApiError, bad_request, not_found, validate_enum, validate_range
from engui.config import get_public_dir
from engui.core.files import resolve_public_path
from engui.core.validation import TRACK_TYPES
from engui.db import repo
from engui.db.repo import DbSession
from engui.media.ffmpeg import FFmpegError, create_muted_video, extract_audio, has_audio_stream
from engui.models.domain import VideoTrackEntity
from engui.models.types import MediaPathRequest, VideoTrackCreate, VideoTrackOut, VideoTrackUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/video-tracks", status_code=201)
def create_track(body: VideoTrackCreate, session: DbSession = Depends(get_db_session)) -> dict:
    if not body.project_id:
        raise bad_request("projectId is required")
    if not body.type:
        raise bad_request("type is required")
    validate_enum(body.type, TRACK_TYPES, "type")
    if repo.get_video_project(session, body.project_id) is None:
        raise not_found("Video project")

    track = repo.create_video_track(
        session,
        VideoTrackEntity(
            id=repo.new_id(),
            project_id=body.project_id,
            type=body.type,
            label=body.label or f"{body.type} track",
            locked=body.locked,
            order=body.order,
        ),
    )
    repo.commit(session)
    logger.info(f"Created {track.type} track {track.id} in project {track.project_id}")
    return {"success": True, "track": VideoTrackOut.model_validate(track)}


@router.patch("/video-tracks/{track_id}")
def update_track(
    track_id: str, body: VideoTrackUpdate, session: DbSession = Depends(get_db_session)
) -> dict:
    """Update label, lock, order, volume (0-200) or mute state."""
    if body.volume is not None:
        validate_range(body.volume, 0, 200, "volume")
    track = repo.update_video_track(
        session,
        track_id,
        label=body.label,
        locked=body.locked,
        order=body.order,
        volume=float(body.volume) if body.volume is not None else None,
        muted=body.muted,
    )
    if track is None:
        raise not_found("Video track")
    repo.commit(session)
    return {"success": True, "track": VideoTrackOut.model_validate(track)}


@router.delete("/video-tracks/{track_id}")
def delete_track(track_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    if not repo.delete_video_track(session, track_id):
        raise not_found("Video track")
    repo.commit(session)
    logger.info(f"Deleted video track {track_id}")
    return {"success": True}


# ============================================================================
# Audio helpers for video keyframes
# ============================================================================


def _source_video(body: MediaPathRequest) -> Path:
    """Resolve the request's web path to an existing file under the public dir."""
    if not body.video_path:
        raise bad_request("Video path is required")
    try:
        path = resolve_public_path(body.video_path)
    except ValueError as e:
        raise bad_request("Invalid video path") from e
    if not path.is_file():
        raise ApiError(404, "Video file not found")
    return path


def _web_path(path: Path) -> str:
    return "/" + path.relative_to(get_public_dir().resolve()).as_posix()


@router.post("/video-tracks/create-muted")
def create_muted(body: MediaPathRequest) -> dict:
    """Write {stem}_muted{suffix} next to the source video."""
    source = _source_video(body)
    target = source.with_name(f"{source.stem}_muted{source.suffix}")
    try:
        create_muted_video(source, target)
    except FFmpegError as e:
        logger.error(f"Muting {source} failed: {e}")
        raise ApiError(500, "Failed to create muted video") from e
    return {"success": True, "mutedVideoPath": _web_path(target)}


@router.post("/video-tracks/detect-audio")
def detect_audio(body: MediaPathRequest) -> dict:
    source = _source_video(body)
    return {"success": True, "hasAudio": has_audio_stream(source)}


@router.post("/video-tracks/extract-audio")
def extract_audio_track(body: MediaPathRequest) -> dict:
    """Write {stem}_audio.mp3 next to the source video."""
    source = _source_video(body)
    if not has_audio_stream(source):
        raise bad_request("Video has no audio stream")
    target = source.with_name(f"{source.stem}_audio.mp3")
    try:
        extract_audio(source, target)
    except FFmpegError as e:
        logger.error(f"Audio extraction from {source} failed: {e}")
        raise ApiError(500, "Failed to extract audio") from e
    return {"success": True, "audioPath": _web_path(target)}
