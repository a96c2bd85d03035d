"""Video keyframe API endpoints.

POST /api/video-keyframes - Create keyframe on a track
POST /api/video-keyframes/auto-place - Put audio on the first free audio track
PATCH /api/video-keyframes/{keyframe_id} - Update keyframe
DELETE /api/video-keyframes/{keyframe_id} - Delete keyframe
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic.alias_generators import to_camel

from engui.api.app import get_db_session
from engui.api.errors import (
    ApiError,
    ErrorCode,
    bad_request,
    not_found,
    validate_enum,
    validate_non_negative_number,
    validate_positive_number,
    validate_range,
)
from engui.core.media_fitting import FIT_MODES
from engui.core.track_selection import find_available_audio_track
from engui.core.validation import KEYFRAME_TYPES
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import VideoKeyFrameEntity
from engui.models.types import (
    AutoPlaceRequest,
    VideoKeyFrameCreate,
    VideoKeyFrameOut,
    VideoKeyFrameUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

AUDIO_DATA_TYPES = ("music", "voiceover")


def _require(body: Any, fields: tuple[str, ...]) -> None:
    """400 "{field} is required" for the first missing attribute, camelCase in the message."""
    for name in fields:
        value = getattr(body, name)
        if value is None or value == "":
            raise bad_request(f"{to_camel(name)} is required")


def _check_timing(timestamp: Any, duration: Any) -> None:
    if timestamp is not None:
        try:
            validate_non_negative_number(timestamp, "timestamp")
        except ApiError as e:
            raise bad_request("timestamp must be non-negative") from e
    if duration is not None:
        try:
            validate_positive_number(duration, "duration")
        except ApiError as e:
            raise bad_request("duration must be positive") from e


def _check_optional(fit_mode: str | None, volume: Any) -> None:
    if fit_mode is not None:
        validate_enum(fit_mode, FIT_MODES, "fitMode")
    if volume is not None:
        validate_range(volume, 0, 200, "volume")


@router.post("/video-keyframes", status_code=201)
def create_keyframe(body: VideoKeyFrameCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Create a keyframe; every field but prompt, fitMode and volume is required."""
    _require(body, ("track_id", "timestamp", "duration", "data_type", "media_id", "url"))
    validate_enum(body.data_type, KEYFRAME_TYPES, "dataType")
    _check_timing(body.timestamp, body.duration)
    _check_optional(body.fit_mode, body.volume)
    if repo.get_video_track(session, body.track_id) is None:
        raise not_found("Video track")

    keyframe = repo.create_keyframe(
        session,
        VideoKeyFrameEntity(
            id=repo.new_id(),
            track_id=body.track_id,
            timestamp=int(body.timestamp),
            duration=int(body.duration),
            data_type=body.data_type,
            media_id=body.media_id,
            url=body.url,
            prompt=body.prompt or None,
            fit_mode=body.fit_mode or "contain",
            volume=float(body.volume) if body.volume is not None else None,
        ),
    )
    repo.commit(session)
    logger.info(f"Created {keyframe.data_type} keyframe {keyframe.id} on track {keyframe.track_id}")
    return {"success": True, "keyframe": VideoKeyFrameOut.model_validate(keyframe)}


@router.post("/video-keyframes/auto-place", status_code=201)
def auto_place_keyframe(body: AutoPlaceRequest, session: DbSession = Depends(get_db_session)) -> dict:
    """Place an audio clip on the first music, then voiceover, track free at its time span.

    Raises:
        ApiError: 404 when the project is missing, 409 when every audio
            track already has media in that span.
    """
    _require(body, ("project_id", "timestamp", "duration", "data_type", "media_id", "url"))
    validate_enum(body.data_type, AUDIO_DATA_TYPES, "dataType")
    _check_timing(body.timestamp, body.duration)
    if repo.get_video_project(session, body.project_id) is None:
        raise not_found("Video project")

    tracks = repo.list_tracks_for_project(session, body.project_id)
    keyframes = [k for t in tracks for k in t.keyframes]
    start, duration = int(body.timestamp), int(body.duration)
    track = find_available_audio_track(tracks, keyframes, start, duration)
    if track is None:
        raise ApiError(
            409, "No audio track is free at this position", ErrorCode.CONFLICT, {"timestamp": start}
        )

    keyframe = repo.create_keyframe(
        session,
        VideoKeyFrameEntity(
            id=repo.new_id(),
            track_id=track.id,
            timestamp=start,
            duration=duration,
            data_type=body.data_type,
            media_id=body.media_id,
            url=body.url,
            prompt=body.prompt or None,
        ),
    )
    repo.commit(session)
    return {
        "success": True,
        "keyframe": VideoKeyFrameOut.model_validate(keyframe),
        "trackId": track.id,
    }


@router.patch("/video-keyframes/{keyframe_id}")
def update_keyframe(
    keyframe_id: str, body: VideoKeyFrameUpdate, session: DbSession = Depends(get_db_session)
) -> dict:
    if body.data_type is not None:
        validate_enum(body.data_type, KEYFRAME_TYPES, "dataType")
    _check_timing(body.timestamp, body.duration)
    _check_optional(body.fit_mode, body.volume)

    keyframe = repo.update_keyframe(
        session,
        keyframe_id,
        timestamp=int(body.timestamp) if body.timestamp is not None else None,
        duration=int(body.duration) if body.duration is not None else None,
        data_type=body.data_type,
        media_id=body.media_id,
        url=body.url,
        prompt=body.prompt,
        fit_mode=body.fit_mode,
        volume=float(body.volume) if body.volume is not None else None,
    )
    if keyframe is None:
        raise not_found("Video keyframe")
    repo.commit(session)
    return {"success": True, "keyframe": VideoKeyFrameOut.model_validate(keyframe)}


@router.delete("/video-keyframes/{keyframe_id}")
def delete_keyframe(keyframe_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    if not repo.delete_keyframe(session, keyframe_id):
        raise not_found("Video keyframe")
    repo.commit(session)
    return {"success": True}
