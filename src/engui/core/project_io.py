"""Import and export of sequencer projects as JSON documents.

Document layout (version 1.0):
    {
      "version": "1.0",
      "exportedAt": ISO timestamp,
      "project": {title, description, aspectRatio, qualityPreset, width, height, duration},
      "tracks": [{id, projectId, type, label, locked, order, volume, muted}],
      "keyframes": {track_id: [{id, trackId, timestamp, duration,
                                data: {type, mediaId, url, prompt, fitMode, volume}}]}
    }
"""

from __future__ import annotations

import re
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from engui.models.domain import VideoKeyFrameEntity, VideoProjectEntity, VideoTrackEntity

EXPORT_VERSION = "1.0"
DEFAULT_TRACKS = (("video", "Video Track"), ("music", "Music Track"), ("voiceover", "Voiceover Track"))


class ProjectDataError(ValueError):
    """Raised when an imported document fails validation."""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def keyframe_to_dict(keyframe: VideoKeyFrameEntity) -> dict:
    return {
        "id": keyframe.id,
        "trackId": keyframe.track_id,
        "timestamp": keyframe.timestamp,
        "duration": keyframe.duration,
        "data": {
            "type": keyframe.data_type,
            "mediaId": keyframe.media_id,
            "url": keyframe.url,
            "prompt": keyframe.prompt,
            "fitMode": keyframe.fit_mode,
            "volume": keyframe.volume,
        },
    }


def track_to_dict(track: VideoTrackEntity) -> dict:
    return {
        "id": track.id,
        "projectId": track.project_id,
        "type": track.type,
        "label": track.label,
        "locked": track.locked,
        "order": track.order,
        "volume": track.volume,
        "muted": track.muted,
    }


def project_to_dict(project: VideoProjectEntity) -> dict:
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "aspectRatio": project.aspect_ratio,
        "qualityPreset": project.quality_preset,
        "width": project.width,
        "height": project.height,
        "duration": project.duration,
        "createdAt": _iso(project.created_at),
        "updatedAt": _iso(project.updated_at),
    }


def export_project(project: VideoProjectEntity) -> dict:
    """Build the export document for a project with its tracks and keyframes."""
    return {
        "version": EXPORT_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "project": project_to_dict(project),
        "tracks": [track_to_dict(t) for t in project.tracks],
        "keyframes": {t.id: [keyframe_to_dict(k) for k in t.keyframes] for t in project.tracks},
    }


def validate_project_data(data: Any) -> str | None:
    """Return the first structural problem in an import document, or None."""
    if not isinstance(data, dict):
        return "Invalid data format"
    if not isinstance(data.get("version"), str) or not data["version"]:
        return "Missing or invalid version"
    project = data.get("project")
    if not isinstance(project, dict):
        return "Missing or invalid project data"
    if not project.get("title") or not project.get("aspectRatio") or not project.get("duration"):
        return "Project missing required fields (title, aspectRatio, duration)"
    if not isinstance(data.get("tracks"), list):
        return "Missing or invalid tracks data"
    if not isinstance(data.get("keyframes"), dict):
        return "Missing or invalid keyframes data"
    return None


def _value(raw: dict, key: str, default):
    """raw[key], or the default when it is missing or null."""
    value = raw.get(key)
    return default if value is None else value


def _keyframe_from_dict(raw: dict, track_id: str) -> VideoKeyFrameEntity:
    payload = raw.get("data") if isinstance(raw.get("data"), dict) else raw
    return VideoKeyFrameEntity(
        id=str(uuid.uuid4()),
        track_id=track_id,
        timestamp=int(_value(raw, "timestamp", 0)),
        duration=int(_value(raw, "duration", 0)),
        data_type=payload.get("type") or payload.get("dataType"),
        media_id=payload.get("mediaId", ""),
        url=payload.get("url", ""),
        prompt=payload.get("prompt"),
        fit_mode=payload.get("fitMode") or "contain",
        volume=payload.get("volume"),
    )


def import_project(data: dict, user_id: str | None = None) -> VideoProjectEntity:
    """Turn a validated document into a new project with fresh ids.

    Raises:
        ProjectDataError: If the document fails validation.
    """
    error = validate_project_data(data)
    if error:
        raise ProjectDataError(error)

    raw_project = data["project"]
    project = VideoProjectEntity(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=raw_project["title"],
        description=raw_project.get("description") or "",
        aspect_ratio=raw_project["aspectRatio"],
        quality_preset=raw_project.get("qualityPreset") or "1080p",
        width=int(raw_project.get("width") or 1920),
        height=int(raw_project.get("height") or 1080),
        duration=int(raw_project["duration"]),
    )

    keyframes_by_track = data["keyframes"]
    for index, raw_track in enumerate(data["tracks"]):
        track = VideoTrackEntity(
            id=str(uuid.uuid4()),
            project_id=project.id,
            type=raw_track.get("type", "video"),
            label=raw_track.get("label") or f"{raw_track.get('type', 'video')} track",
            locked=bool(raw_track.get("locked", False)),
            order=int(_value(raw_track, "order", index)),
            volume=float(_value(raw_track, "volume", 100)),
            muted=bool(raw_track.get("muted", False)),
        )
        for raw_keyframe in keyframes_by_track.get(raw_track.get("id"), []):
            track.keyframes.append(_keyframe_from_dict(raw_keyframe, track.id))
        project.tracks.append(track)
    return project


def timeline_from_payload(
    raw_project: dict, raw_tracks: list[dict], raw_keyframes: dict[str, list[dict]]
) -> tuple[VideoProjectEntity, list[VideoTrackEntity], dict[str, list[VideoKeyFrameEntity]]]:
    """Entities for rendering a client-side timeline. Track ids are kept."""
    project = VideoProjectEntity(
        id=raw_project.get("id") or str(uuid.uuid4()),
        title=raw_project.get("title") or "Untitled",
        aspect_ratio=raw_project.get("aspectRatio") or "16:9",
        width=int(raw_project.get("width") or 1920),
        height=int(raw_project.get("height") or 1080),
        duration=int(raw_project.get("duration") or 30000),
    )
    tracks = [
        VideoTrackEntity(
            id=raw["id"],
            project_id=project.id,
            type=raw.get("type", "video"),
            label=raw.get("label") or "",
            order=int(_value(raw, "order", index)),
            volume=float(_value(raw, "volume", 100)),
            muted=bool(raw.get("muted", False)),
        )
        for index, raw in enumerate(raw_tracks)
        if raw.get("id")
    ]
    keyframes = {
        track.id: [_keyframe_from_dict(raw, track.id) for raw in raw_keyframes.get(track.id, [])]
        for track in tracks
    }
    return project, tracks, keyframes


def create_empty_project(title: str | None = None, user_id: str | None = None) -> VideoProjectEntity:
    """New 16:9 1080p, 30 s project with video, music and voiceover tracks."""
    project = VideoProjectEntity(
        id=str(uuid.uuid4()),
        user_id=user_id,
        title=title or f"Project {datetime.now().strftime('%Y-%m-%d')}",
    )
    for order, (track_type, label) in enumerate(DEFAULT_TRACKS):
        project.tracks.append(
            VideoTrackEntity(
                id=str(uuid.uuid4()),
                project_id=project.id,
                type=track_type,
                label=label,
                locked=False,
                order=order,
            )
        )
    return project


def export_filename(title: str, timestamp_ms: int | None = None) -> str:
    """Download filename: title with non-alphanumerics as '_', then a ms timestamp."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', title)}_{timestamp_ms}.json"
