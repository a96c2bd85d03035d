"""Turn a sequencer project into an ffmpeg render."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from engui.core.audio_mixing import calculate_final_volume
from engui.core.files import resolve_public_path
from engui.core.media_fitting import Dimensions, safe_fit_media
from engui.media.ffmpeg import (
    AudioClip,
    VisualClip,
    get_video_info,
    has_audio_stream,
    render_timeline,
)
from engui.models.domain import VideoKeyFrameEntity, VideoProjectEntity, VideoTrackEntity

logger = logging.getLogger(__name__)

VISUAL_TYPES = ("image", "video")
AUDIO_TYPES = ("music", "voiceover")


def resolve_local_media(url: str) -> Path | None:
    """Local file for a site-relative media URL, or None when not on disk."""
    if not url or not url.startswith("/"):
        return None
    try:
        path = resolve_public_path(url.split("?", 1)[0])
    except ValueError:
        logger.warning(f"Rejected media path outside public dir: {url}")
        return None
    return path if path.exists() else None


def compose_timeline(
    project: VideoProjectEntity,
    tracks: list[VideoTrackEntity],
    keyframes: dict[str, list[VideoKeyFrameEntity]],
    output_path: Path,
    resolve: Callable[[str], Path | None] = resolve_local_media,
) -> Path:
    """Render a project's keyframes to a video file.

    Video-track keyframes are fitted onto a black canvas of the project
    size; lower track order draws on top. Music and voiceover keyframes,
    and the soundtrack of video keyframes, are mixed with their track
    volume. Media that cannot be found locally is skipped.

    Args:
        project: Project providing canvas size and duration.
        tracks: Tracks of the project.
        keyframes: Keyframes per track id.
        output_path: Destination; its suffix selects mp4 or webm.
        resolve: Maps a keyframe URL to a local file.

    Returns:
        output_path.
    """
    canvas = Dimensions(project.width, project.height)
    visuals: list[VisualClip] = []
    audio: list[AudioClip] = []

    for track in sorted(tracks, key=lambda t: t.order, reverse=True):
        for keyframe in sorted(keyframes.get(track.id, []), key=lambda k: k.timestamp):
            if keyframe.timestamp >= project.duration:
                continue
            path = resolve(keyframe.url)
            if path is None:
                logger.warning(f"Skipping keyframe {keyframe.id}: media not found ({keyframe.url})")
                continue
            duration = min(keyframe.duration, project.duration - keyframe.timestamp)
            volume = calculate_final_volume(track.volume, keyframe.volume, track.muted)

            if keyframe.data_type in VISUAL_TYPES:
                info = get_video_info(path)
                fit = safe_fit_media(
                    Dimensions(info["width"], info["height"]), canvas, keyframe.fit_mode
                )
                visuals.append(
                    VisualClip(
                        path=path,
                        is_image=keyframe.data_type == "image",
                        start_ms=keyframe.timestamp,
                        duration_ms=duration,
                        width=round(fit.width),
                        height=round(fit.height),
                        x=round(fit.x),
                        y=round(fit.y),
                    )
                )
                if keyframe.data_type == "video" and volume > 0 and has_audio_stream(path):
                    audio.append(AudioClip(path, keyframe.timestamp, duration, volume))
            elif keyframe.data_type in AUDIO_TYPES and volume > 0:
                audio.append(AudioClip(path, keyframe.timestamp, duration, volume))

    return render_timeline(
        project.width, project.height, project.duration, visuals, audio, output_path
    )
