"""Pick a free audio track for a new clip."""

from __future__ import annotations

from engui.models.domain import VideoKeyFrameEntity, VideoTrackEntity

AUDIO_TRACK_PRIORITY = ("music", "voiceover")


def overlaps(start1: int, end1: int, start2: int, end2: int) -> bool:
    return start1 < end2 and start2 < end1


def has_overlap(
    keyframes: list[VideoKeyFrameEntity], start: int, duration: int
) -> bool:
    end = start + duration
    return any(overlaps(start, end, k.timestamp, k.end) for k in keyframes)


def find_available_audio_track(
    tracks: list[VideoTrackEntity],
    keyframes: list[VideoKeyFrameEntity],
    start: int,
    duration: int,
) -> VideoTrackEntity | None:
    """First music track, then voiceover track, free over [start, start+duration).

    Returns:
        The chosen track, or None when every audio track is occupied.
    """
    for track_type in AUDIO_TRACK_PRIORITY:
        for track in sorted((t for t in tracks if t.type == track_type), key=lambda t: t.order):
            track_keyframes = [k for k in keyframes if k.track_id == track.id]
            if not has_overlap(track_keyframes, start, duration):
                return track
    return None
