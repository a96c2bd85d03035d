"""Volume math for timeline audio.

Volumes are percentages: 100 is unity gain, the allowed range is 0-200.
"""

from __future__ import annotations

MIN_VOLUME = 0.0
MAX_VOLUME = 200.0
DEFAULT_VOLUME = 100.0


def calculate_final_volume(
    track_volume: float, keyframe_volume: float | None = None, muted: bool = False
) -> float:
    """Combine track and keyframe volume into a final percentage."""
    if muted:
        return 0.0
    effective = DEFAULT_VOLUME if keyframe_volume is None else keyframe_volume
    return (track_volume / 100) * (effective / 100) * 100


def volume_to_gain(volume: float) -> float:
    return volume / 100


def gain_to_volume(gain: float) -> float:
    return gain * 100


def clamp_volume(volume: float) -> float:
    return max(MIN_VOLUME, min(MAX_VOLUME, volume))


def is_valid_volume(volume) -> bool:
    return (
        isinstance(volume, (int, float))
        and not isinstance(volume, bool)
        and MIN_VOLUME <= volume <= MAX_VOLUME
    )


def get_effective_keyframe_volume(keyframe_volume: float | None) -> float:
    return DEFAULT_VOLUME if keyframe_volume is None else keyframe_volume
