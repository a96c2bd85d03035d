"""Output resolution presets for sequencer projects."""

from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_ASPECT_RATIOS = ["16:9", "9:16", "1:1"]
SUPPORTED_QUALITY_PRESETS = ["480p", "720p", "1080p"]

RESOLUTION_TABLE: dict[str, dict[str, tuple[int, int]]] = {
    "16:9": {"480p": (854, 480), "720p": (1280, 720), "1080p": (1920, 1080)},
    "9:16": {"480p": (480, 854), "720p": (720, 1280), "1080p": (1080, 1920)},
    "1:1": {"480p": (480, 480), "720p": (720, 720), "1080p": (1080, 1080)},
}


@dataclass(frozen=True)
class ResolutionConfig:
    width: int
    height: int
    aspect_ratio: str
    quality_preset: str


def is_valid_aspect_ratio(value: str) -> bool:
    return value in RESOLUTION_TABLE


def is_valid_quality_preset(value: str) -> bool:
    return value in SUPPORTED_QUALITY_PRESETS


def get_resolution(aspect_ratio: str, quality_preset: str = "1080p") -> ResolutionConfig:
    """Look up output dimensions.

    Raises:
        ValueError: If either the aspect ratio or the preset is unknown.
    """
    if not is_valid_aspect_ratio(aspect_ratio):
        raise ValueError(f"Unsupported aspect ratio: {aspect_ratio}")
    if not is_valid_quality_preset(quality_preset):
        raise ValueError(f"Unsupported quality preset: {quality_preset}")
    width, height = RESOLUTION_TABLE[aspect_ratio][quality_preset]
    return ResolutionConfig(width, height, aspect_ratio, quality_preset)
