"""Fit media into a canvas (contain / cover / fill).

Results are memoized in an LRU cache of FIT_CACHE_SIZE entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

FIT_MODES = ("contain", "cover", "fill")
FIT_CACHE_SIZE = 100


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float


@dataclass(frozen=True)
class FitResult:
    width: float
    height: float
    x: float
    y: float
    scale: float

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "x": self.x,
            "y": self.y,
            "scale": self.scale,
        }


def _check(dimensions: Dimensions | None, label: str) -> None:
    if dimensions is None or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool)
        for v in (dimensions.width, dimensions.height)
    ):
        raise ValueError(f"Invalid {label} dimensions: width and height must be numbers")
    if dimensions.width <= 0 or dimensions.height <= 0:
        raise ValueError(f"Invalid {label} dimensions: width and height must be positive")


def fit_media(media: Dimensions, canvas: Dimensions, mode: str = "contain") -> FitResult:
    """Compute size and centered offset of media drawn on a canvas.

    Args:
        media: Intrinsic media size.
        canvas: Canvas size.
        mode: contain (letterbox), cover (crop) or fill (stretch).

    Raises:
        ValueError: For non-positive dimensions or an unknown mode.
    """
    _check(media, "media")
    _check(canvas, "canvas")
    if mode not in FIT_MODES:
        raise ValueError(f"Unknown fit mode: {mode}")

    return _fit(media.width, media.height, canvas.width, canvas.height, mode)


@lru_cache(maxsize=FIT_CACHE_SIZE)
def _fit(
    media_width: float, media_height: float, canvas_width: float, canvas_height: float, mode: str
) -> FitResult:
    if mode == "fill":
        return FitResult(canvas_width, canvas_height, 0, 0, 1)

    media_aspect = media_width / media_height
    wider = media_aspect > canvas_width / canvas_height
    if (mode == "contain") == wider:
        # Width is the limiting side
        height = canvas_width / media_aspect
        return FitResult(
            canvas_width, height, 0, (canvas_height - height) / 2, canvas_width / media_width
        )
    width = canvas_height * media_aspect
    return FitResult(
        width, canvas_height, (canvas_width - width) / 2, 0, canvas_height / media_height
    )


def safe_fit_media(
    media: Dimensions | None, canvas: Dimensions, mode: str = "contain"
) -> FitResult:
    """fit_media that falls back to the full canvas at scale 1."""
    try:
        return fit_media(media, canvas, mode)
    except ValueError as e:
        logger.warning(f"Media fitting failed, using full canvas: {e}")
        return FitResult(canvas.width, canvas.height, 0, 0, 1)


def clear_fit_cache() -> None:
    _fit.cache_clear()


def fit_cache_size() -> int:
    return _fit.cache_info().currsize


def needs_upscaling(media: Dimensions, canvas: Dimensions) -> bool:
    return media.width < canvas.width or media.height < canvas.height


def needs_downscaling(media: Dimensions, canvas: Dimensions) -> bool:
    return media.width > canvas.width or media.height > canvas.height


def get_aspect_ratio(dimensions: Dimensions) -> float:
    return dimensions.width / dimensions.height


def aspect_ratios_equal(ratio1: float, ratio2: float, tolerance: float = 0.01) -> bool:
    return abs(ratio1 - ratio2) < tolerance
