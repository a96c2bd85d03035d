"""File helpers: type detection, size formatting, safe local paths."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from engui.config import get_public_dir

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "json": "application/json",
}

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def get_file_type(content_type: str | None) -> str:
    """Classify by MIME type: image, video, audio or unknown."""
    if not content_type:
        return "unknown"
    for prefix in ("image", "video", "audio"):
        if content_type.startswith(f"{prefix}/"):
            return prefix
    return "unknown"


def format_file_size(size: int) -> str:
    """Human-readable size with 1024 steps, e.g. 1536 -> "1.5 KB"."""
    if size <= 0:
        return "0 Bytes"
    unit = 0
    value = float(size)
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"


def get_mime_type(file_name: str) -> str:
    ext = PurePosixPath(file_name).suffix.lower().lstrip(".")
    return MIME_TYPES.get(ext, "application/octet-stream")


def resolve_under(base: Path, relative: str) -> Path:
    """Join relative onto base, refusing paths that escape base.

    Raises:
        ValueError: If the resolved path is outside base.
    """
    base = base.resolve()
    candidate = (base / relative.lstrip("/\\")).resolve()
    if candidate != base and base not in candidate.parents:
        raise ValueError(f"Path escapes {base}: {relative}")
    return candidate


def resolve_public_path(web_path: str) -> Path:
    """Map a browser path like /results/x.mp4 to a file under the public dir."""
    return resolve_under(get_public_dir(), web_path)


def save_public_file(data: bytes, file_name: str, folder: str = "results") -> tuple[Path, str]:
    """Write bytes under {public}/{folder}.

    Returns:
        Tuple of (absolute path, web path "/{folder}/{file_name}").
    """
    target = resolve_under(get_public_dir(), f"{folder}/{file_name}")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target, f"/{folder}/{file_name}"
