"""Input validation for LoRA uploads and sequencer media."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlparse

# ============================================================================
# LoRA files
# ============================================================================

LORA_EXTENSIONS = (".safetensors", ".ckpt")
LORA_MAX_SIZE = 5 * 1024 * 1024 * 1024  # 5GB

INVALID_EXTENSION_MESSAGE = "Invalid file extension. Please upload a .safetensors or .ckpt file"
FILE_TOO_LARGE_MESSAGE = "File size exceeds 5GB limit"
SERVER_VALIDATION_PREFIX = "Server validation failed: "


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"valid": self.valid}
        if self.error is not None:
            result["error"] = self.error
        return result


OK = ValidationResult(True)


def _fail(message: str) -> ValidationResult:
    return ValidationResult(False, message)


def lora_extension(file_name: str) -> str:
    return PurePosixPath(file_name).suffix.lower()


def is_lora_file(file_name: str) -> bool:
    return lora_extension(file_name) in LORA_EXTENSIONS


def validate_lora_file(file_name: str, size: int) -> ValidationResult:
    if not is_lora_file(file_name):
        return _fail(INVALID_EXTENSION_MESSAGE)
    if size > LORA_MAX_SIZE:
        return _fail(FILE_TOO_LARGE_MESSAGE)
    return OK


def validate_lora_file_server(file_name: str, size: int) -> ValidationResult:
    """Same checks as validate_lora_file, with the server-side prefix."""
    result = validate_lora_file(file_name, size)
    if result.valid:
        return result
    return _fail(SERVER_VALIDATION_PREFIX + result.error)


# ============================================================================
# Sequencer media
# ============================================================================

SUPPORTED_VIDEO_FORMATS = ["video/mp4", "video/webm", "video/ogg", "video/quicktime"]
SUPPORTED_IMAGE_FORMATS = ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"]
SUPPORTED_AUDIO_FORMATS = ["audio/mpeg", "audio/mp3", "audio/wav", "audio/ogg", "audio/webm"]

KEYFRAME_TYPES = ["image", "video", "music", "voiceover"]
TRACK_TYPES = ["video", "music", "voiceover"]
PLAYER_ASPECT_RATIOS = ["16:9", "9:16", "1:1"]


def get_media_type(content_type: str) -> str:
    """Map a MIME type to video / image / audio / unknown."""
    for prefix in ("video", "image", "audio"):
        if content_type.startswith(f"{prefix}/"):
            return prefix
    return "unknown"


def validate_media_format(content_type: str) -> ValidationResult:
    if not content_type:
        return _fail("Media type is not specified")
    supported = {
        "video": SUPPORTED_VIDEO_FORMATS,
        "image": SUPPORTED_IMAGE_FORMATS,
        "audio": SUPPORTED_AUDIO_FORMATS,
    }
    media_type = get_media_type(content_type)
    if media_type == "unknown":
        return _fail(f"Unsupported media type: {content_type}")
    formats = supported[media_type]
    if content_type not in formats:
        return _fail(
            f"Unsupported {media_type} format: {content_type}. "
            f"Supported formats: {', '.join(formats)}"
        )
    return OK


def validate_media_url(url: str | None) -> ValidationResult:
    """Accept absolute URLs and site-relative paths (/ or ./)."""
    if not url or not url.strip():
        return _fail("Media URL is required")
    parsed = urlparse(url)
    if parsed.scheme and (parsed.netloc or parsed.scheme in ("data", "blob")):
        return OK
    if url.startswith("/") or url.startswith("./"):
        return OK
    return _fail("Invalid media URL format")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_keyframe_data(
    track_id: str | None,
    timestamp,
    duration,
    data_type: str | None,
    media_id: str | None,
    url: str | None,
) -> ValidationResult:
    """Check a keyframe before it is stored."""
    if not track_id or not track_id.strip():
        return _fail("Track ID is required")
    if not _is_number(timestamp) or timestamp < 0:
        return _fail("Timestamp must be a non-negative number")
    if not _is_number(duration) or duration <= 0:
        return _fail("Duration must be a positive number")
    if data_type not in KEYFRAME_TYPES:
        return _fail(f"Invalid media type. Must be one of: {', '.join(KEYFRAME_TYPES)}")
    if not media_id or not media_id.strip():
        return _fail("Media ID is required")
    return validate_media_url(url)


def validate_player_init(duration, aspect_ratio: str | None) -> ValidationResult:
    if not _is_number(duration) or duration <= 0:
        return _fail("Project must have a valid duration")
    if aspect_ratio not in PLAYER_ASPECT_RATIOS:
        return _fail(f"Invalid aspect ratio. Must be one of: {', '.join(PLAYER_ASPECT_RATIOS)}")
    return OK
