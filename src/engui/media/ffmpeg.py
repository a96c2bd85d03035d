"""FFmpeg and ffprobe wrappers for thumbnails, audio handling and rendering.

Every call runs the CLI through subprocess with a timeout; a nonzero exit
becomes FFmpegError carrying ffmpeg's stderr.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from engui.core.audio_mixing import volume_to_gain

logger = logging.getLogger(__name__)

SUPPORTED_VIDEO_EXTENSIONS = (".mp4", ".avi", ".mov", ".mkv", ".webm", ".flv")
THUMBNAIL_TIMEOUT = 30
PROBE_TIMEOUT = 30
EDIT_TIMEOUT = 300
RENDER_TIMEOUT = 1800
DEFAULT_FPS = 30


class FFmpegError(RuntimeError):
    """ffmpeg or ffprobe failed."""


@dataclass
class AudioTrackInput:
    """One audio source to mix over a video."""

    path: Path
    volume: float = 100.0
    delay_ms: int = 0


def _run(args: list[str], timeout: int, what: str) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as e:
        raise FFmpegError(f"{args[0]} not found; install ffmpeg to {what}") from e
    except subprocess.TimeoutExpired as e:
        raise FFmpegError(f"Failed to {what}: timeout after {timeout}s") from e
    if result.returncode != 0:
        raise FFmpegError(f"Failed to {what}: {result.stderr.strip()}")
    return result


def _require(path: Path, label: str = "Input file") -> None:
    if not path.exists():
        raise FileNotFoundError(f"{label} not found: {path}")


def check_ffmpeg_available() -> bool:
    """Check if ffmpeg and ffprobe are available.

    Returns:
        True if both ffmpeg and ffprobe are available.
    """
    try:
        subprocess.run(["ffmpeg", "-version"], capture_output=True, timeout=5)
        subprocess.run(["ffprobe", "-version"], capture_output=True, timeout=5)
        return True
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def is_supported_video_format(file_name: str) -> bool:
    return Path(file_name).suffix.lower() in SUPPORTED_VIDEO_EXTENSIONS


def parse_fps(fps_str: str) -> float:
    """Parse fps from ffprobe format (e.g. '30/1' or '29.97')."""
    if "/" in fps_str:
        num, den = fps_str.split("/")
        return int(num) / int(den) if int(den) != 0 else float(DEFAULT_FPS)
    return float(fps_str) if fps_str else float(DEFAULT_FPS)


def get_video_info(video_path: Path) -> dict:
    """Extract video information using ffprobe.

    Args:
        video_path: Path to a video (or image) file.

    Returns:
        Dict with duration_ms, fps, width, height, has_audio.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        FFmpegError: If ffprobe fails.
    """
    _require(video_path, "Video file")
    result = _run(
        [
            "ffprobe",
            "-v", "error",
            "-show_entries", "stream=codec_type,width,height,r_frame_rate:format=duration",
            "-of", "json",
            str(video_path),
        ],
        PROBE_TIMEOUT,
        "probe video",
    )
    data = json.loads(result.stdout or "{}")
    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), {})
    duration = data.get("format", {}).get("duration") or "0"
    return {
        "duration_ms": int(float(duration) * 1000),
        "fps": parse_fps(video.get("r_frame_rate", f"{DEFAULT_FPS}/1")),
        "width": int(video.get("width", 0)),
        "height": int(video.get("height", 0)),
        "has_audio": any(s.get("codec_type") == "audio" for s in streams),
    }


def validate_video(video_path: Path) -> bool:
    """True when ffmpeg can decode the whole file without errors."""
    if not video_path.exists():
        return False
    try:
        _run(
            ["ffmpeg", "-v", "error", "-i", str(video_path), "-f", "null", "-"],
            EDIT_TIMEOUT,
            "validate video",
        )
    except FFmpegError as e:
        logger.warning(f"Invalid video file {video_path}: {e}")
        return False
    return True


def quality_to_qscale(quality: int) -> int:
    """Map 1..100 (higher is better) onto ffmpeg's -q:v 2..31 (lower is better)."""
    quality = max(1, min(100, quality))
    return max(2, min(31, round(31 - quality / 100 * 29)))


def extract_thumbnail(
    input_path: Path,
    output_path: Path,
    width: int = 320,
    height: int = 240,
    quality: int = 80,
) -> Path:
    """Grab the frame at one second as a scaled JPEG.

    Raises:
        FileNotFoundError: If the input doesn't exist.
        FFmpegError: If ffmpeg fails or writes nothing.
    """
    _require(input_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _run(
        [
            "ffmpeg",
            "-y",
            "-i", str(input_path),
            "-ss", "00:00:01",
            "-vframes", "1",
            "-vf", f"scale={width}:{height}",
            "-q:v", str(quality_to_qscale(quality)),
            str(output_path),
        ],
        THUMBNAIL_TIMEOUT,
        "extract thumbnail",
    )
    if not output_path.exists():
        raise FFmpegError("Thumbnail file was not created")
    return output_path


def create_muted_video(input_path: Path, output_path: Path) -> Path:
    """Copy the video stream without audio."""
    _require(input_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _run(
        ["ffmpeg", "-y", "-i", str(input_path), "-an", "-c:v", "copy", str(output_path)],
        EDIT_TIMEOUT,
        "create muted video",
    )
    return output_path


def extract_audio(input_path: Path, output_path: Path) -> Path:
    """Extract the audio stream as MP3."""
    _require(input_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    _run(
        [
            "ffmpeg",
            "-y",
            "-i", str(input_path),
            "-vn",
            "-acodec", "libmp3lame",
            "-q:a", "2",
            str(output_path),
        ],
        EDIT_TIMEOUT,
        "extract audio",
    )
    return output_path


def has_audio_stream(input_path: Path) -> bool:
    """True when ffprobe finds an audio stream. Any failure counts as no audio."""
    try:
        result = subprocess.run(
            [
                "ffprobe",
                "-v", "error",
                "-select_streams", "a:0",
                "-show_entries", "stream=codec_type",
                "-of", "csv=p=0",
                str(input_path),
            ],
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.warning(f"Audio probe failed for {input_path}: {e}")
        return False
    return result.returncode == 0 and "audio" in result.stdout


def _audio_chain(index: int, track: AudioTrackInput, label: str) -> str:
    filters = []
    if track.delay_ms > 0:
        filters.append(f"adelay={track.delay_ms}|{track.delay_ms}")
    filters.append(f"volume={volume_to_gain(track.volume):.3f}")
    return f"[{index}:a]{','.join(filters)}[{label}]"


def merge_audio_tracks(
    video_path: Path,
    audio_tracks: list[AudioTrackInput],
    output_path: Path,
) -> Path:
    """Replace a video's audio with one or more mixed tracks.

    Args:
        video_path: Source video; its video stream is copied.
        audio_tracks: Tracks to mix, each with volume (0-200) and delay.
        output_path: Output file.

    Raises:
        ValueError: If no audio tracks are given.
        FFmpegError: If ffmpeg fails.
    """
    if not audio_tracks:
        raise ValueError("At least one audio track is required")
    _require(video_path, "Video file")
    for track in audio_tracks:
        _require(track.path, "Audio file")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    args = ["ffmpeg", "-y", "-i", str(video_path)]
    for track in audio_tracks:
        args += ["-i", str(track.path)]

    single = audio_tracks[0]
    if len(audio_tracks) == 1 and single.volume == 100 and single.delay_ms == 0:
        args += ["-map", "0:v", "-map", "1:a", "-c:v", "copy", "-shortest"]
    elif len(audio_tracks) == 1:
        args += [
            "-filter_complex", _audio_chain(1, single, "aout"),
            "-map", "0:v", "-map", "[aout]", "-c:v", "copy", "-shortest",
        ]
    else:
        chains = [_audio_chain(i + 1, t, f"a{i}") for i, t in enumerate(audio_tracks)]
        inputs = "".join(f"[a{i}]" for i in range(len(audio_tracks)))
        mix = f"{inputs}amix=inputs={len(audio_tracks)}:duration=longest:normalize=0[aout]"
        args += [
            "-filter_complex", ";".join(chains + [mix]),
            "-map", "0:v", "-map", "[aout]", "-c:v", "copy",
        ]

    args.append(str(output_path))
    _run(args, EDIT_TIMEOUT, "merge audio tracks")
    logger.info(f"Merged {len(audio_tracks)} audio track(s) into {output_path}")
    return output_path


# =============================================================================
# Timeline rendering
# =============================================================================


@dataclass
class VisualClip:
    """An image or video placed on the canvas for a time range."""

    path: Path
    is_image: bool
    start_ms: int
    duration_ms: int
    width: int
    height: int
    x: int
    y: int


@dataclass
class AudioClip:
    """An audio source (or a video's soundtrack) placed on the timeline."""

    path: Path
    start_ms: int
    duration_ms: int
    volume: float = 100.0


CODECS = {
    "mp4": ("libx264", "aac"),
    "webm": ("libvpx-vp9", "libopus"),
}


def render_timeline(
    canvas_width: int,
    canvas_height: int,
    duration_ms: int,
    visuals: list[VisualClip],
    audio: list[AudioClip],
    output_path: Path,
    fps: int = DEFAULT_FPS,
) -> Path:
    """Render clips over a black canvas into a single file.

    Visual clips are stacked in list order; later clips draw on top.
    Audio clips are delayed to their start and mixed.

    Raises:
        ValueError: If the output format is not mp4 or webm.
        FFmpegError: If ffmpeg fails.
    """
    fmt = output_path.suffix.lstrip(".").lower()
    if fmt not in CODECS:
        raise ValueError(f"Unsupported export format: {fmt}")
    video_codec, audio_codec = CODECS[fmt]
    output_path.parent.mkdir(parents=True, exist_ok=True)
    total = duration_ms / 1000

    args = [
        "ffmpeg", "-y",
        "-f", "lavfi",
        "-i", f"color=c=black:s={canvas_width}x{canvas_height}:d={total}:r={fps}",
    ]
    filters: list[str] = []
    current = "0:v"
    index = 1

    for n, clip in enumerate(visuals):
        start, length = clip.start_ms / 1000, clip.duration_ms / 1000
        if clip.is_image:
            args += ["-loop", "1", "-t", f"{length}", "-i", str(clip.path)]
        else:
            args += ["-i", str(clip.path)]
        filters.append(
            f"[{index}:v]trim=duration={length},setpts=PTS-STARTPTS+{start}/TB,"
            f"scale={clip.width}:{clip.height}[v{n}]"
        )
        filters.append(
            f"[{current}][v{n}]overlay={clip.x}:{clip.y}:eof_action=pass:"
            f"enable='between(t,{start},{start + length})'[base{n}]"
        )
        current = f"base{n}"
        index += 1

    mixed: list[str] = []
    for n, clip in enumerate(audio):
        args += ["-i", str(clip.path)]
        delay = clip.start_ms
        filters.append(
            f"[{index}:a]atrim=duration={clip.duration_ms / 1000},asetpts=PTS-STARTPTS,"
            f"adelay={delay}|{delay},volume={volume_to_gain(clip.volume):.3f}[a{n}]"
        )
        mixed.append(f"[a{n}]")
        index += 1
    if mixed:
        filters.append(
            f"{''.join(mixed)}amix=inputs={len(mixed)}:duration=longest:normalize=0[aout]"
        )

    video_out = f"[{current}]" if visuals else "0:v"
    if filters:
        args += ["-filter_complex", ";".join(filters)]
    args += ["-map", video_out]
    if mixed:
        args += ["-map", "[aout]", "-c:a", audio_codec]
    else:
        args.append("-an")
    args += ["-c:v", video_codec, "-pix_fmt", "yuv420p", "-r", str(fps), "-t", f"{total}"]
    if fmt == "mp4":
        args += ["-movflags", "+faststart"]
    args.append(str(output_path))

    logger.info(
        f"Rendering {len(visuals)} visual and {len(audio)} audio clips "
        f"({canvas_width}x{canvas_height}, {total}s) to {output_path}"
    )
    _run(args, RENDER_TIMEOUT, "render timeline")
    return output_path
