"""Background processing for submitted generation jobs.

Architecture:
- GenerationContext: everything needed to follow one RunPod job
- GenerationProcessor: waits for the job, saves its output locally
- GenerationOrchestrator: builds contexts from the database, delegates to
  GenerationProcessor and records success or failure on the Job row

Routes schedule run_generation_job with FastAPI BackgroundTasks; it opens
its own database session since the request session is closed by then.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable
from urllib.parse import urlparse

import requests

from engui.config import get_default_user_id, get_results_dir
from engui.core.model_config import get_model_by_id
from engui.db import repo
from engui.db.repo import DbSession
from engui.db.session import get_db_session
from engui.media.ffmpeg import FFmpegError, extract_thumbnail
from engui.providers.base import ProviderBase
from engui.providers.runpod import RunPodError, RunPodService
from engui.settings.service import SettingsService
from engui.storage.s3 import RUNPOD_VOLUME_PREFIX, S3Service, strip_volume_prefix

logger = logging.getLogger(__name__)

IMAGE_OUTPUT_KEYS = ("image", "image_base64", "image_url")
VIDEO_OUTPUT_KEYS = ("video", "mp4", "result", "video_url", "output_url", "video_path")
IMAGE_MODELS = {"image", "flux-kontext", "flux-krea", "qwen-image-edit", "z-image"}
BASE64_MIN_LENGTH = 100
OUTPUT_PREVIEW_LIMIT = 1000
DOWNLOAD_TIMEOUT = 300

ProviderFactory = Callable[["GenerationContext"], ProviderBase]


def output_media_type(model_id: str, options: dict[str, Any] | None = None) -> str:
    """Whether a model produces an image or a video."""
    if model_id in ("upscale", "video-upscale") and options:
        return options.get("mediaType", "video")
    model = get_model_by_id(model_id)
    if model is not None:
        return "image" if model.type == "image" else "video"
    return "image" if model_id in IMAGE_MODELS else "video"


def looks_like_base64(value: Any) -> bool:
    return (
        isinstance(value, str)
        and len(value) > BASE64_MIN_LENGTH
        and not value.startswith(("http://", "https://", "/"))
    )


def sanitize_output(output: dict[str, Any]) -> dict[str, Any]:
    """Copy of a RunPod output with long strings (base64 payloads) truncated."""
    sanitized = {}
    for key, value in output.items():
        if isinstance(value, str) and len(value) > OUTPUT_PREVIEW_LIMIT:
            sanitized[key] = f"{value[:100]}... ({len(value)} characters)"
        else:
            sanitized[key] = value
    return sanitized


@dataclass
class ExtractedOutput:
    """Where a job's media lives inside the RunPod output."""

    key: str
    value: str
    kind: str  # base64 | url | volume


def extract_output(output: Any, media_type: str) -> ExtractedOutput:
    """Find the media entry in a RunPod output document.

    Image jobs look at image keys first, video jobs at video keys; the
    other family is tried as a fallback.

    Raises:
        RunPodError: If no usable entry is present.
    """
    if isinstance(output, str):
        output = {"result": output}
    if not isinstance(output, dict):
        raise RunPodError("RunPod job returned no output")

    keys = IMAGE_OUTPUT_KEYS + VIDEO_OUTPUT_KEYS
    if media_type != "image":
        keys = VIDEO_OUTPUT_KEYS + IMAGE_OUTPUT_KEYS

    for key in keys:
        value = output.get(key)
        if not isinstance(value, str) or not value:
            continue
        if value.startswith(("http://", "https://")):
            return ExtractedOutput(key, value, "url")
        if value.startswith(RUNPOD_VOLUME_PREFIX):
            return ExtractedOutput(key, value, "volume")
        if looks_like_base64(value):
            return ExtractedOutput(key, value, "base64")

    raise RunPodError(f"No {media_type} data found in RunPod output (keys: {', '.join(output)})")


def _strip_data_uri(value: str) -> str:
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


@dataclass
class GenerationContext:
    """Pre-built context for following a single RunPod job."""

    job_id: str
    model_id: str
    runpod_job_id: str
    api_key: str
    endpoint_id: str
    media_type: str = "video"
    generate_timeout: int = 3600
    created_at: datetime | None = None
    s3_settings: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    result_url: str
    thumbnail_url: str | None
    source: str
    output: dict[str, Any]


class GenerationProcessor:
    """Waits for one RunPod job and stores its output under results/.

    Does not touch the database; the orchestrator records the outcome.
    """

    def __init__(
        self,
        provider: ProviderBase,
        context: GenerationContext,
        results_dir: Path | None = None,
        http: Any = requests,
        storage: S3Service | None = None,
    ):
        self.provider = provider
        self.ctx = context
        self.results_dir = Path(results_dir or get_results_dir())
        self.results_dir.mkdir(parents=True, exist_ok=True)
        self.http = http
        self.storage = storage

    def execute(self) -> GenerationResult:
        status = self.provider.wait_for_completion(self.ctx.runpod_job_id)
        output = status.get("output")
        if not output:
            raise RunPodError(f"RunPod job returned no output: {status.get('error')}")

        extracted = extract_output(output, self.ctx.media_type)
        data = self._load(extracted)
        extension = self._extension(extracted)
        file_name = f"{self.ctx.model_id}_result_{self.ctx.job_id}.{extension}"
        local_path = self.results_dir / file_name
        local_path.write_bytes(data)
        logger.info(f"Saved {len(data)} bytes for job {self.ctx.job_id} to {local_path}")

        thumbnail_url = None
        if self.ctx.media_type == "video":
            thumbnail_url = self._thumbnail(local_path)

        source = extracted.value if extracted.kind != "base64" else f"local:{local_path}"
        return GenerationResult(
            result_url=f"/results/{file_name}",
            thumbnail_url=thumbnail_url,
            source=source,
            output=sanitize_output(output) if isinstance(output, dict) else {},
        )

    def _load(self, extracted: ExtractedOutput) -> bytes:
        if extracted.kind == "base64":
            return base64.b64decode(_strip_data_uri(extracted.value))
        if extracted.kind == "volume":
            storage = self.storage or self._storage_from_settings()
            return storage.download_file(strip_volume_prefix(extracted.value))
        response = self.http.get(extracted.value, timeout=DOWNLOAD_TIMEOUT)
        if response.status_code != 200:
            raise RunPodError(f"Failed to download result: HTTP {response.status_code}")
        return response.content

    def _storage_from_settings(self) -> S3Service:
        if not self.ctx.s3_settings:
            raise RunPodError("Result is on the network volume but S3 is not configured")
        return S3Service.from_settings(self.ctx.s3_settings)

    def _extension(self, extracted: ExtractedOutput) -> str:
        if extracted.kind != "base64":
            suffix = PurePosixPath(urlparse(extracted.value).path).suffix.lstrip(".").lower()
            if suffix:
                return suffix
        return "png" if self.ctx.media_type == "image" else "mp4"

    def _thumbnail(self, video_path: Path) -> str | None:
        """Best effort; a missing thumbnail never fails the job."""
        thumb_name = f"{video_path.stem}_thumb.jpg"
        try:
            extract_thumbnail(video_path, self.results_dir / thumb_name)
        except (FFmpegError, FileNotFoundError) as e:
            logger.warning(f"Thumbnail skipped for job {self.ctx.job_id}: {e}")
            return None
        return f"/results/{thumb_name}"


def _default_provider(context: GenerationContext) -> ProviderBase:
    return RunPodService(context.api_key, context.endpoint_id, context.generate_timeout)


class GenerationOrchestrator:
    """Follows submitted jobs to completion and records the outcome."""

    def __init__(
        self,
        session: DbSession,
        results_dir: Path | None = None,
        provider_factory: ProviderFactory = _default_provider,
        http: Any = requests,
    ):
        self.session = session
        self.results_dir = results_dir
        self.provider_factory = provider_factory
        self.http = http

    def build_context(self, job_id: str, user_id: str | None = None) -> GenerationContext:
        """Build a context from the Job row and the user's settings.

        Raises:
            ValueError: If the job is missing, was never submitted, or the
                RunPod settings for its model are incomplete.
        """
        job = repo.get_job(self.session, job_id)
        if job is None:
            raise ValueError(f"Job not found: {job_id}")
        if not job.runpod_job_id:
            raise ValueError(f"Job {job_id} has no RunPod job id")

        settings, _ = SettingsService(self.session).get_settings(
            user_id or job.user_id or get_default_user_id()
        )
        runpod = settings["runpod"]
        model_id = job.model_id or job.type
        endpoint_key = job.options.get("endpointType") or model_id
        endpoint_id = runpod["endpoints"].get(endpoint_key)
        if not runpod["apiKey"] or not endpoint_id:
            raise ValueError(f"RunPod settings incomplete for model {model_id}")

        return GenerationContext(
            job_id=job.id,
            model_id=model_id,
            runpod_job_id=job.runpod_job_id,
            api_key=runpod["apiKey"],
            endpoint_id=endpoint_id,
            media_type=output_media_type(model_id, job.options),
            generate_timeout=runpod["generateTimeout"],
            created_at=job.created_at,
            s3_settings=settings["s3"],
        )

    def process(self, context: GenerationContext) -> None:
        """Run one job through GenerationProcessor and record the outcome."""
        started = time.monotonic()
        try:
            processor = GenerationProcessor(
                self.provider_factory(context),
                context,
                results_dir=self.results_dir,
                http=self.http,
            )
            result = processor.execute()
        except Exception as e:
            logger.error(f"Background processing failed for job {context.job_id}: {e}")
            self.mark_failed(context.job_id, str(e))
            return

        now = datetime.now(timezone.utc)
        repo.update_job(
            self.session,
            context.job_id,
            status="completed",
            result_url=result.result_url,
            thumbnail_url=result.thumbnail_url,
            completed_at=now,
        )
        repo.merge_job_options(
            self.session,
            context.job_id,
            {
                "runpodResultUrl": result.source,
                "runpodOutput": result.output,
                "completedAt": now.isoformat(),
                "processingTime": f"{self._elapsed(context, started)}s",
            },
        )
        repo.commit(self.session)
        logger.info(f"Job {context.job_id} completed: {result.result_url}")

    def mark_failed(self, job_id: str, error: str) -> None:
        now = datetime.now(timezone.utc)
        repo.update_job(self.session, job_id, status="failed", completed_at=now)
        repo.merge_job_options(
            self.session, job_id, {"error": error, "failedAt": now.isoformat()}
        )
        repo.commit(self.session)

    def process_job(self, job_id: str) -> None:
        try:
            context = self.build_context(job_id)
        except ValueError as e:
            logger.error(f"Cannot process job {job_id}: {e}")
            if repo.get_job(self.session, job_id) is not None:
                self.mark_failed(job_id, str(e))
            return
        self.process(context)

    def resume_processing_jobs(self) -> int:
        """Pick up jobs left in processing (e.g. after a restart).

        Returns:
            Number of jobs processed.
        """
        jobs = repo.get_processing_jobs(self.session)
        for job in jobs:
            logger.info(f"Resuming job {job.id} (RunPod {job.runpod_job_id})")
            self.process_job(job.id)
        return len(jobs)

    @staticmethod
    def _elapsed(context: GenerationContext, started: float) -> int:
        if context.created_at is not None:
            created = context.created_at
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            return round((datetime.now(timezone.utc) - created).total_seconds())
        return round(time.monotonic() - started)


def run_generation_job(context: GenerationContext, db_path: Path | None = None) -> None:
    """BackgroundTasks entry point: process one job in a fresh session."""
    with get_db_session(db_path) as session:
        GenerationOrchestrator(session).process(context)


def resume_generation_jobs(db_path: Path | None = None) -> int:
    """Pick up jobs left processing by a previous run."""
    with get_db_session(db_path) as session:
        return GenerationOrchestrator(session).resume_processing_jobs()
