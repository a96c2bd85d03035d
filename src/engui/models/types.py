"""Pydantic models for the EnguiStudio API.

JSON uses camelCase keys; Python code uses snake_case. Both spellings
are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from engui.models.domain import LoraEntity


class ApiModel(BaseModel):
    """Base for request and response bodies."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Jobs, presets, credit
# ============================================================================


class JobOut(ApiModel):
    id: str
    user_id: str
    workspace_id: str | None = None
    type: str
    status: str
    prompt: str | None = None
    model_id: str | None = None
    options: dict[str, Any] = {}
    result_url: str | None = None
    thumbnail_url: str | None = None
    runpod_job_id: str | None = None
    is_favorite: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None


class JobCreate(ApiModel):
    user_id: str | None = None
    type: str | None = None
    result_url: str | None = None
    status: str = "completed"
    prompt: str | None = None
    model_id: str | None = None
    options: dict[str, Any] | None = None
    thumbnail_url: str | None = None
    workspace_id: str | None = None


class JobUpdate(ApiModel):
    status: str | None = None
    result_url: str | None = None
    thumbnail_url: str | None = None
    prompt: str | None = None
    options: dict[str, Any] | None = None


class JobIdRequest(ApiModel):
    job_id: str | None = None


class Pagination(ApiModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class JobListResponse(ApiModel):
    success: bool = True
    jobs: list[JobOut]
    pagination: Pagination


class PresetOut(ApiModel):
    id: str
    user_id: str
    name: str
    type: str
    options: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PresetCreate(ApiModel):
    user_id: str | None = None
    name: str | None = None
    type: str | None = None
    options: dict[str, Any] | None = None


class CreditActivityOut(ApiModel):
    id: str
    user_id: str
    activity: str
    amount: int
    created_at: datetime | None = None


class CreditActivityResponse(ApiModel):
    success: bool = True
    activities: list[CreditActivityOut]
    balance: int


# ============================================================================
# Workspaces
# ============================================================================


class WorkspaceOut(ApiModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    color: str | None = None
    is_default: bool = False
    job_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class WorkspaceCreate(ApiModel):
    user_id: str | None = None
    name: str | None = None
    description: str | None = None
    color: str | None = None


class WorkspaceUpdate(ApiModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None
    is_default: bool | None = None


class UserIdRequest(ApiModel):
    user_id: str | None = None


class CurrentWorkspaceRequest(ApiModel):
    user_id: str | None = None
    workspace_id: str | None = None


class WorkspaceMediaOut(ApiModel):
    id: str
    workspace_id: str
    type: str
    url: str
    prompt: str | None = None
    model_id: str | None = None
    created_at: datetime | None = None


class WorkspaceMediaCreate(ApiModel):
    id: str | None = None
    workspace_id: str | None = None
    type: str | None = None
    url: str | None = None
    prompt: str | None = None
    model_id: str | None = None


# ============================================================================
# LoRA
# ============================================================================


class LoraOut(ApiModel):
    id: str
    name: str
    file_name: str
    s3_path: str
    s3_url: str
    file_size: str
    extension: str
    workspace_id: str | None = None
    uploaded_at: datetime | None = None
    presigned_url: str | None = None

    @classmethod
    def from_entity(cls, lora: LoraEntity, presigned_url: str | None = None) -> "LoraOut":
        return cls(
            id=lora.id,
            name=lora.name,
            file_name=lora.file_name,
            s3_path=lora.s3_path,
            s3_url=lora.s3_url,
            file_size=str(lora.file_size),
            extension=lora.extension,
            workspace_id=lora.workspace_id,
            uploaded_at=lora.uploaded_at,
            presigned_url=presigned_url,
        )


# ============================================================================
# Generation
# ============================================================================


class GenerateResponse(ApiModel):
    success: bool = True
    job_id: str
    runpod_job_id: str | None = None
    status: str = "processing"
    message: str


class LegacyGenerateRequest(ApiModel):
    user_id: str | None = None
    type: str | None = None
    prompt: str | None = None
    model_id: str | None = None
    options: dict[str, Any] | None = None
    workspace_id: str | None = None


class UpscaleRequest(ApiModel):
    job_id: str | None = None
    path: str | None = None
    media_type: str | None = None
    interpolation: bool = False


class WebhookComplete(ApiModel):
    job_id: str | None = None
    result_url: str | None = None
    thumbnail_url: str | None = None


# ============================================================================
# Video sequencer
# ============================================================================


class VideoKeyFrameOut(ApiModel):
    id: str
    track_id: str
    timestamp: int
    duration: int
    data_type: str
    media_id: str
    url: str
    prompt: str | None = None
    fit_mode: str = "contain"
    volume: float | None = None


class VideoTrackOut(ApiModel):
    id: str
    project_id: str
    type: str
    label: str
    locked: bool
    order: int
    volume: float
    muted: bool
    keyframes: list[VideoKeyFrameOut] = []


class VideoProjectOut(ApiModel):
    id: str
    user_id: str | None = None
    title: str
    description: str = ""
    aspect_ratio: str
    quality_preset: str
    width: int
    height: int
    duration: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    tracks: list[VideoTrackOut] = []


class VideoProjectCreate(ApiModel):
    title: str | None = None
    description: str | None = None
    aspect_ratio: Any = None
    quality_preset: Any = None
    duration: Any = None
    user_id: str | None = None
    with_default_tracks: bool = False


class VideoProjectUpdate(ApiModel):
    title: str | None = None
    description: str | None = None
    aspect_ratio: Any = None
    quality_preset: Any = None
    duration: Any = None


class VideoTrackCreate(ApiModel):
    project_id: str | None = None
    type: str | None = None
    label: str | None = None
    locked: bool = True
    order: int = 0


class VideoTrackUpdate(ApiModel):
    label: str | None = None
    locked: bool | None = None
    order: int | None = None
    volume: Any = None
    muted: bool | None = None


class VideoKeyFrameCreate(ApiModel):
    track_id: str | None = None
    timestamp: Any = None
    duration: Any = None
    data_type: str | None = None
    media_id: str | None = None
    url: str | None = None
    prompt: str | None = None
    fit_mode: str | None = None
    volume: Any = None


class VideoKeyFrameUpdate(ApiModel):
    timestamp: Any = None
    duration: Any = None
    data_type: str | None = None
    media_id: str | None = None
    url: str | None = None
    prompt: str | None = None
    fit_mode: str | None = None
    volume: Any = None


class AutoPlaceRequest(ApiModel):
    project_id: str | None = None
    timestamp: Any = None
    duration: Any = None
    data_type: str | None = None
    media_id: str | None = None
    url: str | None = None
    prompt: str | None = None


class MediaPathRequest(ApiModel):
    video_path: str | None = None


class ExportRequest(ApiModel):
    project: dict[str, Any] | None = None
    tracks: list[dict[str, Any]] = []
    keyframes: dict[str, list[dict[str, Any]]] = {}
    options: dict[str, Any] = {}
