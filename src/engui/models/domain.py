"""Domain models for EnguiStudio.

Pure Python dataclasses representing domain entities.
These models are independent of SQLAlchemy and used throughout
the application for clean separation from the database layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


# ============================================================================
# Job Domain
# ============================================================================

JobStatus = Literal["queued", "processing", "completed", "failed"]


@dataclass
class JobEntity:
    """Domain model for a generation job."""

    id: str
    user_id: str
    type: str
    status: JobStatus
    workspace_id: str | None = None
    prompt: str | None = None
    model_id: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    result_url: str | None = None
    thumbnail_url: str | None = None
    runpod_job_id: str | None = None
    is_favorite: bool = False
    created_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class PresetEntity:
    """Domain model for saved generation options."""

    id: str
    user_id: str
    name: str
    type: str
    options: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class CreditActivityEntity:
    """Domain model for a credit ledger entry."""

    id: str
    user_id: str
    activity: str
    amount: int
    created_at: datetime | None = None


# ============================================================================
# Workspace Domain
# ============================================================================

DEFAULT_WORKSPACE_NAME = "Default workspace"
DEFAULT_WORKSPACE_DESCRIPTION = "Default workspace where all your work is saved."
DEFAULT_WORKSPACE_COLOR = "#3B82F6"


@dataclass
class WorkspaceEntity:
    """Domain model for a workspace."""

    id: str
    user_id: str
    name: str
    description: str | None = None
    color: str | None = None
    is_default: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    job_count: int = 0


@dataclass
class WorkspaceMediaEntity:
    """Domain model for media pinned to a workspace."""

    id: str
    workspace_id: str
    type: str
    url: str
    prompt: str | None = None
    model_id: str | None = None
    created_at: datetime | None = None


# ============================================================================
# LoRA and Settings Domain
# ============================================================================


@dataclass
class LoraEntity:
    """Domain model for a LoRA weights file."""

    id: str
    name: str
    file_name: str
    s3_path: str
    s3_url: str
    file_size: int
    extension: str
    workspace_id: str | None = None
    uploaded_at: datetime | None = None


@dataclass
class UserSettingEntity:
    """Domain model for one stored setting value."""

    user_id: str
    service_name: str
    config_key: str
    config_value: str
    is_encrypted: bool = False


# ============================================================================
# Video Sequencer Domain
# ============================================================================

AspectRatio = Literal["16:9", "9:16", "1:1"]
TrackType = Literal["video", "music", "voiceover"]
KeyframeDataType = Literal["image", "video", "music", "voiceover"]
FitMode = Literal["contain", "cover", "fill"]


@dataclass
class VideoKeyFrameEntity:
    """Domain model for media placed on a track."""

    id: str
    track_id: str
    timestamp: int
    duration: int
    data_type: KeyframeDataType
    media_id: str
    url: str
    prompt: str | None = None
    fit_mode: FitMode = "contain"
    volume: float | None = None

    @property
    def end(self) -> int:
        return self.timestamp + self.duration


@dataclass
class VideoTrackEntity:
    """Domain model for a timeline track."""

    id: str
    project_id: str
    type: TrackType
    label: str
    locked: bool = True
    order: int = 0
    volume: float = 100.0
    muted: bool = False
    keyframes: list[VideoKeyFrameEntity] = field(default_factory=list)


@dataclass
class VideoProjectEntity:
    """Domain model for a sequencer project."""

    id: str
    title: str
    user_id: str | None = None
    description: str = ""
    aspect_ratio: AspectRatio = "16:9"
    quality_preset: str = "1080p"
    width: int = 1920
    height: int = 1080
    duration: int = 30000
    created_at: datetime | None = None
    updated_at: datetime | None = None
    tracks: list[VideoTrackEntity] = field(default_factory=list)
