"""Repository pattern for database operations.

Encapsulates all SQLAlchemy queries, keeping domain logic pure.
Returns domain models (not SQLAlchemy entities) to external callers.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from engui.db.schema import (
    CreditActivity,
    Job,
    LoRA,
    Preset,
    UserSetting,
    VideoKeyFrame,
    VideoProject,
    VideoTrack,
    Workspace,
    WorkspaceMedia,
)
from engui.models.domain import (
    CreditActivityEntity,
    JobEntity,
    LoraEntity,
    PresetEntity,
    UserSettingEntity,
    VideoKeyFrameEntity,
    VideoProjectEntity,
    VideoTrackEntity,
    WorkspaceEntity,
    WorkspaceMediaEntity,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["DbSession"]


def new_id() -> str:
    """Generate a new primary key."""
    return str(uuid.uuid4())


def _loads(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {"value": data}


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _job_to_entity(job: Job) -> JobEntity:
    """Convert SQLAlchemy Job to domain entity."""
    return JobEntity(
        id=job.id,
        user_id=job.user_id,
        workspace_id=job.workspace_id,
        type=job.type,
        status=job.status,
        prompt=job.prompt,
        model_id=job.model_id,
        options=_loads(job.options_json),
        result_url=job.result_url,
        thumbnail_url=job.thumbnail_url,
        runpod_job_id=job.runpod_job_id,
        is_favorite=job.is_favorite,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


def _preset_to_entity(preset: Preset) -> PresetEntity:
    """Convert SQLAlchemy Preset to domain entity."""
    return PresetEntity(
        id=preset.id,
        user_id=preset.user_id,
        name=preset.name,
        type=preset.type,
        options=_loads(preset.options_json),
        created_at=preset.created_at,
        updated_at=preset.updated_at,
    )


def _credit_to_entity(activity: CreditActivity) -> CreditActivityEntity:
    return CreditActivityEntity(
        id=activity.id,
        user_id=activity.user_id,
        activity=activity.activity,
        amount=activity.amount,
        created_at=activity.created_at,
    )


def _workspace_to_entity(workspace: Workspace, job_count: int = 0) -> WorkspaceEntity:
    """Convert SQLAlchemy Workspace to domain entity."""
    return WorkspaceEntity(
        id=workspace.id,
        user_id=workspace.user_id,
        name=workspace.name,
        description=workspace.description,
        color=workspace.color,
        is_default=workspace.is_default,
        created_at=workspace.created_at,
        updated_at=workspace.updated_at,
        job_count=job_count,
    )


def _media_to_entity(media: WorkspaceMedia) -> WorkspaceMediaEntity:
    return WorkspaceMediaEntity(
        id=media.id,
        workspace_id=media.workspace_id,
        type=media.type,
        url=media.url,
        prompt=media.prompt,
        model_id=media.model_id,
        created_at=media.created_at,
    )


def _lora_to_entity(lora: LoRA) -> LoraEntity:
    """Convert SQLAlchemy LoRA to domain entity."""
    return LoraEntity(
        id=lora.id,
        name=lora.name,
        file_name=lora.file_name,
        s3_path=lora.s3_path,
        s3_url=lora.s3_url,
        file_size=lora.file_size,
        extension=lora.extension,
        workspace_id=lora.workspace_id,
        uploaded_at=lora.uploaded_at,
    )


def _setting_to_entity(setting: UserSetting) -> UserSettingEntity:
    return UserSettingEntity(
        user_id=setting.user_id,
        service_name=setting.service_name,
        config_key=setting.config_key,
        config_value=setting.config_value,
        is_encrypted=setting.is_encrypted,
    )


def _keyframe_to_entity(keyframe: VideoKeyFrame) -> VideoKeyFrameEntity:
    """Convert SQLAlchemy VideoKeyFrame to domain entity."""
    return VideoKeyFrameEntity(
        id=keyframe.id,
        track_id=keyframe.track_id,
        timestamp=keyframe.timestamp,
        duration=keyframe.duration,
        data_type=keyframe.data_type,
        media_id=keyframe.media_id,
        url=keyframe.url,
        prompt=keyframe.prompt,
        fit_mode=keyframe.fit_mode,
        volume=keyframe.volume,
    )


def _track_to_entity(track: VideoTrack, with_keyframes: bool = True) -> VideoTrackEntity:
    """Convert SQLAlchemy VideoTrack to domain entity."""
    return VideoTrackEntity(
        id=track.id,
        project_id=track.project_id,
        type=track.type,
        label=track.label,
        locked=track.locked,
        order=track.order,
        volume=track.volume,
        muted=track.muted,
        keyframes=[_keyframe_to_entity(k) for k in track.keyframes] if with_keyframes else [],
    )


def _project_to_entity(project: VideoProject, with_tracks: bool = True) -> VideoProjectEntity:
    """Convert SQLAlchemy VideoProject to domain entity."""
    return VideoProjectEntity(
        id=project.id,
        user_id=project.user_id,
        title=project.title,
        description=project.description,
        aspect_ratio=project.aspect_ratio,
        quality_preset=project.quality_preset,
        width=project.width,
        height=project.height,
        duration=project.duration,
        created_at=project.created_at,
        updated_at=project.updated_at,
        tracks=[_track_to_entity(t) for t in project.tracks] if with_tracks else [],
    )


# ============================================================================
# Job Repository
# ============================================================================


def get_job(session: DbSession, job_id: str) -> JobEntity | None:
    """Get job by ID."""
    job = session.query(Job).filter(Job.id == job_id).first()
    return _job_to_entity(job) if job else None


def create_job(session: DbSession, entity: JobEntity) -> JobEntity:
    """Create a new job."""
    job = Job(
        id=entity.id,
        user_id=entity.user_id,
        workspace_id=entity.workspace_id,
        type=entity.type,
        status=entity.status,
        prompt=entity.prompt,
        model_id=entity.model_id,
        options_json=json.dumps(entity.options) if entity.options else None,
        result_url=entity.result_url,
        thumbnail_url=entity.thumbnail_url,
        runpod_job_id=entity.runpod_job_id,
        is_favorite=entity.is_favorite,
        completed_at=entity.completed_at,
    )
    session.add(job)
    session.flush()
    return _job_to_entity(job)


def list_jobs(
    session: DbSession,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 50,
    only_processing: bool = False,
    workspace_id: str | None = None,
    unassigned: bool = False,
) -> tuple[list[JobEntity], int]:
    """List a user's jobs newest first.

    Returns:
        Tuple of (jobs on the requested page, total matching count).
    """
    query = session.query(Job).filter(Job.user_id == user_id)
    if only_processing:
        query = query.filter(Job.status == "processing")
    if unassigned:
        query = query.filter(Job.workspace_id.is_(None))
    elif workspace_id is not None:
        query = query.filter(Job.workspace_id == workspace_id)

    total = query.count()
    jobs = (
        query.order_by(Job.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [_job_to_entity(j) for j in jobs], total


def get_processing_jobs(session: DbSession) -> list[JobEntity]:
    """Get all jobs with status=processing that were submitted to RunPod."""
    jobs = (
        session.query(Job)
        .filter(Job.status == "processing", Job.runpod_job_id.is_not(None))
        .all()
    )
    return [_job_to_entity(j) for j in jobs]


def update_job(
    session: DbSession,
    job_id: str,
    *,
    status: str | None = None,
    result_url: str | None = None,
    thumbnail_url: str | None = None,
    runpod_job_id: str | None = None,
    prompt: str | None = None,
    options: dict[str, Any] | None = None,
    completed_at: datetime | None = None,
) -> JobEntity | None:
    """Update job fields. None leaves a field unchanged.

    options replaces the stored options wholesale; use merge_job_options
    to add keys.
    """
    job = session.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return None
    if status is not None:
        job.status = status
        if status == "completed" and completed_at is None and job.completed_at is None:
            job.completed_at = datetime.now(timezone.utc)
    if result_url is not None:
        job.result_url = result_url
    if thumbnail_url is not None:
        job.thumbnail_url = thumbnail_url
    if runpod_job_id is not None:
        job.runpod_job_id = runpod_job_id
    if prompt is not None:
        job.prompt = prompt
    if options is not None:
        job.options_json = json.dumps(options)
    if completed_at is not None:
        job.completed_at = completed_at
    session.flush()
    return _job_to_entity(job)


def merge_job_options(session: DbSession, job_id: str, updates: dict[str, Any]) -> None:
    """Merge keys into a job's stored options."""
    job = session.query(Job).filter(Job.id == job_id).first()
    if job:
        options = _loads(job.options_json)
        options.update(updates)
        job.options_json = json.dumps(options)


def set_job_workspace(session: DbSession, job_id: str, workspace_id: str | None) -> None:
    """Assign a job to a workspace (None unassigns)."""
    job = session.query(Job).filter(Job.id == job_id).first()
    if job:
        job.workspace_id = workspace_id


def toggle_job_favorite(session: DbSession, job_id: str) -> JobEntity | None:
    """Flip is_favorite and return the updated job."""
    job = session.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return None
    job.is_favorite = not job.is_favorite
    return _job_to_entity(job)


def delete_job(session: DbSession, job_id: str) -> bool:
    """Delete job by ID. Returns False if it did not exist."""
    job = session.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return False
    session.delete(job)
    return True


def move_jobs(
    session: DbSession,
    user_id: str,
    from_workspace_id: str | None,
    to_workspace_id: str | None,
) -> int:
    """Move a user's jobs between workspaces (None means unassigned).

    Returns:
        Number of jobs moved.
    """
    query = session.query(Job).filter(Job.user_id == user_id)
    if from_workspace_id is None:
        query = query.filter(Job.workspace_id.is_(None))
    else:
        query = query.filter(Job.workspace_id == from_workspace_id)
    return query.update({Job.workspace_id: to_workspace_id}, synchronize_session=False)


# ============================================================================
# Preset Repository
# ============================================================================


def list_presets(session: DbSession, user_id: str | None = None) -> list[PresetEntity]:
    """List presets newest first, optionally for one user."""
    query = session.query(Preset)
    if user_id:
        query = query.filter(Preset.user_id == user_id)
    return [_preset_to_entity(p) for p in query.order_by(Preset.created_at.desc()).all()]


def create_preset(session: DbSession, entity: PresetEntity) -> PresetEntity:
    preset = Preset(
        id=entity.id,
        user_id=entity.user_id,
        name=entity.name,
        type=entity.type,
        options_json=json.dumps(entity.options),
    )
    session.add(preset)
    session.flush()
    return _preset_to_entity(preset)


def delete_preset(session: DbSession, preset_id: str) -> bool:
    preset = session.query(Preset).filter(Preset.id == preset_id).first()
    if preset is None:
        return False
    session.delete(preset)
    return True


# ============================================================================
# Credit Activity Repository
# ============================================================================


def create_credit_activity(
    session: DbSession, user_id: str, activity: str, amount: int
) -> CreditActivityEntity:
    """Record a credit ledger entry."""
    record = CreditActivity(id=new_id(), user_id=user_id, activity=activity, amount=amount)
    session.add(record)
    session.flush()
    return _credit_to_entity(record)


def list_credit_activities(
    session: DbSession, user_id: str | None = None
) -> list[CreditActivityEntity]:
    """List credit activities newest first."""
    query = session.query(CreditActivity)
    if user_id:
        query = query.filter(CreditActivity.user_id == user_id)
    records = query.order_by(CreditActivity.created_at.desc()).all()
    return [_credit_to_entity(r) for r in records]


# ============================================================================
# Workspace Repository
# ============================================================================


def _job_counts(session: DbSession, workspace_ids: list[str]) -> dict[str, int]:
    if not workspace_ids:
        return {}
    rows = (
        session.query(Job.workspace_id, func.count(Job.id))
        .filter(Job.workspace_id.in_(workspace_ids))
        .group_by(Job.workspace_id)
        .all()
    )
    return {workspace_id: count for workspace_id, count in rows}


def list_workspaces(session: DbSession, user_id: str) -> list[WorkspaceEntity]:
    """List a user's workspaces, default first then oldest first."""
    workspaces = (
        session.query(Workspace)
        .filter(Workspace.user_id == user_id)
        .order_by(Workspace.is_default.desc(), Workspace.created_at.asc())
        .all()
    )
    counts = _job_counts(session, [w.id for w in workspaces])
    return [_workspace_to_entity(w, counts.get(w.id, 0)) for w in workspaces]


def get_workspace(session: DbSession, workspace_id: str) -> WorkspaceEntity | None:
    """Get workspace by ID."""
    workspace = session.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace is None:
        return None
    return _workspace_to_entity(workspace, _job_counts(session, [workspace.id]).get(workspace.id, 0))


def get_workspace_by_name(session: DbSession, user_id: str, name: str) -> WorkspaceEntity | None:
    workspace = (
        session.query(Workspace)
        .filter(Workspace.user_id == user_id, Workspace.name == name)
        .first()
    )
    return _workspace_to_entity(workspace) if workspace else None


def get_default_workspace(session: DbSession, user_id: str) -> WorkspaceEntity | None:
    """Get the user's default workspace."""
    workspace = (
        session.query(Workspace)
        .filter(Workspace.user_id == user_id, Workspace.is_default.is_(True))
        .first()
    )
    return _workspace_to_entity(workspace) if workspace else None


def count_workspaces(session: DbSession, user_id: str) -> int:
    return session.query(Workspace).filter(Workspace.user_id == user_id).count()


def create_workspace(session: DbSession, entity: WorkspaceEntity) -> WorkspaceEntity:
    """Create a new workspace."""
    workspace = Workspace(
        id=entity.id,
        user_id=entity.user_id,
        name=entity.name,
        description=entity.description,
        color=entity.color,
        is_default=entity.is_default,
    )
    session.add(workspace)
    session.flush()
    return _workspace_to_entity(workspace)


def set_default_workspace(session: DbSession, user_id: str, workspace_id: str) -> None:
    """Make one workspace the user's default and unset all others."""
    session.query(Workspace).filter(
        Workspace.user_id == user_id, Workspace.id != workspace_id
    ).update({Workspace.is_default: False}, synchronize_session=False)
    workspace = session.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace:
        workspace.is_default = True


def update_workspace(
    session: DbSession,
    workspace_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    color: str | None = None,
    is_default: bool | None = None,
) -> WorkspaceEntity | None:
    """Update workspace fields. None leaves a field unchanged."""
    workspace = session.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace is None:
        return None
    if name is not None:
        workspace.name = name
    if description is not None:
        workspace.description = description
    if color is not None:
        workspace.color = color
    if is_default:
        set_default_workspace(session, workspace.user_id, workspace.id)
    elif is_default is False:
        workspace.is_default = False
    session.flush()
    return get_workspace(session, workspace_id)


def delete_workspace(session: DbSession, workspace_id: str) -> bool:
    workspace = session.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace is None:
        return False
    session.delete(workspace)
    return True


# ============================================================================
# Workspace Media Repository
# ============================================================================


def list_workspace_media(session: DbSession, workspace_id: str) -> list[WorkspaceMediaEntity]:
    media = (
        session.query(WorkspaceMedia)
        .filter(WorkspaceMedia.workspace_id == workspace_id)
        .order_by(WorkspaceMedia.created_at.desc())
        .all()
    )
    return [_media_to_entity(m) for m in media]


def create_workspace_media(session: DbSession, entity: WorkspaceMediaEntity) -> WorkspaceMediaEntity:
    media = WorkspaceMedia(
        id=entity.id,
        workspace_id=entity.workspace_id,
        type=entity.type,
        url=entity.url,
        prompt=entity.prompt,
        model_id=entity.model_id,
    )
    if entity.created_at is not None:
        media.created_at = entity.created_at
    session.add(media)
    session.flush()
    return _media_to_entity(media)


# ============================================================================
# LoRA Repository
# ============================================================================


def list_loras(session: DbSession, workspace_id: str | None = None) -> list[LoraEntity]:
    """List LoRAs newest first, optionally scoped to a workspace."""
    query = session.query(LoRA)
    if workspace_id:
        query = query.filter(LoRA.workspace_id == workspace_id)
    return [_lora_to_entity(l) for l in query.order_by(LoRA.uploaded_at.desc()).all()]


def get_lora(session: DbSession, lora_id: str) -> LoraEntity | None:
    lora = session.query(LoRA).filter(LoRA.id == lora_id).first()
    return _lora_to_entity(lora) if lora else None


def get_lora_s3_paths(session: DbSession) -> set[str]:
    """All tracked s3_path values."""
    return {row[0] for row in session.query(LoRA.s3_path).all()}


def create_lora(session: DbSession, entity: LoraEntity) -> LoraEntity:
    """Create a LoRA record. Raises IntegrityError on duplicate s3_path."""
    lora = LoRA(
        id=entity.id,
        name=entity.name,
        file_name=entity.file_name,
        s3_path=entity.s3_path,
        s3_url=entity.s3_url,
        file_size=entity.file_size,
        extension=entity.extension,
        workspace_id=entity.workspace_id,
    )
    session.add(lora)
    session.flush()
    return _lora_to_entity(lora)


def delete_lora(session: DbSession, lora_id: str) -> bool:
    lora = session.query(LoRA).filter(LoRA.id == lora_id).first()
    if lora is None:
        return False
    session.delete(lora)
    return True


# ============================================================================
# User Settings Repository
# ============================================================================


def list_user_settings(session: DbSession, user_id: str) -> list[UserSettingEntity]:
    settings = session.query(UserSetting).filter(UserSetting.user_id == user_id).all()
    return [_setting_to_entity(s) for s in settings]


def get_user_setting(
    session: DbSession, user_id: str, service_name: str, config_key: str
) -> UserSettingEntity | None:
    setting = (
        session.query(UserSetting)
        .filter(
            UserSetting.user_id == user_id,
            UserSetting.service_name == service_name,
            UserSetting.config_key == config_key,
        )
        .first()
    )
    return _setting_to_entity(setting) if setting else None


def upsert_user_setting(session: DbSession, entity: UserSettingEntity) -> None:
    """Insert or update one setting keyed by (user, service, key)."""
    setting = (
        session.query(UserSetting)
        .filter(
            UserSetting.user_id == entity.user_id,
            UserSetting.service_name == entity.service_name,
            UserSetting.config_key == entity.config_key,
        )
        .first()
    )
    if setting is None:
        session.add(
            UserSetting(
                id=new_id(),
                user_id=entity.user_id,
                service_name=entity.service_name,
                config_key=entity.config_key,
                config_value=entity.config_value,
                is_encrypted=entity.is_encrypted,
            )
        )
    else:
        setting.config_value = entity.config_value
        setting.is_encrypted = entity.is_encrypted
    session.flush()


def delete_user_settings(session: DbSession, user_id: str) -> int:
    """Delete all of a user's settings. Returns the deleted count."""
    return (
        session.query(UserSetting)
        .filter(UserSetting.user_id == user_id)
        .delete(synchronize_session=False)
    )


# ============================================================================
# Video Project Repository
# ============================================================================


def _project_query(session: DbSession):
    return session.query(VideoProject).options(
        selectinload(VideoProject.tracks).selectinload(VideoTrack.keyframes)
    )


def list_video_projects(session: DbSession, user_id: str | None = None) -> list[VideoProjectEntity]:
    """List projects with tracks and keyframes, most recently updated first."""
    query = _project_query(session)
    if user_id:
        query = query.filter(VideoProject.user_id == user_id)
    projects = query.order_by(VideoProject.updated_at.desc()).all()
    return [_project_to_entity(p) for p in projects]


def get_video_project(session: DbSession, project_id: str) -> VideoProjectEntity | None:
    """Get project with tracks (by order) and keyframes (by timestamp)."""
    project = _project_query(session).filter(VideoProject.id == project_id).first()
    return _project_to_entity(project) if project else None


def create_video_project(session: DbSession, entity: VideoProjectEntity) -> VideoProjectEntity:
    """Create a project together with any tracks and keyframes it carries."""
    project = VideoProject(
        id=entity.id,
        user_id=entity.user_id,
        title=entity.title,
        description=entity.description,
        aspect_ratio=entity.aspect_ratio,
        quality_preset=entity.quality_preset,
        width=entity.width,
        height=entity.height,
        duration=entity.duration,
    )
    for track in entity.tracks:
        project.tracks.append(_new_track(track))
    session.add(project)
    session.flush()
    return _project_to_entity(project)


def update_video_project(
    session: DbSession,
    project_id: str,
    *,
    title: str | None = None,
    description: str | None = None,
    aspect_ratio: str | None = None,
    quality_preset: str | None = None,
    width: int | None = None,
    height: int | None = None,
    duration: int | None = None,
) -> VideoProjectEntity | None:
    """Update project fields. None leaves a field unchanged."""
    project = session.query(VideoProject).filter(VideoProject.id == project_id).first()
    if project is None:
        return None
    if title is not None:
        project.title = title
    if description is not None:
        project.description = description
    if aspect_ratio is not None:
        project.aspect_ratio = aspect_ratio
    if quality_preset is not None:
        project.quality_preset = quality_preset
    if width is not None:
        project.width = width
    if height is not None:
        project.height = height
    if duration is not None:
        project.duration = duration
    project.updated_at = datetime.now(timezone.utc)
    session.flush()
    return _project_to_entity(project)


def delete_video_project(session: DbSession, project_id: str) -> bool:
    """Delete project; tracks and keyframes cascade."""
    project = session.query(VideoProject).filter(VideoProject.id == project_id).first()
    if project is None:
        return False
    session.delete(project)
    return True


# ============================================================================
# Video Track Repository
# ============================================================================


def _new_keyframe(entity: VideoKeyFrameEntity) -> VideoKeyFrame:
    return VideoKeyFrame(
        id=entity.id,
        track_id=entity.track_id,
        timestamp=entity.timestamp,
        duration=entity.duration,
        data_type=entity.data_type,
        media_id=entity.media_id,
        url=entity.url,
        prompt=entity.prompt,
        fit_mode=entity.fit_mode,
        volume=entity.volume,
    )


def _new_track(entity: VideoTrackEntity) -> VideoTrack:
    track = VideoTrack(
        id=entity.id,
        project_id=entity.project_id,
        type=entity.type,
        label=entity.label,
        locked=entity.locked,
        order=entity.order,
        volume=entity.volume,
        muted=entity.muted,
    )
    for keyframe in entity.keyframes:
        track.keyframes.append(_new_keyframe(keyframe))
    return track


def get_video_track(session: DbSession, track_id: str) -> VideoTrackEntity | None:
    track = session.query(VideoTrack).filter(VideoTrack.id == track_id).first()
    return _track_to_entity(track) if track else None


def list_tracks_for_project(session: DbSession, project_id: str) -> list[VideoTrackEntity]:
    tracks = (
        session.query(VideoTrack)
        .filter(VideoTrack.project_id == project_id)
        .order_by(VideoTrack.order.asc())
        .all()
    )
    return [_track_to_entity(t) for t in tracks]


def create_video_track(session: DbSession, entity: VideoTrackEntity) -> VideoTrackEntity:
    track = _new_track(entity)
    session.add(track)
    session.flush()
    return _track_to_entity(track)


def update_video_track(
    session: DbSession,
    track_id: str,
    *,
    label: str | None = None,
    locked: bool | None = None,
    order: int | None = None,
    volume: float | None = None,
    muted: bool | None = None,
) -> VideoTrackEntity | None:
    track = session.query(VideoTrack).filter(VideoTrack.id == track_id).first()
    if track is None:
        return None
    if label is not None:
        track.label = label
    if locked is not None:
        track.locked = locked
    if order is not None:
        track.order = order
    if volume is not None:
        track.volume = volume
    if muted is not None:
        track.muted = muted
    session.flush()
    return _track_to_entity(track)


def delete_video_track(session: DbSession, track_id: str) -> bool:
    """Delete track; keyframes cascade."""
    track = session.query(VideoTrack).filter(VideoTrack.id == track_id).first()
    if track is None:
        return False
    session.delete(track)
    return True


# ============================================================================
# Video Keyframe Repository
# ============================================================================


def get_keyframe(session: DbSession, keyframe_id: str) -> VideoKeyFrameEntity | None:
    keyframe = session.query(VideoKeyFrame).filter(VideoKeyFrame.id == keyframe_id).first()
    return _keyframe_to_entity(keyframe) if keyframe else None


def create_keyframe(session: DbSession, entity: VideoKeyFrameEntity) -> VideoKeyFrameEntity:
    keyframe = _new_keyframe(entity)
    session.add(keyframe)
    session.flush()
    return _keyframe_to_entity(keyframe)


def update_keyframe(
    session: DbSession, keyframe_id: str, **fields: Any
) -> VideoKeyFrameEntity | None:
    """Update keyframe columns given as keyword arguments (None skipped)."""
    keyframe = session.query(VideoKeyFrame).filter(VideoKeyFrame.id == keyframe_id).first()
    if keyframe is None:
        return None
    for name, value in fields.items():
        if value is not None:
            setattr(keyframe, name, value)
    session.flush()
    return _keyframe_to_entity(keyframe)


def delete_keyframe(session: DbSession, keyframe_id: str) -> bool:
    keyframe = session.query(VideoKeyFrame).filter(VideoKeyFrame.id == keyframe_id).first()
    if keyframe is None:
        return False
    session.delete(keyframe)
    return True


# ============================================================================
# Record counts
# ============================================================================

COUNTED_MODELS = {
    "jobs": Job,
    "presets": Preset,
    "workspaces": Workspace,
    "workspace_media": WorkspaceMedia,
    "loras": LoRA,
    "user_settings": UserSetting,
    "credit_activities": CreditActivity,
    "video_projects": VideoProject,
    "video_tracks": VideoTrack,
    "video_keyframes": VideoKeyFrame,
}


def count_records(session: DbSession) -> dict[str, int]:
    """Row count per table."""
    return {name: session.query(model).count() for name, model in COUNTED_MODELS.items()}


def count_orphans(session: DbSession) -> dict[str, int]:
    """Rows whose parent no longer exists (possible when FKs were off)."""
    orphaned_tracks = (
        session.query(VideoTrack)
        .outerjoin(VideoProject, VideoTrack.project_id == VideoProject.id)
        .filter(VideoProject.id.is_(None))
        .count()
    )
    orphaned_keyframes = (
        session.query(VideoKeyFrame)
        .outerjoin(VideoTrack, VideoKeyFrame.track_id == VideoTrack.id)
        .filter(VideoTrack.id.is_(None))
        .count()
    )
    return {"orphaned_tracks": orphaned_tracks, "orphaned_keyframes": orphaned_keyframes}


def commit(session: DbSession) -> None:
    """Commit the current transaction."""
    session.commit()
