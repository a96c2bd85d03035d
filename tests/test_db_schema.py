"""Tests for database schema invariants.

Invariants:
1. Workspaces unique per (user_id, name)
2. LoRA records unique per s3_path
3. User settings unique per (user_id, service_name, config_key)
4. Deleting a workspace unassigns its jobs and removes its media
5. Deleting a project removes its tracks and keyframes
"""

import pytest
from sqlalchemy.exc import IntegrityError

from engui.db import repo
from engui.db.schema import Base, LoRA, UserSetting, Workspace
from engui.models.domain import (
    JobEntity,
    VideoKeyFrameEntity,
    VideoProjectEntity,
    VideoTrackEntity,
    WorkspaceEntity,
    WorkspaceMediaEntity,
)


def add_workspace(
    session, workspace_id: str = "ws-1", name: str = "Main", **fields
) -> WorkspaceEntity:
    user_id = fields.pop("user_id", "user-1")
    entity = WorkspaceEntity(id=workspace_id, user_id=user_id, name=name, **fields)
    workspace = repo.create_workspace(session, entity)
    session.commit()
    return workspace


class TestSchemaCreation:
    """Test that schema can be created without errors."""

    def test_all_tables_created(self, engine):
        """All required tables should exist after creation."""
        assert set(repo.COUNTED_MODELS) == set(Base.metadata.tables.keys())


class TestUniqueness:
    """Unique constraints are enforced by the database."""

    def test_workspace_name_per_user(self, session):
        add_workspace(session)
        session.add(Workspace(id="ws-2", user_id="user-1", name="Main"))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_same_name_for_other_user(self, session):
        """Names only clash within one user."""
        add_workspace(session)
        add_workspace(session, "ws-2", user_id="user-2")
        assert len(repo.list_workspaces(session, "user-2")) == 1

    def test_lora_s3_path(self, session):
        for lora_id in ("l1", "l2"):
            session.add(
                LoRA(
                    id=lora_id,
                    name="style",
                    file_name="style.safetensors",
                    s3_path="/runpod-volume/loras/style.safetensors",
                    s3_url="https://s3/vol/loras/style.safetensors",
                    extension=".safetensors",
                )
            )
        with pytest.raises(IntegrityError):
            session.commit()

    def test_user_setting_key(self, session):
        for setting_id in ("s1", "s2"):
            session.add(
                UserSetting(
                    id=setting_id,
                    user_id="user-1",
                    service_name="runpod",
                    config_key="apiKey",
                    config_value="x",
                )
            )
        with pytest.raises(IntegrityError):
            session.commit()


class TestCascades:
    """Foreign key actions on delete."""

    def test_workspace_delete_unassigns_jobs(self, session):
        add_workspace(session)
        repo.create_job(
            session,
            JobEntity(id="job-1", user_id="user-1", type="image", status="completed", workspace_id="ws-1"),
        )
        repo.create_workspace_media(
            session, WorkspaceMediaEntity(id="m1", workspace_id="ws-1", type="image", url="/results/a.png")
        )
        session.commit()

        assert repo.list_workspaces(session, "user-1")[0].job_count == 1
        repo.delete_workspace(session, "ws-1")
        session.commit()
        session.expire_all()

        assert repo.get_job(session, "job-1").workspace_id is None
        assert repo.count_records(session)["workspace_media"] == 0

    def test_job_requires_existing_workspace(self, session):
        with pytest.raises(IntegrityError):
            repo.create_job(
                session,
                JobEntity(id="job-1", user_id="user-1", type="image", status="completed", workspace_id="missing"),
            )

    def test_project_delete_removes_timeline(self, session):
        track = VideoTrackEntity(id="t1", project_id="p1", type="video", label="Video")
        track.keyframes.append(VideoKeyFrameEntity("k1", "t1", 0, 1000, "image", "m1", "/results/a.png"))
        project = VideoProjectEntity(id="p1", title="Trailer", tracks=[track])
        repo.create_video_project(session, project)
        session.commit()

        loaded = repo.get_video_project(session, "p1")
        assert loaded.tracks[0].keyframes[0].fit_mode == "contain"

        repo.delete_video_project(session, "p1")
        session.commit()
        counts = repo.count_records(session)
        assert counts["video_tracks"] == 0
        assert counts["video_keyframes"] == 0
        assert repo.count_orphans(session) == {"orphaned_tracks": 0, "orphaned_keyframes": 0}


class TestJobs:
    """Job repository behavior."""

    def test_options_round_trip(self, session):
        repo.create_job(
            session,
            JobEntity(id="job-1", user_id="user-1", type="wan22", status="processing", options={"seed": 7}),
        )
        repo.merge_job_options(session, "job-1", {"error": "boom"})
        session.commit()
        assert repo.get_job(session, "job-1").options == {"seed": 7, "error": "boom"}

    def test_completed_status_stamps_completion(self, session):
        repo.create_job(session, JobEntity(id="job-1", user_id="user-1", type="image", status="processing"))
        job = repo.update_job(session, "job-1", status="completed")
        assert job.completed_at is not None

    def test_move_unassigned_jobs(self, session):
        add_workspace(session)
        for job_id in ("a", "b"):
            repo.create_job(session, JobEntity(id=job_id, user_id="user-1", type="image", status="completed"))
        assert repo.move_jobs(session, "user-1", None, "ws-1") == 2
        session.commit()
        _, total = repo.list_jobs(session, "user-1", workspace_id="ws-1")
        assert total == 2
