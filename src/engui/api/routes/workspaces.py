"""Workspaces API endpoints.

GET /api/workspaces - List a user's workspaces
POST /api/workspaces - Create workspace
POST /api/workspaces/initialize - Ensure the user has a default workspace
GET /api/workspaces/current - Get the user's current workspace
PUT /api/workspaces/current - Set the user's current workspace
GET /api/workspaces/{workspace_id} - Get workspace with paginated jobs
PUT /api/workspaces/{workspace_id} - Update workspace
DELETE /api/workspaces/{workspace_id} - Delete workspace
PUT /api/workspaces/{workspace_id}/jobs/{job_id} - Move job into workspace
DELETE /api/workspaces/{workspace_id}/jobs/{job_id} - Remove job from workspace
"""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query

from engui.api.app import get_db_session
from engui.api.errors import ApiError, ErrorCode, bad_request, not_found
from engui.config import get_default_user_id
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import (
    DEFAULT_WORKSPACE_COLOR,
    DEFAULT_WORKSPACE_DESCRIPTION,
    DEFAULT_WORKSPACE_NAME,
    WorkspaceEntity,
)
from engui.models.types import (
    CurrentWorkspaceRequest,
    JobOut,
    UserIdRequest,
    WorkspaceCreate,
    WorkspaceOut,
    WorkspaceUpdate,
)
from engui.settings.service import SettingsService

logger = logging.getLogger(__name__)

router = APIRouter()

JOBS_PER_PAGE = 20


def _duplicate_name() -> ApiError:
    return ApiError(409, "A workspace with this name already exists", ErrorCode.DUPLICATE_ENTRY)


@router.get("/workspaces")
def list_workspaces(
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    if not user_id:
        raise bad_request("userId is required")
    workspaces = repo.list_workspaces(session, user_id)
    return {"success": True, "workspaces": [WorkspaceOut.model_validate(w) for w in workspaces]}


@router.post("/workspaces", status_code=201)
def create_workspace(body: WorkspaceCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Create a workspace. The user's first workspace becomes the default.

    Raises:
        ApiError: 400 if userId or name is missing, 409 on a duplicate name.
    """
    if not body.user_id or not body.name:
        raise bad_request("userId and name are required")
    if repo.get_workspace_by_name(session, body.user_id, body.name) is not None:
        raise _duplicate_name()

    workspace = repo.create_workspace(
        session,
        WorkspaceEntity(
            id=repo.new_id(),
            user_id=body.user_id,
            name=body.name,
            description=body.description,
            color=body.color,
            is_default=repo.count_workspaces(session, body.user_id) == 0,
        ),
    )
    repo.commit(session)
    logger.info(f"Created workspace {workspace.id} ({workspace.name}) for {body.user_id}")
    return {"success": True, "workspace": WorkspaceOut.model_validate(workspace)}


@router.post("/workspaces/initialize")
def initialize_workspace(body: UserIdRequest, session: DbSession = Depends(get_db_session)) -> dict:
    """Make sure the user has a default workspace and file loose jobs into it.

    An existing default is returned as is. Otherwise a workspace named
    "Default workspace" is promoted, or created, and every unassigned job
    moves into it.
    """
    if not body.user_id:
        raise bad_request("userId is required")
    user_id = body.user_id

    existing = repo.get_default_workspace(session, user_id)
    if existing is not None:
        return {"success": True, "workspace": WorkspaceOut.model_validate(existing), "isNew": False}

    named = repo.get_workspace_by_name(session, user_id, DEFAULT_WORKSPACE_NAME)
    if named is not None:
        repo.set_default_workspace(session, user_id, named.id)
        workspace_id, is_new = named.id, False
    else:
        created = repo.create_workspace(
            session,
            WorkspaceEntity(
                id=repo.new_id(),
                user_id=user_id,
                name=DEFAULT_WORKSPACE_NAME,
                description=DEFAULT_WORKSPACE_DESCRIPTION,
                color=DEFAULT_WORKSPACE_COLOR,
                is_default=True,
            ),
        )
        workspace_id, is_new = created.id, True

    moved = repo.move_jobs(session, user_id, None, workspace_id)
    repo.commit(session)
    logger.info(f"Initialized default workspace {workspace_id} for {user_id} ({moved} jobs moved)")
    workspace = repo.get_workspace(session, workspace_id)
    return {"success": True, "workspace": WorkspaceOut.model_validate(workspace), "isNew": is_new}


@router.get("/workspaces/current")
def get_current_workspace(
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    """The workspace the user last selected, else their default."""
    user_id = user_id or get_default_user_id()
    current_id = SettingsService(session).get_current_workspace_id(user_id)
    workspace = repo.get_workspace(session, current_id) if current_id else None
    if workspace is None:
        workspace = repo.get_default_workspace(session, user_id)
    return {
        "success": True,
        "workspaceId": workspace.id if workspace else None,
        "workspace": WorkspaceOut.model_validate(workspace) if workspace else None,
    }


@router.put("/workspaces/current")
def set_current_workspace(
    body: CurrentWorkspaceRequest, session: DbSession = Depends(get_db_session)
) -> dict:
    if not body.workspace_id:
        raise bad_request("workspaceId is required")
    workspace = repo.get_workspace(session, body.workspace_id)
    if workspace is None:
        raise not_found("Workspace")
    SettingsService(session).set_current_workspace_id(
        body.user_id or get_default_user_id(), workspace.id
    )
    repo.commit(session)
    return {"success": True, "workspaceId": workspace.id}


@router.get("/workspaces/{workspace_id}")
def get_workspace(
    workspace_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(JOBS_PER_PAGE, ge=1, le=200),
    session: DbSession = Depends(get_db_session),
) -> dict:
    """Workspace with one page of its jobs, newest first."""
    workspace = repo.get_workspace(session, workspace_id)
    if workspace is None:
        raise not_found("Workspace")
    jobs, total = repo.list_jobs(
        session, workspace.user_id, page=page, limit=limit, workspace_id=workspace_id
    )
    return {
        "success": True,
        "workspace": WorkspaceOut.model_validate(workspace),
        "jobs": [JobOut.model_validate(j) for j in jobs],
        "pagination": {
            "currentPage": page,
            "totalPages": math.ceil(total / limit),
            "totalJobs": total,
            "itemsPerPage": limit,
        },
    }


@router.put("/workspaces/{workspace_id}")
def update_workspace(
    workspace_id: str, body: WorkspaceUpdate, session: DbSession = Depends(get_db_session)
) -> dict:
    """Update a workspace. Making it default unsets the user's other defaults.

    Raises:
        ApiError: 404 if missing, 409 if the new name is taken.
    """
    workspace = repo.get_workspace(session, workspace_id)
    if workspace is None:
        raise not_found("Workspace")
    if body.name and body.name != workspace.name:
        if repo.get_workspace_by_name(session, workspace.user_id, body.name) is not None:
            raise _duplicate_name()

    updated = repo.update_workspace(
        session,
        workspace_id,
        name=body.name,
        description=body.description,
        color=body.color,
        is_default=body.is_default,
    )
    repo.commit(session)
    return {"success": True, "workspace": WorkspaceOut.model_validate(updated)}


@router.delete("/workspaces/{workspace_id}")
def delete_workspace(workspace_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    """Delete a workspace, moving its jobs to the default workspace.

    Raises:
        ApiError: 404 if missing, 400 for the default workspace.
    """
    workspace = repo.get_workspace(session, workspace_id)
    if workspace is None:
        raise not_found("Workspace")
    if workspace.is_default:
        raise bad_request("The default workspace cannot be deleted")

    default = repo.get_default_workspace(session, workspace.user_id)
    moved = repo.move_jobs(
        session, workspace.user_id, workspace_id, default.id if default else None
    )
    repo.delete_workspace(session, workspace_id)
    repo.commit(session)
    logger.info(f"Deleted workspace {workspace_id}; {moved} jobs reassigned")
    return {"success": True, "message": "Workspace deleted successfully"}


@router.put("/workspaces/{workspace_id}/jobs/{job_id}")
def move_job(workspace_id: str, job_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    """Move a job into a workspace owned by the same user."""
    workspace = repo.get_workspace(session, workspace_id)
    if workspace is None:
        raise not_found("Workspace")
    job = repo.get_job(session, job_id)
    if job is None:
        raise not_found("Job")
    if workspace.user_id != job.user_id:
        raise ApiError(403, "Workspace and job must belong to the same user")

    repo.set_job_workspace(session, job_id, workspace_id)
    repo.commit(session)
    return {"success": True, "job": JobOut.model_validate(repo.get_job(session, job_id))}


@router.delete("/workspaces/{workspace_id}/jobs/{job_id}")
def remove_job(workspace_id: str, job_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    job = repo.get_job(session, job_id)
    if job is None:
        raise not_found("Job")
    if job.workspace_id != workspace_id:
        raise bad_request("Job is not in the specified workspace")

    repo.set_job_workspace(session, job_id, None)
    repo.commit(session)
    return {"success": True, "job": JobOut.model_validate(repo.get_job(session, job_id))}
