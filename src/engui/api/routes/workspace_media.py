"""Workspace media API endpoints.

GET /api/workspace-media - List media pinned to a workspace
POST /api/workspace-media - Pin media to a workspace
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from engui.api.app import get_db_session
from engui.api.errors import bad_request, not_found, validate_required_fields
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import WorkspaceMediaEntity
from engui.models.types import WorkspaceMediaCreate, WorkspaceMediaOut

router = APIRouter()


@router.get("/workspace-media")
def list_media(
    workspace_id: str | None = Query(None, alias="workspaceId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    if not workspace_id:
        raise bad_request("workspaceId is required")
    media = repo.list_workspace_media(session, workspace_id)
    return {"success": True, "media": [WorkspaceMediaOut.model_validate(m) for m in media]}


@router.post("/workspace-media", status_code=201)
def create_media(body: WorkspaceMediaCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Pin a media URL to a workspace. A client-supplied id is kept."""
    validate_required_fields(body.model_dump(by_alias=True), ["workspaceId", "type", "url"])
    if repo.get_workspace(session, body.workspace_id) is None:
        raise not_found("Workspace")
    media = repo.create_workspace_media(
        session,
        WorkspaceMediaEntity(
            id=body.id or repo.new_id(),
            workspace_id=body.workspace_id,
            type=body.type,
            url=body.url,
            prompt=body.prompt,
            model_id=body.model_id,
        ),
    )
    repo.commit(session)
    return {"success": True, "media": WorkspaceMediaOut.model_validate(media)}
