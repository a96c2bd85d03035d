"""Jobs API endpoints.

GET /api/jobs - List a user's jobs (paginated)
POST /api/jobs - Record a job
GET /api/jobs/{job_id} - Get job
PATCH /api/jobs/{job_id} - Update job
DELETE /api/jobs/{job_id} - Delete job
POST /api/jobs/delete - Delete job by id in body
POST /api/jobs/favorite - Toggle favorite
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from engui.api.app import get_db_session
from engui.api.errors import not_found, validate_required_fields
from engui.config import get_default_user_id
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import JobEntity
from engui.models.types import (
    JobCreate,
    JobIdRequest,
    JobListResponse,
    JobOut,
    JobUpdate,
    Pagination,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UNASSIGNED = "unassigned"


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(
    user_id: str | None = Query(None, alias="userId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    only_processing: bool = Query(False, alias="onlyProcessing"),
    workspace_id: str | None = Query(None, alias="workspaceId"),
    session: DbSession = Depends(get_db_session),
) -> JobListResponse:
    """List jobs newest first.

    Args:
        user_id: Owner; defaults to the local user.
        page: 1-based page number.
        limit: Page size.
        only_processing: Only jobs still processing.
        workspace_id: Workspace filter; "unassigned" selects jobs without one.
        session: Database session (injected).
    """
    jobs, total = repo.list_jobs(
        session,
        user_id or get_default_user_id(),
        page=page,
        limit=limit,
        only_processing=only_processing,
        workspace_id=None if workspace_id == UNASSIGNED else workspace_id,
        unassigned=workspace_id == UNASSIGNED,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return JobListResponse(
        jobs=[JobOut.model_validate(j) for j in jobs],
        pagination=Pagination(
            page=page,
            limit=limit,
            total_count=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


@router.post("/jobs", status_code=201)
def create_job(body: JobCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Record a job produced outside the generation routes.

    Raises:
        ApiError: 400 if userId, type or resultUrl is missing.
    """
    validate_required_fields(body.model_dump(by_alias=True), ["userId", "type", "resultUrl"])
    job = repo.create_job(
        session,
        JobEntity(
            id=repo.new_id(),
            user_id=body.user_id,
            workspace_id=body.workspace_id,
            type=body.type,
            status=body.status,
            prompt=body.prompt,
            model_id=body.model_id,
            options=body.options or {},
            result_url=body.result_url,
            thumbnail_url=body.thumbnail_url,
            completed_at=datetime.now(timezone.utc) if body.status == "completed" else None,
        ),
    )
    repo.commit(session)
    return {"success": True, "job": JobOut.model_validate(job)}


@router.get("/jobs/{job_id}")
def get_job(job_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    job = repo.get_job(session, job_id)
    if job is None:
        raise not_found("Job")
    return {"success": True, "job": JobOut.model_validate(job)}


@router.patch("/jobs/{job_id}")
def update_job(
    job_id: str, body: JobUpdate, session: DbSession = Depends(get_db_session)
) -> dict:
    job = repo.update_job(
        session,
        job_id,
        status=body.status,
        result_url=body.result_url,
        thumbnail_url=body.thumbnail_url,
        prompt=body.prompt,
        options=body.options,
    )
    if job is None:
        raise not_found("Job")
    repo.commit(session)
    return {"success": True, "job": JobOut.model_validate(job)}


def _delete(session: DbSession, job_id: str) -> dict:
    if not repo.delete_job(session, job_id):
        raise not_found("Job")
    repo.commit(session)
    logger.info(f"Deleted job {job_id}")
    return {"success": True, "message": "Job deleted successfully"}


@router.delete("/jobs/{job_id}")
def delete_job(job_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    return _delete(session, job_id)


@router.post("/jobs/delete")
def delete_job_by_body(body: JobIdRequest, session: DbSession = Depends(get_db_session)) -> dict:
    validate_required_fields(body.model_dump(by_alias=True), ["jobId"])
    return _delete(session, body.job_id)


@router.post("/jobs/favorite")
def toggle_favorite(body: JobIdRequest, session: DbSession = Depends(get_db_session)) -> dict:
    """Flip a job's favorite flag."""
    validate_required_fields(body.model_dump(by_alias=True), ["jobId"])
    job = repo.toggle_job_favorite(session, body.job_id)
    if job is None:
        raise not_found("Job")
    repo.commit(session)
    message = "Job added to favorites" if job.is_favorite else "Job removed from favorites"
    return {"success": True, "isFavorite": job.is_favorite, "message": message}
