"""Presets API endpoints.

GET /api/presets - List a user's presets
POST /api/presets - Save a preset
DELETE /api/presets/{preset_id} - Delete a preset
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from engui.api.app import get_db_session
from engui.api.errors import bad_request, not_found
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.domain import PresetEntity
from engui.models.types import PresetCreate, PresetOut

router = APIRouter()


@router.get("/presets")
def list_presets(
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> dict:
    presets = repo.list_presets(session, user_id)
    return {"success": True, "presets": [PresetOut.model_validate(p) for p in presets]}


@router.post("/presets", status_code=201)
def create_preset(body: PresetCreate, session: DbSession = Depends(get_db_session)) -> dict:
    """Save generation options under a name.

    Raises:
        ApiError: 400 if userId, name, type or options is missing.
    """
    if not (body.user_id and body.name and body.type and body.options is not None):
        raise bad_request("Missing required fields")
    preset = repo.create_preset(
        session,
        PresetEntity(
            id=repo.new_id(),
            user_id=body.user_id,
            name=body.name,
            type=body.type,
            options=body.options,
        ),
    )
    repo.commit(session)
    return {"success": True, "preset": PresetOut.model_validate(preset)}


@router.delete("/presets/{preset_id}")
def delete_preset(preset_id: str, session: DbSession = Depends(get_db_session)) -> dict:
    if not repo.delete_preset(session, preset_id):
        raise not_found("Preset")
    repo.commit(session)
    return {"success": True, "message": "Preset deleted successfully"}
