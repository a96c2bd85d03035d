"""Credit activity API endpoint.

GET /api/credit-activity - List a user's credit ledger with balance
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from engui.api.app import get_db_session
from engui.config import get_default_user_id
from engui.db import repo
from engui.db.repo import DbSession
from engui.models.types import CreditActivityOut, CreditActivityResponse

router = APIRouter()


@router.get("/credit-activity", response_model=CreditActivityResponse)
def list_credit_activity(
    user_id: str | None = Query(None, alias="userId"),
    session: DbSession = Depends(get_db_session),
) -> CreditActivityResponse:
    """List credit entries newest first.

    Args:
        user_id: Owner; defaults to the local user.
        session: Database session (injected).

    Returns:
        Entries plus the running balance (sum of amounts).
    """
    activities = repo.list_credit_activities(session, user_id or get_default_user_id())
    return CreditActivityResponse(
        activities=[CreditActivityOut.model_validate(a) for a in activities],
        balance=sum(a.amount for a in activities),
    )
