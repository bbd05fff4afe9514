"""
Account event feed for the security UI.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.identity import CurrentUser
from app.crud import account_event as crud_event
from app.schemas.account_event import AccountEventResponse

router = APIRouter(prefix="/account", tags=["Account Events"])


@router.get("/events", response_model=List[AccountEventResponse])
def list_account_events(
    limit: int = Query(20, ge=1, le=100),
    caller: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Most recent security events on the caller's account, newest first."""
    events = crud_event.list_recent_events(db, caller.id, limit=limit)
    return [AccountEventResponse.model_validate(event) for event in events]
