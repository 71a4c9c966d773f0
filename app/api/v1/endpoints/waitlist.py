# app/api/v1/endpoints/waitlist.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api import deps
from app.crud.crud_waitlist import waitlist_entry as crud_waitlist
from app.db.session import get_db
from app.schemas.token import TokenPayload
from app.schemas.waitlist import (
    WaitlistEntry,
    WaitlistJoin,
    WaitlistPriorityUpdate,
    WaitlistStatus,
)
from app.services.workshops.invitation_service import InvitationService

router = APIRouter(tags=["Waitlist"])


@router.post("/waitlist", response_model=WaitlistEntry, status_code=status.HTTP_201_CREATED)
def join_waitlist(
    entry_in: WaitlistJoin,
    service: InvitationService = Depends(deps.get_invitation_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Add a person to the invitation pool. Members may only add themselves;
    coordinators may add anyone, including non-members.
    """
    if not current_user.is_coordinator:
        entry_in.member_id = current_user.sub
    return service.join_waitlist(entry_in)


@router.get("/waitlist", response_model=List[WaitlistEntry])
def list_waitlist(
    status_filter: Optional[WaitlistStatus] = WaitlistStatus.waiting,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return crud_waitlist.get_multi_by_status(
        db,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=min(limit, 500),
    )


@router.put("/waitlist/{entry_id}/priority", response_model=WaitlistEntry)
def prioritize_candidate(
    entry_id: str,
    priority_in: WaitlistPriorityUpdate,
    service: InvitationService = Depends(deps.get_invitation_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return service.prioritize_candidate(entry_id, priority_in.priority)


@router.delete("/waitlist/{entry_id}", response_model=WaitlistEntry)
def withdraw_from_waitlist(
    entry_id: str,
    service: InvitationService = Depends(deps.get_invitation_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return service.withdraw(entry_id)
