# app/api/v1/endpoints/workshops.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api import deps
from app.crud.crud_workshop import workshop as crud_workshop
from app.db.session import get_db
from app.schemas.refund import Refund
from app.schemas.registration import Registration
from app.schemas.token import TokenPayload
from app.schemas.workshop import (
    CapacityChange,
    InterestToggleResult,
    Workshop,
    WorkshopCreate,
    WorkshopStatus,
    WorkshopUpdate,
)
from app.services.workshops.workshop_service import WorkshopService

router = APIRouter(tags=["Workshops"])


@router.post("/workshops", response_model=Workshop, status_code=status.HTTP_201_CREATED)
def create_workshop(
    workshop_in: WorkshopCreate,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    """Create a workshop in draft status."""
    return service.create(workshop_in, created_by=current_user.sub)


@router.get("/workshops", response_model=List[Workshop])
def list_workshops(
    status_filter: Optional[WorkshopStatus] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return crud_workshop.get_multi_by_status(
        db,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=min(limit, 200),
    )


@router.get("/workshops/{workshop_id}", response_model=Workshop)
def get_workshop(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get(workshop_id)


@router.patch("/workshops/{workshop_id}", response_model=Workshop)
def update_workshop(
    workshop_id: str,
    workshop_in: WorkshopUpdate,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    """Edit a draft workshop."""
    return service.update(workshop_id, workshop_in)


@router.delete("/workshops/{workshop_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workshop(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    """Delete a draft workshop that nobody registered for."""
    service.delete(workshop_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/workshops/{workshop_id}/publish", response_model=Workshop)
def publish_workshop(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    """Publish the workshop and invite the first batch from the waitlist."""
    return service.publish(workshop_id)


@router.post("/workshops/{workshop_id}/cancel", response_model=Workshop)
def cancel_workshop(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    """Cancel the workshop and refund everyone who paid."""
    return service.cancel(workshop_id, cancelled_by=current_user.sub)


@router.post("/workshops/{workshop_id}/finish", response_model=Workshop)
def finish_workshop(
    workshop_id: str,
    force: bool = False,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return service.finish(workshop_id, force=force)


@router.put("/workshops/{workshop_id}/capacity", response_model=Workshop)
def change_capacity(
    workshop_id: str,
    capacity_in: CapacityChange,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return service.change_capacity(workshop_id, capacity_in.capacity)


@router.post("/workshops/{workshop_id}/interest", response_model=InterestToggleResult)
def toggle_interest(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Mark or unmark interest in a planned workshop."""
    interested = service.toggle_interest(workshop_id, current_user.sub)
    return InterestToggleResult(workshop_id=workshop_id, interested=interested)


@router.get("/workshops/{workshop_id}/registrations", response_model=List[Registration])
def list_registrations(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    workshop = service.get(workshop_id)
    return workshop.registrations


@router.get("/workshops/{workshop_id}/refunds", response_model=List[Refund])
def list_refunds(
    workshop_id: str,
    service: WorkshopService = Depends(deps.get_workshop_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    service.get(workshop_id)
    return service.refunds.list_for_workshop(workshop_id)
