# app/api/v1/endpoints/onboarding.py
"""
Onboarding and check-in endpoints.

The onboarding and self check-in routes are public (the emailed token or the
attendee's email is the credential) and therefore rate limited.
"""

from typing import List

from fastapi import APIRouter, Depends, Request

from app.api import deps
from app.core.limiter import limiter
from app.schemas.onboarding import (
    AttendanceBatch,
    CheckInSubmit,
    OnboardingInfo,
    OnboardingSubmit,
    RosterEntry,
)
from app.schemas.registration import Registration
from app.schemas.token import TokenPayload
from app.services.workshops.onboarding_service import OnboardingService

router = APIRouter(tags=["Onboarding & Check-in"])


@router.get("/onboarding/{token}", response_model=OnboardingInfo)
@limiter.limit("30/minute")
def get_onboarding(
    request: Request,
    token: str,
    service: OnboardingService = Depends(deps.get_onboarding_service),
):
    registration = service.get_onboarding(token)
    workshop = registration.workshop
    return OnboardingInfo(
        registration_id=registration.id,
        full_name=registration.full_name,
        workshop_id=workshop.id,
        workshop_title=workshop.title,
        starts_at=workshop.starts_at,
        location=workshop.location,
        completed=registration.onboarding_completed_at is not None,
    )


@router.post("/onboarding/{token}", response_model=Registration)
@limiter.limit("10/minute")
def submit_onboarding(
    request: Request,
    token: str,
    submission: OnboardingSubmit,
    service: OnboardingService = Depends(deps.get_onboarding_service),
):
    return service.submit_onboarding(token, submission)


@router.get("/workshops/{workshop_id}/check-in/roster", response_model=List[RosterEntry])
def get_check_in_roster(
    workshop_id: str,
    service: OnboardingService = Depends(deps.get_onboarding_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return [
        RosterEntry(
            registration_id=r.id,
            full_name=r.full_name,
            email=r.email,
            status=r.status,
            onboarding_completed=r.onboarding_completed_at is not None,
            checked_in_at=r.checked_in_at,
        )
        for r in service.get_check_in_roster(workshop_id)
    ]


@router.post("/workshops/{workshop_id}/check-in", response_model=Registration)
@limiter.limit("30/minute")
def check_in(
    request: Request,
    workshop_id: str,
    submission: CheckInSubmit,
    service: OnboardingService = Depends(deps.get_onboarding_service),
):
    """Self check-in by email on the day of the workshop."""
    return service.check_in(workshop_id, submission)


@router.post("/workshops/{workshop_id}/attendance", response_model=List[Registration])
def mark_attendance(
    workshop_id: str,
    batch: AttendanceBatch,
    service: OnboardingService = Depends(deps.get_onboarding_service),
    current_user: TokenPayload = Depends(deps.require_coordinator),
):
    return service.mark_attendance(workshop_id, batch.updates, marked_by=current_user.sub)
