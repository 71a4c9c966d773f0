# app/api/v1/endpoints/registrations.py
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api import deps
from app.core.limiter import limiter
from app.crud.crud_registration import registration as crud_registration
from app.models.registration import Registration as RegistrationModel
from app.schemas.registration import (
    PaymentStart,
    Registration,
    RegistrationCancel,
    RegistrationCreate,
    RegistrationWithToken,
)
from app.schemas.token import TokenPayload
from app.services.workshops.registration_service import RegistrationService

router = APIRouter(tags=["Registrations"])


def get_registration_or_404(service: RegistrationService, registration_id: str) -> RegistrationModel:
    registration = crud_registration.get(service.db, registration_id)
    if registration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    return registration


def ensure_owner_or_coordinator(registration: RegistrationModel, user: TokenPayload) -> None:
    if user.is_coordinator:
        return
    if registration.member_id is None or registration.member_id != user.sub:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")


@router.post(
    "/workshops/{workshop_id}/registrations",
    response_model=RegistrationWithToken,
    status_code=status.HTTP_201_CREATED,
)
def create_registration(
    workshop_id: str,
    registration_in: RegistrationCreate,
    service: RegistrationService = Depends(deps.get_registration_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Register directly for a published workshop. Members register themselves;
    coordinators can register anyone, including non-members by email.
    """
    if not current_user.is_coordinator:
        registration_in.member_id = current_user.sub
    return service.register(workshop_id, registration_in)


@router.post("/registrations/{registration_id}/cancel", response_model=Registration)
def cancel_registration(
    registration_id: str,
    cancel_in: RegistrationCancel,
    service: RegistrationService = Depends(deps.get_registration_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Cancel without refund. Only coordinators can put the attendee back on the waitlist."""
    registration = get_registration_or_404(service, registration_id)
    ensure_owner_or_coordinator(registration, current_user)
    requeue = cancel_in.requeue and current_user.is_coordinator
    return service.cancel(
        registration_id,
        cancelled_by=current_user.sub,
        requeue=requeue,
        priority=cancel_in.priority if requeue else None,
    )


@router.post("/payments/{token}", response_model=PaymentStart)
@limiter.limit("20/minute")
def start_payment(
    request: Request,
    token: str,
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """
    Public: resolve an emailed payment link to a checkout. Calling it again
    returns the same checkout while it is still payable.
    """
    result = service.start_payment(token)
    session = result.session
    return PaymentStart(
        registration_id=result.registration.id,
        amount=result.amount,
        currency=result.currency,
        client_secret=session.client_secret if session else None,
        payment_session_id=session.id if session else None,
        expires_at=session.expires_at if session else None,
        status=result.registration.status,
    )
