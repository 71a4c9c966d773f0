# app/api/v1/endpoints/refunds.py
from typing import Optional

from fastapi import APIRouter, Depends

from app.api import deps
from app.api.v1.endpoints.registrations import ensure_owner_or_coordinator
from app.core.errors import NotFoundError
from app.crud.crud_registration import registration as crud_registration
from app.schemas.refund import Refund, RefundEligibilityOut, RefundRequest
from app.schemas.token import TokenPayload
from app.services.workshops.refund_service import RefundService

router = APIRouter(tags=["Refunds"])


def _load_registration(service: RefundService, registration_id: str, user: TokenPayload):
    registration = crud_registration.get(service.db, registration_id)
    if registration is None:
        raise NotFoundError("Registration not found")
    ensure_owner_or_coordinator(registration, user)
    return registration


@router.get(
    "/registrations/{registration_id}/refund-eligibility",
    response_model=RefundEligibilityOut,
)
def get_refund_eligibility(
    registration_id: str,
    service: RefundService = Depends(deps.get_refund_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    registration = _load_registration(service, registration_id, current_user)
    eligibility = service.is_refund_eligible(registration)
    return RefundEligibilityOut(
        registration_id=registration.id,
        eligible=eligibility.eligible,
        reason=eligibility.reason,
        amount=eligibility.amount,
        deadline=eligibility.deadline,
    )


@router.post("/registrations/{registration_id}/refund", response_model=Optional[Refund])
def request_refund(
    registration_id: str,
    refund_in: RefundRequest,
    service: RefundService = Depends(deps.get_refund_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """
    Request a refund. The registration is refunded and its seat released
    immediately; the money is returned asynchronously. Returns null when
    nothing was paid.
    """
    _load_registration(service, registration_id, current_user)
    return service.request_refund(
        registration_id,
        requested_by=current_user.sub,
        reason=refund_in.reason,
        amount=refund_in.amount,
        reason_details=refund_in.reason_details,
    )
