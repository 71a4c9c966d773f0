# app/services/workshops/messages.py
"""Notification template keys and the variables each template receives."""

from typing import Any, Dict

from app.core.config import settings
from app.models.registration import Registration
from app.models.workshop import Workshop

INVITATION = "workshop_invitation"
PAYMENT_CONFIRMED = "workshop_payment_confirmed"
REGISTRATION_CANCELLED = "workshop_registration_cancelled"
WORKSHOP_CANCELLED = "workshop_cancelled"
REFUND_REQUESTED = "workshop_refund_requested"
REFUND_COMPLETED = "workshop_refund_completed"
ONBOARDING = "workshop_onboarding"
FOLLOW_UP = "workshop_follow_up"
NO_SHOW = "workshop_no_show"


def _money(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency.upper()}"


def workshop_variables(workshop: Workshop) -> Dict[str, Any]:
    return {
        "workshop_id": workshop.id,
        "workshop_title": workshop.title,
        "workshop_location": workshop.location,
        "starts_at": workshop.starts_at.isoformat(),
        "ends_at": workshop.ends_at.isoformat(),
    }


def registration_variables(registration: Registration, workshop: Workshop) -> Dict[str, Any]:
    variables = workshop_variables(workshop)
    variables.update(
        {
            "registration_id": registration.id,
            "full_name": registration.full_name,
        }
    )
    return variables


def invitation_variables(registration: Registration, workshop: Workshop) -> Dict[str, Any]:
    price = workshop.price_member if registration.is_member else workshop.price_non_member
    variables = registration_variables(registration, workshop)
    variables.update(
        {
            "price": _money(price, workshop.currency),
            "payment_link": f"{settings.SITE_URL}/workshops/pay/{registration.payment_token}",
            "payment_link_expires_at": (
                registration.payment_token_expires_at.isoformat()
                if registration.payment_token_expires_at
                else None
            ),
        }
    )
    return variables


def onboarding_variables(registration: Registration, workshop: Workshop) -> Dict[str, Any]:
    variables = registration_variables(registration, workshop)
    variables["onboarding_link"] = (
        f"{settings.SITE_URL}/workshops/onboarding/{registration.onboarding_token}"
    )
    return variables


def refund_variables(registration: Registration, workshop: Workshop, amount: int, currency: str) -> Dict[str, Any]:
    variables = registration_variables(registration, workshop)
    variables["refund_amount"] = _money(amount, currency)
    return variables
