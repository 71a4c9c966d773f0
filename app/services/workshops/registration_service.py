# app/services/workshops/registration_service.py
"""
Registration state machine.

    invited --(payment succeeded)--> confirmed --(onboarding)--> pre_checked
    pre_checked --(check-in)--> attended
    invited/confirmed --(cancel)--> cancelled
    confirmed/pre_checked --(refund)--> refunded       (refund_service)
    confirmed/pre_checked --(workshop finished)--> no_show

Payment callbacks are keyed on the processor artifact id and applied as
conditional updates, so a redelivered webhook is a no-op.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    CapacityExceededError,
    ConflictError,
    NotEligibleError,
    NotFoundError,
)
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_capacity import capacity_ledger
from app.crud.crud_payment_session import payment_session as crud_payment_session
from app.crud.crud_registration import registration as crud_registration
from app.crud.crud_waitlist import external_person as crud_external_person
from app.crud.crud_waitlist import waitlist_entry as crud_waitlist
from app.crud.crud_workshop import workshop as crud_workshop
from app.models.payment_session import PaymentSession
from app.models.registration import Registration
from app.schemas.registration import RegistrationCreate
from app.services.payment.provider_factory import get_payment_provider
from app.services.payment.provider_interface import PaymentProviderInterface
from app.services.payment.session_cache import PaymentSessionCache
from app.services.workshops import messages
from app.services.workshops.invitation_service import payment_token_expiry
from app.utils.security import generate_link_token

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("invited", "confirmed")
PAYMENT_INTENT_PREFIX = "workshop_registration:"


def payment_intent_key(registration_id: str) -> str:
    return f"{PAYMENT_INTENT_PREFIX}{registration_id}"


@dataclass
class PaymentStartResult:
    registration: Registration
    amount: int
    currency: str
    session: Optional[PaymentSession] = None


class RegistrationService:
    def __init__(
        self,
        db: Session,
        provider: Optional[PaymentProviderInterface] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.provider = provider or get_payment_provider()
        self.notifier = notifier or get_notifier()
        self.sessions = PaymentSessionCache(self.provider)

    def register(
        self,
        workshop_id: str,
        registration_in: RegistrationCreate,
        now: Optional[datetime] = None,
    ) -> Registration:
        """
        Direct registration outside the waitlist. Takes one seat atomically
        and returns an invited registration with its payment token.
        """
        now = now or datetime.now(timezone.utc)
        workshop = crud_workshop.get_for_update(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        if workshop.status != "published" or workshop.starts_at <= now:
            raise NotEligibleError("Registration is not open for this workshop")

        member_id = registration_in.member_id
        external_person_id = None
        if member_id is None:
            external_person_id = crud_external_person.get_or_create(
                self.db, attendee=registration_in
            ).id

        if crud_registration.get_active_for_attendee(
            self.db,
            workshop_id=workshop.id,
            member_id=member_id,
            external_person_id=external_person_id,
        ):
            self.db.rollback()
            raise ConflictError("Already registered for this workshop")

        if not capacity_ledger.reserve(self.db, workshop_id=workshop.id):
            self.db.rollback()
            raise CapacityExceededError("This workshop is full")

        registration = Registration(
            workshop_id=workshop.id,
            member_id=member_id,
            external_person_id=external_person_id,
            email=registration_in.email.strip().lower(),
            full_name=f"{registration_in.first_name} {registration_in.last_name}".strip(),
            status="invited",
            invited_at=now,
            payment_token=generate_link_token(),
            payment_token_expires_at=payment_token_expiry(workshop, now),
            currency=workshop.currency,
        )
        self.db.add(registration)
        try:
            self.db.commit()
        except IntegrityError:
            # Partial unique index: a concurrent request registered the same person
            self.db.rollback()
            raise ConflictError("Already registered for this workshop")
        self.db.refresh(registration)

        logger.info("Registration %s created for workshop %s", registration.id, workshop.id)
        self.notifier.send(
            messages.INVITATION,
            registration.email,
            messages.invitation_variables(registration, workshop),
        )
        return registration

    # ------------------------------------------------------------------ #
    # Payment
    # ------------------------------------------------------------------ #

    def start_payment(self, token: str, now: Optional[datetime] = None) -> PaymentStartResult:
        """
        Resolve a payment link token to a checkout artifact, reusing the
        cached one when it is still payable.
        """
        now = now or datetime.now(timezone.utc)
        registration = crud_registration.get_by_payment_token(self.db, token=token)
        if registration is None:
            raise NotFoundError("Payment link not found")
        if registration.status != "invited":
            raise ConflictError("This payment link has already been used")
        if registration.payment_token_expires_at and registration.payment_token_expires_at < now:
            raise NotEligibleError("This payment link has expired")

        workshop = registration.workshop
        if workshop.status != "published":
            raise NotEligibleError("This workshop is no longer open")
        if crud_registration.count_paid(self.db, workshop_id=workshop.id) >= workshop.capacity:
            raise NotEligibleError("This workshop is fully booked")

        amount = workshop.price_member if registration.is_member else workshop.price_non_member
        if amount == 0:
            self._confirm(registration, amount_paid=0, now=now)
            return PaymentStartResult(registration, amount=0, currency=workshop.currency)

        session = self.sessions.get_or_create_session(
            self.db,
            user_id=registration.attendee_key,
            intent_key=payment_intent_key(registration.id),
            amount=amount,
            currency=workshop.currency,
            description=f"Workshop: {workshop.title}",
            customer_email=registration.email,
            customer_name=registration.full_name,
            metadata={"registration_id": registration.id, "workshop_id": workshop.id},
            now=now,
        )
        registration.payment_session_id = session.id
        registration.payment_intent_id = session.artifact_id
        self.db.commit()
        self.db.refresh(registration)
        return PaymentStartResult(registration, amount=amount, currency=workshop.currency, session=session)

    def _confirm(
        self,
        registration: Registration,
        *,
        amount_paid: int,
        now: datetime,
        artifact_id: Optional[str] = None,
    ) -> bool:
        values = {"status": "confirmed", "confirmed_at": now, "amount_paid": amount_paid}
        if artifact_id is not None:
            values["payment_intent_id"] = artifact_id
        confirmed = crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=("invited",),
            values=values,
        )
        if not confirmed:
            self.db.commit()
            return False
        self.db.commit()
        logger.info("Registration %s confirmed", registration.id)
        self.notifier.send(
            messages.PAYMENT_CONFIRMED,
            registration.email,
            messages.registration_variables(registration, registration.workshop),
        )
        return True

    def _registration_for_artifact(self, artifact_id: str) -> Optional[Registration]:
        registration = crud_registration.get_by_payment_intent(
            self.db, payment_intent_id=artifact_id
        )
        if registration is not None:
            return registration
        # Replaced artifacts are only reachable through their session
        session = crud_payment_session.get_by_artifact(self.db, artifact_id=artifact_id)
        if session is None or not session.intent_key.startswith(PAYMENT_INTENT_PREFIX):
            return None
        return crud_registration.get(self.db, session.intent_key[len(PAYMENT_INTENT_PREFIX):])

    def handle_payment_succeeded(
        self,
        artifact_id: str,
        amount: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Registration]:
        now = now or datetime.now(timezone.utc)
        registration = self._registration_for_artifact(artifact_id)
        if registration is None:
            logger.warning("Payment succeeded for unknown artifact %s", artifact_id)
            return None

        session = self.sessions.mark_used_by_artifact(self.db, artifact_id=artifact_id, now=now)

        if registration.status != "invited":
            self.db.commit()
            if registration.status in ("cancelled",):
                logger.error(
                    "Payment %s received for cancelled registration %s, needs manual refund",
                    artifact_id, registration.id,
                )
            else:
                logger.info(
                    "Payment %s already applied to registration %s", artifact_id, registration.id
                )
            return registration

        paid = amount
        if paid is None:
            paid = session.total_amount if session is not None else 0
        self._confirm(registration, amount_paid=paid, now=now, artifact_id=artifact_id)
        return registration

    def handle_payment_failed(
        self, artifact_id: str, failure_message: Optional[str] = None
    ) -> Optional[Registration]:
        """The registration stays invited; the attendee can retry with the same link."""
        registration = self._registration_for_artifact(artifact_id)
        logger.warning(
            "Payment failed for artifact %s (registration %s): %s",
            artifact_id, registration.id if registration else None, failure_message,
        )
        return registration

    # ------------------------------------------------------------------ #
    # Cancellation
    # ------------------------------------------------------------------ #

    def cancel(
        self,
        registration_id: str,
        *,
        cancelled_by: Optional[str],
        requeue: bool = False,
        priority: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Registration:
        """
        Cancel an invited or confirmed registration without refund, freeing
        its seat. With `requeue` the attendee goes back on the waitlist.
        """
        now = now or datetime.now(timezone.utc)
        registration = crud_registration.get_for_update(self.db, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")
        if registration.status not in CANCELLABLE_STATUSES:
            raise ConflictError(f"Cannot cancel a registration that is {registration.status}")

        try:
            moved = crud_registration.transition(
                self.db,
                registration_id=registration.id,
                from_statuses=CANCELLABLE_STATUSES,
                values={"status": "cancelled", "cancelled_at": now, "cancelled_by": cancelled_by},
            )
            if not moved:
                raise ConflictError("Registration changed while cancelling, try again")
            capacity_ledger.release(self.db, workshop_id=registration.workshop_id)
            self._update_waitlist_after_cancel(registration, requeue=requeue, priority=priority)
            artifact_ids = self.sessions.retire_sessions(
                self.db,
                user_id=registration.attendee_key,
                intent_key=payment_intent_key(registration.id),
                now=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.sessions.cancel_artifacts(artifact_ids)
        logger.info("Registration %s cancelled by %s", registration.id, cancelled_by)
        self.notifier.send(
            messages.REGISTRATION_CANCELLED,
            registration.email,
            messages.registration_variables(registration, registration.workshop),
        )
        return registration

    def _update_waitlist_after_cancel(
        self, registration: Registration, *, requeue: bool, priority: Optional[int]
    ) -> None:
        if registration.waitlist_entry_id:
            entry = crud_waitlist.get(self.db, registration.waitlist_entry_id)
        else:
            entry = crud_waitlist.get_for_attendee(
                self.db,
                member_id=registration.member_id,
                external_person_id=registration.external_person_id,
            )
        if entry is None:
            return
        entry.cancelled_workshop_id = registration.workshop_id
        if requeue:
            entry.status = "waiting"
            if priority is not None:
                entry.priority = priority

    def get_for_workshop(self, workshop_id: str, statuses: Optional[List[str]] = None) -> List[Registration]:
        return crud_registration.get_by_workshop(
            self.db, workshop_id=workshop_id, statuses=statuses
        )
