# app/services/workshops/refund_service.py
"""
Refund engine.

A refund request is split in two steps:

1. Locally, in one transaction: insert the Refund as 'pending', move the
   registration to 'refunded' and release its seat.
2. After commit: ask the processor for the refund. Success moves the refund
   to 'processing' (the webhook later completes it); failure moves it to
   'failed' for the retry job. The registration stays 'refunded' and the
   seat stays released either way.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotEligibleError, NotFoundError, ValidationError
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_capacity import capacity_ledger
from app.crud.crud_refund import refund as crud_refund
from app.crud.crud_registration import registration as crud_registration
from app.models.refund import Refund
from app.models.registration import Registration
from app.services.payment.provider_factory import get_payment_provider
from app.services.payment.provider_interface import (
    CreateRefundParams,
    PaymentError,
    PaymentProviderInterface,
    RefundReason as ProviderRefundReason,
)
from app.schemas.refund import RefundReason
from app.services.workshops import messages

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = ("confirmed", "pre_checked")


@dataclass
class RefundEligibility:
    eligible: bool
    reason: Optional[str] = None
    amount: int = 0
    deadline: Optional[datetime] = None


class RefundService:
    def __init__(
        self,
        db: Session,
        provider: Optional[PaymentProviderInterface] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.provider = provider or get_payment_provider()
        self.notifier = notifier or get_notifier()

    # ------------------------------------------------------------------ #
    # Eligibility
    # ------------------------------------------------------------------ #

    def is_refund_eligible(
        self,
        registration: Registration,
        now: Optional[datetime] = None,
        implied: bool = False,
    ) -> RefundEligibility:
        """
        `implied` is set when the workshop itself is being cancelled: the
        refund window and workshop status no longer apply.
        """
        now = now or datetime.now(timezone.utc)
        workshop = registration.workshop

        if crud_refund.get_by_registration(self.db, registration_id=registration.id):
            return RefundEligibility(False, "A refund was already requested")
        if registration.status not in REFUNDABLE_STATUSES:
            return RefundEligibility(False, f"Registration is {registration.status}")

        amount = registration.amount_paid or 0
        if implied:
            return RefundEligibility(True, amount=amount)

        if workshop.status in ("finished", "cancelled"):
            return RefundEligibility(False, f"Workshop is {workshop.status}")
        if workshop.refund_window_days is None:
            return RefundEligibility(False, "This workshop is non-refundable")

        deadline = workshop.starts_at - timedelta(days=workshop.refund_window_days)
        if now > deadline:
            return RefundEligibility(
                False, "The refund deadline has passed", deadline=deadline
            )
        return RefundEligibility(True, amount=amount, deadline=deadline)

    # ------------------------------------------------------------------ #
    # Request
    # ------------------------------------------------------------------ #

    def create_pending_refund(
        self,
        registration: Registration,
        *,
        reason: RefundReason,
        requested_by: Optional[str],
        amount: Optional[int] = None,
        reason_details: Optional[str] = None,
        now: datetime,
        implied: bool = False,
    ) -> Optional[Refund]:
        """
        Local half of a refund. Does not commit. Returns None when nothing was
        paid, in which case the registration is only marked refunded.
        """
        if registration.status == "refunded" or crud_refund.get_by_registration(
            self.db, registration_id=registration.id
        ):
            raise ConflictError("A refund was already requested")

        eligibility = self.is_refund_eligible(registration, now=now, implied=implied)
        if not eligibility.eligible:
            raise NotEligibleError(eligibility.reason or "Not eligible for a refund")

        refund_amount = eligibility.amount
        if amount is not None and amount != refund_amount:
            if not settings.ALLOW_PARTIAL_REFUNDS:
                raise ValidationError("Partial refunds are not enabled")
            if amount <= 0 or amount > refund_amount:
                raise ValidationError("Refund amount must be between 1 and the amount paid")
            refund_amount = amount

        moved = crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=REFUNDABLE_STATUSES,
            values={"status": "refunded", "refunded_at": now},
        )
        if not moved:
            raise ConflictError("Registration changed while refunding, try again")
        capacity_ledger.release(self.db, workshop_id=registration.workshop_id)

        if refund_amount == 0:
            logger.info("Registration %s refunded without payment", registration.id)
            return None

        refund = Refund(
            registration_id=registration.id,
            workshop_id=registration.workshop_id,
            provider_code=self.provider.code,
            payment_intent_id=registration.payment_intent_id,
            status="pending",
            reason=reason.value,
            reason_details=reason_details,
            amount=refund_amount,
            currency=registration.currency or settings.DEFAULT_CURRENCY,
            requested_by=requested_by,
            requested_at=now,
        )
        refund.idempotency_key = f"refund_{registration.id}"
        self.db.add(refund)
        self.db.flush()
        return refund

    def request_refund(
        self,
        registration_id: str,
        *,
        requested_by: Optional[str],
        reason: RefundReason = RefundReason.requested_by_customer,
        amount: Optional[int] = None,
        reason_details: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Refund]:
        now = now or datetime.now(timezone.utc)
        registration = crud_registration.get_for_update(self.db, registration_id)
        if registration is None:
            raise NotFoundError("Registration not found")

        try:
            refund = self.create_pending_refund(
                registration,
                reason=reason,
                requested_by=requested_by,
                amount=amount,
                reason_details=reason_details,
                now=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Refund requested for registration %s by %s", registration.id, requested_by
        )
        if refund is None:
            return None

        self.submit_refund(refund, now=now)
        self.notifier.send(
            messages.REFUND_REQUESTED,
            registration.email,
            messages.refund_variables(
                registration, registration.workshop, refund.amount, refund.currency
            ),
        )
        return refund

    def submit_refund(self, refund: Refund, now: Optional[datetime] = None) -> Refund:
        """
        Processor half of a refund. Commits the outcome; never raises for
        processor failures.
        """
        now = now or datetime.now(timezone.utc)
        if not refund.payment_intent_id:
            refund.status = "failed"
            refund.failure_code = "NO_PAYMENT"
            refund.failure_message = "No payment reference on the registration"
            self.db.commit()
            logger.error("Refund %s has no payment to refund", refund.id)
            return refund

        attempt = refund.attempts + 1
        idempotency_key = refund.idempotency_key
        if attempt > 1:
            idempotency_key = f"{refund.idempotency_key}:{attempt}"

        try:
            result = self.provider.create_refund(
                CreateRefundParams(
                    payment_id=refund.payment_intent_id,
                    idempotency_key=idempotency_key,
                    amount=refund.amount,
                    reason=ProviderRefundReason(refund.reason),
                    metadata={
                        "refund_id": refund.id,
                        "registration_id": refund.registration_id,
                        "workshop_id": refund.workshop_id,
                    },
                )
            )
        except PaymentError as e:
            refund.attempts = attempt
            if e.code == "ALREADY_REFUNDED":
                refund.status = "completed"
                refund.completed_at = now
                refund.processed_at = now
                logger.info("Refund %s: payment was already refunded", refund.id)
            else:
                refund.status = "failed"
                refund.failure_code = e.code
                refund.failure_message = e.message
                logger.error(
                    "Refund %s failed at processor (attempt %d): %s",
                    refund.id, attempt, e.message,
                )
            self.db.commit()
            return refund

        refund.attempts = attempt
        refund.status = "processing"
        refund.provider_refund_id = result.refund_id
        refund.processed_at = now
        refund.failure_code = None
        refund.failure_message = None
        self.db.commit()
        logger.info("Refund %s submitted as %s", refund.id, result.refund_id)
        return refund

    # ------------------------------------------------------------------ #
    # Processor callbacks
    # ------------------------------------------------------------------ #

    def _find_refund(
        self, provider_refund_id: Optional[str], payment_intent_id: Optional[str]
    ) -> Optional[Refund]:
        refund = None
        if provider_refund_id:
            refund = crud_refund.get_by_provider_refund_id(
                self.db, provider_refund_id=provider_refund_id
            )
        if refund is None and payment_intent_id:
            refund = crud_refund.get_by_payment_intent(
                self.db, payment_intent_id=payment_intent_id
            )
        return refund

    def handle_refund_succeeded(
        self,
        provider_refund_id: Optional[str],
        payment_intent_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Refund]:
        now = now or datetime.now(timezone.utc)
        refund = self._find_refund(provider_refund_id, payment_intent_id)
        if refund is None:
            logger.warning(
                "Refund callback for unknown refund %s / %s",
                provider_refund_id, payment_intent_id,
            )
            return None

        values = {"status": "completed", "completed_at": now}
        if provider_refund_id:
            values["provider_refund_id"] = provider_refund_id
        changed = crud_refund.transition(
            self.db,
            refund_id=refund.id,
            from_statuses=("pending", "processing", "failed"),
            values=values,
        )
        self.db.commit()
        if changed:
            logger.info("Refund %s completed", refund.id)
            registration = refund.registration
            self.notifier.send(
                messages.REFUND_COMPLETED,
                registration.email,
                messages.refund_variables(
                    registration, registration.workshop, refund.amount, refund.currency
                ),
            )
        return refund

    def handle_refund_failed(
        self,
        provider_refund_id: Optional[str],
        message: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> Optional[Refund]:
        refund = self._find_refund(provider_refund_id, payment_intent_id)
        if refund is None:
            logger.warning("Refund failure callback for unknown refund %s", provider_refund_id)
            return None

        changed = crud_refund.transition(
            self.db,
            refund_id=refund.id,
            from_statuses=("pending", "processing"),
            values={
                "status": "failed",
                "failure_code": "PROVIDER_FAILED",
                "failure_message": message or "Refund failed at the processor",
            },
        )
        self.db.commit()
        if changed:
            logger.error("Refund %s failed at processor: %s", refund.id, message)
        return refund

    # ------------------------------------------------------------------ #
    # Retry
    # ------------------------------------------------------------------ #

    def retry_failed_refunds(self, now: Optional[datetime] = None) -> int:
        """Re-submit failed refunds that still have attempts left."""
        now = now or datetime.now(timezone.utc)
        retried = 0
        for refund in crud_refund.get_retryable(
            self.db, max_attempts=settings.REFUND_MAX_ATTEMPTS
        ):
            if refund.failure_code == "NO_PAYMENT":
                continue
            self.submit_refund(refund, now=now)
            retried += 1
        return retried

    def list_for_workshop(self, workshop_id: str) -> List[Refund]:
        return crud_refund.get_by_workshop(self.db, workshop_id=workshop_id)
