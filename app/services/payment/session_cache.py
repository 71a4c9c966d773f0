# app/services/payment/session_cache.py
"""
Payment session cache.

Keeps at most one live checkout artifact per (user, intent). A retried
"pay now" click gets the artifact it already has instead of a second charge
attempt at the processor.

Artifact creation is idempotent on f"psess:{user}:{intent}:{generation}", so
two concurrent creators computing the same generation receive the same
processor artifact; the loser of the unique (user_id, intent_key, generation)
insert re-reads the winner's row.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, ExternalProcessorError
from app.crud.crud_payment_session import payment_session as crud_payment_session
from app.models.payment_session import PaymentSession
from app.services.payment.provider_interface import (
    IN_FLIGHT_STATUSES,
    PAYABLE_STATUSES,
    CreatePaymentIntentParams,
    PaymentError,
    PaymentProviderInterface,
)

logger = logging.getLogger(__name__)


class PaymentSessionCache:
    def __init__(
        self,
        provider: PaymentProviderInterface,
        ttl: Optional[timedelta] = None,
    ):
        self.provider = provider
        self.ttl = ttl or timedelta(hours=settings.PAYMENT_SESSION_TTL_HOURS)

    def get_or_create_session(
        self,
        db: Session,
        *,
        user_id: str,
        intent_key: str,
        amount: int,
        currency: str,
        description: str,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> PaymentSession:
        """
        Return the live session for (user_id, intent_key) if its artifact is
        still payable for the same amount, otherwise create a new one.

        Commits. Raises ExternalProcessorError if the processor cannot be
        reached.
        """
        now = now or datetime.now(timezone.utc)

        existing = crud_payment_session.get_live(
            db, user_id=user_id, intent_key=intent_key, now=now
        )
        stale_artifacts: List[str] = []
        if existing is not None:
            if self._is_payable(existing) and existing.total_amount == amount:
                logger.info(
                    "Reusing payment session %s for %s/%s",
                    existing.id, user_id, intent_key,
                )
                return existing
            self._retire(existing, reason="not_payable", now=now)
            stale_artifacts = list(existing.artifact_ids or [existing.artifact_id])
            db.flush()

        generation = crud_payment_session.next_generation(
            db, user_id=user_id, intent_key=intent_key
        )
        idempotency_key = f"psess:{user_id}:{intent_key}:{generation}"

        try:
            result = self.provider.create_payment_intent(
                CreatePaymentIntentParams(
                    reference_id=intent_key,
                    amount=amount,
                    currency=currency,
                    description=description,
                    idempotency_key=idempotency_key,
                    customer_email=customer_email,
                    customer_name=customer_name,
                    metadata=dict(metadata or {}),
                )
            )
        except PaymentError as e:
            db.rollback()
            raise ExternalProcessorError(
                "Could not start the payment. Please try again.",
                retryable=e.retryable,
                details={"provider_code": e.code},
            )

        session = PaymentSession(
            user_id=user_id,
            intent_key=intent_key,
            generation=generation,
            artifact_id=result.intent_id,
            artifact_ids=[result.intent_id],
            client_secret=result.client_secret,
            amounts={intent_key: amount},
            total_amount=amount,
            currency=currency.upper(),
            created_at=now,
            expires_at=now + self.ttl,
            is_used=False,
        )
        db.add(session)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request persisted this generation first
            db.rollback()
            winner = crud_payment_session.get_live(
                db, user_id=user_id, intent_key=intent_key, now=now
            )
            if winner is None:
                raise ConflictError("Payment is already being prepared, retry shortly")
            logger.info(
                "Lost payment session race for %s/%s, using %s",
                user_id, intent_key, winner.id,
            )
            return winner

        db.refresh(session)
        logger.info(
            "Created payment session %s (generation %d) for %s/%s",
            session.id, generation, user_id, intent_key,
        )
        self.cancel_artifacts(stale_artifacts)
        return session

    def _is_payable(self, session: PaymentSession) -> bool:
        """
        True if every artifact of the session can still be paid. An artifact
        that is being paid or has been paid is never replaced; its callback
        settles the registration.
        """
        for artifact_id in session.artifact_ids or [session.artifact_id]:
            try:
                status = self.provider.get_payment_intent(artifact_id)
            except PaymentError as e:
                if e.retryable:
                    raise ExternalProcessorError(
                        "Payment service temporarily unavailable", retryable=True
                    )
                logger.warning("Artifact %s unusable: %s", artifact_id, e.message)
                return False
            if status.status in IN_FLIGHT_STATUSES:
                logger.info(
                    "Artifact %s is %s, keeping session %s",
                    artifact_id, status.status.value, session.id,
                )
                raise ConflictError("Payment is already in progress")
            if status.status not in PAYABLE_STATUSES:
                return False
        return True

    def _retire(self, session: PaymentSession, *, reason: str, now: datetime) -> None:
        session.is_used = True
        session.used_at = now
        session.retired_reason = reason

    def mark_used(
        self, db: Session, *, session: PaymentSession, now: Optional[datetime] = None
    ) -> None:
        """Idempotent; does not commit."""
        if session.is_used:
            return
        self._retire(session, reason="paid", now=now or datetime.now(timezone.utc))
        db.add(session)

    def mark_used_by_artifact(
        self, db: Session, *, artifact_id: str, now: Optional[datetime] = None
    ) -> Optional[PaymentSession]:
        session = crud_payment_session.get_by_artifact(db, artifact_id=artifact_id)
        if session is not None:
            self.mark_used(db, session=session, now=now)
        return session

    def retire_sessions(
        self,
        db: Session,
        *,
        user_id: str,
        intent_key: str,
        reason: str = "cancelled",
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Mark every unused session for the pair as used, without committing.
        Returns the artifact ids the caller should cancel once committed.
        """
        now = now or datetime.now(timezone.utc)
        artifact_ids: List[str] = []
        for session in crud_payment_session.get_unused(
            db, user_id=user_id, intent_key=intent_key
        ):
            self._retire(session, reason=reason, now=now)
            artifact_ids.extend(session.artifact_ids or [session.artifact_id])
        return artifact_ids

    def cancel_artifacts(self, artifact_ids: List[str]) -> List[str]:
        """Cancel processor artifacts. Returns the ids that could not be cancelled."""
        failed = []
        for artifact_id in artifact_ids:
            try:
                self.provider.cancel_payment_intent(artifact_id)
            except PaymentError as e:
                logger.error("Could not cancel artifact %s: %s", artifact_id, e.message)
                failed.append(artifact_id)
        return failed

    def sweep_expired_sessions(self, db: Session, *, now: Optional[datetime] = None) -> int:
        """
        Cancel the artifacts of expired, unused sessions and retire them.
        A session whose cancellation fails transiently is left untouched for
        the next sweep; one the processor refuses outright is retired as
        cancel_failed.
        """
        now = now or datetime.now(timezone.utc)
        swept = 0
        for session in crud_payment_session.get_expired_unused(db, now=now):
            transient_failures = 0
            permanent_failures = 0
            for artifact_id in session.artifact_ids or [session.artifact_id]:
                try:
                    self.provider.cancel_payment_intent(artifact_id)
                except PaymentError as e:
                    if e.retryable:
                        transient_failures += 1
                    else:
                        permanent_failures += 1
                    logger.error("Could not cancel artifact %s: %s", artifact_id, e.message)
            if transient_failures:
                logger.warning(
                    "Payment session %s not swept, %d artifact(s) still open",
                    session.id, transient_failures,
                )
                continue
            reason = "cancel_failed" if permanent_failures else "expired"
            self._retire(session, reason=reason, now=now)
            db.commit()
            swept += 1
        if swept:
            logger.info("Swept %d expired payment session(s)", swept)
        return swept
