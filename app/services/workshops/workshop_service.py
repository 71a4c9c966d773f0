# app/services/workshops/workshop_service.py
"""
Workshop state machine.

    draft --publish--> published --finish--> finished
    draft/published --cancel--> cancelled

Publishing runs the first invitation batch in the same transaction as the
status flip. Cancelling refunds everyone who paid. Processor calls (refunds,
payment cancellations) and notifications only happen after the local
transaction commits.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotEligibleError, NotFoundError, ValidationError
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_capacity import capacity_ledger
from app.crud.crud_interest import workshop_interest as crud_interest
from app.crud.crud_registration import registration as crud_registration
from app.crud.crud_waitlist import waitlist_entry as crud_waitlist
from app.crud.crud_workshop import workshop as crud_workshop
from app.models.refund import Refund
from app.models.registration import ACTIVE_STATUSES, Registration
from app.models.workshop import Workshop
from app.schemas.refund import RefundReason
from app.schemas.workshop import WorkshopCreate, WorkshopUpdate
from app.services.payment.provider_factory import get_payment_provider
from app.services.payment.provider_interface import PaymentProviderInterface
from app.services.payment.session_cache import PaymentSessionCache
from app.services.workshops import messages
from app.services.workshops.invitation_service import InvitationService
from app.services.workshops.refund_service import RefundService
from app.services.workshops.registration_service import payment_intent_key

logger = logging.getLogger(__name__)


class WorkshopService:
    def __init__(
        self,
        db: Session,
        provider: Optional[PaymentProviderInterface] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.provider = provider or get_payment_provider()
        self.notifier = notifier or get_notifier()
        self.invitations = InvitationService(db, notifier=self.notifier)
        self.refunds = RefundService(db, provider=self.provider, notifier=self.notifier)
        self.sessions = PaymentSessionCache(self.provider)

    def get(self, workshop_id: str) -> Workshop:
        workshop = crud_workshop.get(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        return workshop

    def _get_locked(self, workshop_id: str) -> Workshop:
        workshop = crud_workshop.get_for_update(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        return workshop

    # ------------------------------------------------------------------ #
    # Draft management
    # ------------------------------------------------------------------ #

    def create(self, workshop_in: WorkshopCreate, created_by: Optional[str]) -> Workshop:
        workshop = crud_workshop.create_draft(self.db, obj_in=workshop_in, created_by=created_by)
        logger.info("Workshop %s created by %s", workshop.id, created_by)
        return workshop

    def update(self, workshop_id: str, workshop_in: WorkshopUpdate) -> Workshop:
        workshop = self._get_locked(workshop_id)
        if workshop.status != "draft":
            raise ConflictError("Only draft workshops can be edited")

        data = workshop_in.model_dump(exclude_unset=True)
        starts_at = data.get("starts_at", workshop.starts_at)
        ends_at = data.get("ends_at", workshop.ends_at)
        if ends_at <= starts_at:
            raise ValidationError("ends_at must be after starts_at")
        return crud_workshop.update(self.db, db_obj=workshop, obj_in=data)

    def delete(self, workshop_id: str) -> None:
        workshop = self._get_locked(workshop_id)
        if workshop.status != "draft":
            raise ConflictError("Only draft workshops can be deleted")
        if crud_registration.get_by_workshop(self.db, workshop_id=workshop.id):
            raise ConflictError("Workshop has registrations")
        crud_interest.remove_for_workshop(self.db, workshop_id=workshop.id)
        self.db.delete(workshop)
        self.db.commit()
        logger.info("Workshop %s deleted", workshop_id)

    def change_capacity(self, workshop_id: str, new_capacity: int) -> Workshop:
        """
        Raising is always allowed. Lowering is only allowed while nobody is
        registered, and never below the occupied seats.
        """
        workshop = self._get_locked(workshop_id)
        if workshop.is_terminal:
            raise ConflictError(f"Workshop is {workshop.status}")
        if new_capacity < workshop.occupied_seats:
            raise ValidationError("Capacity cannot be lower than the occupied seats")
        if new_capacity < workshop.capacity and crud_registration.get_by_workshop(
            self.db, workshop_id=workshop.id
        ):
            raise ConflictError("Capacity can only be raised once registrations exist")

        old_capacity = workshop.capacity
        workshop.capacity = new_capacity
        self.db.commit()
        self.db.refresh(workshop)
        logger.info(
            "Workshop %s capacity changed %d -> %d", workshop.id, old_capacity, new_capacity
        )
        return workshop

    def toggle_interest(self, workshop_id: str, user_id: str) -> bool:
        workshop = self.get(workshop_id)
        if workshop.status != "draft":
            raise NotEligibleError("Interest can only be registered for planned workshops")
        return crud_interest.toggle(self.db, workshop_id=workshop.id, user_id=user_id)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def publish(self, workshop_id: str, now: Optional[datetime] = None) -> Workshop:
        now = now or datetime.now(timezone.utc)
        workshop = self._get_locked(workshop_id)
        if workshop.status != "draft":
            raise ConflictError(f"Cannot publish a workshop that is {workshop.status}")
        if workshop.capacity <= 0:
            raise ValidationError("Capacity must be positive")
        if workshop.starts_at <= now:
            raise ValidationError("Workshop must start in the future")

        try:
            workshop.status = "published"
            workshop.published_at = now
            invited = self.invitations.apply_batch(workshop.id, now)
            if invited:
                workshop.last_batch_sent_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error("Publishing workshop %s failed, rolled back", workshop_id, exc_info=True)
            raise

        self.db.refresh(workshop)
        logger.info("Workshop %s published, %d invited", workshop.id, len(invited))
        self.invitations.notify_invited(workshop, invited)
        return workshop

    def cancel(
        self, workshop_id: str, cancelled_by: Optional[str], now: Optional[datetime] = None
    ) -> Workshop:
        now = now or datetime.now(timezone.utc)
        workshop = self._get_locked(workshop_id)
        if workshop.is_terminal:
            raise ConflictError(f"Cannot cancel a workshop that is {workshop.status}")

        pending_refunds: List[Refund] = []
        artifact_ids: List[str] = []
        affected: List[Registration] = []
        try:
            for registration in crud_registration.get_by_workshop(
                self.db, workshop_id=workshop.id, statuses=ACTIVE_STATUSES
            ):
                affected.append(registration)
                refund, artifacts = self._cancel_registration(
                    registration, cancelled_by=cancelled_by, now=now
                )
                if refund is not None:
                    pending_refunds.append(refund)
                artifact_ids.extend(artifacts)

            workshop.status = "cancelled"
            workshop.cancelled_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Workshop %s cancelled by %s: %d registration(s), %d refund(s)",
            workshop.id, cancelled_by, len(affected), len(pending_refunds),
        )

        self.sessions.cancel_artifacts(artifact_ids)
        for refund in pending_refunds:
            self.refunds.submit_refund(refund, now=now)
        for registration in affected:
            self.notifier.send(
                messages.WORKSHOP_CANCELLED,
                registration.email,
                messages.registration_variables(registration, workshop),
            )
        self.db.refresh(workshop)
        return workshop

    def _cancel_registration(
        self, registration: Registration, *, cancelled_by: Optional[str], now: datetime
    ) -> Tuple[Optional[Refund], List[str]]:
        if registration.status in ("confirmed", "pre_checked") and registration.amount_paid:
            refund = self.refunds.create_pending_refund(
                registration,
                reason=RefundReason.event_cancelled,
                requested_by=cancelled_by,
                now=now,
                implied=True,
            )
            return refund, []

        crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=ACTIVE_STATUSES,
            values={"status": "cancelled", "cancelled_at": now, "cancelled_by": cancelled_by},
        )
        capacity_ledger.release(self.db, workshop_id=registration.workshop_id)
        artifacts = self.sessions.retire_sessions(
            self.db,
            user_id=registration.attendee_key,
            intent_key=payment_intent_key(registration.id),
            now=now,
        )
        return None, artifacts

    def finish(
        self, workshop_id: str, force: bool = False, now: Optional[datetime] = None
    ) -> Workshop:
        """
        Close a published workshop: paid attendees who never checked in become
        no-shows and unpaid invitations are cancelled.
        """
        now = now or datetime.now(timezone.utc)
        workshop = self._get_locked(workshop_id)
        if workshop.status != "published":
            raise ConflictError(f"Cannot finish a workshop that is {workshop.status}")
        if not force and now < workshop.ends_at:
            raise NotEligibleError("Workshop has not ended yet")

        artifact_ids: List[str] = []
        no_shows = 0
        try:
            for registration in crud_registration.get_by_workshop(
                self.db, workshop_id=workshop.id
            ):
                if registration.status in ("confirmed", "pre_checked"):
                    crud_registration.transition(
                        self.db,
                        registration_id=registration.id,
                        from_statuses=("confirmed", "pre_checked"),
                        values={"status": "no_show"},
                    )
                    capacity_ledger.release(self.db, workshop_id=workshop.id)
                    if registration.waitlist_entry_id:
                        crud_waitlist.record_no_show(
                            self.db, entry_id=registration.waitlist_entry_id, at=now
                        )
                    no_shows += 1
                elif registration.status == "invited":
                    crud_registration.transition(
                        self.db,
                        registration_id=registration.id,
                        from_statuses=("invited",),
                        values={"status": "cancelled", "cancelled_at": now, "cancelled_by": "system"},
                    )
                    capacity_ledger.release(self.db, workshop_id=workshop.id)
                    artifact_ids.extend(
                        self.sessions.retire_sessions(
                            self.db,
                            user_id=registration.attendee_key,
                            intent_key=payment_intent_key(registration.id),
                            reason="expired",
                            now=now,
                        )
                    )
                elif registration.status == "attended" and registration.waitlist_entry_id:
                    crud_waitlist.mark_completed(self.db, entry_id=registration.waitlist_entry_id)

            workshop.status = "finished"
            workshop.finished_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.sessions.cancel_artifacts(artifact_ids)
        logger.info("Workshop %s finished, %d no-show(s)", workshop.id, no_shows)
        self.db.refresh(workshop)
        return workshop
