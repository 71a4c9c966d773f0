# app/services/workshops/invitation_service.py
"""
Batch invitations from the waitlist.

A batch is "count occupied seats, pick candidates, create invited
registrations, reserve their seats". It always runs inside the caller's
transaction with the workshop row locked, and the seat reservation is a
compare-and-swap on the ledger, so two overlapping runs can never invite into
the same free seats. Notifications go out only after the caller commits.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import CapacityExceededError, ConflictError, NotFoundError
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_capacity import capacity_ledger
from app.crud.crud_registration import registration as crud_registration
from app.crud.crud_waitlist import external_person as crud_external_person
from app.crud.crud_waitlist import waitlist_entry as crud_waitlist
from app.crud.crud_workshop import workshop as crud_workshop
from app.models.registration import Registration
from app.models.waitlist_entry import WaitlistEntry
from app.models.workshop import Workshop
from app.schemas.waitlist import WaitlistJoin
from app.services.workshops import messages
from app.utils.security import generate_link_token
from app.utils.waitlist import select_candidates

logger = logging.getLogger(__name__)


def payment_token_expiry(workshop: Workshop, now: datetime) -> datetime:
    """Payment links stay valid until the day before the workshop."""
    expires_at = workshop.starts_at - timedelta(days=1)
    if expires_at <= now:
        expires_at = workshop.starts_at
    return expires_at


class InvitationService:
    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    def eligible_candidates(self, workshop: Workshop, now: datetime) -> List[WaitlistEntry]:
        """
        Waiting entries that may be invited to `workshop`: not already holding
        a registration for it, not recently a no-show and, unless re-inviting
        is enabled, not someone who cancelled out of it.
        """
        excluded_statuses = ("cancelled",) if settings.REINVITE_CANCELLED_ATTENDEES else ()
        registered = crud_registration.get_attendee_keys(
            self.db, workshop_id=workshop.id, exclude_statuses=excluded_statuses
        )
        no_show_cutoff = now - timedelta(days=settings.NO_SHOW_EXCLUSION_DAYS)

        eligible = []
        for entry in crud_waitlist.get_waiting(self.db):
            if entry.attendee_key in registered:
                continue
            if (
                entry.cancelled_workshop_id == workshop.id
                and not settings.REINVITE_CANCELLED_ATTENDEES
            ):
                continue
            if entry.last_no_show_at and entry.last_no_show_at > no_show_cutoff:
                continue
            eligible.append(entry)
        return eligible

    def apply_batch(self, workshop_id: str, now: datetime) -> List[Registration]:
        """
        Invite the next batch for the workshop. Does not commit; the caller
        owns the transaction and must call notify_invited() after committing.
        """
        workshop = crud_workshop.get_for_update(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")

        candidates = self.eligible_candidates(workshop, now)
        selected = select_candidates(
            candidates,
            batch_size=workshop.batch_size,
            capacity=workshop.capacity,
            occupied=workshop.occupied_seats,
        )
        if not selected:
            logger.info(
                "No candidates to invite for workshop %s (pool=%d, free=%d)",
                workshop.id, len(candidates), workshop.available_seats,
            )
            return []

        if not capacity_ledger.reserve(self.db, workshop_id=workshop.id, seats=len(selected)):
            raise CapacityExceededError("Workshop filled up while inviting")

        expires_at = payment_token_expiry(workshop, now)
        invited = []
        for entry in selected:
            registration = Registration(
                workshop_id=workshop.id,
                member_id=entry.member_id,
                external_person_id=entry.external_person_id,
                waitlist_entry_id=entry.id,
                email=entry.email,
                full_name=entry.full_name,
                status="invited",
                priority=entry.priority,
                invited_at=now,
                payment_token=generate_link_token(),
                payment_token_expires_at=expires_at,
                currency=workshop.currency,
            )
            self.db.add(registration)
            invited.append(registration)
        self.db.flush()

        logger.info(
            "Invited %d candidate(s) to workshop %s (%d/%d seats occupied)",
            len(invited), workshop.id, workshop.occupied_seats, workshop.capacity,
        )
        return invited

    def notify_invited(self, workshop: Workshop, registrations: List[Registration]) -> None:
        for registration in registrations:
            self.notifier.send(
                messages.INVITATION,
                registration.email,
                messages.invitation_variables(registration, workshop),
            )

    def top_up_workshop(
        self, workshop_id: str, now: Optional[datetime] = None
    ) -> List[Registration]:
        """
        Invite another batch if the workshop is published, has free seats and
        its cool-off period since the last batch has elapsed. Re-running within
        the cool-off period, or with an empty pool, changes nothing.
        """
        now = now or datetime.now(timezone.utc)
        workshop = crud_workshop.get_for_update(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")

        if workshop.status != "published" or workshop.starts_at <= now:
            self.db.rollback()
            return []
        if workshop.available_seats == 0:
            self.db.rollback()
            return []
        if workshop.last_batch_sent_at is not None:
            next_batch_at = workshop.last_batch_sent_at + timedelta(days=workshop.cool_off_days)
            if now < next_batch_at:
                logger.debug(
                    "Workshop %s in cool-off until %s", workshop.id, next_batch_at
                )
                self.db.rollback()
                return []

        try:
            invited = self.apply_batch(workshop.id, now)
            if not invited:
                self.db.rollback()
                return []
            workshop.last_batch_sent_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.notify_invited(workshop, invited)
        return invited

    def join_waitlist(self, entry_in: WaitlistJoin, now: Optional[datetime] = None) -> WaitlistEntry:
        now = now or datetime.now(timezone.utc)
        member_id = entry_in.member_id
        external_person_id = None
        if member_id is None:
            external_person_id = crud_external_person.get_or_create(
                self.db, attendee=entry_in
            ).id

        existing = crud_waitlist.get_for_attendee(
            self.db, member_id=member_id, external_person_id=external_person_id
        )
        if existing is not None and existing.status == "waiting":
            raise ConflictError("Already on the waitlist")

        entry = WaitlistEntry(
            member_id=member_id,
            external_person_id=external_person_id,
            email=entry_in.email.strip().lower(),
            first_name=entry_in.first_name,
            last_name=entry_in.last_name,
            priority=0,
            joined_at=now,
            status="waiting",
            notes=entry_in.notes,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info("Waitlist entry %s created", entry.id)
        return entry

    def withdraw(self, entry_id: str) -> WaitlistEntry:
        entry = crud_waitlist.get(self.db, entry_id)
        if entry is None:
            raise NotFoundError("Waitlist entry not found")
        entry.status = "withdrawn"
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def prioritize_candidate(self, entry_id: str, priority: int) -> WaitlistEntry:
        """Manual override: lower (negative) priorities are invited first."""
        entry = crud_waitlist.get(self.db, entry_id)
        if entry is None:
            raise NotFoundError("Waitlist entry not found")
        entry.priority = priority
        self.db.commit()
        self.db.refresh(entry)
        logger.info("Waitlist entry %s priority set to %d", entry.id, priority)
        return entry
