# app/services/workshops/onboarding_service.py
"""
Pre-event onboarding and day-of check-in.

Paid attendees receive a single-use onboarding link shortly before the
workshop. Submitting it records insurance confirmation, media consent and a
signature and moves the registration to 'pre_checked'. On the day, attendees
check themselves in by email; anyone who skipped onboarding has to confirm
insurance at the desk.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    CapacityExceededError,
    ConflictError,
    NotEligibleError,
    NotFoundError,
    OnboardingRequiredError,
    ValidationError,
)
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_capacity import capacity_ledger
from app.crud.crud_registration import registration as crud_registration
from app.crud.crud_workshop import workshop as crud_workshop
from app.models.registration import Registration
from app.models.workshop import Workshop
from app.schemas.onboarding import (
    AttendanceMark,
    AttendanceUpdate,
    CheckInSubmit,
    OnboardingSubmit,
)
from app.services.workshops import messages
from app.utils.security import generate_link_token, validate_signature_url

logger = logging.getLogger(__name__)

ROSTER_STATUSES = ("confirmed", "pre_checked", "attended")


class OnboardingService:
    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    # ------------------------------------------------------------------ #
    # Onboarding
    # ------------------------------------------------------------------ #

    def issue_tokens_for_workshop(self, workshop: Workshop) -> int:
        """Give every confirmed, not yet onboarded attendee a link. Commits."""
        issued: List[Registration] = []
        for registration in crud_registration.get_needing_onboarding(
            self.db, workshop_id=workshop.id
        ):
            registration.onboarding_token = generate_link_token()
            issued.append(registration)
        if not issued:
            return 0
        self.db.commit()

        for registration in issued:
            self.notifier.send(
                messages.ONBOARDING,
                registration.email,
                messages.onboarding_variables(registration, workshop),
            )
        logger.info("Issued %d onboarding token(s) for workshop %s", len(issued), workshop.id)
        return len(issued)

    def issue_onboarding_tokens(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        horizon = now + timedelta(days=settings.ONBOARDING_LEAD_DAYS)
        total = 0
        for workshop in crud_workshop.get_starting_between(self.db, start=now, end=horizon):
            total += self.issue_tokens_for_workshop(workshop)
        return total

    def _get_by_token(self, token: str) -> Registration:
        registration = crud_registration.get_by_onboarding_token(self.db, token=token)
        if registration is None:
            raise NotFoundError("Onboarding link not found")
        return registration

    def get_onboarding(self, token: str) -> Registration:
        registration = self._get_by_token(token)
        if registration.onboarding_token_used_at is not None:
            raise ConflictError("Onboarding has already been completed")
        return registration

    def submit_onboarding(
        self, token: str, submission: OnboardingSubmit, now: Optional[datetime] = None
    ) -> Registration:
        now = now or datetime.now(timezone.utc)
        registration = self._get_by_token(token)

        if registration.onboarding_token_used_at is not None:
            raise ConflictError("Onboarding has already been completed")
        if registration.workshop.starts_at <= now:
            raise NotEligibleError("The workshop has already started")
        if registration.status != "confirmed":
            raise NotEligibleError(f"Registration is {registration.status}")
        if not submission.insurance_confirmed:
            raise ValidationError("Insurance confirmation is required")
        try:
            signature_url = validate_signature_url(submission.signature_url)
        except ValueError as e:
            raise ValidationError(str(e))

        values = {
            "status": "pre_checked",
            "onboarding_token_used_at": now,
            "onboarding_completed_at": now,
            "insurance_confirmed_at": now,
            "signature_url": signature_url,
        }
        if submission.media_consent:
            values["media_consent_at"] = now

        applied = crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=("confirmed",),
            values=values,
        )
        if not applied:
            self.db.rollback()
            raise ConflictError("Onboarding has already been completed")
        self.db.commit()
        logger.info("Onboarding completed for registration %s", registration.id)
        return registration

    # ------------------------------------------------------------------ #
    # Check-in
    # ------------------------------------------------------------------ #

    def _check_in_window_open(self, workshop: Workshop, now: datetime) -> bool:
        opens_at = workshop.starts_at - timedelta(hours=settings.CHECKIN_OPENS_HOURS_BEFORE)
        return opens_at <= now <= workshop.ends_at

    def get_check_in_roster(self, workshop_id: str) -> List[Registration]:
        workshop = crud_workshop.get(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        return crud_registration.get_by_workshop(
            self.db, workshop_id=workshop.id, statuses=ROSTER_STATUSES
        )

    def check_in(
        self, workshop_id: str, submission: CheckInSubmit, now: Optional[datetime] = None
    ) -> Registration:
        now = now or datetime.now(timezone.utc)
        workshop = crud_workshop.get(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        if workshop.status != "published" or not self._check_in_window_open(workshop, now):
            raise NotEligibleError("Check-in is not open for this workshop")

        registration = crud_registration.get_for_check_in(
            self.db, workshop_id=workshop.id, email=submission.email
        )
        if registration is None:
            raise NotFoundError("No paid registration found for this email")
        if registration.status == "attended":
            return registration

        values = {"status": "attended", "checked_in_at": now}
        if registration.insurance_confirmed_at is None:
            if not submission.insurance_confirmed:
                raise OnboardingRequiredError(
                    "Please confirm your insurance before checking in"
                )
            values["insurance_confirmed_at"] = now
            values["onboarding_completed_at"] = now
            if submission.media_consent:
                values["media_consent_at"] = now

        applied = crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=("confirmed", "pre_checked"),
            values=values,
        )
        self.db.commit()
        if applied:
            logger.info("Registration %s checked in", registration.id)
        return registration

    def mark_attendance(
        self,
        workshop_id: str,
        updates: List[AttendanceUpdate],
        marked_by: Optional[str],
        now: Optional[datetime] = None,
    ) -> List[Registration]:
        """Coordinator correction of attendance once the workshop has started."""
        now = now or datetime.now(timezone.utc)
        workshop = crud_workshop.get_for_update(self.db, workshop_id)
        if workshop is None:
            raise NotFoundError("Workshop not found")
        if now < workshop.starts_at:
            raise NotEligibleError("Attendance can only be recorded once the workshop has started")
        if workshop.status == "cancelled":
            raise NotEligibleError("Workshop was cancelled")

        updated: List[Registration] = []
        try:
            for update in updates:
                registration = crud_registration.get(self.db, update.registration_id)
                if registration is None or registration.workshop_id != workshop.id:
                    raise NotFoundError(f"Registration {update.registration_id} not found")
                self._apply_attendance(registration, update, marked_by, now)
                updated.append(registration)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Attendance updated for %d registration(s) of workshop %s by %s",
            len(updated), workshop.id, marked_by,
        )
        return updated

    def _apply_attendance(
        self,
        registration: Registration,
        update: AttendanceUpdate,
        marked_by: Optional[str],
        now: datetime,
    ) -> None:
        allowed = ("confirmed", "pre_checked", "attended", "no_show")
        if registration.status not in allowed:
            raise ConflictError(
                f"Cannot record attendance for a registration that is {registration.status}"
            )

        target = update.status.value
        if registration.status == target:
            registration.attendance_notes = update.notes or registration.attendance_notes
            registration.attendance_marked_by = marked_by
            return

        # Seats follow the status: no_show does not hold one
        if target == AttendanceMark.no_show.value:
            capacity_ledger.release(self.db, workshop_id=registration.workshop_id)
        elif registration.status == "no_show":
            if not capacity_ledger.reserve(self.db, workshop_id=registration.workshop_id):
                raise CapacityExceededError("No seat left to mark this attendee as present")

        values = {
            "status": target,
            "attendance_marked_by": marked_by,
            "attendance_notes": update.notes,
        }
        if target == AttendanceMark.attended.value and registration.checked_in_at is None:
            values["checked_in_at"] = now
        crud_registration.transition(
            self.db,
            registration_id=registration.id,
            from_statuses=allowed,
            values=values,
        )
