# app/crud/crud_registration.py
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.registration import (
    ACTIVE_STATUSES,
    PAID_STATUSES,
    SEAT_HOLDING_STATUSES,
    Registration,
)
from app.schemas.registration import RegistrationCreate


class CRUDRegistration(CRUDBase[Registration, RegistrationCreate, RegistrationCreate]):
    def get_by_workshop(
        self,
        db: Session,
        *,
        workshop_id: str,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Registration]:
        query = db.query(self.model).filter(self.model.workshop_id == workshop_id)
        if statuses:
            query = query.filter(self.model.status.in_(list(statuses)))
        return query.order_by(self.model.created_at.asc()).all()

    def get_active_for_attendee(
        self,
        db: Session,
        *,
        workshop_id: str,
        member_id: Optional[str] = None,
        external_person_id: Optional[str] = None,
    ) -> Optional[Registration]:
        query = db.query(self.model).filter(
            self.model.workshop_id == workshop_id,
            self.model.status.in_(ACTIVE_STATUSES),
        )
        if member_id:
            query = query.filter(self.model.member_id == member_id)
        else:
            query = query.filter(self.model.external_person_id == external_person_id)
        return query.first()

    def get_attendee_keys(
        self, db: Session, *, workshop_id: str, exclude_statuses: Iterable[str] = ()
    ) -> set:
        """Member and external person ids holding any registration for the workshop."""
        query = db.query(self.model.member_id, self.model.external_person_id).filter(
            self.model.workshop_id == workshop_id
        )
        exclude = list(exclude_statuses)
        if exclude:
            query = query.filter(self.model.status.notin_(exclude))
        return {member_id or external_id for member_id, external_id in query.all()}

    def get_by_payment_token(self, db: Session, *, token: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.payment_token == token).first()

    def get_by_onboarding_token(self, db: Session, *, token: str) -> Optional[Registration]:
        return db.query(self.model).filter(self.model.onboarding_token == token).first()

    def get_by_payment_intent(
        self, db: Session, *, payment_intent_id: str
    ) -> Optional[Registration]:
        return (
            db.query(self.model)
            .filter(self.model.payment_intent_id == payment_intent_id)
            .first()
        )

    def get_for_check_in(
        self, db: Session, *, workshop_id: str, email: str
    ) -> Optional[Registration]:
        return (
            db.query(self.model)
            .filter(
                self.model.workshop_id == workshop_id,
                func.lower(self.model.email) == email.strip().lower(),
                self.model.status.in_(("confirmed", "pre_checked", "attended")),
            )
            .first()
        )

    def count_seat_holders(self, db: Session, *, workshop_id: str) -> int:
        return (
            db.query(func.count(self.model.id))
            .filter(
                self.model.workshop_id == workshop_id,
                self.model.status.in_(SEAT_HOLDING_STATUSES),
            )
            .scalar()
        )

    def count_paid(self, db: Session, *, workshop_id: str) -> int:
        return (
            db.query(func.count(self.model.id))
            .filter(
                self.model.workshop_id == workshop_id,
                self.model.status.in_(PAID_STATUSES),
            )
            .scalar()
        )

    def get_needing_onboarding(self, db: Session, *, workshop_id: str) -> List[Registration]:
        return (
            db.query(self.model)
            .filter(
                self.model.workshop_id == workshop_id,
                self.model.status == "confirmed",
                self.model.onboarding_token.is_(None),
                self.model.onboarding_completed_at.is_(None),
            )
            .all()
        )

    def get_needing_follow_up(self, db: Session, *, workshop_id: str) -> List[Registration]:
        return (
            db.query(self.model)
            .filter(
                self.model.workshop_id == workshop_id,
                self.model.status.in_(("attended", "no_show")),
                self.model.follow_up_sent_at.is_(None),
            )
            .all()
        )

    def transition(
        self,
        db: Session,
        *,
        registration_id: str,
        from_statuses: Iterable[str],
        values: dict,
    ) -> bool:
        """
        Conditional status update. Returns False when the row was no longer in
        one of `from_statuses`, which makes redelivered callbacks harmless.
        """
        updated = (
            db.query(self.model)
            .filter(
                self.model.id == registration_id,
                self.model.status.in_(list(from_statuses)),
            )
            .update(values, synchronize_session="fetch")
        )
        return updated == 1


registration = CRUDRegistration(Registration)
