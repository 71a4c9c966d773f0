# app/crud/crud_waitlist.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.external_person import ExternalPerson
from app.models.waitlist_entry import WaitlistEntry
from app.schemas.registration import AttendeeIn
from app.schemas.waitlist import WaitlistJoin, WaitlistPriorityUpdate


class CRUDExternalPerson(CRUDBase[ExternalPerson, AttendeeIn, AttendeeIn]):
    def get_by_email(self, db: Session, *, email: str) -> Optional[ExternalPerson]:
        return (
            db.query(self.model)
            .filter(func.lower(self.model.email) == email.strip().lower())
            .first()
        )

    def get_or_create(self, db: Session, *, attendee: AttendeeIn) -> ExternalPerson:
        """Returns the existing row for the email or a new flushed one."""
        person = self.get_by_email(db, email=attendee.email)
        if person:
            return person
        person = ExternalPerson(
            email=attendee.email.strip().lower(),
            first_name=attendee.first_name,
            last_name=attendee.last_name,
            phone=attendee.phone,
        )
        db.add(person)
        db.flush()
        return person


class CRUDWaitlistEntry(CRUDBase[WaitlistEntry, WaitlistJoin, WaitlistPriorityUpdate]):
    def get_waiting(self, db: Session) -> List[WaitlistEntry]:
        return (
            db.query(self.model)
            .filter(self.model.status == "waiting")
            .order_by(self.model.priority.asc(), self.model.joined_at.asc(), self.model.id.asc())
            .all()
        )

    def get_for_attendee(
        self,
        db: Session,
        *,
        member_id: Optional[str] = None,
        external_person_id: Optional[str] = None,
    ) -> Optional[WaitlistEntry]:
        query = db.query(self.model)
        if member_id:
            query = query.filter(self.model.member_id == member_id)
        else:
            query = query.filter(self.model.external_person_id == external_person_id)
        return query.order_by(self.model.joined_at.desc()).first()

    def get_multi_by_status(
        self, db: Session, *, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[WaitlistEntry]:
        query = db.query(self.model)
        if status:
            query = query.filter(self.model.status == status)
        return (
            query.order_by(self.model.priority.asc(), self.model.joined_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def record_no_show(self, db: Session, *, entry_id: str, at: datetime) -> None:
        db.query(self.model).filter(self.model.id == entry_id).update(
            {"last_no_show_at": at, "status": "waiting"}, synchronize_session="fetch"
        )

    def mark_completed(self, db: Session, *, entry_id: str) -> None:
        db.query(self.model).filter(self.model.id == entry_id).update(
            {"status": "completed"}, synchronize_session="fetch"
        )


external_person = CRUDExternalPerson(ExternalPerson)
waitlist_entry = CRUDWaitlistEntry(WaitlistEntry)
