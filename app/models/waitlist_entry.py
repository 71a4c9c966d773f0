# app/models/waitlist_entry.py
import uuid
from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class WaitlistEntry(Base):
    """A candidate in the workshop invitation pool."""

    __tablename__ = "workshop_waitlist_entries"

    id = Column(
        String, primary_key=True, default=lambda: f"wle_{uuid.uuid4().hex[:12]}"
    )

    # Exactly one of these identifies the person
    member_id = Column(String, nullable=True, index=True)
    external_person_id = Column(
        String, ForeignKey("external_people.id"), nullable=True, index=True
    )

    email = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Lower goes first; coordinators use negative values for manual overrides
    priority = Column(Integer, nullable=False, default=0)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    status = Column(String(20), nullable=False, default="waiting", index=True)
    # Values: 'waiting', 'completed', 'withdrawn'

    last_no_show_at = Column(UTCDateTime, nullable=True)
    cancelled_workshop_id = Column(String, ForeignKey("workshops.id"), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(member_id IS NULL) <> (external_person_id IS NULL)",
            name="check_waitlist_single_identity",
        ),
        CheckConstraint(
            "status IN ('waiting', 'completed', 'withdrawn')",
            name="check_waitlist_status",
        ),
    )

    @property
    def attendee_key(self) -> str:
        return self.member_id or self.external_person_id

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
