# app/models/registration.py
import uuid
from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow

ACTIVE_STATUSES = ("invited", "confirmed", "pre_checked")
SEAT_HOLDING_STATUSES = ("invited", "confirmed", "pre_checked", "attended")
PAID_STATUSES = ("confirmed", "pre_checked", "attended")

_ACTIVE_WHERE = text("status IN ('invited', 'confirmed', 'pre_checked')")


class Registration(Base):
    __tablename__ = "workshop_registrations"

    id = Column(
        String, primary_key=True, default=lambda: f"reg_{uuid.uuid4().hex[:12]}"
    )
    workshop_id = Column(
        String, ForeignKey("workshops.id"), nullable=False, index=True
    )

    # Exactly one attendee reference
    member_id = Column(String, nullable=True, index=True)
    external_person_id = Column(
        String, ForeignKey("external_people.id"), nullable=True, index=True
    )
    waitlist_entry_id = Column(
        String, ForeignKey("workshop_waitlist_entries.id"), nullable=True
    )

    # Snapshot used for notifications and day-of self identification
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)

    status = Column(String(20), nullable=False, default="invited", index=True)
    # Values: 'invited', 'confirmed', 'pre_checked', 'attended', 'no_show',
    #         'cancelled', 'refunded'
    priority = Column(Integer, nullable=False, default=0)
    invited_at = Column(UTCDateTime, nullable=True)

    # Payment
    payment_token = Column(String(64), nullable=True, unique=True, index=True)
    payment_token_expires_at = Column(UTCDateTime, nullable=True)
    payment_session_id = Column(String, nullable=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    amount_paid = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=True)
    confirmed_at = Column(UTCDateTime, nullable=True)

    # Onboarding
    onboarding_token = Column(String(64), nullable=True, unique=True, index=True)
    onboarding_token_used_at = Column(UTCDateTime, nullable=True)
    onboarding_completed_at = Column(UTCDateTime, nullable=True)
    insurance_confirmed_at = Column(UTCDateTime, nullable=True)
    media_consent_at = Column(UTCDateTime, nullable=True)
    signature_url = Column(String(1024), nullable=True)

    # Attendance
    checked_in_at = Column(UTCDateTime, nullable=True)
    attendance_marked_by = Column(String, nullable=True)
    attendance_notes = Column(Text, nullable=True)
    follow_up_sent_at = Column(UTCDateTime, nullable=True)

    # Exit
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    refunded_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    workshop = relationship("Workshop", back_populates="registrations")
    refund = relationship("Refund", back_populates="registration", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "(member_id IS NULL) <> (external_person_id IS NULL)",
            name="check_registration_single_attendee",
        ),
        CheckConstraint(
            "status IN ('invited', 'confirmed', 'pre_checked', 'attended', "
            "'no_show', 'cancelled', 'refunded')",
            name="check_registration_status",
        ),
        # One live registration per attendee per workshop
        Index(
            "uq_active_member_registration",
            "workshop_id",
            "member_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
        Index(
            "uq_active_external_registration",
            "workshop_id",
            "external_person_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    @property
    def attendee_key(self) -> str:
        return self.member_id or self.external_person_id

    @property
    def is_member(self) -> bool:
        return self.member_id is not None

    @property
    def holds_seat(self) -> bool:
        return self.status in SEAT_HOLDING_STATUSES

    def __repr__(self):
        return f"<Registration {self.id} {self.status}>"
