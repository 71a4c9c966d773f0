# app/models/workshop.py
import uuid
from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Workshop(Base):
    __tablename__ = "workshops"

    id = Column(
        String, primary_key=True, default=lambda: f"wks_{uuid.uuid4().hex[:12]}"
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)

    status = Column(String(20), nullable=False, default="draft", index=True)
    # Values: 'draft', 'published', 'finished', 'cancelled'

    starts_at = Column(UTCDateTime, nullable=False, index=True)
    ends_at = Column(UTCDateTime, nullable=False)

    # Capacity & invitation batching
    capacity = Column(Integer, nullable=False)
    batch_size = Column(Integer, nullable=False)
    cool_off_days = Column(Integer, nullable=False, default=5)
    last_batch_sent_at = Column(UTCDateTime, nullable=True)

    # Seats held by invited/confirmed/pre_checked/attended registrations.
    # Only ever changed through CapacityLedger.
    occupied_seats = Column(Integer, nullable=False, default=0)

    # Null means the workshop is non-refundable
    refund_window_days = Column(Integer, nullable=True)

    # Pricing, in the smallest currency unit
    price_member = Column(Integer, nullable=False, default=0)
    price_non_member = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")

    created_by = Column(String, nullable=True)
    published_at = Column(UTCDateTime, nullable=True)
    finished_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    registrations = relationship(
        "Registration", back_populates="workshop", lazy="select"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'published', 'finished', 'cancelled')",
            name="check_workshop_status",
        ),
        CheckConstraint("capacity > 0", name="check_workshop_capacity_positive"),
        CheckConstraint("batch_size > 0", name="check_workshop_batch_size_positive"),
        CheckConstraint(
            "occupied_seats >= 0 AND occupied_seats <= capacity",
            name="check_workshop_occupied_seats",
        ),
        CheckConstraint("ends_at > starts_at", name="check_workshop_dates"),
    )

    @property
    def available_seats(self) -> int:
        return max(0, self.capacity - self.occupied_seats)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("finished", "cancelled")

    def __repr__(self):
        return f"<Workshop {self.id} {self.status} {self.occupied_seats}/{self.capacity}>"
