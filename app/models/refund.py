# app/models/refund.py
import uuid
from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class Refund(Base):
    __tablename__ = "workshop_refunds"

    id = Column(
        String, primary_key=True, default=lambda: f"rfd_{uuid.uuid4().hex[:12]}"
    )

    # One refund per registration, ever
    registration_id = Column(
        String,
        ForeignKey("workshop_registrations.id"),
        nullable=False,
        unique=True,
        index=True,
    )
    workshop_id = Column(String, ForeignKey("workshops.id"), nullable=False, index=True)

    # Provider information
    provider_code = Column(String(50), nullable=False, default="stripe")
    provider_refund_id = Column(String(255), nullable=True, index=True)
    payment_intent_id = Column(String(255), nullable=True)
    idempotency_key = Column(String(255), unique=True, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="pending", index=True)
    # Values: 'pending', 'processing', 'completed', 'failed', 'cancelled'

    reason = Column(String(100), nullable=False)
    reason_details = Column(Text, nullable=True)

    # Financial
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    # Failure information
    failure_code = Column(String(100), nullable=True)
    failure_message = Column(Text, nullable=True)

    requested_by = Column(String, nullable=True)
    processed_by = Column(String, nullable=True)

    requested_at = Column(UTCDateTime, nullable=False, default=utcnow)
    processed_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    registration = relationship("Registration", back_populates="refund")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="check_refund_status",
        ),
        CheckConstraint("amount >= 0", name="check_refund_amount"),
    )

    @property
    def is_final(self) -> bool:
        return self.status in ("completed", "cancelled")
