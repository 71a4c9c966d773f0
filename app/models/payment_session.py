# app/models/payment_session.py
import uuid
from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class PaymentSession(Base):
    """
    A cached checkout artifact for one (user, intent) pair.

    `generation` increases every time a new artifact has to be created for the
    same pair; the unique constraint on (user_id, intent_key, generation) stops
    two concurrent creators from both persisting a session.
    """

    __tablename__ = "payment_sessions"

    id = Column(
        String, primary_key=True, default=lambda: f"psess_{uuid.uuid4().hex[:12]}"
    )
    user_id = Column(String, nullable=False, index=True)
    intent_key = Column(String(255), nullable=False)
    generation = Column(Integer, nullable=False, default=1)

    # Primary processor artifact (payment intent) and the full list for
    # multi-item checkouts, in creation order
    artifact_id = Column(String(255), nullable=False, index=True)
    artifact_ids = Column(JSON, nullable=False, default=list)
    client_secret = Column(String(255), nullable=True)

    # Amounts computed when the artifact was created
    amounts = Column(JSON, nullable=False, default=dict)
    total_amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    is_used = Column(Boolean, nullable=False, default=False, index=True)
    used_at = Column(UTCDateTime, nullable=True)
    retired_reason = Column(String(50), nullable=True)
    # Values: 'paid', 'expired', 'not_payable', 'cancelled'

    __table_args__ = (
        UniqueConstraint(
            "user_id", "intent_key", "generation", name="uq_payment_session_generation"
        ),
    )

    def is_live(self, now) -> bool:
        return not self.is_used and self.expires_at > now
