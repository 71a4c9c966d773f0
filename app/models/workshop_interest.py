# app/models/workshop_interest.py
import uuid
from sqlalchemy import Column, ForeignKey, String, UniqueConstraint

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class WorkshopInterest(Base):
    __tablename__ = "workshop_interests"

    id = Column(
        String, primary_key=True, default=lambda: f"wki_{uuid.uuid4().hex[:12]}"
    )
    workshop_id = Column(String, ForeignKey("workshops.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("workshop_id", "user_id", name="uq_workshop_interest_user"),
    )
