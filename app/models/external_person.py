# app/models/external_person.py
import uuid
from sqlalchemy import Column, String

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class ExternalPerson(Base):
    """A non-member attendee, identified by email."""

    __tablename__ = "external_people"

    id = Column(
        String, primary_key=True, default=lambda: f"ext_{uuid.uuid4().hex[:12]}"
    )
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
