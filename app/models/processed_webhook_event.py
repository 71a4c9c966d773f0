# app/models/processed_webhook_event.py
import uuid
from sqlalchemy import Column, String, Text

from app.db.base_class import Base
from app.db.types import UTCDateTime, utcnow


class ProcessedWebhookEvent(Base):
    """Processor callbacks already seen, so redeliveries become no-ops."""

    __tablename__ = "processed_webhook_events"

    id = Column(
        String, primary_key=True, default=lambda: f"whe_{uuid.uuid4().hex[:12]}"
    )
    provider_code = Column(String(50), nullable=False, default="stripe")
    provider_event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False)
    object_id = Column(String(255), nullable=True)

    status = Column(String(20), nullable=False, default="processing")
    # Values: 'processing', 'processed', 'failed', 'ignored'
    error_message = Column(Text, nullable=True)

    received_at = Column(UTCDateTime, nullable=False, default=utcnow)
    processed_at = Column(UTCDateTime, nullable=True)
