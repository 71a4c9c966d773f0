# app/crud/crud_webhook_event.py
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.processed_webhook_event import ProcessedWebhookEvent


class CRUDWebhookEvent:
    def get_by_provider_event_id(
        self, db: Session, *, provider_event_id: str
    ) -> Optional[ProcessedWebhookEvent]:
        return (
            db.query(ProcessedWebhookEvent)
            .filter(ProcessedWebhookEvent.provider_event_id == provider_event_id)
            .first()
        )

    def start(
        self,
        db: Session,
        *,
        provider_event_id: str,
        event_type: str,
        object_id: Optional[str],
        provider_code: str = "stripe",
    ) -> Optional[ProcessedWebhookEvent]:
        """
        Record the event as being processed. Returns None if another delivery
        of the same event already claimed it.
        """
        existing = self.get_by_provider_event_id(db, provider_event_id=provider_event_id)
        if existing is not None:
            if existing.status == "failed":
                existing.status = "processing"
                existing.error_message = None
                db.commit()
                return existing
            return None

        event = ProcessedWebhookEvent(
            provider_code=provider_code,
            provider_event_id=provider_event_id,
            event_type=event_type,
            object_id=object_id,
            status="processing",
        )
        db.add(event)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return None
        return event

    def finish(
        self,
        db: Session,
        *,
        event: ProcessedWebhookEvent,
        status: str = "processed",
        error_message: Optional[str] = None,
    ) -> None:
        event.status = status
        event.error_message = error_message
        event.processed_at = datetime.now(timezone.utc)
        db.add(event)
        db.commit()


webhook_event = CRUDWebhookEvent()
