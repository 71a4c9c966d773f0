# app/services/workshops/follow_up_service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.notifications import Notifier, get_notifier
from app.crud.crud_registration import registration as crud_registration
from app.crud.crud_workshop import workshop as crud_workshop
from app.models.workshop import Workshop
from app.services.workshops import messages

logger = logging.getLogger(__name__)


class FollowUpService:
    """Post-workshop messages to attendees and no-shows, sent once each."""

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    def send_for_workshop(self, workshop: Workshop, now: datetime) -> int:
        pending = crud_registration.get_needing_follow_up(self.db, workshop_id=workshop.id)
        for registration in pending:
            registration.follow_up_sent_at = now
        if not pending:
            return 0
        self.db.commit()

        for registration in pending:
            template = messages.FOLLOW_UP if registration.status == "attended" else messages.NO_SHOW
            self.notifier.send(
                template,
                registration.email,
                messages.registration_variables(registration, workshop),
            )
        logger.info("Sent %d follow-up(s) for workshop %s", len(pending), workshop.id)
        return len(pending)

    def send_follow_ups(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=settings.FOLLOW_UP_LOOKBACK_DAYS)
        total = 0
        for workshop in crud_workshop.get_finished_since(self.db, since=since):
            total += self.send_for_workshop(workshop, now)
        return total
