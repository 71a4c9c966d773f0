# app/core/notifications.py
"""
Fire-and-forget notification publisher.

Messages are published to Kafka as {template, recipient, variables} and the
email worker renders and delivers them. A failed publish is logged and never
propagated to the caller.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from kafka import KafkaProducer

from app.core.config import settings

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, producer: Optional[KafkaProducer] = None, topic: Optional[str] = None):
        self._producer = producer
        self.topic = topic or settings.NOTIFICATIONS_TOPIC

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                request_timeout_ms=5000,
            )
        return self._producer

    def send(self, template_key: str, recipient: Optional[str], variables: Dict[str, Any]) -> bool:
        """Publish a notification. Returns False if it could not be queued."""
        if not recipient:
            logger.warning("Skipping notification %s: no recipient", template_key)
            return False

        message = {
            "template": template_key,
            "recipient": recipient,
            "variables": variables,
            "queued_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._get_producer().send(self.topic, value=message, key=recipient.encode("utf-8"))
            logger.info("Queued notification %s for %s", template_key, recipient)
            return True
        except Exception as e:
            logger.error(
                "Failed to queue notification %s for %s: %s",
                template_key, recipient, e,
                exc_info=True,
            )
            return False

    def close(self) -> None:
        if self._producer is not None:
            self._producer.flush()
            self._producer.close()
            self._producer = None


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Process-wide notifier; the Kafka connection is opened on first send."""
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
