# app/models/__init__.py
# Import all models so SQLAlchemy can resolve relationships and Alembic sees
# every table on Base.metadata.

from app.db.base_class import Base
from app.models.workshop import Workshop
from app.models.external_person import ExternalPerson
from app.models.waitlist_entry import WaitlistEntry
from app.models.registration import Registration
from app.models.payment_session import PaymentSession
from app.models.refund import Refund
from app.models.processed_webhook_event import ProcessedWebhookEvent
from app.models.workshop_interest import WorkshopInterest

__all__ = [
    "Base",
    "Workshop",
    "ExternalPerson",
    "WaitlistEntry",
    "Registration",
    "PaymentSession",
    "Refund",
    "ProcessedWebhookEvent",
    "WorkshopInterest",
]
