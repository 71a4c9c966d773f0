# app/crud/__init__.py

from .crud_capacity import capacity_ledger
from .crud_interest import workshop_interest
from .crud_payment_session import payment_session
from .crud_refund import refund
from .crud_registration import registration
from .crud_waitlist import external_person, waitlist_entry
from .crud_webhook_event import webhook_event
from .crud_workshop import workshop
