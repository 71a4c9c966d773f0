# app/schemas/registration.py
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from enum import Enum
from datetime import datetime


class RegistrationStatus(str, Enum):
    invited = "invited"
    confirmed = "confirmed"
    pre_checked = "pre_checked"
    attended = "attended"
    no_show = "no_show"
    cancelled = "cancelled"
    refunded = "refunded"


class AttendeeIn(BaseModel):
    """
    Who is attending. Members are identified by `member_id`; anyone else is
    an external person keyed by email. Email and names are always required
    because they are snapshotted onto the registration.
    """

    member_id: Optional[str] = None
    email: str = Field(..., json_schema_extra={"example": "guest@example.com"})
    first_name: str = Field(..., min_length=1, json_schema_extra={"example": "Guest"})
    last_name: str = Field(..., min_length=1, json_schema_extra={"example": "User"})
    phone: Optional[str] = None

    @model_validator(mode="before")
    def check_email(cls, values):
        if isinstance(values, dict):
            email = values.get("email")
            if not email or "@" not in email:
                raise ValueError("A valid email address is required")
        return values


class RegistrationCreate(AttendeeIn):
    pass


class RegistrationCancel(BaseModel):
    requeue: bool = False
    priority: Optional[int] = None


class Registration(BaseModel):
    id: str
    workshop_id: str
    member_id: Optional[str] = None
    external_person_id: Optional[str] = None
    email: str
    full_name: str
    status: RegistrationStatus
    priority: int
    invited_at: Optional[datetime] = None
    payment_token_expires_at: Optional[datetime] = None
    amount_paid: Optional[int] = None
    currency: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    onboarding_completed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RegistrationWithToken(Registration):
    """Returned only to the person who just registered."""

    payment_token: Optional[str] = None


class PaymentStart(BaseModel):
    registration_id: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    payment_session_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    status: RegistrationStatus
