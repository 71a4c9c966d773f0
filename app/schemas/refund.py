# app/schemas/refund.py
from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime


class RefundStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class RefundReason(str, Enum):
    requested_by_customer = "requested_by_customer"
    duplicate = "duplicate"
    fraudulent = "fraudulent"
    event_cancelled = "event_cancelled"
    other = "other"


class RefundRequest(BaseModel):
    reason: RefundReason = RefundReason.requested_by_customer
    reason_details: Optional[str] = Field(None, max_length=500)
    amount: Optional[int] = Field(None, gt=0, description="Partial amount, when enabled")


class RefundEligibilityOut(BaseModel):
    registration_id: str
    eligible: bool
    reason: Optional[str] = None
    amount: int = 0
    deadline: Optional[datetime] = None


class Refund(BaseModel):
    id: str
    registration_id: str
    workshop_id: str
    status: RefundStatus
    reason: RefundReason
    amount: int
    currency: str
    provider_refund_id: Optional[str] = None
    failure_message: Optional[str] = None
    attempts: int
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
