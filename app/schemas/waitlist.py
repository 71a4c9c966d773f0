# app/schemas/waitlist.py
from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime

from app.schemas.registration import AttendeeIn


class WaitlistStatus(str, Enum):
    waiting = "waiting"
    completed = "completed"
    withdrawn = "withdrawn"


class WaitlistJoin(AttendeeIn):
    notes: Optional[str] = None


class WaitlistPriorityUpdate(BaseModel):
    priority: int = Field(..., description="Lower goes first; negative values jump the queue")


class WaitlistEntry(BaseModel):
    id: str
    member_id: Optional[str] = None
    external_person_id: Optional[str] = None
    email: str
    first_name: str
    last_name: str
    priority: int
    joined_at: datetime
    status: WaitlistStatus
    last_no_show_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
