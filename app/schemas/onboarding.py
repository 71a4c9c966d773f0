# app/schemas/onboarding.py
from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum
from datetime import datetime

from app.schemas.registration import RegistrationStatus


class OnboardingSubmit(BaseModel):
    insurance_confirmed: bool
    media_consent: bool = False
    signature_url: Optional[str] = Field(None, max_length=1024)


class OnboardingInfo(BaseModel):
    registration_id: str
    full_name: str
    workshop_id: str
    workshop_title: str
    starts_at: datetime
    location: str
    completed: bool


class CheckInSubmit(BaseModel):
    email: str
    # Backup onboarding fields for attendees who skipped the online form
    insurance_confirmed: Optional[bool] = None
    media_consent: Optional[bool] = None


class RosterEntry(BaseModel):
    registration_id: str
    full_name: str
    email: str
    status: RegistrationStatus
    onboarding_completed: bool
    checked_in_at: Optional[datetime] = None


class AttendanceMark(str, Enum):
    attended = "attended"
    no_show = "no_show"


class AttendanceUpdate(BaseModel):
    registration_id: str
    status: AttendanceMark
    notes: Optional[str] = Field(None, max_length=1000)


class AttendanceBatch(BaseModel):
    updates: List[AttendanceUpdate] = Field(..., min_length=1)
