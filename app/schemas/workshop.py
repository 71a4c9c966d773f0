# app/schemas/workshop.py
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from enum import Enum
from datetime import datetime


class WorkshopStatus(str, Enum):
    draft = "draft"
    published = "published"
    finished = "finished"
    cancelled = "cancelled"


class WorkshopBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    starts_at: datetime
    ends_at: datetime
    capacity: int = Field(..., gt=0)
    batch_size: Optional[int] = Field(None, gt=0)
    cool_off_days: int = Field(5, ge=0)
    refund_window_days: Optional[int] = Field(None, ge=0)
    price_member: int = Field(0, ge=0, description="Smallest currency unit")
    price_non_member: int = Field(0, ge=0, description="Smallest currency unit")
    currency: str = Field("EUR", min_length=3, max_length=3)


class WorkshopCreate(WorkshopBase):
    @model_validator(mode="after")
    def check_dates(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class WorkshopUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0)
    batch_size: Optional[int] = Field(None, gt=0)
    cool_off_days: Optional[int] = Field(None, ge=0)
    refund_window_days: Optional[int] = Field(None, ge=0)
    price_member: Optional[int] = Field(None, ge=0)
    price_non_member: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class CapacityChange(BaseModel):
    capacity: int = Field(..., gt=0)


class Workshop(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    location: str
    status: WorkshopStatus
    starts_at: datetime
    ends_at: datetime
    capacity: int
    batch_size: int
    cool_off_days: int
    occupied_seats: int
    available_seats: int
    refund_window_days: Optional[int] = None
    price_member: int
    price_non_member: int
    currency: str
    last_batch_sent_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InterestToggleResult(BaseModel):
    workshop_id: str
    interested: bool
