# app/crud/crud_workshop.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.workshop import Workshop
from app.schemas.workshop import WorkshopCreate, WorkshopUpdate


class CRUDWorkshop(CRUDBase[Workshop, WorkshopCreate, WorkshopUpdate]):
    def create_draft(
        self, db: Session, *, obj_in: WorkshopCreate, created_by: Optional[str]
    ) -> Workshop:
        data = obj_in.model_dump()
        if data.get("batch_size") is None:
            data["batch_size"] = data["capacity"]
        db_obj = Workshop(**data, status="draft", occupied_seats=0, created_by=created_by)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get_multi_by_status(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Workshop]:
        query = db.query(self.model)
        if status:
            query = query.filter(self.model.status == status)
        return query.order_by(self.model.starts_at.asc()).offset(skip).limit(limit).all()

    def get_needing_top_up(self, db: Session, *, now: datetime) -> List[Workshop]:
        """Published, upcoming workshops with at least one free seat."""
        return (
            db.query(self.model)
            .filter(
                self.model.status == "published",
                self.model.starts_at > now,
                self.model.occupied_seats < self.model.capacity,
            )
            .order_by(self.model.starts_at.asc())
            .all()
        )

    def get_starting_between(
        self, db: Session, *, start: datetime, end: datetime
    ) -> List[Workshop]:
        return (
            db.query(self.model)
            .filter(
                self.model.status == "published",
                self.model.starts_at > start,
                self.model.starts_at <= end,
            )
            .all()
        )

    def get_ended_unfinished(self, db: Session, *, now: datetime) -> List[Workshop]:
        return (
            db.query(self.model)
            .filter(self.model.status == "published", self.model.ends_at <= now)
            .all()
        )

    def get_finished_since(self, db: Session, *, since: datetime) -> List[Workshop]:
        return (
            db.query(self.model)
            .filter(self.model.status == "finished", self.model.finished_at >= since)
            .all()
        )


workshop = CRUDWorkshop(Workshop)
