# app/crud/crud_interest.py
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.workshop_interest import WorkshopInterest


class CRUDWorkshopInterest:
    def get(self, db: Session, *, workshop_id: str, user_id: str) -> Optional[WorkshopInterest]:
        return (
            db.query(WorkshopInterest)
            .filter(
                WorkshopInterest.workshop_id == workshop_id,
                WorkshopInterest.user_id == user_id,
            )
            .first()
        )

    def count(self, db: Session, *, workshop_id: str) -> int:
        return (
            db.query(func.count(WorkshopInterest.id))
            .filter(WorkshopInterest.workshop_id == workshop_id)
            .scalar()
        )

    def toggle(self, db: Session, *, workshop_id: str, user_id: str) -> bool:
        """Flip interest on or off. Returns the new state."""
        existing = self.get(db, workshop_id=workshop_id, user_id=user_id)
        if existing:
            db.delete(existing)
            db.commit()
            return False
        db.add(WorkshopInterest(workshop_id=workshop_id, user_id=user_id))
        db.commit()
        return True

    def remove_for_workshop(self, db: Session, *, workshop_id: str) -> None:
        db.query(WorkshopInterest).filter(
            WorkshopInterest.workshop_id == workshop_id
        ).delete(synchronize_session=False)


workshop_interest = CRUDWorkshopInterest()
