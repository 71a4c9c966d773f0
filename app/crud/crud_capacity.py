# app/crud/crud_capacity.py
"""
Capacity ledger for workshops.

`workshops.occupied_seats` is the single authoritative seat counter. Every
change goes through a conditional UPDATE (compare-and-swap on the row), so
two transactions racing for the last seat cannot both succeed: the second
UPDATE re-evaluates its WHERE clause against the committed value and matches
no row. Callers that read-then-decide additionally hold the workshop row lock
(CRUDWorkshop.get_for_update) for the duration of their transaction.
"""

import logging
from sqlalchemy.orm import Session

from app.crud.crud_registration import registration as crud_registration
from app.models.workshop import Workshop

logger = logging.getLogger(__name__)


class CapacityLedger:
    """Atomic seat accounting on the workshop row."""

    def reserve(self, db: Session, *, workshop_id: str, seats: int = 1) -> bool:
        """
        Occupy `seats` seats. Returns False, changing nothing, if that would
        exceed capacity.
        """
        if seats <= 0:
            return True
        db.flush()
        updated = (
            db.query(Workshop)
            .filter(
                Workshop.id == workshop_id,
                Workshop.occupied_seats + seats <= Workshop.capacity,
            )
            .update(
                {Workshop.occupied_seats: Workshop.occupied_seats + seats},
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            logger.info(
                "Seat reservation refused: workshop=%s seats=%d", workshop_id, seats
            )
            return False
        return True

    def release(self, db: Session, *, workshop_id: str, seats: int = 1) -> bool:
        """Free `seats` seats. Never drives the counter below zero."""
        if seats <= 0:
            return True
        db.flush()
        updated = (
            db.query(Workshop)
            .filter(
                Workshop.id == workshop_id,
                Workshop.occupied_seats >= seats,
            )
            .update(
                {Workshop.occupied_seats: Workshop.occupied_seats - seats},
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            logger.error(
                "Seat release would underflow: workshop=%s seats=%d", workshop_id, seats
            )
            return False
        return True

    def available(self, db: Session, *, workshop_id: str) -> int:
        row = (
            db.query(Workshop.capacity, Workshop.occupied_seats)
            .filter(Workshop.id == workshop_id)
            .first()
        )
        if row is None:
            return 0
        capacity, occupied = row
        return max(0, capacity - occupied)

    def recount(self, db: Session, *, workshop_id: str) -> int:
        """
        Rebuild the counter from registrations. Used after manual data fixes;
        returns the corrected value.
        """
        actual = crud_registration.count_seat_holders(db, workshop_id=workshop_id)
        db.query(Workshop).filter(Workshop.id == workshop_id).update(
            {Workshop.occupied_seats: actual}, synchronize_session="fetch"
        )
        logger.info("Recounted seats for workshop %s: %d", workshop_id, actual)
        return actual


capacity_ledger = CapacityLedger()
