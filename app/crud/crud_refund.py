# app/crud/crud_refund.py
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.refund import Refund
from app.schemas.refund import RefundStatus


class CRUDRefund:
    """CRUD operations for workshop refunds."""

    def get(self, db: Session, id: str) -> Optional[Refund]:
        return db.get(Refund, id)

    def get_by_registration(self, db: Session, *, registration_id: str) -> Optional[Refund]:
        return db.query(Refund).filter(Refund.registration_id == registration_id).first()

    def get_by_provider_refund_id(
        self, db: Session, *, provider_refund_id: str
    ) -> Optional[Refund]:
        """Get a refund by the provider's refund ID."""
        return (
            db.query(Refund)
            .filter(Refund.provider_refund_id == provider_refund_id)
            .first()
        )

    def get_by_payment_intent(
        self, db: Session, *, payment_intent_id: str
    ) -> Optional[Refund]:
        return (
            db.query(Refund)
            .filter(Refund.payment_intent_id == payment_intent_id)
            .first()
        )

    def get_by_workshop(
        self, db: Session, *, workshop_id: str, status: Optional[RefundStatus] = None
    ) -> List[Refund]:
        query = db.query(Refund).filter(Refund.workshop_id == workshop_id)
        if status:
            query = query.filter(Refund.status == status.value)
        return query.order_by(Refund.requested_at.desc()).all()

    def get_retryable(self, db: Session, *, max_attempts: int, limit: int = 100) -> List[Refund]:
        return (
            db.query(Refund)
            .filter(Refund.status == "failed", Refund.attempts < max_attempts)
            .order_by(Refund.requested_at.asc())
            .limit(limit)
            .all()
        )

    def transition(
        self,
        db: Session,
        *,
        refund_id: str,
        from_statuses: Iterable[str],
        values: dict,
    ) -> bool:
        updated = (
            db.query(Refund)
            .filter(Refund.id == refund_id, Refund.status.in_(list(from_statuses)))
            .update(values, synchronize_session="fetch")
        )
        return updated == 1


refund = CRUDRefund()
