# app/crud/crud_payment_session.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.payment_session import PaymentSession


class CRUDPaymentSession:
    """Queries behind the payment session cache."""

    def get(self, db: Session, id: str) -> Optional[PaymentSession]:
        return db.get(PaymentSession, id)

    def get_live(
        self, db: Session, *, user_id: str, intent_key: str, now: datetime
    ) -> Optional[PaymentSession]:
        return (
            db.query(PaymentSession)
            .filter(
                PaymentSession.user_id == user_id,
                PaymentSession.intent_key == intent_key,
                PaymentSession.is_used.is_(False),
                PaymentSession.expires_at > now,
            )
            .order_by(PaymentSession.generation.desc())
            .first()
        )

    def get_unused(
        self, db: Session, *, user_id: str, intent_key: str
    ) -> List[PaymentSession]:
        return (
            db.query(PaymentSession)
            .filter(
                PaymentSession.user_id == user_id,
                PaymentSession.intent_key == intent_key,
                PaymentSession.is_used.is_(False),
            )
            .all()
        )

    def next_generation(self, db: Session, *, user_id: str, intent_key: str) -> int:
        current = (
            db.query(func.max(PaymentSession.generation))
            .filter(
                PaymentSession.user_id == user_id,
                PaymentSession.intent_key == intent_key,
            )
            .scalar()
        )
        return (current or 0) + 1

    def get_by_artifact(self, db: Session, *, artifact_id: str) -> Optional[PaymentSession]:
        session = (
            db.query(PaymentSession)
            .filter(PaymentSession.artifact_id == artifact_id)
            .first()
        )
        if session is not None:
            return session
        # Secondary artifacts of multi-item checkouts only live in the JSON list
        for candidate in (
            db.query(PaymentSession).filter(PaymentSession.is_used.is_(False)).all()
        ):
            if artifact_id in (candidate.artifact_ids or []):
                return candidate
        return None

    def get_expired_unused(
        self, db: Session, *, now: datetime, limit: int = 200
    ) -> List[PaymentSession]:
        return (
            db.query(PaymentSession)
            .filter(
                PaymentSession.is_used.is_(False),
                PaymentSession.expires_at < now,
            )
            .order_by(PaymentSession.expires_at.asc())
            .limit(limit)
            .all()
        )


payment_session = CRUDPaymentSession()
