# app/api/v1/endpoints/webhooks.py
"""
Webhook endpoint for the payment processor.

Events are verified, recorded by processor event id and then applied through
the same services the API uses. Handlers are keyed on artifact and refund
ids, so a redelivered event is a no-op. A failed event answers 500 so the
processor redelivers it; the recorded row is reclaimed on redelivery.
"""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.core.notifications import Notifier
from app.crud.crud_webhook_event import webhook_event as crud_webhook_event
from app.db.session import get_db
from app.services.payment.provider_interface import (
    PaymentError,
    PaymentProviderInterface,
    WebhookEvent,
    WebhookEventType,
)
from app.services.workshops.refund_service import RefundService
from app.services.workshops.registration_service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    provider: PaymentProviderInterface = Depends(deps.get_provider),
    notifier: Notifier = Depends(deps.get_notifications),
):
    body = await request.body()

    if not stripe_signature:
        logger.warning("Webhook received without Stripe-Signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    if not provider.verify_webhook_signature(body, stripe_signature):
        client_ip = request.client.host if request.client else None
        logger.warning("Invalid webhook signature from %s", client_ip)
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        event = provider.parse_webhook_event(body)
    except PaymentError as e:
        raise HTTPException(status_code=400, detail=e.message)

    object_id = event.data.get("refundId") or event.data.get("paymentIntentId")
    record = crud_webhook_event.start(
        db,
        provider_event_id=event.event_id,
        event_type=event.raw_type or event.event_type.value,
        object_id=object_id,
        provider_code=provider.code,
    )
    if record is None:
        logger.info("Event %s already processed, skipping", event.event_id)
        return {"status": "already_processed"}

    try:
        handled = _dispatch(db, event, provider, notifier)
    except Exception as e:
        logger.error("Error processing webhook event %s: %s", event.event_id, e, exc_info=True)
        db.rollback()
        crud_webhook_event.finish(db, event=record, status="failed", error_message=str(e)[:500])
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    crud_webhook_event.finish(db, event=record, status="processed" if handled else "ignored")
    return {"status": "processed" if handled else "ignored", "event_id": event.event_id}


def _dispatch(
    db: Session,
    event: WebhookEvent,
    provider: PaymentProviderInterface,
    notifier: Notifier,
) -> bool:
    data = event.data

    if event.event_type == WebhookEventType.PAYMENT_INTENT_SUCCEEDED:
        amount = data.get("amountReceived")
        if amount is None:
            amount = data.get("amount")
        RegistrationService(db, provider=provider, notifier=notifier).handle_payment_succeeded(
            data["paymentIntentId"], amount=amount
        )
        return True

    if event.event_type == WebhookEventType.PAYMENT_INTENT_FAILED:
        RegistrationService(db, provider=provider, notifier=notifier).handle_payment_failed(
            data["paymentIntentId"], failure_message=data.get("failureMessage")
        )
        return True

    if event.event_type in (WebhookEventType.REFUND_SUCCEEDED, WebhookEventType.CHARGE_REFUNDED):
        RefundService(db, provider=provider, notifier=notifier).handle_refund_succeeded(
            data.get("refundId"), payment_intent_id=data.get("paymentIntentId")
        )
        return True

    if event.event_type == WebhookEventType.REFUND_FAILED:
        RefundService(db, provider=provider, notifier=notifier).handle_refund_failed(
            data.get("refundId"),
            message=data.get("failureReason"),
            payment_intent_id=data.get("paymentIntentId"),
        )
        return True

    logger.info("Unhandled event type: %s", event.raw_type or event.event_type.value)
    return False
