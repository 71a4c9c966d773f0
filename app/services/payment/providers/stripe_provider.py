# app/services/payment/providers/stripe_provider.py
import json
import logging
from typing import Any, Dict
from datetime import datetime, timezone
from dataclasses import dataclass

import stripe

from ..provider_interface import (
    PaymentProviderInterface,
    CreatePaymentIntentParams,
    PaymentIntentResult,
    PaymentIntentStatus,
    PaymentIntentStatusEnum,
    CreateRefundParams,
    RefundResult,
    RefundStatusEnum,
    WebhookEvent,
    WebhookEventType,
    RefundReason,
    PaymentError,
)

logger = logging.getLogger(__name__)


@dataclass
class StripeConfig:
    """Configuration for Stripe provider."""
    secret_key: str
    publishable_key: str
    webhook_secret: str
    api_version: str = "2023-10-16"
    max_retries: int = 2


# Stripe payment intent status -> our status
STRIPE_STATUS_MAP: Dict[str, PaymentIntentStatusEnum] = {
    "requires_payment_method": PaymentIntentStatusEnum.REQUIRES_PAYMENT_METHOD,
    "requires_confirmation": PaymentIntentStatusEnum.REQUIRES_CONFIRMATION,
    "requires_action": PaymentIntentStatusEnum.REQUIRES_ACTION,
    "processing": PaymentIntentStatusEnum.PROCESSING,
    "succeeded": PaymentIntentStatusEnum.SUCCEEDED,
    "canceled": PaymentIntentStatusEnum.CANCELLED,
    "requires_capture": PaymentIntentStatusEnum.SUCCEEDED,
}

STRIPE_EVENT_MAP: Dict[str, WebhookEventType] = {
    "payment_intent.succeeded": WebhookEventType.PAYMENT_INTENT_SUCCEEDED,
    "payment_intent.payment_failed": WebhookEventType.PAYMENT_INTENT_FAILED,
    "payment_intent.canceled": WebhookEventType.PAYMENT_INTENT_CANCELLED,
    "charge.refunded": WebhookEventType.CHARGE_REFUNDED,
    "refund.failed": WebhookEventType.REFUND_FAILED,
}

REFUND_STATUS_MAP: Dict[str, RefundStatusEnum] = {
    "succeeded": RefundStatusEnum.SUCCEEDED,
    "pending": RefundStatusEnum.PENDING,
    "requires_action": RefundStatusEnum.PENDING,
    "failed": RefundStatusEnum.FAILED,
    "canceled": RefundStatusEnum.CANCELLED,
}

# Stripe has no "event cancelled" reason
REFUND_REASON_MAP: Dict[RefundReason, str] = {
    RefundReason.REQUESTED_BY_CUSTOMER: "requested_by_customer",
    RefundReason.DUPLICATE: "duplicate",
    RefundReason.FRAUDULENT: "fraudulent",
    RefundReason.EVENT_CANCELLED: "requested_by_customer",
    RefundReason.OTHER: "requested_by_customer",
}


class StripeProvider(PaymentProviderInterface):
    """
    Stripe implementation of PaymentProviderInterface.

    - Never log card details
    - Always verify webhook signatures
    - Every mutation carries an idempotency key
    """

    def __init__(self, config: StripeConfig):
        self._config = config

        stripe.api_key = config.secret_key
        stripe.api_version = config.api_version
        stripe.max_network_retries = config.max_retries

    @property
    def code(self) -> str:
        return "stripe"

    def create_payment_intent(
        self, params: CreatePaymentIntentParams
    ) -> PaymentIntentResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=params.amount,
                currency=params.currency.lower(),
                description=params.description,
                receipt_email=params.customer_email,
                metadata={
                    **params.metadata,
                    "reference_id": params.reference_id,
                    "customer_name": params.customer_name or "",
                },
                automatic_payment_methods={"enabled": True},
                idempotency_key=params.idempotency_key,
            )
            return PaymentIntentResult(
                intent_id=intent.id,
                client_secret=intent.client_secret,
                status=STRIPE_STATUS_MAP.get(
                    intent.status, PaymentIntentStatusEnum.REQUIRES_PAYMENT_METHOD
                ),
                amount=intent.amount,
                currency=intent.currency.upper(),
            )

        except stripe.CardError as e:
            logger.error(f"Card error creating payment intent: {e.user_message}")
            raise PaymentError(
                code="CARD_ERROR",
                message=e.user_message or "Card was declined",
                retryable=True,
            )
        except stripe.RateLimitError as e:
            logger.error(f"Rate limit error: {e}")
            raise PaymentError(
                code="RATE_LIMIT",
                message="Too many requests. Please try again.",
                retryable=True,
            )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid request error: {e}")
            raise PaymentError(
                code="INVALID_REQUEST",
                message=str(e),
                retryable=False,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Payment service temporarily unavailable",
                retryable=True,
            )

    def get_payment_intent(self, intent_id: str) -> PaymentIntentStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Payment intent {intent_id} not retrievable: {e}")
            raise PaymentError(
                code="NOT_FOUND",
                message=str(e),
                retryable=False,
            )
        except stripe.StripeError as e:
            logger.error(f"Error retrieving payment intent {intent_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not retrieve payment status",
                retryable=True,
            )

        failure_code = None
        failure_message = None
        if intent.last_payment_error:
            failure_code = intent.last_payment_error.code
            failure_message = intent.last_payment_error.message

        return PaymentIntentStatus(
            intent_id=intent.id,
            status=STRIPE_STATUS_MAP.get(intent.status, PaymentIntentStatusEnum.FAILED),
            amount=intent.amount,
            currency=intent.currency.upper(),
            failure_code=failure_code,
            failure_message=failure_message,
        )

    def cancel_payment_intent(self, intent_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(intent_id)
        except stripe.InvalidRequestError as e:
            # Already cancelled, succeeded or otherwise final
            if "cannot be canceled" not in str(e).lower() and e.code != "payment_intent_unexpected_state":
                raise PaymentError(
                    code="CANCEL_FAILED",
                    message=str(e),
                    retryable=False,
                )
            logger.info(f"Payment intent {intent_id} already final, nothing to cancel")
        except stripe.StripeError as e:
            logger.error(f"Error cancelling payment intent {intent_id}: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not cancel payment",
                retryable=True,
            )

    def create_refund(self, params: CreateRefundParams) -> RefundResult:
        refund_params: Dict[str, Any] = {
            "payment_intent": params.payment_id,
            "reason": REFUND_REASON_MAP.get(params.reason, "requested_by_customer"),
        }
        if params.amount:
            refund_params["amount"] = params.amount
        if params.metadata:
            refund_params["metadata"] = params.metadata

        try:
            refund = stripe.Refund.create(
                **refund_params,
                idempotency_key=params.idempotency_key,
            )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid refund request: {e}")
            if e.code == "charge_already_refunded":
                raise PaymentError(
                    code="ALREADY_REFUNDED",
                    message=str(e),
                    retryable=False,
                )
            raise PaymentError(
                code="INVALID_REFUND",
                message=str(e),
                retryable=False,
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating refund: {e}")
            raise PaymentError(
                code="PROVIDER_ERROR",
                message="Could not process refund",
                retryable=True,
            )

        return RefundResult(
            refund_id=refund.id,
            status=REFUND_STATUS_MAP.get(refund.status, RefundStatusEnum.PENDING),
            amount=refund.amount,
            currency=refund.currency.upper(),
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._config.webhook_secret,
            )
            return True
        except stripe.SignatureVerificationError:
            return False
        except ValueError as e:
            logger.error(f"Malformed webhook payload: {e}")
            return False

    def parse_webhook_event(self, payload: bytes) -> WebhookEvent:
        try:
            event = json.loads(payload.decode("utf-8"))
            raw_type = event["type"]
            data_object = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error parsing webhook event: {e}")
            raise PaymentError(
                code="PARSE_ERROR",
                message="Could not parse webhook event",
                retryable=False,
            )

        event_type = STRIPE_EVENT_MAP.get(raw_type, WebhookEventType.UNKNOWN)
        # refund.updated carries the outcome in the object status
        if raw_type == "refund.updated":
            event_type = {
                "succeeded": WebhookEventType.REFUND_SUCCEEDED,
                "failed": WebhookEventType.REFUND_FAILED,
            }.get(data_object.get("status"), WebhookEventType.UNKNOWN)

        object_id = data_object.get("id", "")
        data: Dict[str, Any] = {
            "status": data_object.get("status"),
            "amount": data_object.get("amount"),
            "currency": (data_object.get("currency") or "").upper(),
            "metadata": data_object.get("metadata") or {},
        }
        if object_id.startswith("pi_"):
            data["paymentIntentId"] = object_id
            data["amountReceived"] = data_object.get("amount_received")
            last_error = data_object.get("last_payment_error") or {}
            data["failureCode"] = last_error.get("code")
            data["failureMessage"] = last_error.get("message")
        elif object_id.startswith("ch_"):
            data["paymentIntentId"] = data_object.get("payment_intent")
            data["amountRefunded"] = data_object.get("amount_refunded")
        elif object_id.startswith("re_"):
            data["refundId"] = object_id
            data["paymentIntentId"] = data_object.get("payment_intent")
            data["failureReason"] = data_object.get("failure_reason")

        return WebhookEvent(
            event_id=event.get("id", ""),
            event_type=event_type,
            data=data,
            created_at=datetime.fromtimestamp(event.get("created", 0), tz=timezone.utc),
            raw_type=raw_type,
        )
