from app.services.payment.provider_interface import (
    PaymentError,
    PaymentIntentResult,
    PaymentIntentStatus,
    PaymentIntentStatusEnum,
    PaymentProviderInterface,
    RefundResult,
    RefundStatusEnum,
)
from app.services.payment.providers.stripe_provider import StripeConfig, StripeProvider

VALID_SIGNATURE = "valid-signature"


class FakePaymentProvider(PaymentProviderInterface):
    """
    In-memory processor. Intents are idempotent on the idempotency key and
    numbered pi_test_1, pi_test_2, ... in creation order.
    """

    def __init__(self):
        self.intents = {}
        self.statuses = {}
        self.created = []
        self.cancelled = []
        self.refund_calls = []
        self.create_error = None
        self.refund_error = None
        # intent_id -> PaymentError raised by cancel_payment_intent
        self.cancel_errors = {}
        self._parser = StripeProvider(
            StripeConfig(secret_key="sk_test_x", publishable_key="pk_test_x", webhook_secret="whsec_x")
        )

    @property
    def code(self) -> str:
        return "stripe"

    def create_payment_intent(self, params):
        if self.create_error is not None:
            raise self.create_error
        if params.idempotency_key in self.intents:
            return self.intents[params.idempotency_key]
        intent_id = f"pi_test_{len(self.intents) + 1}"
        result = PaymentIntentResult(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret",
            status=PaymentIntentStatusEnum.REQUIRES_PAYMENT_METHOD,
            amount=params.amount,
            currency=params.currency.upper(),
        )
        self.intents[params.idempotency_key] = result
        self.statuses[intent_id] = PaymentIntentStatusEnum.REQUIRES_PAYMENT_METHOD
        self.created.append(params)
        return result

    def get_payment_intent(self, intent_id):
        if intent_id not in self.statuses:
            raise PaymentError(code="NOT_FOUND", message="No such intent", retryable=False)
        return PaymentIntentStatus(
            intent_id=intent_id,
            status=self.statuses[intent_id],
            amount=0,
            currency="EUR",
        )

    def cancel_payment_intent(self, intent_id):
        if intent_id in self.cancel_errors:
            raise self.cancel_errors[intent_id]
        self.cancelled.append(intent_id)
        if self.statuses.get(intent_id) != PaymentIntentStatusEnum.SUCCEEDED:
            self.statuses[intent_id] = PaymentIntentStatusEnum.CANCELLED

    def create_refund(self, params):
        self.refund_calls.append(params)
        if self.refund_error is not None:
            raise self.refund_error
        return RefundResult(
            refund_id=f"re_test_{len(self.refund_calls)}",
            status=RefundStatusEnum.PENDING,
            amount=params.amount or 0,
            currency="EUR",
        )

    def verify_webhook_signature(self, payload, signature):
        return signature == VALID_SIGNATURE

    def parse_webhook_event(self, payload):
        return self._parser.parse_webhook_event(payload)
