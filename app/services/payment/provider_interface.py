# app/services/payment/provider_interface.py
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime


class PaymentIntentStatusEnum(str, Enum):
    """Standardized payment intent status."""
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Statuses in which the customer can still complete the payment
PAYABLE_STATUSES = frozenset({
    PaymentIntentStatusEnum.REQUIRES_PAYMENT_METHOD,
    PaymentIntentStatusEnum.REQUIRES_CONFIRMATION,
    PaymentIntentStatusEnum.REQUIRES_ACTION,
})

# Statuses in which the customer has already paid or is paying
IN_FLIGHT_STATUSES = frozenset({
    PaymentIntentStatusEnum.PROCESSING,
    PaymentIntentStatusEnum.SUCCEEDED,
})


class RefundStatusEnum(str, Enum):
    """Standardized refund status."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WebhookEventType(str, Enum):
    """Standardized webhook event types."""
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.failed"
    PAYMENT_INTENT_CANCELLED = "payment_intent.cancelled"
    CHARGE_REFUNDED = "charge.refunded"
    REFUND_SUCCEEDED = "refund.succeeded"
    REFUND_FAILED = "refund.failed"
    UNKNOWN = "unknown"


class RefundReason(str, Enum):
    """Refund reasons."""
    REQUESTED_BY_CUSTOMER = "requested_by_customer"
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    EVENT_CANCELLED = "event_cancelled"
    OTHER = "other"


@dataclass
class CreatePaymentIntentParams:
    """Parameters for creating a payment intent."""
    reference_id: str  # our id for the thing being paid for
    amount: int  # In smallest currency unit (cents)
    currency: str  # ISO 4217
    description: str
    idempotency_key: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class PaymentIntentResult:
    """Result of creating a payment intent."""
    intent_id: str
    client_secret: str
    status: PaymentIntentStatusEnum
    amount: int
    currency: str


@dataclass
class PaymentIntentStatus:
    """Current status of a payment intent."""
    intent_id: str
    status: PaymentIntentStatusEnum
    amount: int
    currency: str
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None


@dataclass
class CreateRefundParams:
    """Parameters for creating a refund."""
    payment_id: str  # Provider's payment intent ID
    idempotency_key: str
    amount: Optional[int] = None  # Omitted means full refund
    reason: RefundReason = RefundReason.REQUESTED_BY_CUSTOMER
    metadata: Optional[Dict[str, str]] = None


@dataclass
class RefundResult:
    """Result of a refund operation."""
    refund_id: str
    status: RefundStatusEnum
    amount: int
    currency: str


@dataclass
class WebhookEvent:
    """Standardized webhook event."""
    event_id: str
    event_type: WebhookEventType
    data: Dict[str, Any]
    created_at: datetime
    raw_type: str = ""


class PaymentError(Exception):
    """Raised by providers for any processor-side failure."""

    def __init__(self, code: str, message: str, retryable: bool = False):
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class PaymentProviderInterface(ABC):
    """
    Boundary to the payment processor. Business logic only ever talks to
    this interface, never to the processor SDK.
    """

    @property
    @abstractmethod
    def code(self) -> str:
        """Provider code identifier (e.g., 'stripe')."""
        pass

    @abstractmethod
    def create_payment_intent(
        self, params: CreatePaymentIntentParams
    ) -> PaymentIntentResult:
        """
        Create a payable artifact. Must be idempotent on
        params.idempotency_key.
        """
        pass

    @abstractmethod
    def get_payment_intent(self, intent_id: str) -> PaymentIntentStatus:
        """Retrieve current status of a payment intent."""
        pass

    @abstractmethod
    def cancel_payment_intent(self, intent_id: str) -> None:
        """Cancel a pending payment intent. Already-final intents are ignored."""
        pass

    @abstractmethod
    def create_refund(self, params: CreateRefundParams) -> RefundResult:
        """Refund a completed payment."""
        pass

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        pass

    @abstractmethod
    def parse_webhook_event(self, payload: bytes) -> WebhookEvent:
        pass
