from datetime import timedelta

import pytest

from app.core.config import settings
from app.core.errors import ConflictError, NotEligibleError, NotFoundError, ValidationError
from app.models.refund import Refund
from app.services.payment.provider_interface import PaymentError
from app.services.workshops import messages
from app.services.workshops.refund_service import RefundService
from tests.utils.factories import NOW, make_registration, make_workshop


@pytest.fixture
def service(db, provider, notifier):
    return RefundService(db, provider=provider, notifier=notifier)


@pytest.fixture
def paid(db):
    """Published workshop, refundable until 3 days before, with one paid seat."""
    workshop = make_workshop(db, status="published")
    registration = make_registration(db, workshop)
    return workshop, registration


def _templates(notifier):
    return [c.args[0] for c in notifier.send.call_args_list]


# --------------------------------------------------------------------------- #
# Eligibility
# --------------------------------------------------------------------------- #

def test_eligible_before_deadline(service, paid):
    workshop, registration = paid

    result = service.is_refund_eligible(registration, now=NOW)

    assert result.eligible is True
    assert result.amount == 5000
    assert result.deadline == workshop.starts_at - timedelta(days=3)


def test_not_eligible_after_deadline(service, paid):
    workshop, registration = paid

    result = service.is_refund_eligible(registration, now=workshop.starts_at - timedelta(days=1))

    assert result.eligible is False
    assert result.deadline == workshop.starts_at - timedelta(days=3)


def test_not_eligible_for_non_refundable_workshop(db, service):
    workshop = make_workshop(db, status="published", refund_window_days=None)
    registration = make_registration(db, workshop)

    assert service.is_refund_eligible(registration, now=NOW).eligible is False


def test_not_eligible_before_payment(db, service):
    workshop = make_workshop(db, status="published")
    registration = make_registration(db, workshop, status="invited", amount_paid=None)

    result = service.is_refund_eligible(registration, now=NOW)

    assert result.eligible is False
    assert "invited" in result.reason


def test_workshop_cancellation_ignores_window(service, paid):
    workshop, registration = paid

    result = service.is_refund_eligible(
        registration, now=workshop.starts_at - timedelta(hours=1), implied=True
    )

    assert result.eligible is True


# --------------------------------------------------------------------------- #
# Request
# --------------------------------------------------------------------------- #

def test_request_refund_releases_seat_and_submits(db, service, provider, notifier, paid):
    workshop, registration = paid

    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)

    assert refund.status == "processing"
    assert refund.provider_refund_id == "re_test_1"
    assert refund.amount == 5000
    assert refund.attempts == 1
    assert provider.refund_calls[0].payment_id == "pi_paid_1"
    assert provider.refund_calls[0].idempotency_key == f"refund_{registration.id}"
    db.refresh(registration)
    db.refresh(workshop)
    assert registration.status == "refunded"
    assert workshop.occupied_seats == 0
    assert _templates(notifier) == [messages.REFUND_REQUESTED]


def test_request_refund_after_deadline(db, service, provider, paid):
    workshop, registration = paid

    with pytest.raises(NotEligibleError):
        service.request_refund(
            registration.id, requested_by="member_x", now=workshop.starts_at - timedelta(days=1)
        )

    db.refresh(registration)
    assert registration.status == "confirmed"
    assert provider.refund_calls == []


def test_processor_failure_keeps_registration_refunded(db, service, provider, paid):
    workshop, registration = paid
    provider.refund_error = PaymentError(code="PROCESSOR_ERROR", message="boom", retryable=True)

    refund = service.request_refund(
        registration.id, requested_by="member_x", now=workshop.starts_at - timedelta(days=4)
    )

    assert refund.status == "failed"
    assert refund.failure_code == "PROCESSOR_ERROR"
    db.refresh(registration)
    db.refresh(workshop)
    assert registration.status == "refunded"
    assert workshop.occupied_seats == 0


def test_second_request_conflicts(db, service, provider, paid):
    _, registration = paid
    service.request_refund(registration.id, requested_by="member_x", now=NOW)

    with pytest.raises(ConflictError):
        service.request_refund(registration.id, requested_by="member_x", now=NOW)

    assert len(provider.refund_calls) == 1
    assert db.query(Refund).count() == 1


def test_unknown_registration(service):
    with pytest.raises(NotFoundError):
        service.request_refund("reg_missing", requested_by="x", now=NOW)


def test_partial_refund_disabled(db, service, paid):
    _, registration = paid

    with pytest.raises(ValidationError):
        service.request_refund(registration.id, requested_by="member_x", amount=2000, now=NOW)

    db.refresh(registration)
    assert registration.status == "confirmed"


def test_partial_refund_enabled(db, service, provider, paid, monkeypatch):
    monkeypatch.setattr(settings, "ALLOW_PARTIAL_REFUNDS", True)
    _, registration = paid

    refund = service.request_refund(registration.id, requested_by="member_x", amount=2000, now=NOW)

    assert refund.amount == 2000
    assert provider.refund_calls[0].amount == 2000

    with pytest.raises(ConflictError):
        service.request_refund(registration.id, requested_by="member_x", amount=9000, now=NOW)


def test_free_registration_refunds_without_processor(db, service, provider):
    workshop = make_workshop(db, status="published", price_member=0)
    registration = make_registration(db, workshop, amount_paid=0, payment_intent_id=None)

    assert service.request_refund(registration.id, requested_by="member_x", now=NOW) is None

    db.refresh(registration)
    assert registration.status == "refunded"
    assert provider.refund_calls == []


def test_missing_payment_reference_is_not_retried(db, service, provider):
    workshop = make_workshop(db, status="published")
    registration = make_registration(db, workshop, payment_intent_id=None)

    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)

    assert refund.status == "failed"
    assert refund.failure_code == "NO_PAYMENT"
    assert service.retry_failed_refunds(now=NOW) == 0
    assert provider.refund_calls == []


# --------------------------------------------------------------------------- #
# Processor callbacks
# --------------------------------------------------------------------------- #

def test_refund_succeeded_completes_once(db, service, notifier, paid):
    _, registration = paid
    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)
    notifier.send.reset_mock()

    service.handle_refund_succeeded("re_test_1", now=NOW)
    service.handle_refund_succeeded("re_test_1", now=NOW)

    db.refresh(refund)
    assert refund.status == "completed"
    assert refund.completed_at == NOW
    assert _templates(notifier) == [messages.REFUND_COMPLETED]


def test_refund_succeeded_falls_back_to_payment_intent(db, service, paid):
    _, registration = paid
    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)

    service.handle_refund_succeeded("re_other", payment_intent_id="pi_paid_1", now=NOW)

    db.refresh(refund)
    assert refund.status == "completed"
    assert refund.provider_refund_id == "re_other"


def test_refund_callbacks_for_unknown_refund(service):
    assert service.handle_refund_succeeded("re_unknown", now=NOW) is None
    assert service.handle_refund_failed("re_unknown", "declined") is None


def test_refund_failed_callback(db, service, paid):
    _, registration = paid
    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)

    service.handle_refund_failed("re_test_1", "insufficient_funds")

    db.refresh(refund)
    assert refund.status == "failed"
    assert refund.failure_code == "PROVIDER_FAILED"
    assert refund.failure_message == "insufficient_funds"


# --------------------------------------------------------------------------- #
# Retry
# --------------------------------------------------------------------------- #

def test_retry_uses_a_fresh_idempotency_key(db, service, provider, paid):
    _, registration = paid
    provider.refund_error = PaymentError(code="PROCESSOR_ERROR", message="boom", retryable=True)
    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)
    provider.refund_error = None

    assert service.retry_failed_refunds(now=NOW) == 1

    db.refresh(refund)
    assert refund.status == "processing"
    assert refund.attempts == 2
    assert refund.failure_code is None
    assert provider.refund_calls[1].idempotency_key == f"refund_{registration.id}:2"


def test_retry_treats_already_refunded_as_done(db, service, provider, paid):
    _, registration = paid
    provider.refund_error = PaymentError(code="PROCESSOR_ERROR", message="boom", retryable=True)
    refund = service.request_refund(registration.id, requested_by="member_x", now=NOW)
    provider.refund_error = PaymentError(
        code="ALREADY_REFUNDED", message="Charge already refunded", retryable=False
    )

    service.retry_failed_refunds(now=NOW)

    db.refresh(refund)
    assert refund.status == "completed"
    assert service.retry_failed_refunds(now=NOW) == 0


def test_retry_stops_after_max_attempts(db, service, provider, paid, monkeypatch):
    monkeypatch.setattr(settings, "REFUND_MAX_ATTEMPTS", 2)
    _, registration = paid
    provider.refund_error = PaymentError(code="PROCESSOR_ERROR", message="boom", retryable=True)
    service.request_refund(registration.id, requested_by="member_x", now=NOW)

    assert service.retry_failed_refunds(now=NOW) == 1
    assert service.retry_failed_refunds(now=NOW) == 0
    assert len(provider.refund_calls) == 2
