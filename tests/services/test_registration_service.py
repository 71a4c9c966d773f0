from datetime import timedelta

import pytest

from app.core.errors import (
    CapacityExceededError,
    ConflictError,
    NotEligibleError,
    NotFoundError,
)
from app.models.waitlist_entry import WaitlistEntry
from app.schemas.registration import RegistrationCreate
from app.services.payment.provider_interface import PaymentIntentStatusEnum
from app.services.workshops import messages
from app.services.workshops.registration_service import RegistrationService, payment_intent_key
from tests.utils.factories import (
    NOW,
    make_registration,
    make_waitlist_entry,
    make_workshop,
)


@pytest.fixture
def service(db, provider, notifier):
    return RegistrationService(db, provider=provider, notifier=notifier)


def _templates(notifier):
    return [c.args[0] for c in notifier.send.call_args_list]


def _member(member_id="m1"):
    return RegistrationCreate(
        member_id=member_id, email=f"{member_id}@example.com", first_name="Ann", last_name="Lee"
    )


def _invited(db, workshop, token="tok_1", **overrides):
    values = {
        "status": "invited",
        "amount_paid": None,
        "payment_intent_id": None,
        "payment_token": token,
        "payment_token_expires_at": NOW + timedelta(days=10),
    }
    values.update(overrides)
    return make_registration(db, workshop, **values)


# --------------------------------------------------------------------------- #
# Direct registration
# --------------------------------------------------------------------------- #

def test_register_member_takes_a_seat(db, service, notifier):
    workshop = make_workshop(db, status="published")

    registration = service.register(workshop.id, _member(), now=NOW)

    assert registration.status == "invited"
    assert registration.member_id == "m1"
    assert registration.payment_token
    assert registration.payment_token_expires_at == workshop.starts_at - timedelta(days=1)
    db.refresh(workshop)
    assert workshop.occupied_seats == 1
    assert _templates(notifier) == [messages.INVITATION]


def test_register_guest_creates_external_person(db, service):
    workshop = make_workshop(db, status="published")

    registration = service.register(
        workshop.id,
        RegistrationCreate(email="Guest@Example.com", first_name="Guest", last_name="User"),
        now=NOW,
    )

    assert registration.member_id is None
    assert registration.external_person_id is not None
    assert registration.email == "guest@example.com"
    assert registration.full_name == "Guest User"


def test_register_twice_conflicts(db, service):
    workshop = make_workshop(db, status="published")
    service.register(workshop.id, _member(), now=NOW)

    with pytest.raises(ConflictError):
        service.register(workshop.id, _member(), now=NOW)

    db.refresh(workshop)
    assert workshop.occupied_seats == 1


def test_register_when_full(db, service):
    workshop = make_workshop(db, status="published", capacity=1)
    service.register(workshop.id, _member("m1"), now=NOW)

    with pytest.raises(CapacityExceededError):
        service.register(workshop.id, _member("m2"), now=NOW)


def test_register_requires_published_upcoming_workshop(db, service):
    draft = make_workshop(db)
    with pytest.raises(NotEligibleError):
        service.register(draft.id, _member(), now=NOW)

    with pytest.raises(NotFoundError):
        service.register("wks_missing", _member(), now=NOW)


def test_register_again_after_cancelling(db, service):
    workshop = make_workshop(db, status="published")
    first = service.register(workshop.id, _member(), now=NOW)
    service.cancel(first.id, cancelled_by="m1", now=NOW)

    second = service.register(workshop.id, _member(), now=NOW)

    assert second.id != first.id
    assert second.status == "invited"


# --------------------------------------------------------------------------- #
# Payment
# --------------------------------------------------------------------------- #

def test_start_payment_reuses_checkout(db, service, provider):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)

    first = service.start_payment("tok_1", now=NOW)
    second = service.start_payment("tok_1", now=NOW + timedelta(minutes=5))

    assert first.amount == 5000
    assert first.currency == "EUR"
    assert first.session.client_secret == second.session.client_secret
    assert len(provider.created) == 1
    assert provider.created[0].reference_id == payment_intent_key(registration.id)
    db.refresh(registration)
    assert registration.payment_intent_id == "pi_test_1"


def test_start_payment_charges_non_member_price(db, service):
    workshop = make_workshop(db, status="published")
    _invited(db, workshop, member_id=None, external_person_id="ext_1")

    assert service.start_payment("tok_1", now=NOW).amount == 7500


def test_start_payment_free_workshop_confirms_immediately(db, service, provider, notifier):
    workshop = make_workshop(db, status="published", price_member=0)
    registration = _invited(db, workshop)

    result = service.start_payment("tok_1", now=NOW)

    assert result.session is None
    assert result.amount == 0
    db.refresh(registration)
    assert registration.status == "confirmed"
    assert registration.amount_paid == 0
    assert provider.created == []
    assert messages.PAYMENT_CONFIRMED in _templates(notifier)


def test_start_payment_rejections(db, service):
    workshop = make_workshop(db, status="published", capacity=5)
    _invited(db, workshop, token="expired", member_id="m_exp", payment_token_expires_at=NOW - timedelta(hours=1))
    make_registration(db, workshop, member_id="m_paid", payment_token="used")

    with pytest.raises(NotFoundError):
        service.start_payment("nope", now=NOW)
    with pytest.raises(NotEligibleError):
        service.start_payment("expired", now=NOW)
    with pytest.raises(ConflictError):
        service.start_payment("used", now=NOW)


def test_start_payment_on_cancelled_workshop(db, service):
    workshop = make_workshop(db, status="cancelled")
    _invited(db, workshop)

    with pytest.raises(NotEligibleError):
        service.start_payment("tok_1", now=NOW)


def test_payment_succeeded_confirms_once(db, service, notifier):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    started = service.start_payment("tok_1", now=NOW)

    service.handle_payment_succeeded(started.session.artifact_id, amount=5000, now=NOW)
    service.handle_payment_succeeded(started.session.artifact_id, amount=5000, now=NOW)

    db.refresh(registration)
    assert registration.status == "confirmed"
    assert registration.amount_paid == 5000
    assert registration.confirmed_at == NOW
    assert _templates(notifier).count(messages.PAYMENT_CONFIRMED) == 1
    db.refresh(started.session)
    assert started.session.is_used is True


def test_reload_after_paying_keeps_the_paid_artifact(db, service, provider):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    started = service.start_payment("tok_1", now=NOW)
    provider.statuses[started.session.artifact_id] = PaymentIntentStatusEnum.SUCCEEDED

    with pytest.raises(ConflictError):
        service.start_payment("tok_1", now=NOW + timedelta(minutes=2))

    assert len(provider.created) == 1
    service.handle_payment_succeeded("pi_test_1", amount=5000, now=NOW + timedelta(minutes=3))
    db.refresh(registration)
    assert registration.status == "confirmed"
    assert registration.payment_intent_id == "pi_test_1"


def test_payment_on_replaced_artifact_confirms_registration(db, service, provider):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    service.start_payment("tok_1", now=NOW)
    workshop.price_member = 6000
    db.commit()
    replaced = service.start_payment("tok_1", now=NOW + timedelta(minutes=1))
    assert replaced.session.artifact_id == "pi_test_2"

    service.handle_payment_succeeded("pi_test_1", amount=5000, now=NOW + timedelta(minutes=2))

    db.refresh(registration)
    assert registration.status == "confirmed"
    assert registration.amount_paid == 5000
    assert registration.payment_intent_id == "pi_test_1"

def test_payment_succeeded_defaults_to_session_amount(db, service):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    started = service.start_payment("tok_1", now=NOW)

    service.handle_payment_succeeded(started.session.artifact_id, now=NOW)

    db.refresh(registration)
    assert registration.amount_paid == 5000


def test_payment_succeeded_for_unknown_artifact(service):
    assert service.handle_payment_succeeded("pi_unknown", now=NOW) is None


def test_payment_after_cancellation_does_not_revive_registration(db, service):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    started = service.start_payment("tok_1", now=NOW)
    artifact_id = started.session.artifact_id
    service.cancel(registration.id, cancelled_by="m1", now=NOW)

    service.handle_payment_succeeded(artifact_id, amount=5000, now=NOW)

    db.refresh(registration)
    assert registration.status == "cancelled"


def test_payment_failed_keeps_invitation(db, service):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    started = service.start_payment("tok_1", now=NOW)

    result = service.handle_payment_failed(started.session.artifact_id, "card_declined")

    assert result.id == registration.id
    db.refresh(registration)
    assert registration.status == "invited"


# --------------------------------------------------------------------------- #
# Cancellation
# --------------------------------------------------------------------------- #

def test_cancel_frees_seat_and_voids_checkout(db, service, provider, notifier):
    workshop = make_workshop(db, status="published")
    registration = _invited(db, workshop)
    service.start_payment("tok_1", now=NOW)

    cancelled = service.cancel(registration.id, cancelled_by="m1", now=NOW)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "m1"
    db.refresh(workshop)
    assert workshop.occupied_seats == 0
    assert provider.cancelled == ["pi_test_1"]
    assert messages.REGISTRATION_CANCELLED in _templates(notifier)


def test_cancel_with_requeue_puts_attendee_back_on_waitlist(db, service):
    workshop = make_workshop(db, status="published")
    entry = make_waitlist_entry(db, 1, status="completed")
    registration = make_registration(db, workshop, member_id="member_1", waitlist_entry_id=entry.id)

    service.cancel(registration.id, cancelled_by="coord_1", requeue=True, priority=-5, now=NOW)

    entry = db.get(WaitlistEntry, entry.id)
    assert entry.status == "waiting"
    assert entry.priority == -5
    assert entry.cancelled_workshop_id == workshop.id


def test_cancel_rejects_terminal_registrations(db, service):
    workshop = make_workshop(db, status="published")
    refunded = make_registration(db, workshop, status="refunded")

    with pytest.raises(ConflictError):
        service.cancel(refunded.id, cancelled_by="m1", now=NOW)
    with pytest.raises(NotFoundError):
        service.cancel("reg_missing", cancelled_by="m1", now=NOW)
