"""
Tests for batch invitations and waitlist top-ups.

Covers the publish -> pay -> cancel -> top-up walk-through, cool-off
idempotency, eligibility filtering and waitlist maintenance.
"""

from datetime import timedelta

import pytest

from app.core.errors import ConflictError, NotFoundError
from app.crud.crud_registration import registration as crud_registration
from app.schemas.waitlist import WaitlistJoin
from app.services.workshops import messages
from app.services.workshops.invitation_service import InvitationService, payment_token_expiry
from app.services.workshops.registration_service import RegistrationService
from app.services.workshops.workshop_service import WorkshopService
from tests.utils.factories import (
    NOW,
    make_registration,
    make_waitlist_entry,
    make_workshop,
)


def _member_ids(registrations):
    return sorted(r.member_id for r in registrations)


def test_publish_pay_cancel_top_up_walkthrough(db, provider, notifier):
    workshop = make_workshop(db, capacity=2, batch_size=2, cool_off_days=5)
    for n in range(1, 6):
        make_waitlist_entry(db, n)

    WorkshopService(db, provider=provider, notifier=notifier).publish(workshop.id, now=NOW)

    invited = crud_registration.get_by_workshop(db, workshop_id=workshop.id)
    assert _member_ids(invited) == ["member_1", "member_2"]
    assert all(r.status == "invited" for r in invited)
    db.refresh(workshop)
    assert workshop.occupied_seats == 2

    by_member = {r.member_id: r for r in invited}
    registrations = RegistrationService(db, provider=provider, notifier=notifier)

    # member_1 pays: confirmed, still holding the same seat
    started = registrations.start_payment(by_member["member_1"].payment_token, now=NOW)
    registrations.handle_payment_succeeded(started.session.artifact_id, now=NOW)
    db.refresh(workshop)
    assert by_member["member_1"].status == "confirmed"
    assert workshop.occupied_seats == 2

    # member_2 cancels before paying: one seat frees up
    registrations.cancel(by_member["member_2"].id, cancelled_by="member_2", now=NOW)
    db.refresh(workshop)
    assert workshop.occupied_seats == 1

    invitations = InvitationService(db, notifier=notifier)

    # Still inside the cool-off window
    assert invitations.top_up_workshop(workshop.id, now=NOW + timedelta(days=1)) == []

    topped_up = invitations.top_up_workshop(workshop.id, now=NOW + timedelta(days=5))
    assert [r.member_id for r in topped_up] == ["member_3"]
    db.refresh(workshop)
    assert workshop.occupied_seats == 2


def test_top_up_is_a_no_op_when_rerun_in_same_window(db, notifier):
    workshop = make_workshop(
        db, status="published", capacity=4, batch_size=1, last_batch_sent_at=NOW - timedelta(days=10)
    )
    for n in range(1, 4):
        make_waitlist_entry(db, n)
    service = InvitationService(db, notifier=notifier)

    first = service.top_up_workshop(workshop.id, now=NOW)
    second = service.top_up_workshop(workshop.id, now=NOW + timedelta(hours=1))

    assert len(first) == 1
    assert second == []
    assert len(crud_registration.get_by_workshop(db, workshop_id=workshop.id)) == 1
    db.refresh(workshop)
    assert workshop.last_batch_sent_at == NOW
    assert notifier.send.call_count == 1


def test_top_up_skips_full_draft_and_started_workshops(db, notifier):
    full = make_workshop(db, status="published", capacity=1, occupied_seats=1)
    draft = make_workshop(db, status="draft")
    started = make_workshop(
        db, status="published", starts_at=NOW - timedelta(hours=1), ends_at=NOW + timedelta(hours=2)
    )
    make_waitlist_entry(db, 1)
    service = InvitationService(db, notifier=notifier)

    assert service.top_up_workshop(full.id, now=NOW) == []
    assert service.top_up_workshop(draft.id, now=NOW) == []
    assert service.top_up_workshop(started.id, now=NOW) == []
    notifier.send.assert_not_called()


def test_top_up_with_empty_pool_keeps_cool_off_clock(db, notifier):
    workshop = make_workshop(db, status="published", last_batch_sent_at=None)

    assert InvitationService(db, notifier=notifier).top_up_workshop(workshop.id, now=NOW) == []

    db.refresh(workshop)
    assert workshop.last_batch_sent_at is None


def test_top_up_unknown_workshop(db, notifier):
    with pytest.raises(NotFoundError):
        InvitationService(db, notifier=notifier).top_up_workshop("wks_missing", now=NOW)


def test_eligible_candidates_excludes_recent_no_shows_and_registered(db, notifier):
    workshop = make_workshop(db, status="published", capacity=5, batch_size=5)
    make_waitlist_entry(db, 1)
    make_waitlist_entry(db, 2, last_no_show_at=NOW - timedelta(days=10))
    make_waitlist_entry(db, 3, last_no_show_at=NOW - timedelta(days=400))
    make_waitlist_entry(db, 4)
    make_waitlist_entry(db, 5, status="withdrawn")
    make_registration(db, workshop, member_id="member_4", status="confirmed")

    eligible = InvitationService(db, notifier=notifier).eligible_candidates(workshop, NOW)

    assert [e.member_id for e in eligible] == ["member_1", "member_3"]


def test_eligible_candidates_skips_people_who_cancelled_out(db, notifier):
    workshop = make_workshop(db, status="published")
    make_waitlist_entry(db, 1, cancelled_workshop_id=workshop.id)
    make_waitlist_entry(db, 2)

    eligible = InvitationService(db, notifier=notifier).eligible_candidates(workshop, NOW)

    assert [e.member_id for e in eligible] == ["member_2"]


def test_apply_batch_respects_manual_priority(db, notifier):
    workshop = make_workshop(db, status="published", capacity=5, batch_size=1)
    make_waitlist_entry(db, 1)
    late = make_waitlist_entry(db, 9)
    service = InvitationService(db, notifier=notifier)
    service.prioritize_candidate(late.id, -10)

    invited = service.apply_batch(workshop.id, NOW)
    db.commit()

    assert [r.member_id for r in invited] == ["member_9"]
    assert invited[0].waitlist_entry_id == late.id
    assert invited[0].payment_token
    assert invited[0].payment_token_expires_at == workshop.starts_at - timedelta(days=1)


def test_notify_invited_sends_invitation_template(db, notifier):
    workshop = make_workshop(db, status="published")
    make_waitlist_entry(db, 1)

    invited = InvitationService(db, notifier=notifier).top_up_workshop(workshop.id, now=NOW)

    notifier.send.assert_called_once()
    template, recipient, variables = notifier.send.call_args.args
    assert template == messages.INVITATION
    assert recipient == "member1@example.com"
    assert variables["registration_id"] == invited[0].id


def test_payment_token_expiry_close_to_start(db):
    workshop = make_workshop(db, starts_at=NOW + timedelta(hours=12), ends_at=NOW + timedelta(hours=14))
    assert payment_token_expiry(workshop, NOW) == workshop.starts_at


def test_join_waitlist_member_and_guest(db, notifier):
    service = InvitationService(db, notifier=notifier)

    member = service.join_waitlist(
        WaitlistJoin(member_id="m1", email="M1@Example.com", first_name="Ann", last_name="Lee"), now=NOW
    )
    guest = service.join_waitlist(
        WaitlistJoin(email="guest@example.com", first_name="Guest", last_name="User"), now=NOW
    )

    assert member.member_id == "m1"
    assert member.email == "m1@example.com"
    assert guest.member_id is None
    assert guest.external_person_id is not None


def test_join_waitlist_twice_conflicts(db, notifier):
    service = InvitationService(db, notifier=notifier)
    entry_in = WaitlistJoin(member_id="m1", email="m1@example.com", first_name="Ann", last_name="Lee")
    service.join_waitlist(entry_in, now=NOW)

    with pytest.raises(ConflictError):
        service.join_waitlist(entry_in, now=NOW)


def test_withdraw_removes_entry_from_pool(db, notifier):
    workshop = make_workshop(db, status="published")
    entry = make_waitlist_entry(db, 1)
    service = InvitationService(db, notifier=notifier)

    assert service.withdraw(entry.id).status == "withdrawn"
    assert service.top_up_workshop(workshop.id, now=NOW) == []
