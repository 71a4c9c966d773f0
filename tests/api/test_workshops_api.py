from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.utils.factories import make_registration, make_waitlist_entry, make_workshop


def _workshop_data(**overrides):
    starts_at = datetime.now(timezone.utc) + timedelta(days=21)
    data = {
        "title": "Wheel Throwing",
        "location": "Studio 1",
        "starts_at": starts_at.isoformat(),
        "ends_at": (starts_at + timedelta(hours=3)).isoformat(),
        "capacity": 2,
        "batch_size": 2,
        "refund_window_days": 3,
        "price_member": 5000,
        "price_non_member": 7500,
    }
    data.update(overrides)
    return data


def test_create_workshop(coordinator_client: TestClient) -> None:
    response = coordinator_client.post("/api/v1/workshops", json=_workshop_data())

    assert response.status_code == 201
    content = response.json()
    assert content["status"] == "draft"
    assert content["occupied_seats"] == 0
    assert content["available_seats"] == 2


def test_create_workshop_requires_coordinator(member_client: TestClient) -> None:
    response = member_client.post("/api/v1/workshops", json=_workshop_data())

    assert response.status_code == 403


def test_create_workshop_rejects_inverted_dates(coordinator_client: TestClient) -> None:
    starts_at = datetime.now(timezone.utc) + timedelta(days=5)
    response = coordinator_client.post(
        "/api/v1/workshops",
        json=_workshop_data(
            starts_at=starts_at.isoformat(),
            ends_at=(starts_at - timedelta(hours=1)).isoformat(),
        ),
    )

    assert response.status_code == 422


def test_get_unknown_workshop(coordinator_client: TestClient) -> None:
    response = coordinator_client.get("/api/v1/workshops/wks_missing")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_publish_invites_first_batch(coordinator_client: TestClient, db: Session, notifier) -> None:
    for n in (1, 2, 3):
        make_waitlist_entry(db, n)
    workshop_id = coordinator_client.post("/api/v1/workshops", json=_workshop_data()).json()["id"]

    response = coordinator_client.post(f"/api/v1/workshops/{workshop_id}/publish")

    assert response.status_code == 200
    content = response.json()
    assert content["status"] == "published"
    assert content["occupied_seats"] == 2
    assert content["available_seats"] == 0

    registrations = coordinator_client.get(f"/api/v1/workshops/{workshop_id}/registrations").json()
    assert sorted(r["member_id"] for r in registrations) == ["member_1", "member_2"]
    assert all(r["status"] == "invited" for r in registrations)
    assert notifier.send.call_count == 2

    again = coordinator_client.post(f"/api/v1/workshops/{workshop_id}/publish")
    assert again.status_code == 409
    assert again.json()["code"] == "conflict"


def test_update_only_allowed_for_drafts(coordinator_client: TestClient, db: Session) -> None:
    workshop = make_workshop(db, status="published")

    response = coordinator_client.patch(
        f"/api/v1/workshops/{workshop.id}", json={"title": "Renamed"}
    )

    assert response.status_code == 409


def test_capacity_changes(coordinator_client: TestClient, db: Session) -> None:
    workshop = make_workshop(db, status="published", capacity=3)
    make_registration(db, workshop, member_id="member_a")
    make_registration(db, workshop, member_id="member_b")

    response = coordinator_client.put(
        f"/api/v1/workshops/{workshop.id}/capacity", json={"capacity": 1}
    )
    assert response.status_code == 422

    response = coordinator_client.put(
        f"/api/v1/workshops/{workshop.id}/capacity", json={"capacity": 2}
    )
    assert response.status_code == 409

    response = coordinator_client.put(
        f"/api/v1/workshops/{workshop.id}/capacity", json={"capacity": 5}
    )
    assert response.status_code == 200
    assert response.json()["available_seats"] == 3


def test_cancel_refunds_paid_attendees(coordinator_client: TestClient, db: Session, provider) -> None:
    starts_at = datetime.now(timezone.utc) + timedelta(days=2)
    workshop = make_workshop(
        db, status="published", starts_at=starts_at, ends_at=starts_at + timedelta(hours=2)
    )
    make_registration(db, workshop)

    response = coordinator_client.post(f"/api/v1/workshops/{workshop.id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["occupied_seats"] == 0
    refunds = coordinator_client.get(f"/api/v1/workshops/{workshop.id}/refunds").json()
    assert len(refunds) == 1
    assert refunds[0]["reason"] == "event_cancelled"
    assert refunds[0]["status"] == "processing"
    assert provider.refund_calls[0].payment_id == "pi_paid_1"


def test_toggle_interest(member_client: TestClient, db: Session) -> None:
    workshop = make_workshop(db)

    first = member_client.post(f"/api/v1/workshops/{workshop.id}/interest")
    second = member_client.post(f"/api/v1/workshops/{workshop.id}/interest")

    assert first.json() == {"workshop_id": workshop.id, "interested": True}
    assert second.json()["interested"] is False


def test_delete_draft(coordinator_client: TestClient, db: Session) -> None:
    workshop = make_workshop(db)

    response = coordinator_client.delete(f"/api/v1/workshops/{workshop.id}")

    assert response.status_code == 204
    assert coordinator_client.get(f"/api/v1/workshops/{workshop.id}").status_code == 404
