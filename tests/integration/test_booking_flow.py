from datetime import timedelta

from src.application.reservation_service import ReservationService
from src.infrastructure.db.models import utc_now


def _create_show(client, seat_count=3):
    response = client.post("/shows", json={"seat_count": seat_count})
    assert response.status_code == 201
    return response.json()["id"]


def _statuses(client, show_id):
    response = client.get(f"/shows/{show_id}/seats")
    assert response.status_code == 200
    return {seat["label"]: seat for seat in response.json()}


def test_booking_flow(client):
    show_id = _create_show(client)
    seats = _statuses(client, show_id)
    assert list(seats) == ["A1", "A2", "A3"]
    assert {seat["status"] for seat in seats.values()} == {"AVAILABLE"}

    response = client.post(
        f"/shows/{show_id}/seats/A1/hold",
        json={"requester_name": "Alice"},
    )
    assert response.status_code == 201
    hold = response.json()
    assert hold["status"] == "HELD"
    assert hold["seat_label"] == "A1"
    seat = _statuses(client, show_id)["A1"]
    assert seat["status"] == "HELD"
    assert seat["held_by_name"] == "Alice"
    assert hold["token"] not in seat.values()
    assert "hold_token" not in seat

    confirm_response = client.post(f"/holds/{hold['token']}/confirm")
    assert confirm_response.status_code == 200
    assert confirm_response.json()["status"] == "CONFIRMED"

    seat = _statuses(client, show_id)["A1"]
    assert seat["status"] == "BOOKED"
    assert seat["booked_by_name"] == "Alice"

    taken = client.post(
        f"/shows/{show_id}/seats/A1/hold",
        json={"requester_name": "Bob"},
    )
    assert taken.status_code == 409
    assert taken.json()["detail"]["code"] == "SEAT_UNAVAILABLE"


def test_release_flow(client):
    show_id = _create_show(client)
    first = client.post(
        f"/shows/{show_id}/seats/A2/hold",
        json={"requester_name": "Carl"},
    ).json()

    released = client.post(f"/holds/{first['token']}/release")
    assert released.status_code == 200
    assert released.json()["cancel_reason"] == "RELEASED"
    assert _statuses(client, show_id)["A2"]["status"] == "AVAILABLE"

    again = client.post(f"/holds/{first['token']}/release")
    assert again.status_code == 404
    assert again.json()["detail"]["code"] == "HOLD_NOT_FOUND"

    second = client.post(
        f"/shows/{show_id}/seats/A2/hold",
        json={"requester_name": "Dana"},
    )
    assert second.status_code == 201
    assert second.json()["token"] != first["token"]


def test_expired_hold_is_gone_then_reclaimed(client, session_factory):
    show_id = _create_show(client)
    db = session_factory()
    try:
        hold = ReservationService(db, hold_duration_seconds=20).try_hold(
            show_id, "A3", "Erin", now=utc_now() - timedelta(seconds=21)
        )
        token = hold.id
        db.commit()
    finally:
        db.close()

    expired = client.post(f"/holds/{token}/confirm")
    assert expired.status_code == 410
    assert expired.json()["detail"]["code"] == "HOLD_EXPIRED"

    sweep = client.post("/holds/reclaim")
    assert sweep.status_code == 200
    assert sweep.json() == {"reclaimed": 1, "tokens": [token]}
    assert _statuses(client, show_id)["A3"]["status"] == "AVAILABLE"

    lookup = client.get(f"/holds/{token}")
    assert lookup.json()["status"] == "CANCELLED"
    assert lookup.json()["cancel_reason"] == "EXPIRED"


def test_listing_uses_natural_seat_order(client):
    show_id = _create_show(client, seat_count=11)

    labels = [seat["label"] for seat in client.get(f"/shows/{show_id}/seats").json()]

    assert labels[1] == "A2"
    assert labels[-1] == "A11"


def test_not_found_responses(client):
    assert client.get("/shows/missing/seats").status_code == 404
    assert client.get("/holds/missing").status_code == 404

    show_id = _create_show(client)
    missing_seat = client.post(
        f"/shows/{show_id}/seats/Z9/hold",
        json={"requester_name": "Alice"},
    )
    assert missing_seat.status_code == 404
    assert missing_seat.json()["detail"]["code"] == "SEAT_NOT_FOUND"


def test_request_validation(client):
    assert client.post("/shows", json={"seat_count": 0}).status_code == 422

    show_id = _create_show(client)
    blank = client.post(
        f"/shows/{show_id}/seats/A1/hold",
        json={"requester_name": "   "},
    )
    assert blank.status_code == 422


def test_health(client):
    assert client.get("/health").status_code == 200
