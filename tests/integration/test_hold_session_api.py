from datetime import timedelta

import pytest

from src.client.api_client import ReservationApiClient
from src.client.hold_session import ActiveHoldExistsError, HoldSession
from src.domain.exceptions import HoldExpiredError, SeatUnavailableError
from src.infrastructure.db.models import utc_now


@pytest.fixture
def api(client):
    return ReservationApiClient(client)


@pytest.fixture
def show_id(api):
    return api.create_show(seat_count=3)["id"]


def _seat(api, show_id, label):
    return next(seat for seat in api.list_seats(show_id) if seat["label"] == label)


def test_session_holds_and_confirms(api, show_id):
    session = HoldSession(api, show_id)

    hold = session.hold("A1", "Alice")
    assert session.can_act()
    assert 0 < session.time_remaining() <= 20

    result = session.confirm()

    assert result["status"] == "CONFIRMED"
    assert session.current is None
    assert _seat(api, show_id, "A1")["status"] == "BOOKED"
    assert hold.token == result["token"]


def test_session_keeps_one_hold_at_a_time(api, show_id):
    session = HoldSession(api, show_id)
    session.hold("A1", "Alice")

    with pytest.raises(ActiveHoldExistsError):
        session.hold("A2", "Alice")


def test_rejection_from_store_surfaces_as_domain_error(api, show_id):
    HoldSession(api, show_id).hold("A1", "Alice")

    with pytest.raises(SeatUnavailableError):
        HoldSession(api, show_id).hold("A1", "Bob")


def test_local_expiry_stops_actions_and_frees_seat(api, show_id):
    session = HoldSession(api, show_id)
    hold = session.hold("A2", "Carl")
    after_deadline = hold.hold_expires_at + timedelta(seconds=1)

    assert not session.can_act(after_deadline)
    assert session.time_remaining(after_deadline) == 0

    with pytest.raises(HoldExpiredError):
        session.confirm(now=after_deadline)

    assert session.current is None
    assert _seat(api, show_id, "A2")["status"] == "AVAILABLE"


def test_resume_keeps_live_hold_with_store_deadline(api, show_id):
    original = HoldSession(api, show_id)
    hold = original.hold("A3", "Dana")
    saved = original.snapshot()

    restored = HoldSession.restore(api, saved)
    restored.current.hold_expires_at = utc_now() + timedelta(minutes=10)

    resumed = restored.resume()

    assert resumed is not None
    assert resumed.token == hold.token
    assert resumed.hold_expires_at == hold.hold_expires_at


def test_resume_discards_hold_released_elsewhere(api, show_id):
    original = HoldSession(api, show_id)
    hold = original.hold("A3", "Dana")
    restored = HoldSession.restore(api, original.snapshot())

    api.release(hold.token)

    assert restored.resume() is None
    assert restored.current is None


def test_resume_discards_hold_confirmed_elsewhere(api, show_id):
    original = HoldSession(api, show_id)
    hold = original.hold("A1", "Erin")
    restored = HoldSession.restore(api, original.snapshot())

    api.confirm(hold.token)

    assert restored.resume() is None


def test_resume_discards_unknown_token(api, show_id):
    restored = HoldSession.restore(
        api,
        {
            "show_id": show_id,
            "seat_label": "A1",
            "token": "forgotten-token",
            "hold_expires_at": (utc_now() + timedelta(seconds=10)).isoformat(),
        },
    )

    assert restored.resume() is None
