import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.application.reclaimer import ExpiryReclaimer
from src.domain.state_machine import SeatStatus

T0 = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)


def test_sweep_releases_expired_holds(session_factory, service, show, db, check_store):
    expired = service.try_hold(show.id, "A1", "Alice", now=T0)
    fresh = service.try_hold(show.id, "A2", "Bob", now=T0 + timedelta(seconds=15))
    db.commit()

    reclaimer = ExpiryReclaimer(session_factory, interval_seconds=60)

    assert reclaimer.sweep(now=T0 + timedelta(seconds=25)) == 1

    statuses = {seat.label: seat.status for seat in service.list_seats(show.id)}
    assert statuses == {
        "A1": SeatStatus.AVAILABLE,
        "A2": SeatStatus.HELD,
        "A3": SeatStatus.AVAILABLE,
    }
    assert service.get_hold(fresh.id).status.value == "HELD"
    assert service.get_hold(expired.id).status.value == "CANCELLED"
    check_store()


def test_sweep_is_idempotent(session_factory, service, show, db):
    service.try_hold(show.id, "A1", "Alice", now=T0)
    db.commit()
    reclaimer = ExpiryReclaimer(session_factory, interval_seconds=60)
    late = T0 + timedelta(minutes=5)

    assert reclaimer.sweep(now=late) == 1
    assert reclaimer.sweep(now=late) == 0


def test_background_thread_reclaims_and_stops(session_factory, service, show, db):
    # A deadline already in the past for the real clock.
    service.try_hold(
        show.id, "A1", "Alice", now=datetime.now(timezone.utc) - timedelta(minutes=5)
    )
    db.commit()
    reclaimer = ExpiryReclaimer(session_factory, interval_seconds=0.05)

    reclaimer.start()
    try:
        for _ in range(100):
            statuses = {seat.label: seat.status for seat in service.list_seats(show.id)}
            if statuses["A1"] == SeatStatus.AVAILABLE:
                break
            threading.Event().wait(0.05)
        assert statuses["A1"] == SeatStatus.AVAILABLE
        assert reclaimer.is_running
    finally:
        reclaimer.stop(timeout=2)

    assert not reclaimer.is_running


def test_failed_sweep_does_not_stop_the_loop(session_factory, monkeypatch):
    reclaimer = ExpiryReclaimer(session_factory, interval_seconds=0.01)
    calls = []
    second_call = threading.Event()

    def flaky_sweep(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("transient")
        second_call.set()
        return 0

    monkeypatch.setattr(reclaimer, "sweep", flaky_sweep)

    reclaimer.start()
    try:
        assert second_call.wait(timeout=2)
    finally:
        reclaimer.stop(timeout=2)


def test_interval_must_be_positive(session_factory):
    with pytest.raises(ValueError):
        ExpiryReclaimer(session_factory, interval_seconds=0)
