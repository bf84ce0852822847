import os

# Configure before anything imports src.config.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RECLAIMER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from src.application.reservation_service import ReservationService
from src.domain.state_machine import BookingStatus, SeatStatus
from src.infrastructure.db.models import Base, BookingTransaction, Seat
from src.infrastructure.db.session import build_engine, build_session_factory


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'seat_hold.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def service(db):
    return ReservationService(db, hold_duration_seconds=20)


@pytest.fixture
def show(service, db):
    show = service.create_show(seat_count=3)
    db.commit()
    return show


@pytest.fixture
def client(session_factory):
    from src.api.routes.routes import get_db
    from src.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def assert_store_consistent(db) -> None:
    """Every seat has one legal shape and agrees with its transactions."""
    db.expire_all()
    seats = db.execute(select(Seat)).scalars().all()
    bookings = db.execute(select(BookingTransaction)).scalars().all()

    held_by_token = {b.id: b for b in bookings if b.status == BookingStatus.HELD}
    confirmed_by_seat = {}
    for booking in bookings:
        if booking.status == BookingStatus.CONFIRMED:
            confirmed_by_seat.setdefault(booking.seat_id, []).append(booking)

    for seat in seats:
        hold_fields = (seat.hold_token, seat.hold_expires_at, seat.held_by_name)
        booking_fields = (seat.booked_by_name, seat.booked_at)

        if seat.status == SeatStatus.AVAILABLE:
            assert all(value is None for value in hold_fields + booking_fields), seat.label
            assert seat.id not in confirmed_by_seat
        elif seat.status == SeatStatus.HELD:
            assert all(value is not None for value in hold_fields), seat.label
            assert all(value is None for value in booking_fields), seat.label
            booking = held_by_token[seat.hold_token]
            assert booking.seat_id == seat.id
            assert booking.hold_expires_at == seat.hold_expires_at
            assert seat.id not in confirmed_by_seat
        else:
            assert seat.status == SeatStatus.BOOKED
            assert all(value is None for value in hold_fields), seat.label
            assert all(value is not None for value in booking_fields), seat.label
            assert len(confirmed_by_seat.get(seat.id, [])) == 1

    seats_by_token = {seat.hold_token: seat for seat in seats if seat.hold_token}
    for token in held_by_token:
        assert token in seats_by_token, f"HELD transaction {token} has no HELD seat"


@pytest.fixture
def check_store(db):
    return lambda: assert_store_consistent(db)
