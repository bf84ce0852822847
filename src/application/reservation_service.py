import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError

from src.config import HOLD_DURATION_SECONDS, RECLAIM_BATCH_SIZE
from src.domain.exceptions import (
    HoldExpiredError,
    HoldNotFoundError,
    ReservationIntegrityError,
    SeatNotFoundError,
    SeatUnavailableError,
    ShowNotFoundError,
    StorageUnavailableError,
)
from src.domain.seating import seat_label_sort_key, seat_labels
from src.domain.state_machine import (
    BookingStatus,
    CancelReason,
    SeatStateMachine,
    SeatStatus,
)
from src.infrastructure.db.models import BookingTransaction, Seat, Show, utc_now
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.seat_repository import SeatRepository
from src.infrastructure.repositories.show_repository import ShowRepository

logger = logging.getLogger(__name__)


@contextmanager
def _storage_guard(operation: str):
    try:
        yield
    except (OperationalError, SQLAlchemyTimeoutError) as exc:
        logger.exception("Reservation store unavailable during %s", operation)
        raise StorageUnavailableError(
            f"Reservation store unavailable during {operation}"
        ) from exc


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now


class ReservationService:
    """
    Seat hold state machine over a single database session.

    Every seat mutation is paired with its booking transaction mutation
    inside the caller's database transaction, seat row first. Callers
    commit on success and roll back on any exception.
    """

    def __init__(
        self,
        db: Session,
        hold_duration_seconds: float = HOLD_DURATION_SECONDS,
    ):
        self.db = db
        self.hold_duration = timedelta(seconds=hold_duration_seconds)
        self.show_repository = ShowRepository(db)
        self.seat_repository = SeatRepository(db)
        self.booking_repository = BookingRepository(db)

    def create_show(self, seat_count: int, name: str = "Show") -> Show:
        labels = seat_labels(seat_count)

        with _storage_guard("create_show"):
            show = self.show_repository.create(name=name)
            self.seat_repository.create_seats(show.id, labels)
            self.db.flush()

        logger.info("Provisioned show %s with %s seats", show.id, seat_count)
        return show

    def list_shows(self) -> list[Show]:
        with _storage_guard("list_shows"):
            return self.show_repository.list_latest_first()

    def list_seats(self, show_id: str) -> list[Seat]:
        with _storage_guard("list_seats"):
            if self.show_repository.get_by_id(show_id) is None:
                raise ShowNotFoundError(f"Show {show_id} not found")
            seats = self.seat_repository.list_for_show(show_id)

        return sorted(seats, key=lambda seat: seat_label_sort_key(seat.label))

    def try_hold(
        self,
        show_id: str,
        seat_label: str,
        requester_name: str,
        now: datetime | None = None,
    ) -> BookingTransaction:
        now = _resolve_now(now)
        requester_name = (requester_name or "").strip()
        if not requester_name:
            raise ValueError("requester_name must not be blank")

        token = str(uuid4())
        expires_at = now + self.hold_duration

        with _storage_guard("try_hold"):
            seat = self.seat_repository.get_by_label(show_id, seat_label)
            if seat is None:
                raise SeatNotFoundError(
                    f"Seat {seat_label} not found in show {show_id}"
                )

            claimed = self.seat_repository.hold_if_available(
                seat_id=seat.id,
                token=token,
                held_by_name=requester_name,
                expires_at=expires_at,
            )
            if not claimed:
                logger.info(
                    "Hold rejected: seat %s of show %s is not available",
                    seat_label,
                    show_id,
                )
                raise SeatUnavailableError(
                    f"Seat {seat_label} is no longer available"
                )

            SeatStateMachine.validate_transition(SeatStatus.AVAILABLE, SeatStatus.HELD)
            booking = self.booking_repository.create_held(
                token=token,
                seat_id=seat.id,
                requester_name=requester_name,
                hold_expires_at=expires_at,
            )

        logger.info(
            "Seat %s of show %s held by %s until %s (token=%s)",
            seat_label,
            show_id,
            requester_name,
            expires_at.isoformat(),
            token,
        )
        return booking

    def get_hold(self, token: str) -> BookingTransaction:
        with _storage_guard("get_hold"):
            booking = self.booking_repository.get_by_id(token)
        if booking is None:
            raise HoldNotFoundError(f"No booking transaction for token {token}")
        return booking

    def confirm(self, token: str, now: datetime | None = None) -> BookingTransaction:
        now = _resolve_now(now)

        with _storage_guard("confirm"):
            booking = self._get_active_hold(token, now)

            booked = self.seat_repository.book_if_held(
                seat_id=booking.seat_id,
                token=token,
                booked_by_name=booking.requester_name,
                now=now,
            )
            if not booked:
                # Released or reclaimed between our read and our write.
                logger.info("Confirm lost race for token %s", token)
                raise self._lost_hold_error(token)

            SeatStateMachine.validate_transition(SeatStatus.HELD, SeatStatus.BOOKED)
            if not self.booking_repository.confirm_if_held(token, now):
                raise ReservationIntegrityError(
                    f"Seat booked but transaction {token} was not HELD"
                )

            booking = self.booking_repository.get_by_id(token)

        logger.info(
            "Booking %s confirmed for %s", token, booking.requester_name
        )
        return booking

    def release(self, token: str, now: datetime | None = None) -> BookingTransaction:
        now = _resolve_now(now)

        with _storage_guard("release"):
            booking = self.booking_repository.get_by_id(token)
            if booking is None or booking.status != BookingStatus.HELD:
                logger.info("Release of %s ignored: no active hold", token)
                raise HoldNotFoundError(f"Hold {token} is not active")

            self._release_pair(booking.seat_id, token, now, CancelReason.RELEASED)
            booking = self.booking_repository.get_by_id(token)

        logger.info("Hold %s released", token)
        return booking

    def reclaim_expired(
        self,
        now: datetime | None = None,
        limit: int = RECLAIM_BATCH_SIZE,
    ) -> list[str]:
        """
        Returns every HELD seat whose deadline is at or before ``now`` to
        AVAILABLE and cancels its transaction. Holds that were confirmed or
        released concurrently are skipped. Each pair runs in its own
        savepoint, so a pair whose rows disagree is logged and left in place
        without aborting the rest of the batch.
        """
        now = _resolve_now(now)
        reclaimed: list[str] = []

        with _storage_guard("reclaim_expired"):
            for seat_id, token in self.seat_repository.find_expired_holds(now, limit):
                try:
                    with self.db.begin_nested():
                        released = self._release_pair(
                            seat_id,
                            token,
                            now,
                            CancelReason.EXPIRED,
                            expired_by=now,
                        )
                except ReservationIntegrityError:
                    logger.error(
                        "Skipping expired hold %s: seat and transaction disagree",
                        token,
                    )
                    continue
                if released:
                    reclaimed.append(token)

        if reclaimed:
            logger.info("Reclaimed %s expired holds", len(reclaimed))
        return reclaimed

    def _get_active_hold(self, token: str, now: datetime) -> BookingTransaction:
        booking = self.booking_repository.get_by_id(token)
        if booking is None:
            raise HoldNotFoundError(f"No booking transaction for token {token}")

        if booking.status == BookingStatus.CANCELLED and (
            booking.cancel_reason == CancelReason.EXPIRED
        ):
            raise HoldExpiredError(f"Hold {token} expired and was reclaimed")

        if booking.status != BookingStatus.HELD:
            raise HoldNotFoundError(f"Hold {token} is already {booking.status.value}")

        if now >= booking.hold_expires_at:
            logger.info("Confirm rejected: hold %s expired", token)
            raise HoldExpiredError(
                f"Hold {token} expired at {booking.hold_expires_at.isoformat()}"
            )

        return booking

    def _lost_hold_error(self, token: str) -> Exception:
        booking = self.booking_repository.get_by_id(token)
        if (
            booking is not None
            and booking.status == BookingStatus.CANCELLED
            and booking.cancel_reason == CancelReason.EXPIRED
        ):
            return HoldExpiredError(f"Hold {token} expired and was reclaimed")
        return HoldNotFoundError(f"Hold {token} is no longer active")

    def _release_pair(
        self,
        seat_id: str,
        token: str,
        now: datetime,
        reason: CancelReason,
        expired_by: datetime | None = None,
    ) -> bool:
        released = self.seat_repository.release_if_held(
            seat_id,
            token,
            expired_by=expired_by,
        )
        if not released:
            if reason == CancelReason.RELEASED:
                raise HoldNotFoundError(f"Hold {token} is no longer active")
            return False

        SeatStateMachine.validate_transition(SeatStatus.HELD, SeatStatus.AVAILABLE)
        if not self.booking_repository.cancel_if_held(token, now, reason):
            raise ReservationIntegrityError(
                f"Seat released but transaction {token} was not HELD"
            )
        return True
