# src/infrastructure/repositories/seat_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.domain.state_machine import SeatStatus
from src.infrastructure.db.models import Seat


class SeatRepository:
    """
    Seat reads and conditional seat writes.

    Every mutating method is a single UPDATE whose WHERE clause carries
    the expected prior state, and reports whether it matched. A caller
    that gets False lost the race and must not retry blindly.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_seats(self, show_id: str, labels: list[str]) -> list[Seat]:
        seats = [
            Seat(show_id=show_id, label=label, status=SeatStatus.AVAILABLE)
            for label in labels
        ]
        self.db.add_all(seats)
        return seats

    def get_by_id(self, seat_id: str) -> Seat | None:
        stmt = (
            select(Seat)
            .where(Seat.id == seat_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_label(self, show_id: str, label: str) -> Seat | None:
        stmt = (
            select(Seat)
            .where(Seat.show_id == show_id)
            .where(Seat.label == label)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_show(self, show_id: str) -> list[Seat]:
        stmt = (
            select(Seat)
            .where(Seat.show_id == show_id)
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_expired_holds(self, now: datetime, limit: int) -> list[tuple[str, str]]:
        """
        (seat_id, hold_token) pairs for holds whose deadline is at or before now.
        """
        stmt = (
            select(Seat.id, Seat.hold_token)
            .where(Seat.status == SeatStatus.HELD)
            .where(Seat.hold_expires_at <= now)
            .order_by(Seat.hold_expires_at)
            .limit(limit)
        )
        return [(row.id, row.hold_token) for row in self.db.execute(stmt)]

    def hold_if_available(
        self,
        seat_id: str,
        token: str,
        held_by_name: str,
        expires_at: datetime,
    ) -> bool:
        stmt = (
            update(Seat)
            .where(Seat.id == seat_id)
            .where(Seat.status == SeatStatus.AVAILABLE)
            .values(
                status=SeatStatus.HELD,
                hold_token=token,
                hold_expires_at=expires_at,
                held_by_name=held_by_name,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def book_if_held(
        self,
        seat_id: str,
        token: str,
        booked_by_name: str,
        now: datetime,
    ) -> bool:
        # The deadline is part of the guard so a sweep and a late
        # confirm can never both succeed.
        stmt = (
            update(Seat)
            .where(Seat.id == seat_id)
            .where(Seat.status == SeatStatus.HELD)
            .where(Seat.hold_token == token)
            .where(Seat.hold_expires_at > now)
            .values(
                status=SeatStatus.BOOKED,
                hold_token=None,
                hold_expires_at=None,
                held_by_name=None,
                booked_by_name=booked_by_name,
                booked_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def release_if_held(
        self,
        seat_id: str,
        token: str,
        expired_by: datetime | None = None,
    ) -> bool:
        """
        HELD -> AVAILABLE for the given token. With expired_by set, only
        matches when the hold deadline is at or before that instant.
        """
        stmt = (
            update(Seat)
            .where(Seat.id == seat_id)
            .where(Seat.status == SeatStatus.HELD)
            .where(Seat.hold_token == token)
        )
        if expired_by is not None:
            stmt = stmt.where(Seat.hold_expires_at <= expired_by)

        stmt = stmt.values(
            status=SeatStatus.AVAILABLE,
            hold_token=None,
            hold_expires_at=None,
            held_by_name=None,
        ).execution_options(synchronize_session=False)
        return self.db.execute(stmt).rowcount == 1
