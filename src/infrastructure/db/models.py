# src/infrastructure/db/models.py

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    String,
    DateTime,
    Enum,
    Index,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from src.infrastructure.db.session import Base
from src.domain.state_machine import BookingStatus, CancelReason, SeatStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamps on every backend.
    SQLite drops tzinfo on the way in, so values are normalised to UTC
    before binding and tagged as UTC again when loaded.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


_SEAT_SHAPE = (
    "(status = 'AVAILABLE'"
    " AND hold_token IS NULL AND hold_expires_at IS NULL AND held_by_name IS NULL"
    " AND booked_by_name IS NULL AND booked_at IS NULL)"
    " OR (status = 'HELD'"
    " AND hold_token IS NOT NULL AND hold_expires_at IS NOT NULL AND held_by_name IS NOT NULL"
    " AND booked_by_name IS NULL AND booked_at IS NULL)"
    " OR (status = 'BOOKED'"
    " AND hold_token IS NULL AND hold_expires_at IS NULL AND held_by_name IS NULL"
    " AND booked_by_name IS NOT NULL AND booked_at IS NOT NULL)"
)


class Show(Base):
    __tablename__ = "shows"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="Show")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    seats: Mapped[list["Seat"]] = relationship(back_populates="show")


class Seat(Base):
    """
    One seat of a show. Its columns always match exactly one of the
    AVAILABLE / HELD / BOOKED shapes; the CHECK constraint rejects
    any row that mixes hold and booking fields.
    """

    __tablename__ = "seats"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    show_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shows.id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[SeatStatus] = mapped_column(
        Enum(SeatStatus, name="seat_status"),
        nullable=False,
        default=SeatStatus.AVAILABLE,
    )
    hold_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    hold_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    held_by_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    booked_by_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    booked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    show: Mapped[Show] = relationship(back_populates="seats")

    __table_args__ = (
        UniqueConstraint(
            "show_id",
            "label",
            name="uq_seat_show_label",
        ),
        UniqueConstraint("hold_token", name="uq_seat_hold_token"),
        CheckConstraint(_SEAT_SHAPE, name="ck_seat_state_shape"),
        Index("ix_seat_status_hold_expires_at", "status", "hold_expires_at"),
    )


class BookingTransaction(Base):
    """
    Lifecycle record of one hold. The id is the token stored on the
    seat while the hold is active.
    """

    __tablename__ = "booking_transactions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    seat_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("seats.id", ondelete="CASCADE"),
        nullable=False,
    )
    requester_name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.HELD,
    )
    hold_expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancel_reason: Mapped[CancelReason | None] = mapped_column(
        Enum(CancelReason, name="cancel_reason"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    seat: Mapped[Seat] = relationship()

    __table_args__ = (
        CheckConstraint(
            "(status = 'CONFIRMED') = (confirmed_at IS NOT NULL)",
            name="ck_booking_confirmed_at",
        ),
        CheckConstraint(
            "(status = 'CANCELLED') = (cancel_reason IS NOT NULL)",
            name="ck_booking_cancel_reason",
        ),
        # At most one live hold per seat.
        Index(
            "uq_booking_one_held_per_seat",
            "seat_id",
            unique=True,
            postgresql_where=text("status = 'HELD'"),
            sqlite_where=text("status = 'HELD'"),
        ),
    )
