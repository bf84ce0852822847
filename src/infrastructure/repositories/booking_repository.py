# src/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from src.infrastructure.db.models import BookingTransaction
from src.domain.state_machine import BookingStateMachine, BookingStatus, CancelReason


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        token: str,
    ) -> BookingTransaction | None:

        stmt = (
            select(BookingTransaction)
            .where(BookingTransaction.id == token)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def create_held(
        self,
        token: str,
        seat_id: str,
        requester_name: str,
        hold_expires_at: datetime,
    ) -> BookingTransaction:

        booking = BookingTransaction(
            id=token,
            seat_id=seat_id,
            requester_name=requester_name,
            status=BookingStatus.HELD,
            hold_expires_at=hold_expires_at,
        )

        self.db.add(booking)
        self.db.flush()
        return booking

    def confirm_if_held(self, token: str, now: datetime) -> bool:
        return self._transition_if_held(
            token,
            BookingStatus.CONFIRMED,
            confirmed_at=now,
        )

    def cancel_if_held(
        self,
        token: str,
        now: datetime,
        reason: CancelReason,
    ) -> bool:
        return self._transition_if_held(
            token,
            BookingStatus.CANCELLED,
            cancelled_at=now,
            cancel_reason=reason,
        )

    def _transition_if_held(
        self,
        token: str,
        new_status: BookingStatus,
        **values,
    ) -> bool:

        BookingStateMachine.validate_transition(BookingStatus.HELD, new_status)

        stmt = (
            update(BookingTransaction)
            .where(BookingTransaction.id == token)
            .where(BookingTransaction.status == BookingStatus.HELD)
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
