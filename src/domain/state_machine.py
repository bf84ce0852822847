# src/domain/state_machine.py

from enum import Enum
from typing import Dict, Set, Type

from src.domain.exceptions import InvalidStateTransitionError


class SeatStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    HELD = "HELD"
    BOOKED = "BOOKED"


class BookingStatus(str, Enum):
    HELD = "HELD"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class CancelReason(str, Enum):
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"


class _StateMachine:
    """
    Shared transition checks. Subclasses declare the status enum
    and the table of legal transitions.
    """

    _status_type: Type[Enum]
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]] = {}

    @classmethod
    def can_transition(cls, from_status, to_status) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status) -> Set[Enum]:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @classmethod
    def _ensure_valid_status(cls, status) -> None:
        if not isinstance(status, cls._status_type):
            raise TypeError(
                f"Expected {cls._status_type.__name__}, got {type(status)}"
            )


class SeatStateMachine(_StateMachine):
    """
    Seat lifecycle: AVAILABLE -> HELD -> {BOOKED | AVAILABLE}.
    BOOKED is final for the lifetime of the show.
    """

    _status_type = SeatStatus
    _ALLOWED_TRANSITIONS: Dict[SeatStatus, Set[SeatStatus]] = {
        SeatStatus.AVAILABLE: {
            SeatStatus.HELD,
        },
        SeatStatus.HELD: {
            SeatStatus.BOOKED,
            SeatStatus.AVAILABLE,
        },
        SeatStatus.BOOKED: set(),
    }


class BookingStateMachine(_StateMachine):
    """
    Booking transaction lifecycle. A transaction is born HELD
    and ends CONFIRMED or CANCELLED.
    """

    _status_type = BookingStatus
    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.HELD: {
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: set(),
        BookingStatus.CANCELLED: set(),
    }


# Seat status each booking status must be paired with.
PAIRED_SEAT_STATUS: Dict[BookingStatus, SeatStatus] = {
    BookingStatus.HELD: SeatStatus.HELD,
    BookingStatus.CONFIRMED: SeatStatus.BOOKED,
    BookingStatus.CANCELLED: SeatStatus.AVAILABLE,
}
