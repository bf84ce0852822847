

class SeatHoldError(Exception):
    """
    Base exception for all domain-level errors
    inside the Seat Hold Engine.
    """


class ReservationRejected(SeatHoldError):
    """
    Expected, recoverable outcome of a reservation operation.
    The caller should refresh its view and pick a corrective action.
    """

    code = "REJECTED"


class SeatUnavailableError(ReservationRejected):
    """Raised when the seat is not AVAILABLE at hold time."""

    code = "SEAT_UNAVAILABLE"


class HoldNotFoundError(ReservationRejected):
    """Raised when a token is unknown or its transaction is already terminal."""

    code = "HOLD_NOT_FOUND"


class HoldExpiredError(ReservationRejected):
    """Raised when the hold deadline passed before confirmation."""

    code = "HOLD_EXPIRED"


class SeatNotFoundError(ReservationRejected):
    code = "SEAT_NOT_FOUND"


class ShowNotFoundError(ReservationRejected):
    code = "SHOW_NOT_FOUND"


class InvalidStateTransitionError(SeatHoldError):
    """
    Raised when an illegal seat or booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class ReservationIntegrityError(SeatHoldError):
    """Raised when a seat and its booking transaction would disagree."""


class StorageUnavailableError(SeatHoldError):
    """Raised when the store cannot execute an operation. Safe to retry."""
