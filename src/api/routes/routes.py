import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError

from src.infrastructure.db.session import SessionLocal
from src.application.reservation_service import ReservationService
from src.api.schemas.schemas import (
    ShowCreate,
    ShowResponse,
    SeatResponse,
    HoldRequest,
    HoldResponse,
    ReclaimResponse,
)
from src.domain.exceptions import (
    ReservationRejected,
    SeatUnavailableError,
    HoldNotFoundError,
    HoldExpiredError,
    SeatNotFoundError,
    ShowNotFoundError,
    InvalidStateTransitionError,
    ReservationIntegrityError,
    StorageUnavailableError,
)
from src.infrastructure.db.models import BookingTransaction, Seat, Show


router = APIRouter()
logger = logging.getLogger(__name__)

STORAGE_RETRY_AFTER_SECONDS = "2"

_REJECTION_STATUS = {
    SeatUnavailableError: status.HTTP_409_CONFLICT,
    HoldNotFoundError: status.HTTP_404_NOT_FOUND,
    HoldExpiredError: status.HTTP_410_GONE,
    SeatNotFoundError: status.HTTP_404_NOT_FOUND,
    ShowNotFoundError: status.HTTP_404_NOT_FOUND,
}


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _is_db_degraded(exc: Exception) -> bool:
    return isinstance(exc, (OperationalError, SQLAlchemyTimeoutError))


def _commit(db: Session) -> None:
    try:
        db.commit()
    except Exception as exc:
        if not _is_db_degraded(exc):
            raise
        raise StorageUnavailableError("Commit failed; nothing was saved") from exc


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ReservationRejected):
        return HTTPException(
            status_code=_REJECTION_STATUS.get(type(exc), status.HTTP_409_CONFLICT),
            detail={"code": exc.code, "message": str(exc)},
        )
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "STORAGE_UNAVAILABLE", "message": str(exc)},
            headers={"Retry-After": STORAGE_RETRY_AFTER_SECONDS},
        )
    if isinstance(exc, (InvalidStateTransitionError, ReservationIntegrityError)):
        logger.error("Reservation invariant violated: %s", exc)
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "CONFLICT", "message": str(exc)},
        )
    return HTTPException(
        status_code=422,
        detail={"code": "INVALID_REQUEST", "message": str(exc)},
    )


_HANDLED = (
    ReservationRejected,
    StorageUnavailableError,
    InvalidStateTransitionError,
    ReservationIntegrityError,
    ValueError,
)


def _show_response(show: Show) -> ShowResponse:
    return ShowResponse(
        id=show.id,
        name=show.name,
        created_at=show.created_at,
    )


def _seat_response(seat: Seat) -> SeatResponse:
    return SeatResponse(
        seat_id=seat.id,
        label=seat.label,
        status=seat.status.value,
        hold_expires_at=seat.hold_expires_at,
        held_by_name=seat.held_by_name,
        booked_by_name=seat.booked_by_name,
        booked_at=seat.booked_at,
    )


def _hold_response(booking: BookingTransaction) -> HoldResponse:
    return HoldResponse(
        token=booking.id,
        show_id=booking.seat.show_id,
        seat_label=booking.seat.label,
        status=booking.status.value,
        requester_name=booking.requester_name,
        hold_expires_at=booking.hold_expires_at,
        confirmed_at=booking.confirmed_at,
        cancelled_at=booking.cancelled_at,
        cancel_reason=booking.cancel_reason.value if booking.cancel_reason else None,
    )


@router.get("/health")
def health():
    return {"message": "Seat Hold Engine is running"}


@router.post("/shows", response_model=ShowResponse, status_code=status.HTTP_201_CREATED)
def create_show(
    request: ShowCreate,
    db: Session = Depends(get_db),
):
    try:
        show = ReservationService(db).create_show(
            seat_count=request.seat_count,
            name=request.name,
        )
        _commit(db)
    except _HANDLED as exc:
        raise _to_http_error(exc) from exc
    return _show_response(show)


@router.get("/shows", response_model=list[ShowResponse])
def list_shows(db: Session = Depends(get_db)):
    try:
        shows = ReservationService(db).list_shows()
    except _HANDLED as exc:
        raise _to_http_error(exc) from exc
    return [_show_response(show) for show in shows]


@router.get("/shows/{show_id}/seats", response_model=list[SeatResponse])
def list_seats(
    show_id: str,
    db: Session = Depends(get_db),
):
    try:
        seats = ReservationService(db).list_seats(show_id)
    except _HANDLED as exc:
        raise _to_http_error(exc) from exc
    return [_seat_response(seat) for seat in seats]


@router.post(
    "/shows/{show_id}/seats/{seat_label}/hold",
    response_model=HoldResponse,
    status_code=status.HTTP_201_CREATED,
)
def hold_seat(
    show_id: str,
    seat_label: str,
    request: HoldRequest,
    db: Session = Depends(get_db),
):
    try:
        booking = ReservationService(db).try_hold(
            show_id=show_id,
            seat_label=seat_label,
            requester_name=request.requester_name,
        )
        response = _hold_response(booking)
        _commit(db)
    except _HANDLED as exc:
        db.rollback()
        raise _to_http_error(exc) from exc
    return response


@router.get("/holds/{token}", response_model=HoldResponse)
def get_hold(
    token: str,
    db: Session = Depends(get_db),
):
    try:
        booking = ReservationService(db).get_hold(token)
        return _hold_response(booking)
    except _HANDLED as exc:
        raise _to_http_error(exc) from exc


@router.post("/holds/{token}/confirm", response_model=HoldResponse)
def confirm_hold(
    token: str,
    db: Session = Depends(get_db),
):
    try:
        booking = ReservationService(db).confirm(token)
        response = _hold_response(booking)
        _commit(db)
    except _HANDLED as exc:
        db.rollback()
        raise _to_http_error(exc) from exc
    return response


@router.post("/holds/{token}/release", response_model=HoldResponse)
def release_hold(
    token: str,
    db: Session = Depends(get_db),
):
    try:
        booking = ReservationService(db).release(token)
        response = _hold_response(booking)
        _commit(db)
    except _HANDLED as exc:
        db.rollback()
        raise _to_http_error(exc) from exc
    return response


@router.post("/holds/reclaim", response_model=ReclaimResponse)
def reclaim_expired_holds(db: Session = Depends(get_db)):
    try:
        tokens = ReservationService(db).reclaim_expired()
        _commit(db)
    except _HANDLED as exc:
        db.rollback()
        raise _to_http_error(exc) from exc
    return ReclaimResponse(reclaimed=len(tokens), tokens=tokens)
