import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from src.client.api_client import ReservationApiClient, parse_timestamp
from src.domain.exceptions import (
    HoldExpiredError,
    HoldNotFoundError,
    SeatHoldError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActiveHoldExistsError(SeatHoldError):
    """Raised when a session already holds a seat."""


@dataclass
class LocalHold:
    """The three values a client needs to resume or release a hold."""

    seat_label: str
    token: str
    hold_expires_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "seat_label": self.seat_label,
            "token": self.token,
            "hold_expires_at": self.hold_expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "LocalHold":
        return cls(
            seat_label=data["seat_label"],
            token=data["token"],
            hold_expires_at=parse_timestamp(data["hold_expires_at"]),
        )


class HoldSession:
    """
    Client-side view of a single seat hold.

    The session keeps at most one hold, counts down to its deadline and
    stops offering confirm/release once the deadline passes locally. The
    store stays the final arbiter: any rejection from it clears the local
    hold.
    """

    def __init__(
        self,
        client: ReservationApiClient,
        show_id: str,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.client = client
        self.show_id = show_id
        self.clock = clock
        self.current: LocalHold | None = None
        self._lock = threading.RLock()
        self._timer: threading.Timer | None = None

    # -----------------------------
    # Countdown
    # -----------------------------
    def time_remaining(self, now: datetime | None = None) -> int:
        hold = self.current
        if hold is None:
            return 0
        now = now or self.clock()
        seconds = (hold.hold_expires_at - now).total_seconds()
        return max(0, math.floor(seconds))

    def is_expired(self, now: datetime | None = None) -> bool:
        hold = self.current
        if hold is None:
            return False
        return (now or self.clock()) >= hold.hold_expires_at

    def can_act(self, now: datetime | None = None) -> bool:
        return self.current is not None and not self.is_expired(now)

    def start_countdown(self, on_expire: Callable[[LocalHold], None] | None = None) -> None:
        with self._lock:
            self.cancel_countdown()
            hold = self.current
            if hold is None:
                return
            delay = max(0.0, (hold.hold_expires_at - self.clock()).total_seconds())
            self._timer = threading.Timer(
                delay,
                self._on_countdown_elapsed,
                args=(hold.token, on_expire),
            )
            self._timer.daemon = True
            self._timer.start()

    def cancel_countdown(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _on_countdown_elapsed(
        self,
        token: str,
        on_expire: Callable[[LocalHold], None] | None,
    ) -> None:
        with self._lock:
            hold = self.current
            if hold is None or hold.token != token:
                return
            self._timer = None
            self._expire_locally(hold)

        if on_expire is not None:
            on_expire(hold)

    # -----------------------------
    # Hold lifecycle
    # -----------------------------
    def hold(
        self,
        seat_label: str,
        requester_name: str,
        now: datetime | None = None,
    ) -> LocalHold:
        with self._lock:
            if self.current is not None and not self.is_expired(now):
                raise ActiveHoldExistsError(
                    f"Seat {self.current.seat_label} is already held by this session"
                )
            if self.current is not None:
                self._expire_locally(self.current)

            data = self.client.hold(self.show_id, seat_label, requester_name)
            self.current = LocalHold(
                seat_label=data["seat_label"],
                token=data["token"],
                hold_expires_at=parse_timestamp(data["hold_expires_at"]),
            )
            logger.info(
                "Holding seat %s until %s",
                self.current.seat_label,
                self.current.hold_expires_at.isoformat(),
            )
            return self.current

    def confirm(self, now: datetime | None = None) -> dict[str, Any]:
        with self._lock:
            hold = self._require_actionable(now)
            try:
                result = self.client.confirm(hold.token)
            except (HoldNotFoundError, HoldExpiredError):
                self._discard()
                raise
            self._discard()
            return result

    def release(self, now: datetime | None = None) -> dict[str, Any]:
        with self._lock:
            hold = self._require_actionable(now)
            try:
                result = self.client.release(hold.token)
            except HoldNotFoundError:
                self._discard()
                raise
            self._discard()
            return result

    # -----------------------------
    # Session resumption
    # -----------------------------
    def snapshot(self) -> dict[str, str] | None:
        hold = self.current
        if hold is None:
            return None
        return {"show_id": self.show_id, **hold.to_dict()}

    @classmethod
    def restore(
        cls,
        client: ReservationApiClient,
        data: dict[str, str],
        clock: Callable[[], datetime] = _utc_now,
    ) -> "HoldSession":
        session = cls(client, data["show_id"], clock=clock)
        session.current = LocalHold.from_dict(data)
        return session

    def resume(self, now: datetime | None = None) -> LocalHold | None:
        """
        Reconciles the cached hold with the store. Keeps it only while
        the store still reports it HELD under the same token, adopting
        the store's deadline.
        """
        with self._lock:
            hold = self.current
            if hold is None:
                return None

            try:
                remote = self.client.get_hold(hold.token)
            except HoldNotFoundError:
                logger.info("Hold %s unknown to the store; discarding", hold.token)
                self._discard()
                return None

            expires_at = parse_timestamp(remote["hold_expires_at"])
            still_held = (
                remote["status"] == "HELD"
                and remote["token"] == hold.token
                and remote["seat_label"] == hold.seat_label
                and (now or self.clock()) < expires_at
            )
            if not still_held:
                logger.info(
                    "Hold %s is %s in the store; discarding", hold.token, remote["status"]
                )
                self._discard()
                return None

            hold.hold_expires_at = expires_at
            return hold

    # -----------------------------
    # Internals
    # -----------------------------
    def _require_actionable(self, now: datetime | None) -> LocalHold:
        hold = self.current
        if hold is None:
            raise HoldNotFoundError("This session holds no seat")
        if self.is_expired(now):
            self._expire_locally(hold)
            raise HoldExpiredError(f"Hold on {hold.seat_label} expired")
        return hold

    def _expire_locally(self, hold: LocalHold) -> None:
        # Drop the hold and ask the store to free it; the reclaimer covers
        # the seat if this call does not get through.
        self._discard()
        try:
            self.client.release(hold.token)
        except (HoldNotFoundError, StorageUnavailableError) as exc:
            logger.info("Release of expired hold %s skipped: %s", hold.token, exc)

    def _discard(self) -> None:
        self.cancel_countdown()
        self.current = None
