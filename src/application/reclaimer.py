import logging
import threading
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from src.application.reservation_service import ReservationService
from src.config import RECLAIM_BATCH_SIZE, RECLAIM_INTERVAL_SECONDS
from src.infrastructure.db.session import get_db_session

logger = logging.getLogger(__name__)


class ExpiryReclaimer:
    """
    Background thread that periodically returns expired holds to
    AVAILABLE.

    A sweep is best-effort: failures are logged and the next tick tries
    again. Confirm-time deadline checks stay authoritative, so a late
    sweep only delays when the seat becomes holdable again.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        interval_seconds: float = RECLAIM_INTERVAL_SECONDS,
        batch_size: int = RECLAIM_BATCH_SIZE,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep(self, now: datetime | None = None) -> int:
        with get_db_session(self.session_factory) as db:
            reclaimed = ReservationService(db).reclaim_expired(
                now=now,
                limit=self.batch_size,
            )

        if reclaimed:
            logger.info(
                "Reclaimer released %s holds: %s",
                len(reclaimed),
                ", ".join(reclaimed),
            )
        return len(reclaimed)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="expiry-reclaimer",
            daemon=True,
        )
        self._thread.start()
        logger.info("Expiry reclaimer started (interval=%.1fs)", self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Expiry reclaimer stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Expiry sweep failed; retrying next interval")
            self._stop_event.wait(self.interval_seconds)
