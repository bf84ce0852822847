import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from src.api.routes.routes import router
from src.application.reclaimer import ExpiryReclaimer
from src.config import (
    DB_CONNECT_MAX_RETRIES,
    DB_CONNECT_RETRY_DELAY,
    LOG_LEVEL,
    RECLAIMER_ENABLED,
)
from src.infrastructure.db.session import SessionLocal, engine
from src.infrastructure.db.models import Base

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Seat Hold Engine")

app.include_router(router)
logger = logging.getLogger(__name__)

reclaimer = ExpiryReclaimer(SessionLocal)


def _wait_for_db(bind=engine) -> None:
    # The API container may come up before the database accepts connections.
    for attempt in range(1, DB_CONNECT_MAX_RETRIES + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Seat store reachable on attempt %s.", attempt)
            return
        except OperationalError:
            if attempt == DB_CONNECT_MAX_RETRIES:
                logger.exception(
                    "Seat store unreachable after %s attempts; check DATABASE_URL.",
                    DB_CONNECT_MAX_RETRIES,
                )
                raise
            logger.warning(
                "Seat store not ready (%s/%s), next attempt in %.1fs",
                attempt,
                DB_CONNECT_MAX_RETRIES,
                DB_CONNECT_RETRY_DELAY,
            )
            time.sleep(DB_CONNECT_RETRY_DELAY)


@app.on_event("startup")
def on_startup() -> None:
    _wait_for_db()
    Base.metadata.create_all(bind=engine)
    if RECLAIMER_ENABLED:
        reclaimer.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    reclaimer.stop(timeout=5)
