import argparse

from src.application.reservation_service import ReservationService
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import SessionLocal, engine

DEMO_SEAT_COUNT = 30


def seed_show(db, seat_count: int, name: str) -> str:
    show = ReservationService(db).create_show(seat_count=seat_count, name=name)
    return show.id


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a demo show.")
    parser.add_argument("--seats", type=int, default=DEMO_SEAT_COUNT)
    parser.add_argument("--name", default="Show")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        show_id = seed_show(db, seat_count=args.seats, name=args.name)
        db.commit()
        print(f"Seed complete: show {show_id} with {args.seats} seats (A1-A{args.seats}).")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
