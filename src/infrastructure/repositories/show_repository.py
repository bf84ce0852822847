# src/infrastructure/repositories/show_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Show


class ShowRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, show_id: str) -> Show | None:
        stmt = select(Show).where(Show.id == show_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_latest_first(self) -> list[Show]:
        stmt = select(Show).order_by(Show.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def create(self, name: str) -> Show:
        show = Show(name=name)
        self.db.add(show)
        self.db.flush()
        return show
