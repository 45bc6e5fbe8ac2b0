# src/infrastructure/repositories/notification_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from src.infrastructure.db.models import Notification


class NotificationRepository:

    def __init__(self, db: Session):
        self.db = db

    def create(self, carer_id: int, message: str) -> Notification:
        notification = Notification(
            carer_id=carer_id,
            message=message,
            is_read=False,
        )
        self.db.add(notification)
        return notification

    def list_for_carer(self, carer_id: int) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.carer_id == carer_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())
