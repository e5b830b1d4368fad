from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional
import logging

from ..core.exceptions import NotFoundError, PermissionDeniedError
from ..models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def send_notification(
        self,
        user_id: int,
        message: str,
        appointment_id: Optional[int] = None,
        type: str = "INFO",
    ) -> Optional[Notification]:
        """
        Store an in-app notification.

        Callers commit their own write first; a failure here is logged and
        rolled back so it never undoes or blocks the triggering operation.
        """
        try:
            notification = Notification(
                user_id=user_id,
                message=message,
                appointment_id=appointment_id,
                type=type,
            )
            self.db.add(notification)
            self.db.commit()
            return notification
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store {type} notification for user {user_id}: {str(e)}")
            return None

    def get_user_notifications(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.sent_at.desc(), Notification.id.desc()).all()

    def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id
        ).first()

        if not notification:
            raise NotFoundError("Notification not found")

        if notification.user_id != user_id:
            raise PermissionDeniedError("You can only update your own notifications")

        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
