import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.idea import Idea
from ..models.notification import Notification, NotificationType

logger = logging.getLogger("ideaportal.notifications")

_CATEGORY_LABELS = {
    "opportunity": "idea",
    "challenge": "challenge",
    "pain-point": "pain point",
}


def item_label(idea: Idea) -> str:
    return _CATEGORY_LABELS.get(idea.category, "idea")


class NotificationManager:
    """
    Notification rows are written as side effects of other actions and are
    polled by the client. A failed insert is logged and rolled back, never
    surfaced to the action that triggered it.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_notification(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType,
        related_item_id: Optional[int] = None,
        related_item_type: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Optional[Notification]:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=getattr(type, "value", type),
            related_item_id=related_item_id,
            related_item_type=related_item_type,
            actor_id=actor_id,
        )
        try:
            self.db.add(notification)
            self.db.commit()
            self.db.refresh(notification)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                f"Could not store {notification.type} notification for user {user_id}"
            )
            return None
        logger.debug(f"Notified user {user_id}: {title}")
        return notification

    def _notify_about(
        self,
        idea: Idea,
        recipient_id: Optional[int],
        actor_id: Optional[int],
        type: NotificationType,
        title: str,
        message: str,
    ) -> Optional[Notification]:
        if recipient_id is None or recipient_id == actor_id:
            return None
        return self.create_notification(
            user_id=recipient_id,
            title=title,
            message=message,
            type=type,
            related_item_id=idea.id,
            related_item_type=idea.category,
            actor_id=actor_id,
        )

    def notify_comment(self, idea: Idea, actor_id: int, actor_name: str):
        return self._notify_about(
            idea,
            idea.submitted_by_id,
            actor_id,
            NotificationType.COMMENT,
            "New comment",
            f'{actor_name} commented on your {item_label(idea)} "{idea.title}"',
        )

    def notify_vote(self, idea: Idea, actor_id: int, actor_name: str):
        return self._notify_about(
            idea,
            idea.submitted_by_id,
            actor_id,
            NotificationType.VOTE,
            "New vote",
            f'{actor_name} voted for your {item_label(idea)} "{idea.title}"',
        )

    def notify_follow(self, idea: Idea, actor_id: int, actor_name: str):
        return self._notify_about(
            idea,
            idea.submitted_by_id,
            actor_id,
            NotificationType.FOLLOW,
            "New follower",
            f'{actor_name} is following your {item_label(idea)} "{idea.title}"',
        )

    def notify_status_change(
        self, idea: Idea, previous: str, actor_id: Optional[int]
    ):
        return self._notify_about(
            idea,
            idea.submitted_by_id,
            actor_id,
            NotificationType.STATUS_CHANGE,
            "Status updated",
            f'Your {item_label(idea)} "{idea.title}" moved from {previous} to {idea.status}',
        )

    def notify_assignment(
        self,
        idea: Idea,
        role: str,
        assignee_id: Optional[int],
        assignee_label: str,
        actor_id: Optional[int],
    ):
        created = []
        owner_note = self._notify_about(
            idea,
            idea.submitted_by_id,
            actor_id,
            NotificationType.ASSIGNMENT,
            "Role assigned",
            f'{assignee_label} was assigned as {role} for your {item_label(idea)} "{idea.title}"',
        )
        if owner_note:
            created.append(owner_note)
        if assignee_id is not None and assignee_id != idea.submitted_by_id:
            assignee_note = self._notify_about(
                idea,
                assignee_id,
                actor_id,
                NotificationType.ASSIGNMENT,
                "New assignment",
                f'You were assigned as {role} for "{idea.title}"',
            )
            if assignee_note:
                created.append(assignee_note)
        return created

    def notify_assignee(self, idea: Idea, assignee_id: int, actor_id: Optional[int]):
        return self._notify_about(
            idea,
            assignee_id,
            actor_id,
            NotificationType.ASSIGNMENT,
            "New assignment",
            f'You were assigned the {item_label(idea)} "{idea.title}"',
        )

    def get_user_notifications(
        self, user_id: int, limit: int = 10, only_unread: bool = False
    ) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if only_unread:
            query = query.filter(Notification.is_read.is_(False))
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def get_unread_count(self, user_id: int) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .count()
        )

    def mark_as_read(self, user_id: int, notification_id: int) -> Optional[Notification]:
        """Mark one notification read; None when it is missing or not the user's."""
        notification = self.db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        if not notification.is_read:
            notification.is_read = True
            try:
                self.db.commit()
                self.db.refresh(notification)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Error marking notification {notification_id} read: {e}")
                raise
        return notification

    def mark_all_as_read(self, user_id: int) -> int:
        try:
            result = self.db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error marking notifications read for user {user_id}: {e}")
            raise
        logger.info(f"Marked {result.rowcount} notifications read for user {user_id}")
        return result.rowcount or 0
