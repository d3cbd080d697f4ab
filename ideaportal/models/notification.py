from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ideaportal.database import Base, utcnow


class NotificationType(str, Enum):
    COMMENT = "comment"
    STATUS_CHANGE = "status_change"
    FOLLOW = "follow"
    VOTE = "vote"
    ASSIGNMENT = "assignment"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    related_item_id = Column(
        Integer, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=True
    )
    related_item_type = Column(String(32), nullable=True)
    actor_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    idea = relationship("Idea", back_populates="notifications")
    actor = relationship("User", foreign_keys=[actor_id])
