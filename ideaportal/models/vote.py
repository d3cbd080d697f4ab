from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ideaportal.database import Base, utcnow


class UserVote(Base):
    """One row per (user, idea); Idea.votes mirrors the row count."""

    __tablename__ = "user_votes"
    __table_args__ = (
        UniqueConstraint("user_id", "idea_id", name="uq_user_votes_user_idea"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    idea_id = Column(
        Integer,
        ForeignKey("ideas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    idea = relationship("Idea", back_populates="user_votes")
    user = relationship("User")
