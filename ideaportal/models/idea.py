from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ideaportal.database import Base, utcnow


class IdeaCategory(str, Enum):
    OPPORTUNITY = "opportunity"
    CHALLENGE = "challenge"
    PAIN_POINT = "pain-point"


# "idea" is what the submission form calls an opportunity.
CATEGORY_ALIASES = {"idea": IdeaCategory.OPPORTUNITY.value}


class IdeaStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_REVIEW = "in-review"
    MERGED = "merged"
    PARKED = "parked"
    IMPLEMENTED = "implemented"


class IdeaPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AssignmentRole(str, Enum):
    REVIEWER = "reviewer"
    TRANSFORMER = "transformer"
    IMPLEMENTER = "implementer"


def normalize_category(value):
    if isinstance(value, str):
        cleaned = value.strip().lower()
        return CATEGORY_ALIASES.get(cleaned, cleaned)
    return value


class Idea(Base):
    __tablename__ = "ideas"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(32), nullable=False, index=True)
    department = Column(String, nullable=False, default="Other", index=True)
    status = Column(
        String(32), nullable=False, default=IdeaStatus.SUBMITTED.value, index=True
    )
    priority = Column(String(16), nullable=False, default=IdeaPriority.MEDIUM.value)
    votes = Column(Integer, nullable=False, default=0)
    tags = Column(JSON, nullable=False, default=list)

    impact = Column(Text, nullable=True)
    inspiration = Column(Text, nullable=True)
    similar_solutions = Column(Text, nullable=True)
    organization_category = Column(String, nullable=True)

    attachments = Column(JSON, nullable=False, default=list)
    media_urls = Column(JSON, nullable=False, default=list)
    attachment_url = Column(String, nullable=True)
    admin_notes = Column(Text, nullable=True)

    reviewer_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewer_email = Column(String, nullable=True)
    transformer_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    transformer_email = Column(String, nullable=True)
    implementer_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    implementer_email = Column(String, nullable=True)

    submitted_by_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_to_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    impact_score = Column(Integer, nullable=True)
    cost_saved = Column(Integer, nullable=True)
    revenue_generated = Column(Integer, nullable=True)

    submitter = relationship(
        "User", back_populates="ideas", foreign_keys=[submitted_by_id]
    )
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    reviewer = relationship("User", foreign_keys=[reviewer_id])
    transformer = relationship("User", foreign_keys=[transformer_id])
    implementer = relationship("User", foreign_keys=[implementer_id])

    comments = relationship(
        "Comment",
        back_populates="idea",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Comment.created_at",
    )
    user_votes = relationship(
        "UserVote", back_populates="idea", cascade="all, delete-orphan"
    )
    follows = relationship(
        "Follow", back_populates="idea", cascade="all, delete-orphan"
    )
    notifications = relationship(
        "Notification", back_populates="idea", cascade="all, delete-orphan"
    )
    participants = relationship(
        "ChallengeParticipant",
        back_populates="challenge",
        cascade="all, delete-orphan",
    )
