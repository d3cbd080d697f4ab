from enum import Enum

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from ideaportal.database import Base, utcnow


class UserRole(str, Enum):
    USER = "user"
    REVIEWER = "reviewer"
    TRANSFORMER = "transformer"
    IMPLEMENTER = "implementer"
    ADMIN = "admin"


# Roles allowed into the review queue and onto other people's submissions.
STAFF_ROLES = frozenset(
    {
        UserRole.REVIEWER.value,
        UserRole.TRANSFORMER.value,
        UserRole.IMPLEMENTER.value,
        UserRole.ADMIN.value,
    }
)


def role_value(role) -> str:
    """Plain lower-case role string for either a UserRole member or a stored column value."""
    return str(getattr(role, "value", role) or "").lower()


def is_staff_role(role) -> bool:
    return role_value(role) in STAFF_ROLES


class Department(str, Enum):
    TECH_AND_SYSTEMS = "Tech & Systems"
    FINANCE = "Finance"
    OPERATIONS = "Operations"
    PRODUCT = "Product"
    MARKETING = "Marketing"
    SALES = "Sales"
    ORGANISATION_HEALTH = "Organisation Health"
    COMMERCIAL_AND_STRATEGY = "Commercial & Strategy"
    OTHER = "Other"


def default_avatar_url(username: str) -> str:
    return f"https://api.dicebear.com/7.x/avataaars/svg?seed={username}"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)  # email
    hashed_password = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    department = Column(String, nullable=True)
    role = Column(String, default=UserRole.USER.value, nullable=False)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    ideas = relationship(
        "Idea",
        back_populates="submitter",
        foreign_keys="Idea.submitted_by_id",
        cascade="all, delete-orphan",
    )
    comments = relationship(
        "Comment",
        back_populates="author",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    follows = relationship("Follow", cascade="all, delete-orphan")
    notifications = relationship(
        "Notification",
        foreign_keys="Notification.user_id",
        cascade="all, delete-orphan",
    )
    challenge_participations = relationship(
        "ChallengeParticipant", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_staff(self) -> bool:
        return is_staff_role(self.role)
