import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.idea import Idea
from ..models.user import User, UserRole, default_avatar_url, role_value
from ..models.vote import UserVote
from ..utils.security import get_password_hash, needs_rehash, verify_password

logger = logging.getLogger("ideaportal.users")

_PROFILE_FIELDS = ("display_name", "department", "avatar_url")


def _plain(value: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(value, "value", value)


class UserManager:
    """Manages user accounts using SQLAlchemy."""

    def __init__(self):
        self.db = None

    def set_db(self, db: Session):
        """Set the database session."""
        self.db = db

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get a user by username/email (case-insensitive)."""
        req_id = uuid.uuid4()
        logger.debug(f"[{req_id}] Attempting to get user with username: {username}")
        if not username:
            logger.warning(f"[{req_id}] No username provided.")
            return None
        clean_username = username.strip().lower()
        user = (
            self.db.query(User)
            .filter(func.lower(User.username) == clean_username)
            .first()
        )
        if user:
            logger.debug(f"[{req_id}] User found with username: {username}")
        else:
            logger.info(f"[{req_id}] User not found with username: {username}")
        return user

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        req_id = uuid.uuid4()
        logger.debug(f"[{req_id}] Attempting to get user with id: {user_id}")
        user = self.db.get(User, user_id)
        if not user:
            logger.info(f"[{req_id}] User not found with id: {user_id}")
        return user

    def username_exists(self, username: str) -> bool:
        return self.get_user_by_username(username) is not None

    def verify_user_credentials(self, username: str, password: str) -> Optional[User]:
        """
        Verify a username/password pair.
        Returns the User if the credentials are valid, otherwise None. A legacy
        scrypt hash is upgraded to bcrypt after a successful check.
        """
        req_id = uuid.uuid4()
        logger.debug(f"[{req_id}] Verifying credentials for username: {username}")
        if not username or not password:
            logger.warning(f"[{req_id}] Username or password not provided.")
            return None

        user = self.get_user_by_username(username)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"[{req_id}] Failed login attempt for username: {username}")
            return None

        if needs_rehash(user.hashed_password):
            user.hashed_password = get_password_hash(password)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"[{req_id}] Upgraded password hash for user {user.id}")
        return user

    def add_user(
        self,
        username: str,
        hashed_password: str,
        display_name: str,
        department: Optional[str] = None,
        role: str = UserRole.USER.value,
        avatar_url: Optional[str] = None,
    ) -> User:
        """Add a new user. Raises ValueError if the username is already taken."""
        req_id = uuid.uuid4()
        clean_username = (username or "").strip().lower()
        logger.debug(f"[{req_id}] Adding user with username: {clean_username}")
        if not clean_username:
            raise ValueError("A username is required to create a user.")
        if self.username_exists(clean_username):
            logger.warning(
                f"[{req_id}] Attempt to add existing user with username: {clean_username}"
            )
            raise ValueError("Username already exists")

        db_user = User(
            username=clean_username,
            hashed_password=hashed_password,
            display_name=(display_name or "").strip() or clean_username.split("@")[0],
            department=_plain(department),
            role=role_value(role) or UserRole.USER.value,
            avatar_url=avatar_url or default_avatar_url(clean_username),
        )
        try:
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{req_id}] Error adding user {clean_username}: {str(e)}")
            raise
        logger.info(f"[{req_id}] Added user {db_user.username} with id {db_user.id}")
        return db_user

    def get_users(self, role: Optional[str] = None) -> List[User]:
        """All users ordered by display name, optionally narrowed to one role."""
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role_value(role))
        return query.order_by(User.display_name.asc(), User.id.asc()).all()

    def get_user_count(self) -> int:
        return self.db.query(User).count()

    def has_admin_user(self) -> bool:
        return (
            self.db.query(User.id).filter(User.role == UserRole.ADMIN.value).first()
            is not None
        )

    def update_profile(self, user_id: int, updates: Dict[str, Any]) -> Optional[User]:
        """Apply display name / department / avatar changes; other keys are ignored."""
        req_id = uuid.uuid4()
        user = self.get_user_by_id(user_id)
        if not user:
            return None

        changed = False
        for field in _PROFILE_FIELDS:
            if field in updates and updates[field] is not None:
                setattr(user, field, _plain(updates[field]))
                changed = True
        if changed:
            try:
                self.db.commit()
                self.db.refresh(user)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"[{req_id}] Error updating profile {user_id}: {str(e)}")
                raise
            logger.info(f"[{req_id}] Updated profile for user {user_id}")
        return user

    def update_role_and_department(
        self,
        user_id: int,
        role: Optional[str] = None,
        department: Optional[str] = None,
    ) -> Optional[User]:
        req_id = uuid.uuid4()
        user = self.get_user_by_id(user_id)
        if not user:
            return None
        if role is not None:
            user.role = role_value(role)
        if department is not None:
            user.department = _plain(department)
        try:
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{req_id}] Error updating role for user {user_id}: {str(e)}")
            raise
        logger.info(
            f"[{req_id}] User {user_id} now role={user.role} department={user.department}"
        )
        return user

    def change_password(self, user_id: int, new_password: str) -> bool:
        req_id = uuid.uuid4()
        user = self.get_user_by_id(user_id)
        if not user:
            return False
        user.hashed_password = get_password_hash(new_password)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{req_id}] Error changing password for {user_id}: {str(e)}")
            raise
        logger.info(f"[{req_id}] Password changed for user {user_id}")
        return True

    def delete_user(self, user_id: int) -> bool:
        """
        Remove an account and everything it owns.

        The user's votes on other people's ideas are withdrawn first so every
        remaining idea keeps votes == number of vote rows; the ORM cascades
        take care of the user's ideas, comments, follows, notifications and
        challenge memberships.
        """
        req_id = uuid.uuid4()
        user = self.get_user_by_id(user_id)
        if not user:
            logger.warning(f"[{req_id}] User not found for deletion: {user_id}")
            return False

        try:
            voted_idea_ids = [
                idea_id
                for (idea_id,) in self.db.query(UserVote.idea_id).filter(
                    UserVote.user_id == user_id
                )
            ]
            if voted_idea_ids:
                self.db.execute(
                    update(Idea)
                    .where(Idea.id.in_(voted_idea_ids), Idea.votes > 0)
                    .values(votes=Idea.votes - 1)
                )
                self.db.query(UserVote).filter(UserVote.user_id == user_id).delete(
                    synchronize_session=False
                )
            self.db.delete(user)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{req_id}] Error deleting user {user_id}: {str(e)}")
            raise
        logger.info(
            f"[{req_id}] Deleted user {user_id} and withdrew {len(voted_idea_ids)} votes"
        )
        return True

    def ensure_admin_exists(
        self, username: str, password: str, display_name: str = "Administrator"
    ) -> User:
        """
        Make sure `username` exists with the admin role, creating it if needed.
        An existing account is promoted but its password is left alone.
        """
        req_id = uuid.uuid4()
        admin = self.get_user_by_username(username)
        if not admin:
            logger.info(f"[{req_id}] Admin user {username} not found. Creating...")
            return self.add_user(
                username=username,
                hashed_password=get_password_hash(password),
                display_name=display_name,
                role=UserRole.ADMIN.value,
            )
        if admin.role != UserRole.ADMIN.value:
            logger.info(f"[{req_id}] Promoting existing user {username} to admin.")
            return self.update_role_and_department(admin.id, role=UserRole.ADMIN)
        logger.debug(f"[{req_id}] Admin user {username} already exists.")
        return admin


def get_user_manager(db: Session = Depends(get_db)) -> UserManager:
    """Dependency provider for UserManager."""
    manager = UserManager()
    manager.set_db(db)
    return manager
