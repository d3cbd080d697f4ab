import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models.follow import Follow
from ..models.idea import Idea

logger = logging.getLogger("ideaportal.follows")


class FollowManager:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, user_id: int, idea: Idea) -> Optional[Follow]:
        return (
            self.db.query(Follow)
            .filter(
                Follow.user_id == user_id,
                Follow.item_id == idea.id,
                Follow.item_type == idea.category,
            )
            .first()
        )

    def is_following(self, user_id: int, idea: Idea) -> bool:
        return self._find(user_id, idea) is not None

    def follow(self, user_id: int, idea: Idea) -> Follow:
        """Idempotent: an existing follow row is returned unchanged."""
        existing = self._find(user_id, idea)
        if existing:
            return existing
        follow = Follow(user_id=user_id, item_id=idea.id, item_type=idea.category)
        try:
            self.db.add(follow)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find(user_id, idea)
            if existing is None:
                raise
            return existing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error following idea {idea.id} for user {user_id}: {e}")
            raise
        self.db.refresh(follow)
        logger.info(f"User {user_id} now follows {idea.category} {idea.id}")
        return follow

    def unfollow(self, user_id: int, idea: Idea) -> bool:
        existing = self._find(user_id, idea)
        if existing is None:
            return False
        try:
            self.db.delete(existing)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error unfollowing idea {idea.id} for user {user_id}: {e}")
            raise
        logger.info(f"User {user_id} unfollowed {idea.category} {idea.id}")
        return True

    def get_followed_ideas(self, user_id: int) -> List[Idea]:
        return (
            self.db.query(Idea)
            .join(
                Follow,
                (Follow.item_id == Idea.id) & (Follow.item_type == Idea.category),
            )
            .filter(Follow.user_id == user_id)
            .options(joinedload(Idea.submitter))
            .order_by(Follow.created_at.desc(), Follow.id.desc())
            .all()
        )
