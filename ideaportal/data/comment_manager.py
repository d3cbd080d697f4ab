import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..database import utcnow
from ..models.comment import Comment
from ..models.idea import Idea

logger = logging.getLogger("ideaportal.comments")


class CommentManager:
    """Comments are append-only; they disappear only with their idea."""

    def __init__(self, db: Session):
        self.db = db

    def list_comments(self, idea_id: int) -> List[Comment]:
        return (
            self.db.query(Comment)
            .options(joinedload(Comment.author))
            .filter(Comment.idea_id == idea_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .all()
        )

    def add_comment(
        self,
        idea: Idea,
        user_id: int,
        content: str,
        parent_id: Optional[int] = None,
    ) -> Comment:
        """
        Add a comment and bump the idea's updated_at in the same commit.
        Raises ValueError when the parent comment belongs to another idea.
        """
        if parent_id is not None:
            parent = self.db.get(Comment, parent_id)
            if parent is None or parent.idea_id != idea.id:
                raise ValueError("Parent comment does not belong to this idea")

        comment = Comment(
            idea_id=idea.id, user_id=user_id, content=content, parent_id=parent_id
        )
        idea.updated_at = utcnow()
        try:
            self.db.add(comment)
            self.db.commit()
            self.db.refresh(comment)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error adding comment on idea {idea.id}: {e}")
            raise
        logger.info(f"User {user_id} commented on idea {idea.id} (comment {comment.id})")
        return comment
