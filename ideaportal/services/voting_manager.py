from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ideaportal.database import utcnow
from ideaportal.models.idea import Idea
from ideaportal.models.vote import UserVote

logger = logging.getLogger("ideaportal.voting")


@dataclass(frozen=True)
class VoteOutcome:
    idea: Idea
    voted: bool
    changed: bool


class VotingManager:
    """
    Keeps ideas.votes equal to the number of user_votes rows.

    Both directions change the join row and the counter in one transaction,
    and the counter moves through an SQL expression so concurrent voters on
    the same idea cannot overwrite each other.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _get_idea(self, idea_id: int) -> Optional[Idea]:
        return self.db.get(Idea, idea_id)

    def has_voted(self, idea_id: int, user_id: int) -> bool:
        return (
            self.db.query(UserVote.id)
            .filter(UserVote.idea_id == idea_id, UserVote.user_id == user_id)
            .first()
            is not None
        )

    def _shift_counter(self, idea_id: int, delta: int) -> None:
        new_value = Idea.votes + delta
        if delta < 0:
            new_value = case((Idea.votes + delta < 0, 0), else_=Idea.votes + delta)
        self.db.execute(
            update(Idea)
            .where(Idea.id == idea_id)
            .values(votes=new_value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def vote(self, idea_id: int, user_id: int) -> Optional[VoteOutcome]:
        """Record a vote. Returns None for a missing idea; repeat votes are no-ops."""
        idea = self._get_idea(idea_id)
        if idea is None:
            return None
        if self.has_voted(idea_id, user_id):
            logger.debug(f"User {user_id} already voted on idea {idea_id}")
            return VoteOutcome(idea=idea, voted=True, changed=False)

        try:
            self.db.add(UserVote(user_id=user_id, idea_id=idea_id))
            self.db.flush()
            self._shift_counter(idea_id, +1)
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same (user, idea) row first.
            self.db.rollback()
            logger.info(f"Concurrent duplicate vote by user {user_id} on idea {idea_id}")
            return VoteOutcome(idea=self._refreshed(idea_id), voted=True, changed=False)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error recording vote by {user_id} on idea {idea_id}: {e}")
            raise

        logger.info(f"User {user_id} voted on idea {idea_id}")
        return VoteOutcome(idea=self._refreshed(idea_id), voted=True, changed=True)

    def unvote(self, idea_id: int, user_id: int) -> Optional[VoteOutcome]:
        """Withdraw a vote. Returns None for a missing idea; no prior vote is a no-op."""
        idea = self._get_idea(idea_id)
        if idea is None:
            return None
        try:
            deleted = (
                self.db.query(UserVote)
                .filter(UserVote.idea_id == idea_id, UserVote.user_id == user_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                logger.debug(f"User {user_id} had no vote on idea {idea_id}")
                return VoteOutcome(idea=idea, voted=False, changed=False)
            self._shift_counter(idea_id, -1)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error removing vote by {user_id} on idea {idea_id}: {e}")
            raise

        logger.info(f"User {user_id} removed vote on idea {idea_id}")
        return VoteOutcome(idea=self._refreshed(idea_id), voted=False, changed=True)

    def _refreshed(self, idea_id: int) -> Idea:
        idea = self.db.get(Idea, idea_id)
        self.db.refresh(idea)
        return idea

    def get_user_voted_ideas(self, user_id: int) -> List[Idea]:
        return (
            self.db.query(Idea)
            .join(UserVote, UserVote.idea_id == Idea.id)
            .filter(UserVote.user_id == user_id)
            .options(joinedload(Idea.submitter))
            .order_by(UserVote.created_at.desc(), Idea.id.desc())
            .all()
        )

    def get_top_ideas(self, limit: int = 10) -> List[Idea]:
        return (
            self.db.query(Idea)
            .options(joinedload(Idea.submitter))
            .order_by(Idea.votes.desc(), Idea.created_at.desc(), Idea.id.desc())
            .limit(limit)
            .all()
        )
