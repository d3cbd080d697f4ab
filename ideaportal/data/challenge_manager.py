import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models.challenge import ChallengeParticipant
from ..models.idea import Idea, IdeaCategory

logger = logging.getLogger("ideaportal.challenges")


class ChallengeManager:
    """Tracks who has joined challenge-category ideas."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _require_challenge(idea: Idea) -> None:
        if idea.category != IdeaCategory.CHALLENGE.value:
            raise ValueError("Only challenges can be joined")

    def _find(self, user_id: int, challenge_id: int):
        return (
            self.db.query(ChallengeParticipant)
            .filter(
                ChallengeParticipant.user_id == user_id,
                ChallengeParticipant.challenge_id == challenge_id,
            )
            .first()
        )

    def join(self, user_id: int, idea: Idea) -> ChallengeParticipant:
        self._require_challenge(idea)
        existing = self._find(user_id, idea.id)
        if existing:
            return existing
        participant = ChallengeParticipant(user_id=user_id, challenge_id=idea.id)
        try:
            self.db.add(participant)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find(user_id, idea.id)
            if existing is None:
                raise
            return existing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error joining challenge {idea.id} for user {user_id}: {e}")
            raise
        self.db.refresh(participant)
        logger.info(f"User {user_id} joined challenge {idea.id}")
        return participant

    def leave(self, user_id: int, idea: Idea) -> bool:
        existing = self._find(user_id, idea.id)
        if existing is None:
            return False
        try:
            self.db.delete(existing)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error leaving challenge {idea.id} for user {user_id}: {e}")
            raise
        logger.info(f"User {user_id} left challenge {idea.id}")
        return True

    def list_participants(self, challenge_id: int) -> List[ChallengeParticipant]:
        return (
            self.db.query(ChallengeParticipant)
            .options(joinedload(ChallengeParticipant.user))
            .filter(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.joined_at.asc(), ChallengeParticipant.id.asc())
            .all()
        )

    def count_participants(self, challenge_id: int) -> int:
        return (
            self.db.query(ChallengeParticipant)
            .filter(ChallengeParticipant.challenge_id == challenge_id)
            .count()
        )
