# Import models to make them accessible via ideaportal.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .user import User
from .idea import Idea
from .comment import Comment
from .vote import UserVote
from .follow import Follow
from .notification import Notification
from .challenge import ChallengeParticipant

__all__ = [
    "User",
    "Idea",
    "Comment",
    "UserVote",
    "Follow",
    "Notification",
    "ChallengeParticipant",
]
