from .user_manager import UserManager, get_user_manager
from .ideas_manager import IdeasManager, get_ideas_manager
from .comment_manager import CommentManager
from .follow_manager import FollowManager
from .notification_manager import NotificationManager
from .challenge_manager import ChallengeManager

__all__ = [
    "UserManager",
    "get_user_manager",
    "IdeasManager",
    "get_ideas_manager",
    "CommentManager",
    "FollowManager",
    "NotificationManager",
    "ChallengeManager",
]
