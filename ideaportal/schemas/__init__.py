from .user import User, UserCreate, UserResponse, UserSummary
from .idea import IdeaCreate, IdeaDetailResponse, IdeaResponse, IdeaUpdate
from .comment import CommentCreate, CommentResponse
from .notification import NotificationResponse

__all__ = [
    "User",
    "UserCreate",
    "UserResponse",
    "UserSummary",
    "IdeaCreate",
    "IdeaDetailResponse",
    "IdeaResponse",
    "IdeaUpdate",
    "CommentCreate",
    "CommentResponse",
    "NotificationResponse",
]
