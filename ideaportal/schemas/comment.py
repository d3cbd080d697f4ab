from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ideaportal.schemas.user import UserSummary


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[int] = None

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class CommentResponse(BaseModel):
    id: int
    idea_id: int
    user_id: int
    content: str
    parent_id: Optional[int] = None
    created_at: datetime
    author: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)
