import json
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ideaportal.models.idea import (
    AssignmentRole,
    IdeaCategory,
    IdeaPriority,
    IdeaStatus,
    normalize_category,
)
from ideaportal.models.user import Department
from ideaportal.schemas.comment import CommentResponse
from ideaportal.schemas.user import UserSummary


def parse_tags(value: Any) -> List[str]:
    """
    Accept tags as a list, a JSON-encoded list, or a comma-separated string.
    Blank entries are dropped and duplicates collapsed in order.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValueError("tags must be a JSON list or comma-separated text") from exc
            if not isinstance(decoded, list):
                raise ValueError("tags must be a list")
            items = decoded
        else:
            items = raw.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValueError("tags must be a list or a string")

    tags: List[str] = []
    for item in items:
        cleaned = str(item).strip()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags


class MediaItem(BaseModel):
    type: str
    url: str


class IdeaCreate(BaseModel):
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        json_schema_extra={"example": "Slow API Response Times"},
    )
    description: str = Field(..., min_length=1)
    category: IdeaCategory = Field(..., json_schema_extra={"example": "pain-point"})
    department: Department = Department.OTHER
    priority: IdeaPriority = IdeaPriority.MEDIUM
    tags: List[str] = Field(default_factory=list)
    impact: Optional[str] = None
    inspiration: Optional[str] = None
    similar_solutions: Optional[str] = None
    organization_category: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    attachment_url: Optional[str] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_required_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("category", mode="before")
    @classmethod
    def accept_category_alias(cls, value):
        return normalize_category(value)

    @field_validator("department", "priority", mode="before")
    @classmethod
    def blank_uses_default(cls, value, info):
        if value is None or (isinstance(value, str) and not value.strip()):
            return Department.OTHER if info.field_name == "department" else IdeaPriority.MEDIUM
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, value):
        return parse_tags(value)


class IdeaUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[IdeaCategory] = None
    department: Optional[Department] = None
    priority: Optional[IdeaPriority] = None
    status: Optional[IdeaStatus] = None
    tags: Optional[List[str]] = None
    impact: Optional[str] = None
    inspiration: Optional[str] = None
    similar_solutions: Optional[str] = None
    organization_category: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def accept_category_alias(cls, value):
        return normalize_category(value)

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, value):
        if value is None:
            return None
        return parse_tags(value)


class StatusChangeRequest(BaseModel):
    status: IdeaStatus


class RoleAssignmentRequest(BaseModel):
    role: AssignmentRole
    user_id: Optional[Union[int, str]] = None
    email: Optional[str] = None

    @model_validator(mode="after")
    def resolve_target(self):
        # Older clients send user_id="email:someone@example.com" for pending assignees.
        if isinstance(self.user_id, str):
            raw = self.user_id.strip()
            if raw.lower().startswith("email:"):
                self.email = raw.split(":", 1)[1].strip()
                self.user_id = None
            elif raw.isdigit():
                self.user_id = int(raw)
            else:
                raise ValueError("user_id must be an integer or 'email:<address>'")
        if self.email is not None:
            self.email = self.email.strip().lower() or None
        if (self.user_id is None) == (self.email is None):
            raise ValueError("Provide exactly one of user_id or email")
        if self.email is not None and "@" not in self.email:
            raise ValueError("email must be a valid address")
        return self


class AssigneeRequest(BaseModel):
    user_id: Optional[int] = None


class AdminIdeaUpdate(BaseModel):
    admin_notes: Optional[str] = None
    impact: Optional[str] = None
    priority: Optional[IdeaPriority] = None
    impact_score: Optional[int] = Field(None, ge=0)
    cost_saved: Optional[int] = Field(None, ge=0)
    revenue_generated: Optional[int] = Field(None, ge=0)


class IdeaResponse(BaseModel):
    id: int
    title: str
    description: str
    category: str
    department: Optional[str] = None
    status: IdeaStatus
    priority: Optional[str] = None
    votes: int
    tags: List[str] = Field(default_factory=list)
    impact: Optional[str] = None
    inspiration: Optional[str] = None
    similar_solutions: Optional[str] = None
    organization_category: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    media_urls: List[MediaItem] = Field(default_factory=list)
    attachment_url: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewer_id: Optional[int] = None
    reviewer_email: Optional[str] = None
    transformer_id: Optional[int] = None
    transformer_email: Optional[str] = None
    implementer_id: Optional[int] = None
    implementer_email: Optional[str] = None
    submitted_by_id: int
    assigned_to_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    impact_score: Optional[int] = None
    cost_saved: Optional[int] = None
    revenue_generated: Optional[int] = None
    submitter: Optional[UserSummary] = None
    assigned_to: Optional[UserSummary] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("tags", "attachments", "media_urls", mode="before")
    @classmethod
    def none_to_empty(cls, value):
        return value or []


class RoleAssignee(BaseModel):
    id: int
    display_name: str
    email: Optional[str] = None
    department: Optional[str] = None
    avatar_url: Optional[str] = None
    pending: bool = False


class IdeaDetailResponse(IdeaResponse):
    comments: List[CommentResponse] = Field(default_factory=list)
    is_followed: bool = False
    has_voted: bool = False
    participant_count: int = 0
    reviewer_info: Optional[RoleAssignee] = None
    transformer_info: Optional[RoleAssignee] = None
    implementer_info: Optional[RoleAssignee] = None


class VoteResult(BaseModel):
    message: str
    voted: bool
    changed: bool
    idea: IdeaResponse


class FollowResponse(BaseModel):
    id: int
    user_id: int
    item_id: int
    item_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FollowStatus(BaseModel):
    is_followed: bool


class ParticipantResponse(BaseModel):
    user: UserSummary
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)

