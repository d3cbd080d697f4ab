from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ideaportal.models.user import Department, UserRole

USERNAME_PATTERN = r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class UserBase(BaseModel):
    username: str = Field(
        ...,
        max_length=254,
        pattern=USERNAME_PATTERN,
        json_schema_extra={"example": "jane.doe@example.com"},
    )
    display_name: str = Field(
        ..., min_length=1, max_length=100, json_schema_extra={"example": "Jane Doe"}
    )
    department: Optional[Department] = Field(
        None, json_schema_extra={"example": "Product"}
    )

    model_config = ConfigDict(from_attributes=True)

    @field_validator("username", mode="before")
    @classmethod
    def normalize_username(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("display_name", mode="before")
    @classmethod
    def strip_display_name(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("department", mode="before")
    @classmethod
    def empty_department_to_none(cls, value):
        return _blank_to_none(value)


class UserCreate(UserBase):
    # Strength rules live in utils.password_validation so register and
    # change-password report the same messages.
    password: str = Field(
        ..., min_length=1, json_schema_extra={"example": "SecurePassword123"}
    )


class LoginRequest(BaseModel):
    username: str
    password: str


class User(BaseModel):
    """Detached view of the authenticated user carried on request.state."""

    id: int
    username: str
    display_name: str
    department: Optional[str] = None
    role: UserRole = Field(default=UserRole.USER)
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# Response schema; never carries the password hash
class UserResponse(User):
    created_at: Optional[datetime] = None


class UserSummary(BaseModel):
    id: int
    display_name: str
    department: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[Department] = None
    avatar_url: Optional[str] = Field(None, max_length=500)

    @field_validator("display_name", "avatar_url", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class AdminUserUpdate(BaseModel):
    role: Optional[UserRole] = None
    department: Optional[Department] = None
