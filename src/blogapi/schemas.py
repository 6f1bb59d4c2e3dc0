"""Request and response schemas for the blog API."""

from datetime import datetime
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationInfo,
    computed_field,
    field_validator,
)

from .config import settings
from .storage import public_url


class UserOut(BaseModel):
    """Public profile of a user; never includes the password hash."""

    id: int
    name: str
    email: str
    role: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryOut(BaseModel):
    id: int
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostOut(BaseModel):
    """Serialized post with its owner and category joined in."""

    id: int
    user_id: int
    category_id: Optional[int] = None
    title: str
    slug: str
    content: str
    banner: Optional[str] = None
    is_published: bool
    created_at: datetime
    updated_at: datetime
    user: Optional[UserOut] = None
    category: Optional[CategoryOut] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def banner_url(self) -> Optional[str]:
        return public_url(self.banner)


class CommentOut(BaseModel):
    id: int
    post_id: int
    user_id: int
    body: str
    is_approved: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentAuthor(BaseModel):
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class CommentListItem(BaseModel):
    """Comment as shown in a post's thread; moderation state is not exposed."""

    id: int
    post_id: int
    user_id: int
    body: str
    created_at: datetime
    updated_at: datetime
    user: CommentAuthor

    model_config = ConfigDict(from_attributes=True)


class AuthPayload(BaseModel):
    """Issued bearer token together with the authenticated user."""

    access_token: str
    token_type: str = "Bearer"
    user: UserOut


class HealthStatus(BaseModel):
    status: str = "ok"


class RegisterRequest(BaseModel):
    """Request body for registering a new user."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=settings.password_min_length)
    password_confirmation: str

    @field_validator("password_confirmation")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("The password confirmation does not match.")
        return value


class LoginRequest(BaseModel):
    """Request body for user login."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    model_config = ConfigDict(str_strip_whitespace=True)


class CategoryUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)

    model_config = ConfigDict(str_strip_whitespace=True)


class CommentCreate(BaseModel):
    body: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("body", "content"),
    )

    model_config = ConfigDict(str_strip_whitespace=True)


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    category_id: Optional[int] = None
    is_published: bool = False


class PostUpdate(BaseModel):
    """Partial update; only the fields present in the body are applied.

    ``category_id`` may be sent as null to detach the post from its category.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    category_id: Optional[int] = None
    is_published: Optional[bool] = None

    @field_validator("title", "content", "is_published")
    @classmethod
    def not_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"The {info.field_name} field may not be null.")
        return value
