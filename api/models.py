"""
API request and response models for the content gateway REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
proxy/content_types.py, which own the internal representation. Route handlers
map between the two.

Wire format: JSON keys are camelCase (sessionId, displayName, isOwner).
Every model shares _CamelModel's config, so Python code uses snake_case
attribute names and request bodies accept either spelling.

Content item payloads are not modelled: the gateway forwards Strapi's own
JSON unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    editor = "editor"
    author = "author"
    viewer = "viewer"


class ContentKindEnum(str, Enum):
    collection_type = "collectionType"
    single_type = "singleType"


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /api/auth/register."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=64)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    # bcrypt only looks at the first 72 bytes.
    password: str = Field(min_length=6, max_length=72)
    firstname: Optional[str] = Field(default=None, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    role: RoleEnum = RoleEnum.viewer


class LoginRequest(_CamelModel):
    """Request body for POST /api/auth/login. identifier is an email or a username."""

    identifier: str = Field(min_length=1)
    password: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    """A user without the password hash."""

    id: str
    username: str
    email: str
    role: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    blocked: bool = False
    confirmed: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id or "",
            username=user.username,
            email=user.email,
            role=user.role,
            firstname=user.firstname,
            lastname=user.lastname,
            blocked=user.blocked,
            confirmed=user.confirmed,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthResponse(_CamelModel):
    """Response for register and login."""

    jwt: str
    user: UserResponse
    session_id: str


class MeResponse(_CamelModel):
    user: UserResponse


class UserListResponse(_CamelModel):
    data: list[UserResponse]


class LogoutResponse(_CamelModel):
    message: str
    sessions_destroyed: int


class SessionStatsResponse(_CamelModel):
    total_sessions: int
    active_users: int


# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------


class CreateContentTypeRequest(_CamelModel):
    """Request body for POST /api/content-types.

    attributes maps a field name to its definition, e.g.
        {"title": {"type": "string", "required": true, "maxLength": 200}}
    """

    name: str = Field(min_length=2, max_length=100, pattern=r"^[a-z][a-z0-9-]*$")
    display_name: str = Field(min_length=1, max_length=255)
    kind: ContentKindEnum = ContentKindEnum.collection_type
    description: str = ""
    attributes: dict[str, dict[str, Any]] = Field(default_factory=dict)


class ContentTypeResponse(_CamelModel):
    id: str
    name: str
    singular_name: str
    plural_name: Optional[str] = None
    display_name: str
    kind: str
    description: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)


class ContentTypeEnvelope(_CamelModel):
    data: ContentTypeResponse


class ContentTypeListEnvelope(_CamelModel):
    data: list[ContentTypeResponse]


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------


class DeleteResponse(_CamelModel):
    success: bool = True


class OwnershipResponse(_CamelModel):
    """Response for GET /api/{contentType}/{id}/ownership."""

    is_owner: bool
    creator_id: Optional[str] = None
    current_user_id: Optional[str] = None
    can_edit: bool


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
