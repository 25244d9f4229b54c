"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and strategies
do the work; these only own the shape.

Layer rule: no imports from api/, content/, proxy/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AuthType(str, Enum):
    """How an Identity was established."""

    SESSION = "jwt"
    PLATFORM_HEADER = "platform-header"


@dataclass
class User:
    """A persisted application user.

    auth_key correlates the user with the platform identity provider. It is
    None until the first successful platform-header authentication fills it
    in, and is never overwritten after that.

    role is stored as given; normalize_role() collapses unknown values to
    "viewer" wherever the role is used.
    """

    username: str
    email: str
    role: str = "viewer"
    id: str | None = None
    password_hash: str | None = None
    firstname: str | None = None
    lastname: str | None = None
    blocked: bool = False
    confirmed: bool = True
    auth_key: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Identity:
    """The resolved caller of one request. Never persisted."""

    user_id: str
    email: str
    username: str
    role: str
    auth_type: AuthType
    auth_key: str | None = None
    session_id: str | None = None  # set when resolution created a session


@dataclass
class SessionData:
    """One logical login. Lives in memory for the process lifetime only."""

    session_id: str
    user_id: str
    email: str
    username: str
    role: str
    auth_type: AuthType
    created_at: datetime
    last_accessed_at: datetime
    auth_key: str | None = None
