"""
core/roles.py -- The four application roles and their normalization.

Roles are stored as plain strings. Anything outside the four known values
collapses to "viewer" at the point of use; stored values are never rewritten.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    admin = "admin"
    editor = "editor"
    author = "author"
    viewer = "viewer"


ROLE_VALUES = tuple(r.value for r in Role)

# Spellings the upstream admin panel uses for the top role.
_ALIASES = {
    "super admin": Role.admin.value,
    "superadmin": Role.admin.value,
}


def normalize_role(role: str | None) -> str:
    """Return one of ROLE_VALUES for any stored or claimed role string."""
    if not role:
        return Role.viewer.value
    key = role.strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in ROLE_VALUES else Role.viewer.value
