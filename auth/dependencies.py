"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_identity() runs the IdentityResolver stored on app.state against the
request headers: platform identity header first, then the bearer token.
require_roles() wraps it and raises 403 when the caller's role is not in the
allowed set.

Failures are raised as core.errors exceptions; the AppError handler in
api/main.py renders them (401 / 403 / 404).

Layer rule: no imports from api/, content/, proxy/, or cache/.
  auth/dependencies.py may import from fastapi because this module is part
  of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Identity
from auth.strategies import IdentityResolver
from core.errors import ForbiddenError
from core.roles import normalize_role


def get_identity(request: Request) -> Identity:
    """Require authentication. Raises UnauthenticatedError (401) if unresolved.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    resolver: IdentityResolver = request.app.state.identity_resolver
    identity = resolver.resolve(request.headers)
    request.state.identity = identity
    return identity


def require_roles(*roles: str) -> Callable[..., Identity]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(identity: Identity = Depends(require_roles("admin"))): ...
    """
    allowed = {normalize_role(r) for r in roles}

    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        role = normalize_role(identity.role)
        if role not in allowed:
            raise ForbiddenError(
                f"Access denied. Required roles: {', '.join(sorted(allowed))}. Your role: {role}"
            )
        return identity

    return dependency


require_admin = require_roles("admin")
