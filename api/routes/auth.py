"""
api/routes/auth.py -- Registration, login and session endpoints.

Routes:
  POST /api/auth/register        -- create a user; returns jwt + user + sessionId
  POST /api/auth/login           -- email-or-username login; same response shape
  GET  /api/auth/me              -- current user (platform header or bearer token)
  POST /api/auth/logout          -- destroy every session of the caller
  GET  /api/auth/sessions/stats  -- session counts (admin only)
  GET  /api/auth/users           -- list users (admin only)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Wrong identifier and wrong password return the same 401 message.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    MeResponse,
    RegisterRequest,
    SessionStatsResponse,
    UserListResponse,
    UserResponse,
)
from auth.dependencies import get_identity, require_admin
from auth.models import AuthType, Identity, User
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.config import get_settings
from core.errors import ConflictError, UnauthenticatedError

logger = logging.getLogger("contentgateway.api.auth")

router = APIRouter()


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _issue(request: Request, response: Response, user: User) -> AuthResponse:
    """Sign a token for user and open a bearer session for it."""
    sessions: SessionRegistry = request.app.state.sessions
    token = create_access_token(user.id, user.email, user.username, user.role)
    session_id = sessions.create(
        user_id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        auth_type=AuthType.SESSION,
    )
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(jwt=token, user=UserResponse.from_user(user), session_id=session_id)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create a user with a bcrypt-hashed password and log them in."""
    user_store: UserStore = request.app.state.user_store
    if user_store.exists(body.email, body.username):
        raise ConflictError("User already exists with this email or username")

    user = User(
        username=body.username,
        email=body.email,
        password_hash=hash_password(body.password),
        firstname=body.firstname,
        lastname=body.lastname,
        role=body.role.value,
    )
    try:
        user_id = user_store.create_user(user)
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same name.
        raise ConflictError("User already exists with this email or username") from e

    created = user_store.get_by_id(user_id)
    logger.info("Registered user %s (%s) with role %s", created.username, created.id, created.role)
    return _issue(request, response, created)


@limiter.limit(_login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email or username and password."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.identifier, body.password)
    if user is None:
        raise UnauthenticatedError("Invalid credentials")
    if user.blocked:
        raise UnauthenticatedError("Account is blocked")
    return _issue(request, response, user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, identity: Identity = Depends(get_identity)) -> MeResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(identity.user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    return MeResponse(user=UserResponse.from_user(user))


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, identity: Identity = Depends(get_identity)) -> LogoutResponse:
    """End every session of the caller, on every device.

    Bearer tokens are stateless and stay valid until they expire; only the
    session bookkeeping is cleared.
    """
    sessions: SessionRegistry = request.app.state.sessions
    destroyed = sessions.destroy_all_for_user(identity.user_id)
    logger.info("User %s logged out (%d sessions destroyed)", identity.user_id, destroyed)
    return LogoutResponse(message="Logged out successfully", sessions_destroyed=destroyed)


@router.get("/auth/sessions/stats", response_model=SessionStatsResponse)
def session_stats(request: Request, identity: Identity = Depends(require_admin)) -> SessionStatsResponse:
    stats = request.app.state.sessions.stats()
    return SessionStatsResponse(total_sessions=stats["total_sessions"], active_users=stats["active_users"])


@router.get("/auth/users", response_model=UserListResponse)
def list_users(request: Request, identity: Identity = Depends(require_admin)) -> UserListResponse:
    user_store: UserStore = request.app.state.user_store
    return UserListResponse(data=[UserResponse.from_user(u) for u in user_store.list_users()])
