"""
auth/sessions.py -- In-memory registry of logical user sessions.

A session is created on every successful register, login and platform-header
authentication, so one user may hold many concurrent sessions (one per device
or tab). Sessions live in process memory only and are lost on restart.

Lifecycle:
  create()                -> new session, created_at == last_accessed_at
  get() / validate()      -> bump last_accessed_at
  validate()              -> destroys the session if its user was deleted or
                             blocked; otherwise refreshes the role from the
                             user record so role changes apply without re-login
  destroy_all_for_user()  -> logout from every device
  sweep_expired()         -> periodic background cleanup of idle sessions

Every operation runs under one threading.Lock. sweep_expired() holds it for a
single pass over the table.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from auth.models import AuthType, SessionData
from auth.store import UserStore
from core.roles import normalize_role

logger = logging.getLogger("contentgateway.auth.sessions")

DEFAULT_IDLE_SECONDS = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """Return "sess_<epoch-ms>_<random>". The random part makes ids unguessable."""
    return f"sess_{int(time.time() * 1000)}_{secrets.token_urlsafe(12)}"


class SessionRegistry:
    """Thread-safe map of session id -> SessionData.

    Usage:
        registry = SessionRegistry(user_store)
        sid = registry.create(user_id=..., email=..., username=..., role="editor", auth_type=AuthType.SESSION)
        registry.validate(sid)
    """

    def __init__(
        self,
        user_store: UserStore,
        idle_seconds: int = DEFAULT_IDLE_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._user_store = user_store
        self._idle = timedelta(seconds=idle_seconds)
        self._clock = clock
        self._sessions: dict[str, SessionData] = {}
        self._lock = threading.Lock()

    def create(
        self,
        user_id: str,
        email: str,
        username: str,
        role: str,
        auth_type: AuthType,
        auth_key: Optional[str] = None,
    ) -> str:
        session_id = generate_session_id()
        now = self._clock()
        session = SessionData(
            session_id=session_id,
            user_id=user_id,
            email=email,
            username=username,
            role=role,
            auth_type=auth_type,
            auth_key=auth_key,
            created_at=now,
            last_accessed_at=now,
        )
        with self._lock:
            self._sessions[session_id] = session
        logger.debug("Session created: %s for user %s", session_id, email)
        return session_id

    def get(self, session_id: str) -> Optional[SessionData]:
        """Return the session (bumping last_accessed_at) or None."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.last_accessed_at = self._clock()
            return replace(session)

    def validate(self, session_id: str) -> Optional[SessionData]:
        """Return the session if its user still exists and is not blocked.

        The user lookup runs outside the lock; only the final role refresh
        or destroy re-acquires it.
        """
        session = self.get(session_id)
        if session is None:
            return None

        user = self._user_store.get_by_id(session.user_id)
        if user is None or user.blocked:
            self.destroy(session_id)
            return None

        role = normalize_role(user.role)
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            current.role = role
            return replace(current)

    def destroy(self, session_id: str) -> bool:
        with self._lock:
            deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.debug("Session destroyed: %s", session_id)
        return deleted

    def get_user_sessions(self, user_id: str) -> list[SessionData]:
        with self._lock:
            return [replace(s) for s in self._sessions.values() if s.user_id == user_id]

    def destroy_all_for_user(self, user_id: str) -> int:
        """Remove every session held by user_id. Returns how many were removed."""
        with self._lock:
            doomed = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
            for sid in doomed:
                del self._sessions[sid]
        logger.info("Destroyed %d sessions for user %s", len(doomed), user_id)
        return len(doomed)

    def sweep_expired(self) -> int:
        """Remove sessions idle for longer than the idle window. Returns count removed."""
        cutoff = self._clock() - self._idle
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.last_accessed_at < cutoff]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        """Return total session count and number of distinct users holding one."""
        with self._lock:
            return {
                "total_sessions": len(self._sessions),
                "active_users": len({s.user_id for s in self._sessions.values()}),
            }
