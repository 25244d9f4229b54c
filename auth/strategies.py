"""
auth/strategies.py -- Identity resolution over an ordered list of strategies.

Each strategy looks at the request headers and returns one of:
  Resolved(identity)   it authenticated the caller
  NOT_APPLICABLE       its input is absent (no header / no bearer token)
  Failed(error)        its input is present but invalid

IdentityResolver walks the strategies in order and stops at the first
Resolved. A failure is only surfaced when nothing later resolves: a single
failure is re-raised unchanged, several collapse into one generic 401. If no
strategy applies at all the caller has sent no credentials.

The production order is platform header first, bearer session second, so a
request carrying both a valid platform header and a valid bearer token is
always authenticated by the platform header. A platform-header resolution also
opens a session in the SessionRegistry.

Strategies receive a plain headers mapping (Starlette's Headers in
production), keeping this module independent of FastAPI.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, Union

from auth.models import AuthType, Identity
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import decode_access_token
from core.errors import AppError, UnauthenticatedError
from core.roles import normalize_role

logger = logging.getLogger("contentgateway.auth.strategies")


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resolved:
    identity: Identity


@dataclass(frozen=True)
class Failed:
    error: AppError


class _NotApplicable:
    def __repr__(self) -> str:
        return "NOT_APPLICABLE"


NOT_APPLICABLE = _NotApplicable()

Outcome = Union[Resolved, Failed, _NotApplicable]


class Strategy(Protocol):
    name: str

    def attempt(self, headers: Mapping[str, str]) -> Outcome: ...


# ---------------------------------------------------------------------------
# Bearer session strategy
# ---------------------------------------------------------------------------


def bearer_token(headers: Mapping[str, str]) -> str | None:
    auth_header = headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


class SessionTokenStrategy:
    """Resolves an Identity from an "Authorization: Bearer <jwt>" header.

    The token's claims give the identity; the backing user must still exist
    and not be blocked, so deleting or blocking a user revokes outstanding
    tokens immediately.
    """

    name = "session"

    def __init__(self, user_store: UserStore) -> None:
        self._user_store = user_store

    def authenticate(self, token: str) -> Identity:
        payload = decode_access_token(token)
        if payload is None:
            raise UnauthenticatedError("Invalid or expired token")
        user = self._user_store.get_by_id(payload["sub"])
        if user is None:
            raise UnauthenticatedError("User not found")
        if user.blocked:
            raise UnauthenticatedError("Account is blocked")
        return Identity(
            user_id=user.id,
            email=payload.get("email") or user.email,
            username=payload.get("username") or user.username,
            role=normalize_role(payload.get("role")),
            auth_key=user.auth_key,
            auth_type=AuthType.SESSION,
        )

    def attempt(self, headers: Mapping[str, str]) -> Outcome:
        token = bearer_token(headers)
        if token is None:
            return NOT_APPLICABLE
        try:
            return Resolved(self.authenticate(token))
        except AppError as e:
            return Failed(e)


# ---------------------------------------------------------------------------
# Combinator
# ---------------------------------------------------------------------------


class IdentityResolver:
    """Tries each strategy in order; see the module docstring for the rules.

    Usage:
        resolver = IdentityResolver([platform_strategy, session_strategy], registry)
        identity = resolver.resolve(request.headers)
    """

    def __init__(self, strategies: Sequence[Strategy], sessions: SessionRegistry | None = None) -> None:
        self._strategies = list(strategies)
        self._sessions = sessions

    def resolve(self, headers: Mapping[str, str]) -> Identity:
        failures: list[tuple[str, AppError]] = []
        for strategy in self._strategies:
            outcome = strategy.attempt(headers)
            if isinstance(outcome, Resolved):
                return self._on_resolved(outcome.identity)
            if isinstance(outcome, Failed):
                logger.debug("Strategy %s failed: %s", strategy.name, outcome.error.message)
                failures.append((strategy.name, outcome.error))

        if len(failures) == 1:
            raise failures[0][1]
        if failures:
            raise UnauthenticatedError("Authentication failed")
        raise UnauthenticatedError("No authentication credentials provided")

    def _on_resolved(self, identity: Identity) -> Identity:
        if identity.auth_type is AuthType.PLATFORM_HEADER and self._sessions is not None:
            identity.session_id = self._sessions.create(
                user_id=identity.user_id,
                email=identity.email,
                username=identity.username,
                role=identity.role,
                auth_type=AuthType.PLATFORM_HEADER,
                auth_key=identity.auth_key,
            )
        return identity
