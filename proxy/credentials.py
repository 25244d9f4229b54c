"""
proxy/credentials.py -- Per-role cache of short-lived upstream session tokens.

get(role) returns a cached token while it is inside its validity window and
otherwise authenticates the role's proxy identity, caches the new token and
returns it. Expired tokens are evicted by the backing store and never served.

The validity window is deliberately shorter than the upstream token lifetime
(6 days against Strapi's 7 by default).

Concurrency: a cold cache for one role is filled by a single in-flight
authentication. Callers for the same role wait on a per-role lock and then
find the fresh token; callers for other roles are not blocked.
"""

from __future__ import annotations

import logging
import threading

from cache.store import KeyValueStore, MemoryStore
from core.errors import ConfigurationError
from core.roles import normalize_role
from proxy.authenticator import ProxyIdentity, UpstreamAuthenticator

logger = logging.getLogger("contentgateway.proxy.credentials")


class CredentialCache:
    """Lazily-refreshed upstream tokens keyed by proxy role.

    Usage:
        cache = CredentialCache(authenticator, identities, ttl_seconds=6 * 86400)
        token = cache.get("editor")
    """

    def __init__(
        self,
        authenticator: UpstreamAuthenticator,
        identities: dict[str, ProxyIdentity],
        ttl_seconds: float,
        store: KeyValueStore | None = None,
    ) -> None:
        self._authenticator = authenticator
        self._identities = identities
        self._ttl = ttl_seconds
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _role_lock(self, role: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(role)
            if lock is None:
                lock = self._locks[role] = threading.Lock()
            return lock

    def get(self, role: str) -> str:
        """Return a valid upstream token for role, authenticating on a miss.

        Raises ConfigurationError if no proxy identity is configured for the
        role, UpstreamAuthError if the upstream login fails.
        """
        role = normalize_role(role)
        token = self._store.get(role)
        if token is not None:
            logger.debug("Using cached upstream token for role %s", role)
            return token

        with self._role_lock(role):
            # Another thread may have filled the entry while we waited.
            token = self._store.get(role)
            if token is not None:
                return token

            identity = self._identities.get(role)
            if identity is None:
                logger.error("No proxy identity configured for role %s -- check STRAPI_PROXY_* settings", role)
                raise ConfigurationError(f"Proxy user for role {role} not found")

            logger.info("No cached upstream token for role %s, authenticating proxy user %s", role, identity.email)
            token = self._authenticator.authenticate(identity)
            self._store.set(role, token, ttl=self._ttl)
            logger.info("Cached upstream token for role %s (valid %ds)", role, int(self._ttl))
            return token

    def invalidate(self, role: str) -> bool:
        """Drop the cached token for role. Returns True if one was cached."""
        return self._store.delete(normalize_role(role))
