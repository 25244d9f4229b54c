"""
proxy/authenticator.py -- Exchanges proxy identities for Strapi admin tokens.

A small fixed pool of Strapi admin accounts ("proxy identities", one per
application role) stands in for every application user. This module performs
the login call for one of them and returns the resulting session token. It
does no caching -- that is proxy/credentials.py's job.

The admin login envelope differs between Strapi versions, so the token is
read from whichever of the accepted shapes is present:
    {"data": {"token": "..."}}     Strapi 4/5 admin login
    {"token": "..."}               older / customised deployments
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from core.errors import UpstreamAuthError

logger = logging.getLogger("contentgateway.proxy.auth")

ADMIN_LOGIN_PATH = "/admin/login"


@dataclass(frozen=True)
class ProxyIdentity:
    """One upstream admin account standing in for an application role."""

    role: str
    email: str
    password: str


def _extract_token(payload: object) -> str | None:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("token"), str) and data["token"]:
        return data["token"]
    token = payload.get("token")
    if isinstance(token, str) and token:
        return token
    return None


def _extract_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return response.reason or f"HTTP {response.status_code}"


class UpstreamAuthenticator:
    """Performs the Strapi admin login for a ProxyIdentity.

    Usage:
        authenticator = UpstreamAuthenticator("http://localhost:1337", session)
        token = authenticator.authenticate(ProxyIdentity("admin", "a@x.io", "pw"))
    """

    def __init__(self, base_url: str, session: requests.Session, timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = timeout

    def authenticate(self, identity: ProxyIdentity) -> str:
        """Return a fresh upstream token for identity.

        Raises UpstreamAuthError on transport failure, non-2xx status, a
        non-JSON body, or a body without a token.
        """
        try:
            resp = self._session.post(
                f"{self._base_url}{ADMIN_LOGIN_PATH}",
                json={"email": identity.email, "password": identity.password},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise UpstreamAuthError(f"Failed to authenticate proxy user {identity.email}: {e}") from e

        if not resp.ok:
            raise UpstreamAuthError(
                f"Failed to authenticate proxy user {identity.email}: {_extract_message(resp)}"
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise UpstreamAuthError(
                f"Failed to authenticate proxy user {identity.email}: login response was not JSON"
            ) from e

        token = _extract_token(payload)
        if token is None:
            logger.error("Strapi admin login returned no token for %s (role %s)", identity.email, identity.role)
            raise UpstreamAuthError(
                f"Failed to authenticate proxy user {identity.email}: no token in login response"
            )
        return token
