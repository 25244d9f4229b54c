"""
proxy/forwarder.py -- Forwards requests to Strapi under a proxy role.

Credential selection:
  /api/* paths       static per-role API token when one is configured and
                     non-empty; otherwise the role's cached session token.
  everything else    the role's cached session token (admin endpoints).

Error normalization:
  Strapi's error bodies are not uniform across endpoints and versions. The
  message is taken from the first of these that is present:
    1. error.message                 structured error object
    2. message                       generic envelope
    3. error                         string-valued (or JSON-encoded) error
    4. data.error.message / data.message
    5. a plain-string body
    6. the transport status text
  falling back to a generic message. The status is the upstream's own status
  when a response exists, else 500. Every failure leaves this module as an
  UpstreamError -- nothing is swallowed.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from core.errors import UpstreamError
from core.roles import normalize_role
from proxy.credentials import CredentialCache

logger = logging.getLogger("contentgateway.proxy.forwarder")

TOKEN_SCOPED_PREFIX = "/api/"
GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"


def extract_upstream_error(response: requests.Response) -> tuple[str, int]:
    """Return (message, status_code) for a failed upstream response."""
    status = response.status_code or 500
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text or None

    if isinstance(body, dict):
        error = body.get("error")
        data = body.get("data")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"]), status
        if body.get("message"):
            return str(body["message"]), status
        if error:
            return (error if isinstance(error, str) else json.dumps(error)), status
        if isinstance(data, dict):
            data_error = data.get("error")
            if isinstance(data_error, dict) and data_error.get("message"):
                return str(data_error["message"]), status
            if data.get("message"):
                return str(data["message"]), status
    elif isinstance(body, str) and body.strip():
        return body, status

    if response.reason:
        return response.reason, status
    return GENERIC_ERROR_MESSAGE, status


class RequestForwarder:
    """Issues authenticated calls against the Strapi base URL.

    Usage:
        forwarder = RequestForwarder(base_url, session, credentials, api_tokens)
        body = forwarder.forward("GET", "/api/articles?status=draft", role="editor")
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        credentials: CredentialCache,
        api_tokens: dict[str, str],
        timeout: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._credentials = credentials
        self._api_tokens = api_tokens
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _api_token(self, role: str) -> Optional[str]:
        token = self._api_tokens.get(role, "")
        return token if token and token.strip() else None

    def _select_token(self, path: str, role: str) -> str:
        if path.startswith(TOKEN_SCOPED_PREFIX):
            token = self._api_token(role)
            if token is not None:
                logger.debug("Using %s API token for %s", role, path)
                return token
        logger.debug("Using %s session token for %s", role, path)
        return self._credentials.get(role)

    def forward(self, method: str, path: str, body: Any = None, role: str = "viewer") -> Any:
        """Send method/path/body upstream as role and return the decoded body.

        Returns None for empty response bodies. Raises UpstreamError on any
        transport failure or non-2xx status.
        """
        role = normalize_role(role)
        path = path if path.startswith("/") else f"/{path}"
        headers = {
            "Authorization": f"Bearer {self._select_token(path, role)}",
            "Content-Type": "application/json",
        }
        if path.startswith(TOKEN_SCOPED_PREFIX):
            headers["Accept"] = "application/json"

        try:
            resp = self._session.request(
                method.upper(),
                f"{self._base_url}{path}",
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Strapi transport error on %s %s: %s", method.upper(), path, e)
            raise UpstreamError(str(e) or GENERIC_ERROR_MESSAGE) from e

        if not resp.ok:
            message, status = extract_upstream_error(resp)
            logger.warning("Strapi API error (%d) on %s %s: %s", status, method.upper(), path, message)
            raise UpstreamError(message, status)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"Strapi returned a non-JSON body for {path}", 502) from e
