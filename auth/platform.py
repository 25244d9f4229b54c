"""
auth/platform.py -- Platform-injected identity header strategy.

When the gateway runs behind a hosting platform that terminates sign-in
(e.g. Azure App Service "Easy Auth"), the platform adds a header carrying the
signed-in principal as base64-encoded JSON:

    {"auth_typ": "aad", "name_typ": "...", "role_typ": "...",
     "claims": [{"typ": "<claim type>", "val": "<value>"}, ...]}

The platform owns authentication; this module only maps the principal onto a
local User. Claim type strings differ between identity providers, so each
field accepts any of its known synonyms (the long WS-Federation URIs or the
short OIDC names).

Local binding:
  The user is looked up by external id (auth_key) first, then by email. The
  first successful login binds the external id to the user; later logins with
  a different id never change it.

Role mapping:
  An asserted role claim wins over the stored role. It is mapped with plain
  substring checks -- see map_external_role() for the exact rules and their
  known looseness.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from auth.models import AuthType, Identity
from auth.store import UserStore
from auth.strategies import NOT_APPLICABLE, Failed, Outcome, Resolved
from core.errors import AppError, ForbiddenError, NotFoundError, UnauthenticatedError
from core.roles import Role, normalize_role

logger = logging.getLogger("contentgateway.auth.platform")

DEFAULT_HEADER = "x-ms-client-principal"

_WS_CLAIMS = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims"

EMAIL_CLAIMS = (f"{_WS_CLAIMS}/emailaddress", "email")
NAME_CLAIMS = (f"{_WS_CLAIMS}/name", "name")
EXTERNAL_ID_CLAIMS = (f"{_WS_CLAIMS}/nameidentifier", "sub")
ROLE_CLAIMS = ("http://schemas.microsoft.com/ws/2008/06/identity/claims/role", "roles")


@dataclass
class PlatformClaims:
    email: Optional[str] = None
    name: Optional[str] = None
    external_id: Optional[str] = None
    roles: list[str] = field(default_factory=list)


def decode_principal(raw: str) -> dict[str, Any]:
    """Decode the base64 JSON header value. Raises UnauthenticatedError if malformed."""
    try:
        decoded = base64.b64decode(raw, validate=False).decode("utf-8")
        principal = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.error("Platform identity header could not be decoded: %s", e)
        raise UnauthenticatedError("Failed to validate platform identity principal") from e
    if not isinstance(principal, dict):
        raise UnauthenticatedError("Failed to validate platform identity principal")
    claims = principal.get("claims")
    if claims is None:
        principal["claims"] = []
    elif not isinstance(claims, list):
        logger.error("Platform identity header has non-list claims: %s", type(claims).__name__)
        raise UnauthenticatedError("Failed to validate platform identity principal")
    return principal


def _first_claim(claims: list, types: tuple[str, ...]) -> Optional[str]:
    for claim in claims:
        if isinstance(claim, dict) and claim.get("typ") in types and claim.get("val"):
            return str(claim["val"])
    return None


def extract_claims(principal: dict[str, Any]) -> PlatformClaims:
    """Pull email, display name, external id and roles out of a decoded principal."""
    claims = principal.get("claims") or []
    if not isinstance(claims, list):
        claims = []
    email = _first_claim(claims, EMAIL_CLAIMS)
    name = _first_claim(claims, NAME_CLAIMS)
    external_id = _first_claim(claims, EXTERNAL_ID_CLAIMS)
    raw_roles = _first_claim(claims, ROLE_CLAIMS)
    roles = [r.strip() for r in raw_roles.split(",") if r.strip()] if raw_roles else []
    # Providers without an email claim put the address in name or the id.
    email = email or name or external_id
    return PlatformClaims(
        email=email,
        name=name,
        external_id=external_id or email,
        roles=roles,
    )


def map_external_role(external_role: str) -> str:
    """Map an identity-provider role name onto the four local roles.

    Plain substring containment, checked in this order:
      contains "admin"  -> admin
      contains "editor" -> editor
      contains "author" -> author
      anything else     -> viewer

    This is intentionally loose and order-sensitive: "administrative-assistant"
    maps to admin and "editor-author" to editor. Tightening it changes who
    gets which upstream credential, so any change belongs here and nowhere else.
    """
    value = external_role.lower()
    if "admin" in value:
        return Role.admin.value
    if "editor" in value:
        return Role.editor.value
    if "author" in value:
        return Role.author.value
    return Role.viewer.value


class PlatformHeaderStrategy:
    """Resolves an Identity from the platform identity header."""

    name = "platform-header"

    def __init__(self, user_store: UserStore, header_name: str = DEFAULT_HEADER) -> None:
        self._user_store = user_store
        self.header_name = header_name.lower()

    def is_applicable(self, headers: Mapping[str, str]) -> bool:
        return bool(headers.get(self.header_name))

    def authenticate(self, headers: Mapping[str, str]) -> Identity:
        """Return the Identity for the header or raise an AppError subclass."""
        principal = decode_principal(headers[self.header_name])
        logger.debug(
            "Platform principal: auth_typ=%s claims=%d",
            principal.get("auth_typ"),
            len(principal["claims"]),
        )
        claims = extract_claims(principal)
        if not claims.email and not claims.external_id:
            logger.warning("Platform identity: no email or identifier found in claims")
            raise UnauthenticatedError("Invalid platform identity principal: missing user identifier")

        user = None
        if claims.external_id:
            user = self._user_store.get_by_auth_key(claims.external_id)
        if user is None and claims.email:
            user = self._user_store.get_by_email(claims.email)
        if user is None:
            logger.warning(
                "Platform identity: no local user for external id %s / email %s", claims.external_id, claims.email
            )
            raise NotFoundError("User not found in database")
        if user.blocked:
            logger.warning("Platform identity: user %s is blocked", user.id)
            raise ForbiddenError("Account is blocked")

        auth_key = user.auth_key
        if auth_key is None and claims.external_id:
            if self._user_store.bind_auth_key(user.id, claims.external_id):
                logger.info("Bound platform identity to user %s", user.id)
            # Re-read: a concurrent login may have bound a different key first.
            refreshed = self._user_store.get_by_id(user.id)
            auth_key = refreshed.auth_key if refreshed is not None else claims.external_id

        role = map_external_role(claims.roles[0]) if claims.roles else normalize_role(user.role)
        logger.info("Platform identity: authenticated user %s (%s) with role %s", user.email, user.id, role)
        return Identity(
            user_id=user.id,
            email=user.email,
            username=user.username,
            role=role,
            auth_key=auth_key,
            auth_type=AuthType.PLATFORM_HEADER,
        )

    def attempt(self, headers: Mapping[str, str]) -> Outcome:
        if not self.is_applicable(headers):
            return NOT_APPLICABLE
        try:
            return Resolved(self.authenticate(headers))
        except AppError as e:
            return Failed(e)
