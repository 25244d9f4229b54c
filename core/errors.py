"""
core/errors.py -- Application exception taxonomy.

Every failure the gateway reports to a caller is an AppError subclass. Each
class carries the HTTP status it maps to and a machine-readable code; the
single AppError handler in api/main.py renders them into the standard
ErrorResponse envelope. Lower layers (auth/, proxy/, content/) raise these
and never import fastapi.

UpstreamError is the only class whose status is not fixed: it carries the
upstream's own status code when one was extractable.

Layer rule: core/ is the kernel. No imports from other project packages.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class UnauthenticatedError(AppError):
    """No credential, or an invalid / expired one."""

    status_code = 401
    code = "unauthorized"


class ForbiddenError(AppError):
    """Valid identity, insufficient role or ownership."""

    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class SchemaError(AppError):
    """The upstream schema lacks metadata the gateway requires (e.g. pluralName)."""

    status_code = 500
    code = "schema_error"


class ContentTypeMappingError(SchemaError):
    """A content-type catalog entry could not be mapped to a descriptor."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"Failed to map content type at index {index}: {reason}")
        self.index = index


class UpstreamError(AppError):
    """Non-2xx or transport failure from the CMS."""

    code = "upstream_error"


class UpstreamAuthError(UpstreamError):
    """A proxy identity could not be exchanged for an upstream token."""

    status_code = 502
    code = "upstream_auth_error"


class ConfigurationError(AppError):
    """Operator misconfiguration, e.g. no proxy identity for a role."""

    status_code = 500
    code = "configuration_error"
