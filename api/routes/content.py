"""
api/routes/content.py -- Content-type catalog and content item endpoints.

Routes (all under /api, all require authentication):
  GET    /content-types                    -- list collection and single types
  GET    /content-types/{slug}             -- one content type by any alias
  POST   /content-types                    -- create a content type (admin only)
  GET    /{contentType}                    -- list items (drafts included)
  GET    /{contentType}/{id}               -- one item
  POST   /{contentType}                    -- create an item
  PUT    /{contentType}/{id}               -- update an item
  DELETE /{contentType}/{id}               -- delete an item
  POST   /{contentType}/duplicate/{id}     -- copy an item
  GET    /{contentType}/{id}/ownership     -- ownership check for the frontend

Role policy:
  viewer           read-only
  author           create; update / delete / duplicate only items they created
  editor, admin    unrestricted

Ownership is read from the audit log (content/audit.py). The audit log keys
items by documentId when Strapi has one, so the ownership check first fetches
the item to learn it; if that fetch fails the raw path id is checked instead.

The catch-all /{contentType} routes must be registered after every fixed
/api/... router. Paths whose first segment is reserved for other parts of the
application return 404 here instead of being proxied.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Request

from api.models import (
    ContentTypeEnvelope,
    ContentTypeListEnvelope,
    ContentTypeResponse,
    CreateContentTypeRequest,
    DeleteResponse,
    OwnershipResponse,
)
from auth.dependencies import get_identity, require_admin, require_roles
from auth.models import Identity
from content.audit import AuditEntry, AuditStore
from content.service import ContentService, content_id_of, content_name_of, item_data
from core.errors import AppError, ForbiddenError, NotFoundError
from core.roles import Role, normalize_role
from proxy.content_types import ContentTypeDescriptor

logger = logging.getLogger("contentgateway.api.content")

RESERVED_SEGMENTS = frozenset({"dashboard", "auth", "api-docs", "health", "swagger"})

require_writer = require_roles("admin", "editor", "author")

content_types_router = APIRouter()
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(request: Request) -> ContentService:
    return request.app.state.content_service


def _audit(request: Request) -> AuditStore:
    return request.app.state.audit_store


def _reject_reserved(content_type: str, path: str) -> None:
    if content_type.lower() in RESERVED_SEGMENTS:
        raise NotFoundError(f"Path '{path}' not found")


def _to_response(descriptor: ContentTypeDescriptor) -> ContentTypeResponse:
    return ContentTypeResponse(**descriptor.to_dict())


def _unwrap_body(body: dict[str, Any]) -> dict[str, Any]:
    """Accept both {"title": ...} and Strapi's own {"data": {"title": ...}}."""
    if set(body) == {"data"} and isinstance(body["data"], dict):
        return body["data"]
    return body


def _resolve_existing(
    service: ContentService, content_type: str, item_id: str, role: str
) -> tuple[str, Optional[str]]:
    """Return (audit content id, content name) for an existing item.

    Falls back to (item_id, None) when the item cannot be fetched.
    """
    try:
        existing = service.get_item(content_type, item_id, role)
    except AppError as e:
        logger.warning("Could not get content item %s/%s for audit lookup, using path id: %s", content_type, item_id, e.message)
        return str(item_id), None
    return content_id_of(existing, item_id), content_name_of(item_data(existing))


def _check_author_owns(audit: AuditStore, identity: Identity, content_id: str, verb: str) -> None:
    if normalize_role(identity.role) != Role.author.value:
        return
    if not audit.is_content_owner(content_id, identity.user_id):
        raise ForbiddenError(f"You can only {verb} your own content")


# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------


@content_types_router.get("/content-types", response_model=ContentTypeListEnvelope)
def list_content_types(request: Request, identity: Identity = Depends(get_identity)) -> ContentTypeListEnvelope:
    descriptors = _service(request).list_content_types(identity.role)
    return ContentTypeListEnvelope(data=[_to_response(d) for d in descriptors])


@content_types_router.get("/content-types/{slug}", response_model=ContentTypeEnvelope)
def get_content_type(request: Request, slug: str, identity: Identity = Depends(get_identity)) -> ContentTypeEnvelope:
    return ContentTypeEnvelope(data=_to_response(_service(request).get_content_type(slug, identity.role)))


@content_types_router.post("/content-types", response_model=ContentTypeEnvelope, status_code=201)
def create_content_type(
    request: Request,
    body: CreateContentTypeRequest,
    identity: Identity = Depends(require_admin),
) -> ContentTypeEnvelope:
    """Translate the attribute definitions and create the type through Strapi's builder."""
    descriptor = _service(request).create_content_type(
        name=body.name,
        display_name=body.display_name,
        role=identity.role,
        kind=body.kind.value,
        description=body.description,
        attributes=body.attributes,
    )
    request.app.state.content_type_resolver.clear()
    return ContentTypeEnvelope(data=_to_response(descriptor))


# ---------------------------------------------------------------------------
# Content items -- reads
# ---------------------------------------------------------------------------


@router.get("/{content_type}")
def list_items(request: Request, content_type: str, identity: Identity = Depends(get_identity)) -> Any:
    """Proxy a listing; Strapi query parameters (filters, sort, pagination) pass through."""
    _reject_reserved(content_type, f"/api/{content_type}")
    return _service(request).list_items(content_type, request.query_params.multi_items(), identity.role)


@router.get("/{content_type}/{item_id}")
def get_item(request: Request, content_type: str, item_id: str, identity: Identity = Depends(get_identity)) -> Any:
    _reject_reserved(content_type, f"/api/{content_type}/{item_id}")
    return _service(request).get_item(content_type, item_id, identity.role)


@router.get("/{content_type}/{item_id}/ownership", response_model=OwnershipResponse)
def check_ownership(
    request: Request, content_type: str, item_id: str, identity: Identity = Depends(get_identity)
) -> OwnershipResponse:
    _reject_reserved(content_type, f"/api/{content_type}/{item_id}/ownership")
    audit = _audit(request)
    content_id, _ = _resolve_existing(_service(request), content_type, item_id, identity.role)

    is_owner = audit.is_content_owner(content_id, identity.user_id)
    role = normalize_role(identity.role)
    can_edit = role in (Role.admin.value, Role.editor.value) or (role == Role.author.value and is_owner)
    return OwnershipResponse(
        is_owner=is_owner,
        creator_id=audit.get_content_creator(content_id),
        current_user_id=identity.user_id,
        can_edit=can_edit,
    )


# ---------------------------------------------------------------------------
# Content items -- writes
# ---------------------------------------------------------------------------


@router.post("/{content_type}", status_code=201)
def create_item(
    request: Request,
    content_type: str,
    background_tasks: BackgroundTasks,
    body: dict[str, Any] = Body(...),
    identity: Identity = Depends(require_writer),
) -> Any:
    _reject_reserved(content_type, f"/api/{content_type}")
    response = _service(request).create_item(content_type, _unwrap_body(body), identity.role)

    created = item_data(response)
    content_id = content_id_of(response, "")
    if created is not None and content_id:
        background_tasks.add_task(
            _audit(request).log_operation,
            AuditEntry(
                content_id=content_id,
                action="created",
                custom_user_id=identity.user_id,
                content_type=content_type,
                content_name=content_name_of(created),
            ),
        )
    return response


@router.put("/{content_type}/{item_id}")
def update_item(
    request: Request,
    content_type: str,
    item_id: str,
    background_tasks: BackgroundTasks,
    body: dict[str, Any] = Body(...),
    identity: Identity = Depends(require_writer),
) -> Any:
    _reject_reserved(content_type, f"/api/{content_type}/{item_id}")
    service = _service(request)
    audit = _audit(request)
    data = _unwrap_body(body)

    if normalize_role(identity.role) == Role.author.value:
        content_id, _ = _resolve_existing(service, content_type, item_id, identity.role)
        _check_author_owns(audit, identity, content_id, "update")

    response = service.update_item(content_type, item_id, data, identity.role)
    background_tasks.add_task(
        audit.log_operation,
        AuditEntry(
            content_id=content_id_of(response, item_id),
            action="updated",
            custom_user_id=identity.user_id,
            content_type=content_type,
            content_name=content_name_of(item_data(response), data),
        ),
    )
    return response


@router.delete("/{content_type}/{item_id}", response_model=DeleteResponse)
def delete_item(
    request: Request,
    content_type: str,
    item_id: str,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(require_writer),
) -> DeleteResponse:
    """Delete an item. The audit history is kept and gains a "deleted" row."""
    _reject_reserved(content_type, f"/api/{content_type}/{item_id}")
    service = _service(request)
    audit = _audit(request)

    # Looked up before deletion: afterwards the documentId and name are gone.
    content_id, content_name = _resolve_existing(service, content_type, item_id, identity.role)
    _check_author_owns(audit, identity, content_id, "delete")

    service.delete_item(content_type, item_id, identity.role)
    background_tasks.add_task(
        audit.log_operation,
        AuditEntry(
            content_id=content_id,
            action="deleted",
            custom_user_id=identity.user_id,
            content_type=content_type,
            content_name=content_name,
        ),
    )
    return DeleteResponse(success=True)


@router.post("/{content_type}/duplicate/{item_id}", status_code=201)
def duplicate_item(
    request: Request,
    content_type: str,
    item_id: str,
    background_tasks: BackgroundTasks,
    identity: Identity = Depends(require_writer),
) -> Any:
    """Copy an item; the caller becomes the owner of the copy."""
    _reject_reserved(content_type, f"/api/{content_type}/duplicate/{item_id}")
    service = _service(request)
    audit = _audit(request)

    if normalize_role(identity.role) == Role.author.value:
        content_id, _ = _resolve_existing(service, content_type, item_id, identity.role)
        _check_author_owns(audit, identity, content_id, "duplicate")

    response = service.duplicate_item(content_type, item_id, identity.role)
    copy = item_data(response)
    copy_id = content_id_of(response, "")
    if copy is not None and copy_id:
        background_tasks.add_task(
            audit.log_operation,
            AuditEntry(
                content_id=copy_id,
                action="created",
                custom_user_id=identity.user_id,
                content_type=content_type,
                content_name=content_name_of(copy),
            ),
        )
    return response
