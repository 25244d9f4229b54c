"""
content/service.py -- Content item operations over the Strapi forwarder.

Callers name a content type however they like ("study", "Study", "studies");
every operation first resolves the schema-declared plural through the
ContentTypeResolver and then talks to /api/<plural>.

Upstream failures arrive as UpstreamError carrying Strapi's own status and
message; this module re-raises them with a short context prefix so the
caller sees which operation failed without losing the upstream status.

Single-item lookup (get_item) is a chain of three explicit attempts. Strapi 5
hides drafts from plain id lookups, and callers may hold either a numeric id
or a documentId:
    1. /api/<plural>/<id>?status=draft
    2. /api/<plural>/<id>?publicationState=preview
    3. /api/<plural>?filters[documentId][$eq]=<id>&status=draft
The chain advances only when the previous attempt failed with 404; any other
upstream error is raised immediately. If all three miss, NotFoundError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union
from urllib.parse import quote, urlencode

from core.errors import ForbiddenError, NotFoundError, UpstreamError
from core.roles import Role, normalize_role
from proxy.content_types import CATALOG_PATH, ContentTypeDescriptor, ContentTypeResolver
from proxy.forwarder import RequestForwarder

logger = logging.getLogger("contentgateway.content")

# Fields Strapi owns on every entry; stripped before re-posting a duplicate.
SYSTEM_FIELDS = frozenset(
    {"id", "documentId", "createdAt", "updatedAt", "publishedAt", "createdBy", "updatedBy", "localizations"}
)

# Our attribute type names -> Strapi attribute type names.
FIELD_TYPE_MAP = {
    "string": "string",
    "text": "text",
    "richtext": "richtext",
    "email": "email",
    "password": "password",
    "enumeration": "enumeration",
    "date": "date",
    "time": "time",
    "datetime": "datetime",
    "timestamp": "timestamp",
    "integer": "integer",
    "biginteger": "biginteger",
    "float": "float",
    "decimal": "decimal",
    "json": "json",
    "boolean": "boolean",
    "media": "media",
    "relation": "relation",
    "component": "component",
    "dynamiczone": "dynamiczone",
    "uid": "uid",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _rewrap(error: UpstreamError, context: str) -> UpstreamError:
    return type(error)(f"{context}: {error.message}", error.status_code)


def item_data(response: Any) -> Optional[dict]:
    """Return response["data"] when it is a single entry object."""
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        return response["data"]
    return None


def content_id_of(response: Any, fallback: str) -> str:
    """Prefer the Strapi 5 documentId, then the numeric id, then fallback."""
    data = item_data(response)
    if data is not None:
        for key in ("documentId", "id"):
            if data.get(key) not in (None, ""):
                return str(data[key])
    return str(fallback)


def content_name_of(*sources: Any) -> Optional[str]:
    """First title-like field found across the given entry dicts."""
    for source in sources:
        if not isinstance(source, dict):
            continue
        for key in ("title", "name", "heading", "label"):
            if source.get(key):
                return str(source[key])
    return None


def map_field_type(field_type: str) -> str:
    return FIELD_TYPE_MAP.get(field_type.lower(), field_type)


def transform_attributes(attributes: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Translate our attribute definitions into Strapi's schema format."""
    strapi_attributes: dict[str, dict[str, Any]] = {}
    for field_name, config in attributes.items():
        field_type = str(config.get("type", "string"))
        attr: dict[str, Any] = {"type": map_field_type(field_type)}
        for key in ("required", "unique", "default"):
            if key in config:
                attr[key] = config[key]

        kind = field_type.lower()
        if kind in ("string", "text"):
            for key in ("minLength", "maxLength"):
                if key in config:
                    attr[key] = config[key]
        elif kind in ("integer", "biginteger", "float", "decimal"):
            for key in ("min", "max"):
                if key in config:
                    attr[key] = config[key]
        elif kind == "enumeration":
            if config.get("enum"):
                attr["enum"] = config["enum"]
        elif kind == "uid":
            attr["targetField"] = config.get("targetField")
        elif kind == "media":
            attr["allowedTypes"] = config.get("allowedTypes") or ["images", "files", "videos"]
            attr["multiple"] = bool(config.get("multiple", False))
        elif kind == "relation":
            for key in ("relation", "target"):
                if config.get(key):
                    attr[key] = config[key]
        elif kind == "component":
            if config.get("component"):
                attr["component"] = config["component"]
            attr["repeatable"] = bool(config.get("repeatable", False))

        strapi_attributes[field_name] = attr
    return strapi_attributes


def build_content_type_schema(
    name: str,
    display_name: str,
    kind: str = "collectionType",
    description: str = "",
    attributes: Optional[dict[str, dict[str, Any]]] = None,
) -> dict[str, Any]:
    """Build the content-type-builder payload for a new content type.

    The caller-supplied name is declared as both singular and plural, so the
    resolver later finds an explicit pluralName instead of having to guess.
    """
    schema: dict[str, Any] = {
        "kind": kind,
        "collectionName": name,
        "info": {
            "singularName": name,
            "pluralName": name,
            "displayName": display_name,
            "description": description or "",
        },
        "options": {"draftAndPublish": True},
        "pluginOptions": {},
        "attributes": transform_attributes(attributes or {}),
    }
    if kind == "singleType":
        del schema["collectionName"]
    return schema


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ContentService:
    """Content-type and content-item operations for one application role.

    Usage:
        service = ContentService(forwarder, resolver)
        service.list_items("article", {"pagination[page]": "2"}, role="editor")
    """

    def __init__(self, forwarder: RequestForwarder, resolver: ContentTypeResolver) -> None:
        self._forwarder = forwarder
        self._resolver = resolver

    # ------------------------------------------------------------------
    # Content types
    # ------------------------------------------------------------------

    def list_content_types(self, role: str) -> list[ContentTypeDescriptor]:
        try:
            return self._resolver.list_content_types(role)
        except UpstreamError as e:
            raise _rewrap(e, "Failed to get content types from Strapi") from e

    def get_content_type(self, slug: str, role: str) -> ContentTypeDescriptor:
        try:
            return self._resolver.get_content_type(slug, role)
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to get content type '{slug}'") from e

    def create_content_type(
        self,
        name: str,
        display_name: str,
        role: str,
        kind: str = "collectionType",
        description: str = "",
        attributes: Optional[dict[str, dict[str, Any]]] = None,
    ) -> ContentTypeDescriptor:
        """Create a content type in Strapi (admin only) and return its descriptor."""
        if normalize_role(role) != Role.admin.value:
            raise ForbiddenError("Only admin role can create content types")

        schema = build_content_type_schema(name, display_name, kind, description, attributes)
        try:
            self._forwarder.forward("POST", CATALOG_PATH, schema, role=Role.admin.value)
        except UpstreamError as e:
            raise _rewrap(e, "Failed to create content type in Strapi") from e
        logger.info("Created content type %s (%s)", name, kind)
        return self.get_content_type(name, role)

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    def _plural(self, content_type: str, role: str) -> str:
        try:
            return self._resolver.resolve_plural(content_type, role)
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to resolve content type '{content_type}'") from e

    def list_items(
        self, content_type: str, params: Union[Mapping[str, str], Iterable[tuple[str, str]]], role: str
    ) -> Any:
        """List entries, drafts included unless the caller sets status itself.

        params may be a mapping or (key, value) pairs; repeated keys such as
        populate=a&populate=b are kept in order.
        """
        plural = self._plural(content_type, role)
        pairs = list(params.items()) if isinstance(params, Mapping) else list(params)
        if not any(key == "status" for key, _ in pairs):
            pairs.insert(0, ("status", "draft"))
        query = urlencode(pairs)
        try:
            return self._forwarder.forward("GET", f"/api/{plural}?{query}", role=role)
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to get content items from {content_type}") from e

    def get_item(self, content_type: str, item_id: str, role: str) -> Any:
        plural = self._plural(content_type, role)
        quoted = quote(str(item_id), safe="")
        context = f"Failed to get content item {item_id} from {content_type}"

        try:
            return self._forwarder.forward("GET", f"/api/{plural}/{quoted}?status=draft", role=role)
        except UpstreamError as e:
            if e.status_code != 404:
                raise _rewrap(e, context) from e
            logger.debug("Content item %s not found with status=draft, trying publicationState=preview", item_id)

        try:
            return self._forwarder.forward("GET", f"/api/{plural}/{quoted}?publicationState=preview", role=role)
        except UpstreamError as e:
            if e.status_code != 404:
                raise _rewrap(e, context) from e
            logger.debug("Content item %s not found with preview, trying documentId filter", item_id)

        query = urlencode({"filters[documentId][$eq]": str(item_id), "status": "draft"})
        try:
            response = self._forwarder.forward("GET", f"/api/{plural}?{query}", role=role)
        except UpstreamError as e:
            if e.status_code != 404:
                raise _rewrap(e, context) from e
            response = None

        if isinstance(response, dict) and isinstance(response.get("data"), list) and response["data"]:
            return {"data": response["data"][0]}
        raise NotFoundError(f"Content item with ID '{item_id}' not found in content type '{content_type}'")

    def create_item(self, content_type: str, data: dict[str, Any], role: str) -> Any:
        plural = self._plural(content_type, role)
        try:
            return self._forwarder.forward("POST", f"/api/{plural}", {"data": data}, role=role)
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to create content item in {content_type}") from e

    def update_item(self, content_type: str, item_id: str, data: dict[str, Any], role: str) -> Any:
        plural = self._plural(content_type, role)
        try:
            return self._forwarder.forward(
                "PUT", f"/api/{plural}/{quote(str(item_id), safe='')}", {"data": data}, role=role
            )
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to update content item {item_id} in {content_type}") from e

    def delete_item(self, content_type: str, item_id: str, role: str) -> dict[str, bool]:
        plural = self._plural(content_type, role)
        try:
            self._forwarder.forward("DELETE", f"/api/{plural}/{quote(str(item_id), safe='')}", role=role)
        except UpstreamError as e:
            raise _rewrap(e, f"Failed to delete content item {item_id} from {content_type}") from e
        return {"success": True}

    def duplicate_item(self, content_type: str, item_id: str, role: str) -> Any:
        """Create a copy of an entry, minus the fields Strapi assigns itself."""
        original = item_data(self.get_item(content_type, item_id, role))
        if original is None:
            raise NotFoundError(f"Content item with ID '{item_id}' not found in content type '{content_type}'")
        # Strapi 4 nests fields under "attributes"; Strapi 5 flattens them.
        fields = original.get("attributes") if isinstance(original.get("attributes"), dict) else original
        copy = {k: v for k, v in fields.items() if k not in SYSTEM_FIELDS}
        return self.create_item(content_type, copy, role)
