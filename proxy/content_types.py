"""
proxy/content_types.py -- Content-type catalog and singular/plural resolution.

Callers address content types by whatever name they have at hand: the API id
("article"), the singular name, or the plural name ("articles"). Strapi's
REST routes only accept the plural, and plurals are irregular ("study" ->
"studies"), so the plural is always taken from the schema Strapi declares.
A "+s" guess is never made: a schema without pluralName is a SchemaError, a
name absent from the catalog is a NotFoundError.

Catalog envelope shapes, checked in this order:
    [ {...}, ... ]                   array at top level
    {"data": [ ... ]}                array under data
    {"data": {"data": [ ... ]}}      array nested under data.data
Anything else is rejected as an unrecognized shape rather than guessed at.

Lookup states per name:
    UNRESOLVED -> CACHED                          alias cache hit
    UNRESOLVED -> FETCHING -> RESOLVED | NOT_FOUND
A resolution is cached under the name, singular and plural (lower-cased), so
later lookups by any alias skip the catalog fetch.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from cache.store import KeyValueStore, MemoryStore
from core.errors import ContentTypeMappingError, NotFoundError, SchemaError
from proxy.forwarder import RequestForwarder

logger = logging.getLogger("contentgateway.proxy.content_types")

CATALOG_PATH = "/api/content-type-builder/content-types"
LISTED_KINDS = ("collectionType", "singleType")


@dataclass
class ContentTypeDescriptor:
    """Normalized view of one Strapi content-type schema."""

    id: str
    name: str
    singular_name: str
    plural_name: Optional[str]
    display_name: str
    kind: str
    description: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PluralMapping:
    singular_name: str
    plural_name: str


# ---------------------------------------------------------------------------
# Envelope detection
# ---------------------------------------------------------------------------


def _top_level_array(payload: Any) -> Optional[list]:
    return payload if isinstance(payload, list) else None


def _array_under_data(payload: Any) -> Optional[list]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return None


def _array_under_data_data(payload: Any) -> Optional[list]:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        inner = payload["data"].get("data")
        if isinstance(inner, list):
            return inner
    return None


_ENVELOPE_SHAPES = (_top_level_array, _array_under_data, _array_under_data_data)


def unwrap_catalog(payload: Any) -> list:
    """Return the entry list from a catalog response or raise SchemaError."""
    for shape in _ENVELOPE_SHAPES:
        entries = shape(payload)
        if entries is not None:
            return entries
    logger.warning("Unexpected content-type catalog shape: %.200r", payload)
    raise SchemaError("Unrecognized content-type catalog response shape from Strapi")


# ---------------------------------------------------------------------------
# Filtering and mapping
# ---------------------------------------------------------------------------


def _schema_of(entry: dict) -> dict:
    schema = entry.get("schema")
    return schema if isinstance(schema, dict) else entry


def is_listed(entry: Any) -> bool:
    """True for visible collection/single types. Visibility defaults to True."""
    if not isinstance(entry, dict):
        return True  # left for map_entry to reject with its index
    schema = _schema_of(entry)
    kind = schema.get("kind") or entry.get("kind")
    visible = schema.get("visible", True)
    return kind in LISTED_KINDS and visible is not False


def api_id_from_uid(uid: str) -> str:
    """Parse "api::article.article" -> "article"; a uid without scope is returned as is."""
    parts = uid.split("::", 1)
    if len(parts) == 1:
        return uid
    rest = parts[1]
    dot = rest.find(".")
    return rest[dot + 1 :] if dot > 0 else rest


def map_entry(entry: Any, index: int) -> ContentTypeDescriptor:
    """Map one catalog entry to a descriptor. Raises ContentTypeMappingError."""
    if not isinstance(entry, dict):
        raise ContentTypeMappingError(index, f"expected an object, got {type(entry).__name__}")

    schema = _schema_of(entry)
    uid = entry.get("uid") or schema.get("uid")
    api_id = entry.get("apiID") or schema.get("apiID")
    if not api_id and isinstance(uid, str) and uid:
        api_id = api_id_from_uid(uid)
    if not api_id:
        raise ContentTypeMappingError(index, "no apiID or uid")

    info = schema.get("info") or entry.get("info") or {}
    if not isinstance(info, dict):
        raise ContentTypeMappingError(index, "info is not an object")

    singular = info.get("singularName") or schema.get("singularName") or api_id
    plural = info.get("pluralName") or schema.get("pluralName") or None
    if plural is None:
        logger.warning("Content type %s is missing pluralName in its Strapi schema", api_id)

    return ContentTypeDescriptor(
        id=str(uid or api_id),
        name=str(api_id),
        singular_name=str(singular),
        plural_name=str(plural) if plural else None,
        display_name=str(info.get("displayName") or schema.get("displayName") or api_id),
        kind=str(schema.get("kind") or entry.get("kind")),
        description=str(info.get("description") or schema.get("description") or ""),
        attributes=schema.get("attributes") or entry.get("attributes") or {},
    )


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ContentTypeResolver:
    """Fetches the Strapi content-type catalog and resolves plural names.

    Usage:
        resolver = ContentTypeResolver(forwarder)
        resolver.resolve_plural("Study", role="editor")   # -> "studies"
    """

    def __init__(self, forwarder: RequestForwarder, cache: KeyValueStore | None = None) -> None:
        self._forwarder = forwarder
        self._cache: KeyValueStore = cache if cache is not None else MemoryStore()

    def list_content_types(self, role: str) -> list[ContentTypeDescriptor]:
        """Return descriptors for every visible collection and single type."""
        payload = self._forwarder.forward("GET", CATALOG_PATH, role=role)
        entries = unwrap_catalog(payload)
        return [map_entry(entry, index) for index, entry in enumerate(entries) if is_listed(entry)]

    def _find(self, name: str, role: str) -> Optional[ContentTypeDescriptor]:
        key = name.lower()
        for descriptor in self.list_content_types(role):
            aliases = (descriptor.name, descriptor.singular_name, descriptor.plural_name)
            if any(alias and alias.lower() == key for alias in aliases):
                return descriptor
        return None

    def get_content_type(self, slug: str, role: str) -> ContentTypeDescriptor:
        """Return the descriptor whose name, singular or plural matches slug."""
        descriptor = self._find(slug, role)
        if descriptor is None:
            raise NotFoundError(f"Content type '{slug}' not found")
        return descriptor

    def resolve_plural(self, name_or_slug: str, role: str) -> str:
        """Return the schema-declared plural for any alias of a content type."""
        key = name_or_slug.lower()
        cached = self._cache.get(key)
        if cached is not None:
            return cached.plural_name

        descriptor = self._find(key, role)
        if descriptor is None:
            raise NotFoundError(
                f"Content type '{name_or_slug}' not found in Strapi. "
                "Please ensure the content type exists and has a pluralName configured."
            )
        if not descriptor.plural_name:
            raise SchemaError(
                f"Content type '{descriptor.singular_name}' is missing pluralName in Strapi schema. "
                "Please configure pluralName in Strapi content type builder."
            )

        mapping = PluralMapping(descriptor.singular_name, descriptor.plural_name)
        for alias in {descriptor.name, descriptor.singular_name, descriptor.plural_name}:
            self._cache.set(alias.lower(), mapping)
        return mapping.plural_name

    def clear(self) -> None:
        """Forget every cached resolution."""
        clear = getattr(self._cache, "clear", None)
        if clear is not None:
            clear()
