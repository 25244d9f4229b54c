"""Unit tests for proxy/content_types.py -- catalog envelopes and plural resolution.

Covers:
- All three catalog envelope shapes, and rejection of anything else
- Filtering to visible collection / single types
- Mapping failures report the entry index
- resolve_plural never synthesizes a "+s" plural
- Resolutions are cached under every alias
"""

from unittest.mock import MagicMock

import pytest

from core.errors import ContentTypeMappingError, NotFoundError, SchemaError
from proxy.content_types import (
    CATALOG_PATH,
    ContentTypeResolver,
    api_id_from_uid,
    is_listed,
    map_entry,
    unwrap_catalog,
)
from tests.helpers import catalog_entry


def _resolver(payload) -> tuple[ContentTypeResolver, MagicMock]:
    forwarder = MagicMock()
    forwarder.forward.return_value = payload
    return ContentTypeResolver(forwarder), forwarder


ENTRIES = [
    catalog_entry("article", "article", "articles"),
    catalog_entry("study", "study", "studies"),
]


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("payload", [ENTRIES, {"data": ENTRIES}, {"data": {"data": ENTRIES}}])
def test_unwrap_catalog_accepts_known_envelopes(payload):
    assert unwrap_catalog(payload) == ENTRIES


@pytest.mark.parametrize("payload", [None, "nope", {"items": ENTRIES}, {"data": {"items": ENTRIES}}])
def test_unwrap_catalog_rejects_unknown_shapes(payload):
    with pytest.raises(SchemaError):
        unwrap_catalog(payload)


# ---------------------------------------------------------------------------
# Filtering and mapping
# ---------------------------------------------------------------------------


def test_is_listed_filters_kind_and_visibility():
    assert is_listed(catalog_entry("article", "article", "articles"))
    assert is_listed(catalog_entry("home", "home", "homes", kind="singleType"))
    assert not is_listed({"uid": "plugin::upload.file", "schema": {"kind": "component"}})
    hidden = catalog_entry("secret", "secret", "secrets")
    hidden["schema"]["visible"] = False
    assert not is_listed(hidden)


def test_api_id_from_uid_takes_name_component():
    assert api_id_from_uid("api::article.article") == "article"
    assert api_id_from_uid("api::blog-post.blog-post") == "blog-post"
    assert api_id_from_uid("article") == "article"


def test_map_entry_without_plural_keeps_it_empty():
    descriptor = map_entry(catalog_entry("study", "study", None), 0)
    assert descriptor.singular_name == "study"
    assert descriptor.plural_name is None


def test_map_entry_failure_reports_index():
    with pytest.raises(ContentTypeMappingError) as exc_info:
        map_entry({"schema": {"kind": "collectionType"}}, 3)
    assert exc_info.value.index == 3
    assert "index 3" in exc_info.value.message


def test_list_content_types_maps_catalog():
    resolver, forwarder = _resolver({"data": ENTRIES})
    names = [d.name for d in resolver.list_content_types("editor")]
    assert names == ["article", "study"]
    forwarder.forward.assert_called_once_with("GET", CATALOG_PATH, role="editor")


# ---------------------------------------------------------------------------
# Plural resolution
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", ["study", "Study", "studies", "STUDIES"])
def test_resolve_plural_matches_any_alias(name):
    resolver, _ = _resolver({"data": ENTRIES})
    assert resolver.resolve_plural(name, "viewer") == "studies"


def test_resolve_plural_unknown_name_is_not_found_not_guessed():
    resolver, _ = _resolver({"data": ENTRIES})
    with pytest.raises(NotFoundError):
        resolver.resolve_plural("category", "viewer")


def test_resolve_plural_missing_plural_is_schema_error():
    resolver, _ = _resolver({"data": [catalog_entry("study", "study", None)]})
    with pytest.raises(SchemaError, match="pluralName"):
        resolver.resolve_plural("study", "viewer")


def test_resolution_is_cached_under_every_alias():
    resolver, forwarder = _resolver({"data": ENTRIES})
    assert resolver.resolve_plural("Study", "viewer") == "studies"
    assert resolver.resolve_plural("studies", "viewer") == "studies"
    assert resolver.resolve_plural("study", "admin") == "studies"
    assert forwarder.forward.call_count == 1

    resolver.clear()
    resolver.resolve_plural("study", "viewer")
    assert forwarder.forward.call_count == 2


def test_get_content_type_not_found():
    resolver, _ = _resolver(ENTRIES)
    assert resolver.get_content_type("articles", "viewer").name == "article"
    with pytest.raises(NotFoundError):
        resolver.get_content_type("missing", "viewer")
