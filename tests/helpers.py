"""
tests/helpers.py -- In-process fake of the Strapi upstream.

FakeStrapi stands in for RequestForwarder: it serves a content-type catalog
and an item table from dicts, and records every forwarded call so tests can
assert on paths and roles. make_user() and bearer() set up local users.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from content.audit import AuditStore
from core.errors import UpstreamError
from proxy.content_types import CATALOG_PATH

# Hashed once; bcrypt is deliberately slow.
DEFAULT_PASSWORD = "secret123"
_DEFAULT_HASH = hash_password(DEFAULT_PASSWORD)


def catalog_entry(api_id: str, singular: str, plural: Optional[str], kind: str = "collectionType") -> dict:
    info: dict[str, Any] = {"singularName": singular, "displayName": singular.title()}
    if plural is not None:
        info["pluralName"] = plural
    return {"uid": f"api::{api_id}.{api_id}", "apiID": api_id, "schema": {"kind": kind, "info": info, "attributes": {}}}


DEFAULT_CATALOG = {
    "data": [
        catalog_entry("article", "article", "articles"),
        catalog_entry("study", "study", "studies"),
        catalog_entry("homepage", "homepage", "homepages", kind="singleType"),
    ]
}


@dataclass
class FakeStrapi:
    """Duck-typed RequestForwarder backed by in-memory dicts.

    items maps plural name -> {documentId: entry}. Single-item GETs honour
    the query string the same way Strapi 5 does for the fallback chain:
    miss_status_draft / miss_preview force a 404 on those attempts.
    """

    catalog: Any = field(default_factory=lambda: DEFAULT_CATALOG)
    items: dict[str, dict[str, dict]] = field(default_factory=dict)
    calls: list[tuple[str, str, Any, str]] = field(default_factory=list)
    miss_status_draft: bool = False
    miss_preview: bool = False
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    def forward(self, method: str, path: str, body: Any = None, role: str = "viewer") -> Any:
        self.calls.append((method, path, body, role))
        parts = urlsplit(path)
        query = parse_qs(parts.query)
        segments = [s for s in parts.path.split("/") if s][1:]  # drop "api"

        if parts.path == CATALOG_PATH:
            return self.catalog if method == "GET" else {"data": body}

        plural = segments[0]
        table = self.items.setdefault(plural, {})
        if method == "GET" and len(segments) == 1:
            rows = list(table.values())
            wanted = query.get("filters[documentId][$eq]")
            if wanted:
                rows = [r for r in rows if r["documentId"] == wanted[0]]
            return {"data": rows, "meta": {"pagination": {"total": len(rows)}}}
        if method == "GET":
            doc_id = segments[1]
            if "status" in query and self.miss_status_draft:
                raise UpstreamError("Not Found", 404)
            if "publicationState" in query and self.miss_preview:
                raise UpstreamError("Not Found", 404)
            if doc_id not in table:
                raise UpstreamError("Not Found", 404)
            return {"data": table[doc_id]}
        if method == "POST":
            n = next(self._ids)
            entry = {"id": n, "documentId": f"doc{n}", **body["data"]}
            table[entry["documentId"]] = entry
            return {"data": entry}
        if method == "PUT":
            doc_id = segments[1]
            if doc_id not in table:
                raise UpstreamError("Not Found", 404)
            table[doc_id].update(body["data"])
            return {"data": table[doc_id]}
        if method == "DELETE":
            doc_id = segments[1]
            if table.pop(doc_id, None) is None:
                raise UpstreamError("Not Found", 404)
            return None
        raise AssertionError(f"unexpected call {method} {path}")

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [p for m, p, _, _ in self.calls if method is None or m == method]




# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def make_user(store: UserStore, username: str, role: str, password: str = DEFAULT_PASSWORD, **extra) -> str:
    password_hash = _DEFAULT_HASH if password == DEFAULT_PASSWORD else hash_password(password)
    return store.create_user(
        User(
            username=username,
            email=f"{username}@example.com",
            password_hash=password_hash,
            role=role,
            **extra,
        )
    )


def bearer(user_id: str, username: str, role: str) -> dict[str, str]:
    token = create_access_token(user_id, f"{username}@example.com", username, role, expire_seconds=3600)
    return {"Authorization": f"Bearer {token}"}


@dataclass
class ApiContext:
    """What the api_client fixture yields."""

    client: TestClient
    user_store: UserStore
    audit_store: AuditStore
    upstream: FakeStrapi
    user_ids: dict[str, str]
    headers: dict[str, dict[str, str]]
