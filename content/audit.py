"""
content/audit.py -- Append-only audit log of content operations.

Every create, update and delete performed through the gateway appends one
row. Rows are never updated or deleted: a "deleted" entry is a new row next
to the earlier "created" / "updated" ones, so the full history survives.

Ownership:
  The owner of a content item is the user on its earliest "created" entry.
  Authors may only modify items they own; later updates by other users
  never transfer ownership.

Failure policy:
  log_operation() is called after the primary operation has already
  succeeded (as a FastAPI background task). A failed audit write is logged
  and dropped -- it must never fail the request that triggered it.

Layer rule: no imports from api/, auth/, or proxy/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Engine

logger = logging.getLogger("contentgateway.content.audit")

AUDIT_ACTIONS = ("created", "updated", "deleted")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_audit_logs = Table(
    "content_audit_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("content_id", String(255), nullable=False),  # numeric id or documentId
    Column("action", String(10), nullable=False),
    Column("custom_user_id", String(36)),
    Column("content_type", String(255)),
    Column("content_name", String(500)),
    Column("timestamp", String(32), nullable=False),
    Index("ix_audit_content_id", "content_id"),
    Index("ix_audit_custom_user_id", "custom_user_id"),
    Index("ix_audit_timestamp", "timestamp"),
)


@dataclass
class AuditEntry:
    content_id: str
    action: str
    custom_user_id: Optional[str] = None
    content_type: Optional[str] = None
    content_name: Optional[str] = None
    id: Optional[int] = None
    timestamp: Optional[str] = None


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditStore:
    """Repository for AuditEntry rows.

    Usage:
        audit = AuditStore("sqlite:///contentgateway.db")
        audit.log_operation(AuditEntry(content_id="abc", action="created", custom_user_id=uid))
        audit.is_content_owner("abc", uid)   # True
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def log_operation(self, entry: AuditEntry) -> Optional[int]:
        """Append entry. Returns the new row id, or None if the write failed."""
        if entry.action not in AUDIT_ACTIONS:
            logger.error("Refusing audit entry with unknown action %r", entry.action)
            return None
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _audit_logs.insert().values(
                        content_id=str(entry.content_id),
                        action=entry.action,
                        custom_user_id=entry.custom_user_id,
                        content_type=entry.content_type,
                        content_name=entry.content_name,
                        timestamp=_now_iso(),
                    )
                )
                conn.commit()
        except Exception:
            logger.exception("Failed to create audit log for %s on content %s", entry.action, entry.content_id)
            return None
        logger.debug(
            "Audit log created: %s on content %s (%s: %s) by user %s",
            entry.action,
            entry.content_id,
            entry.content_type,
            entry.content_name,
            entry.custom_user_id,
        )
        return result.inserted_primary_key[0]

    def get_content_logs(self, content_id: str, limit: int = 50) -> list[AuditEntry]:
        """Newest-first history of one content item."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit_logs.select()
                .where(_audit_logs.c.content_id == str(content_id))
                .order_by(_audit_logs.c.timestamp.desc(), _audit_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def get_user_logs(self, custom_user_id: str, limit: int = 50) -> list[AuditEntry]:
        """Newest-first operations performed by one user."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit_logs.select()
                .where(_audit_logs.c.custom_user_id == custom_user_id)
                .order_by(_audit_logs.c.timestamp.desc(), _audit_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def get_content_creator(self, content_id: str) -> Optional[str]:
        """Return the user id on the earliest "created" entry, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _audit_logs.select()
                .where((_audit_logs.c.content_id == str(content_id)) & (_audit_logs.c.action == "created"))
                .order_by(_audit_logs.c.timestamp.asc(), _audit_logs.c.id.asc())
                .limit(1)
            ).fetchone()
        return row.custom_user_id if row is not None else None

    def is_content_owner(self, content_id: str, custom_user_id: Optional[str]) -> bool:
        if not custom_user_id:
            return False
        return self.get_content_creator(content_id) == custom_user_id

    def close(self) -> None:
        self.engine.dispose()


def _row_to_entry(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        content_id=row.content_id,
        action=row.action,
        custom_user_id=row.custom_user_id,
        content_type=row.content_type,
        content_name=row.content_name,
        timestamp=row.timestamp,
    )
