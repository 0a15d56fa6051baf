"""
Audit sinks – append-only storage for authorization decisions.
"""

import json
import threading
import uuid
from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol

from sqlalchemy import text

from pbac.config import AUDIT_EVENT_TYPE
from pbac.models import AuditRecord


class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> Optional[str]:
        """Persist one record and return its id."""


class AuditLog(AuditSink, Protocol):
    def recent(self, limit: int = 100, principal_id: Optional[str] = None) -> List[AuditRecord]:
        """Most recent records first, optionally for one principal."""


class MemoryAuditLog:
    """In-process audit log, safe to share between worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[AuditRecord] = []

    def record(self, record: AuditRecord) -> str:
        audit_id = str(uuid.uuid4())
        with self._lock:
            self._records.append(record)
        return audit_id

    def recent(self, limit: int = 100, principal_id: Optional[str] = None) -> List[AuditRecord]:
        with self._lock:
            records = list(self._records)
        if principal_id is not None:
            records = [r for r in records if r.principal_id == principal_id]
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def records(self) -> List[AuditRecord]:
        with self._lock:
            return list(self._records)


# ── SQL-backed log ───────────────────────────────────────────────────

_INSERT_SQL = text("""
    INSERT INTO security_audit_log
        (id, event_type, user_id, table_name, record_id, session_id,
         ip_address, user_agent, success, error_message, metadata, created_at)
    VALUES
        (:id, :event_type, :user_id, :table_name, :record_id, :session_id,
         :ip_address, :user_agent, :success, :error_message, :metadata, :created_at)
""")

_RECENT_SQL = """
    SELECT id, user_id, table_name, record_id, session_id, ip_address,
           user_agent, success, error_message, metadata, created_at
    FROM security_audit_log
    WHERE event_type = :event_type {principal_clause}
    ORDER BY created_at DESC
    LIMIT :limit
"""


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_record(row: Mapping[str, Any]) -> AuditRecord:
    metadata = row.get("metadata") or {}
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return AuditRecord(
        timestamp=_parse_timestamp(row["created_at"]),
        principal_id=row.get("user_id"),
        role=metadata.get("user_role"),
        resource_type=row.get("table_name") or metadata.get("resource_type", ""),
        resource_id=row.get("record_id") or "",
        action=metadata.get("action", "unknown"),
        authorized=bool(row.get("success")),
        reason=row.get("error_message"),
        session_id=row.get("session_id"),
        ip_address=row.get("ip_address"),
        user_agent=row.get("user_agent"),
        denial_kind=metadata.get("denial_kind"),
    )


class SqlAuditLog:
    """Audit log stored in the ``security_audit_log`` table."""

    def __init__(self, engine):
        self.engine = engine

    def record(self, record: AuditRecord) -> str:
        audit_id = str(uuid.uuid4())
        metadata = {
            "action": record.action,
            "user_role": record.role,
            "resource_type": record.resource_type,
            "denial_kind": record.denial_kind,
            "timestamp": record.timestamp.isoformat(),
        }
        params = {
            "id": audit_id,
            "event_type": AUDIT_EVENT_TYPE,
            "user_id": record.principal_id,
            "table_name": record.resource_type,
            "record_id": record.resource_id,
            "session_id": record.session_id,
            "ip_address": record.ip_address,
            "user_agent": record.user_agent,
            "success": record.authorized,
            "error_message": record.reason,
            "metadata": json.dumps(metadata),
            "created_at": record.timestamp,
        }
        with self.engine.begin() as conn:
            conn.execute(_INSERT_SQL, params)
        return audit_id

    def recent(self, limit: int = 100, principal_id: Optional[str] = None) -> List[AuditRecord]:
        params = {"event_type": AUDIT_EVENT_TYPE, "limit": int(limit)}
        principal_clause = ""
        if principal_id is not None:
            principal_clause = "AND user_id = :user_id"
            params["user_id"] = principal_id
        sql = text(_RECENT_SQL.format(principal_clause=principal_clause))
        with self.engine.connect() as conn:
            rows = conn.execute(sql, params).mappings().all()
        return [_row_to_record(row) for row in rows]
