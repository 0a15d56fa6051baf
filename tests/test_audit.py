"""
Unit tests for audit sinks – in-memory and SQL-backed.
"""

import json
import threading
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from pbac.audit import MemoryAuditLog, SqlAuditLog
from pbac.config import AUDIT_EVENT_TYPE
from pbac.models import AuditRecord

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeResult:
    """Mimic SQLAlchemy Result with .mappings().all()."""
    def __init__(self, rows):
        self._rows = rows

    def mappings(self):
        return self

    def all(self):
        return list(self._rows)


class FakeConn:
    def __init__(self, rows=()):
        self._rows = rows
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((str(sql), params))
        return FakeResult(self._rows)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    """Mimic engine.connect() / engine.begin() context managers."""
    def __init__(self, rows=()):
        self.conn = FakeConn(rows)
        self.begin_calls = 0

    def connect(self):
        return self.conn

    def begin(self):
        self.begin_calls += 1
        return self.conn


def record(minutes_ago=0, principal_id="u1", authorized=False, **overrides):
    fields = dict(
        timestamp=NOW - timedelta(minutes=minutes_ago),
        principal_id=principal_id,
        role="user",
        resource_type="appointment",
        resource_id="a1",
        action="update",
        authorized=authorized,
        reason=None if authorized else "Principal has no relationship to this appointment",
        session_id="sess-1",
        ip_address="10.0.0.1",
        user_agent="pytest",
        denial_kind=None if authorized else "ownership_error",
    )
    fields.update(overrides)
    return AuditRecord(**fields)


# ── Tests: MemoryAuditLog ────────────────────────────────────────────

def test_memory_log_returns_unique_ids():
    log = MemoryAuditLog()
    ids = {log.record(record()) for _ in range(3)}
    assert len(ids) == 3
    assert len(log) == 3


def test_memory_log_recent_newest_first():
    log = MemoryAuditLog()
    log.record(record(minutes_ago=5, resource_id="old"))
    log.record(record(minutes_ago=0, resource_id="new"))
    log.record(record(minutes_ago=2, resource_id="mid"))
    assert [r.resource_id for r in log.recent()] == ["new", "mid", "old"]
    assert [r.resource_id for r in log.recent(limit=1)] == ["new"]


def test_memory_log_recent_for_principal():
    log = MemoryAuditLog()
    log.record(record(principal_id="u1"))
    log.record(record(principal_id="u2"))
    assert [r.principal_id for r in log.recent(principal_id="u2")] == ["u2"]


def test_memory_log_concurrent_writes():
    log = MemoryAuditLog()
    threads = [threading.Thread(target=lambda: [log.record(record()) for _ in range(50)]) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(log) == 200


def test_audit_records_are_immutable():
    with pytest.raises(FrozenInstanceError):
        record().authorized = True


# ── Tests: SqlAuditLog ───────────────────────────────────────────────

def test_sql_log_inserts_in_transaction():
    engine = FakeEngine()
    audit_id = SqlAuditLog(engine).record(record())

    assert audit_id
    assert engine.begin_calls == 1
    sql, params = engine.conn.executed[0]
    assert "INSERT INTO security_audit_log" in sql
    assert params["id"] == audit_id
    assert params["event_type"] == AUDIT_EVENT_TYPE
    assert params["user_id"] == "u1"
    assert params["table_name"] == "appointment"
    assert params["success"] is False
    assert params["error_message"] == "Principal has no relationship to this appointment"

    metadata = json.loads(params["metadata"])
    assert metadata["action"] == "update"
    assert metadata["user_role"] == "user"
    assert metadata["denial_kind"] == "ownership_error"


def test_sql_log_recent_maps_rows():
    rows = [{
        "id": "x1",
        "user_id": "u1",
        "table_name": "appointment",
        "record_id": "a1",
        "session_id": "sess-1",
        "ip_address": "10.0.0.1",
        "user_agent": "pytest",
        "success": 0,
        "error_message": "Cannot modify completed appointments",
        "metadata": json.dumps({"action": "update", "user_role": "user", "denial_kind": "business_rule_violation"}),
        "created_at": NOW,
    }]
    engine = FakeEngine(rows)
    (r,) = SqlAuditLog(engine).recent(limit=10)

    assert r.timestamp == NOW
    assert r.principal_id == "u1"
    assert r.role == "user"
    assert r.action == "update"
    assert r.authorized is False
    assert r.denial_kind == "business_rule_violation"

    sql, params = engine.conn.executed[0]
    assert "ORDER BY created_at DESC" in sql
    assert params == {"event_type": AUDIT_EVENT_TYPE, "limit": 10}


def test_sql_log_recent_for_principal():
    engine = FakeEngine([])
    assert SqlAuditLog(engine).recent(limit=5, principal_id="u9") == []
    sql, params = engine.conn.executed[0]
    assert "AND user_id = :user_id" in sql
    assert params["user_id"] == "u9"


def test_sql_log_parses_text_timestamps():
    rows = [{"created_at": "2026-03-02T12:00:00+00:00", "success": 1, "metadata": None}]
    (r,) = SqlAuditLog(FakeEngine(rows)).recent()
    assert r.timestamp == NOW
    assert r.authorized
    assert r.action == "unknown"
