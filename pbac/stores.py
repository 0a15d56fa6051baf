"""
Collaborator contracts for principals and resources, with SQL and in-memory
implementations.

Snapshots are loaded fresh on every call; nothing here caches.
"""

from typing import Dict, Iterable, Optional, Protocol, Tuple

from sqlalchemy import text

from pbac.models import PrincipalRecord
from pbac.resources import RESOURCE_TYPES, Resource


class PrincipalStore(Protocol):
    def fetch(self, principal_id: str) -> Optional[PrincipalRecord]:
        ...


class ResourceStore(Protocol):
    def fetch(self, resource_type: str, resource_id: str) -> Optional[Resource]:
        ...


# ── SQL ──────────────────────────────────────────────────────────────

class SqlPrincipalStore:
    """Reads identity status and role from ``identities``."""

    _SQL = text("""
        SELECT id, role, status
        FROM identities
        WHERE id = :id
    """)

    def __init__(self, engine):
        self.engine = engine

    def fetch(self, principal_id: str) -> Optional[PrincipalRecord]:
        with self.engine.connect() as conn:
            row = conn.execute(self._SQL, {"id": principal_id}).mappings().first()
        if not row:
            return None
        return PrincipalRecord(
            id=str(row["id"]),
            role=str(row["role"]).strip().lower(),
            status=str(row["status"]).strip().lower(),
        )


class SqlResourceStore:
    """Loads resource snapshots with the per-type ``fetch_sql``."""

    def __init__(self, engine, resource_types=RESOURCE_TYPES):
        self.engine = engine
        self.resource_types = resource_types

    def fetch(self, resource_type: str, resource_id: str) -> Optional[Resource]:
        cls = self.resource_types.get(resource_type)
        if cls is None:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(text(cls.fetch_sql), {"id": resource_id}).mappings().first()
        if not row:
            return None
        return cls.from_row(row)


# ── In-memory ────────────────────────────────────────────────────────

class MemoryPrincipalStore:
    def __init__(self, records: Iterable[PrincipalRecord] = ()):
        self._records: Dict[str, PrincipalRecord] = {r.id: r for r in records}

    def put(self, record: PrincipalRecord) -> None:
        self._records[record.id] = record

    def fetch(self, principal_id: str) -> Optional[PrincipalRecord]:
        return self._records.get(principal_id)


class MemoryResourceStore:
    def __init__(self, resources: Iterable[Resource] = ()):
        self._resources: Dict[Tuple[str, str], Resource] = {}
        for resource in resources:
            self.put(resource)

    def put(self, resource: Resource) -> None:
        self._resources[(resource.resource_type, resource.id)] = resource

    def fetch(self, resource_type: str, resource_id: str) -> Optional[Resource]:
        return self._resources.get((resource_type, resource_id))
