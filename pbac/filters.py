"""
Query filter generation – declarative WHERE predicates for bulk reads.

Nothing here executes SQL. The artifact is spliced into a list query by the
data layer, so rows a principal may not see are never fetched.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from pbac.models import Principal, PrincipalStatus, enum_value
from pbac.permissions import holds_globally, has_permission, is_elevated, parse_permission

ALLOW_ALL = "1=1"
DENY_ALL = "1=0"


@dataclass(frozen=True)
class FilterArtifact:
    predicate: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def unrestricted(self) -> bool:
        return self.predicate == ALLOW_ALL

    @property
    def deny_all(self) -> bool:
        return self.predicate == DENY_ALL

    def as_clause(self) -> TextClause:
        """Bound SQLAlchemy clause, e.g. ``select(...).where(artifact.as_clause())``."""
        clause = text(self.predicate)
        if self.parameters:
            clause = clause.bindparams(**self.parameters)
        return clause

    def to_dict(self) -> Dict[str, Any]:
        return {"predicate": self.predicate, "parameters": dict(self.parameters)}


_ALLOW = FilterArtifact(ALLOW_ALL)
_DENY = FilterArtifact(DENY_ALL)


def _owned(column: str, principal_id: str) -> FilterArtifact:
    return FilterArtifact(f"{column} = :principal_id", {"principal_id": principal_id})


# ── Public (anonymous) visibility ────────────────────────────────────

_PUBLIC_POST = "is_published = true AND category NOT IN ('private', 'draft')"

PUBLIC_FILTERS: Dict[str, FilterArtifact] = {
    "post": FilterArtifact(_PUBLIC_POST),
    "comment": FilterArtifact("post_id IN (SELECT id FROM posts WHERE is_published = true)"),
    "lecture": FilterArtifact("status = 'published'"),
    "profile": FilterArtifact("is_public = true"),
}


# ── Per-type ownership / visibility predicates ───────────────────────

def _post_filter(action: str, principal_id: str) -> FilterArtifact:
    if action == "read":
        return FilterArtifact(f"(({_PUBLIC_POST}) OR author_id = :principal_id)",
                              {"principal_id": principal_id})
    if action in ("update", "delete"):
        return _owned("author_id", principal_id)
    return _DENY


def _comment_filter(action: str, principal_id: str) -> FilterArtifact:
    if action == "read":
        return FilterArtifact(
            "post_id IN (SELECT id FROM posts WHERE is_published = true OR author_id = :principal_id)",
            {"principal_id": principal_id},
        )
    if action == "create":
        return PUBLIC_FILTERS["comment"]
    if action == "update":
        return _owned("author_id", principal_id)
    if action == "delete":
        return FilterArtifact(
            "(author_id = :principal_id OR post_id IN "
            "(SELECT id FROM posts WHERE author_id = :principal_id))",
            {"principal_id": principal_id},
        )
    return _DENY


def _appointment_filter(action: str, principal_id: str) -> FilterArtifact:
    if action == "delete":
        return _owned("user_id", principal_id)
    if action in ("read", "update", "cancel", "reschedule"):
        return FilterArtifact("(user_id = :principal_id OR instructor_id = :principal_id)",
                              {"principal_id": principal_id})
    return _DENY


def _lecture_filter(action: str, principal_id: str) -> FilterArtifact:
    if action == "read":
        return FilterArtifact("(status = 'published' OR created_by = :principal_id)",
                              {"principal_id": principal_id})
    if action in ("update", "delete"):
        return _owned("created_by", principal_id)
    return _DENY


def _profile_filter(action: str, principal_id: str) -> FilterArtifact:
    if action == "read":
        return FilterArtifact("(user_id = :principal_id OR is_public = true)",
                              {"principal_id": principal_id})
    if action in ("update", "delete"):
        return _owned("user_id", principal_id)
    return _DENY


FILTER_BUILDERS: Dict[str, Callable[[str, str], FilterArtifact]] = {
    "post": _post_filter,
    "comment": _comment_filter,
    "appointment": _appointment_filter,
    "lecture": _lecture_filter,
    "profile": _profile_filter,
}


def build_filter(principal: Optional[Principal], resource_type: str, permission: str) -> FilterArtifact:
    """Translate (principal, resource type, permission) into a filter artifact."""
    if (
        not isinstance(principal, Principal)
        or not principal.id
        or enum_value(principal.status) != PrincipalStatus.ACTIVE.value
    ):
        return PUBLIC_FILTERS.get(resource_type, _DENY)

    try:
        parsed = parse_permission(permission)
    except ValueError:
        return _DENY
    if parsed.resource != resource_type:
        return _DENY

    role = enum_value(principal.role)
    if not has_permission(role, permission):
        return _DENY

    required = f"{parsed.resource}:{parsed.action}"
    if holds_globally(role, required) and is_elevated(role, required):
        return _ALLOW

    builder = FILTER_BUILDERS.get(resource_type)
    if builder is None:
        return _DENY
    return builder(parsed.action, str(principal.id))
