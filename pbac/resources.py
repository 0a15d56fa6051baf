"""
Access-controlled resource types.

Each type is a read-only snapshot exposing the same small capability set
(owner, secondary owner, status, dependent states, ...) so the decision engine
never probes ad hoc fields. Types also carry the SQL used to load a fresh
snapshot by id.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar, Dict, FrozenSet, Mapping, Optional, Type

ACTIVE = "active"


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _bool_or_none(value: Any) -> Optional[bool]:
    return bool(value) if value is not None else None


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def combine_date_time(day: Any, start: Any) -> Optional[datetime]:
    """Build the event start from separate date/time columns (objects or ISO text)."""
    if day is None:
        return None
    if isinstance(day, datetime):
        return _to_utc(day)
    if isinstance(day, date):
        start_t = start if isinstance(start, time) else time.fromisoformat(str(start or "00:00:00"))
        return _to_utc(datetime.combine(day, start_t))
    return _to_utc(datetime.fromisoformat(f"{day}T{start or '00:00:00'}"))


class Resource:
    """Capability set shared by every resource type."""

    resource_type: ClassVar[str] = ""
    label: ClassVar[str] = "resource"
    owner_label: ClassVar[str] = "owner"
    secondary_label: ClassVar[Optional[str]] = None
    inactive_statuses: ClassVar[FrozenSet[str]] = frozenset({"deleted"})
    terminal_statuses: ClassVar[FrozenSet[str]] = frozenset()
    owner_only_actions: ClassVar[FrozenSet[str]] = frozenset()
    fetch_sql: ClassVar[str] = ""

    id: str

    def owner_id(self) -> Optional[str]:
        raise NotImplementedError

    def secondary_owner_id(self) -> Optional[str]:
        return None

    def status(self) -> Optional[str]:
        raise NotImplementedError

    def owner_status(self) -> Optional[str]:
        return ACTIVE

    def secondary_owner_status(self) -> Optional[str]:
        return ACTIVE

    def dependent_states(self) -> Dict[str, bool]:
        """Dependent configuration entities keyed by display name → active?"""
        return {}

    def effective_at(self) -> Optional[datetime]:
        return None

    def is_public(self) -> bool:
        return False

    def notice_hours(self) -> Optional[float]:
        return None

    @property
    def plural(self) -> str:
        return f"{self.label}s"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Resource":
        raise NotImplementedError


@dataclass(frozen=True)
class Appointment(Resource):
    resource_type: ClassVar[str] = "appointment"
    label: ClassVar[str] = "appointment"
    owner_label: ClassVar[str] = "user"
    secondary_label: ClassVar[Optional[str]] = "instructor"
    terminal_statuses: ClassVar[FrozenSet[str]] = frozenset({"completed", "cancelled", "no_show"})
    owner_only_actions: ClassVar[FrozenSet[str]] = frozenset({"delete"})
    fetch_sql: ClassVar[str] = """
        SELECT a.id, a.user_id, a.instructor_id, a.status,
               a.appointment_date, a.start_time,
               u.status AS user_status, i.status AS instructor_status,
               t.is_active AS type_active, t.cancellation_hours
        FROM appointments a
        LEFT JOIN identities u ON u.id = a.user_id
        LEFT JOIN identities i ON i.id = a.instructor_id
        LEFT JOIN appointment_types t ON t.id = a.appointment_type_id
        WHERE a.id = :id
    """

    id: str
    user_id: Optional[str]
    instructor_id: Optional[str]
    appointment_status: str
    user_status: Optional[str] = ACTIVE
    instructor_status: Optional[str] = ACTIVE
    starts_at: Optional[datetime] = None
    type_active: Optional[bool] = None
    cancellation_hours: Optional[float] = None

    def owner_id(self):
        return self.user_id

    def secondary_owner_id(self):
        return self.instructor_id

    def status(self):
        return self.appointment_status

    def owner_status(self):
        return self.user_status

    def secondary_owner_status(self):
        return self.instructor_status

    def dependent_states(self):
        if self.type_active is None:
            return {}
        return {"Appointment type": self.type_active}

    def effective_at(self):
        return _to_utc(self.starts_at)

    def notice_hours(self):
        return self.cancellation_hours

    @classmethod
    def from_row(cls, row):
        hours = row.get("cancellation_hours")
        return cls(
            id=str(row["id"]),
            user_id=_str_or_none(row.get("user_id")),
            instructor_id=_str_or_none(row.get("instructor_id")),
            appointment_status=str(row["status"]).strip().lower(),
            user_status=row.get("user_status"),
            instructor_status=row.get("instructor_status"),
            starts_at=combine_date_time(row.get("appointment_date"), row.get("start_time")),
            type_active=_bool_or_none(row.get("type_active")),
            cancellation_hours=float(hours) if hours is not None else None,
        )


@dataclass(frozen=True)
class Post(Resource):
    resource_type: ClassVar[str] = "post"
    label: ClassVar[str] = "post"
    owner_label: ClassVar[str] = "author"
    fetch_sql: ClassVar[str] = """
        SELECT p.id, p.author_id, p.status, p.is_published, p.category,
               u.status AS author_status
        FROM posts p
        LEFT JOIN identities u ON u.id = p.author_id
        WHERE p.id = :id
    """

    id: str
    author_id: Optional[str]
    post_status: str = "draft"
    is_published: bool = False
    category: Optional[str] = None
    author_status: Optional[str] = ACTIVE

    def owner_id(self):
        return self.author_id

    def status(self):
        return self.post_status

    def owner_status(self):
        return self.author_status

    def is_public(self):
        return self.is_published and self.category not in ("private", "draft")

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row["id"]),
            author_id=_str_or_none(row.get("author_id")),
            post_status=str(row.get("status") or "draft").lower(),
            is_published=bool(row.get("is_published")),
            category=row.get("category"),
            author_status=row.get("author_status"),
        )


@dataclass(frozen=True)
class Comment(Resource):
    resource_type: ClassVar[str] = "comment"
    label: ClassVar[str] = "comment"
    owner_label: ClassVar[str] = "author"
    secondary_label: ClassVar[Optional[str]] = "post author"
    owner_only_actions: ClassVar[FrozenSet[str]] = frozenset({"update"})
    fetch_sql: ClassVar[str] = """
        SELECT c.id, c.author_id, c.post_id, c.status,
               p.author_id AS post_author_id, p.is_published AS post_published,
               u.status AS author_status, pu.status AS post_author_status
        FROM comments c
        JOIN posts p ON p.id = c.post_id
        LEFT JOIN identities u ON u.id = c.author_id
        LEFT JOIN identities pu ON pu.id = p.author_id
        WHERE c.id = :id
    """

    id: str
    author_id: Optional[str]
    post_id: Optional[str] = None
    post_author_id: Optional[str] = None
    comment_status: str = "visible"
    post_published: bool = False
    author_status: Optional[str] = ACTIVE
    post_author_status: Optional[str] = ACTIVE

    def owner_id(self):
        return self.author_id

    def secondary_owner_id(self):
        return self.post_author_id

    def status(self):
        return self.comment_status

    def owner_status(self):
        return self.author_status

    def secondary_owner_status(self):
        return self.post_author_status

    def is_public(self):
        return self.post_published

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row["id"]),
            author_id=_str_or_none(row.get("author_id")),
            post_id=_str_or_none(row.get("post_id")),
            post_author_id=_str_or_none(row.get("post_author_id")),
            comment_status=str(row.get("status") or "visible").lower(),
            post_published=bool(row.get("post_published")),
            author_status=row.get("author_status"),
            post_author_status=row.get("post_author_status"),
        )


@dataclass(frozen=True)
class Lecture(Resource):
    """A training-program session."""
    resource_type: ClassVar[str] = "lecture"
    label: ClassVar[str] = "lecture"
    owner_label: ClassVar[str] = "creator"
    terminal_statuses: ClassVar[FrozenSet[str]] = frozenset({"archived"})
    fetch_sql: ClassVar[str] = """
        SELECT l.id, l.created_by, l.status, l.start_date, l.start_time,
               u.status AS creator_status
        FROM lectures l
        LEFT JOIN identities u ON u.id = l.created_by
        WHERE l.id = :id
    """

    id: str
    created_by: Optional[str]
    lecture_status: str = "draft"
    creator_status: Optional[str] = ACTIVE
    starts_at: Optional[datetime] = None

    def owner_id(self):
        return self.created_by

    def status(self):
        return self.lecture_status

    def owner_status(self):
        return self.creator_status

    def effective_at(self):
        return _to_utc(self.starts_at)

    def is_public(self):
        return self.lecture_status == "published"

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row["id"]),
            created_by=_str_or_none(row.get("created_by")),
            lecture_status=str(row.get("status") or "draft").lower(),
            creator_status=row.get("creator_status"),
            starts_at=combine_date_time(row.get("start_date"), row.get("start_time")),
        )


@dataclass(frozen=True)
class Profile(Resource):
    resource_type: ClassVar[str] = "profile"
    label: ClassVar[str] = "profile"
    owner_label: ClassVar[str] = "user"
    fetch_sql: ClassVar[str] = """
        SELECT p.id, p.user_id, p.is_public, u.status AS user_status
        FROM user_profiles p
        LEFT JOIN identities u ON u.id = p.user_id
        WHERE p.id = :id
    """

    id: str
    user_id: Optional[str]
    public: bool = False
    user_status: Optional[str] = ACTIVE

    def owner_id(self):
        return self.user_id

    def status(self):
        # A profile lives and dies with its account.
        return self.user_status

    def owner_status(self):
        return self.user_status

    def is_public(self):
        return self.public

    @classmethod
    def from_row(cls, row):
        return cls(
            id=str(row["id"]),
            user_id=_str_or_none(row.get("user_id")),
            public=bool(row.get("is_public")),
            user_status=row.get("user_status"),
        )


RESOURCE_TYPES: Mapping[str, Type[Resource]] = {
    cls.resource_type: cls
    for cls in (Appointment, Post, Comment, Lecture, Profile)
}


def resource_class(resource_type: str) -> Optional[Type[Resource]]:
    return RESOURCE_TYPES.get(resource_type)
