"""
Unit tests for query filter generation.
"""

from datetime import datetime, timezone

from sqlalchemy.sql.elements import TextClause

from pbac.filters import ALLOW_ALL, DENY_ALL, PUBLIC_FILTERS, FilterArtifact, build_filter
from pbac.models import Principal

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def who(pid="u1", role="user", status="active"):
    return Principal(id=pid, role=role, status=status, decision_timestamp=NOW)


# ── Tests: anonymous / inactive ──────────────────────────────────────

def test_no_principal_gets_public_filter():
    artifact = build_filter(None, "post", "post:read")
    assert artifact.predicate == "is_published = true AND category NOT IN ('private', 'draft')"
    assert artifact.parameters == {}
    assert build_filter(None, "lecture", "lecture:read").predicate == "status = 'published'"
    assert build_filter(None, "profile", "profile:read").predicate == "is_public = true"


def test_no_principal_without_public_view_denies():
    assert build_filter(None, "appointment", "appointment:read").deny_all


def test_inactive_principal_treated_as_public():
    artifact = build_filter(who(status="suspended"), "post", "post:read")
    assert artifact == PUBLIC_FILTERS["post"]


# ── Tests: elevated ──────────────────────────────────────────────────

def test_admin_unrestricted():
    artifact = build_filter(who("adm", "admin"), "appointment", "appointment:read")
    assert artifact.predicate == ALLOW_ALL
    assert artifact.unrestricted


def test_super_admin_unrestricted():
    assert build_filter(who("root", "super_admin"), "comment", "comment:delete").unrestricted


def test_support_override_only_for_listed_permissions():
    assert build_filter(who("s1", "support"), "appointment", "appointment:read").unrestricted
    post = build_filter(who("s1", "support"), "post", "post:read")
    assert post.predicate == "((is_published = true AND category NOT IN ('private', 'draft')) OR author_id = :principal_id)"


# ── Tests: ownership predicates ──────────────────────────────────────

def test_user_post_read_predicate():
    artifact = build_filter(who(), "post", "post:read")
    assert artifact.predicate == "((is_published = true AND category NOT IN ('private', 'draft')) OR author_id = :principal_id)"
    assert artifact.parameters == {"principal_id": "u1"}


def test_user_appointment_predicates():
    read = build_filter(who(), "appointment", "appointment:read")
    assert read.predicate == "(user_id = :principal_id OR instructor_id = :principal_id)"
    cancel = build_filter(who("i1", "instructor"), "appointment", "appointment:cancel:own")
    assert cancel.parameters == {"principal_id": "i1"}


def test_comment_read_scoped_through_visible_posts():
    artifact = build_filter(who(), "comment", "comment:read")
    assert "SELECT id FROM posts" in artifact.predicate
    assert artifact.parameters == {"principal_id": "u1"}


def test_profile_and_lecture_predicates():
    assert build_filter(who(), "profile", "profile:read").predicate == "(user_id = :principal_id OR is_public = true)"
    lecture = build_filter(who("i1", "instructor"), "lecture", "lecture:update")
    assert lecture.predicate == "created_by = :principal_id"


# ── Tests: denials ───────────────────────────────────────────────────

def test_permission_for_other_type_denies():
    assert build_filter(who("adm", "admin"), "post", "appointment:read").predicate == DENY_ALL


def test_permission_not_held_denies():
    assert build_filter(who("r1", "readonly"), "post", "post:update").deny_all
    assert build_filter(who(), "appointment", "appointment:delete").deny_all


def test_malformed_permission_denies():
    assert build_filter(who(), "post", "post").deny_all


# ── Tests: artifact ──────────────────────────────────────────────────

def test_as_clause_binds_parameters():
    clause = build_filter(who(), "post", "post:update").as_clause()
    assert isinstance(clause, TextClause)
    assert "author_id = :principal_id" in str(clause)
    assert clause.compile().params == {"principal_id": "u1"}


def test_as_clause_without_parameters():
    clause = FilterArtifact(ALLOW_ALL).as_clause()
    assert str(clause) == "1=1"


def test_to_dict():
    assert build_filter(who(), "post", "post:delete").to_dict() == {
        "predicate": "author_id = :principal_id",
        "parameters": {"principal_id": "u1"},
    }
