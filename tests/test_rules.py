"""
Unit tests for the policy gates in isolation.
"""

from datetime import datetime, timedelta, timezone

from pbac.config import LATE_CANCELLATION_CONDITION, NOT_FOUND_OR_DENIED, PolicySettings
from pbac.models import DenialKind, Principal
from pbac.resources import Appointment, Comment, Lecture, Post, Profile
from pbac.rules import (
    RuleContext,
    business_rule_check,
    entity_state_check,
    ownership_check,
    role_permission_check,
    time_window_check,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def ctx(role="user", pid="u1", action="read", settings=None, **business_context):
    principal = Principal(id=pid, role=role, status="active", decision_timestamp=NOW)
    return RuleContext(
        principal=principal,
        action=action,
        now=NOW,
        settings=settings or PolicySettings(),
        business_context=business_context,
    )


def appointment(**overrides):
    fields = dict(id="a1", user_id="u1", instructor_id="i1", appointment_status="confirmed")
    fields.update(overrides)
    return Appointment(**fields)


# ── Tests: entity state ──────────────────────────────────────────────

def test_entity_state_active_appointment_passes():
    assert entity_state_check(appointment(type_active=True)).passed


def test_entity_state_deleted_appointment():
    outcome = entity_state_check(appointment(appointment_status="deleted"))
    assert not outcome.passed
    assert outcome.kind == DenialKind.ENTITY_STATE
    assert outcome.reason == "Appointment is not active"


def test_entity_state_inactive_participants():
    assert entity_state_check(appointment(user_status="suspended")).reason == "Appointment user is not active"
    assert (
        entity_state_check(appointment(instructor_status="deleted")).reason
        == "Appointment instructor is not active"
    )


def test_entity_state_inactive_appointment_type():
    assert entity_state_check(appointment(type_active=False)).reason == "Appointment type is not active"


def test_entity_state_post_author():
    post = Post(id="p1", author_id="u1", author_status="suspended")
    assert entity_state_check(post).reason == "Post author is not active"


# ── Tests: role permission ───────────────────────────────────────────

def test_role_permission_merges_public_reason():
    outcome = role_permission_check("readonly", "appointment", "update")
    assert not outcome.passed
    assert outcome.kind == DenialKind.PERMISSION
    assert outcome.reason == NOT_FOUND_OR_DENIED
    assert outcome.detail == "Role readonly does not have permission appointment:update"


def test_role_permission_returns_grant():
    assert role_permission_check("user", "appointment", "cancel").permissions == ("appointment:cancel:own",)
    assert role_permission_check("super_admin", "profile", "delete").permissions == ("*",)


# ── Tests: ownership ─────────────────────────────────────────────────

def test_ownership_owner_and_secondary_pass():
    assert ownership_check(appointment(), ctx(pid="u1")).passed
    assert ownership_check(appointment(), ctx(role="instructor", pid="i1")).passed


def test_ownership_stranger_denied_with_merged_reason():
    outcome = ownership_check(appointment(), ctx(pid="u2"))
    assert not outcome.passed
    assert outcome.kind == DenialKind.OWNERSHIP
    assert outcome.reason == NOT_FOUND_OR_DENIED


def test_ownership_elevated_bypass():
    assert ownership_check(appointment(), ctx(role="admin", pid="adm")).passed
    assert ownership_check(appointment(), ctx(role="support", pid="s1", action="update")).passed


def test_ownership_public_read():
    post = Post(id="p1", author_id="u9", is_published=True, category="news")
    assert ownership_check(post, ctx(pid="u1")).passed
    assert not ownership_check(post, ctx(pid="u1", action="update")).passed

    private = Post(id="p2", author_id="u9", is_published=True, category="private")
    assert not ownership_check(private, ctx(pid="u1")).passed

    assert ownership_check(Lecture(id="l1", created_by="i1", lecture_status="published"), ctx()).passed
    assert ownership_check(Profile(id="pr1", user_id="u9", public=True), ctx()).passed


def test_ownership_owner_only_action():
    comment = Comment(id="c1", author_id="u2", post_id="p1", post_author_id="u1")
    outcome = ownership_check(comment, ctx(pid="u1", action="update"))
    assert not outcome.passed
    assert outcome.reason == "Only the comment author may update this comment"
    assert ownership_check(comment, ctx(pid="u1", action="delete")).passed


# ── Tests: business rules ────────────────────────────────────────────

def test_terminal_status_denies_modification():
    completed = appointment(appointment_status="completed")
    assert business_rule_check(completed, ctx(action="update")).reason == "Cannot modify completed appointments"
    assert business_rule_check(completed, ctx(action="cancel")).reason == "Cannot cancel completed appointments"
    assert (
        business_rule_check(completed, ctx(action="reschedule")).reason
        == "Cannot reschedule completed appointments"
    )
    assert business_rule_check(completed, ctx(action="read")).passed


def test_terminal_status_cancelled():
    cancelled = appointment(appointment_status="cancelled")
    assert business_rule_check(cancelled, ctx(action="cancel")).reason == "Appointment is already cancelled"
    assert (
        business_rule_check(cancelled, ctx(action="update")).reason
        == "Cannot update appointments with status: cancelled"
    )


def test_terminal_status_applies_to_admin():
    completed = appointment(appointment_status="completed")
    outcome = business_rule_check(completed, ctx(role="super_admin", action="delete"))
    assert not outcome.passed
    assert outcome.kind == DenialKind.BUSINESS_RULE


def test_terminal_status_override_when_configured():
    settings = PolicySettings(terminal_override_roles=frozenset({"super_admin"}))
    completed = appointment(appointment_status="completed")
    outcome = business_rule_check(completed, ctx(role="super_admin", action="update", settings=settings))
    assert outcome.passed
    assert outcome.conditions == ("Terminal status override applied (completed)",)


def test_archived_lecture_is_terminal():
    lecture = Lecture(id="l1", created_by="i1", lecture_status="archived")
    assert business_rule_check(lecture, ctx(role="instructor", pid="i1", action="delete")).reason == (
        "Cannot modify archived lectures"
    )


def test_notice_window_user_denied():
    outcome = business_rule_check(
        appointment(), ctx(action="cancel", hours_until_event=10, policy_window_hours=24)
    )
    assert not outcome.passed
    assert outcome.reason == "Cancellation requires at least 24 hours notice"


def test_notice_window_admin_override():
    outcome = business_rule_check(
        appointment(), ctx(role="admin", action="cancel", hours_until_event=10, policy_window_hours=24)
    )
    assert outcome.passed
    assert outcome.conditions == (LATE_CANCELLATION_CONDITION,)


def test_notice_window_from_appointment_type():
    starts = NOW + timedelta(hours=5)
    outcome = business_rule_check(
        appointment(starts_at=starts, cancellation_hours=12), ctx(action="cancel")
    )
    assert outcome.reason == "Cancellation requires at least 12 hours notice"


def test_notice_window_configurable_per_action():
    settings = PolicySettings(
        notice_window_actions=frozenset({"cancel", "reschedule"}),
        late_override_roles={"reschedule": frozenset({"admin"})},
    )
    outcome = business_rule_check(
        appointment(),
        ctx(role="admin", action="reschedule", settings=settings, hours_until_event=2, policy_window_hours=24),
    )
    assert outcome.conditions == ("Late reschedule — policy override applied",)

    denied = business_rule_check(
        appointment(),
        ctx(role="admin", action="cancel", settings=settings, hours_until_event=2, policy_window_hours=24),
    )
    assert denied.reason == "Cancellation requires at least 24 hours notice"


# ── Tests: time window ───────────────────────────────────────────────

def test_time_window_past_event():
    past = appointment(starts_at=NOW - timedelta(hours=2))
    outcome = time_window_check(past, ctx(action="update"))
    assert outcome.kind == DenialKind.TIME_WINDOW
    assert outcome.reason == "Cannot modify past appointments"

    elevated = time_window_check(past, ctx(role="admin", action="update"))
    assert elevated.passed
    assert elevated.conditions == ("Past appointment modification — elevated override applied",)


def test_time_window_lead_time():
    soon = appointment(starts_at=NOW + timedelta(minutes=30))
    outcome = time_window_check(soon, ctx(action="reschedule"))
    assert outcome.reason == "Cannot modify appointments less than 1 hour before start time"
    assert time_window_check(soon, ctx(role="instructor", pid="i1", action="reschedule")).passed


def test_time_window_skipped_without_time():
    assert time_window_check(appointment(), ctx(action="update")).passed
    assert time_window_check(appointment(starts_at=NOW - timedelta(days=1)), ctx(action="read")).passed


# ── Tests: snapshot timing ───────────────────────────────────────────

def test_notice_window_from_snapshot_without_context():
    soon = appointment(starts_at=NOW + timedelta(hours=2), cancellation_hours=24)
    outcome = business_rule_check(soon, ctx(action="cancel"))
    assert outcome.kind == DenialKind.BUSINESS_RULE
    assert outcome.reason == "Cancellation requires at least 24 hours notice"

    later = appointment(starts_at=NOW + timedelta(hours=30), cancellation_hours=24)
    assert business_rule_check(later, ctx(action="cancel")).passed


def test_snapshot_timing_wins_over_business_context():
    soon = appointment(starts_at=NOW + timedelta(hours=2), cancellation_hours=24)
    for spoofed in ({"policy_window_hours": 0}, {"hours_until_event": 100}):
        outcome = business_rule_check(soon, ctx(action="cancel", **spoofed))
        assert outcome.reason == "Cancellation requires at least 24 hours notice"

    past = appointment(starts_at=NOW - timedelta(hours=2))
    outcome = time_window_check(past, ctx(action="update", hours_until_event=100))
    assert outcome.reason == "Cannot modify past appointments"


def test_business_context_fills_missing_snapshot_timing():
    no_window = appointment(starts_at=NOW + timedelta(hours=2))
    outcome = business_rule_check(no_window, ctx(action="cancel", policy_window_hours=6))
    assert outcome.reason == "Cancellation requires at least 6 hours notice"
