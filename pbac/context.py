"""
Principal context validation – shape, status and freshness checks.
"""

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from pbac.config import CONTEXT_MAX_AGE_SECONDS, CONTEXT_MAX_SKEW_SECONDS
from pbac.models import Principal, PrincipalRecord, PrincipalStatus, Role, enum_value

_ROLES = {r.value for r in Role}


class ContextCheck(NamedTuple):
    valid: bool
    reason: Optional[str] = None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_principal(
    principal,
    now: Optional[datetime] = None,
    max_age_seconds: int = CONTEXT_MAX_AGE_SECONDS,
    max_skew_seconds: int = CONTEXT_MAX_SKEW_SECONDS,
) -> ContextCheck:
    """Check a caller-supplied principal without re-authenticating it."""
    if not isinstance(principal, Principal):
        return ContextCheck(False, "Missing required context fields")
    if not principal.id or not principal.role or not principal.status:
        return ContextCheck(False, "Missing required context fields")
    if enum_value(principal.role) not in _ROLES:
        return ContextCheck(False, "Unknown role")
    if enum_value(principal.status) != PrincipalStatus.ACTIVE.value:
        return ContextCheck(False, "User account not active")

    stamp = principal.decision_timestamp
    if not isinstance(stamp, datetime):
        return ContextCheck(False, "Context timestamp too old")

    now = as_utc(now or datetime.now(timezone.utc))
    age = (now - as_utc(stamp)).total_seconds()
    if age > max_age_seconds:
        return ContextCheck(False, "Context timestamp too old")
    if age < -max_skew_seconds:
        return ContextCheck(False, "Context timestamp is in the future")

    return ContextCheck(True)


def check_against_record(principal: Principal, record: Optional[PrincipalRecord]) -> ContextCheck:
    """Compare the claimed principal with the store's current view of it."""
    if record is None:
        return ContextCheck(False, "User not found")
    if str(record.status).strip().lower() != PrincipalStatus.ACTIVE.value:
        return ContextCheck(False, "User account not active")
    if str(record.role).strip().lower() != enum_value(principal.role):
        return ContextCheck(False, "Role mismatch detected")
    return ContextCheck(True)
