"""
Centralised configuration constants, policy settings and environment helpers.
"""

import os
import sys
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


# ── Principal context ────────────────────────────────────────────────
CONTEXT_MAX_AGE_SECONDS = _env_int("PBAC_CONTEXT_MAX_AGE_SECONDS", 300)
CONTEXT_MAX_SKEW_SECONDS = 30

# ── Decision engine ──────────────────────────────────────────────────
BATCH_SIZE = _env_int("PBAC_BATCH_SIZE", 10)
MIN_LEAD_HOURS = _env_float("PBAC_MIN_LEAD_HOURS", 1.0)

NOT_FOUND_OR_DENIED = "Resource not found or access denied"
SYSTEM_ERROR_REASON = "Authorization system error"
LATE_CANCELLATION_CONDITION = "Late cancellation — policy override applied"

# ── Audit / reporting ────────────────────────────────────────────────
AUDIT_EVENT_TYPE = "authorization_decision"
AUDIT_FAILED_ID = "audit-log-failed"
AUDIT_ERROR_ID = "audit-log-error"
REPORT_WINDOW = _env_int("PBAC_REPORT_WINDOW", 100)
RECENT_ACTIVITY_LIMIT = 20
SUSPICIOUS_FAILURE_THRESHOLD = _env_int("PBAC_SUSPICIOUS_FAILURES", 10)

# ── Logging ──────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("PBAC_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("PBAC_LOG_FORMAT", "json")  # json, console

# ── API server ───────────────────────────────────────────────────────
# Shared secret of the identity provider that signs bearer tokens.
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
MAX_BATCH_IDS = 500


@dataclass(frozen=True)
class PolicySettings:
    """Tunable knobs of the rule set, injectable per engine."""
    context_max_age_seconds: int = CONTEXT_MAX_AGE_SECONDS
    context_max_skew_seconds: int = CONTEXT_MAX_SKEW_SECONDS
    batch_size: int = BATCH_SIZE
    min_lead_hours: float = MIN_LEAD_HOURS
    time_restricted_actions: FrozenSet[str] = frozenset({"update", "reschedule"})
    lead_time_restricted_roles: FrozenSet[str] = frozenset({"user", "readonly"})
    # Actions subject to the notice window, and who may override it per action.
    notice_window_actions: FrozenSet[str] = frozenset({"cancel"})
    late_override_roles: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: {"cancel": frozenset({"admin", "super_admin"})}
    )
    # Empty means terminal statuses are immutable for every role.
    terminal_override_roles: FrozenSet[str] = frozenset()
    report_window: int = REPORT_WINDOW
    recent_activity_limit: int = RECENT_ACTIVITY_LIMIT
    suspicious_failure_threshold: int = SUSPICIOUS_FAILURE_THRESHOLD

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1.")


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
