"""
Security reporting – summaries and failure patterns over audited decisions.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Sequence

import pandas as pd

from pbac.config import RECENT_ACTIVITY_LIMIT, SUSPICIOUS_FAILURE_THRESHOLD
from pbac.models import AuditRecord, DenialKind, SecurityReport

SUSPICIOUS_PATTERN = "Multiple authorization failures"

_COLUMNS = [f for f in AuditRecord.__dataclass_fields__]


def _iso(value: Any) -> str:
    if value is None or pd.isna(value):
        return "unknown"
    return pd.Timestamp(value).isoformat()


def records_frame(records: Sequence[AuditRecord]) -> pd.DataFrame:
    """Audit records as a DataFrame, newest first."""
    df = pd.DataFrame([asdict(r) for r in records], columns=_COLUMNS)
    if df.empty:
        return df
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["authorized"] = df["authorized"].astype(bool)
    return df.sort_values("timestamp", ascending=False, kind="stable").reset_index(drop=True)


# ── Report ───────────────────────────────────────────────────────────

def build_security_report(
    records: Sequence[AuditRecord],
    recent_limit: int = RECENT_ACTIVITY_LIMIT,
    failure_threshold: int = SUSPICIOUS_FAILURE_THRESHOLD,
) -> SecurityReport:
    """
    Summarise a window of decisions: totals, the most recent activity, and
    principals whose failure count reaches ``failure_threshold``.
    """
    df = records_frame(records)
    if df.empty:
        return SecurityReport.empty()

    is_error = df["denial_kind"] == DenialKind.SYSTEM.value
    authorized = df["authorized"]

    summary = {
        "total_decisions": int(len(df)),
        "authorized_decisions": int(authorized.sum()),
        "denied_decisions": int((~authorized & ~is_error).sum()),
        "error_decisions": int(is_error.sum()),
    }

    recent_activity: List[Dict[str, Any]] = []
    for row in df.head(recent_limit).itertuples(index=False):
        recent_activity.append({
            "timestamp": _iso(row.timestamp),
            "principal_id": row.principal_id or "unknown",
            "action": row.action or "unknown",
            "resource_type": row.resource_type,
            "resource": row.resource_id or "unknown",
            "authorized": bool(row.authorized),
            "reason": row.reason,
        })

    failures = df[~authorized & df["principal_id"].notna()]
    suspicious_activity: List[Dict[str, Any]] = []
    if not failures.empty:
        grouped = (
            failures.groupby("principal_id")
            .agg(failures=("authorized", "size"), last_occurrence=("timestamp", "max"))
            .reset_index()
        )
        flagged = grouped[grouped["failures"] >= failure_threshold]
        flagged = flagged.sort_values(["failures", "principal_id"], ascending=[False, True])
        for row in flagged.itertuples(index=False):
            suspicious_activity.append({
                "principal_id": row.principal_id,
                "pattern": SUSPICIOUS_PATTERN,
                "count": int(row.failures),
                "last_occurrence": _iso(row.last_occurrence),
            })

    return SecurityReport(
        summary=summary,
        recent_activity=recent_activity,
        suspicious_activity=suspicious_activity,
    )


# ── Formatting ───────────────────────────────────────────────────────

def format_report(report: SecurityReport) -> str:
    """Plain-text rendering of a report for the operator console."""
    parts = ["Summary:\n" + pd.DataFrame([report.summary]).to_string(index=False)]

    if report.recent_activity:
        parts.append("Recent activity:\n" + pd.DataFrame(report.recent_activity).to_string(index=False))
    else:
        parts.append("Recent activity:\n(no decisions recorded)")

    if report.suspicious_activity:
        parts.append(
            "Suspicious activity:\n" + pd.DataFrame(report.suspicious_activity).to_string(index=False)
        )
    else:
        parts.append("Suspicious activity:\n(none detected)")

    return "\n\n".join(parts)
