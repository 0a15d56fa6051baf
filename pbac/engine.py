"""
Decision engine – runs a request through the policy gates and audits the outcome.

Gate order: context → resource fetch → entity state → role permission →
ownership → business rules → time window. The first denial ends the
evaluation. Every call to ``evaluate`` writes exactly one audit record, and no
exception escapes it: internal faults become an audited denial.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Sequence

import structlog

from pbac.audit import AuditLog
from pbac.config import (
    AUDIT_ERROR_ID,
    AUDIT_FAILED_ID,
    NOT_FOUND_OR_DENIED,
    SYSTEM_ERROR_REASON,
    PolicySettings,
)
from pbac.context import check_against_record, validate_principal
from pbac.filters import FilterArtifact, build_filter
from pbac.models import (
    AuditRecord,
    AuthorizationRequest,
    AuthorizationResult,
    BatchResult,
    DenialKind,
    PermissionSummary,
    Principal,
    PrincipalStatus,
    SecurityReport,
    enum_value,
)
from pbac.permissions import permissions_for
from pbac.reporting import build_security_report
from pbac.rules import (
    GateOutcome,
    RuleContext,
    business_rule_check,
    entity_state_check,
    ownership_check,
    role_permission_check,
    time_window_check,
)
from pbac.stores import PrincipalStore, ResourceStore

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DecisionEngine:
    """Stateless policy decision point over injected stores and an audit log."""

    def __init__(
        self,
        resources: ResourceStore,
        principals: PrincipalStore,
        audit: AuditLog,
        settings: Optional[PolicySettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.resources = resources
        self.principals = principals
        self.audit = audit
        self.settings = settings or PolicySettings()
        self.clock = clock or _utcnow

    # ── Single decision ──────────────────────────────────────────────

    def evaluate(
        self,
        resource_type: str,
        resource_id: str,
        action: str,
        principal: Optional[Principal],
        business_context: Optional[Mapping[str, Any]] = None,
    ) -> AuthorizationResult:
        """Decide one request. Never raises."""
        resource_type = enum_value(resource_type)
        action = enum_value(action)
        now = self.clock()

        try:
            outcome = self._run_gates(
                resource_type, resource_id, action, principal, business_context or {}, now
            )
        except Exception as exc:
            logger.exception(
                "authorization_error",
                resource_type=resource_type,
                resource_id=resource_id,
                action=action,
            )
            outcome = GateOutcome.deny(
                DenialKind.SYSTEM,
                SYSTEM_ERROR_REASON,
                f"{SYSTEM_ERROR_REASON}: {exc}",
            )

        if outcome.passed:
            result = AuthorizationResult(
                authorized=True,
                granted_permissions=set(outcome.permissions),
                conditions=list(outcome.conditions),
            )
        else:
            result = AuthorizationResult(
                authorized=False,
                reason=outcome.reason,
                denial_kind=outcome.kind,
            )

        result.audit_id = self._audit(
            now, principal, resource_type, resource_id, action, result, outcome.detail
        )
        logger.info(
            "authorization_decision",
            principal_id=getattr(principal, "id", None),
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            authorized=result.authorized,
            denial_kind=enum_value(result.denial_kind),
        )
        return result

    def evaluate_request(self, request: AuthorizationRequest) -> AuthorizationResult:
        return self.evaluate(
            request.resource_type,
            request.resource_id,
            request.action,
            request.principal,
            request.business_context,
        )

    def _run_gates(self, resource_type, resource_id, action, principal, business_context, now) -> GateOutcome:
        settings = self.settings

        check = validate_principal(
            principal,
            now=now,
            max_age_seconds=settings.context_max_age_seconds,
            max_skew_seconds=settings.context_max_skew_seconds,
        )
        if check.valid:
            check = check_against_record(principal, self.principals.fetch(str(principal.id)))
        if not check.valid:
            return GateOutcome.deny(
                DenialKind.CONTEXT, f"Invalid authorization context: {check.reason}"
            )

        resource = self.resources.fetch(resource_type, resource_id)
        if resource is None:
            return GateOutcome.deny(
                DenialKind.NOT_FOUND_OR_DENIED,
                NOT_FOUND_OR_DENIED,
                f"{resource_type} {resource_id} not found",
            )

        outcome = entity_state_check(resource)
        if not outcome.passed:
            return outcome

        ctx = RuleContext(
            principal=principal,
            action=action,
            now=now,
            settings=settings,
            business_context=business_context,
        )

        permission = role_permission_check(ctx.role, resource_type, action)
        if not permission.passed:
            return permission

        conditions: List[str] = []
        for gate in (ownership_check, business_rule_check, time_window_check):
            outcome = gate(resource, ctx)
            if not outcome.passed:
                return outcome
            conditions.extend(outcome.conditions)

        return GateOutcome.ok(permissions=permission.permissions, conditions=conditions)

    def _audit(self, now, principal, resource_type, resource_id, action, result, detail) -> str:
        record = AuditRecord(
            timestamp=now,
            principal_id=getattr(principal, "id", None),
            role=enum_value(getattr(principal, "role", None)),
            resource_type=resource_type,
            resource_id=str(resource_id),
            action=action,
            authorized=result.authorized,
            reason=detail if detail is not None else result.reason,
            session_id=getattr(principal, "session_id", None),
            ip_address=getattr(principal, "ip_address", None),
            user_agent=getattr(principal, "user_agent", None),
            denial_kind=enum_value(result.denial_kind),
        )
        try:
            audit_id = self.audit.record(record)
        except Exception:
            logger.exception("audit_log_error", resource_type=resource_type, resource_id=resource_id)
            return AUDIT_ERROR_ID
        if not audit_id:
            logger.warning("audit_log_failed", resource_type=resource_type, resource_id=resource_id)
            return AUDIT_FAILED_ID
        return str(audit_id)

    # ── Batch ────────────────────────────────────────────────────────

    def evaluate_batch(
        self,
        resource_type: str,
        resource_ids: Sequence[str],
        action: str,
        principal: Optional[Principal],
        business_context: Optional[Mapping[str, Any]] = None,
    ) -> BatchResult:
        """Evaluate many ids, at most ``batch_size`` at a time."""
        ids = list(resource_ids)
        size = self.settings.batch_size
        batch = BatchResult()

        with ThreadPoolExecutor(max_workers=size) as pool:
            for start in range(0, len(ids), size):
                chunk = ids[start:start + size]
                futures = [
                    pool.submit(self.evaluate, resource_type, rid, action, principal, business_context)
                    for rid in chunk
                ]
                for rid, future in zip(chunk, futures):
                    try:
                        result = future.result()
                    except Exception:
                        logger.exception("batch_item_error", resource_type=resource_type, resource_id=rid)
                        result = AuthorizationResult(authorized=False, reason=SYSTEM_ERROR_REASON)
                    if result.authorized:
                        batch.authorized.append(rid)
                    else:
                        batch.denied.append({"id": rid, "reason": result.reason})

        batch.summary = {
            "total": len(ids),
            "authorized": len(batch.authorized),
            "denied": len(batch.denied),
        }
        return batch

    # ── Filters ──────────────────────────────────────────────────────

    def build_filter(self, principal: Optional[Principal], resource_type: str, permission: str) -> FilterArtifact:
        """
        Filter artifact for a list query.

        The principal gets the same context checks as ``evaluate``; one that
        fails them (stale, unknown, demoted or suspended) gets the public
        filter. Elevation is decided on the store's role.
        """
        resource_type = enum_value(resource_type)
        try:
            trusted = self._revalidated(principal)
        except Exception:
            logger.exception("filter_principal_error", resource_type=resource_type)
            trusted = None
        return build_filter(trusted, resource_type, permission)

    def _revalidated(self, principal) -> Optional[Principal]:
        if principal is None:
            return None
        settings = self.settings
        check = validate_principal(
            principal,
            now=self.clock(),
            max_age_seconds=settings.context_max_age_seconds,
            max_skew_seconds=settings.context_max_skew_seconds,
        )
        record = None
        if check.valid:
            record = self.principals.fetch(str(principal.id))
            check = check_against_record(principal, record)
        if not check.valid:
            logger.info(
                "filter_principal_rejected",
                principal_id=getattr(principal, "id", None),
                reason=check.reason,
            )
            return None
        return replace(
            principal,
            role=str(record.role).strip().lower(),
            status=str(record.status).strip().lower(),
        )

    # ── Introspection ────────────────────────────────────────────────

    def permissions_of(self, principal_id: str) -> PermissionSummary:
        """Current role, grants and restrictions of a principal."""
        try:
            record = self.principals.fetch(str(principal_id))
            if record is None:
                return PermissionSummary(role="none", permissions=[], restrictions=["User not found"])
            role = str(record.role).strip().lower()
            restrictions = []
            if str(record.status).strip().lower() != PrincipalStatus.ACTIVE.value:
                restrictions.append("Account not active")
            return PermissionSummary(
                role=role,
                permissions=sorted(permissions_for(role)),
                restrictions=restrictions,
            )
        except Exception:
            logger.exception("permission_lookup_error", principal_id=principal_id)
            return PermissionSummary(role="error", permissions=[], restrictions=["Permission check failed"])

    def security_report(self, principal_id: Optional[str] = None) -> SecurityReport:
        """Aggregate the latest audited decisions, optionally for one principal."""
        settings = self.settings
        try:
            records = self.audit.recent(settings.report_window, principal_id=principal_id)
            return build_security_report(
                records,
                recent_limit=settings.recent_activity_limit,
                failure_threshold=settings.suspicious_failure_threshold,
            )
        except Exception:
            logger.exception("security_report_error", principal_id=principal_id)
            return SecurityReport.empty()
