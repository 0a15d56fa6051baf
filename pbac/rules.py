"""
Policy rule set – the gates evaluated by the decision engine.

Every gate returns a GateOutcome. A denial carries the caller-facing reason,
the internal detail written to the audit log and its DenialKind; a pass may
carry permissions granted so far and non-blocking conditions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pbac.config import LATE_CANCELLATION_CONDITION, NOT_FOUND_OR_DENIED, PolicySettings
from pbac.models import DenialKind, Principal, enum_value
from pbac.permissions import ELEVATED_RANK, WILDCARD, is_elevated, match_grant, role_rank
from pbac.resources import ACTIVE, Resource


@dataclass(frozen=True)
class GateOutcome:
    passed: bool
    reason: Optional[str] = None
    detail: Optional[str] = None
    kind: Optional[DenialKind] = None
    permissions: Tuple[str, ...] = ()
    conditions: Tuple[str, ...] = ()

    @classmethod
    def ok(cls, permissions=(), conditions=()) -> "GateOutcome":
        return cls(True, permissions=tuple(permissions), conditions=tuple(conditions))

    @classmethod
    def deny(cls, kind: DenialKind, reason: str, detail: Optional[str] = None) -> "GateOutcome":
        return cls(False, reason=reason, detail=detail or reason, kind=kind)


# Business-context keys that stand in for snapshot timing. Only trusted
# callers may supply them; the HTTP adapter drops them from request bodies.
TIMING_CONTEXT_KEYS = frozenset({"hours_until_event", "policy_window_hours"})


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at besides the resource itself."""
    principal: Principal
    action: str
    now: datetime
    settings: PolicySettings
    business_context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return enum_value(self.principal.role)

    def hours_until(self, resource: Resource) -> Optional[float]:
        """
        Hours until the resource's event; negative once it has started.

        The fetched snapshot's start time wins. ``hours_until_event`` from the
        business context is only used when the snapshot has none.
        """
        starts_at = resource.effective_at()
        if starts_at is not None:
            return (starts_at - self.now).total_seconds() / 3600.0
        hours = self.business_context.get("hours_until_event")
        if hours is None:
            return None
        return float(hours)

    def notice_hours(self, resource: Resource) -> Optional[float]:
        """Notice window of the snapshot, else ``policy_window_hours``."""
        window = resource.notice_hours()
        if window is not None:
            return float(window)
        window = self.business_context.get("policy_window_hours")
        if window is None:
            return None
        return float(window)


def _hours(value: float) -> str:
    return f"{value:g} hour" + ("" if value == 1 else "s")


# ── Entity state ─────────────────────────────────────────────────────

def entity_state_check(resource: Resource) -> GateOutcome:
    name = resource.label.capitalize()

    if resource.status() in resource.inactive_statuses:
        return GateOutcome.deny(DenialKind.ENTITY_STATE, f"{name} is not active")

    if resource.owner_id() is not None and resource.owner_status() != ACTIVE:
        return GateOutcome.deny(DenialKind.ENTITY_STATE, f"{name} {resource.owner_label} is not active")

    if resource.secondary_owner_id() is not None and resource.secondary_owner_status() != ACTIVE:
        label = resource.secondary_label or "secondary owner"
        return GateOutcome.deny(DenialKind.ENTITY_STATE, f"{name} {label} is not active")

    for dependent, active in resource.dependent_states().items():
        if not active:
            return GateOutcome.deny(DenialKind.ENTITY_STATE, f"{dependent} is not active")

    return GateOutcome.ok()


# ── Role permission ──────────────────────────────────────────────────

def role_permission_check(role: str, resource_type: str, action: str) -> GateOutcome:
    grant = match_grant(role, resource_type, action)
    if grant is None:
        return GateOutcome.deny(
            DenialKind.PERMISSION,
            NOT_FOUND_OR_DENIED,
            f"Role {role} does not have permission {resource_type}:{action}",
        )
    if grant == WILDCARD:
        return GateOutcome.ok(permissions=(WILDCARD,))
    return GateOutcome.ok(permissions=(grant,))


# ── Ownership ────────────────────────────────────────────────────────

def ownership_check(resource: Resource, ctx: RuleContext) -> GateOutcome:
    permission = f"{resource.resource_type}:{ctx.action}"
    if is_elevated(ctx.role, permission):
        return GateOutcome.ok()

    if ctx.action == "read" and resource.is_public():
        return GateOutcome.ok()

    principal_id = str(ctx.principal.id)
    is_owner = resource.owner_id() == principal_id
    is_secondary = resource.secondary_owner_id() == principal_id

    if not (is_owner or is_secondary):
        return GateOutcome.deny(
            DenialKind.OWNERSHIP,
            NOT_FOUND_OR_DENIED,
            f"Principal has no relationship to this {resource.label}",
        )

    if ctx.action in resource.owner_only_actions and not is_owner:
        return GateOutcome.deny(
            DenialKind.OWNERSHIP,
            f"Only the {resource.label} {resource.owner_label} may {ctx.action} this {resource.label}",
        )

    return GateOutcome.ok()


# ── Business rules ───────────────────────────────────────────────────

IMMUTABLE_ACTIONS = frozenset({"update", "delete", "reschedule", "cancel"})

BusinessRule = Callable[[Resource, RuleContext], GateOutcome]


def terminal_status_rule(resource: Resource, ctx: RuleContext) -> GateOutcome:
    status = resource.status()
    if status not in resource.terminal_statuses or ctx.action not in IMMUTABLE_ACTIONS:
        return GateOutcome.ok()

    if ctx.role in ctx.settings.terminal_override_roles:
        return GateOutcome.ok(conditions=(f"Terminal status override applied ({status})",))

    if ctx.action == "cancel":
        if status == "cancelled":
            reason = f"{resource.label.capitalize()} is already cancelled"
        else:
            reason = f"Cannot cancel {status} {resource.plural}"
    elif ctx.action == "reschedule":
        reason = f"Cannot reschedule {status} {resource.plural}"
    elif ctx.action == "update" and status != "completed":
        reason = f"Cannot update {resource.plural} with status: {status}"
    else:
        reason = f"Cannot modify {status} {resource.plural}"
    return GateOutcome.deny(DenialKind.BUSINESS_RULE, reason)


def notice_window_rule(resource: Resource, ctx: RuleContext) -> GateOutcome:
    if ctx.action not in ctx.settings.notice_window_actions:
        return GateOutcome.ok()

    window = ctx.notice_hours(resource)
    if not window:
        return GateOutcome.ok()

    hours_until = ctx.hours_until(resource)
    if hours_until is None or hours_until >= window:
        return GateOutcome.ok()

    if ctx.role in ctx.settings.late_override_roles.get(ctx.action, frozenset()):
        if ctx.action == "cancel":
            return GateOutcome.ok(conditions=(LATE_CANCELLATION_CONDITION,))
        return GateOutcome.ok(conditions=(f"Late {ctx.action} — policy override applied",))

    noun = "Cancellation" if ctx.action == "cancel" else ctx.action.capitalize()
    return GateOutcome.deny(
        DenialKind.BUSINESS_RULE,
        f"{noun} requires at least {window:g} hours notice",
    )


BUSINESS_RULES: Dict[str, Tuple[BusinessRule, ...]] = {
    "appointment": (terminal_status_rule, notice_window_rule),
    "lecture": (terminal_status_rule,),
}


def business_rule_check(resource: Resource, ctx: RuleContext) -> GateOutcome:
    conditions = []
    for rule in BUSINESS_RULES.get(resource.resource_type, (terminal_status_rule,)):
        outcome = rule(resource, ctx)
        if not outcome.passed:
            return outcome
        conditions.extend(outcome.conditions)
    return GateOutcome.ok(conditions=conditions)


# ── Time windows ─────────────────────────────────────────────────────

def time_window_check(resource: Resource, ctx: RuleContext) -> GateOutcome:
    settings = ctx.settings
    if ctx.action not in settings.time_restricted_actions:
        return GateOutcome.ok()

    hours_until = ctx.hours_until(resource)
    if hours_until is None:
        return GateOutcome.ok()

    if hours_until < 0:
        if role_rank(ctx.role) >= ELEVATED_RANK:
            return GateOutcome.ok(
                conditions=(f"Past {resource.label} modification — elevated override applied",)
            )
        return GateOutcome.deny(DenialKind.TIME_WINDOW, f"Cannot modify past {resource.plural}")

    if hours_until < settings.min_lead_hours and ctx.role in settings.lead_time_restricted_roles:
        return GateOutcome.deny(
            DenialKind.TIME_WINDOW,
            f"Cannot modify {resource.plural} less than {_hours(settings.min_lead_hours)} before start time",
        )

    return GateOutcome.ok()
