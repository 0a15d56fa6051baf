"""
Domain dataclasses and enumerations used across the decision engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    SUPPORT = "support"
    INSTRUCTOR = "instructor"
    USER = "user"
    READONLY = "readonly"


class PrincipalStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    APPROVE = "approve"
    REJECT = "reject"
    MANAGE = "manage"


class DenialKind(str, Enum):
    """Why a decision was denied; recorded on results and audit records."""
    CONTEXT = "context_error"
    NOT_FOUND_OR_DENIED = "not_found_or_denied"
    ENTITY_STATE = "entity_state_error"
    PERMISSION = "permission_error"
    OWNERSHIP = "ownership_error"
    BUSINESS_RULE = "business_rule_violation"
    TIME_WINDOW = "time_window_violation"
    SYSTEM = "system_error"


def enum_value(value: Any) -> Any:
    """Unwrap an Enum member to its raw value; pass anything else through."""
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class Principal:
    """The authenticated actor of one decision. Build a new one per request."""
    id: Optional[str]
    role: Optional[str]
    status: Optional[str]
    decision_timestamp: Optional[datetime]
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class PrincipalRecord:
    """Current identity state as held by the principal store."""
    id: str
    role: str
    status: str


@dataclass(frozen=True)
class AuthorizationRequest:
    resource_type: str
    resource_id: str
    action: str
    principal: Optional[Principal]
    business_context: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class AuthorizationResult:
    authorized: bool
    reason: Optional[str] = None
    granted_permissions: Set[str] = field(default_factory=set)
    conditions: List[str] = field(default_factory=list)
    audit_id: Optional[str] = None
    denial_kind: Optional[DenialKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authorized": self.authorized,
            "reason": self.reason,
            "granted_permissions": sorted(self.granted_permissions),
            "conditions": list(self.conditions),
            "audit_id": self.audit_id,
        }


@dataclass(frozen=True)
class AuditRecord:
    """Immutable log entry for one authorization decision."""
    timestamp: datetime
    principal_id: Optional[str]
    role: Optional[str]
    resource_type: str
    resource_id: str
    action: str
    authorized: bool
    reason: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    denial_kind: Optional[str] = None


@dataclass
class BatchResult:
    authorized: List[str] = field(default_factory=list)
    denied: List[Dict[str, str]] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authorized": list(self.authorized),
            "denied": [dict(d) for d in self.denied],
            "summary": dict(self.summary),
        }


@dataclass
class PermissionSummary:
    role: str
    permissions: List[str]
    restrictions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "permissions": list(self.permissions),
            "restrictions": list(self.restrictions),
        }


@dataclass
class SecurityReport:
    summary: Dict[str, int]
    recent_activity: List[Dict[str, Any]]
    suspicious_activity: List[Dict[str, Any]]

    @classmethod
    def empty(cls) -> "SecurityReport":
        return cls(
            summary={
                "total_decisions": 0,
                "authorized_decisions": 0,
                "denied_decisions": 0,
                "error_decisions": 0,
            },
            recent_activity=[],
            suspicious_activity=[],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": dict(self.summary),
            "recent_activity": list(self.recent_activity),
            "suspicious_activity": list(self.suspicious_activity),
        }
