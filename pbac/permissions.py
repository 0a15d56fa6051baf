"""
Static role → permission table and pure lookup helpers.

Permissions are strings of the form ``resource:action[:own]``. A grant with the
``:own`` suffix is only honoured after the ownership gate confirms the caller's
relationship to the resource. Wildcards (``*`` and ``resource:*``) are reserved
for super_admin; the table is checked for that when this module is imported.
"""

from types import MappingProxyType
from typing import FrozenSet, Mapping, NamedTuple, Optional

from pbac.models import Role, enum_value

WILDCARD = "*"
OWN_SCOPE = "own"

ROLE_RANKS: Mapping[str, int] = MappingProxyType({
    Role.SUPER_ADMIN.value: 100,
    Role.ADMIN.value: 80,
    Role.SUPPORT.value: 60,
    Role.INSTRUCTOR.value: 40,
    Role.USER.value: 20,
    Role.READONLY.value: 10,
})

# Roles at or above this rank bypass ownership for every permission they hold.
ELEVATED_RANK = ROLE_RANKS[Role.ADMIN.value]


def _grants(resource: str, *actions: str, own: bool = False) -> FrozenSet[str]:
    suffix = f":{OWN_SCOPE}" if own else ""
    return frozenset(f"{resource}:{action}{suffix}" for action in actions)


_CONTENT_ACTIONS = ("create", "read", "update", "delete", "manage")

ROLE_PERMISSIONS: Mapping[str, FrozenSet[str]] = MappingProxyType({
    Role.SUPER_ADMIN.value: frozenset({WILDCARD}),
    Role.ADMIN.value: (
        _grants("appointment", "create", "read", "update", "delete", "cancel",
                "reschedule", "approve", "reject", "manage")
        | _grants("post", *_CONTENT_ACTIONS)
        | _grants("comment", *_CONTENT_ACTIONS)
        | _grants("lecture", *_CONTENT_ACTIONS)
        | _grants("profile", "read", "update", "delete")
        | _grants("user", "read", "update", "manage")
        | _grants("audit", "read")
    ),
    Role.SUPPORT.value: (
        _grants("appointment", "read", "update")
        | _grants("user", "read")
        | _grants("profile", "read")
        | _grants("post", "read")
        | _grants("comment", "read")
        | _grants("lecture", "read")
    ),
    Role.INSTRUCTOR.value: (
        _grants("appointment", "create", "read", "update", "cancel", "reschedule", own=True)
        | _grants("lecture", "create", "read")
        | _grants("lecture", "update", "delete", own=True)
        | _grants("post", "create", "read")
        | _grants("post", "update", "delete", own=True)
        | _grants("comment", "create", "read")
        | _grants("comment", "update", "delete", own=True)
        | _grants("profile", "read")
        | _grants("profile", "update", own=True)
    ),
    Role.USER.value: (
        _grants("appointment", "create", "read", "update", "cancel", "reschedule", own=True)
        | _grants("post", "create", "read")
        | _grants("post", "update", "delete", own=True)
        | _grants("comment", "create", "read")
        | _grants("comment", "update", "delete", own=True)
        | _grants("lecture", "read")
        | _grants("profile", "read")
        | _grants("profile", "update", own=True)
    ),
    Role.READONLY.value: (
        _grants("appointment", "read", own=True)
        | _grants("post", "read")
        | _grants("comment", "read")
        | _grants("lecture", "read")
        | _grants("profile", "read")
    ),
})

# Support bypasses ownership only for these permissions.
ELEVATED_OVERRIDES: Mapping[str, FrozenSet[str]] = MappingProxyType({
    Role.SUPPORT.value: frozenset({
        "appointment:read", "appointment:update", "user:read", "profile:read",
    }),
})


class ParsedPermission(NamedTuple):
    resource: str
    action: str
    scope: Optional[str]

    @property
    def own(self) -> bool:
        return self.scope == OWN_SCOPE


def parse_permission(permission: str) -> ParsedPermission:
    """Split ``resource:action[:own]``; raise ValueError for anything else."""
    if permission == WILDCARD:
        return ParsedPermission(WILDCARD, WILDCARD, None)
    parts = str(permission).split(":")
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Malformed permission '{permission}'.")
    scope = parts[2] if len(parts) == 3 else None
    if scope is not None and scope != OWN_SCOPE:
        raise ValueError(f"Unsupported permission scope '{scope}' in '{permission}'.")
    return ParsedPermission(parts[0], parts[1], scope)


def _is_wildcard(permission: str) -> bool:
    return permission == WILDCARD or parse_permission(permission).action == WILDCARD


def _validate_table(table: Mapping[str, FrozenSet[str]]) -> None:
    for role, grants in table.items():
        for grant in grants:
            parse_permission(grant)
            if _is_wildcard(grant) and role != Role.SUPER_ADMIN.value:
                raise ValueError(f"Wildcard permission '{grant}' is reserved for super_admin, found on '{role}'.")


_validate_table(ROLE_PERMISSIONS)


def permissions_for(role) -> FrozenSet[str]:
    """Permission set of a role; unknown roles get nothing."""
    return ROLE_PERMISSIONS.get(enum_value(role), frozenset())


def role_rank(role) -> int:
    return ROLE_RANKS.get(enum_value(role), 0)


def match_grant(role, resource_type: str, action: str) -> Optional[str]:
    """Return the grant that satisfies ``resource_type:action`` for the role.

    A global grant wins over an ownership-scoped one; None when nothing matches.
    """
    grants = permissions_for(role)
    action = enum_value(action)
    for candidate in (WILDCARD, f"{resource_type}:{WILDCARD}", f"{resource_type}:{action}"):
        if candidate in grants:
            return candidate
    scoped = f"{resource_type}:{action}:{OWN_SCOPE}"
    if scoped in grants:
        return scoped
    return None


def has_permission(role, permission: str) -> bool:
    """True when the role holds ``permission`` globally or via ``:own``."""
    try:
        parsed = parse_permission(permission)
    except ValueError:
        return False
    return match_grant(role, parsed.resource, parsed.action) is not None


def holds_globally(role, permission: str) -> bool:
    try:
        parsed = parse_permission(permission)
    except ValueError:
        return False
    grant = match_grant(role, parsed.resource, parsed.action)
    return grant is not None and not grant.endswith(f":{OWN_SCOPE}")


def is_elevated(role, permission: Optional[str] = None) -> bool:
    """Whether the role bypasses ownership checks for ``permission``."""
    if role_rank(role) >= ELEVATED_RANK:
        return True
    if permission is None:
        return False
    return permission in ELEVATED_OVERRIDES.get(enum_value(role), frozenset())
