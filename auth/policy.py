"""
auth/policy.py -- Access policy engine: role pre-checks and ownership post-checks.

Two decision points replace method-level authorization annotations:

  Pre-check  (before the operation runs): does the caller currently hold the
             role the operation requires?
  Post-check (after the operation produced a result): does the result belong
             to the caller? Used for "read one record" style operations that
             are self-service unless the caller holds an elevated role.

Freshness over staleness: the pre-check resolves the caller's roles from the
directory at decision time. The scope claim inside a token is a snapshot
taken at issuance and may list roles that have since been revoked, so it is
never consulted for access decisions.

A deny is a normal outcome, returned as Decision.deny(reason). The engine
never raises for it; AuthService turns denies into Unauthorized / Forbidden.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from auth.models import Role

if TYPE_CHECKING:
    from auth.directory import PrincipalDirectory


@dataclass(frozen=True)
class Decision:
    """Allow, or Deny with a reason. Truthy iff allowed."""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> Decision:
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


# ---------------------------------------------------------------------------
# Pure decision functions -- no I/O
# ---------------------------------------------------------------------------


def authorize(required_role: str, current_roles: set[Role]) -> Decision:
    """Allow iff required_role is among current_roles (by name)."""
    if any(role.name == required_role for role in current_roles):
        return Decision.allow()
    return Decision.deny(f"role {required_role} required")


def authorize_permission(permission: str, current_roles: set[Role]) -> Decision:
    """Allow iff any current role grants the named permission."""
    for role in current_roles:
        if any(p.name == permission for p in role.permissions):
            return Decision.allow()
    return Decision.deny(f"permission {permission} required")


def owns_result(result_owner_id: str, caller_id: str) -> bool:
    """True iff the result belongs to the caller."""
    return result_owner_id == caller_id


# ---------------------------------------------------------------------------
# Directory-backed policy
# ---------------------------------------------------------------------------


class AccessPolicy:
    """Evaluates decisions against the principal's roles as stored right now.

    Usage:
        policy = AccessPolicy(directory)
        if not policy.authorize("ADMIN", claims.subject):
            ...
    """

    def __init__(self, directory: PrincipalDirectory) -> None:
        self.directory = directory

    def authorize(self, required_role: str, principal_id: str) -> Decision:
        return authorize(required_role, self.directory.current_roles_of(principal_id))

    def authorize_permission(self, permission: str, principal_id: str) -> Decision:
        return authorize_permission(permission, self.directory.current_roles_of(principal_id))

    def owns_or_holds(self, result_owner_id: str, caller_id: str, elevated_role: str) -> Decision:
        """Post-check: allow self access, or any access for holders of elevated_role."""
        if owns_result(result_owner_id, caller_id):
            return Decision.allow()
        if self.authorize(elevated_role, caller_id):
            return Decision.allow()
        return Decision.deny("result belongs to another principal")
