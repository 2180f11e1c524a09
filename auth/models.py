"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost no logic). Stores and the
service do the work; these classes only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

# Prefix that distinguishes role names from permission names in the scope claim.
ROLE_PREFIX = "ROLE_"


@dataclass(frozen=True)
class Permission:
    name: str
    description: str = ""


@dataclass(frozen=True)
class Role:
    """A named bundle of permissions.

    Frozen (and therefore hashable) so roles can live in sets. The name is the
    key and must not be renamed once tokens carrying it have been issued.
    """

    name: str
    description: str = ""
    permissions: frozenset[Permission] = field(default_factory=frozenset)


@dataclass
class Principal:
    """A user as seen by the authentication core.

    username is the principal identifier: it is the login name and the `sub`
    claim of every token issued for this principal.
    """

    username: str
    hashed_password: str | None = None
    roles: set[Role] = field(default_factory=set)
    id: str | None = None
    is_active: bool = True
    created_at: str | None = None

    @property
    def role_names(self) -> set[str]:
        return {r.name for r in self.roles}


def build_scope(roles: set[Role]) -> str:
    """Serialize roles and their permissions into the space-delimited scope claim.

    Roles are written as ROLE_<name>, permissions as their bare name. The
    output is sorted so the same role set always yields the same claim.
    """
    items: set[str] = set()
    for role in roles:
        items.add(f"{ROLE_PREFIX}{role.name}")
        items.update(p.name for p in role.permissions)
    return " ".join(sorted(items))


@dataclass(frozen=True)
class ClaimSet:
    """Verified claims of a token. Produced only by TokenCodec.decode_and_verify()."""

    subject: str
    issuer: str
    issued_at: datetime
    expires_at: datetime
    jti: str
    scope: str = ""

    @property
    def scopes(self) -> set[str]:
        return set(self.scope.split())

    def is_expired(self, now: datetime, leeway: timedelta = timedelta(0)) -> bool:
        """True once now has reached expires_at + leeway."""
        return now >= self.expires_at + leeway


@dataclass
class RevokedTokenRecord:
    jti: str
    expires_at: datetime
    revoked_at: datetime | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful login or refresh. Never partially populated."""

    token: str
    expires_at: datetime
    authenticated: bool = True


@dataclass(frozen=True)
class IntrospectResult:
    valid: bool
