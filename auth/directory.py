"""
auth/directory.py -- SQLAlchemy Core persistence for principals, roles and permissions.

Pattern: Repository + Data Mapper. PrincipalDirectory is the repository;
_row_to_principal / _load_roles are the mappers. The service and the policy
engine never touch SQL directly.

The authentication core only reads from the directory (find_by_identifier,
current_roles_of). The write methods exist for account administration
tooling and tests; they are plain CRUD with no authorization of their own.
Callers are responsible for checking who may invoke them.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.models import Permission, Principal, Role
from auth.revocation import make_engine
from core.errors import StoreUnavailable

logger = logging.getLogger("identity.directory")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_principals = Table(
    "principals",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("name", String(100), primary_key=True),
    Column("description", Text, nullable=False, server_default=""),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("name", String(100), primary_key=True),
    Column("description", Text, nullable=False, server_default=""),
)

_principal_roles = Table(
    "principal_roles",
    _metadata,
    Column("principal_id", String(36), ForeignKey("principals.id", ondelete="CASCADE"), primary_key=True),
    Column("role_name", String(100), ForeignKey("roles.name"), primary_key=True),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("role_name", String(100), ForeignKey("roles.name", ondelete="CASCADE"), primary_key=True),
    Column("permission_name", String(100), ForeignKey("permissions.name"), primary_key=True),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PrincipalDirectory:
    """Repository for Principal, Role and Permission entities.

    Usage:
        directory = PrincipalDirectory()
        directory.create_role("ADMIN", "Administrator")
        directory.create_principal("admin", hash_password("secret"), roles=["ADMIN"])
        principal = directory.find_by_identifier("admin")
        directory.close()
    """

    def __init__(self, db_url: str = "sqlite:///identity.db", timeout: float = 5.0) -> None:
        self.engine: Engine = make_engine(db_url, timeout)
        with self._connect() as conn:
            _metadata.create_all(conn)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError:
            raise
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.error("Principal directory unavailable: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc

    # ------------------------------------------------------------------
    # Reads used by the authentication core
    # ------------------------------------------------------------------

    def find_by_identifier(self, username: str) -> Principal | None:
        """Look up a principal by exact username, roles included. None if absent."""
        with self._connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.username == username)).fetchone()
            if row is None:
                return None
            roles = _load_roles(conn, row.id)
        return _row_to_principal(row, roles)

    def current_roles_of(self, username: str) -> set[Role]:
        """Return the roles the principal holds right now.

        Read fresh on every call: this is what authorization decisions are
        based on, not the scope claim embedded in a token at issuance.
        Unknown and inactive principals hold no roles.
        """
        with self._connect() as conn:
            row = conn.execute(
                select(_principals.c.id, _principals.c.is_active).where(_principals.c.username == username)
            ).fetchone()
            if row is None or not row.is_active:
                return set()
            return _load_roles(conn, row.id)

    def list_principals(self) -> list[Principal]:
        """Return all principals ordered by username."""
        with self._connect() as conn:
            rows = conn.execute(_principals.select().order_by(_principals.c.username)).fetchall()
            return [_row_to_principal(r, _load_roles(conn, r.id)) for r in rows]

    # ------------------------------------------------------------------
    # Administration writes
    # ------------------------------------------------------------------

    def create_permission(self, name: str, description: str = "") -> Permission:
        """Insert a permission. Raises IntegrityError if the name exists."""
        with self._connect() as conn:
            conn.execute(_permissions.insert().values(name=name, description=description))
            conn.commit()
        return Permission(name=name, description=description)

    def create_role(self, name: str, description: str = "", permissions: Iterable[str] = ()) -> Role:
        """Insert a role and link it to existing permissions by name.

        Raises IntegrityError if the role exists or a permission is unknown
        (on backends that enforce foreign keys).
        """
        perm_names = sorted(set(permissions))
        with self._connect() as conn:
            conn.execute(_roles.insert().values(name=name, description=description))
            for perm in perm_names:
                conn.execute(_role_permissions.insert().values(role_name=name, permission_name=perm))
            conn.commit()
            rows = conn.execute(_permissions.select().where(_permissions.c.name.in_(perm_names))).fetchall()
        return Role(
            name=name,
            description=description,
            permissions=frozenset(Permission(r.name, r.description) for r in rows),
        )

    def create_principal(
        self,
        username: str,
        hashed_password: str | None,
        roles: Iterable[str] = (),
        is_active: bool = True,
    ) -> str:
        """Insert a principal and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        principal_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                _principals.insert().values(
                    id=principal_id,
                    username=username,
                    hashed_password=hashed_password,
                    is_active=1 if is_active else 0,
                    created_at=_now_iso(),
                )
            )
            for role in sorted(set(roles)):
                conn.execute(_principal_roles.insert().values(principal_id=principal_id, role_name=role))
            conn.commit()
        logger.info("Created principal %s", username)
        return principal_id

    def set_roles(self, username: str, roles: Iterable[str]) -> bool:
        """Replace the principal's role set. Returns False if the principal is unknown.

        Tokens issued before this call keep their old scope claim; access
        decisions pick up the change immediately because they re-read roles.
        """
        with self._connect() as conn:
            row = conn.execute(select(_principals.c.id).where(_principals.c.username == username)).fetchone()
            if row is None:
                return False
            conn.execute(_principal_roles.delete().where(_principal_roles.c.principal_id == row.id))
            for role in sorted(set(roles)):
                conn.execute(_principal_roles.insert().values(principal_id=row.id, role_name=role))
            conn.commit()
        logger.info("Updated roles for %s", username)
        return True

    def set_active(self, username: str, is_active: bool) -> bool:
        """Activate or deactivate a principal. Returns False if not found."""
        with self._connect() as conn:
            result = conn.execute(
                _principals.update()
                .where(_principals.c.username == username)
                .values(is_active=1 if is_active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_principal(self, username: str) -> bool:
        """Permanently delete a principal and its role links. Returns False if not found."""
        with self._connect() as conn:
            row = conn.execute(select(_principals.c.id).where(_principals.c.username == username)).fetchone()
            if row is None:
                return False
            # Explicit delete: SQLite ignores ON DELETE CASCADE unless foreign keys are enabled.
            conn.execute(_principal_roles.delete().where(_principal_roles.c.principal_id == row.id))
            conn.execute(_principals.delete().where(_principals.c.id == row.id))
            conn.commit()
        logger.info("Deleted principal %s", username)
        return True

    def ping(self) -> bool:
        try:
            with self._connect() as conn:
                conn.execute(select(1))
        except StoreUnavailable:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_roles(conn: Connection, principal_id: str) -> set[Role]:
    role_rows = conn.execute(
        select(_roles.c.name, _roles.c.description)
        .select_from(_roles.join(_principal_roles, _principal_roles.c.role_name == _roles.c.name))
        .where(_principal_roles.c.principal_id == principal_id)
    ).fetchall()
    if not role_rows:
        return set()
    names = [r.name for r in role_rows]
    perm_rows = conn.execute(
        select(_role_permissions.c.role_name, _permissions.c.name, _permissions.c.description)
        .select_from(
            _role_permissions.join(_permissions, _permissions.c.name == _role_permissions.c.permission_name)
        )
        .where(_role_permissions.c.role_name.in_(names))
    ).fetchall()
    by_role: dict[str, set[Permission]] = {name: set() for name in names}
    for r in perm_rows:
        by_role[r.role_name].add(Permission(r.name, r.description))
    return {
        Role(name=r.name, description=r.description, permissions=frozenset(by_role[r.name])) for r in role_rows
    }


def _row_to_principal(row, roles: set[Role]) -> Principal:
    return Principal(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        roles=roles,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )
