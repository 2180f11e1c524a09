"""Unit tests for auth/directory.py -- PrincipalDirectory.

Covers:
- find_by_identifier() returns roles with their permissions, None when absent
- current_roles_of() reflects set_roles() and set_active() immediately
- duplicate usernames raise IntegrityError
- set_active() / delete_principal() report whether a row was touched
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.directory import PrincipalDirectory
from auth.models import Permission, build_scope


class TestLookup:
    def test_find_existing(self, directory: PrincipalDirectory) -> None:
        admin = directory.find_by_identifier("admin")
        assert admin is not None
        assert admin.id
        assert admin.is_active is True
        assert admin.role_names == {"ADMIN"}
        (role,) = admin.roles
        assert role.permissions == frozenset(
            {
                Permission("USER_READ", "Read user records"),
                Permission("USER_DELETE", "Delete user records"),
            }
        )

    def test_find_missing(self, directory: PrincipalDirectory) -> None:
        assert directory.find_by_identifier("ghost") is None

    def test_lookup_is_case_sensitive(self, directory: PrincipalDirectory) -> None:
        assert directory.find_by_identifier("ADMIN") is None

    def test_current_roles_of_unknown_is_empty(self, directory: PrincipalDirectory) -> None:
        assert directory.current_roles_of("ghost") == set()

    def test_current_roles_of_inactive_is_empty(self, directory: PrincipalDirectory) -> None:
        directory.set_active("admin", False)
        assert directory.current_roles_of("admin") == set()
        directory.set_active("admin", True)
        assert {r.name for r in directory.current_roles_of("admin")} == {"ADMIN"}

    def test_list_principals_sorted(self, directory: PrincipalDirectory) -> None:
        assert [p.username for p in directory.list_principals()] == ["admin", "alice"]


class TestWrites:
    def test_duplicate_username(self, directory: PrincipalDirectory) -> None:
        with pytest.raises(IntegrityError):
            directory.create_principal("alice", None)

    def test_set_roles_replaces(self, directory: PrincipalDirectory) -> None:
        assert directory.set_roles("alice", ["ADMIN", "USER"]) is True
        assert {r.name for r in directory.current_roles_of("alice")} == {"ADMIN", "USER"}
        assert directory.set_roles("alice", []) is True
        assert directory.current_roles_of("alice") == set()

    def test_set_roles_unknown_principal(self, directory: PrincipalDirectory) -> None:
        assert directory.set_roles("ghost", ["USER"]) is False

    def test_set_active(self, directory: PrincipalDirectory) -> None:
        assert directory.set_active("alice", False) is True
        assert directory.find_by_identifier("alice").is_active is False
        assert directory.set_active("ghost", False) is False

    def test_delete_principal(self, directory: PrincipalDirectory) -> None:
        assert directory.delete_principal("alice") is True
        assert directory.find_by_identifier("alice") is None
        assert directory.delete_principal("alice") is False

    def test_create_role_returns_permissions(self, directory: PrincipalDirectory) -> None:
        role = directory.create_role("AUDITOR", "Read-only", permissions=["USER_READ"])
        assert {p.name for p in role.permissions} == {"USER_READ"}


class TestScope:
    def test_build_scope_prefixes_roles(self, directory: PrincipalDirectory) -> None:
        roles = directory.current_roles_of("alice")
        assert build_scope(roles) == "ROLE_USER USER_READ"

    def test_build_scope_empty(self) -> None:
        assert build_scope(set()) == ""
