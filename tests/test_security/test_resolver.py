"""
Tests for PermissionResolver: role short-circuit, any/all matching, fail-closed.
"""
from __future__ import annotations

import logging

import pytest
from sqlalchemy.exc import OperationalError

from debtcases.errors import AuthorizationError
from debtcases.security.context import Identity
from debtcases.security.resolver import PermissionResolver
from debtcases.security.roles import P, Role


def _identity(role: Role = Role.EMPLOYEE, status: str = "active") -> Identity:
    return Identity(employee_code="E1", role=role, department="KHCN", branch_code="6420", status=status)


def _loader(*names: str):
    calls = []

    def load(identity: Identity):
        calls.append(identity.employee_code)
        return set(names)

    load.calls = calls
    return load


def test_allowed_role_grants_without_loading_permissions():
    loader = _loader()
    resolver = PermissionResolver(loader)

    assert resolver.resolve(_identity(Role.MANAGER), [P.VIEW_USERS], [Role.MANAGER]) is True
    assert loader.calls == []


def test_any_of_grants_on_single_match():
    resolver = PermissionResolver(_loader(P.VIEW_DEPARTMENT_CASES))

    assert resolver.resolve(_identity(), [P.VIEW_ALL_CASES, P.VIEW_DEPARTMENT_CASES]) is True


def test_all_of_requires_every_permission():
    resolver = PermissionResolver(_loader(P.ASSIGN_PERMISSIONS))

    required = [P.ASSIGN_PERMISSIONS, P.REVOKE_PERMISSIONS]
    assert resolver.resolve(_identity(), required, match="all") is False
    assert resolver.resolve(_identity(), required, match="any") is True


def test_no_requirements_and_role_not_allowed_denies():
    resolver = PermissionResolver(_loader(P.VIEW_ALL_CASES))

    assert resolver.resolve(_identity(), [], [Role.ADMINISTRATOR]) is False


def test_inactive_identity_is_denied_even_for_allowed_role():
    resolver = PermissionResolver(_loader())

    assert resolver.resolve(_identity(Role.ADMINISTRATOR, status="disabled"), [], [Role.ADMINISTRATOR]) is False


def test_lookup_failure_fails_closed_and_logs_error(caplog):
    def broken(identity):
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    resolver = PermissionResolver(broken)

    with caplog.at_level(logging.ERROR, logger="debtcases.security.resolver"):
        assert resolver.resolve(_identity(), [P.VIEW_OWN_CASES]) is False

    assert any("Permission lookup failed" in r.getMessage() for r in caplog.records)


def test_permissions_are_loaded_once_per_resolver():
    loader = _loader(P.VIEW_OWN_CASES)
    resolver = PermissionResolver(loader)

    resolver.resolve(_identity(), [P.VIEW_OWN_CASES])
    resolver.resolve(_identity(), [P.VIEW_ALL_CASES])

    assert loader.calls == ["E1"]


def test_require_raises_authorization_error_on_deny():
    resolver = PermissionResolver(_loader())

    with pytest.raises(AuthorizationError):
        resolver.require(_identity(), [P.MANAGE_USERS])


def test_every_decision_is_audited(caplog):
    resolver = PermissionResolver(_loader(P.VIEW_OWN_CASES))

    with caplog.at_level(logging.INFO, logger="debtcases.audit"):
        resolver.resolve(_identity(), [P.VIEW_OWN_CASES], action="GET /cases")
        resolver.resolve(_identity(), [P.MANAGE_USERS], action="PUT /users")

    messages = [r.getMessage() for r in caplog.records if r.name == "debtcases.audit"]
    assert any("decision=grant" in m and "action=GET /cases" in m for m in messages)
    assert any("decision=deny" in m and "action=PUT /users" in m for m in messages)


def test_for_session_combines_role_and_granted_permissions(db_session, make_user, identity_of):
    from debtcases.db.init_db import seed_permissions
    from debtcases.services.permissions import PermissionStore

    seed_permissions(db_session)
    user = make_user("E2", role="manager")
    PermissionStore(db_session).grant("E2", P.EXPORT_ALL_CASES)

    resolver = PermissionResolver.for_session(db_session)
    perms = resolver.effective_permissions(identity_of(user))

    assert P.EXPORT_REPORTS in perms  # from the role
    assert P.EXPORT_ALL_DATA in perms  # alias closure
    assert P.VIEW_ALL_CASES in perms
