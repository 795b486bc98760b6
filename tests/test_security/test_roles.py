"""
Tests for the role / permission tables and implication closure.
"""
from __future__ import annotations

import pytest

from debtcases.security.roles import (
    ALL_PERMISSIONS,
    ActionCategory,
    P,
    Role,
    ScopeLevel,
    ScopeOverride,
    expand_permissions,
    role_permissions,
)


def test_export_alias_chain_resolves_to_view():
    expanded = expand_permissions({P.EXPORT_DEPARTMENT_CASES})

    assert P.EXPORT_DEPARTMENT_DATA in expanded
    assert P.VIEW_DEPARTMENT_CASES in expanded
    assert P.VIEW_ALL_CASES not in expanded


def test_manage_permissions_implies_view_assign_revoke():
    expanded = expand_permissions({P.MANAGE_PERMISSIONS})

    assert {P.VIEW_PERMISSIONS, P.ASSIGN_PERMISSIONS, P.REVOKE_PERMISSIONS} <= expanded


def test_manage_delegations_implies_view_and_create():
    expanded = expand_permissions({P.MANAGE_DELEGATIONS})

    assert {P.VIEW_DELEGATIONS, P.CREATE_DELEGATION} <= expanded


def test_unknown_permission_names_pass_through_unchanged():
    assert expand_permissions({"view_all_cses"}) == frozenset({"view_all_cses"})


def test_administrator_implies_every_permission():
    assert role_permissions(Role.ADMINISTRATOR) == ALL_PERMISSIONS


def test_employee_role_implies_no_scope_permission():
    perms = expand_permissions(role_permissions(Role.EMPLOYEE))

    assert P.VIEW_ALL_CASES not in perms
    assert P.VIEW_DEPARTMENT_CASES not in perms
    assert P.CREATE_DELEGATION in perms


def test_role_parse_rejects_unknown_value():
    with pytest.raises(ValueError):
        Role.parse("superuser")


def test_scope_levels_are_ordered():
    assert ScopeLevel.OWN < ScopeLevel.DEPARTMENT < ScopeLevel.ALL


def test_override_matches_only_on_every_configured_key():
    override = ScopeOverride(
        name="khdn",
        departments=frozenset({"KHDN"}),
        roles=frozenset({Role.MANAGER}),
    )

    assert override.matches(Role.MANAGER, "KHDN", "6420", ActionCategory.VIEW)
    assert not override.matches(Role.DEPUTY_MANAGER, "KHDN", "6420", ActionCategory.VIEW)
    assert not override.matches(Role.MANAGER, "KHCN", "6420", ActionCategory.VIEW)


def test_override_action_filter():
    override = ScopeOverride(name="risk", actions=frozenset({ActionCategory.VIEW}))

    assert override.matches(Role.EMPLOYEE, "X", "1", ActionCategory.VIEW)
    assert not override.matches(Role.EMPLOYEE, "X", "1", ActionCategory.EDIT)
