"""
Roles, permission names and the tables that tie them together.

Everything that used to be an ad hoc `if role == ... and dept == ...` branch
lives here as data:

- ROLE_PERMISSIONS          Role -> implied permission set
- PERMISSION_IMPLICATIONS   permission -> permissions it implies (closed as a fixpoint)
- SCOPE_PERMISSIONS         (action, level) -> permissions that grant that breadth
- LEGACY_ROLE_SCOPES        role-only breadth for identities without scope grants
- DEFAULT_SCOPE_OVERRIDES   the exception table (branch / department carve-outs)
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    DEPUTY_MANAGER = "deputy_manager"
    MANAGER = "manager"
    DEPUTY_DIRECTOR = "deputy_director"
    DIRECTOR = "director"
    ADMINISTRATOR = "administrator"

    @classmethod
    def parse(cls, value: str) -> Role:
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"Unknown role {value!r}") from exc


ALL_ROLES: frozenset[Role] = frozenset(Role)


class ScopeLevel(enum.IntEnum):
    """Data breadth. Ordered so that wider scopes compare greater."""

    OWN = 1
    DEPARTMENT = 2
    ALL = 3


class ActionCategory(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    EXPORT = "export"


class P:
    """Permission names (the rows seeded into the `permissions` table)."""

    VIEW_OWN_CASES = "view_own_cases"
    VIEW_DEPARTMENT_CASES = "view_department_cases"
    VIEW_ALL_CASES = "view_all_cases"

    EDIT_OWN_CASES = "edit_own_cases"
    EDIT_DEPARTMENT_CASES = "edit_department_cases"
    EDIT_ALL_CASES = "edit_all_cases"

    EXPORT_CASE_DATA = "export_case_data"
    EXPORT_DEPARTMENT_DATA = "export_department_data"
    EXPORT_ALL_DATA = "export_all_data"
    EXPORT_OWN_CASES = "export_own_cases"
    EXPORT_DEPARTMENT_CASES = "export_department_cases"
    EXPORT_ALL_CASES = "export_all_cases"
    EXPORT_REPORTS = "export_reports"

    CREATE_DELEGATION = "create_delegation"
    VIEW_DELEGATIONS = "view_delegations"
    MANAGE_DELEGATIONS = "manage_delegations"

    VIEW_USERS = "view_users"
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"
    MANAGE_USERS = "manage_users"

    VIEW_PERMISSIONS = "view_permissions"
    ASSIGN_PERMISSIONS = "assign_permissions"
    REVOKE_PERMISSIONS = "revoke_permissions"
    MANAGE_PERMISSIONS = "manage_permissions"

    ACCESS_DIRECTOR_DASHBOARD = "access_director_dashboard"


PERMISSION_DESCRIPTIONS: Mapping[str, str] = {
    P.VIEW_OWN_CASES: "View cases assigned to yourself",
    P.VIEW_DEPARTMENT_CASES: "View every case owned by your department",
    P.VIEW_ALL_CASES: "View every visible case",
    P.EDIT_OWN_CASES: "Edit cases assigned to yourself",
    P.EDIT_DEPARTMENT_CASES: "Edit cases owned by your department",
    P.EDIT_ALL_CASES: "Edit every visible case",
    P.EXPORT_CASE_DATA: "Export data for your own cases",
    P.EXPORT_DEPARTMENT_DATA: "Export data for your department",
    P.EXPORT_ALL_DATA: "Export data for every visible case",
    P.EXPORT_OWN_CASES: "Alias of export_case_data",
    P.EXPORT_DEPARTMENT_CASES: "Alias of export_department_data",
    P.EXPORT_ALL_CASES: "Alias of export_all_data",
    P.EXPORT_REPORTS: "Use the report export endpoints",
    P.CREATE_DELEGATION: "Delegate cases to another employee",
    P.VIEW_DELEGATIONS: "List delegations",
    P.MANAGE_DELEGATIONS: "Create, list and revoke any delegation",
    P.VIEW_USERS: "List users",
    P.CREATE_USERS: "Create users",
    P.EDIT_USERS: "Edit users",
    P.DELETE_USERS: "Delete users",
    P.MANAGE_USERS: "Full user management",
    P.VIEW_PERMISSIONS: "List permissions and grants",
    P.ASSIGN_PERMISSIONS: "Grant permissions to users",
    P.REVOKE_PERMISSIONS: "Revoke permissions from users",
    P.MANAGE_PERMISSIONS: "Full permission management",
    P.ACCESS_DIRECTOR_DASHBOARD: "Open the director dashboard",
}

ALL_PERMISSIONS: frozenset[str] = frozenset(PERMISSION_DESCRIPTIONS)


PERMISSION_IMPLICATIONS: Mapping[str, frozenset[str]] = {
    P.EXPORT_DEPARTMENT_DATA: frozenset({P.VIEW_DEPARTMENT_CASES}),
    P.EXPORT_ALL_DATA: frozenset({P.VIEW_ALL_CASES}),
    P.EXPORT_CASE_DATA: frozenset({P.VIEW_OWN_CASES}),
    P.EXPORT_DEPARTMENT_CASES: frozenset({P.EXPORT_DEPARTMENT_DATA}),
    P.EXPORT_ALL_CASES: frozenset({P.EXPORT_ALL_DATA}),
    P.EXPORT_OWN_CASES: frozenset({P.EXPORT_CASE_DATA}),
    P.EDIT_ALL_CASES: frozenset({P.VIEW_ALL_CASES}),
    P.EDIT_DEPARTMENT_CASES: frozenset({P.VIEW_DEPARTMENT_CASES}),
    P.EDIT_OWN_CASES: frozenset({P.VIEW_OWN_CASES}),
    P.MANAGE_DELEGATIONS: frozenset({P.VIEW_DELEGATIONS, P.CREATE_DELEGATION}),
    P.MANAGE_USERS: frozenset({P.VIEW_USERS, P.CREATE_USERS, P.EDIT_USERS, P.DELETE_USERS}),
    P.MANAGE_PERMISSIONS: frozenset({P.VIEW_PERMISSIONS, P.ASSIGN_PERMISSIONS, P.REVOKE_PERMISSIONS}),
}


# Non-admin roles imply capabilities only; their data breadth comes from
# explicit grants or LEGACY_ROLE_SCOPES.
_DELEGATING = frozenset({P.CREATE_DELEGATION})
_MANAGING = _DELEGATING | {P.VIEW_DELEGATIONS}
_DIRECTING = _MANAGING | {P.EXPORT_REPORTS, P.ACCESS_DIRECTOR_DASHBOARD}

ROLE_PERMISSIONS: Mapping[Role, frozenset[str]] = {
    Role.EMPLOYEE: _DELEGATING,
    Role.DEPUTY_MANAGER: _MANAGING,
    Role.MANAGER: _MANAGING | {P.EXPORT_REPORTS},
    Role.DEPUTY_DIRECTOR: _DIRECTING,
    Role.DIRECTOR: _DIRECTING,
    Role.ADMINISTRATOR: ALL_PERMISSIONS,
}


SCOPE_PERMISSIONS: Mapping[ActionCategory, Mapping[ScopeLevel, frozenset[str]]] = {
    ActionCategory.VIEW: {
        ScopeLevel.ALL: frozenset({P.VIEW_ALL_CASES}),
        ScopeLevel.DEPARTMENT: frozenset({P.VIEW_DEPARTMENT_CASES}),
        ScopeLevel.OWN: frozenset({P.VIEW_OWN_CASES}),
    },
    ActionCategory.EDIT: {
        ScopeLevel.ALL: frozenset({P.EDIT_ALL_CASES}),
        ScopeLevel.DEPARTMENT: frozenset({P.EDIT_DEPARTMENT_CASES}),
        ScopeLevel.OWN: frozenset({P.EDIT_OWN_CASES}),
    },
    # Report export honours view grants as well as export grants.
    ActionCategory.EXPORT: {
        ScopeLevel.ALL: frozenset({P.EXPORT_ALL_DATA, P.VIEW_ALL_CASES}),
        ScopeLevel.DEPARTMENT: frozenset({P.EXPORT_DEPARTMENT_DATA, P.VIEW_DEPARTMENT_CASES}),
        ScopeLevel.OWN: frozenset({P.EXPORT_CASE_DATA, P.VIEW_OWN_CASES}),
    },
}


LEGACY_ROLE_SCOPES: Mapping[Role, ScopeLevel] = {
    Role.ADMINISTRATOR: ScopeLevel.ALL,
    Role.DIRECTOR: ScopeLevel.ALL,
    Role.DEPUTY_DIRECTOR: ScopeLevel.ALL,
    Role.MANAGER: ScopeLevel.DEPARTMENT,
    Role.DEPUTY_MANAGER: ScopeLevel.DEPARTMENT,
    Role.EMPLOYEE: ScopeLevel.OWN,
}


VISIBLE_DEBT_GROUPS: tuple[int, ...] = (3, 4, 5)


@dataclass(frozen=True)
class ScopeOverride:
    """
    One row of the exception table.

    Matches when every non-empty key matches the identity. A matching override
    widens the resolved scope to `level`, but only when the normal resolution
    already reached at least `min_base_level`. A `legacy_only` override only
    widens scopes that came from the role table, never from a permission grant.
    Overrides never narrow a scope and never turn a denial into a grant.
    """

    name: str
    level: ScopeLevel = ScopeLevel.ALL
    branch_code: str | None = None
    departments: frozenset[str] = frozenset()
    roles: frozenset[Role] = frozenset()
    actions: frozenset[ActionCategory] = frozenset()
    min_base_level: ScopeLevel = ScopeLevel.OWN
    legacy_only: bool = False

    def matches(self, role: Role, department: str, branch_code: str, action: ActionCategory) -> bool:
        if self.branch_code is not None and self.branch_code != branch_code:
            return False
        if self.departments and department not in self.departments:
            return False
        if self.roles and role not in self.roles:
            return False
        if self.actions and action not in self.actions:
            return False
        return True


DEFAULT_SCOPE_OVERRIDES: tuple[ScopeOverride, ...] = (
    ScopeOverride(
        name="head-office-branch",
        branch_code="6421",
        min_base_level=ScopeLevel.DEPARTMENT,
    ),
    ScopeOverride(
        name="corporate-customers-manager",
        departments=frozenset({"KHDN"}),
        roles=frozenset({Role.MANAGER}),
        min_base_level=ScopeLevel.DEPARTMENT,
        legacy_only=True,
    ),
    ScopeOverride(
        name="risk-and-audit-departments",
        departments=frozenset({"KH&QLRR", "KH&XLRR", "KTGSNB"}),
        actions=frozenset({ActionCategory.VIEW, ActionCategory.EXPORT}),
    ),
)


def expand_permissions(granted: Iterable[str]) -> frozenset[str]:
    """Close a permission set under PERMISSION_IMPLICATIONS."""

    result = set(granted)
    pending = list(result)
    while pending:
        name = pending.pop()
        for implied in PERMISSION_IMPLICATIONS.get(name, ()):
            if implied not in result:
                result.add(implied)
                pending.append(implied)
    return frozenset(result)


def role_permissions(role: Role) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role, frozenset())
