"""
Scope Filter.

Answers "at what breadth may this identity see data for this action?" and turns
the answer into a SQL predicate over `debt_cases`.

Resolution (first match wins):

1. a granted `*_all_*` permission                 -> ALL
2. a granted `*_department_*` permission          -> DEPARTMENT
3. a granted `*_own_*` permission                 -> OWN
4. legacy role table (predates the permission system)
5. nothing matched                                -> deny (None)

The exception table (`ScopeOverride`) is applied to the result of steps 1-4:
a matching override may widen the level, never narrow it, and never rescues a
denial.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import ColumnElement, and_, exists, or_, select, true

from debtcases.clock import utcnow
from debtcases.models.cases import CaseDelegation, DebtCase, DelegationStatus
from debtcases.models.security import User
from debtcases.security.context import Identity
from debtcases.security.resolver import PermissionResolver
from debtcases.security.roles import (
    DEFAULT_SCOPE_OVERRIDES,
    LEGACY_ROLE_SCOPES,
    SCOPE_PERMISSIONS,
    VISIBLE_DEBT_GROUPS,
    ActionCategory,
    ScopeLevel,
    ScopeOverride,
)

logger = logging.getLogger(__name__)

_PERMISSION_ORDER = (ScopeLevel.ALL, ScopeLevel.DEPARTMENT, ScopeLevel.OWN)


@dataclass(frozen=True)
class ScopeDecision:
    """Resolved breadth for one identity and one action category."""

    employee_code: str
    department: str
    action: ActionCategory
    level: ScopeLevel
    source: str

    @property
    def includes_delegated(self) -> bool:
        # Delegations grant access to work on a case, not export rights.
        return self.action is not ActionCategory.EXPORT


class ScopeFilter:
    def __init__(
        self,
        resolver: PermissionResolver,
        overrides: Sequence[ScopeOverride] = DEFAULT_SCOPE_OVERRIDES,
    ) -> None:
        self._resolver = resolver
        self._overrides = tuple(overrides)

    def resolve(self, identity: Identity, action: ActionCategory) -> ScopeDecision | None:
        if not identity.is_active:
            return None

        base = self._base_level(identity, action)
        if base is None:
            logger.warning(
                "Scope denied employee_code=%s role=%s action=%s",
                identity.employee_code,
                identity.role.value,
                action.value,
            )
            return None

        level, source = base
        from_role = source == "role"
        for override in self._overrides:
            if level >= override.level or level < override.min_base_level:
                continue
            if override.legacy_only and not from_role:
                continue
            if override.matches(identity.role, identity.department, identity.branch_code, action):
                level, source = override.level, f"override:{override.name}"

        logger.debug(
            "Scope resolved employee_code=%s action=%s level=%s source=%s",
            identity.employee_code,
            action.value,
            level.name,
            source,
        )
        return ScopeDecision(
            employee_code=identity.employee_code,
            department=identity.department,
            action=action,
            level=level,
            source=source,
        )

    def _base_level(self, identity: Identity, action: ActionCategory) -> tuple[ScopeLevel, str] | None:
        permissions = self._resolver.effective_permissions(identity)
        by_level = SCOPE_PERMISSIONS[action]
        for level in _PERMISSION_ORDER:
            if permissions & by_level[level]:
                return level, "permission"

        legacy = LEGACY_ROLE_SCOPES.get(identity.role)
        if legacy is not None:
            return legacy, "role"
        return None


def case_scope_criteria(decision: ScopeDecision, now: datetime | None = None) -> ColumnElement[bool]:
    """
    WHERE-clause for `debt_cases` under the given decision.

    Always includes the global debt-group visibility rule. For view/edit the
    identity also sees cases actively delegated to it.
    """

    visible = DebtCase.debt_group.in_(VISIBLE_DEBT_GROUPS)

    if decision.level is ScopeLevel.ALL:
        breadth: ColumnElement[bool] = true()
    elif decision.level is ScopeLevel.DEPARTMENT:
        breadth = DebtCase.assigned_employee_code.in_(
            select(User.employee_code).where(User.department == decision.department).correlate(None)
        )
    else:
        breadth = DebtCase.assigned_employee_code == decision.employee_code

    if decision.includes_delegated and decision.level is not ScopeLevel.ALL:
        moment = now or utcnow()
        delegated = exists().where(
            CaseDelegation.case_id == DebtCase.case_id,
            CaseDelegation.delegated_to_employee_code == decision.employee_code,
            CaseDelegation.status == DelegationStatus.ACTIVE.value,
            CaseDelegation.expiry_date > moment,
        )
        breadth = or_(breadth, delegated)

    return and_(visible, breadth)
