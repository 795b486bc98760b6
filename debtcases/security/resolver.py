"""
Role/Permission Resolver.

Single decision point for "may this identity perform this action?":

1. Role allowlist: if the identity's role is allowed, grant without touching
   the database.
2. Otherwise load the effective permission set and compare it against the
   required permissions, with "any-of" (default) or "all-of" semantics.
3. Any failure while loading permissions counts as "no permissions".

Every decision is written to the `debtcases.audit` logger.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Literal

from sqlalchemy.orm import Session

from debtcases.errors import AuthorizationError
from debtcases.logging_config import AUDIT_LOGGER_NAME
from debtcases.security.context import Identity
from debtcases.security.roles import Role
from debtcases.services.permissions import PermissionStore

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

MatchMode = Literal["any", "all"]

PermissionLoader = Callable[[Identity], Iterable[str]]


class PermissionResolver:
    """
    Per-request resolver. Effective permissions are loaded at most once per
    instance; a failed load is not cached, so a later call may retry.
    """

    def __init__(self, load_permissions: PermissionLoader) -> None:
        self._load_permissions = load_permissions
        self._cache: dict[str, frozenset[str]] = {}

    @classmethod
    def for_session(cls, db: Session) -> PermissionResolver:
        return cls(PermissionStore(db).effective_permissions)

    def effective_permissions(self, identity: Identity) -> frozenset[str]:
        cached = self._cache.get(identity.employee_code)
        if cached is not None:
            return cached
        try:
            permissions = frozenset(self._load_permissions(identity))
        except Exception:
            logger.error(
                "Permission lookup failed; treating as no permissions employee_code=%s",
                identity.employee_code,
                exc_info=True,
            )
            return frozenset()
        self._cache[identity.employee_code] = permissions
        return permissions

    def resolve(
        self,
        identity: Identity,
        required_permissions: Iterable[str] = (),
        allowed_roles: Iterable[Role] = (),
        match: MatchMode = "any",
        action: str | None = None,
    ) -> bool:
        required = frozenset(required_permissions)
        roles = frozenset(allowed_roles)
        action_name = action or ",".join(sorted(required)) or "-"

        if not identity.is_active:
            self._audit(identity, action_name, False, "inactive")
            return False

        if identity.role in roles:
            self._audit(identity, action_name, True, "role")
            return True

        if not required:
            self._audit(identity, action_name, False, "role-not-allowed")
            return False

        permissions = self.effective_permissions(identity)
        if match == "all":
            granted = required <= permissions
        else:
            granted = bool(required & permissions)

        self._audit(identity, action_name, granted, f"permission-{match}" if granted else "denied")
        return granted

    def require(
        self,
        identity: Identity,
        required_permissions: Iterable[str] = (),
        allowed_roles: Iterable[Role] = (),
        match: MatchMode = "any",
        action: str | None = None,
        message: str = "You do not have permission to access this function.",
    ) -> None:
        if not self.resolve(identity, required_permissions, allowed_roles, match=match, action=action):
            raise AuthorizationError(message)

    def _audit(self, identity: Identity, action: str, granted: bool, reason: str) -> None:
        log = audit_logger.info if granted else audit_logger.warning
        log(
            "authz decision=%s employee_code=%s role=%s action=%s reason=%s",
            "grant" if granted else "deny",
            identity.employee_code,
            identity.role.value,
            action,
            reason,
        )
