"""
Permission Store.

Persists the named permissions and the per-user grants layered on top of a
user's role. The effective set of an identity is

    expand(role-implied ∪ explicit grants)

where `expand` closes the set under PERMISSION_IMPLICATIONS.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from debtcases.errors import NotFoundError, ValidationError
from debtcases.models.security import Permission, User
from debtcases.security.context import Identity
from debtcases.security.roles import expand_permissions, role_permissions

logger = logging.getLogger(__name__)


class PermissionStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ---- Catalogue -------------------------------------------------------------------

    def list_permissions(self) -> list[Permission]:
        return list(self.db.scalars(select(Permission).order_by(Permission.name)).all())

    def get_permission(self, name: str) -> Permission:
        permission = self.db.scalars(select(Permission).where(Permission.name == name)).first()
        if permission is None:
            raise NotFoundError(f"Permission {name!r} not found")
        return permission

    def create_permission(self, name: str, description: str | None = None) -> Permission:
        name = name.strip()
        if not name:
            raise ValidationError("Permission name is required")
        if self.db.scalars(select(Permission.id).where(Permission.name == name)).first() is not None:
            raise ValidationError(f"Permission {name!r} already exists")

        permission = Permission(name=name, description=description)
        self.db.add(permission)
        self.db.commit()
        logger.info("Permission created name=%s", name)
        return permission

    # ---- Users and grants ------------------------------------------------------------

    def get_user(self, employee_code: str) -> User:
        user = self.db.execute(
            select(User).where(User.employee_code == employee_code).options(selectinload(User.permissions))
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {employee_code!r} not found")
        return user

    def granted_permissions(self, employee_code: str) -> frozenset[str]:
        """Explicit grants only (no role-implied permissions, no implications)."""

        stmt = select(Permission.name).join(Permission.users).where(User.employee_code == employee_code)
        return frozenset(self.db.scalars(stmt).all())

    def effective_permissions(self, identity: Identity) -> frozenset[str]:
        granted = self.granted_permissions(identity.employee_code)
        return expand_permissions(role_permissions(identity.role) | granted)

    def has_permission(self, identity: Identity, name: str) -> bool:
        return name in self.effective_permissions(identity)

    def has_any_permission(self, identity: Identity, names: Iterable[str]) -> bool:
        return bool(self.effective_permissions(identity) & set(names))

    def has_all_permissions(self, identity: Identity, names: Iterable[str]) -> bool:
        return set(names) <= self.effective_permissions(identity)

    def grant(self, employee_code: str, name: str) -> User:
        user = self.get_user(employee_code)
        permission = self.get_permission(name)
        if permission not in user.permissions:
            user.permissions.append(permission)
            self.db.commit()
            logger.info("Permission granted employee_code=%s permission=%s", employee_code, name)
        return user

    def revoke(self, employee_code: str, name: str) -> User:
        user = self.get_user(employee_code)
        permission = self.get_permission(name)
        if permission in user.permissions:
            user.permissions.remove(permission)
            self.db.commit()
            logger.info("Permission revoked employee_code=%s permission=%s", employee_code, name)
        return user

    def set_user_permissions(self, employee_code: str, permission_ids: Iterable[int]) -> User:
        """
        Replace the user's whole grant set in one transaction.

        Unknown permission ids reject the whole update.
        """

        wanted = sorted(set(permission_ids))
        user = self.get_user(employee_code)

        permissions = list(self.db.scalars(select(Permission).where(Permission.id.in_(wanted))).all()) if wanted else []
        if len(permissions) != len(wanted):
            missing = sorted(set(wanted) - {p.id for p in permissions})
            raise ValidationError(f"Unknown permission ids: {missing}", details={"missing": missing})

        user.permissions = permissions
        self.db.commit()
        logger.info(
            "Permissions replaced employee_code=%s permissions=%s",
            employee_code,
            sorted(p.name for p in permissions),
        )
        return user
