from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from debtcases.db.session import get_db
from debtcases.schemas.security import MeOut, PermissionOut, UserPermissionsOut, UserPermissionsUpdate
from debtcases.security.context import Identity
from debtcases.security.dependencies import get_current_identity
from debtcases.security.roles import Role
from debtcases.services.permissions import PermissionStore

router = APIRouter(tags=["users"])


@router.get("/me", response_model=MeOut)
def me(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)) -> MeOut:
    permissions = PermissionStore(db).effective_permissions(identity)
    return MeOut(**identity.to_dict(), permissions=sorted(permissions))


def _user_permissions(store: PermissionStore, employee_code: str) -> UserPermissionsOut:
    user = store.get_user(employee_code)
    identity = Identity(
        employee_code=user.employee_code,
        role=Role.parse(user.role),
        department=user.department,
        branch_code=user.branch_code,
        status=user.status,
    )
    return UserPermissionsOut(
        employee_code=user.employee_code,
        role=user.role,
        granted=[PermissionOut.model_validate(p) for p in sorted(user.permissions, key=lambda p: p.name)],
        effective=sorted(store.effective_permissions(identity)),
    )


@router.get("/users/{employee_code}/permissions", response_model=UserPermissionsOut)
def get_user_permissions(employee_code: str, db: Session = Depends(get_db)) -> UserPermissionsOut:
    return _user_permissions(PermissionStore(db), employee_code)


@router.put("/users/{employee_code}/permissions", response_model=UserPermissionsOut)
def set_user_permissions(
    employee_code: str,
    body: UserPermissionsUpdate,
    db: Session = Depends(get_db),
) -> UserPermissionsOut:
    store = PermissionStore(db)
    store.set_user_permissions(employee_code, body.permission_ids)
    return _user_permissions(store, employee_code)
