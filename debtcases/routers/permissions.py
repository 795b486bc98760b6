from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from debtcases.db.session import get_db
from debtcases.models.security import Permission
from debtcases.schemas.security import PermissionCreate, PermissionOut
from debtcases.services.permissions import PermissionStore

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("", response_model=list[PermissionOut])
def list_permissions(db: Session = Depends(get_db)) -> list[Permission]:
    return PermissionStore(db).list_permissions()


@router.post("", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(body: PermissionCreate, db: Session = Depends(get_db)) -> Permission:
    return PermissionStore(db).create_permission(body.name, body.description)
