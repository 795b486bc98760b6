from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from debtcases.models.cases import CaseDelegation
from debtcases.schemas.cases import DelegationCreate, DelegationOut, DelegationPageOut, SweepOut
from debtcases.security.context import Identity
from debtcases.security.decorators import require_access
from debtcases.security.dependencies import get_current_identity, get_delegation_manager, get_resolver
from debtcases.security.resolver import PermissionResolver
from debtcases.security.roles import P
from debtcases.services.delegations import DelegationManager

router = APIRouter(prefix="/delegations", tags=["delegations"])


@router.post("", response_model=list[DelegationOut], status_code=status.HTTP_201_CREATED)
@require_access(permissions=[P.CREATE_DELEGATION])
def create_delegations(
    body: DelegationCreate,
    identity: Identity = Depends(get_current_identity),
    manager: DelegationManager = Depends(get_delegation_manager),
) -> list[CaseDelegation]:
    return manager.create_delegations(
        identity,
        body.case_ids,
        body.delegated_to_employee_code,
        body.expiry_date,
        notes=body.notes,
        delegator_code=body.delegated_by_employee_code,
    )


@router.get("", response_model=DelegationPageOut)
def list_delegations(
    delegator: str | None = None,
    delegatee: str | None = None,
    case_id: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    manager: DelegationManager = Depends(get_delegation_manager),
) -> DelegationPageOut:
    result = manager.list_active(delegator, delegatee, case_id, page=page, limit=limit)
    return DelegationPageOut(
        delegations=[DelegationOut.model_validate(d) for d in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/case/{case_id}", response_model=list[DelegationOut])
def case_delegations(
    case_id: str,
    manager: DelegationManager = Depends(get_delegation_manager),
) -> list[CaseDelegation]:
    return manager.delegations_for_case(case_id)


@router.patch("/{delegation_id}/revoke", response_model=DelegationOut)
def revoke_delegation(
    delegation_id: str,
    identity: Identity = Depends(get_current_identity),
    manager: DelegationManager = Depends(get_delegation_manager),
    resolver: PermissionResolver = Depends(get_resolver),
) -> CaseDelegation:
    can_manage = P.MANAGE_DELEGATIONS in resolver.effective_permissions(identity)
    return manager.revoke(delegation_id, identity, can_manage=can_manage)


@router.post("/expire-overdue", response_model=SweepOut)
def expire_overdue(manager: DelegationManager = Depends(get_delegation_manager)) -> SweepOut:
    result = manager.sweep_expired()
    return SweepOut(expired_count=result.expired_count, notified_users=result.notified_users)
