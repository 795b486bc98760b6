from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from debtcases.db.session import get_db
from debtcases.errors import AuthorizationError, NotFoundError, ValidationError
from debtcases.models.cases import CASE_STATES, DebtCase
from debtcases.schemas.cases import CaseStateUpdate, DebtCaseOut
from debtcases.security.context import Identity
from debtcases.security.decorators import scoped
from debtcases.security.dependencies import get_current_identity, get_delegation_manager
from debtcases.security.roles import ActionCategory
from debtcases.services.delegations import DelegationManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["cases"])


@router.get("", response_model=list[DebtCaseOut])
@scoped(ActionCategory.VIEW)
def list_cases(
    db: Session = Depends(get_db),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
) -> list[DebtCase]:
    # Scoped transparently via debtcases/db/filters.py.
    stmt = select(DebtCase).order_by(DebtCase.customer_code, DebtCase.case_id).offset(offset).limit(limit)
    return list(db.scalars(stmt).all())


@router.get("/{case_id}", response_model=DebtCaseOut)
@scoped(ActionCategory.VIEW)
def get_case(case_id: str, db: Session = Depends(get_db)) -> DebtCase:
    case = db.scalars(select(DebtCase).where(DebtCase.case_id == case_id)).first()
    if case is None:
        # Cases outside the caller's scope look exactly like missing ones.
        raise NotFoundError("Case not found")
    return case


@router.patch("/{case_id}/state", response_model=DebtCaseOut)
@scoped(ActionCategory.EDIT)
def update_case_state(
    case_id: str,
    body: CaseStateUpdate,
    identity: Identity = Depends(get_current_identity),
    delegations: DelegationManager = Depends(get_delegation_manager),
    db: Session = Depends(get_db),
) -> DebtCase:
    if body.state not in CASE_STATES:
        raise ValidationError(f"Unknown case state {body.state!r}", {"allowed": list(CASE_STATES)})

    # Edit scope (own, department or all, plus live delegations) hides the rest.
    case = db.scalars(select(DebtCase).where(DebtCase.case_id == case_id)).first()
    if case is None:
        raise NotFoundError("Case not found")
    if not delegations.can_access(case_id, identity):
        raise AuthorizationError("You do not have access to this case.")

    via = delegations.delegation_context(case_id, identity)
    old_state = case.state
    case.state = body.state
    db.commit()
    db.refresh(case)

    logger.info(
        "Case state changed case_id=%s by=%s from=%s to=%s via_delegation=%s",
        case_id,
        identity.employee_code,
        old_state,
        body.state,
        via.delegation_id if via is not None else None,
    )
    return case
