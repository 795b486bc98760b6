"""
Delegation lifecycle.

A delegation lends *access* to a case (never ownership) from the case owner to
another employee until `expiry_date`:

    active --revoke--> revoked
    active --sweep---> expired

Both end states are terminal; rows are never deleted. Every state change is a
conditional UPDATE on `status = 'active'`, and the partial unique index on
`case_delegations(case_id) WHERE status = 'active'` keeps at most one active row
per case even under concurrent creation.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from debtcases.clock import to_naive_utc, utcnow
from debtcases.db.filters import SKIP_CASE_SCOPE
from debtcases.errors import AuthorizationError, NotFoundError, ValidationError
from debtcases.models.cases import CaseDelegation, DebtCase, DelegationStatus
from debtcases.models.security import User
from debtcases.security.context import Identity
from debtcases.security.roles import Role
from debtcases.services.notifications import DELEGATION_EXPIRED, LoggingNotificationSink, NotificationSink

logger = logging.getLogger(__name__)

MAX_DELEGATION_DAYS = 365
MAX_NOTES_LENGTH = 500

# Roles that may delegate any case on the owner's behalf.
_UNRESTRICTED_DELEGATORS = frozenset({Role.ADMINISTRATOR, Role.DIRECTOR, Role.DEPUTY_DIRECTOR})
# Roles limited to cases owned inside their own department and branch.
_UNIT_DELEGATORS = frozenset({Role.MANAGER, Role.DEPUTY_MANAGER})

_ACTIVE = DelegationStatus.ACTIVE.value


@dataclass(frozen=True)
class SweepResult:
    expired_count: int
    notified_users: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DelegationPage:
    items: list[CaseDelegation]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class DelegationManager:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        sink: NotificationSink | None = None,
    ) -> None:
        self.db = db
        self.clock = clock
        self.sink = sink or LoggingNotificationSink()

    # ---- Creation --------------------------------------------------------------------

    def create_delegations(
        self,
        actor: Identity,
        case_ids: Sequence[str],
        delegatee_code: str,
        expiry_date: datetime,
        notes: str | None = None,
        delegator_code: str | None = None,
    ) -> list[CaseDelegation]:
        """
        Delegate every case in `case_ids` to `delegatee_code` in one transaction.

        Either all rows are created or none are; the first failed check raises
        and names the offending case ids.
        """

        now = self.clock()
        case_ids = list(case_ids)
        if not case_ids:
            raise ValidationError("Case IDs array is required and cannot be empty")
        duplicates = sorted({c for c in case_ids if case_ids.count(c) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate case ids in request: {', '.join(duplicates)}", {"case_ids": duplicates})
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters")

        expiry = to_naive_utc(expiry_date)
        if expiry <= now:
            raise ValidationError("Expiry date must be in the future")
        if expiry > now + timedelta(days=MAX_DELEGATION_DAYS):
            raise ValidationError(f"Delegation cannot exceed {MAX_DELEGATION_DAYS} days")

        if not actor.is_active:
            raise AuthorizationError("Inactive users cannot delegate cases")

        delegatee = self.db.get(User, delegatee_code)
        if delegatee is None:
            raise NotFoundError(f"Delegatee {delegatee_code!r} not found")
        if not delegatee.is_active:
            raise ValidationError("Delegatee not found or inactive")

        cases = self._load_cases(case_ids)
        self._check_actor_may_delegate(actor, cases)
        delegators = self._resolve_delegators(actor, cases, delegator_code)

        for case in cases:
            if delegators[case.case_id] == delegatee_code:
                raise ValidationError("Cannot delegate to yourself", {"case_ids": [case.case_id]})

        for code in sorted(set(delegators.values())):
            delegator = self.db.get(User, code)
            if delegator is None or not delegator.is_active:
                raise ValidationError(f"Delegator {code!r} not found or inactive")

        live = self.db.scalars(
            select(CaseDelegation.case_id).where(
                CaseDelegation.case_id.in_(case_ids),
                CaseDelegation.status == _ACTIVE,
                CaseDelegation.expiry_date >= now,
            )
        ).all()
        if live:
            taken = sorted(set(live))
            raise ValidationError(f"Cases {', '.join(taken)} already have active delegations", {"case_ids": taken})

        # Overdue rows the sweeper has not reached yet still hold the unique slot.
        stale = self.db.execute(
            update(CaseDelegation)
            .where(
                CaseDelegation.case_id.in_(case_ids),
                CaseDelegation.status == _ACTIVE,
                CaseDelegation.expiry_date < now,
            )
            .values(status=DelegationStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        if stale.rowcount:
            logger.info("Expired %s overdue delegations ahead of re-delegation", stale.rowcount)

        delegations = [
            CaseDelegation(
                case_id=case.case_id,
                delegated_by_employee_code=delegators[case.case_id],
                delegated_to_employee_code=delegatee_code,
                created_by_employee_code=actor.employee_code,
                delegation_date=now,
                expiry_date=expiry,
                status=_ACTIVE,
                notes=notes,
            )
            for case in cases
        ]
        self.db.add_all(delegations)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent creation for one of these cases.
            self.db.rollback()
            logger.warning("Concurrent delegation detected case_ids=%s", case_ids)
            raise ValidationError("One or more cases already have active delegations") from e
        self.db.commit()

        logger.info(
            "Delegations created actor=%s delegatee=%s case_count=%s expiry=%s",
            actor.employee_code,
            delegatee_code,
            len(delegations),
            expiry.isoformat(),
        )
        return delegations

    def _load_cases(self, case_ids: list[str]) -> list[DebtCase]:
        found = {
            c.case_id: c
            for c in self.db.scalars(
                select(DebtCase)
                .where(DebtCase.case_id.in_(case_ids))
                .options(selectinload(DebtCase.officer))
                .execution_options(**{SKIP_CASE_SCOPE: True})
            ).all()
        }
        missing = [c for c in case_ids if c not in found]
        if missing:
            raise NotFoundError(f"Cases not found: {', '.join(missing)}", {"case_ids": missing})
        return [found[c] for c in case_ids]

    def _check_actor_may_delegate(self, actor: Identity, cases: list[DebtCase]) -> None:
        if actor.role in _UNRESTRICTED_DELEGATORS:
            return

        if actor.role in _UNIT_DELEGATORS:
            outside = [
                c.case_id
                for c in cases
                if c.officer is None
                or c.officer.department != actor.department
                or c.officer.branch_code != actor.branch_code
            ]
            if outside:
                raise AuthorizationError(
                    f"Cases {', '.join(outside)} are outside your department and branch",
                    {"case_ids": outside},
                )
            return

        not_owned = [c.case_id for c in cases if c.assigned_employee_code != actor.employee_code]
        if not_owned:
            raise AuthorizationError(
                f"Cases {', '.join(not_owned)} are not assigned to you",
                {"case_ids": not_owned},
            )

    def _resolve_delegators(
        self, actor: Identity, cases: list[DebtCase], delegator_code: str | None
    ) -> dict[str, str]:
        """
        Delegator per case: the explicit one (must own every case), otherwise
        the actor for employees and the current owner for everyone else.
        """

        if delegator_code is None and actor.role is Role.EMPLOYEE:
            delegator_code = actor.employee_code

        if delegator_code is not None:
            not_owned = [c.case_id for c in cases if c.assigned_employee_code != delegator_code]
            if not_owned:
                raise ValidationError(
                    f"Cases {', '.join(not_owned)} are not assigned to delegator",
                    {"case_ids": not_owned},
                )
            return {c.case_id: delegator_code for c in cases}

        unowned = [c.case_id for c in cases if c.assigned_employee_code is None]
        if unowned:
            raise ValidationError(f"Cases {', '.join(unowned)} have no assigned officer", {"case_ids": unowned})
        return {c.case_id: c.assigned_employee_code for c in cases}

    # ---- Revocation ------------------------------------------------------------------

    def revoke(self, delegation_id: str, actor: Identity, can_manage: bool = False) -> CaseDelegation:
        delegation = self.db.get(CaseDelegation, delegation_id)
        if delegation is None:
            raise NotFoundError("Delegation not found")
        if delegation.status != _ACTIVE:
            raise ValidationError("Only active delegations can be revoked")

        allowed = (
            actor.is_active
            and (
                actor.is_administrator
                or can_manage
                or actor.employee_code
                in (delegation.delegated_by_employee_code, delegation.created_by_employee_code)
            )
        )
        if not allowed:
            raise AuthorizationError("Unauthorized to revoke this delegation")

        result = self.db.execute(
            update(CaseDelegation)
            .where(CaseDelegation.delegation_id == delegation_id, CaseDelegation.status == _ACTIVE)
            .values(status=DelegationStatus.REVOKED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Swept or revoked between the read and the update.
            self.db.rollback()
            raise ValidationError("Only active delegations can be revoked")
        self.db.commit()
        self.db.refresh(delegation)

        logger.info(
            "Delegation revoked delegation_id=%s revoker=%s delegator=%s delegatee=%s case_id=%s",
            delegation_id,
            actor.employee_code,
            delegation.delegated_by_employee_code,
            delegation.delegated_to_employee_code,
            delegation.case_id,
        )
        return delegation

    # ---- Access ----------------------------------------------------------------------

    def can_access(self, case_id: str, identity: Identity) -> bool:
        """
        Administrator, current owner, or holder of a live delegation.

        Delegation grants access only; role-level checks still apply on top.
        """

        if not identity.is_active:
            return False
        if identity.is_administrator:
            return True

        owner = self.db.execute(
            select(DebtCase.assigned_employee_code)
            .where(DebtCase.case_id == case_id)
            .execution_options(**{SKIP_CASE_SCOPE: True})
        ).first()
        if owner is None:
            return False
        if owner[0] == identity.employee_code:
            return True

        return self._live_delegation(case_id, identity.employee_code) is not None

    def delegation_context(self, case_id: str, identity: Identity) -> CaseDelegation | None:
        """The live delegation through which `identity` reaches the case, if any."""

        return self._live_delegation(case_id, identity.employee_code)

    def _live_delegation(self, case_id: str, employee_code: str) -> CaseDelegation | None:
        return self.db.scalars(
            select(CaseDelegation).where(
                CaseDelegation.case_id == case_id,
                CaseDelegation.delegated_to_employee_code == employee_code,
                CaseDelegation.status == _ACTIVE,
                CaseDelegation.expiry_date > self.clock(),
            )
        ).first()

    # ---- Queries ---------------------------------------------------------------------

    def list_active(
        self,
        delegator_code: str | None = None,
        delegatee_code: str | None = None,
        case_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> DelegationPage:
        page = max(page, 1)
        limit = max(limit, 1)

        stmt = select(CaseDelegation).where(CaseDelegation.status == _ACTIVE)
        if delegator_code:
            stmt = stmt.where(CaseDelegation.delegated_by_employee_code == delegator_code)
        if delegatee_code:
            stmt = stmt.where(CaseDelegation.delegated_to_employee_code == delegatee_code)
        if case_id:
            stmt = stmt.where(CaseDelegation.case_id == case_id)

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        items = self.db.scalars(
            stmt.options(
                selectinload(CaseDelegation.case),
                selectinload(CaseDelegation.delegator),
                selectinload(CaseDelegation.delegatee),
            )
            .order_by(CaseDelegation.delegation_date.desc(), CaseDelegation.delegation_id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return DelegationPage(items=list(items), total=total, page=page, limit=limit)

    def delegations_for_case(self, case_id: str) -> list[CaseDelegation]:
        return list(
            self.db.scalars(
                select(CaseDelegation)
                .where(CaseDelegation.case_id == case_id, CaseDelegation.status == _ACTIVE)
                .options(selectinload(CaseDelegation.delegator), selectinload(CaseDelegation.delegatee))
                .order_by(CaseDelegation.delegation_date.desc())
            ).all()
        )

    # ---- Expiry ----------------------------------------------------------------------

    def sweep_expired(self) -> SweepResult:
        """
        Expire every overdue active delegation in one conditional UPDATE, then
        send one notification per affected delegatee.

        Running it twice in a row expires nothing the second time.
        """

        now = self.clock()
        rows = self.db.execute(
            update(CaseDelegation)
            .where(CaseDelegation.status == _ACTIVE, CaseDelegation.expiry_date < now)
            .values(status=DelegationStatus.EXPIRED.value)
            .returning(CaseDelegation.delegated_to_employee_code, CaseDelegation.case_id)
            .execution_options(synchronize_session=False)
        ).all()
        self.db.commit()

        if not rows:
            logger.debug("Delegation sweep: nothing to expire")
            return SweepResult(expired_count=0)

        by_user: dict[str, list[str]] = defaultdict(list)
        for delegatee_code, case_id in rows:
            by_user[delegatee_code].append(case_id)

        notified: list[str] = []
        expired_at = now.isoformat()
        for delegatee_code in sorted(by_user):
            case_ids = sorted(by_user[delegatee_code])
            payload = {
                "type": DELEGATION_EXPIRED,
                "expired_case_count": len(case_ids),
                "case_ids": case_ids,
                "expired_at": expired_at,
            }
            message = f"{len(case_ids)} delegated case(s) expired; access has been removed"
            try:
                delivered = self.sink.notify(delegatee_code, message, payload)
            except Exception:
                logger.exception("Expiry notification failed target_user=%s", delegatee_code)
                continue
            if not delivered:
                logger.warning("Expiry notification not delivered target_user=%s", delegatee_code)
                continue
            notified.append(delegatee_code)

        logger.info("Expired %s overdue delegations and notified %s users", len(rows), len(notified))
        return SweepResult(expired_count=len(rows), notified_users=notified)
