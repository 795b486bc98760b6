from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from debtcases.db.base import Base
from debtcases.models.cases import DebtCase
from debtcases.models.security import Permission, User
from debtcases.security.roles import PERMISSION_DESCRIPTIONS, P

logger = logging.getLogger(__name__)


def init_db(engine: Engine, session_factory: Callable[[], Session], seed_demo_data: bool = True) -> None:
    """
    Create tables, make sure the permission catalogue exists, and optionally
    seed a small deterministic demo organisation.
    """

    Base.metadata.create_all(bind=engine)

    with session_factory() as db:
        added = seed_permissions(db)
        if added:
            logger.info("Seeded %s permissions", added)
        if seed_demo_data and not _has_demo_data(db):
            _seed_demo(db)
            logger.info("Seeded demo users and cases")
        db.commit()


def seed_permissions(db: Session) -> int:
    """Insert catalogue permissions that are missing; existing rows are left alone."""

    existing = set(db.scalars(select(Permission.name)).all())
    missing = [name for name in PERMISSION_DESCRIPTIONS if name not in existing]
    db.add_all(Permission(name=name, description=PERMISSION_DESCRIPTIONS[name]) for name in missing)
    db.flush()
    return len(missing)


def _has_demo_data(db: Session) -> bool:
    return db.execute(select(User.employee_code).limit(1)).first() is not None


def _seed_demo(db: Session) -> None:
    # Users
    users = [
        User(employee_code="ADM001", username="admin", fullname="System Administrator",
             department="IT", branch_code="6421", role="administrator"),
        User(employee_code="DIR001", username="director", fullname="Branch Director",
             department="BGD", branch_code="6420", role="director"),
        User(employee_code="MGR001", username="mgr.khcn", fullname="Retail Manager",
             department="KHCN", branch_code="6420", role="manager"),
        User(employee_code="MGR002", username="mgr.khdn", fullname="Corporate Manager",
             department="KHDN", branch_code="6420", role="manager"),
        User(employee_code="EMP001", username="emp.a", fullname="Officer A",
             department="KHCN", branch_code="6420", role="employee"),
        User(employee_code="EMP002", username="emp.b", fullname="Officer B",
             department="KHCN", branch_code="6420", role="employee"),
        User(employee_code="EMP003", username="emp.c", fullname="Officer C",
             department="KHDN", branch_code="6420", role="employee"),
        User(employee_code="RSK001", username="risk.a", fullname="Risk Analyst",
             department="KH&QLRR", branch_code="6420", role="employee"),
    ]
    db.add_all(users)
    db.flush()

    # Explicit grant on top of the role
    view_dept = db.scalars(select(Permission).where(Permission.name == P.VIEW_DEPARTMENT_CASES)).one()
    users[5].permissions.append(view_dept)

    # Cases (group 2 is never visible)
    db.add_all(
        [
            DebtCase(customer_code="KH0001", customer_name="Nguyen Van A", debt_group=3,
                     outstanding_debt=Decimal("150000000.00"), assigned_employee_code="EMP001"),
            DebtCase(customer_code="KH0002", customer_name="Tran Thi B", debt_group=4,
                     outstanding_debt=Decimal("82000000.00"), assigned_employee_code="EMP001",
                     case_type="external"),
            DebtCase(customer_code="KH0003", customer_name="Le Van C", debt_group=5,
                     outstanding_debt=Decimal("230500000.00"), assigned_employee_code="EMP002"),
            DebtCase(customer_code="KH0004", customer_name="Cong ty D", debt_group=3,
                     outstanding_debt=Decimal("1200000000.00"), assigned_employee_code="EMP003"),
            DebtCase(customer_code="KH0005", customer_name="Pham Van E", debt_group=2,
                     outstanding_debt=Decimal("5000000.00"), assigned_employee_code="EMP002"),
        ]
    )
    db.flush()
