"""Fixtures for API tests: a small organisation plus bearer-token headers."""
from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import pytest

from debtcases.models.cases import DebtCase
from debtcases.models.security import User
from debtcases.security.tokens import issue_token
from debtcases.settings import get_settings

ORG_USERS = [
    # code, role, department, branch
    ("ADM", "administrator", "IT", "6421"),
    ("DIR", "director", "BGD", "6420"),
    ("MGR", "manager", "KHCN", "6420"),
    ("HQM", "manager", "KHCN", "6421"),
    ("E1", "employee", "KHCN", "6420"),
    ("E2", "employee", "KHCN", "6420"),
    ("E3", "employee", "KHDN", "6420"),
    ("RSK", "employee", "KH&QLRR", "6420"),
]


@pytest.fixture
def org(client, api_session_factory) -> dict[str, str]:
    """Users from ORG_USERS plus one visible case per employee; returns customer_code -> case_id."""
    with api_session_factory() as db:
        for code, role, dept, branch in ORG_USERS:
            db.add(
                User(employee_code=code, username=code.lower(), fullname=f"User {code}",
                     department=dept, branch_code=branch, role=role)
            )
        db.flush()
        cases = [
            DebtCase(customer_code="KH-E1", customer_name="A", debt_group=3,
                     outstanding_debt=Decimal("100.00"), assigned_employee_code="E1"),
            DebtCase(customer_code="KH-E2", customer_name="B", debt_group=4,
                     outstanding_debt=Decimal("200.00"), assigned_employee_code="E2"),
            DebtCase(customer_code="KH-E3", customer_name="C", debt_group=5,
                     outstanding_debt=Decimal("300.00"), assigned_employee_code="E3"),
            DebtCase(customer_code="KH-HIDDEN", customer_name="D", debt_group=1,
                     outstanding_debt=Decimal("400.00"), assigned_employee_code="E1"),
        ]
        db.add_all(cases)
        db.commit()
        return {c.customer_code: c.case_id for c in cases}


@pytest.fixture
def auth(client, api_session_factory) -> Callable[[str], dict[str, str]]:
    def _headers(employee_code: str) -> dict[str, str]:
        with api_session_factory() as db:
            user = db.get(User, employee_code)
            token = issue_token(user, get_settings())
        return {"Authorization": f"Bearer {token}"}

    return _headers
