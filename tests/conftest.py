"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. API tests get a FastAPI app
wired to its own in-memory database through a `StaticPool`.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from debtcases.clock import utcnow
from debtcases.models.cases import DebtCase
from debtcases.models.security import User
from debtcases.security.context import Identity
from debtcases.security.roles import Role


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from debtcases.db import filters  # noqa: F401  (register the case-scope hook)
    from debtcases.db.base import Base
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    def _make(
        employee_code: str,
        role: str = "employee",
        department: str = "KHCN",
        branch_code: str = "6420",
        status: str = "active",
    ) -> User:
        user = User(
            employee_code=employee_code,
            username=employee_code.lower(),
            fullname=f"User {employee_code}",
            department=department,
            branch_code=branch_code,
            role=role,
            status=status,
        )
        db_session.add(user)
        db_session.flush()
        return user

    return _make


@pytest.fixture
def make_case(db_session) -> Callable[..., DebtCase]:
    counter = {"n": 0}

    def _make(owner: str | None, debt_group: int = 3, **kwargs) -> DebtCase:
        counter["n"] += 1
        case = DebtCase(
            customer_code=kwargs.pop("customer_code", f"KH{counter['n']:04d}"),
            customer_name=kwargs.pop("customer_name", f"Customer {counter['n']}"),
            debt_group=debt_group,
            outstanding_debt=kwargs.pop("outstanding_debt", Decimal("1000000.00")),
            assigned_employee_code=owner,
            **kwargs,
        )
        db_session.add(case)
        db_session.flush()
        return case

    return _make


def _identity_of(user: User, role: str | None = None) -> Identity:
    return Identity(
        employee_code=user.employee_code,
        role=Role(role or user.role),
        department=user.department,
        branch_code=user.branch_code,
        status=user.status,
    )


@pytest.fixture
def identity_of() -> Callable[..., Identity]:
    return _identity_of


class FrozenClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ---- API fixtures --------------------------------------------------------------------


@pytest.fixture
def api_engine():
    from debtcases.db import filters  # noqa: F401
    from debtcases.db.base import Base

    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def api_session_factory(api_engine):
    return sessionmaker(bind=api_engine, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def client(api_session_factory, monkeypatch, tmp_path):
    from debtcases.main import create_app
    from debtcases.settings import get_settings

    monkeypatch.setenv("DEBTCASES_SEED_DEMO_DATA", "false")
    monkeypatch.setenv("DEBTCASES_SWEEP_ENABLED", "false")
    monkeypatch.setenv("DEBTCASES_ALLOWLIST_PATH", str(tmp_path / "allowlist.json"))
    get_settings.cache_clear()

    app = create_app(session_factory=api_session_factory)
    with TestClient(app) as c:
        yield c

    get_settings.cache_clear()
