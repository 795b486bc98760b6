"""Tests for the background delegation sweeper."""
from __future__ import annotations

import threading
from datetime import timedelta

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from debtcases.clock import utcnow
from debtcases.db.base import Base
from debtcases.jobs.sweeper import DelegationSweeper
from debtcases.models.cases import CaseDelegation, DebtCase, DelegationStatus
from debtcases.models.security import User


class RecordingSink:
    def __init__(self) -> None:
        self.sent = []
        self.delivered = threading.Event()

    def notify(self, target_user, message, payload):
        self.sent.append((target_user, payload))
        self.delivered.set()
        return True


def _factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def _seed_overdue(factory) -> str:
    with factory() as db:
        db.add_all(
            [
                User(employee_code="E", username="e", fullname="E", department="D", branch_code="B"),
                User(employee_code="F", username="f", fullname="F", department="D", branch_code="B"),
            ]
        )
        case = DebtCase(customer_code="KH1", customer_name="C", debt_group=3, assigned_employee_code="E")
        db.add(case)
        db.flush()
        db.add(
            CaseDelegation(
                case_id=case.case_id,
                delegated_by_employee_code="E",
                delegated_to_employee_code="F",
                created_by_employee_code="E",
                delegation_date=utcnow() - timedelta(days=2),
                expiry_date=utcnow() - timedelta(hours=1),
            )
        )
        db.commit()
        return case.case_id


def test_run_once_expires_and_is_idempotent():
    factory = _factory()
    _seed_overdue(factory)
    sink = RecordingSink()
    sweeper = DelegationSweeper(factory, sink, interval_seconds=3600)

    first = sweeper.run_once()
    second = sweeper.run_once()

    assert first.expired_count == 1
    assert first.notified_users == ["F"]
    assert second.expired_count == 0
    with factory() as db:
        statuses = db.scalars(select(CaseDelegation.status)).all()
    assert statuses == [DelegationStatus.EXPIRED.value]


def test_thread_sweeps_on_start_and_stops():
    factory = _factory()
    _seed_overdue(factory)
    sink = RecordingSink()
    sweeper = DelegationSweeper(factory, sink, interval_seconds=3600)

    sweeper.start()
    try:
        assert sink.delivered.wait(timeout=5)
        assert sweeper.running
    finally:
        sweeper.stop()

    assert not sweeper.running
    assert sink.sent[0][0] == "F"


def test_failed_tick_does_not_kill_the_loop():
    calls = []
    ticked_twice = threading.Event()

    def flaky_factory():
        calls.append(1)
        if len(calls) >= 2:
            ticked_twice.set()
        raise RuntimeError("database unavailable")

    sweeper = DelegationSweeper(flaky_factory, RecordingSink(), interval_seconds=0.01)
    sweeper.start()
    try:
        assert ticked_twice.wait(timeout=5)
        assert sweeper.running
    finally:
        sweeper.stop()
