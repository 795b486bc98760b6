from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from debtcases.db.filters import REQUEST_STATE
from debtcases.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency.

    - Existing code that does `db.scalars(select(DebtCase))` is scoped to the
      caller's visible cases via the `do_orm_execute` hook in debtcases/db/filters.py.
    - The hook reads the scope decision from `request.state` at execute time, so it
      sees the decision the global security dependency stores after this session
      was opened (FastAPI may hand the same session to both).
    """

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    db = factory()
    try:
        db.info[REQUEST_STATE] = request.state
        yield db
    finally:
        db.close()
