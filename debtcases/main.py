from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from debtcases.db import filters as _filters  # noqa: F401  (register SQLAlchemy filters)
from debtcases.db.init_db import init_db
from debtcases.db.session import SessionLocal
from debtcases.errors import register_exception_handlers
from debtcases.jobs.sweeper import DelegationSweeper
from debtcases.logging_config import configure_app_logging
from debtcases.routers import cases, delegations, health, permissions, reports, users
from debtcases.security.config import load_security_config
from debtcases.security.dependencies import enforce_security
from debtcases.services.notifications import build_notification_sink
from debtcases.settings import get_settings

logger = logging.getLogger(__name__)


def create_app(session_factory: Callable[[], Session] | None = None) -> FastAPI:
    """
    Build the API.

    `session_factory` replaces the default `SessionLocal` (tests pass one bound
    to an in-memory database).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())

        factory = app.state.session_factory or SessionLocal
        with factory() as db:
            engine = db.get_bind()
        init_db(engine, factory, seed_demo_data=settings.seed_demo_data)
        logger.info("Database initialized (tables ensured + seed if needed)")

        app.state.notification_sink = build_notification_sink(settings.notification_webhook_url)

        sweeper = None
        if settings.sweep_enabled:
            sweeper = DelegationSweeper(factory, app.state.notification_sink, settings.sweep_interval_seconds)
            sweeper.start()

        yield

        if sweeper is not None:
            sweeper.stop()

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(title="debtcases", dependencies=[Depends(enforce_security)], lifespan=lifespan)
    app.state.session_factory = session_factory
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(cases.router)
    app.include_router(delegations.router)
    app.include_router(permissions.router)
    app.include_router(reports.router)

    return app


app = create_app()
