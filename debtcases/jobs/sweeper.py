"""
Background delegation expiry.

Runs `DelegationManager.sweep_expired()` on a fixed interval in a daemon
thread, each tick with its own session. A failed tick is logged and the next
tick retries; the loop itself never dies on an exception.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from sqlalchemy.orm import Session

from debtcases.services.delegations import DelegationManager, SweepResult
from debtcases.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


class DelegationSweeper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        sink: NotificationSink,
        interval_seconds: float = 3600,
    ) -> None:
        self.session_factory = session_factory
        self.sink = sink
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="DelegationSweeper")
        self._thread.start()
        logger.info("Delegation sweeper started interval_seconds=%s", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Delegation sweeper stopped")

    def run_once(self) -> SweepResult:
        with self.session_factory() as db:
            return DelegationManager(db, sink=self.sink).sweep_expired()

    def _loop(self) -> None:
        # First tick right away so overdue rows from downtime are cleared on boot.
        while not self._stop.is_set():
            try:
                result = self.run_once()
                if result.expired_count:
                    logger.info(
                        "Sweep tick expired=%s notified=%s", result.expired_count, len(result.notified_users)
                    )
                else:
                    logger.debug("Sweep tick: no delegations to expire")
            except Exception:
                logger.exception("Delegation sweep failed; retrying next tick")
            self._stop.wait(self.interval_seconds)
