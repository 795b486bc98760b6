from __future__ import annotations

import logging

AUDIT_LOGGER_NAME = "debtcases.audit"


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Uvicorn already configures handlers; this function mainly sets levels for our package.
    - Set `DEBTCASES_LOG_LEVEL=DEBUG` (or INFO/WARNING/ERROR) to control verbosity.
    - Authorization decisions go to the `debtcases.audit` child logger, which is
      pinned to INFO so grants/denials stay traceable even when the app runs at WARNING.
    """

    normalized = level.upper()
    logging.getLogger("debtcases").setLevel(normalized)
    # Ensure child loggers under debtcases.* inherit this level.
    logging.getLogger("debtcases").propagate = True

    level_no = logging.getLevelName(normalized)
    if not isinstance(level_no, int):
        level_no = logging.INFO
    logging.getLogger(AUDIT_LOGGER_NAME).setLevel(min(logging.INFO, level_no))
