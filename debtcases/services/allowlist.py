"""
Report export allowlist and the export gate.

The allowlist is an administrative override: being on it answers "may this
person export at all?". It never changes *what* gets exported; that is still
the Scope Filter's decision.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from debtcases.errors import ValidationError
from debtcases.models.security import ReportExportAllowlistEntry
from debtcases.security.context import Identity
from debtcases.security.resolver import PermissionResolver
from debtcases.security.roles import P
from debtcases.settings import Settings

logger = logging.getLogger(__name__)


class ExportAllowlist(Protocol):
    def is_allowed(self, employee_code: str) -> bool: ...

    def add(self, employee_code: str, added_by: str | None = None) -> list[str]: ...

    def remove(self, employee_code: str) -> list[str]: ...

    def list_codes(self) -> list[str]: ...


def _clean(employee_code: str) -> str:
    if not isinstance(employee_code, str) or not employee_code.strip():
        raise ValidationError("Invalid employee code")
    return employee_code.strip()


class SqlExportAllowlist:
    """Allowlist stored in the `report_export_allowlist` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def is_allowed(self, employee_code: str) -> bool:
        if not employee_code:
            return False
        return self.db.get(ReportExportAllowlistEntry, employee_code) is not None

    def add(self, employee_code: str, added_by: str | None = None) -> list[str]:
        code = _clean(employee_code)
        if self.db.get(ReportExportAllowlistEntry, code) is None:
            self.db.add(ReportExportAllowlistEntry(employee_code=code, added_by=added_by))
            self.db.commit()
            logger.info("Export allowlist add employee_code=%s added_by=%s", code, added_by)
        return self.list_codes()

    def remove(self, employee_code: str) -> list[str]:
        code = _clean(employee_code)
        entry = self.db.get(ReportExportAllowlistEntry, code)
        if entry is not None:
            self.db.delete(entry)
            self.db.commit()
            logger.info("Export allowlist remove employee_code=%s", code)
        return self.list_codes()

    def list_codes(self) -> list[str]:
        stmt = select(ReportExportAllowlistEntry.employee_code).order_by(ReportExportAllowlistEntry.added_at)
        return list(self.db.scalars(stmt).all())


class JsonFileExportAllowlist:
    """
    Allowlist stored as a JSON array of employee codes.

    A missing or unreadable file reads as an empty list; writes create the
    parent directory and replace the file atomically.
    """

    _lock = threading.Lock()

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Export allowlist file unreadable, treating as empty path=%s", self.path)
            return []
        if not isinstance(parsed, list):
            return []
        return [v for v in parsed if isinstance(v, str)]

    def _write(self, codes: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(codes, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def is_allowed(self, employee_code: str) -> bool:
        return bool(employee_code) and employee_code in self._read()

    def add(self, employee_code: str, added_by: str | None = None) -> list[str]:
        code = _clean(employee_code)
        with self._lock:
            codes = self._read()
            if code not in codes:
                codes.append(code)
                self._write(codes)
                logger.info("Export allowlist add employee_code=%s added_by=%s", code, added_by)
        return codes

    def remove(self, employee_code: str) -> list[str]:
        code = _clean(employee_code)
        with self._lock:
            codes = [c for c in self._read() if c != code]
            self._write(codes)
        logger.info("Export allowlist remove employee_code=%s", code)
        return codes

    def list_codes(self) -> list[str]:
        return self._read()


def build_allowlist(settings: Settings, db: Session) -> ExportAllowlist:
    if settings.allowlist_backend == "file":
        return JsonFileExportAllowlist(settings.resolved_allowlist_path())
    return SqlExportAllowlist(db)


def can_export(
    identity: Identity,
    resolver: PermissionResolver,
    allowlist: ExportAllowlist,
    settings: Settings,
) -> bool:
    """
    Export gate.

    Allowed when the role is one of the configured export roles, the employee
    is listed in settings, the identity holds `export_reports`, or the employee
    is on the allowlist.
    """

    if not identity.is_active:
        return False
    if identity.role.value in settings.report_export_allowed_roles:
        return True
    if identity.employee_code in settings.report_export_allowed_employees:
        return True
    if P.EXPORT_REPORTS in resolver.effective_permissions(identity):
        return True
    return allowlist.is_allowed(identity.employee_code)
