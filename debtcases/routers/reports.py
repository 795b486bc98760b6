from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from debtcases.db.session import get_db
from debtcases.schemas.cases import ReportFilters, ReportRow
from debtcases.schemas.security import AllowlistEntryIn, AllowlistOut, CanExportOut
from debtcases.security.context import Identity
from debtcases.security.dependencies import get_allowlist, get_current_identity, get_resolver, get_scope
from debtcases.security.resolver import PermissionResolver
from debtcases.security.scope import ScopeDecision
from debtcases.services.allowlist import ExportAllowlist, can_export
from debtcases.services.reports import ReportService
from debtcases.settings import Settings, get_settings

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/data", response_model=list[ReportRow])
def report_data(
    filters: ReportFilters = Depends(),
    decision: ScopeDecision = Depends(get_scope),
    db: Session = Depends(get_db),
) -> list[ReportRow]:
    return ReportService(db).rows(decision, filters)


@router.get("/export", response_model=list[ReportRow])
def export_report(
    filters: ReportFilters = Depends(),
    decision: ScopeDecision = Depends(get_scope),
    db: Session = Depends(get_db),
) -> list[ReportRow]:
    # The export gate already passed; the export scope decides which rows leave.
    return ReportService(db).rows(decision, filters)


@router.get("/can-export", response_model=CanExportOut)
def report_can_export(
    identity: Identity = Depends(get_current_identity),
    resolver: PermissionResolver = Depends(get_resolver),
    allowlist: ExportAllowlist = Depends(get_allowlist),
    settings: Settings = Depends(get_settings),
) -> CanExportOut:
    return CanExportOut(can_export=can_export(identity, resolver, allowlist, settings))


@router.get("/export-allowlist", response_model=AllowlistOut)
def get_export_allowlist(allowlist: ExportAllowlist = Depends(get_allowlist)) -> AllowlistOut:
    return AllowlistOut(employees=allowlist.list_codes())


@router.post("/export-allowlist", response_model=AllowlistOut)
def add_to_export_allowlist(
    body: AllowlistEntryIn,
    identity: Identity = Depends(get_current_identity),
    allowlist: ExportAllowlist = Depends(get_allowlist),
) -> AllowlistOut:
    return AllowlistOut(employees=allowlist.add(body.employee_code, added_by=identity.employee_code))


@router.delete("/export-allowlist/{employee_code}", response_model=AllowlistOut)
def remove_from_export_allowlist(
    employee_code: str,
    allowlist: ExportAllowlist = Depends(get_allowlist),
) -> AllowlistOut:
    return AllowlistOut(employees=allowlist.remove(employee_code))
