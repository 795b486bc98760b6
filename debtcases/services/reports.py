"""
Report rows for the report and export endpoints.

Breadth always comes from a `ScopeDecision`; caller-supplied filters can only
narrow it further.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from debtcases.clock import to_naive_utc
from debtcases.db.filters import SKIP_CASE_SCOPE
from debtcases.models.cases import DebtCase
from debtcases.models.security import User
from debtcases.schemas.cases import ReportFilters, ReportRow
from debtcases.security.scope import ScopeDecision, case_scope_criteria

logger = logging.getLogger(__name__)


class ReportService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def rows(self, decision: ScopeDecision, filters: ReportFilters) -> list[ReportRow]:
        stmt = (
            select(
                DebtCase.case_id,
                DebtCase.customer_code,
                DebtCase.customer_name,
                DebtCase.state,
                DebtCase.case_type,
                DebtCase.outstanding_debt,
                DebtCase.assigned_employee_code,
                User.branch_code,
                User.department,
                User.fullname.label("officer_fullname"),
                DebtCase.created_date,
            )
            .outerjoin(User, User.employee_code == DebtCase.assigned_employee_code)
            .where(case_scope_criteria(decision))
            .execution_options(**{SKIP_CASE_SCOPE: True})
        )

        if filters.status:
            stmt = stmt.where(DebtCase.state == filters.status)
        if filters.case_type:
            stmt = stmt.where(DebtCase.case_type == filters.case_type)
        if filters.branch:
            stmt = stmt.where(User.branch_code == filters.branch)
        if filters.department:
            stmt = stmt.where(User.department == filters.department)
        if filters.employee_code:
            stmt = stmt.where(DebtCase.assigned_employee_code == filters.employee_code)
        if filters.start_date:
            stmt = stmt.where(DebtCase.created_date >= to_naive_utc(filters.start_date))
        if filters.end_date:
            stmt = stmt.where(DebtCase.created_date <= to_naive_utc(filters.end_date))

        stmt = stmt.order_by(DebtCase.customer_code, DebtCase.case_id)
        result = [ReportRow.model_validate(dict(row._mapping)) for row in self.db.execute(stmt)]

        logger.info(
            "Report rows employee_code=%s action=%s level=%s rows=%s",
            decision.employee_code,
            decision.action.value,
            decision.level.name,
            len(result),
        )
        return result
