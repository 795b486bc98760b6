from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from debtcases.services.delegations import MAX_NOTES_LENGTH


class DebtCaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    case_id: str
    customer_code: str
    customer_name: str
    debt_group: int | None
    outstanding_debt: Decimal
    state: str
    case_type: str
    assigned_employee_code: str | None
    created_date: datetime
    last_modified_date: datetime


class CaseStateUpdate(BaseModel):
    state: str


class DelegationCreate(BaseModel):
    case_ids: list[str] = Field(min_length=1)
    delegated_to_employee_code: str
    expiry_date: datetime
    notes: str | None = Field(default=None, max_length=MAX_NOTES_LENGTH)
    delegated_by_employee_code: str | None = None


class DelegationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    delegation_id: str
    case_id: str
    delegated_by_employee_code: str
    delegated_to_employee_code: str
    created_by_employee_code: str
    delegation_date: datetime
    expiry_date: datetime
    status: str
    notes: str | None


class DelegationPageOut(BaseModel):
    delegations: list[DelegationOut]
    total: int
    page: int
    limit: int
    total_pages: int


class SweepOut(BaseModel):
    expired_count: int
    notified_users: list[str]


class ReportFilters(BaseModel):
    status: str | None = None
    case_type: str | None = None
    branch: str | None = None
    department: str | None = None
    employee_code: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class ReportRow(BaseModel):
    case_id: str
    customer_code: str
    customer_name: str
    state: str
    case_type: str
    outstanding_debt: Decimal
    assigned_employee_code: str | None
    branch_code: str | None
    department: str | None
    officer_fullname: str | None
    created_date: datetime
