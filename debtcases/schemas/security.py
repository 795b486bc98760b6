from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_code: str
    username: str
    fullname: str
    department: str
    branch_code: str
    role: str
    status: str


class UserPermissionsOut(BaseModel):
    employee_code: str
    role: str
    granted: list[PermissionOut]
    effective: list[str]


class UserPermissionsUpdate(BaseModel):
    permission_ids: list[int]


class MeOut(BaseModel):
    employee_code: str
    role: str
    department: str
    branch_code: str
    status: str
    permissions: list[str]


class AllowlistEntryIn(BaseModel):
    employee_code: str = Field(min_length=1)


class AllowlistOut(BaseModel):
    employees: list[str]


class CanExportOut(BaseModel):
    can_export: bool


class HealthOut(BaseModel):
    status: str
    time: datetime
