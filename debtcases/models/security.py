from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from debtcases.clock import utcnow
from debtcases.db.base import Base


# Composite primary key: a (user, permission) pair can only be granted once.
user_permissions = Table(
    "user_permissions",
    Base.metadata,
    Column("employee_code", ForeignKey("users.employee_code", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=utcnow, nullable=False),
)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    users: Mapped[list["User"]] = relationship(
        secondary=user_permissions,
        back_populates="permissions",
    )


class User(Base):
    __tablename__ = "users"

    employee_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    fullname: Mapped[str] = mapped_column(String(150), nullable=False)

    department: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    branch_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # One of debtcases.security.roles.Role; stored as its string value.
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    permissions: Mapped[list[Permission]] = relationship(
        secondary=user_permissions,
        back_populates="users",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ReportExportAllowlistEntry(Base):
    """Administrative override list: employees allowed to export reports."""

    __tablename__ = "report_export_allowlist"

    employee_code: Mapped[str] = mapped_column(String(50), primary_key=True)
    added_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    added_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
