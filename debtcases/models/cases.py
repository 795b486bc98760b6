from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, SmallInteger, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from debtcases.clock import utcnow
from debtcases.db.base import Base
from debtcases.models.security import User


def _new_id() -> str:
    return str(uuid.uuid4())


# Lifecycle states as stored in the database.
CASE_STATES: tuple[str, ...] = (
    "Mới",
    "Đang xử lý",
    "Đang đôn đốc",
    "Đang khởi kiện",
    "Chờ hiệu lực án",
    "Đang thi hành án",
    "Chủ động XLTS",
    "Bán nợ",
    "Thuê AMC XLN",
)

CASE_TYPES: tuple[str, ...] = ("internal", "external")


class DelegationStatus(str, enum.Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class DebtCase(Base):
    __tablename__ = "debt_cases"

    case_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    customer_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Externally supplied risk bucket; only groups 3/4/5 are ever visible.
    debt_group: Mapped[int | None] = mapped_column(SmallInteger, nullable=True, index=True)
    outstanding_debt: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=0)

    state: Mapped[str] = mapped_column(String(50), nullable=False, default="Đang đôn đốc")
    case_type: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")

    assigned_employee_code: Mapped[str | None] = mapped_column(
        ForeignKey("users.employee_code", ondelete="SET NULL"), nullable=True, index=True
    )

    created_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_modified_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    officer: Mapped[User | None] = relationship(foreign_keys=[assigned_employee_code])
    delegations: Mapped[list["CaseDelegation"]] = relationship(back_populates="case")


class CaseDelegation(Base):
    __tablename__ = "case_delegations"
    __table_args__ = (
        # At most one active delegation per case, enforced by the database.
        Index(
            "uq_case_delegations_active_case",
            "case_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_case_delegations_status_expiry", "status", "expiry_date"),
    )

    delegation_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    case_id: Mapped[str] = mapped_column(ForeignKey("debt_cases.case_id", ondelete="CASCADE"), nullable=False)

    delegated_by_employee_code: Mapped[str] = mapped_column(ForeignKey("users.employee_code"), nullable=False)
    delegated_to_employee_code: Mapped[str] = mapped_column(
        ForeignKey("users.employee_code"), nullable=False, index=True
    )
    created_by_employee_code: Mapped[str] = mapped_column(ForeignKey("users.employee_code"), nullable=False)

    delegation_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # active -> revoked | expired; both terminal.
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DelegationStatus.ACTIVE.value)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    case: Mapped[DebtCase] = relationship(back_populates="delegations")
    delegator: Mapped[User] = relationship(foreign_keys=[delegated_by_employee_code])
    delegatee: Mapped[User] = relationship(foreign_keys=[delegated_to_employee_code])
