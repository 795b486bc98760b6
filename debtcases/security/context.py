from __future__ import annotations

from dataclasses import dataclass

from debtcases.security.roles import Role


@dataclass(frozen=True)
class Identity:
    """
    Per-request authenticated identity.

    Built once by the auth layer from the session token (role is fixed for the
    session) plus the user's current status. Attached to `request.state.identity`.
    """

    employee_code: str
    role: Role
    department: str
    branch_code: str
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def is_administrator(self) -> bool:
        return self.role is Role.ADMINISTRATOR

    def to_dict(self) -> dict[str, object]:
        return {
            "employee_code": self.employee_code,
            "role": self.role.value,
            "department": self.department,
            "branch_code": self.branch_code,
            "status": self.status,
        }
