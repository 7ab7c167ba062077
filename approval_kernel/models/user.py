"""
Module: approval_kernel.models.user
Responsibility: ORM persistence for the identity/role source consumed by
    approver lookup.  The kernel only reads this table.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TrackedBase
from approval_kernel.domain.directory import DirectoryUser, UserStatus


class UserModel(TrackedBase):
    """A user with a role list, home department and contact channels."""

    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    roles: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserStatus.ACTIVE.value, index=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} roles={self.roles}>"

    def to_dto(self) -> DirectoryUser:
        return DirectoryUser(
            id=self.id,
            roles=tuple(self.roles or ()),
            department=self.department,
            status=UserStatus(self.status),
            email=self.email,
            phone_number=self.phone_number,
            first_name=self.first_name,
            last_name=self.last_name,
        )
