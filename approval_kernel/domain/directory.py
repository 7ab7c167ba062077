"""
Identity / role source contract (``approval_kernel.domain.directory``).

The user directory is an external collaborator.  The kernel only needs
``find_by_id`` and a bulk ``find`` for approver resolution; this module
defines the value object it returns and the structural protocol any
directory implementation must satisfy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class DirectoryUser:
    """A user as seen by the approval engine."""

    id: UUID
    roles: tuple[str, ...]
    department: str | None
    status: UserStatus
    email: str | None = None
    phone_number: str | None = None
    first_name: str = ""
    last_name: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def full_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or (self.email or str(self.id))

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: frozenset[str] | set[str]) -> bool:
        return any(r in roles for r in self.roles)


@runtime_checkable
class UserDirectory(Protocol):
    """Structural contract for the identity source."""

    def find_by_id(self, user_id: UUID) -> DirectoryUser | None:
        ...

    def find(
        self,
        *,
        role: str,
        status: UserStatus = UserStatus.ACTIVE,
        department: str | None = None,
    ) -> list[DirectoryUser]:
        ...
