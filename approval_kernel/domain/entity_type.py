"""
Per-entity-type configuration (``approval_kernel.domain.entity_type``).

Claims, budgets, contracts and invoices share one state machine.  What
differs between them is data, carried here: the start state, the SLA
window per level, the fields each operation requires, the mapping from
flow role to permission role, who may cancel or pay, and the settlement
statuses.

Architecture position: Kernel > Domain.  Pure value objects, zero I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from approval_kernel.domain.flow import DRAFT_STATUS, ApprovalFlowTemplate


class CoreStatus(str, Enum):
    """Statuses every entity type shares (pending statuses come from the flow)."""

    DRAFT = DRAFT_STATUS
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    CANCELLED = "cancelled"
    REVISION_REQUESTED = "revision_requested"


class StartState(str, Enum):
    """Where a newly created entity begins."""

    DRAFT = "draft"
    FIRST_PENDING = "first_pending"


class Operation(str, Enum):
    """Operations whose payloads may carry configured required fields."""

    CREATE = "create"
    UPDATE = "update"
    MARK_PAID = "mark_paid"


DEFAULT_ADMIN_ROLES: frozenset[str] = frozenset({"admin", "super_admin"})


@dataclass(frozen=True)
class EntityTypeConfig:
    """Configuration that parameterizes the generic workflow engine.

    Contract:
        ``sla_hours_by_level`` is indexed by step number (level 1 is the
        first element); levels past the end reuse the last value.
        ``role_permissions`` maps a flow role to the permission role a
        user must hold; unmapped roles map to themselves.
        ``payment_roles`` empty means any actor may record payment.
        ``paid_status`` None disables ``mark_paid``;
        ``acceptance_status`` None disables counterparty acceptance.
    """

    entity_type: str
    label: str
    start_state: StartState = StartState.DRAFT
    sla_hours_by_level: tuple[int, ...] = (24,)
    required_fields: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    role_permissions: Mapping[str, str] = field(default_factory=dict)
    admin_roles: frozenset[str] = DEFAULT_ADMIN_ROLES
    cancel_delegate_roles: frozenset[str] = frozenset()
    payment_roles: frozenset[str] = frozenset()
    paid_status: str | None = CoreStatus.PAID.value
    acceptance_status: str | None = None
    extra_statuses: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.sla_hours_by_level:
            raise ValueError(f"{self.entity_type}: sla_hours_by_level is empty")
        if any(h <= 0 for h in self.sla_hours_by_level):
            raise ValueError(f"{self.entity_type}: SLA hours must be positive")

    def sla_hours(self, level: int) -> int:
        """SLA window in hours for a 1-based approval level."""
        index = min(max(level, 1), len(self.sla_hours_by_level)) - 1
        return self.sla_hours_by_level[index]

    def permission_role(self, role: str) -> str:
        return self.role_permissions.get(role, role)

    def required_for(self, operation: Operation | str) -> tuple[str, ...]:
        key = operation.value if isinstance(operation, Operation) else operation
        return tuple(self.required_fields.get(key, ()))

    @property
    def starts_in_draft(self) -> bool:
        return self.start_state == StartState.DRAFT

    def status_enum(self, flow: ApprovalFlowTemplate) -> frozenset[str]:
        """Every status an entity of this type may hold under ``flow``."""
        statuses = {status.value for status in CoreStatus}
        if self.paid_status is None:
            statuses.discard(CoreStatus.PAID.value)
        else:
            statuses.add(self.paid_status)
        if self.acceptance_status is not None:
            statuses.add(self.acceptance_status)
        statuses.update(self.extra_statuses)
        statuses.update(flow.pending_statuses)
        return frozenset(statuses)
