"""
Pure domain layer.

Immutable value objects and pure functions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time is read only through an injected Clock.
"""

from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.directory import DirectoryUser, UserDirectory, UserStatus
from approval_kernel.domain.entity_type import (
    DEFAULT_ADMIN_ROLES,
    CoreStatus,
    EntityTypeConfig,
    Operation,
    StartState,
)
from approval_kernel.domain.flow import (
    DRAFT_STATUS,
    TERMINAL_NEXT_STATUS,
    ApprovalFlowTemplate,
    ApprovalStep,
    NextStep,
    pending_status,
    resolve_next_step,
    validate_steps,
)
from approval_kernel.domain.workflow_entity import (
    ApprovalRecord,
    AuditAction,
    AuditEntry,
    PaymentRecord,
    Rejection,
    RevisionRequest,
    WorkflowEntity,
)

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Identity
    "DirectoryUser",
    "UserDirectory",
    "UserStatus",
    # Entity types
    "DEFAULT_ADMIN_ROLES",
    "CoreStatus",
    "EntityTypeConfig",
    "Operation",
    "StartState",
    # Flows
    "DRAFT_STATUS",
    "TERMINAL_NEXT_STATUS",
    "ApprovalFlowTemplate",
    "ApprovalStep",
    "NextStep",
    "pending_status",
    "resolve_next_step",
    "validate_steps",
    # Entities
    "ApprovalRecord",
    "AuditAction",
    "AuditEntry",
    "PaymentRecord",
    "Rejection",
    "RevisionRequest",
    "WorkflowEntity",
]
