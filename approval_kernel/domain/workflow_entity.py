"""
Workflow entity value objects (``approval_kernel.domain.workflow_entity``).

Responsibility
--------------
Frozen snapshots of a claim / budget / contract / invoice as the engine
sees it, plus the embedded records it writes: per-role approval records,
the rejection, the revision request, the payment block and the audit
trail.  Each embedded record converts to and from the JSON shape stored
on the entity row.

Invariants enforced
-------------------
* ``approval_record`` holds at most one record per role key.
* ``audit_trail`` is an ordered tuple; it is only ever extended.
* ``current_level_deadline`` is set only while the status is pending.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _dt_to_json(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_json(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _uuid_or_none(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    return UUID(str(value))


class AuditAction(str, Enum):
    """Actions recorded on an entity's audit trail."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SUBMITTED_FOR_APPROVAL = "SUBMITTED_FOR_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    MARKED_AS_PAID = "MARKED_AS_PAID"
    CANCELLED = "CANCELLED"
    ACCEPTED = "ACCEPTED"


@dataclass(frozen=True)
class AuditEntry:
    """One immutable line of an entity's history."""

    action: AuditAction
    performed_by: UUID
    performed_at: datetime
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "performed_by": str(self.performed_by),
            "performed_at": _dt_to_json(self.performed_at),
            "details": dict(self.details),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> AuditEntry:
        return cls(
            action=AuditAction(data["action"]),
            performed_by=UUID(data["performed_by"]),
            performed_at=_dt_from_json(data["performed_at"]),
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True)
class ApprovalRecord:
    """Who approved a level, when, and with what comment."""

    approved_by: UUID
    approved_at: datetime
    comments: str
    department: str

    def to_json(self) -> dict[str, Any]:
        return {
            "approved_by": str(self.approved_by),
            "approved_at": _dt_to_json(self.approved_at),
            "comments": self.comments,
            "department": self.department,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> ApprovalRecord:
        return cls(
            approved_by=UUID(data["approved_by"]),
            approved_at=_dt_from_json(data["approved_at"]),
            comments=data.get("comments") or "",
            department=data.get("department") or "",
        )


@dataclass(frozen=True)
class Rejection:
    rejected_by: UUID
    reason: str
    level: str
    rejected_at: datetime

    def to_json(self) -> dict[str, Any]:
        return {
            "rejected_by": str(self.rejected_by),
            "reason": self.reason,
            "level": self.level,
            "rejected_at": _dt_to_json(self.rejected_at),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Rejection:
        return cls(
            rejected_by=UUID(data["rejected_by"]),
            reason=data["reason"],
            level=data["level"],
            rejected_at=_dt_from_json(data["rejected_at"]),
        )


@dataclass(frozen=True)
class RevisionRequest:
    """Suspension point recorded when an approver sends an entity back.

    ``return_to_status`` / ``return_to_level`` are where ``submit`` resumes.
    """

    requested_by: UUID
    reason: str
    return_to_status: str
    return_to_level: str
    requested_at: datetime
    comments: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "requested_by": str(self.requested_by),
            "reason": self.reason,
            "return_to_status": self.return_to_status,
            "return_to_level": self.return_to_level,
            "requested_at": _dt_to_json(self.requested_at),
            "comments": self.comments,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> RevisionRequest:
        return cls(
            requested_by=UUID(data["requested_by"]),
            reason=data["reason"],
            return_to_status=data["return_to_status"],
            return_to_level=data["return_to_level"],
            requested_at=_dt_from_json(data["requested_at"]),
            comments=data.get("comments"),
        )


@dataclass(frozen=True)
class PaymentRecord:
    """Payment block written by ``mark_paid``."""

    paid_by: UUID
    paid_at: datetime
    payment_method: str
    transaction_id: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {
            "paid_by": str(self.paid_by),
            "paid_at": _dt_to_json(self.paid_at),
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "details": dict(self.details),
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> PaymentRecord:
        return cls(
            paid_by=UUID(data["paid_by"]),
            paid_at=_dt_from_json(data["paid_at"]),
            payment_method=data["payment_method"],
            transaction_id=data["transaction_id"],
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True)
class WorkflowEntity:
    """Immutable snapshot of a workflow entity."""

    id: UUID
    entity_type: str
    department: str
    originator_id: UUID
    title: str
    status: str
    version: int
    amount: Decimal | None = None
    currency: str | None = None
    counterparty_id: UUID | None = None
    current_level_deadline: datetime | None = None
    approval_record: Mapping[str, ApprovalRecord] = field(default_factory=dict)
    rejection: Rejection | None = None
    revision_request: RevisionRequest | None = None
    payment: PaymentRecord | None = None
    payments_count: int = 0
    payload: Mapping[str, Any] = field(default_factory=dict)
    audit_trail: tuple[AuditEntry, ...] = ()
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updated_by_id: UUID | None = None

    @property
    def last_audit_action(self) -> AuditAction | None:
        return self.audit_trail[-1].action if self.audit_trail else None


def approval_record_to_json(records: Mapping[str, ApprovalRecord]) -> dict[str, Any]:
    return {role: record.to_json() for role, record in records.items()}


def approval_record_from_json(data: Mapping[str, Any] | None) -> dict[str, ApprovalRecord]:
    return {role: ApprovalRecord.from_json(raw) for role, raw in (data or {}).items()}


def audit_trail_from_json(data: list[Mapping[str, Any]] | None) -> tuple[AuditEntry, ...]:
    return tuple(AuditEntry.from_json(raw) for raw in (data or []))


def coerce_uuid(value: Any) -> UUID | None:
    """Accept UUIDs or their string form (payload ids arrive as strings)."""
    return _uuid_or_none(value)
