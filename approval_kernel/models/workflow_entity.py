"""
Module: approval_kernel.models.workflow_entity
Responsibility: ORM persistence for claims, budgets, contracts and invoices.
    One table, discriminated by ``entity_type``; the type-specific fields
    live in the ``payload`` JSON column.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - ``version`` starts at 1 and is only ever incremented.
    - ``audit_trail`` is an append-only JSON list written in the same
      statement as the status change it records (see EntityStore).
    - Embedded records (approval_record, rejection, revision_request,
      payment) are stored in their JSON shape from domain/workflow_entity.py.

Audit relevance:
    The audit trail lives and dies with the row: a permitted hard delete
    removes both.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from approval_kernel.domain.workflow_entity import (
    PaymentRecord,
    Rejection,
    RevisionRequest,
    WorkflowEntity,
    approval_record_from_json,
    audit_trail_from_json,
)


class WorkflowEntityModel(TrackedBase):
    """Persistent workflow entity.

    Guarantees:
        - ``to_dto`` returns a frozen snapshot; callers never hold a live
          ORM object across a transition.
    """

    __tablename__ = "workflow_entities"

    __table_args__ = (
        Index("ix_workflow_entities_type_status", "entity_type", "status"),
        Index("ix_workflow_entities_originator", "originator_id", "created_at"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    originator_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    counterparty_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    status: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    current_level_deadline: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    approval_record: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    rejection: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    revision_request: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    payment: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    payments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    audit_trail: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return (
            f"<WorkflowEntity {self.entity_type} {self.id} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> WorkflowEntity:
        """Convert ORM model to frozen domain snapshot."""
        return WorkflowEntity(
            id=self.id,
            entity_type=self.entity_type,
            department=self.department,
            originator_id=self.originator_id,
            counterparty_id=self.counterparty_id,
            title=self.title,
            amount=self.amount,
            currency=self.currency,
            status=self.status,
            version=self.version,
            current_level_deadline=self.current_level_deadline,
            approval_record=approval_record_from_json(self.approval_record),
            rejection=Rejection.from_json(self.rejection) if self.rejection else None,
            revision_request=(
                RevisionRequest.from_json(self.revision_request)
                if self.revision_request else None
            ),
            payment=PaymentRecord.from_json(self.payment) if self.payment else None,
            payments_count=self.payments_count,
            payload=dict(self.payload or {}),
            audit_trail=audit_trail_from_json(self.audit_trail),
            created_at=self.created_at,
            updated_at=self.updated_at,
            updated_by_id=self.updated_by_id,
        )
