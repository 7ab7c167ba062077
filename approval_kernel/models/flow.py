"""
Module: approval_kernel.models.flow
Responsibility: ORM persistence for department approval flow templates.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value objects only.

Invariants enforced:
    - One flow per department (unique constraint on ``department``).
    - Steps are stored as an ordered JSON list; contiguity and role
      uniqueness are validated by the flow store before every write.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TrackedBase
from approval_kernel.domain.flow import ApprovalFlowTemplate, ApprovalStep


class ApprovalFlowModel(TrackedBase):
    """Persistent approval flow template, keyed by department."""

    __tablename__ = "approval_flows"

    department: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True, index=True,
    )
    steps: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<ApprovalFlow {self.department} "
            f"steps={len(self.steps or [])} active={self.is_active}>"
        )

    def to_dto(self) -> ApprovalFlowTemplate:
        """Convert ORM model to frozen domain template."""
        return ApprovalFlowTemplate(
            department=self.department,
            steps=tuple(ApprovalStep.from_dict(raw) for raw in self.steps),
            is_active=self.is_active,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalFlowTemplate) -> ApprovalFlowModel:
        return cls(
            department=dto.department,
            steps=[step.to_dict() for step in dto.steps],
            is_active=dto.is_active,
            description=dto.description,
        )
