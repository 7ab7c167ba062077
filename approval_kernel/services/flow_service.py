"""
FlowService -- department approval flow store and next-step resolver.

Responsibility:
    Persists one approval flow template per department, validates step
    lists at write time, and answers ``get_next_step`` for the workflow
    engine by delegating to the pure resolver in ``domain/flow.py``.

Architecture position:
    Kernel > Services -- imperative shell around ``domain.flow``.  Flow
    writes are administrative and never happen inside an entity
    transition.

Invariants enforced:
    - Steps are validated (contiguous from 1, unique roles, reachable
      ``next_status``) before any INSERT/UPDATE.
    - Only active flows are returned by ``get_flow``.

Failure modes:
    - FlowNotFoundError: no active flow for the department.
    - InvalidFlowDefinitionError: step list rejected at write time.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.flow import (
    ApprovalFlowTemplate,
    ApprovalStep,
    NextStep,
    resolve_next_step,
    validate_steps,
)
from approval_kernel.exceptions import FlowNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.flow import ApprovalFlowModel

logger = get_logger("services.flow")


def _coerce_step(step: ApprovalStep | Mapping[str, Any]) -> ApprovalStep:
    if isinstance(step, ApprovalStep):
        return step
    return ApprovalStep.from_dict(step)


class FlowService:
    """Flow definition store plus resolver for one session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _load(self, department: str) -> ApprovalFlowModel | None:
        return self._session.execute(
            select(ApprovalFlowModel).where(
                ApprovalFlowModel.department == department,
            )
        ).scalar_one_or_none()

    def get_flow(self, department: str) -> ApprovalFlowTemplate:
        """Return the active flow for ``department``.

        Raises:
            FlowNotFoundError: No flow registered, or the flow is inactive.
        """
        model = self._load(department)
        if model is None or not model.is_active:
            raise FlowNotFoundError(department)
        return model.to_dto()

    def get_next_step(self, department: str, current_status: str) -> NextStep | None:
        """Resolve the next step for an entity of ``department``.

        Returns None for orphaned or unknown statuses; the caller must
        refuse the transition.
        """
        flow = self.get_flow(department)
        next_step = resolve_next_step(flow, current_status)
        if next_step is None:
            logger.warning(
                "flow_resolution_failed",
                extra={"department": department, "status": current_status},
            )
        return next_step

    def status_role_table(self, department: str) -> dict[str, str]:
        return self.get_flow(department).status_role_table()

    def upsert_flow(
        self,
        department: str,
        steps: Iterable[ApprovalStep | Mapping[str, Any]],
        description: str = "",
        is_active: bool = True,
    ) -> ApprovalFlowTemplate:
        """Create or replace the flow for ``department``.

        Steps are validated before anything is written; an invalid list
        leaves the stored flow untouched.
        """
        ordered = validate_steps(department, [_coerce_step(s) for s in steps])
        raw_steps = [step.to_dict() for step in ordered]

        model = self._load(department)
        created = model is None
        if created:
            model = ApprovalFlowModel(
                department=department,
                steps=raw_steps,
                is_active=is_active,
                description=description,
            )
            self._session.add(model)
        else:
            model.steps = raw_steps
            model.is_active = is_active
            model.description = description
        self._session.flush()

        logger.info(
            "flow_upserted",
            extra={
                "department": department,
                "step_count": len(ordered),
                "flow_created": created,
                "is_active": is_active,
            },
        )
        return model.to_dto()

    def list_flows(self, include_inactive: bool = False) -> list[ApprovalFlowTemplate]:
        stmt = select(ApprovalFlowModel).order_by(ApprovalFlowModel.department)
        if not include_inactive:
            stmt = stmt.where(ApprovalFlowModel.is_active.is_(True))
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def deactivate_flow(self, department: str) -> ApprovalFlowTemplate:
        model = self._load(department)
        if model is None:
            raise FlowNotFoundError(department)
        model.is_active = False
        self._session.flush()
        logger.info("flow_deactivated", extra={"department": department})
        return model.to_dto()

    def delete_flow(self, department: str) -> None:
        model = self._load(department)
        if model is None:
            raise FlowNotFoundError(department)
        self._session.delete(model)
        self._session.flush()
        logger.info("flow_deleted", extra={"department": department})
