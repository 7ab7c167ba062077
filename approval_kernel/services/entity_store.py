"""
EntityStore -- atomic single-row persistence for workflow entities.

Responsibility:
    The persistence contract the workflow engine consumes: point reads,
    filtered reads, insert, compare-and-swap update and conditional
    delete.  Every mutation is exactly one SQL statement.

Architecture position:
    Kernel > Services.  Session-scoped; the caller owns the transaction
    boundary (commit / rollback).

Invariants enforced:
    - ``find_and_update`` is ``UPDATE ... WHERE id = ? AND status = ? AND
      version = ?``.  If another transition committed first, zero rows
      match and StaleEntityStateError is raised; nothing is written.
    - ``delete`` is likewise conditional on the status read by the caller
      and on ``payments_count = 0``.
    - Returned values are frozen snapshots, never live ORM objects.

Failure modes:
    - EntityNotFoundError: id unknown (on get / lost row).
    - StaleEntityStateError: compare-and-swap lost the race.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow_entity import WorkflowEntity
from approval_kernel.exceptions import EntityNotFoundError, StaleEntityStateError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.workflow_entity import WorkflowEntityModel

logger = get_logger("services.entity_store")

_FILTERABLE = frozenset({
    "entity_type",
    "department",
    "originator_id",
    "counterparty_id",
    "status",
})


class EntityStore:
    """Single-statement reads and writes against ``workflow_entities``."""

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def _fetch(self, entity_id: UUID) -> WorkflowEntityModel | None:
        return self._session.execute(
            select(WorkflowEntityModel)
            .where(WorkflowEntityModel.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_by_id(self, entity_id: UUID) -> WorkflowEntity | None:
        model = self._fetch(entity_id)
        return model.to_dto() if model is not None else None

    def get(self, entity_id: UUID, entity_type: str | None = None) -> WorkflowEntity:
        """Return the entity or raise EntityNotFoundError.

        When ``entity_type`` is given, an entity of another type is
        reported as not found.
        """
        entity = self.find_by_id(entity_id)
        if entity is None or (entity_type and entity.entity_type != entity_type):
            raise EntityNotFoundError(str(entity_id), entity_type)
        return entity

    def _filtered(self, filters: Mapping[str, Any]):
        unknown = set(filters) - _FILTERABLE - {"status__in"}
        if unknown:
            raise ValueError(f"Unsupported entity filter(s): {sorted(unknown)}")
        stmt = select(WorkflowEntityModel)
        for key, value in filters.items():
            if key == "status__in":
                stmt = stmt.where(WorkflowEntityModel.status.in_(list(value)))
            else:
                stmt = stmt.where(getattr(WorkflowEntityModel, key) == value)
        return stmt

    def find_one(self, **filters: Any) -> WorkflowEntity | None:
        stmt = self._filtered(filters).order_by(WorkflowEntityModel.created_at).limit(1)
        model = self._session.execute(stmt).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def find_all(self, **filters: Any) -> list[WorkflowEntity]:
        stmt = self._filtered(filters).order_by(
            WorkflowEntityModel.created_at.desc(), WorkflowEntityModel.id,
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def insert(self, values: Mapping[str, Any]) -> WorkflowEntity:
        """Insert a new entity row at version 1."""
        now = self._clock.now()
        model = WorkflowEntityModel(
            id=values.get("id") or uuid4(),
            version=1,
            created_at=now,
            updated_at=now,
            **{k: v for k, v in values.items() if k not in ("id", "version")},
        )
        self._session.add(model)
        self._session.flush()
        logger.debug(
            "entity_inserted",
            extra={"entity_id": str(model.id), "status": model.status},
        )
        return model.to_dto()

    def find_and_update(
        self,
        entity_id: UUID,
        expected_status: str,
        expected_version: int,
        values: Mapping[str, Any],
    ) -> WorkflowEntity:
        """Apply ``values`` iff the row still has the expected status/version.

        Returns the updated snapshot.

        Raises:
            EntityNotFoundError: The row no longer exists.
            StaleEntityStateError: The row moved on since it was read.
        """
        patch = dict(values)
        patch.setdefault("updated_at", self._clock.now())
        result = self._session.execute(
            update(WorkflowEntityModel)
            .where(
                WorkflowEntityModel.id == entity_id,
                WorkflowEntityModel.status == expected_status,
                WorkflowEntityModel.version == expected_version,
            )
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if self._fetch(entity_id) is None:
                raise EntityNotFoundError(str(entity_id))
            logger.warning(
                "entity_cas_conflict",
                extra={
                    "entity_id": str(entity_id),
                    "expected_status": expected_status,
                    "expected_version": expected_version,
                },
            )
            raise StaleEntityStateError(str(entity_id), expected_status, expected_version)

        model = self._fetch(entity_id)
        if model is None:
            raise EntityNotFoundError(str(entity_id))
        return model.to_dto()

    def delete(self, entity_id: UUID, expected_status: str) -> None:
        """Hard-delete the row iff its status is unchanged and it has no payments."""
        result = self._session.execute(
            delete(WorkflowEntityModel)
            .where(
                WorkflowEntityModel.id == entity_id,
                WorkflowEntityModel.status == expected_status,
                WorkflowEntityModel.payments_count == 0,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._fetch(entity_id)
            if current is None:
                raise EntityNotFoundError(str(entity_id))
            raise StaleEntityStateError(str(entity_id), expected_status, current.version)
