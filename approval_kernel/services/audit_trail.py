"""
AuditTrailRecorder -- builds append-only entity history.

Responsibility:
    Produces one timestamped ``AuditEntry`` per accepted transition and
    the extended trail that is written in the same statement as the
    status change.

Architecture position:
    Kernel > Services.  Pure apart from the injected Clock: the recorder
    never writes; the entity store persists what it returns.

Invariants enforced:
    - The returned trail is the existing trail plus exactly one entry at
      the end.  Existing entries are copied unchanged.
    - Failed or aborted transitions never reach the recorder's output
      into storage, so they leave no entry.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow_entity import AuditAction, AuditEntry, WorkflowEntity


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass(frozen=True)
class AuditAppend:
    """The new entry and the full trail to persist."""

    entry: AuditEntry
    trail: list[dict[str, Any]]


class AuditTrailRecorder:
    """Appends immutable entries to an entity's audit trail."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def entry(
        self,
        action: AuditAction,
        actor_id: UUID,
        details: Mapping[str, Any] | None = None,
    ) -> AuditEntry:
        return AuditEntry(
            action=action,
            performed_by=actor_id,
            performed_at=self._clock.now(),
            details=_jsonable(details or {}),
        )

    def append(
        self,
        entity: WorkflowEntity | None,
        action: AuditAction,
        actor_id: UUID,
        details: Mapping[str, Any] | None = None,
    ) -> AuditAppend:
        """Return ``entity``'s trail extended by one entry.

        ``entity`` is None for a creation, whose trail starts empty.
        """
        entry = self.entry(action, actor_id, details)
        existing = entity.audit_trail if entity is not None else ()
        trail = [e.to_json() for e in existing]
        trail.append(entry.to_json())
        return AuditAppend(entry=entry, trail=trail)

    @staticmethod
    def actions(entity: WorkflowEntity) -> list[AuditAction]:
        return [e.action for e in entity.audit_trail]
