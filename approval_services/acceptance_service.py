"""
approval_services.acceptance_service -- Counterparty acceptance by one-time code.

Responsibility:
    For entity types with an ``acceptance_status`` (contracts), lets the
    counterparty accept an approved entity: a one-time code is issued and
    delivered to the counterparty, and a matching code moves the entity
    from ``approved`` to the acceptance status.

Architecture position:
    Services layer.  Composes the WorkflowEngine (for its atomic
    ``apply_transition``) with an injected ``ExpiringCodeCache``.

Failure modes:
    - InvalidTransitionError: type has no acceptance step, entity not
      approved, or no counterparty recorded.
    - UnauthorizedActorError: actor is not the counterparty (or, for
      code requests, the originator / an admin).
    - AcceptanceCodeError subclasses from the cache.
"""

from __future__ import annotations

from uuid import UUID

from approval_kernel.domain.entity_type import CoreStatus
from approval_kernel.domain.workflow_entity import AuditAction, WorkflowEntity
from approval_kernel.exceptions import InvalidTransitionError, UnauthorizedActorError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.utils.expiring_codes import ExpiringCodeCache
from approval_services.notifications import EventKind
from approval_services.workflow_engine import WorkflowEngine

logger = get_logger("services.acceptance")


class AcceptanceService:
    """Issues and verifies counterparty acceptance codes."""

    def __init__(self, engine: WorkflowEngine, code_cache: ExpiringCodeCache) -> None:
        self._engine = engine
        self._codes = code_cache

    def _acceptable(self, entity_id: UUID, operation: str) -> WorkflowEntity:
        config = self._engine.config
        entity = self._engine.get(entity_id)
        if config.acceptance_status is None:
            raise InvalidTransitionError(
                operation, entity.status, f"{config.label} items are not accepted by a counterparty",
            )
        if entity.status != CoreStatus.APPROVED.value:
            raise InvalidTransitionError(
                operation, entity.status, "only approved items can be accepted",
            )
        if entity.counterparty_id is None:
            raise InvalidTransitionError(operation, entity.status, "no counterparty recorded")
        return entity

    def request_acceptance_code(self, entity_id: UUID, actor_id: UUID) -> str:
        """Issue a code and deliver it to the counterparty.

        Returns the code for the caller's own delivery records; it must not
        be echoed back to the requester.
        """
        with LogContext.bind(actor_id=actor_id, entity_id=entity_id):
            entity = self._acceptable(entity_id, "request_acceptance_code")
            lookup = self._engine.lookup
            actor = lookup.get_user(actor_id)
            allowed = (
                actor_id in (entity.counterparty_id, entity.originator_id)
                or actor.has_any_role(self._engine.config.admin_roles)
            )
            if not allowed or not actor.is_active:
                raise UnauthorizedActorError(str(actor_id), "request_acceptance_code")

            counterparty = lookup.get_user(entity.counterparty_id)
            code = self._codes.issue(str(entity.id))
            logger.info(
                "acceptance_code_issued",
                extra={"ttl_seconds": self._codes.ttl_seconds},
            )

        self._engine.dispatcher.notify(
            EventKind.ACCEPTANCE_CODE,
            entity,
            [counterparty],
            {"code": code, "expires_in_minutes": self._codes.ttl_seconds // 60},
            label=self._engine.config.label,
        )
        return code

    def accept(self, entity_id: UUID, actor_id: UUID, code: str) -> WorkflowEntity:
        """Verify ``code`` and move the entity to its acceptance status."""
        with LogContext.bind(actor_id=actor_id, entity_id=entity_id):
            try:
                entity = self._acceptable(entity_id, "accept")
                if actor_id != entity.counterparty_id:
                    raise UnauthorizedActorError(str(actor_id), "accept")
                actor = self._engine.lookup.get_user(actor_id)

                self._codes.verify(str(entity.id), code, consume=False)

                updated = self._engine.apply_transition(
                    entity,
                    AuditAction.ACCEPTED,
                    actor_id,
                    {
                        "status": self._engine.config.acceptance_status,
                        "current_level_deadline": None,
                    },
                    {"accepted_by": str(actor_id)},
                )
                self._codes.discard(str(entity.id))
            except Exception:
                self._engine.rollback()
                raise

        self._engine.notify_originator(
            EventKind.ACCEPTED, updated, {"actor_name": actor.full_name},
        )
        return updated
