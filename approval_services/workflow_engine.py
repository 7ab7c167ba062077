"""
approval_services.workflow_engine -- Generic entity state machine.

Responsibility:
    One transition engine for claims, budgets, contracts and invoices.
    Each instance is parameterized by an ``EntityTypeConfig``; nothing in
    here is specific to an entity type.

Architecture position:
    Services layer.  Composes the kernel: FlowService (resolution),
    ApproverLookup (authorization and approver resolution),
    AuditTrailRecorder (history) and EntityStore (atomic writes), plus the
    NotificationDispatcher.

Invariants enforced:
    - Read, check, write: every validation and resolution (including
      approver resolution for the target level) completes before the one
      compare-and-swap UPDATE.  A failure leaves no mutation and no
      audit entry.
    - The acting role is looked up in the flow's status -> step table,
      never parsed out of the status string.
    - An approval record is written once per role and never overwritten.
    - ``current_level_deadline`` is set only when entering a pending
      status and cleared on every other transition.
    - Notifications run after commit and can never undo a transition.

Failure modes:
    - EntityNotFoundError / FlowNotFoundError / UserNotFoundError.
    - InvalidTransitionError (and subclasses) for wrong-status calls.
    - UnauthorizedActorError when the actor lacks the required role.
    - NoApproversAvailableError before any write.
    - StaleEntityStateError when a concurrent transition won the race.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.directory import DirectoryUser
from approval_kernel.domain.entity_type import CoreStatus, EntityTypeConfig, Operation
from approval_kernel.domain.flow import (
    DRAFT_STATUS,
    ApprovalFlowTemplate,
    ApprovalStep,
    resolve_next_step,
)
from approval_kernel.domain.workflow_entity import (
    ApprovalRecord,
    AuditAction,
    PaymentRecord,
    Rejection,
    RevisionRequest,
    WorkflowEntity,
    approval_record_to_json,
    coerce_uuid,
)
from approval_kernel.exceptions import (
    DeletionNotAllowedError,
    FlowNotFoundError,
    FlowResolutionError,
    InvalidReturnStatusError,
    InvalidTransitionError,
    MissingRequiredFieldError,
    UnauthorizedActorError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.approver_lookup import ApproverLookup, SqlUserDirectory
from approval_kernel.services.audit_trail import AuditTrailRecorder
from approval_kernel.services.entity_store import EntityStore
from approval_kernel.services.flow_service import FlowService
from approval_services.notifications import EventKind, NotificationDispatcher

logger = get_logger("services.workflow_engine")

TRACE_TYPE_ENTITY_TRANSITION = "ENTITY_TRANSITION"

SUBMITTABLE_STATUSES = frozenset({DRAFT_STATUS, CoreStatus.REVISION_REQUESTED.value})
EDITABLE_STATUSES = SUBMITTABLE_STATUSES
DELETABLE_STATUSES = frozenset({DRAFT_STATUS, CoreStatus.CANCELLED.value})
UPDATABLE_FIELDS = frozenset({"title", "amount", "currency", "counterparty_id", "payload"})
BASE_PAYMENT_FIELDS = ("payment_method", "transaction_id")


def _missing(values: Mapping[str, Any], required: tuple[str, ...]) -> list[str]:
    return [name for name in required if values.get(name) in (None, "")]


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class WorkflowEngine:
    """State machine for one entity type over one session."""

    def __init__(
        self,
        session: Session,
        config: EntityTypeConfig,
        *,
        flow_service: FlowService | None = None,
        approver_lookup: ApproverLookup | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._flows = flow_service or FlowService(session)
        self._lookup = approver_lookup or ApproverLookup(SqlUserDirectory(session))
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._audit = AuditTrailRecorder(self._clock)
        self._store = EntityStore(session, self._clock)

    @property
    def config(self) -> EntityTypeConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def flows(self) -> FlowService:
        return self._flows

    @property
    def lookup(self) -> ApproverLookup:
        return self._lookup

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    def rollback(self) -> None:
        self._session.rollback()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(
        self,
        name: str,
        actor_id: UUID,
        entity_id: UUID | None = None,
    ) -> Iterator[None]:
        """Bind log context; roll back the session if the operation fails."""
        with LogContext.bind(
            actor_id=actor_id,
            entity_type=self._config.entity_type,
            entity_id=entity_id,
        ):
            try:
                yield
            except Exception as exc:
                self._session.rollback()
                logger.info(
                    "entity_operation_refused",
                    extra={
                        "operation": name,
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                )
                raise

    def _load(self, entity_id: UUID) -> WorkflowEntity:
        return self._store.get(entity_id, self._config.entity_type)

    def _flow(self, entity: WorkflowEntity) -> ApprovalFlowTemplate:
        return self._flows.get_flow(entity.department)

    def _current_step(
        self,
        flow: ApprovalFlowTemplate,
        entity: WorkflowEntity,
        operation: str,
    ) -> ApprovalStep:
        """The step the entity is waiting on, or refuse the operation."""
        step = flow.step_for_status(entity.status)
        if step is not None:
            return step
        if entity.status in self._config.status_enum(flow):
            raise InvalidTransitionError(
                operation, entity.status, "only pending items can be acted on",
            )
        raise FlowResolutionError(entity.department, entity.status)

    def _deadline_for(self, flow: ApprovalFlowTemplate, status: str):
        step = flow.step_for_status(status)
        if step is None:
            return None
        return self._clock.hours_from_now(self._config.sla_hours(step.step_number))

    def _is_admin(self, actor: DirectoryUser) -> bool:
        return actor.is_active and actor.has_any_role(self._config.admin_roles)

    def apply_transition(
        self,
        entity: WorkflowEntity,
        action: AuditAction,
        actor_id: UUID,
        values: Mapping[str, Any],
        details: Mapping[str, Any] | None = None,
    ) -> WorkflowEntity:
        """Write ``values`` plus one audit entry in a single CAS update and commit.

        Raises:
            StaleEntityStateError: The entity moved on since it was read.
        """
        started = time.monotonic()
        appended = self._audit.append(entity, action, actor_id, details)
        patch = dict(values)
        patch["audit_trail"] = appended.trail
        patch["updated_by_id"] = actor_id
        updated = self._store.find_and_update(entity.id, entity.status, entity.version, patch)
        self._session.commit()
        self._emit_transition(
            action, entity.id, entity.status, updated.status, actor_id,
            updated.version, (time.monotonic() - started) * 1000,
        )
        return updated

    def _emit_transition(
        self,
        action: AuditAction,
        entity_id: UUID,
        from_status: str | None,
        to_status: str | None,
        actor_id: UUID,
        version: int | None,
        duration_ms: float,
    ) -> None:
        logger.info(
            "entity_transition",
            extra={
                "trace_type": TRACE_TYPE_ENTITY_TRANSITION,
                "action": action.value,
                "entity_type": self._config.entity_type,
                "entity_id": str(entity_id),
                "from_status": from_status,
                "to_status": to_status,
                "actor_id": str(actor_id),
                "version": version,
                "duration_ms": round(duration_ms, 3),
            },
        )

    def _notify(
        self,
        kind: EventKind,
        entity: WorkflowEntity,
        recipients: list[DirectoryUser],
        context: Mapping[str, Any] | None = None,
    ) -> None:
        if not recipients:
            return
        self._dispatcher.notify(kind, entity, recipients, context, label=self._config.label)

    def notify_originator(
        self,
        kind: EventKind,
        entity: WorkflowEntity,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Resolve the originator after commit; failures are logged, never raised."""
        try:
            originator = self._lookup.find_user(entity.originator_id)
        except Exception:
            logger.warning(
                "originator_lookup_failed",
                extra={"entity_id": str(entity.id), "event_kind": kind.value},
                exc_info=True,
            )
            return
        if originator is None:
            logger.warning(
                "originator_not_found",
                extra={"entity_id": str(entity.id), "event_kind": kind.value},
            )
            return
        self._notify(kind, entity, [originator], context)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, entity_id: UUID) -> WorkflowEntity:
        """Return the entity.

        Raises:
            EntityNotFoundError: Unknown id, or an entity of another type.
        """
        return self._load(entity_id)

    def list_for_originator(self, originator_id: UUID) -> list[WorkflowEntity]:
        return self._store.find_all(
            entity_type=self._config.entity_type,
            originator_id=originator_id,
        )

    def list_pending_for_actor(self, actor_id: UUID) -> list[WorkflowEntity]:
        """Entities waiting on a level whose permission role the actor holds."""
        actor = self._lookup.get_user(actor_id)
        flows: dict[str, ApprovalFlowTemplate | None] = {}
        result = []
        for entity in self._store.find_all(entity_type=self._config.entity_type):
            if entity.department not in flows:
                try:
                    flows[entity.department] = self._flows.get_flow(entity.department)
                except FlowNotFoundError:
                    flows[entity.department] = None
            flow = flows[entity.department]
            step = flow.step_for_status(entity.status) if flow else None
            if step and self._lookup.holds_role(actor, step.role, self._config):
                result.append(entity)
        return result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, payload: Mapping[str, Any], actor_id: UUID) -> WorkflowEntity:
        """Create an entity in the type's start state.

        ``payload`` carries ``department`` and ``title`` (required),
        optionally ``amount``, ``currency`` and ``counterparty_id``; any
        other keys are stored as type-specific data.
        """
        with self._operation("create", actor_id):
            started = time.monotonic()
            missing = _missing(payload, ("department", "title"))
            missing += [
                f for f in _missing(payload, self._config.required_for(Operation.CREATE))
                if f not in missing
            ]
            if missing:
                raise MissingRequiredFieldError("create", "new", missing)

            originator = self._lookup.get_user(actor_id)
            department = str(payload["department"])
            flow = self._flows.get_flow(department)

            approvers: list[DirectoryUser] = []
            deadline = None
            if self._config.starts_in_draft:
                status = DRAFT_STATUS
            else:
                first = resolve_next_step(flow, DRAFT_STATUS)
                approvers = self._lookup.get_approvers(first.role, first.department, self._config)
                status = first.next_status
                deadline = self._deadline_for(flow, status)

            appended = self._audit.append(
                None,
                AuditAction.CREATED,
                actor_id,
                {"status": status, "department": department},
            )
            extra = {
                k: v for k, v in payload.items()
                if k not in ("department", "title", "amount", "currency", "counterparty_id")
            }
            entity = self._store.insert({
                "entity_type": self._config.entity_type,
                "department": department,
                "originator_id": actor_id,
                "counterparty_id": coerce_uuid(payload.get("counterparty_id")),
                "title": str(payload["title"]),
                "amount": _decimal_or_none(payload.get("amount")),
                "currency": payload.get("currency"),
                "status": status,
                "current_level_deadline": deadline,
                "approval_record": {},
                "payload": extra,
                "audit_trail": appended.trail,
            })
            self._session.commit()

        self._emit_transition(
            AuditAction.CREATED, entity.id, None, entity.status, actor_id,
            entity.version, (time.monotonic() - started) * 1000,
        )
        self._notify(
            EventKind.CREATED, entity, approvers,
            {"originator_name": originator.full_name},
        )
        return entity

    def update(
        self,
        entity_id: UUID,
        actor_id: UUID,
        changes: Mapping[str, Any],
    ) -> WorkflowEntity:
        """Originator edit while in draft or revision_requested; version +1."""
        with self._operation("update", actor_id, entity_id):
            entity = self._load(entity_id)
            if entity.status not in EDITABLE_STATUSES:
                raise InvalidTransitionError(
                    "update", entity.status, "only draft or returned items can be edited",
                )
            if entity.originator_id != actor_id:
                raise UnauthorizedActorError(str(actor_id), "update")

            unknown = sorted(set(changes) - UPDATABLE_FIELDS)
            if unknown:
                raise InvalidTransitionError(
                    "update", entity.status, f"fields cannot be edited: {', '.join(unknown)}",
                )

            values: dict[str, Any] = {}
            if "title" in changes:
                values["title"] = str(changes["title"])
            if "amount" in changes:
                values["amount"] = _decimal_or_none(changes["amount"])
            if "currency" in changes:
                values["currency"] = changes["currency"]
            if "counterparty_id" in changes:
                values["counterparty_id"] = coerce_uuid(changes["counterparty_id"])
            if "payload" in changes:
                values["payload"] = {**entity.payload, **dict(changes["payload"])}

            merged = {
                "title": entity.title,
                "amount": entity.amount,
                "currency": entity.currency,
                "counterparty_id": entity.counterparty_id,
                **entity.payload,
                **values.get("payload", {}),
                **{k: v for k, v in values.items() if k != "payload"},
            }
            missing = _missing(merged, self._config.required_for(Operation.UPDATE))
            if missing:
                raise MissingRequiredFieldError("update", entity.status, missing)

            values["version"] = entity.version + 1
            return self.apply_transition(
                entity, AuditAction.UPDATED, actor_id, values,
                {"fields": sorted(changes), "previous_version": entity.version},
            )

    def submit(self, entity_id: UUID, actor_id: UUID) -> WorkflowEntity:
        """Send a draft (or returned) entity into its approval flow.

        A returned entity resumes at its stored revision point, never at
        the first step.
        """
        with self._operation("submit", actor_id, entity_id):
            entity = self._load(entity_id)
            if entity.status not in SUBMITTABLE_STATUSES:
                raise InvalidTransitionError(
                    "submit", entity.status, "only draft or returned items can be submitted",
                )
            actor = self._lookup.get_user(actor_id)
            if entity.originator_id != actor_id and not self._is_admin(actor):
                raise UnauthorizedActorError(str(actor_id), "submit")

            flow = self._flow(entity)
            resumed = (
                entity.status == CoreStatus.REVISION_REQUESTED.value
                and entity.revision_request is not None
            )
            if resumed:
                target_status = entity.revision_request.return_to_status
                step = flow.step_for_status(target_status)
                if step is None:
                    raise FlowResolutionError(entity.department, target_status)
                role, department = step.role, step.department
            else:
                first = resolve_next_step(flow, DRAFT_STATUS)
                target_status, role, department = first.next_status, first.role, first.department

            approvers = self._lookup.get_approvers(role, department, self._config)

            updated = self.apply_transition(
                entity,
                AuditAction.SUBMITTED_FOR_APPROVAL,
                actor_id,
                {
                    "status": target_status,
                    "current_level_deadline": self._deadline_for(flow, target_status),
                    "revision_request": None,
                },
                {"status": target_status, "level": role, "resumed": resumed},
            )

        self._notify(
            EventKind.SUBMITTED, updated, approvers,
            {"originator_name": actor.full_name},
        )
        return updated

    def approve(
        self,
        entity_id: UUID,
        actor_id: UUID,
        comments: str = "",
    ) -> WorkflowEntity:
        """Approve the current level.

        Moves to the current step's ``next_status``; approvers of the step
        numbered current+1 are notified, or the originator on final approval.
        """
        with self._operation("approve", actor_id, entity_id):
            entity = self._load(entity_id)
            flow = self._flow(entity)
            step = self._current_step(flow, entity, "approve")
            actor = self._lookup.require_role(actor_id, step.role, "approve", self._config)

            next_step = resolve_next_step(flow, entity.status)
            if next_step is None:
                raise FlowResolutionError(entity.department, entity.status)

            approvers: list[DirectoryUser] = []
            if not next_step.is_terminal:
                approvers = self._lookup.get_approvers(
                    next_step.role, next_step.department, self._config,
                )

            records = dict(entity.approval_record)
            if step.role not in records:
                records[step.role] = ApprovalRecord(
                    approved_by=actor_id,
                    approved_at=self._clock.now(),
                    comments=comments or "",
                    department=step.department,
                )

            updated = self.apply_transition(
                entity,
                AuditAction.APPROVED,
                actor_id,
                {
                    "status": next_step.next_status,
                    "approval_record": approval_record_to_json(records),
                    "current_level_deadline": (
                        None if next_step.is_terminal
                        else self._deadline_for(flow, next_step.next_status)
                    ),
                },
                {
                    "level": step.role,
                    "comments": comments or "",
                    "next_status": next_step.next_status,
                },
            )

        context = {"actor_name": actor.full_name, "comments": comments}
        if next_step.is_terminal:
            self.notify_originator(EventKind.FINAL_APPROVAL, updated, context)
        else:
            self._notify(EventKind.APPROVAL_REQUIRED, updated, approvers, context)
        return updated

    def reject(
        self,
        entity_id: UUID,
        actor_id: UUID,
        reason: str,
        level: str | None = None,
    ) -> WorkflowEntity:
        """Reject at the current level (terminal)."""
        with self._operation("reject", actor_id, entity_id):
            entity = self._load(entity_id)
            flow = self._flow(entity)
            step = self._current_step(flow, entity, "reject")
            actor = self._lookup.require_role(actor_id, step.role, "reject", self._config)
            if level is not None and level != step.role:
                raise InvalidTransitionError(
                    "reject", entity.status, f"level '{level}' is not the current level",
                )

            rejection = Rejection(
                rejected_by=actor_id,
                reason=reason,
                level=step.role,
                rejected_at=self._clock.now(),
            )
            updated = self.apply_transition(
                entity,
                AuditAction.REJECTED,
                actor_id,
                {
                    "status": CoreStatus.REJECTED.value,
                    "rejection": rejection.to_json(),
                    "current_level_deadline": None,
                },
                {"reason": reason, "level": step.role, "status": CoreStatus.REJECTED.value},
            )

        self.notify_originator(
            EventKind.REJECTED, updated,
            {"actor_name": actor.full_name, "reason": reason},
        )
        return updated

    def request_revision(
        self,
        entity_id: UUID,
        actor_id: UUID,
        reason: str,
        return_to_status: str | None = None,
        comments: str | None = None,
    ) -> WorkflowEntity:
        """Send the entity back to its originator; version +1.

        The revision point defaults to the current pending status; an
        explicit ``return_to_status`` must be a pending status of the flow
        at or before the current step.
        """
        with self._operation("request_revision", actor_id, entity_id):
            entity = self._load(entity_id)
            flow = self._flow(entity)
            step = self._current_step(flow, entity, "request_revision")
            actor = self._lookup.require_role(
                actor_id, step.role, "request_revision", self._config,
            )

            target_status = return_to_status or entity.status
            target = flow.step_for_status(target_status)
            if target is None or target.step_number > step.step_number:
                raise InvalidReturnStatusError(entity.status, target_status)

            request = RevisionRequest(
                requested_by=actor_id,
                reason=reason,
                return_to_status=target.status,
                return_to_level=target.role,
                requested_at=self._clock.now(),
                comments=comments,
            )
            updated = self.apply_transition(
                entity,
                AuditAction.REVISION_REQUESTED,
                actor_id,
                {
                    "status": CoreStatus.REVISION_REQUESTED.value,
                    "revision_request": request.to_json(),
                    "current_level_deadline": None,
                    "version": entity.version + 1,
                },
                {
                    "reason": reason,
                    "return_to_status": target.status,
                    "return_to_level": target.role,
                    "comments": comments,
                    "previous_version": entity.version,
                },
            )

        self.notify_originator(
            EventKind.REVISION_REQUESTED, updated,
            {"actor_name": actor.full_name, "reason": reason, "comments": comments},
        )
        return updated

    def mark_paid(
        self,
        entity_id: UUID,
        actor_id: UUID,
        payment_details: Mapping[str, Any],
    ) -> WorkflowEntity:
        """Record payment of an approved entity."""
        with self._operation("mark_paid", actor_id, entity_id):
            entity = self._load(entity_id)
            if self._config.paid_status is None:
                raise InvalidTransitionError(
                    "mark_paid", entity.status,
                    f"{self._config.label} items are not settled by payment",
                )
            if entity.status != CoreStatus.APPROVED.value:
                raise InvalidTransitionError(
                    "mark_paid", entity.status, "only approved items can be marked as paid",
                )

            if self._config.payment_roles:
                actor = self._lookup.require_any_role(
                    actor_id, self._config.payment_roles, "mark_paid",
                )
            else:
                actor = self._lookup.get_user(actor_id)

            required = BASE_PAYMENT_FIELDS + tuple(
                f for f in self._config.required_for(Operation.MARK_PAID)
                if f not in BASE_PAYMENT_FIELDS
            )
            missing = _missing(payment_details, required)
            if missing:
                raise MissingRequiredFieldError("mark_paid", entity.status, missing)

            payment = PaymentRecord(
                paid_by=actor_id,
                paid_at=self._clock.now(),
                payment_method=str(payment_details["payment_method"]),
                transaction_id=str(payment_details["transaction_id"]),
                details={
                    k: v for k, v in payment_details.items()
                    if k not in BASE_PAYMENT_FIELDS
                },
            )
            updated = self.apply_transition(
                entity,
                AuditAction.MARKED_AS_PAID,
                actor_id,
                {
                    "status": self._config.paid_status,
                    "payment": payment.to_json(),
                    "payments_count": entity.payments_count + 1,
                    "current_level_deadline": None,
                },
                {"payment_details": dict(payment_details)},
            )

        self.notify_originator(
            EventKind.PAID, updated,
            {
                "actor_name": actor.full_name,
                "transaction_id": payment.transaction_id,
                "payment_advice_url": payment.details.get("payment_advice_url"),
            },
        )
        return updated

    def cancel(self, entity_id: UUID, actor_id: UUID) -> WorkflowEntity:
        """Cancel from draft or any pending status.

        Allowed for the originator, admin roles and the configured
        cancel delegates.
        """
        with self._operation("cancel", actor_id, entity_id):
            entity = self._load(entity_id)
            if entity.status != DRAFT_STATUS:
                flow = self._flow(entity)
                if not flow.is_pending_status(entity.status):
                    raise InvalidTransitionError(
                        "cancel", entity.status, "only draft or pending items can be cancelled",
                    )

            actor = self._lookup.get_user(actor_id)
            allowed = (
                entity.originator_id == actor_id
                or self._is_admin(actor)
                or (actor.is_active and actor.has_any_role(self._config.cancel_delegate_roles))
            )
            if not allowed:
                raise UnauthorizedActorError(str(actor_id), "cancel")

            updated = self.apply_transition(
                entity,
                AuditAction.CANCELLED,
                actor_id,
                {"status": CoreStatus.CANCELLED.value, "current_level_deadline": None},
                {"previous_status": entity.status},
            )

        self.notify_originator(EventKind.CANCELLED, updated, {"actor_name": actor.full_name})
        return updated

    def delete(self, entity_id: UUID, actor_id: UUID) -> None:
        """Hard-delete a draft or cancelled entity with no recorded payments.

        The audit trail is deleted with it.  No notification is sent.
        """
        with self._operation("delete", actor_id, entity_id):
            started = time.monotonic()
            entity = self._load(entity_id)
            if entity.status not in DELETABLE_STATUSES or entity.payments_count > 0:
                raise DeletionNotAllowedError(entity.status, entity.payments_count)

            actor = self._lookup.get_user(actor_id)
            if entity.originator_id != actor_id and not self._is_admin(actor):
                raise UnauthorizedActorError(str(actor_id), "delete")

            self._store.delete(entity.id, entity.status)
            self._session.commit()

        logger.info(
            "entity_deleted",
            extra={
                "trace_type": TRACE_TYPE_ENTITY_TRANSITION,
                "entity_type": self._config.entity_type,
                "entity_id": str(entity_id),
                "from_status": entity.status,
                "actor_id": str(actor_id),
                "audit_entries_removed": len(entity.audit_trail),
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )


def create_workflow_engine(
    entity_type: str,
    session: Session,
    *,
    dispatcher: NotificationDispatcher | None = None,
    clock: Clock | None = None,
    config_dir=None,
) -> WorkflowEngine:
    """Build an engine for ``entity_type`` from the active configuration."""
    from approval_config import get_active_config, get_entity_type_config

    config = get_entity_type_config(entity_type, config_dir)
    if dispatcher is None:
        settings = get_active_config(config_dir).notifications
        dispatcher = NotificationDispatcher(
            max_workers=settings.max_workers,
            timeout_seconds=settings.timeout_seconds,
        )
    return WorkflowEngine(session, config, dispatcher=dispatcher, clock=clock)
