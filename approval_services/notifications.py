"""
approval_services.notifications -- Best-effort email + SMS fan-out.

Responsibility:
    Renders the message for a workflow event and delivers it to every
    recipient over email and SMS concurrently.  Each (recipient, channel)
    delivery is independent: one failing never blocks or fails another.

Architecture position:
    Services layer.  Called by the workflow engine strictly AFTER the
    transition has committed.  Channel transports are external
    collaborators injected through the ``EmailChannel`` / ``SmsChannel``
    protocols.

Invariants enforced:
    - ``notify`` never raises.  Channel failures become
      NotificationFailureError instances that are logged at WARNING and
      reported in the returned ``DispatchReport``.
    - A recipient without an email address or phone number is skipped for
      that channel only.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from approval_kernel.domain.directory import DirectoryUser
from approval_kernel.domain.workflow_entity import WorkflowEntity
from approval_kernel.exceptions import NotificationFailureError
from approval_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

EMAIL = "email"
SMS = "sms"


class EventKind(str, Enum):
    """Workflow events that produce notifications."""

    CREATED = "created"
    SUBMITTED = "submitted"
    APPROVAL_REQUIRED = "approval_required"
    FINAL_APPROVAL = "final_approval"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"
    PAID = "paid"
    CANCELLED = "cancelled"
    ACCEPTANCE_CODE = "acceptance_code"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class ChannelResult:
    success: bool
    error: str | None = None


@runtime_checkable
class EmailChannel(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> ChannelResult:
        ...


@runtime_checkable
class SmsChannel(Protocol):
    def send_sms(self, to: str, body: str) -> Any:
        ...


class LoggingEmailChannel:
    """Email channel that only logs; the default when no transport is wired."""

    def send_email(self, to: str, subject: str, body: str) -> ChannelResult:
        logger.info("email_logged", extra={"to": to, "subject": subject})
        return ChannelResult(success=True)


class LoggingSmsChannel:
    """SMS channel that only logs."""

    def send_sms(self, to: str, body: str) -> bool:
        logger.info("sms_logged", extra={"to": to})
        return True


# ---------------------------------------------------------------------------
# Message catalogue
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    subject: str
    body: str


def _amount(entity: WorkflowEntity) -> str:
    if entity.amount is None:
        return ""
    currency = f"{entity.currency} " if entity.currency else ""
    return f" worth {currency}{entity.amount:,.2f}"


def render_message(
    kind: EventKind,
    entity: WorkflowEntity,
    label: str,
    context: Mapping[str, Any] | None = None,
) -> Message:
    """Subject and body for ``kind``.  ``context`` supplies actor names and details."""
    ctx = dict(context or {})
    actor = ctx.get("actor_name", "a colleague")
    what = f"{label} '{entity.title}'{_amount(entity)}"

    if kind is EventKind.CREATED:
        return Message(
            f"New {label} Submitted - {entity.title}",
            f"{ctx.get('originator_name', actor)} has submitted a new {what}. "
            "It requires your approval.",
        )
    if kind is EventKind.SUBMITTED:
        return Message(
            f"{label} Pending Approval - {entity.title}",
            f"{ctx.get('originator_name', actor)} has submitted {what} "
            "that requires your approval.",
        )
    if kind is EventKind.APPROVAL_REQUIRED:
        return Message(
            f"{label} Pending Approval - {entity.title}",
            f"{what} was approved by {actor} and now requires your approval.",
        )
    if kind is EventKind.FINAL_APPROVAL:
        return Message(
            f"{label} Approved - {entity.title}",
            f"Your {what} has been approved by {actor}.",
        )
    if kind is EventKind.REJECTED:
        return Message(
            f"{label} Rejected - {entity.title}",
            f"Your {what} has been rejected by {actor}.\n\n"
            f"Reason: {ctx.get('reason', 'Not provided')}",
        )
    if kind is EventKind.REVISION_REQUESTED:
        body = (
            f"{actor} has requested a revision of your {what}.\n\n"
            f"Reason: {ctx.get('reason', 'Not provided')}"
        )
        if ctx.get("comments"):
            body += f"\nComments: {ctx['comments']}"
        return Message(f"{label} Revision Requested - {entity.title}", body)
    if kind is EventKind.PAID:
        return Message(
            f"{label} Payment Processed - {entity.title}",
            f"Your {what} has been marked as paid by {actor}.\n\n"
            f"Transaction ID: {ctx.get('transaction_id') or 'N/A'}\n"
            f"Payment Advice: {ctx.get('payment_advice_url') or 'Not available'}",
        )
    if kind is EventKind.CANCELLED:
        return Message(
            f"{label} Cancelled - {entity.title}",
            f"Your {what} has been cancelled by {actor}.",
        )
    if kind is EventKind.ACCEPTANCE_CODE:
        return Message(
            f"{label} Acceptance Code - {entity.title}",
            f"Your code for accepting {what} is: {ctx['code']}. "
            f"This code will expire in {ctx.get('expires_in_minutes', 30)} minutes.",
        )
    if kind is EventKind.ACCEPTED:
        return Message(
            f"{label} Accepted - {entity.title}",
            f"{what} has been accepted by {actor}.",
        )
    raise ValueError(f"No message template for event kind {kind!r}")


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeliveryOutcome:
    recipient_id: str
    channel: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchReport:
    """What happened to each (recipient, channel) delivery of one event."""

    event_kind: EventKind
    entity_id: str
    outcomes: tuple[DeliveryOutcome, ...] = field(default_factory=tuple)
    skipped: tuple[str, ...] = field(default_factory=tuple)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> tuple[DeliveryOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.success)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class NotificationDispatcher:
    """Concurrent, best-effort notification fan-out.

    One ThreadPoolExecutor is shared by all dispatches of this instance
    and created on first use.
    """

    def __init__(
        self,
        email_channel: EmailChannel | None = None,
        sms_channel: SmsChannel | None = None,
        max_workers: int = 8,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._email = email_channel or LoggingEmailChannel()
        self._sms = sms_channel or LoggingSmsChannel()
        self._max_workers = max_workers
        self._timeout = timeout_seconds
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    def _get_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="approval-notify",
                )
            return self._executor

    def close(self) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None

    def __enter__(self) -> NotificationDispatcher:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _send_email(self, recipient: DirectoryUser, message: Message) -> DeliveryOutcome:
        result = self._email.send_email(recipient.email, message.subject, message.body)
        if not result.success:
            raise NotificationFailureError(EMAIL, recipient.email, result.error or "unknown error")
        return DeliveryOutcome(str(recipient.id), EMAIL, True)

    def _send_sms(self, recipient: DirectoryUser, message: Message) -> DeliveryOutcome:
        ack = self._sms.send_sms(recipient.phone_number, message.body)
        if ack is False:
            raise NotificationFailureError(SMS, recipient.phone_number, "not acknowledged")
        return DeliveryOutcome(str(recipient.id), SMS, True)

    def notify(
        self,
        kind: EventKind,
        entity: WorkflowEntity,
        recipients: Iterable[DirectoryUser],
        context: Mapping[str, Any] | None = None,
        label: str | None = None,
    ) -> DispatchReport:
        """Deliver ``kind`` to every recipient over email and SMS.

        Waits for the whole batch (bounded by the dispatcher timeout) but
        never raises: every failure is logged and reported.
        """
        started = time.monotonic()
        try:
            message = render_message(kind, entity, label or entity.entity_type.title(), context)
        except Exception:
            logger.warning(
                "notification_render_failed",
                extra={"event_kind": kind.value, "entity_id": str(entity.id)},
                exc_info=True,
            )
            return DispatchReport(event_kind=kind, entity_id=str(entity.id))

        unique: dict[Any, DirectoryUser] = {}
        for recipient in recipients:
            unique.setdefault(recipient.id, recipient)

        executor = self._get_executor()
        pending: dict[concurrent.futures.Future, tuple[str, str, str]] = {}
        skipped: list[str] = []
        for recipient in unique.values():
            if recipient.email:
                future = executor.submit(self._send_email, recipient, message)
                pending[future] = (str(recipient.id), EMAIL, recipient.email)
            else:
                skipped.append(f"{recipient.id}:{EMAIL}")
            if recipient.phone_number:
                future = executor.submit(self._send_sms, recipient, message)
                pending[future] = (str(recipient.id), SMS, recipient.phone_number)
            else:
                skipped.append(f"{recipient.id}:{SMS}")

        done, not_done = concurrent.futures.wait(pending, timeout=self._timeout)

        outcomes: list[DeliveryOutcome] = []
        for future in done:
            recipient_id, channel, address = pending[future]
            try:
                outcomes.append(future.result())
            except Exception as exc:
                failure = exc if isinstance(exc, NotificationFailureError) else (
                    NotificationFailureError(channel, address, str(exc))
                )
                logger.warning(
                    "notification_failed",
                    extra={
                        "event_kind": kind.value,
                        "channel": channel,
                        "recipient": address,
                        "recipient_id": recipient_id,
                        "error_code": failure.code,
                        "reason": failure.reason,
                    },
                )
                outcomes.append(DeliveryOutcome(recipient_id, channel, False, failure.reason))

        for future in not_done:
            recipient_id, channel, address = pending[future]
            future.cancel()
            logger.warning(
                "notification_timed_out",
                extra={
                    "event_kind": kind.value,
                    "channel": channel,
                    "recipient": address,
                    "timeout_seconds": self._timeout,
                },
            )
            outcomes.append(DeliveryOutcome(recipient_id, channel, False, "timed out"))

        outcomes.sort(key=lambda o: (o.recipient_id, o.channel))
        report = DispatchReport(
            event_kind=kind,
            entity_id=str(entity.id),
            outcomes=tuple(outcomes),
            skipped=tuple(skipped),
        )
        logger.info(
            "notifications_dispatched",
            extra={
                "event_kind": kind.value,
                "recipient_count": len(unique),
                "sent": report.sent,
                "failed": len(report.failed),
                "skipped": len(skipped),
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )
        return report
