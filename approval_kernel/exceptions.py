"""
Typed exception hierarchy for the approval kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The web layer maps failures onto status codes and the notification layer
decides what to swallow.  Both must catch by type, never by parsing message
text.  Every exception therefore has:

  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured attributes carrying the context (entity id, status, ...)

Example:
    try:
        engine.approve(entity_id, actor_id, comments)
    except UnauthorizedActorError as e:
        return {"error": e.code}, 403
    except InvalidTransitionError as e:
        return {"error": e.code, "status": getattr(e, "status", None)}, 400

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- NotFoundError
    |   +-- EntityNotFoundError
    |   +-- FlowNotFoundError
    |   +-- UserNotFoundError
    |
    +-- InvalidTransitionError          (BadRequest at the web layer)
    |   +-- FlowResolutionError
    |   +-- InvalidReturnStatusError
    |   +-- MissingRequiredFieldError
    |   +-- DeletionNotAllowedError
    |
    +-- ForbiddenError
    |   +-- UnauthorizedActorError
    |
    +-- NoApproversAvailableError
    |
    +-- ConcurrencyError
    |   +-- StaleEntityStateError
    |
    +-- FlowDefinitionError
    |   +-- InvalidFlowDefinitionError
    |
    +-- AcceptanceCodeError
    |   +-- AcceptanceCodeExpiredError
    |   +-- AcceptanceCodeInvalidError
    |   +-- AcceptanceAttemptsExceededError
    |   +-- AcceptanceCodeCooldownError
    |
    +-- NotificationFailureError        (never escapes the dispatcher)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | ENTITY_NOT_FOUND            | Entity id doesn't exist
                | FLOW_NOT_FOUND              | No active flow for department
                | USER_NOT_FOUND              | Actor / user id doesn't exist
----------------|-----------------------------|-----------------------------------------
Transition      | INVALID_TRANSITION          | Wrong status for the operation
                | FLOW_RESOLUTION_FAILED      | Resolver returned no step
                | INVALID_RETURN_STATUS       | Revision return point not in flow
                | MISSING_REQUIRED_FIELD      | Operation payload incomplete
                | DELETION_NOT_ALLOWED        | Delete outside draft/cancelled
----------------|-----------------------------|-----------------------------------------
Authorization   | FORBIDDEN                   | Actor lacks authority
----------------|-----------------------------|-----------------------------------------
Approvers       | NO_APPROVERS_AVAILABLE      | Zero active approvers for a level
----------------|-----------------------------|-----------------------------------------
Concurrency     | STALE_ENTITY_STATE          | Status/version changed under us
----------------|-----------------------------|-----------------------------------------
Flow config     | INVALID_FLOW_DEFINITION     | Steps fail write-time validation
----------------|-----------------------------|-----------------------------------------
Acceptance      | ACCEPTANCE_CODE_EXPIRED     | One-time code past its TTL
                | ACCEPTANCE_CODE_INVALID     | Wrong or unknown code
                | ACCEPTANCE_ATTEMPTS_EXCEEDED| Too many wrong codes
                | ACCEPTANCE_CODE_COOLDOWN    | Resend requested too soon
----------------|-----------------------------|-----------------------------------------
Notification    | NOTIFICATION_FAILURE        | Channel failed (logged, swallowed)

===============================================================================
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ApprovalKernelError):
    """Base exception for missing entities, flows and users."""

    code: str = "NOT_FOUND"


class EntityNotFoundError(NotFoundError):
    """Workflow entity with given ID was not found."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_id: str, entity_type: str | None = None):
        self.entity_id = entity_id
        self.entity_type = entity_type
        label = entity_type or "Entity"
        super().__init__(f"{label} not found: {entity_id}")


class FlowNotFoundError(NotFoundError):
    """No active approval flow is registered for a department."""

    code: str = "FLOW_NOT_FOUND"

    def __init__(self, department: str):
        self.department = department
        super().__init__(
            f"No active approval flow found for department {department}"
        )


class UserNotFoundError(NotFoundError):
    """User with given ID was not found in the directory."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Transition exceptions


class InvalidTransitionError(ApprovalKernelError):
    """The requested operation is not valid from the entity's status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, operation: str, status: str, reason: str | None = None):
        self.operation = operation
        self.status = status
        self.reason = reason
        message = f"Cannot {operation} from status '{status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FlowResolutionError(InvalidTransitionError):
    """
    The flow resolver returned no step for the current status.

    Raised for orphaned pending states (the department's flow no longer
    contains the role) and for statuses outside the entity's status enum.
    """

    code: str = "FLOW_RESOLUTION_FAILED"

    def __init__(self, department: str, status: str):
        self.department = department
        super().__init__(
            "resolve flow",
            status,
            f"no approval step for department {department}",
        )


class InvalidReturnStatusError(InvalidTransitionError):
    """Revision return point is not a pending status at or before the current step."""

    code: str = "INVALID_RETURN_STATUS"

    def __init__(self, status: str, return_to_status: str):
        self.return_to_status = return_to_status
        super().__init__(
            "request revision",
            status,
            f"'{return_to_status}' is not an earlier pending status of this flow",
        )


class MissingRequiredFieldError(InvalidTransitionError):
    """Operation payload is missing fields configured as required."""

    code: str = "MISSING_REQUIRED_FIELD"

    def __init__(self, operation: str, status: str, fields: list[str]):
        self.fields = fields
        super().__init__(
            operation,
            status,
            f"missing required field(s): {', '.join(fields)}",
        )


class DeletionNotAllowedError(InvalidTransitionError):
    """Entity is not deletable (wrong status or recorded payments)."""

    code: str = "DELETION_NOT_ALLOWED"

    def __init__(self, status: str, payments_count: int):
        self.payments_count = payments_count
        reason = (
            f"{payments_count} payment(s) recorded"
            if payments_count
            else "only draft or cancelled entities can be deleted"
        )
        super().__init__("delete", status, reason)


# Authorization exceptions


class ForbiddenError(ApprovalKernelError):
    """Base exception for authorization failures."""

    code: str = "FORBIDDEN"


class UnauthorizedActorError(ForbiddenError):
    """
    Actor is not permitted to perform the operation.

    The message is generic: it never names the role that
    would have sufficed.
    """

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, operation: str):
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(f"User {actor_id} is not permitted to {operation} this item")


# Approver availability


class NoApproversAvailableError(ApprovalKernelError):
    """No active user can act at the target approval level."""

    code: str = "NO_APPROVERS_AVAILABLE"

    def __init__(self, role: str, department: str | None = None):
        self.role = role
        self.department = department
        scope = f" in department {department}" if department else ""
        super().__init__(
            f"No active approvers found for role {role}{scope}. "
            "Please contact system administrator."
        )


# Concurrency exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleEntityStateError(ConcurrencyError):
    """
    Compare-and-swap on (status, version) failed.

    Another transition committed between our read and our write; nothing
    was written by this attempt.
    """

    code: str = "STALE_ENTITY_STATE"

    def __init__(self, entity_id: str, expected_status: str, expected_version: int):
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.expected_version = expected_version
        super().__init__(
            f"Entity {entity_id} changed concurrently: expected status "
            f"'{expected_status}' at version {expected_version}"
        )


# Flow definition exceptions


class FlowDefinitionError(ApprovalKernelError):
    """Base exception for flow template errors."""

    code: str = "FLOW_DEFINITION_ERROR"


class InvalidFlowDefinitionError(FlowDefinitionError):
    """Flow steps failed write-time validation."""

    code: str = "INVALID_FLOW_DEFINITION"

    def __init__(self, department: str, reason: str):
        self.department = department
        self.reason = reason
        super().__init__(f"Invalid approval flow for {department}: {reason}")


# Acceptance code exceptions


class AcceptanceCodeError(ApprovalKernelError):
    """Base exception for one-time acceptance code failures."""

    code: str = "ACCEPTANCE_CODE_ERROR"


class AcceptanceCodeExpiredError(AcceptanceCodeError):
    """No live code exists for the key (never issued or past its TTL)."""

    code: str = "ACCEPTANCE_CODE_EXPIRED"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Acceptance code for {key} has expired or was never issued")


class AcceptanceCodeInvalidError(AcceptanceCodeError):
    """Supplied code does not match the issued one."""

    code: str = "ACCEPTANCE_CODE_INVALID"

    def __init__(self, key: str, attempts_left: int):
        self.key = key
        self.attempts_left = attempts_left
        super().__init__(
            f"Invalid acceptance code for {key}: {attempts_left} attempt(s) left"
        )


class AcceptanceAttemptsExceededError(AcceptanceCodeError):
    """Too many wrong codes; the issued code has been discarded."""

    code: str = "ACCEPTANCE_ATTEMPTS_EXCEEDED"

    def __init__(self, key: str, max_attempts: int):
        self.key = key
        self.max_attempts = max_attempts
        super().__init__(
            f"Maximum of {max_attempts} acceptance attempts exceeded for {key}"
        )


class AcceptanceCodeCooldownError(AcceptanceCodeError):
    """A new code was requested before the resend cooldown elapsed."""

    code: str = "ACCEPTANCE_CODE_COOLDOWN"

    def __init__(self, key: str, retry_after_seconds: int):
        self.key = key
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Acceptance code for {key} was issued recently; "
            f"retry in {retry_after_seconds}s"
        )


# Notification exceptions


class NotificationFailureError(ApprovalKernelError):
    """A notification channel failed for one recipient."""

    code: str = "NOTIFICATION_FAILURE"

    def __init__(self, channel: str, recipient: str, reason: str):
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"{channel} notification to {recipient} failed: {reason}")
