"""
Approval flow domain types (``approval_kernel.domain.flow``).

Responsibility
--------------
Pure value objects for department approval flows and the pure resolver
that computes the next step from a current status.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* Step numbers are contiguous starting at 1 (validated at write time by
  ``validate_steps``).
* Each role appears at most once per flow, so every pending status maps
  to exactly one step.
* Only the last step moves to ``approved``; every other step moves
  forward to a later step's pending status.
* The status -> step table is derived from the steps when the template
  is built.  The acting role is never inferred from the shape of a
  status string (``head_of_programs`` and ``academic_director`` contain
  underscores).
* Resolution indirection: the *current* step decides the resulting
  status (its ``next_status``); the step numbered current+1 decides who
  is notified.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from approval_kernel.exceptions import InvalidFlowDefinitionError

DRAFT_STATUS = "draft"
TERMINAL_NEXT_STATUS = "approved"


def pending_status(role: str) -> str:
    """Synthesize the pending status for a role: ``pending_<role>_approval``."""
    return f"pending_{role}_approval"


@dataclass(frozen=True)
class ApprovalStep:
    """One level of a department approval flow."""

    step_number: int
    role: str
    department: str
    description: str
    next_status: str

    @property
    def status(self) -> str:
        """The pending status an entity holds while waiting on this step."""
        return pending_status(self.role)

    @property
    def is_final(self) -> bool:
        return self.next_status == TERMINAL_NEXT_STATUS

    def to_dict(self) -> dict:
        return {
            "step_number": self.step_number,
            "role": self.role,
            "department": self.department,
            "description": self.description,
            "next_status": self.next_status,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> ApprovalStep:
        return cls(
            step_number=int(data["step_number"]),
            role=data["role"],
            department=data["department"],
            description=data.get("description", ""),
            next_status=data["next_status"],
        )


@dataclass(frozen=True)
class NextStep:
    """Result of resolving the next step of a flow.

    ``next_status`` is the status to apply; ``role``/``department`` name
    who must be notified (and who acts next) when the status is pending.
    """

    next_status: str
    role: str
    department: str

    @property
    def is_terminal(self) -> bool:
        return self.next_status == TERMINAL_NEXT_STATUS


@dataclass(frozen=True)
class ApprovalFlowTemplate:
    """A department's ordered approval steps.

    Guarantees: ``steps`` are sorted by ``step_number``;
    ``status_steps`` maps every pending status of the flow to its step.
    """

    department: str
    steps: tuple[ApprovalStep, ...]
    is_active: bool = True
    description: str = ""
    status_steps: Mapping[str, ApprovalStep] = field(
        init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.steps, key=lambda s: s.step_number))
        object.__setattr__(self, "steps", ordered)
        object.__setattr__(
            self,
            "status_steps",
            MappingProxyType({step.status: step for step in ordered}),
        )

    @property
    def first_step(self) -> ApprovalStep:
        return self.steps[0]

    @property
    def pending_statuses(self) -> tuple[str, ...]:
        return tuple(step.status for step in self.steps)

    def status_role_table(self) -> dict[str, str]:
        """Pending status -> role, e.g. ``pending_head_of_programs_approval``."""
        return {status: step.role for status, step in self.status_steps.items()}

    def step_for_status(self, status: str) -> ApprovalStep | None:
        return self.status_steps.get(status)

    def step_by_number(self, step_number: int) -> ApprovalStep | None:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None

    def is_pending_status(self, status: str) -> bool:
        return status in self.status_steps


def resolve_next_step(
    flow: ApprovalFlowTemplate,
    current_status: str,
) -> NextStep | None:
    """Compute the next step for an entity in ``current_status``.

    - ``draft`` resolves to the first step's pending status.
    - A pending status resolves to the matched step's ``next_status``;
      the notified role is the step numbered current+1, or the matched
      step itself when ``next_status`` is terminal.
    - Anything else (orphaned pending state, unknown status) returns
      None and the caller must refuse the transition.
    """
    if current_status == DRAFT_STATUS:
        first = flow.first_step
        return NextStep(
            next_status=first.status,
            role=first.role,
            department=first.department,
        )

    current = flow.step_for_status(current_status)
    if current is None:
        return None

    if current.is_final:
        notified = current
    else:
        notified = flow.step_by_number(current.step_number + 1)
    if notified is None:
        return None

    return NextStep(
        next_status=current.next_status,
        role=notified.role,
        department=notified.department,
    )


def validate_steps(
    department: str,
    steps: Iterable[ApprovalStep],
) -> tuple[ApprovalStep, ...]:
    """Validate flow steps at write time and return them ordered.

    Raises:
        InvalidFlowDefinitionError: empty flow, non-contiguous step
            numbers, duplicate roles, a final step that does not end in
            ``approved``, an earlier step that does, or a non-final
            ``next_status`` that is not the pending status of a later
            step of this flow.
    """
    ordered = tuple(sorted(steps, key=lambda s: s.step_number))
    if not ordered:
        raise InvalidFlowDefinitionError(department, "flow has no steps")

    numbers = [s.step_number for s in ordered]
    if numbers != list(range(1, len(ordered) + 1)):
        raise InvalidFlowDefinitionError(
            department,
            f"step numbers must be contiguous from 1, got {numbers}",
        )

    roles = [s.role for s in ordered]
    duplicates = sorted({r for r in roles if roles.count(r) > 1})
    if duplicates:
        raise InvalidFlowDefinitionError(
            department, f"duplicate roles: {', '.join(duplicates)}",
        )

    for step in ordered:
        if not step.role or not step.department:
            raise InvalidFlowDefinitionError(
                department, f"step {step.step_number} needs a role and department",
            )

    if not ordered[-1].is_final:
        raise InvalidFlowDefinitionError(
            department,
            f"final step must move to '{TERMINAL_NEXT_STATUS}'",
        )

    step_numbers = {s.status: s.step_number for s in ordered}
    for step in ordered[:-1]:
        if step.is_final:
            raise InvalidFlowDefinitionError(
                department,
                f"step {step.step_number} moves to '{TERMINAL_NEXT_STATUS}' "
                f"before the final step",
            )
        target = step_numbers.get(step.next_status)
        if target is None:
            raise InvalidFlowDefinitionError(
                department,
                f"step {step.step_number} moves to unknown status "
                f"'{step.next_status}'",
            )
        if target <= step.step_number:
            raise InvalidFlowDefinitionError(
                department,
                f"step {step.step_number} moves back to step {target}",
            )

    return ordered
