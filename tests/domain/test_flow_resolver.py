"""
Tests for approval flow templates and the pure next-step resolver.

Covers:
- Status -> step table derived from the steps (multi-word roles included)
- resolve_next_step from draft, intermediate and final pending states
- Orphaned / unknown statuses resolve to None
- Write-time validation of step lists
"""

import pytest

from approval_kernel.domain.flow import (
    DRAFT_STATUS,
    ApprovalFlowTemplate,
    ApprovalStep,
    pending_status,
    resolve_next_step,
    validate_steps,
)
from approval_kernel.exceptions import InvalidFlowDefinitionError


# =========================================================================
# Helpers
# =========================================================================


def step(number, role, department="SRCC", next_status="approved"):
    return ApprovalStep(
        step_number=number,
        role=role,
        department=department,
        description=f"{role} approval",
        next_status=next_status,
    )


def srcc_flow() -> ApprovalFlowTemplate:
    return ApprovalFlowTemplate(
        department="SRCC",
        steps=(
            step(1, "claim_checker", next_status="pending_srcc_finance_approval"),
            step(2, "srcc_finance"),
        ),
    )


def sbs_flow() -> ApprovalFlowTemplate:
    return ApprovalFlowTemplate(
        department="SBS",
        steps=(
            step(1, "head_of_programs", "SBS", "pending_director_approval"),
            step(2, "director", "SBS", "pending_academic_director_approval"),
            step(3, "academic_director", "SBS", "pending_finance_approval"),
            step(4, "finance", "SBS", "pending_srcc_checker_approval"),
            step(5, "srcc_checker", "SRCC", "pending_srcc_finance_approval"),
            step(6, "srcc_finance", "SRCC", "approved"),
        ),
    )


# =========================================================================
# Template
# =========================================================================


class TestApprovalFlowTemplate:

    def test_pending_status_is_synthesized_from_role(self):
        assert pending_status("head_of_programs") == "pending_head_of_programs_approval"

    def test_steps_are_sorted_by_number(self):
        flow = ApprovalFlowTemplate(
            department="SRCC",
            steps=(
                step(2, "srcc_finance"),
                step(1, "claim_checker", next_status="pending_srcc_finance_approval"),
            ),
        )
        assert [s.step_number for s in flow.steps] == [1, 2]
        assert flow.first_step.role == "claim_checker"

    def test_status_role_table_keeps_multi_word_roles_whole(self):
        table = sbs_flow().status_role_table()

        assert table["pending_head_of_programs_approval"] == "head_of_programs"
        assert table["pending_academic_director_approval"] == "academic_director"
        assert table["pending_srcc_checker_approval"] == "srcc_checker"
        assert len(table) == 6

    def test_step_lookup(self):
        flow = sbs_flow()
        assert flow.step_for_status("pending_director_approval").step_number == 2
        assert flow.step_for_status("pending_unknown_approval") is None
        assert flow.step_by_number(5).department == "SRCC"
        assert flow.step_by_number(7) is None
        assert flow.is_pending_status("pending_finance_approval")
        assert not flow.is_pending_status(DRAFT_STATUS)


# =========================================================================
# resolve_next_step()
# =========================================================================


class TestResolveNextStep:

    def test_draft_resolves_to_first_step(self):
        result = resolve_next_step(srcc_flow(), DRAFT_STATUS)

        assert result.next_status == "pending_claim_checker_approval"
        assert result.role == "claim_checker"
        assert result.department == "SRCC"
        assert not result.is_terminal

    def test_intermediate_step_notifies_following_step(self):
        result = resolve_next_step(srcc_flow(), "pending_claim_checker_approval")

        assert result.next_status == "pending_srcc_finance_approval"
        assert result.role == "srcc_finance"

    def test_final_step_is_terminal_and_names_itself(self):
        result = resolve_next_step(srcc_flow(), "pending_srcc_finance_approval")

        assert result.next_status == "approved"
        assert result.is_terminal
        assert result.role == "srcc_finance"

    def test_cross_department_step(self):
        result = resolve_next_step(sbs_flow(), "pending_finance_approval")

        assert result.next_status == "pending_srcc_checker_approval"
        assert result.role == "srcc_checker"
        assert result.department == "SRCC"

    @pytest.mark.parametrize("status", [
        "pending_manager_approval",
        "approved",
        "paid",
        "revision_requested",
        "",
    ])
    def test_unknown_or_non_pending_status_returns_none(self, status):
        assert resolve_next_step(srcc_flow(), status) is None

    def test_status_string_shape_is_never_parsed(self):
        """A status that merely looks like a pending status is not resolvable."""
        assert resolve_next_step(sbs_flow(), "pending_head_approval") is None


# =========================================================================
# validate_steps()
# =========================================================================


class TestValidateSteps:

    def test_valid_flow_returned_in_order(self):
        ordered = validate_steps("SBS", reversed(sbs_flow().steps))
        assert [s.step_number for s in ordered] == [1, 2, 3, 4, 5, 6]

    def test_empty_flow_rejected(self):
        with pytest.raises(InvalidFlowDefinitionError, match="no steps"):
            validate_steps("SRCC", [])

    def test_gap_in_step_numbers_rejected(self):
        with pytest.raises(InvalidFlowDefinitionError, match="contiguous"):
            validate_steps("SRCC", [
                step(1, "claim_checker", next_status="pending_srcc_finance_approval"),
                step(3, "srcc_finance"),
            ])

    def test_duplicate_role_rejected(self):
        with pytest.raises(InvalidFlowDefinitionError, match="duplicate roles"):
            validate_steps("SRCC", [
                step(1, "srcc_finance", next_status="pending_srcc_finance_approval"),
                step(2, "srcc_finance"),
            ])

    def test_unknown_next_status_rejected(self):
        with pytest.raises(InvalidFlowDefinitionError, match="unknown status"):
            validate_steps("SRCC", [
                step(1, "claim_checker", next_status="pending_manager_approval"),
                step(2, "srcc_finance"),
            ])

    def test_final_step_must_end_in_approved(self):
        with pytest.raises(InvalidFlowDefinitionError, match="final step"):
            validate_steps("SRCC", [
                step(1, "claim_checker", next_status="pending_srcc_finance_approval"),
                step(2, "srcc_finance", next_status="pending_claim_checker_approval"),
            ])

    def test_early_step_moving_to_approved_rejected(self):
        with pytest.raises(InvalidFlowDefinitionError, match="before the final step"):
            validate_steps("SRCC", [
                step(1, "claim_checker", next_status="approved"),
                step(2, "srcc_finance", next_status="approved"),
            ])

    @pytest.mark.parametrize("loop_status", [
        "pending_claim_checker_approval",
        "pending_reviewer_approval",
    ])
    def test_step_moving_backwards_rejected(self, loop_status):
        with pytest.raises(InvalidFlowDefinitionError, match="moves back"):
            validate_steps("SU", [
                step(1, "claim_checker", "SU", "pending_reviewer_approval"),
                step(2, "reviewer", "SU", loop_status),
                step(3, "approver", "SU", "approved"),
            ])

    def test_skipping_forward_is_allowed(self):
        ordered = validate_steps("SU", [
            step(1, "claim_checker", "SU", "pending_approver_approval"),
            step(2, "reviewer", "SU", "pending_approver_approval"),
            step(3, "approver", "SU", "approved"),
        ])
        assert [s.step_number for s in ordered] == [1, 2, 3]

    def test_error_carries_department(self):
        with pytest.raises(InvalidFlowDefinitionError) as exc_info:
            validate_steps("SU", [])
        assert exc_info.value.department == "SU"
        assert exc_info.value.code == "INVALID_FLOW_DEFINITION"
