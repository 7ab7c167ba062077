"""
Tests for AcceptanceService (counterparty acceptance of approved contracts).

Covers:
- Code delivered to the counterparty only, never to the requester
- Correct code moves approved -> active with one ACCEPTED audit entry
- Wrong / expired / exhausted codes leave the entity untouched
- Types without an acceptance step, non-approved entities and
  non-counterparty actors are refused
"""

from uuid import uuid4

import pytest

from approval_config import get_active_config
from approval_config.bridges import build_code_cache
from approval_kernel.domain.workflow_entity import AuditAction
from approval_kernel.exceptions import (
    AcceptanceAttemptsExceededError,
    AcceptanceCodeCooldownError,
    AcceptanceCodeExpiredError,
    AcceptanceCodeInvalidError,
    InvalidTransitionError,
    StaleEntityStateError,
    UnauthorizedActorError,
)
from approval_services.acceptance_service import AcceptanceService


@pytest.fixture
def code_cache(deterministic_clock):
    return build_code_cache(get_active_config().acceptance_codes, deterministic_clock)


@pytest.fixture
def acceptance(contract_engine, code_cache) -> AcceptanceService:
    return AcceptanceService(contract_engine, code_cache)


@pytest.fixture
def vendor(make_user):
    return make_user("vendor", first_name="Victor", last_name="Vendor")


@pytest.fixture
def make_contract(contract_engine, originator, srcc_staff):
    """Factory driving an SRCC contract with ``counterparty`` to approved."""

    def _make(counterparty, approve: bool = True):
        entity = contract_engine.create(
            {
                "department": "SRCC",
                "title": "Survey services",
                "amount": "250000",
                "currency": "KES",
                "counterparty_id": str(counterparty.id),
            },
            originator.id,
        )
        entity = contract_engine.submit(entity.id, originator.id)
        if approve:
            contract_engine.approve(entity.id, srcc_staff["claim_checker"].id)
            entity = contract_engine.approve(entity.id, srcc_staff["srcc_finance"].id)
        return contract_engine.get(entity.id)

    return _make


@pytest.fixture
def approved_contract(make_contract, vendor):
    return make_contract(vendor)


def wrong(code: str) -> str:
    return "0" * len(code)


class TestRequestAcceptanceCode:

    def test_code_goes_to_counterparty(
        self, acceptance, approved_contract, originator, vendor, email_channel, sms_channel,
    ):
        sent_before = len(email_channel.sent)

        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)

        assert len(code) == 6 and code.isdigit()
        delivered = email_channel.sent[sent_before:]
        assert [m.to for m in delivered] == [vendor.email]
        assert delivered[0].subject == "Contract Acceptance Code - Survey services"
        assert code in delivered[0].body
        assert "30 minutes" in delivered[0].body
        assert originator.email not in {m.to for m in delivered}
        assert vendor.phone_number in sms_channel.recipients()

    def test_counterparty_and_admin_may_request(
        self, acceptance, make_contract, vendor, admin_user,
    ):
        first = make_contract(vendor)
        second = make_contract(vendor)

        acceptance.request_acceptance_code(first.id, vendor.id)
        acceptance.request_acceptance_code(second.id, admin_user.id)

    def test_stranger_refused(self, acceptance, approved_contract, make_user):
        with pytest.raises(UnauthorizedActorError):
            acceptance.request_acceptance_code(approved_contract.id, make_user("staff").id)

    def test_resend_cooldown(self, acceptance, approved_contract, originator, deterministic_clock):
        acceptance.request_acceptance_code(approved_contract.id, originator.id)

        with pytest.raises(AcceptanceCodeCooldownError):
            acceptance.request_acceptance_code(approved_contract.id, originator.id)

        deterministic_clock.advance(120)
        acceptance.request_acceptance_code(approved_contract.id, originator.id)

    def test_not_yet_approved(self, acceptance, make_contract, vendor, originator):
        pending = make_contract(vendor, approve=False)

        with pytest.raises(InvalidTransitionError):
            acceptance.request_acceptance_code(pending.id, originator.id)

    def test_type_without_acceptance_step(
        self, invoice_engine, code_cache, originator, srcc_staff,
    ):
        invoice = invoice_engine.create(
            {"department": "SRCC", "title": "Catering", "amount": "800", "currency": "KES"},
            originator.id,
        )
        service = AcceptanceService(invoice_engine, code_cache)

        with pytest.raises(InvalidTransitionError) as exc_info:
            service.request_acceptance_code(invoice.id, originator.id)
        assert "not accepted by a counterparty" in str(exc_info.value)


class TestAccept:

    def test_correct_code_activates_contract(
        self, acceptance, contract_engine, approved_contract, originator, vendor, email_channel,
    ):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)

        entity = acceptance.accept(approved_contract.id, vendor.id, code)

        assert entity.status == "active"
        assert entity.audit_trail[-1].action == AuditAction.ACCEPTED
        assert entity.audit_trail[-1].performed_by == vendor.id
        assert len(entity.audit_trail) == len(approved_contract.audit_trail) + 1
        assert email_channel.sent[-1].to == originator.email
        assert email_channel.sent[-1].subject == "Contract Accepted - Survey services"
        assert contract_engine.get(approved_contract.id).status == "active"

    def test_code_is_single_use(self, acceptance, approved_contract, originator, vendor):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)
        acceptance.accept(approved_contract.id, vendor.id, code)

        with pytest.raises(InvalidTransitionError):
            acceptance.accept(approved_contract.id, vendor.id, code)

    def test_code_survives_a_lost_write(
        self, acceptance, contract_engine, approved_contract, originator, vendor, monkeypatch,
    ):
        """A concurrent write beating the acceptance keeps the code usable."""
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)

        def lose_race(entity, *args, **kwargs):
            raise StaleEntityStateError(str(entity.id), entity.status, entity.version)

        monkeypatch.setattr(contract_engine, "apply_transition", lose_race)
        with pytest.raises(StaleEntityStateError):
            acceptance.accept(approved_contract.id, vendor.id, code)
        monkeypatch.undo()

        assert contract_engine.get(approved_contract.id).status == "approved"
        assert acceptance.accept(approved_contract.id, vendor.id, code).status == "active"

    def test_only_counterparty_may_accept(
        self, acceptance, contract_engine, approved_contract, originator,
    ):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)

        with pytest.raises(UnauthorizedActorError):
            acceptance.accept(approved_contract.id, originator.id, code)
        assert contract_engine.get(approved_contract.id) == approved_contract

    def test_wrong_code_leaves_entity_untouched(
        self, acceptance, contract_engine, approved_contract, originator, vendor,
    ):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)

        with pytest.raises(AcceptanceCodeInvalidError) as exc_info:
            acceptance.accept(approved_contract.id, vendor.id, wrong(code))

        assert exc_info.value.attempts_left == 4
        assert contract_engine.get(approved_contract.id) == approved_contract
        assert acceptance.accept(approved_contract.id, vendor.id, code).status == "active"

    def test_exhausted_attempts(self, acceptance, approved_contract, originator, vendor):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)
        for _ in range(5):
            with pytest.raises(AcceptanceCodeInvalidError):
                acceptance.accept(approved_contract.id, vendor.id, wrong(code))

        with pytest.raises(AcceptanceAttemptsExceededError):
            acceptance.accept(approved_contract.id, vendor.id, code)

    def test_expired_code(
        self, acceptance, contract_engine, approved_contract, originator, vendor,
        deterministic_clock,
    ):
        code = acceptance.request_acceptance_code(approved_contract.id, originator.id)
        deterministic_clock.advance(1800)

        with pytest.raises(AcceptanceCodeExpiredError):
            acceptance.accept(approved_contract.id, vendor.id, code)
        assert contract_engine.get(approved_contract.id).status == "approved"

    def test_unknown_counterparty_id_is_refused(self, acceptance, approved_contract):
        with pytest.raises(UnauthorizedActorError):
            acceptance.accept(approved_contract.id, uuid4(), "123456")
