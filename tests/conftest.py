"""
Pytest fixtures for the approval workflow test suite.

Provides:
- A fresh database per test (in-memory SQLite unless overridden)
- Deterministic clock and a user factory backed by the users table
- Recording email / SMS channels and a notification dispatcher over them
- Flow store seeded with the configured department flows
- Workflow engines for every configured entity type

Environment Variables:
- APPROVAL_TEST_DATABASE_URL: run the suite against another database (e.g.
  a disposable PostgreSQL database).  Tables are created and dropped
  around every test.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from approval_config import get_entity_type_config, get_flow_definitions
from approval_config.bridges import seed_flows
from approval_kernel.db.engine import build_engine, create_tables, drop_tables
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.directory import DirectoryUser, UserStatus
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.models.user import UserModel
from approval_kernel.services.approver_lookup import ApproverLookup, SqlUserDirectory
from approval_kernel.services.flow_service import FlowService
from approval_services.notifications import ChannelResult, NotificationDispatcher
from approval_services.workflow_engine import WorkflowEngine

DEFAULT_TEST_DATABASE_URL = "sqlite://"


def get_test_database_url() -> str:
    return os.environ.get("APPROVAL_TEST_DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, claim_engine):
            claim_engine.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "entity_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """A fresh engine with all tables created; dropped at teardown."""
    engine = build_engine(get_test_database_url())
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Commits are real: the engine under test commits after every accepted
    transition, and the database is discarded with ``db_engine``.
    """
    factory = sessionmaker(bind=db_engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock and users
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def make_user(session):
    """
    Factory inserting a user into the directory.

    Usage::

        checker = make_user("claim_checker", department="SRCC")
    """

    def _make(
        *roles: str,
        department: str | None = None,
        status: UserStatus = UserStatus.ACTIVE,
        first_name: str = "Test",
        last_name: str | None = None,
        with_email: bool = True,
        with_phone: bool = True,
    ) -> DirectoryUser:
        token = uuid4().hex[:10]
        model = UserModel(
            id=uuid4(),
            email=f"{token}@example.org" if with_email else None,
            phone_number=f"+2547{token[:8]}" if with_phone else None,
            first_name=first_name,
            last_name=last_name or (roles[0] if roles else "User"),
            roles=list(roles),
            department=department,
            status=status.value,
        )
        session.add(model)
        session.commit()
        return model.to_dto()

    return _make


@pytest.fixture
def originator(make_user) -> DirectoryUser:
    return make_user("staff", department="SRCC", first_name="Olive", last_name="Originator")


@pytest.fixture
def admin_user(make_user) -> DirectoryUser:
    return make_user("admin", first_name="Ada", last_name="Admin")


# =============================================================================
# Notification channels
# =============================================================================


@dataclass(frozen=True)
class SentMessage:
    to: str
    subject: str | None
    body: str


class RecordingEmailChannel:
    """Email channel that records every send; addresses in ``fail_for`` fail."""

    def __init__(self, fail_for=(), raise_for=()):
        self.sent: list[SentMessage] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self._lock = threading.Lock()

    def send_email(self, to: str, subject: str, body: str) -> ChannelResult:
        with self._lock:
            self.sent.append(SentMessage(to, subject, body))
        if to in self.raise_for:
            raise ConnectionError("smtp connection reset")
        if to in self.fail_for:
            return ChannelResult(success=False, error="mailbox unavailable")
        return ChannelResult(success=True)

    def recipients(self) -> set[str]:
        return {m.to for m in self.sent}

    def subjects(self) -> list[str]:
        return [m.subject for m in self.sent]


class RecordingSmsChannel:
    """SMS channel that records every send; numbers in ``fail_for`` are not acknowledged."""

    def __init__(self, fail_for=()):
        self.sent: list[SentMessage] = []
        self.fail_for = set(fail_for)
        self._lock = threading.Lock()

    def send_sms(self, to: str, body: str) -> bool:
        with self._lock:
            self.sent.append(SentMessage(to, None, body))
        return to not in self.fail_for

    def recipients(self) -> set[str]:
        return {m.to for m in self.sent}


@pytest.fixture
def email_channel() -> RecordingEmailChannel:
    return RecordingEmailChannel()


@pytest.fixture
def sms_channel() -> RecordingSmsChannel:
    return RecordingSmsChannel()


@pytest.fixture
def dispatcher(email_channel, sms_channel):
    with NotificationDispatcher(
        email_channel=email_channel,
        sms_channel=sms_channel,
        max_workers=4,
        timeout_seconds=5.0,
    ) as d:
        yield d


# =============================================================================
# Kernel services
# =============================================================================


@pytest.fixture
def flow_service(session) -> FlowService:
    """Flow store seeded with the configured SRCC / SU / SBS flows."""
    service = FlowService(session)
    seed_flows(service, get_flow_definitions())
    session.commit()
    return service


@pytest.fixture
def approver_lookup(session) -> ApproverLookup:
    return ApproverLookup(SqlUserDirectory(session))


@pytest.fixture
def make_engine(session, flow_service, approver_lookup, dispatcher, deterministic_clock):
    """Factory for a WorkflowEngine over the shared session and fixtures."""

    def _make(entity_type: str = "claim", config=None) -> WorkflowEngine:
        return WorkflowEngine(
            session,
            config or get_entity_type_config(entity_type),
            flow_service=flow_service,
            approver_lookup=approver_lookup,
            dispatcher=dispatcher,
            clock=deterministic_clock,
        )

    return _make


@pytest.fixture
def claim_engine(make_engine) -> WorkflowEngine:
    return make_engine("claim")


@pytest.fixture
def budget_engine(make_engine) -> WorkflowEngine:
    return make_engine("budget")


@pytest.fixture
def contract_engine(make_engine) -> WorkflowEngine:
    return make_engine("contract")


@pytest.fixture
def invoice_engine(make_engine) -> WorkflowEngine:
    return make_engine("invoice")


@pytest.fixture
def srcc_checker(make_user) -> DirectoryUser:
    return make_user("claim_checker", department="SRCC", first_name="Chris", last_name="Checker")


@pytest.fixture
def srcc_finance(make_user) -> DirectoryUser:
    return make_user("srcc_finance", department="SRCC", first_name="Fay", last_name="Finance")


@pytest.fixture
def srcc_staff(srcc_checker, srcc_finance) -> dict[str, DirectoryUser]:
    """One active approver per SRCC flow level."""
    return {"claim_checker": srcc_checker, "srcc_finance": srcc_finance}


