"""
Approval services: the generic workflow engine, counterparty acceptance
and best-effort notification fan-out.
"""

from approval_services.acceptance_service import AcceptanceService
from approval_services.notifications import (
    ChannelResult,
    DispatchReport,
    EventKind,
    NotificationDispatcher,
)
from approval_services.workflow_engine import WorkflowEngine, create_workflow_engine

__all__ = [
    "AcceptanceService",
    "ChannelResult",
    "DispatchReport",
    "EventKind",
    "NotificationDispatcher",
    "WorkflowEngine",
    "create_workflow_engine",
]
