"""Kernel services: flow store, approver lookup, audit trail, entity store."""

from approval_kernel.services.approver_lookup import ApproverLookup, SqlUserDirectory
from approval_kernel.services.audit_trail import AuditAppend, AuditTrailRecorder
from approval_kernel.services.entity_store import EntityStore
from approval_kernel.services.flow_service import FlowService

__all__ = [
    "ApproverLookup",
    "AuditAppend",
    "AuditTrailRecorder",
    "EntityStore",
    "FlowService",
    "SqlUserDirectory",
]
