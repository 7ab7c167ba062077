"""
Configuration schema (``approval_config.schema``).

Frozen dataclasses describing one assembled configuration set.  Flow
templates and entity-type configurations are the kernel's own domain
types; this module adds the set-level envelope and the runtime settings
for acceptance codes and notification fan-out.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from approval_kernel.domain.entity_type import EntityTypeConfig
from approval_kernel.domain.flow import ApprovalFlowTemplate


@dataclass(frozen=True)
class AcceptanceCodeSettings:
    ttl_seconds: int = 1800
    cooldown_seconds: int = 120
    max_attempts: int = 5
    code_length: int = 6


@dataclass(frozen=True)
class NotificationSettings:
    max_workers: int = 8
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ApprovalConfigurationSet:
    """One assembled configuration set.

    ``checksum`` is a SHA-256 over the canonical source documents, used
    to tie logged transitions back to the configuration that governed them.
    """

    config_id: str
    version: int
    flows: tuple[ApprovalFlowTemplate, ...]
    entity_types: Mapping[str, EntityTypeConfig]
    acceptance_codes: AcceptanceCodeSettings = field(default_factory=AcceptanceCodeSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    description: str = ""
    checksum: str = ""

    def flow_for(self, department: str) -> ApprovalFlowTemplate | None:
        for flow in self.flows:
            if flow.department == department:
                return flow
        return None
