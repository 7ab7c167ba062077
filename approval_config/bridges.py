"""
Config-to-kernel bridges (``approval_config.bridges``).

Translate configuration into kernel inputs so the kernel never reads
configuration itself: seeding flow templates into the flow store and
building the acceptance-code cache from its settings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from approval_config.schema import AcceptanceCodeSettings
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.flow import ApprovalFlowTemplate
from approval_kernel.services.flow_service import FlowService
from approval_kernel.utils.expiring_codes import ExpiringCodeCache

_logger = logging.getLogger("approval_kernel.config.bridges")


def seed_flows(
    flow_store: FlowService,
    flows: Iterable[ApprovalFlowTemplate],
) -> list[ApprovalFlowTemplate]:
    """Upsert every configured flow into the store.

    The caller owns the transaction; nothing is committed here.
    """
    seeded = [
        flow_store.upsert_flow(
            flow.department,
            flow.steps,
            description=flow.description,
            is_active=flow.is_active,
        )
        for flow in flows
    ]
    _logger.info(
        "flows_seeded",
        extra={"departments": [f.department for f in seeded]},
    )
    return seeded


def build_code_cache(
    settings: AcceptanceCodeSettings,
    clock: Clock | None = None,
) -> ExpiringCodeCache:
    return ExpiringCodeCache(
        clock=clock,
        ttl_seconds=settings.ttl_seconds,
        cooldown_seconds=settings.cooldown_seconds,
        max_attempts=settings.max_attempts,
        code_length=settings.code_length,
    )
