#!/usr/bin/env python3
"""
Seed the configured department approval flows into the database.

Creates tables if needed, upserts every flow from the active
configuration set, and prints the resulting status -> role tables.

Usage:
    python3 scripts/seed_flows.py
    python3 scripts/seed_flows.py --database-url sqlite:///approval.db
    python3 scripts/seed_flows.py --config-dir path/to/set --show
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from approval_config import get_active_config, get_database_url
from approval_config.bridges import seed_flows
from approval_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from approval_kernel.logging_config import configure_logging
from approval_kernel.services.flow_service import FlowService


def show_flows(flow_store: FlowService) -> None:
    for flow in flow_store.list_flows(include_inactive=True):
        state = "active" if flow.is_active else "inactive"
        print(f"{flow.department} ({state}): {flow.description}")
        for step in flow.steps:
            print(
                f"  {step.step_number}. {step.status:<42} "
                f"role={step.role:<20} dept={step.department:<6} -> {step.next_status}"
            )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed department approval flows")
    parser.add_argument("--database-url", default=None, help="defaults to $APPROVAL_DATABASE_URL")
    parser.add_argument("--config-dir", type=Path, default=None, help="configuration set directory")
    parser.add_argument("--show", action="store_true", help="only print stored flows")
    parser.add_argument("--verbose", action="store_true", help="emit structured logs to stderr")
    args = parser.parse_args(argv)

    configure_logging(level=logging.INFO if args.verbose else logging.WARNING)
    init_engine_from_url(args.database_url or get_database_url())
    create_tables()

    with session_scope() as session:
        flow_store = FlowService(session)
        if not args.show:
            config = get_active_config(args.config_dir)
            seeded = seed_flows(flow_store, config.flows)
            print(f"Seeded {len(seeded)} flow(s) from config '{config.config_id}' v{config.version}")
        show_flows(flow_store)
    return 0


if __name__ == "__main__":
    sys.exit(main())
