"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the YAML documents of a configuration set and parses them into
typed, frozen objects: ``ApprovalFlowTemplate`` per department,
``EntityTypeConfig`` per entity type, and the set-level settings.

Architecture position
---------------------
**Config layer**.  Depends on kernel domain types only; callers use
``approval_config.get_active_config()`` rather than this module.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; malformed values raise
  ``ValueError``.  Nothing required is silently defaulted.
* Flow steps pass ``validate_steps`` at load time, so an invalid flow
  file never reaches the flow store.
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid flow steps  -> ``InvalidFlowDefinitionError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    AcceptanceCodeSettings,
    ApprovalConfigurationSet,
    NotificationSettings,
)
from approval_kernel.domain.entity_type import (
    DEFAULT_ADMIN_ROLES,
    EntityTypeConfig,
    Operation,
    StartState,
)
from approval_kernel.domain.flow import (
    ApprovalFlowTemplate,
    ApprovalStep,
    validate_steps,
)

ROOT_FILE = "root.yaml"
FLOWS_FILE = "flows.yaml"
ENTITY_TYPES_FILE = "entity_types.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _string_tuple(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list of strings, got {value!r}")
    return tuple(str(v) for v in value)


def parse_step(data: dict[str, Any]) -> ApprovalStep:
    """Parse one flow step; ``description`` is the only optional key."""
    return ApprovalStep(
        step_number=int(data["step_number"]),
        role=str(data["role"]),
        department=str(data["department"]),
        description=str(data.get("description", "")),
        next_status=str(data["next_status"]),
    )


def parse_flow(data: dict[str, Any]) -> ApprovalFlowTemplate:
    """Parse and validate one department flow."""
    department = str(data["department"])
    steps = validate_steps(department, [parse_step(s) for s in data["steps"]])
    return ApprovalFlowTemplate(
        department=department,
        steps=steps,
        is_active=bool(data.get("is_active", True)),
        description=str(data.get("description", "")),
    )


def parse_entity_type(name: str, data: dict[str, Any]) -> EntityTypeConfig:
    """
    Parse an ``EntityTypeConfig`` from a dict.

    Raises:
        KeyError: ``label`` or ``start_state`` missing.
        ValueError: unknown start state or operation, malformed lists.
    """
    try:
        start_state = StartState(data["start_state"])
    except ValueError:
        raise ValueError(
            f"{name}: start_state must be one of "
            f"{[s.value for s in StartState]}, got {data['start_state']!r}"
        ) from None

    required: dict[str, tuple[str, ...]] = {}
    for operation, fields in (data.get("required_fields") or {}).items():
        try:
            Operation(operation)
        except ValueError:
            raise ValueError(f"{name}: unknown operation {operation!r} in required_fields") from None
        required[operation] = _string_tuple(fields, f"{name}.required_fields.{operation}")

    sla = data.get("sla_hours_by_level", [24])
    if not isinstance(sla, list) or not all(isinstance(h, int) for h in sla):
        raise ValueError(f"{name}: sla_hours_by_level must be a list of integers")

    admin_roles = data.get("admin_roles")
    return EntityTypeConfig(
        entity_type=name,
        label=str(data["label"]),
        start_state=start_state,
        sla_hours_by_level=tuple(sla),
        required_fields=required,
        role_permissions={str(k): str(v) for k, v in (data.get("role_permissions") or {}).items()},
        admin_roles=(
            frozenset(_string_tuple(admin_roles, f"{name}.admin_roles"))
            if admin_roles is not None else DEFAULT_ADMIN_ROLES
        ),
        cancel_delegate_roles=frozenset(
            _string_tuple(data.get("cancel_delegate_roles"), f"{name}.cancel_delegate_roles")
        ),
        payment_roles=frozenset(_string_tuple(data.get("payment_roles"), f"{name}.payment_roles")),
        paid_status=data.get("paid_status", "paid"),
        acceptance_status=data.get("acceptance_status"),
        extra_statuses=_string_tuple(data.get("extra_statuses"), f"{name}.extra_statuses"),
    )


def parse_acceptance_settings(data: dict[str, Any] | None) -> AcceptanceCodeSettings:
    if not data:
        return AcceptanceCodeSettings()
    return AcceptanceCodeSettings(
        ttl_seconds=int(data.get("ttl_seconds", AcceptanceCodeSettings.ttl_seconds)),
        cooldown_seconds=int(data.get("cooldown_seconds", AcceptanceCodeSettings.cooldown_seconds)),
        max_attempts=int(data.get("max_attempts", AcceptanceCodeSettings.max_attempts)),
        code_length=int(data.get("code_length", AcceptanceCodeSettings.code_length)),
    )


def parse_notification_settings(data: dict[str, Any] | None) -> NotificationSettings:
    if not data:
        return NotificationSettings()
    return NotificationSettings(
        max_workers=int(data.get("max_workers", NotificationSettings.max_workers)),
        timeout_seconds=float(data.get("timeout_seconds", NotificationSettings.timeout_seconds)),
    )


def compute_checksum(*documents: dict[str, Any]) -> str:
    """Deterministic SHA-256 over canonical JSON of the source documents."""
    canonical = json.dumps(documents, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_configuration_set(directory: Path) -> ApprovalConfigurationSet:
    """
    Load every document of the configuration set in ``directory``.

    Raises:
        FileNotFoundError: a required document is missing.
        KeyError / ValueError: a document fails to parse.
        InvalidFlowDefinitionError: a flow fails step validation.
    """
    root = load_yaml_file(directory / ROOT_FILE)
    flows_doc = load_yaml_file(directory / FLOWS_FILE)
    types_doc = load_yaml_file(directory / ENTITY_TYPES_FILE)

    flows = tuple(parse_flow(f) for f in flows_doc["flows"])
    departments = [f.department for f in flows]
    duplicated = sorted({d for d in departments if departments.count(d) > 1})
    if duplicated:
        raise ValueError(f"Duplicate flow departments: {duplicated}")

    entity_types = {
        name: parse_entity_type(name, data)
        for name, data in types_doc["entity_types"].items()
    }

    return ApprovalConfigurationSet(
        config_id=str(root["config_id"]),
        version=int(root["version"]),
        description=str(root.get("description", "")),
        flows=flows,
        entity_types=entity_types,
        acceptance_codes=parse_acceptance_settings(root.get("acceptance_codes")),
        notifications=parse_notification_settings(root.get("notifications")),
        checksum=compute_checksum(root, flows_doc, types_doc),
    )
