"""
Tests for the YAML configuration set and its loader.

Covers:
- Bundled default set: flows, entity types, acceptance / notification settings
- Deterministic checksum and per-directory caching
- APPROVAL_CONFIG_DIR and APPROVAL_DATABASE_URL overrides
- Malformed documents fail loudly (KeyError / ValueError / flow validation)
"""

import shutil
from pathlib import Path

import pytest
import yaml

import approval_config
from approval_config import (
    clear_config_cache,
    get_active_config,
    get_database_url,
    get_entity_type_config,
    get_entity_type_configs,
    get_flow_definitions,
)
from approval_config.loader import compute_checksum, load_configuration_set
from approval_kernel.domain.entity_type import Operation, StartState
from approval_kernel.exceptions import InvalidFlowDefinitionError

DEFAULT_DIR = Path(approval_config.__file__).parent / "sets" / "default"


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def config_dir(tmp_path) -> Path:
    """A writable copy of the bundled configuration set."""
    target = tmp_path / "set"
    shutil.copytree(DEFAULT_DIR, target)
    return target


def rewrite(path: Path, mutate) -> None:
    with open(path) as f:
        doc = yaml.safe_load(f)
    mutate(doc)
    with open(path, "w") as f:
        yaml.safe_dump(doc, f)


class TestDefaultConfigurationSet:

    def test_departments_and_steps(self):
        flows = {f.department: f for f in get_flow_definitions()}

        assert set(flows) == {"SRCC", "SU", "SBS"}
        assert [s.role for s in flows["SRCC"].steps] == ["claim_checker", "srcc_finance"]
        assert [s.role for s in flows["SU"].steps] == [
            "claim_checker", "reviewer", "approver", "srcc_checker", "srcc_finance",
        ]
        assert flows["SBS"].steps[0].role == "head_of_programs"
        assert flows["SBS"].steps[-1].next_status == "approved"
        assert flows["SU"].steps[3].department == "SRCC"

    def test_entity_types(self):
        configs = get_entity_type_configs()

        assert set(configs) == {"claim", "budget", "contract", "invoice"}
        assert configs["claim"].start_state is StartState.FIRST_PENDING
        assert configs["budget"].start_state is StartState.DRAFT
        assert configs["budget"].sla_hours_by_level == (24, 48, 72)
        assert configs["budget"].paid_status is None
        assert configs["contract"].acceptance_status == "active"
        assert configs["claim"].required_for(Operation.MARK_PAID) == (
            "payment_method", "transaction_id", "payment_advice_url",
        )
        assert configs["claim"].permission_role("finance") == "finance_approver"
        assert configs["invoice"].paid_status == "paid"

    def test_settings(self):
        config = get_active_config()

        assert config.config_id == "default"
        assert config.acceptance_codes.ttl_seconds == 1800
        assert config.acceptance_codes.cooldown_seconds == 120
        assert config.acceptance_codes.max_attempts == 5
        assert config.acceptance_codes.code_length == 6
        assert config.notifications.max_workers == 8

    def test_unknown_entity_type(self):
        with pytest.raises(KeyError):
            get_entity_type_config("timesheet")


class TestLoadingBehaviour:

    def test_checksum_is_deterministic(self, config_dir):
        first = load_configuration_set(config_dir)
        second = load_configuration_set(config_dir)

        assert first.checksum == second.checksum
        assert len(first.checksum) == 64
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_checksum_changes_with_content(self, config_dir):
        before = load_configuration_set(config_dir).checksum
        rewrite(config_dir / "root.yaml", lambda d: d.update(version=2))

        assert load_configuration_set(config_dir).checksum != before

    def test_cached_per_directory(self, config_dir):
        assert get_active_config(config_dir) is get_active_config(config_dir)
        assert get_active_config(config_dir) is not get_active_config()

    def test_load_is_traced(self, config_dir, captured_logs):
        get_active_config(config_dir)

        trace = next(r for r in captured_logs() if r["message"] == "APPROVAL_CONFIG_TRACE")
        assert trace["config_set_id"] == "default"
        assert trace["flow_count"] == 3
        assert len(trace["checksum"]) == 64

    def test_config_dir_from_environment(self, config_dir, monkeypatch):
        rewrite(config_dir / "root.yaml", lambda d: d.update(config_id="staging"))
        monkeypatch.setenv("APPROVAL_CONFIG_DIR", str(config_dir))

        assert get_active_config().config_id == "staging"

    def test_database_url(self, monkeypatch):
        monkeypatch.delenv("APPROVAL_DATABASE_URL", raising=False)
        assert get_database_url().startswith("postgresql://")

        monkeypatch.setenv("APPROVAL_DATABASE_URL", "sqlite:///approvals.db")
        assert get_database_url() == "sqlite:///approvals.db"

    def test_optional_settings_default(self, config_dir):
        rewrite(config_dir / "root.yaml", lambda d: d.pop("acceptance_codes"))

        assert load_configuration_set(config_dir).acceptance_codes.max_attempts == 5


class TestMalformedConfiguration:

    def test_missing_document(self, config_dir):
        (config_dir / "flows.yaml").unlink()
        with pytest.raises(FileNotFoundError):
            load_configuration_set(config_dir)

    def test_missing_required_key(self, config_dir):
        rewrite(config_dir / "entity_types.yaml", lambda d: d["entity_types"]["claim"].pop("label"))
        with pytest.raises(KeyError):
            load_configuration_set(config_dir)

    def test_unknown_start_state(self, config_dir):
        rewrite(
            config_dir / "entity_types.yaml",
            lambda d: d["entity_types"]["budget"].update(start_state="submitted"),
        )
        with pytest.raises(ValueError, match="start_state"):
            load_configuration_set(config_dir)

    def test_unknown_operation(self, config_dir):
        rewrite(
            config_dir / "entity_types.yaml",
            lambda d: d["entity_types"]["claim"]["required_fields"].update(archive=["x"]),
        )
        with pytest.raises(ValueError, match="archive"):
            load_configuration_set(config_dir)

    def test_non_integer_sla(self, config_dir):
        rewrite(
            config_dir / "entity_types.yaml",
            lambda d: d["entity_types"]["claim"].update(sla_hours_by_level=["24h"]),
        )
        with pytest.raises(ValueError, match="sla_hours_by_level"):
            load_configuration_set(config_dir)

    def test_duplicate_department(self, config_dir):
        rewrite(config_dir / "flows.yaml", lambda d: d["flows"].append(d["flows"][0]))
        with pytest.raises(ValueError, match="SRCC"):
            load_configuration_set(config_dir)

    def test_invalid_flow_steps(self, config_dir):
        def break_flow(doc):
            doc["flows"][0]["steps"][0]["next_status"] = "pending_nobody_approval"

        rewrite(config_dir / "flows.yaml", break_flow)
        with pytest.raises(InvalidFlowDefinitionError):
            load_configuration_set(config_dir)
