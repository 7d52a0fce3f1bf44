"""
Rules loading and startup configuration validation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from assurance.app_shell.config import ConfigurationError, validate_ops_rules
from assurance.rules.adapter import SchedulerRulesAdapter
from assurance.rules.loader import load_rules
from assurance.rules.models import Rules

ROOT = Path(__file__).resolve().parent.parent.parent


def valid_rules_dict() -> dict[str, Any]:
    return {
        "project": {"slug": "assurance", "rules_version": "1.0"},
        "scheduling": {"max_per_tick": 3, "default_timezone": "UTC"},
        "schedules": {"max_per_owner": 5},
        "delivery": {"manage_url": "https://app.example.com/schedules"},
        "ops": {"required_env": []},
    }


def write_rules(tmp_path: Path, data: dict[str, Any]) -> Path:
    path = tmp_path / "rules.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadRules:
    def test_repository_rules_load(self) -> None:
        rules = load_rules(ROOT / "rules.yaml")

        assert rules.project.slug == "assurance"
        assert rules.scheduling.max_per_tick == 10
        assert rules.scheduling.max_consecutive_failures == 5
        assert rules.delivery.sender == "reports@example.com"

    def test_defaults_fill_omitted_values(self, tmp_path: Path) -> None:
        rules = load_rules(write_rules(tmp_path, valid_rules_dict()))

        assert rules.scheduling.max_per_tick == 3
        assert rules.scheduling.max_consecutive_failures == 5
        assert rules.schedules.max_recipients == 20
        assert rules.schedules.formats == ["PDF", "PDF_AND_DOCX", "PDF_AND_HTML"]

    def test_fenced_yaml_block(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.md"
        path.write_text(
            "# Rules\n\nSome prose.\n\n```yaml\n"
            + yaml.safe_dump(valid_rules_dict())
            + "```\n\nTrailing notes.\n"
        )

        rules = load_rules(path)

        assert rules.schedules.max_per_owner == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("project: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_missing_section(self, tmp_path: Path) -> None:
        data = valid_rules_dict()
        del data["delivery"]

        with pytest.raises(ValueError, match="validation failed"):
            load_rules(write_rules(tmp_path, data))

    @pytest.mark.parametrize(
        ("section", "key", "value"),
        [
            ("scheduling", "max_per_tick", 0),
            ("scheduling", "max_consecutive_failures", 0),
            ("scheduling", "poll_interval_seconds", 0),
            ("schedules", "max_per_owner", 0),
        ],
    )
    def test_out_of_range_values(self, tmp_path: Path, section: str, key: str, value: int) -> None:
        data = valid_rules_dict()
        data[section][key] = value

        with pytest.raises(ValueError):
            load_rules(write_rules(tmp_path, data))


class TestSchedulerRulesAdapter:
    def test_exposes_scheduler_settings(self, tmp_path: Path) -> None:
        adapter = SchedulerRulesAdapter(load_rules(write_rules(tmp_path, valid_rules_dict())))

        assert adapter.get_max_per_tick() == 3
        assert adapter.get_max_consecutive_failures() == 5
        assert adapter.get_max_schedules_per_owner() == 5
        assert adapter.get_max_recipients() == 20
        assert adapter.get_default_timezone() == "UTC"
        assert adapter.get_default_time_of_day() == "09:00"
        assert adapter.get_allowed_formats() == ("PDF", "PDF_AND_DOCX", "PDF_AND_HTML")
        assert adapter.get_run_history_limit() == 10


class TestValidateOpsRules:
    def test_valid_configuration(self, rules: Rules, tmp_path: Path) -> None:
        data_dir = tmp_path / "data"

        validate_ops_rules(rules, data_dir)

        assert data_dir.is_dir()

    def test_missing_env(
        self, rules: Rules, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ASSURANCE_SCAN_API_KEY", raising=False)
        rules.ops.required_env = ["ASSURANCE_SCAN_API_KEY"]

        with pytest.raises(ConfigurationError, match="ASSURANCE_SCAN_API_KEY"):
            validate_ops_rules(rules, tmp_path)

    def test_present_env(
        self, rules: Rules, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ASSURANCE_SCAN_API_KEY", "secret")
        rules.ops.required_env = ["ASSURANCE_SCAN_API_KEY"]

        validate_ops_rules(rules, tmp_path)

    def test_bad_default_timezone(self, rules: Rules, tmp_path: Path) -> None:
        rules.scheduling.default_timezone = "Moon/Crater"

        with pytest.raises(ConfigurationError, match="Unknown timezone"):
            validate_ops_rules(rules, tmp_path)

    def test_bad_default_time(self, rules: Rules, tmp_path: Path) -> None:
        rules.scheduling.default_time_of_day = "25:00"

        with pytest.raises(ConfigurationError):
            validate_ops_rules(rules, tmp_path)
