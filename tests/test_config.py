"""Tests for settings validation and the YAML policy loader."""

import pytest
from pydantic import ValidationError

from src.config import Priority, Settings
from src.core import ConfigurationException
from src.escalation.infrastructure import YAMLPolicyLoader


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.escalation_sweep_interval == 3600
        assert settings.escalation_initial_delay == 30.0
        assert settings.escalation_cooldown_hours == 24.0
        assert (settings.sla_high_hours, settings.sla_medium_hours, settings.sla_low_hours) == (24, 48, 72)

    def test_environment_validated(self):
        with pytest.raises(ValidationError):
            Settings(environment="qa")

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ESCALATION_SWEEP_INTERVAL", "0")
        monkeypatch.setenv("SLA_HIGH_HOURS", "12")
        settings = Settings()
        assert settings.escalation_sweep_interval == 0
        assert settings.sla_high_hours == 12


class TestYAMLPolicyLoader:
    def test_missing_file_uses_settings(self, tmp_path):
        settings = Settings(sla_config_path=tmp_path / "absent.yaml", sla_medium_hours=36)
        sla_policy, escalation_policy = YAMLPolicyLoader(settings).load()

        assert sla_policy.threshold_hours(Priority.MEDIUM) == 36
        assert escalation_policy.cooldown_hours == 24.0
        assert escalation_policy.superadmin_level == 2
        assert escalation_policy.critical_level == 3

    def test_file_overrides_settings(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text(
            "sla_hours:\n"
            "  high: 8\n"
            "escalation:\n"
            "  cooldown_hours: 12\n"
            "  critical_level: 4\n"
        )
        sla_policy, escalation_policy = YAMLPolicyLoader(Settings()).load(path)

        assert sla_policy.threshold_hours(Priority.HIGH) == 8
        assert sla_policy.threshold_hours(Priority.LOW) == 72
        assert escalation_policy.cooldown_hours == 12
        assert escalation_policy.critical_level == 4

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("sla_hours:\n  high: -1\n")
        with pytest.raises(ConfigurationException):
            YAMLPolicyLoader(Settings()).load(path)

    def test_malformed_yaml_rejected(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("sla_hours: [high: 24\n")
        with pytest.raises(ConfigurationException):
            YAMLPolicyLoader(Settings()).load(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "policy.yaml"
        path.write_text("- 24\n- 48\n")
        with pytest.raises(ConfigurationException):
            YAMLPolicyLoader(Settings()).load(path)
