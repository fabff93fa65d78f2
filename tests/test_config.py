"""
Tests for configuration loading, validation report checks and logging.
"""

import io
import logging
from pathlib import Path

import pytest
import structlog
from pydantic import ValidationError

from core import env_validator
from core.config import DEFAULT_TIMER_INTERVAL_SECONDS, Config
from core.env_validator import (
    describe_config,
    invalid_ip_ranges,
    validate_all,
    validate_api_config,
    validate_trust_rules,
    validate_tunnel_config
)
from core.log_masking import MASK, mask_log_data, mask_string
from core.logger import get_logger, role_log_file, setup_logging


class TestConfig:

    @pytest.mark.parametrize("interval,expected", [
        (5, DEFAULT_TIMER_INTERVAL_SECONDS),
        (4000, DEFAULT_TIMER_INTERVAL_SECONDS),
        (10, 10),
        (3600, 3600),
        (90, 90),
    ])
    def test_timer_interval_bounds(self, make_config, interval, expected):
        assert make_config(timer_interval_seconds=interval).timer_interval_seconds == expected

    def test_backend_name_normalized(self, make_config):
        assert make_config(service_backend="SystemD").service_backend == "systemd"

    def test_unknown_backend_rejected(self, make_config):
        with pytest.raises(ValidationError):
            make_config(service_backend="launchd")

    def test_auto_backend_resolves(self, make_config, monkeypatch):
        monkeypatch.setattr("core.config.sys.platform", "win32")
        assert make_config().resolved_backend == "windows"

        monkeypatch.setattr("core.config.sys.platform", "linux")
        assert make_config().resolved_backend == "systemd"

    def test_lists_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TRUSTED_SSIDS", '["HomeNet", "Office"]')
        monkeypatch.setenv("TRUSTED_IP_RANGES", '["10.0.0.0/8"]')

        config = Config(_env_file=None)

        assert config.trusted_ssids == ["HomeNet", "Office"]
        assert config.trust_config().trusted_ip_ranges == ("10.0.0.0/8",)

    def test_default_exclusions_cover_tunnel_adapter(self):
        assert "wireguard" in Config(_env_file=None).excluded_adapters

    def test_data_path_created(self, make_config, tmp_path):
        config = make_config(data_dir=str(tmp_path / "state" / "nested"))

        assert config.data_path.is_dir()


class TestEnvValidator:

    def test_invalid_ip_ranges(self):
        ranges = ["192.168.1.0/24", "10.0.0.1", "10.0.0.0/40", "fe80::/10", " 172.16.0.0/12 "]

        assert invalid_ip_ranges(ranges) == ["10.0.0.1", "10.0.0.0/40", "fe80::/10"]

    def test_trust_rule_warnings(self, make_config):
        errors, warnings = validate_trust_rules(make_config(trusted_ip_ranges=["bogus"]))

        assert errors == []
        assert any("bogus" in warning for warning in warnings)

    def test_no_trust_rules_warns(self, make_config):
        _, warnings = validate_trust_rules(make_config(trusted_ssids=[], trusted_ip_ranges=[]))

        assert any("every network is untrusted" in warning for warning in warnings)

    def test_missing_tunnel_config_warns(self, make_config, tmp_path):
        _, warnings = validate_tunnel_config(
            make_config(service_backend="systemd", tunnel_config_path=str(tmp_path / "missing.conf"))
        )

        assert any("TUNNEL_CONFIG_PATH does not exist" in warning for warning in warnings)

    def test_exposed_api_requires_key(self, make_config):
        errors, _ = validate_api_config(make_config(api_host="0.0.0.0"))
        assert errors

        errors, _ = validate_api_config(make_config(api_host="0.0.0.0", api_key="k"))
        assert errors == []

        errors, _ = validate_api_config(make_config(api_host="0.0.0.0", api_enabled=False))
        assert errors == []

    def test_validate_all(self, make_config, tmp_path):
        conf = tmp_path / "home.conf"
        conf.write_text("[Interface]\n")

        is_valid, errors, _ = validate_all(make_config(service_backend="systemd", tunnel_config_path=str(conf)))

        assert is_valid
        assert errors == []

    def test_validate_all_reports_load_errors(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SERVICE_BACKEND", "launchd")

        is_valid, errors, _ = validate_all()

        assert not is_valid
        assert any("service_backend" in error for error in errors)

    def test_validate_and_exit(self, monkeypatch):
        monkeypatch.setattr(env_validator, "validate_all", lambda: (False, ["broken"], []))

        with pytest.raises(SystemExit):
            env_validator.validate_and_exit()
        assert env_validator.validate_and_exit(exit_on_error=False) is False

    def test_describe_masks_api_key(self, make_config):
        assert describe_config(make_config(api_key="hunter2"))["api_key"] == MASK


class TestLogMasking:

    def test_wireguard_keys(self):
        text = "PrivateKey = yAnz5TF+lXXJte14tji3zlMNq+hd2rYUIgJBgB3fBmk=\nPresharedKey=abc123="

        masked = mask_string(text)

        assert "yAnz5TF" not in masked
        assert "abc123" not in masked
        assert masked.count(MASK) == 2

    def test_sensitive_keys_in_event(self):
        event = {"event": "Config loaded", "api_key": "s3cret", "tunnel": "office", "headers": {"x-api-key": "s3cret"}}

        masked = mask_log_data(event)

        assert masked["api_key"] == MASK
        assert masked["headers"]["x-api-key"] == MASK
        assert masked["tunnel"] == "office"
        assert masked["event"] == "Config loaded"

    def test_non_strings_untouched(self):
        assert mask_log_data({"count": 3, "addresses": ["10.0.0.1"]}) == {"count": 3, "addresses": ["10.0.0.1"]}


class TestLogging:

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()

    def test_role_log_file(self):
        assert role_log_file("logs/autopilot.log", "daemon") == Path("logs/autopilot.log")
        assert role_log_file("logs/autopilot.log", "tunnelctl") == Path("logs/autopilot-tunnelctl.log")

    def test_events_are_masked_and_tagged_with_role(self, tmp_path):
        stream = io.StringIO()
        setup_logging(log_file=str(tmp_path / "autopilot.log"), role="tunnelctl", console_stream=stream)

        get_logger("tests").info("Installing tunnel", api_key="s3cret-value")

        output = stream.getvalue()
        assert "Installing tunnel" in output
        assert "s3cret-value" not in output
        assert MASK in output
        assert "tunnelctl" in output
        assert (tmp_path / "autopilot-tunnelctl.log").exists()

    def test_level_filters_lower_events(self, tmp_path):
        stream = io.StringIO()
        setup_logging(log_level="WARNING", enable_file_logging=False, console_stream=stream)

        get_logger("tests").info("routine cycle")

        assert stream.getvalue() == ""
