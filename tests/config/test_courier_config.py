"""Tests for CourierConfig: schema, env-var resolution, cross-field checks."""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
import yaml
from jsonschema import ValidationError, validate

from courier.config.courier_config import (
    _SCHEMA_PATH,
    ConfigValidationError,
    CourierConfig,
    get_config,
)
from courier.config.settings import build_settings

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_REF_RE = re.compile(r"\$\{([^}:]+?)(?::-(.*))?\}")


@pytest.fixture(scope="module")
def schema() -> dict:
    return json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _write_config(tmp_path: Path, base: dict, overrides: dict | None = None) -> Path:
    cfg = json.loads(json.dumps(base))
    if overrides:
        _deep_merge(cfg, overrides)
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(cfg, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return path


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_minimal_config_valid(self, schema, minimal_config_data):
        validate(instance=minimal_config_data, schema=schema)

    def test_database_required(self, schema, minimal_config_data):
        del minimal_config_data["database"]
        with pytest.raises(ValidationError):
            validate(instance=minimal_config_data, schema=schema)

    def test_no_additional_properties(self, schema, minimal_config_data):
        minimal_config_data["circuit_breaker"] = {"failure_threshold": 3, "unknown": 1}
        with pytest.raises(ValidationError, match="additionalProperties"):
            validate(instance=minimal_config_data, schema=schema)

    def test_failure_threshold_minimum(self, schema, minimal_config_data):
        minimal_config_data["circuit_breaker"] = {"failure_threshold": 0}
        with pytest.raises(ValidationError, match="minimum"):
            validate(instance=minimal_config_data, schema=schema)

    def test_port_range(self, schema, minimal_config_data):
        minimal_config_data["server"] = {"port": 70000}
        with pytest.raises(ValidationError):
            validate(instance=minimal_config_data, schema=schema)


# ---------------------------------------------------------------------------
# Settings defaults
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_defaults(self, minimal_config_data):
        settings = build_settings(minimal_config_data)
        assert settings.server.port == 8080
        assert settings.circuit_breaker.failure_threshold == 5
        assert settings.circuit_breaker.recovery_seconds == 60.0
        assert settings.dedup.default_window_seconds == 300
        assert settings.dedup.critical_window_seconds == 60
        assert settings.channels.whatsapp.max_attempts == 2
        assert settings.channels.whatsapp.default_language == "hi"
        assert settings.channels.sms.sender_id == "PROPLA"
        assert settings.queue.batch_window_seconds == 300
        assert settings.metrics.enabled is False

    def test_settings_frozen(self, minimal_config_data):
        settings = build_settings(minimal_config_data)
        with pytest.raises(AttributeError):
            settings.server.port = 9000  # type: ignore[misc]

    def test_explicit_values(self, minimal_config_data):
        minimal_config_data["channels"]["sms"]["cost_per_message_paise"] = 40
        minimal_config_data["queue"] = {"worker_threads": 8}
        settings = build_settings(minimal_config_data)
        assert settings.channels.sms.cost_per_message_paise == 40
        assert settings.queue.worker_threads == 8


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoading:
    def test_load_minimal(self, tmp_config_file):
        cfg = CourierConfig(config_file=tmp_config_file)
        assert cfg.settings.database.database == "courier_test"
        assert cfg.settings.channels.push.project_id == "courier-test"
        assert get_config() is cfg

    def test_get_config_before_init(self):
        with pytest.raises(RuntimeError, match="Configuration not initialised"):
            get_config()

    def test_env_var_resolved(self, tmp_path, minimal_config_data, monkeypatch):
        monkeypatch.setenv("TEST_MSG91_KEY", "from-env")
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"channels": {"sms": {"api_key": "${TEST_MSG91_KEY}"}}},
        )
        cfg = CourierConfig(config_file=path)
        assert cfg.settings.channels.sms.api_key == "from-env"

    def test_env_var_default(self, tmp_path, minimal_config_data, monkeypatch):
        monkeypatch.delenv("TEST_LOG_LEVEL", raising=False)
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"logging": {"level": "${TEST_LOG_LEVEL:-WARNING}"}},
        )
        cfg = CourierConfig(config_file=path)
        assert cfg.settings.logging.level == "WARNING"

    def test_env_var_missing(self, tmp_path, minimal_config_data, monkeypatch):
        monkeypatch.delenv("TEST_MISSING_SECRET", raising=False)
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"webhook": {"app_secret": "${TEST_MISSING_SECRET}"}},
        )
        with pytest.raises(ConfigValidationError, match="TEST_MISSING_SECRET"):
            CourierConfig(config_file=path)


# ---------------------------------------------------------------------------
# Cross-field validation
# ---------------------------------------------------------------------------


class TestAdditionalChecks:
    def test_push_requires_project_id(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"channels": {"push": {"project_id": ""}}},
        )
        with pytest.raises(ConfigValidationError, match="project_id"):
            CourierConfig(config_file=path)

    def test_disabled_push_needs_no_credentials(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"channels": {"push": {"enabled": False, "project_id": "", "access_token": ""}}},
        )
        cfg = CourierConfig(config_file=path)
        assert cfg.settings.channels.push.enabled is False

    def test_all_channels_disabled(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {
                "channels": {
                    "push": {"enabled": False},
                    "whatsapp": {"enabled": False},
                    "sms": {"enabled": False},
                },
            },
        )
        with pytest.raises(ConfigValidationError, match="at least one"):
            CourierConfig(config_file=path)

    def test_short_app_secret(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"webhook": {"app_secret": "short"}},
        )
        with pytest.raises(ConfigValidationError, match="too short"):
            CourierConfig(config_file=path)

    def test_signature_disabled_skips_secret(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"webhook": {"app_secret": "", "require_signature": False}},
        )
        cfg = CourierConfig(config_file=path)
        assert cfg.settings.webhook.require_signature is False

    def test_api_admin_path_collision(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"api": {"base_path": "/api", "admin_base_path": "/api/"}},
        )
        with pytest.raises(ConfigValidationError, match="must not collide"):
            CourierConfig(config_file=path)

    def test_page_size_bounds(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"api": {"default_page_size": 50, "max_page_size": 10}},
        )
        with pytest.raises(ConfigValidationError, match="default_page_size"):
            CourierConfig(config_file=path)

    def test_min_exceeds_max_connections(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"database": {"min_connections": 20, "max_connections": 10}},
        )
        with pytest.raises(ConfigValidationError, match="min_connections"):
            CourierConfig(config_file=path)

    def test_errors_collected(self, tmp_path, minimal_config_data):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {
                "channels": {"sms": {"api_key": ""}},
                "webhook": {"verify_token": ""},
            },
        )
        with pytest.raises(ConfigValidationError) as exc_info:
            CourierConfig(config_file=path)
        assert len(exc_info.value.errors) == 2

    def test_critical_window_warning(self, tmp_path, minimal_config_data, caplog):
        path = _write_config(
            tmp_path,
            minimal_config_data,
            {"dedup": {"default_window_seconds": 30, "critical_window_seconds": 120}},
        )
        with caplog.at_level("WARNING", logger="courier.config.courier_config"):
            CourierConfig(config_file=path)
        assert any("critical_window_seconds" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# Shipped example
# ---------------------------------------------------------------------------


def test_example_config_loads(monkeypatch):
    example = _PROJECT_ROOT / "config.example.yaml"
    text = example.read_text(encoding="utf-8")
    for match in _ENV_REF_RE.finditer(text):
        if match.group(2) is None:
            monkeypatch.setenv(match.group(1), "test-dummy-value-1234567890")
    cfg = CourierConfig(config_file=example)
    assert cfg.settings.channels.sms.cost_per_message_paise == 25
    assert cfg.settings.metrics.enabled is True
