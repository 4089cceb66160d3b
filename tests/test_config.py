"""Tests for settings and logging configuration."""

import json
import logging

import pytest

from supplycontrol.config import Settings
from supplycontrol.errors import QuotaExceededError, ZeroAddressError
from supplycontrol.logging_config import JSONFormatter, get_logging_config


class TestSettings:
    """Tests for environment-driven settings."""

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUPPLYCONTROL_API_PORT", "9100")
        monkeypatch.setenv("SUPPLYCONTROL_API_TOKENS", '{"secret": "admin"}')
        monkeypatch.setenv("SUPPLYCONTROL_INSPECTOR_IDENTITIES", '["auditor"]')

        settings = Settings()

        assert settings.api_port == 9100
        assert settings.api_tokens == {"secret": "admin"}
        assert settings.inspector_identities == ["auditor"]


class TestLoggingConfig:
    """Tests for logging setup."""

    def test_text_format(self) -> None:
        config = get_logging_config(log_level="debug", log_format="text")

        assert config["handlers"]["console"]["formatter"] == "standard"
        assert config["loggers"]["supplycontrol"]["level"] == "DEBUG"

    def test_json_format(self) -> None:
        config = get_logging_config(log_format="json")
        assert config["handlers"]["console"]["formatter"] == "json"

    def test_json_formatter(self) -> None:
        record = logging.LogRecord("supplycontrol.registry", logging.INFO, __file__, 1, "Added %s", ("m",), None)
        record.identity = "m"

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["message"] == "Added m"
        assert data["extra"] == {"identity": "m"}


class TestErrorPayloads:
    """Tests for error serialization."""

    def test_amounts_as_strings(self) -> None:
        error = QuotaExceededError(5000, 800, identity="minter-1")

        assert error.to_dict() == {
            "error": "quota_exceeded",
            "message": "Requested 5000 exceeds available quota 800",
            "amount": "5000",
            "available": "800",
            "identity": "minter-1",
        }
        assert error.retryable is True
        assert error.status_code == 429

    def test_configuration_error(self) -> None:
        error = ZeroAddressError("account")

        assert error.status_code == 400
        assert error.retryable is False
        assert error.to_dict()["field"] == "account"
