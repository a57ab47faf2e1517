"""
Unit tests for engine settings.
"""

import pytest
from pydantic import ValidationError

from loadgen_sdk.common.config import DEFAULT_BASE_URL, EngineSettings


def test_defaults():
    settings = EngineSettings.from_env({})
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.request_timeout == 10.0
    assert settings.max_connections == 1000
    assert settings.log_level == "INFO"
    assert settings.otel_enabled is False


def test_from_env_reads_variables():
    settings = EngineSettings.from_env({
        "BASE_URL": "http://wallet:8080/",
        "LOADGEN_REQUEST_TIMEOUT": "2.5",
        "LOADGEN_MAX_CONNECTIONS": "50",
        "LOADGEN_LOG_LEVEL": "debug",
        "LOADGEN_OTEL_ENABLED": "true",
        "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4317",
    })
    assert settings.base_url == "http://wallet:8080"
    assert settings.request_timeout == 2.5
    assert settings.max_connections == 50
    assert settings.log_level == "DEBUG"
    assert settings.otel_enabled is True
    assert settings.otlp_endpoint == "http://collector:4317"


@pytest.mark.parametrize("key", ["LOADGEN_REQUEST_TIMEOUT", "LOADGEN_MAX_CONNECTIONS"])
@pytest.mark.parametrize("raw", ["abc", "-1", "0"])
def test_invalid_numbers_fall_back_to_defaults(key, raw):
    settings = EngineSettings.from_env({key: raw})
    defaults = EngineSettings()
    assert settings.request_timeout == defaults.request_timeout
    assert settings.max_connections == defaults.max_connections


def test_empty_base_url_rejected():
    with pytest.raises(ValidationError):
        EngineSettings(base_url="  /")
