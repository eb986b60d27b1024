# pylint: disable=missing-module-docstring,missing-function-docstring

from pathlib import Path

import pytest

from config import AppConfig
from spec import PAIRING_TIMEOUT_S, STREAM_MAX_RECONNECT_ATTEMPTS


_VARS = (
    "ENV",
    "LOG_LEVEL",
    "PAIRING_API_URL",
    "HTTP_TIMEOUT_S",
    "SESSION_STORE_PATH",
    "STREAM_BASE_DELAY_S",
    "STREAM_MAX_DELAY_S",
    "STREAM_MAX_ATTEMPTS",
    "PAIRING_TIMEOUT_S",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_come_from_constants(clean_env):
    config = AppConfig.load_from_env()

    assert config.env == "dev"
    assert config.pairing_timeout_s == PAIRING_TIMEOUT_S
    assert config.stream_max_attempts == STREAM_MAX_RECONNECT_ATTEMPTS
    assert config.session_store_path.is_absolute()


def test_environment_overrides(clean_env):
    clean_env.setenv("PAIRING_API_URL", "https://crm.example/api/v1")
    clean_env.setenv("STREAM_MAX_ATTEMPTS", "3")
    clean_env.setenv("PAIRING_TIMEOUT_S", "60")
    clean_env.setenv("SESSION_STORE_PATH", "/tmp/pairing.json")

    config = AppConfig.load_from_env()

    assert config.pairing_api_url == "https://crm.example/api/v1"
    assert config.stream_max_attempts == 3
    assert config.pairing_timeout_s == 60.0
    assert config.session_store_path == Path("/tmp/pairing.json")


def test_bad_number_raises(clean_env):
    clean_env.setenv("STREAM_MAX_ATTEMPTS", "many")

    with pytest.raises(ValueError):
        AppConfig.load_from_env()
