from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sentinel.config import Settings, configure_logging, get_settings

ENV_VARS = (
    "OPENAI_API_KEY",
    "VIRUSTOTAL_API_KEY",
    "ABUSEIPDB_API_KEY",
    "URLSCAN_API_KEY",
    "GOOGLE_SAFE_BROWSING_API_KEY",
    "SENTIMENT_ENABLED",
    "COLLABORATOR_TIMEOUT",
    "ASSESSMENT_TIMEOUT",
    "SIMULATION_PROBABILITY",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.openai_api_key is None
    assert settings.openai_model == "gpt-3.5-turbo"
    assert settings.collaborator_timeout == 10.0
    assert settings.assessment_timeout is None
    assert settings.auto_block_threshold == 30
    assert settings.simulation_interval == 15.0
    assert settings.simulation_probability == pytest.approx(0.3)
    assert settings.log_level == "INFO"


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-live")
    monkeypatch.setenv("VIRUSTOTAL_API_KEY", "demo-key")
    monkeypatch.setenv("ASSESSMENT_TIMEOUT", "2.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.openai_api_key == "sk-live"
    assert settings.virustotal_api_key is None
    assert settings.assessment_timeout == 2.5
    assert settings.log_level == "DEBUG"
    assert get_settings() is settings


def test_probability_is_clamped(monkeypatch):
    monkeypatch.setenv("SIMULATION_PROBABILITY", "1.7")

    assert Settings(_env_file=None).simulation_probability == 1.0


@pytest.mark.parametrize("name", ["COLLABORATOR_TIMEOUT", "ASSESSMENT_TIMEOUT"])
def test_non_positive_timeouts_are_rejected(monkeypatch, name):
    monkeypatch.setenv(name, "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_configure_logging_is_idempotent():
    logger = configure_logging("DEBUG")
    configure_logging("WARNING")

    assert logger.name == "sentinel"
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_new_collaborator_keys_drop_placeholders(monkeypatch):
    monkeypatch.setenv("URLSCAN_API_KEY", "changeme")
    monkeypatch.setenv("GOOGLE_SAFE_BROWSING_API_KEY", "gsb-live")

    settings = Settings(_env_file=None)

    assert settings.urlscan_api_key is None
    assert settings.google_safe_browsing_api_key == "gsb-live"
    assert settings.sentiment_enabled is True


def test_configure_logging_defaults_to_configured_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "error")

    logger = configure_logging()

    assert logger.level == logging.ERROR
