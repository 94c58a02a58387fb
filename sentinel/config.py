"""Configuration utilities for the Sentinel engine."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PLACEHOLDER_KEYS = {"", "demo-key", "changeme"}


class Settings(BaseSettings):
    """Environment-backed settings for the engine and the simulated feed."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-3.5-turbo")
    virustotal_api_key: Optional[str] = Field(default=None)
    abuseipdb_api_key: Optional[str] = Field(default=None)
    urlscan_api_key: Optional[str] = Field(default=None)
    google_safe_browsing_api_key: Optional[str] = Field(default=None)
    sentiment_enabled: bool = Field(default=True)

    collaborator_timeout: float = Field(default=10.0, description="Seconds per collaborator call")
    assessment_timeout: Optional[float] = Field(default=None, description="Overall analysis deadline")

    auto_block_threshold: float = Field(default=30)
    warning_threshold: float = Field(default=60)
    simulation_interval: float = Field(default=15.0)
    simulation_probability: float = Field(default=0.3)

    log_level: str = Field(default="INFO")

    @field_validator(
        "openai_api_key",
        "virustotal_api_key",
        "abuseipdb_api_key",
        "urlscan_api_key",
        "google_safe_browsing_api_key",
        mode="before",
    )
    @classmethod
    def _drop_placeholder_keys(cls, value):  # type: ignore[override]
        if isinstance(value, str) and value.strip().lower() in PLACEHOLDER_KEYS:
            return None
        return value

    @field_validator("collaborator_timeout", "simulation_interval")
    @classmethod
    def _require_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("assessment_timeout", mode="before")
    @classmethod
    def _optional_deadline(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return None
        if float(value) <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("simulation_probability")
    @classmethod
    def _clamp_probability(cls, value: float) -> float:
        return max(0.0, min(1.0, value))

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value):  # type: ignore[override]
        return str(value or "INFO").strip().upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Union[str, int, None] = None) -> logging.Logger:
    """Attach a stream handler to the package logger once and set its level.

    Without an explicit ``level`` the configured ``log_level`` setting applies.
    """

    if level is None:
        level = get_settings().log_level
    logger = logging.getLogger("sentinel")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


__all__ = ["Settings", "configure_logging", "get_settings"]
