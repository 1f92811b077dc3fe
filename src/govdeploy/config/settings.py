"""
Application settings using Pydantic.

Provides environment-based configuration loading with GOVDEPLOY_ prefix.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GOVDEPLOY_",
        extra="ignore",
    )

    # Signing gateway
    gateway_url: str = "http://localhost:8545"
    gateway_token: str | None = None
    request_timeout: float = 120.0

    # Run state
    state_file: Path = Path(".govdeploy/run-state.json")

    # Scheduling
    concurrency: int = 4

    # Retry policy for transient ledger failures
    max_attempts: int = 5
    backoff_multiplier: float = 1.0
    backoff_min: float = 1.0
    backoff_max: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Members funded at deploy time, as a JSON list:
    # GOVDEPLOY_MEMBERS='["0xabc...", "0xdef..."]'
    members: list[str] = []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
