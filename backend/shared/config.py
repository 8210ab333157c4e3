"""
Central configuration for the reconciliation core.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


DEFAULT_DATABASE_URL = "sqlite:///./mapping_rules.db"


class Settings(BaseSettings):
    """Root settings shared by every process that embeds the engine."""

    model_config = SettingsConfigDict(
        env_prefix="SR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # ignore extra .env vars not on Settings
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Worker/container ID bound to every log line")

    # ── Rule store database ──────────────────────────────────
    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    db_pool_min: int = 2
    db_pool_max: int = 10

    @model_validator(mode="after")
    def use_database_url_fallback(self) -> "Settings":
        """Use DATABASE_URL from env when SR_DATABASE_URL is not set."""
        if self.database_url != DEFAULT_DATABASE_URL:
            return self
        raw = os.environ.get("DATABASE_URL")
        if not raw:
            return self
        if raw.startswith("postgres://"):
            raw = "postgresql://" + raw[len("postgres://") :]
        self.database_url = raw
        return self

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9092

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def database_url_safe_log(self) -> str:
        """URL with password redacted, for logging only."""
        if self.is_sqlite:
            return self.database_url
        try:
            u = urlparse(self.database_url)
            netloc = f"{u.username or '?'}@***" + (f":{u.port}" if u.port else "")
            path = u.path or "/?"
            return f"{u.scheme}://{netloc}{path}"
        except ValueError:
            return "***"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
