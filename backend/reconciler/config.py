"""
Reconciler configuration.
Uses SR_RECONCILER_ prefix; comparison policy knobs that are not mapping rules.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReconcilerSettings(BaseSettings):
    """Comparison policy; use shared get_settings() for the rule-store database."""

    model_config = SettingsConfigDict(
        env_prefix="SR_RECONCILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Rule store
    rule_cache_ttl_s: float = Field(default=300.0, description="TTL for cached rule lookups (0 disables)")

    # Field policy
    minutes_drift_tolerance: float = Field(default=1.0, description="Allowed minutes/clock drift before flagging")
    weightless_sports: list[str] = Field(
        default=["womensBasketball"],
        description="Sports whose rosters do not track weight; any sport containing 'women' is also skipped",
    )

    # Boxscore comparisons always run in the pro-league scope
    boxscore_league: str = Field(default="NBA")
    boxscore_sport: str = Field(default="nba")

    # Match percentage rounding
    schedule_percentage_decimals: int = Field(default=1, description="Decimal places for schedule match rate")


def get_reconciler_settings() -> ReconcilerSettings:
    """Load reconciler settings."""
    return ReconcilerSettings()
