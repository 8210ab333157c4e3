"""
Pydantic v2 domain models for the reconciliation core.
These are the canonical wire/internal representations, not ORM models.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import (
    EntityKind,
    MappingType,
    ScopeLevel,
    SourceKind,
    ToleranceType,
)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Scope ───────────────────────────────────────────────────────────────
class ScopeContext(DomainModel):
    """Where a comparison runs: the discriminators rules are resolved against."""
    league: Optional[str] = None
    sport: Optional[str] = None
    team_id: Optional[str] = None
    player_id: Optional[str] = None


class Scope(DomainModel):
    """Scope a mapping rule is attached to. Discriminators below ``level`` are ignored."""
    level: ScopeLevel = ScopeLevel.GLOBAL
    league: Optional[str] = None
    sport: Optional[str] = None
    team_id: Optional[str] = None
    player_id: Optional[str] = None

    @property
    def discriminator(self) -> Optional[str]:
        if self.level == ScopeLevel.LEAGUE:
            return self.league
        if self.level == ScopeLevel.SPORT:
            return self.sport
        if self.level == ScopeLevel.TEAM:
            return self.team_id
        if self.level == ScopeLevel.PLAYER:
            return self.player_id
        return None

    @property
    def is_degenerate(self) -> bool:
        """A non-global scope without its discriminator can never apply."""
        return self.level != ScopeLevel.GLOBAL and not self.discriminator


# ── Mapping rules ───────────────────────────────────────────────────────
class RulePayload(DomainModel):
    """Type-specific rule body; unused members keep their defaults."""
    primary_value: Optional[str] = None
    equivalents: list[str] = Field(default_factory=list)
    tolerance: float = 0.0
    tolerance_type: ToleranceType = ToleranceType.ABSOLUTE
    reason: Optional[str] = None


class AppliesTo(DomainModel):
    scraped: bool = True
    api: bool = True
    oracle: bool = True

    def allows(self, source_kind: Optional[SourceKind]) -> bool:
        if source_kind is None:
            return True
        return bool(getattr(self, source_kind.value))


class RuleUsage(DomainModel):
    times_used: int = 0
    successful_matches: int = 0
    last_used: Optional[datetime] = None


class MappingRule(DomainModel):
    id: str
    field_type: str
    mapping_type: MappingType
    scope: Scope = Field(default_factory=Scope)
    payload: RulePayload = Field(default_factory=RulePayload)
    case_sensitive: bool = False
    priority: int = 0
    active: bool = True
    applies_to: AppliesTo = Field(default_factory=AppliesTo)
    expires_at: Optional[datetime] = None
    usage: RuleUsage = Field(default_factory=RuleUsage)

    def is_live(self, now: Optional[datetime] = None) -> bool:
        if not self.active:
            return False
        if self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires > now

    @property
    def values(self) -> list[str]:
        """Primary value followed by its equivalents (equivalence rules)."""
        head = [self.payload.primary_value] if self.payload.primary_value is not None else []
        return head + list(self.payload.equivalents)


# ── Comparison results ──────────────────────────────────────────────────
class Discrepancy(DomainModel):
    match_key: str
    field: str
    reference_value: Any = None
    scraped_value: Any = None
    category: Optional[str] = None
    mapping_applied: Optional[str] = None


class MatchEntry(DomainModel):
    match_key: str
    reference: dict[str, Any]
    scraped: dict[str, Any]
    strategy: str
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    mapped_fields: dict[str, Any] = Field(default_factory=dict)
    ignored: bool = False


class MissingEntry(DomainModel):
    key: str
    label: str
    record: dict[str, Any]
    ignored: bool = False


class ComparisonSummary(DomainModel):
    perfect_matches: int = 0
    matches_with_discrepancies: int = 0
    unique_to_reference: int = 0
    unique_to_scraped: int = 0
    missing_in_reference: int = 0
    missing_in_scraped: int = 0
    total_discrepancies: int = 0
    ignored_entities: int = 0
    total_mappings_used: int = 0
    name_mappings_available: int = 0
    filtered_inactive: int = 0
    rule_usage: dict[str, int] = Field(default_factory=dict)


class ComparisonResult(DomainModel):
    entity_kind: EntityKind
    total_reference: int = 0
    total_scraped: int = 0
    matches: list[MatchEntry] = Field(default_factory=list)
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    missing_in_reference: list[MissingEntry] = Field(default_factory=list)
    missing_in_scraped: list[MissingEntry] = Field(default_factory=list)
    match_percentage: float = 0.0
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)
