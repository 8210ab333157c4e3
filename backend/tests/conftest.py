"""
Shared fixtures: rule builders and rule stores.
"""
from __future__ import annotations

import itertools
from datetime import datetime
from typing import Callable, Iterable, Optional

import pytest

from shared.models.domain import AppliesTo, MappingRule, RulePayload, Scope
from shared.models.enums import MappingType, ScopeLevel, ToleranceType

from reconciler.config import ReconcilerSettings
from reconciler.engine import ReconciliationEngine
from reconciler.rules.store import InMemoryRuleStore, RuleStore, ScopeFilter

_ids = itertools.count(1)


def build_rule(
    field_type: str,
    mapping_type: str = "equivalence",
    *,
    primary: Optional[str] = None,
    equivalents: Iterable[str] = (),
    tolerance: float = 0.0,
    tolerance_type: str = "absolute",
    level: str = "global",
    league: Optional[str] = None,
    sport: Optional[str] = None,
    team_id: Optional[str] = None,
    player_id: Optional[str] = None,
    priority: int = 0,
    active: bool = True,
    case_sensitive: bool = False,
    expires_at: Optional[datetime] = None,
    applies_to: Optional[dict[str, bool]] = None,
    reason: Optional[str] = None,
    rule_id: Optional[str] = None,
) -> MappingRule:
    return MappingRule(
        id=rule_id or f"rule-{next(_ids)}",
        field_type=field_type,
        mapping_type=MappingType(mapping_type),
        scope=Scope(
            level=ScopeLevel(level),
            league=league,
            sport=sport,
            team_id=team_id,
            player_id=player_id,
        ),
        payload=RulePayload(
            primary_value=primary,
            equivalents=list(equivalents),
            tolerance=tolerance,
            tolerance_type=ToleranceType(tolerance_type),
            reason=reason,
        ),
        case_sensitive=case_sensitive,
        priority=priority,
        active=active,
        applies_to=AppliesTo(**(applies_to or {})),
        expires_at=expires_at,
    )


class FailingUsageStore(InMemoryRuleStore):
    """Serves rules normally but every usage write blows up."""

    def increment_usage(self, rule_id: str) -> None:
        raise RuntimeError("rule store unavailable")


class CountingStore(RuleStore):
    """Counts lookups against an inner store."""

    def __init__(self, inner: RuleStore) -> None:
        self.inner = inner
        self.lookups: list[str] = []

    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        self.lookups.append(field_type)
        return self.inner.find_active_rules(field_type, scope_filter)

    def increment_usage(self, rule_id: str) -> None:
        self.inner.increment_usage(rule_id)


@pytest.fixture
def rule() -> Callable[..., MappingRule]:
    return build_rule


@pytest.fixture
def reconciler_settings() -> ReconcilerSettings:
    return ReconcilerSettings()


@pytest.fixture
def engine_for(reconciler_settings: ReconcilerSettings) -> Callable[..., ReconciliationEngine]:
    """Build an engine over an in-memory store holding ``rules``."""

    def _build(*rules: MappingRule, store: Optional[RuleStore] = None) -> ReconciliationEngine:
        return ReconciliationEngine(store or InMemoryRuleStore(rules), reconciler_settings)

    return _build


@pytest.fixture
def failing_usage_store() -> Callable[..., FailingUsageStore]:
    return lambda *rules: FailingUsageStore(rules)


@pytest.fixture
def counting_store() -> Callable[..., CountingStore]:
    return lambda *rules: CountingStore(InMemoryRuleStore(rules))
