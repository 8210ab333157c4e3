"""
Rule store port and in-process adapters.
The engine only needs two primitives: query active rules, bump a usage counter.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from shared.models.domain import MappingRule, ScopeContext
from shared.models.enums import ScopeLevel, SourceKind
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScopeFilter:
    """
    Query for the rule store: which (level, discriminator) pairs apply.

    Levels whose discriminator is missing from the context are left out, so a
    malformed context narrows the query instead of failing.
    """
    levels: tuple[tuple[ScopeLevel, Optional[str]], ...]
    source_kind: Optional[SourceKind] = None

    @classmethod
    def from_context(cls, context: ScopeContext, source_kind: Optional[SourceKind] = None) -> "ScopeFilter":
        levels: list[tuple[ScopeLevel, Optional[str]]] = [(ScopeLevel.GLOBAL, None)]
        if context.league:
            levels.append((ScopeLevel.LEAGUE, context.league))
        if context.sport:
            levels.append((ScopeLevel.SPORT, context.sport))
        if context.team_id:
            levels.append((ScopeLevel.TEAM, context.team_id))
        if context.player_id:
            levels.append((ScopeLevel.PLAYER, context.player_id))
        return cls(levels=tuple(levels), source_kind=source_kind)

    def admits(self, rule: MappingRule, now: Optional[datetime] = None) -> bool:
        if not rule.is_live(now) or not rule.applies_to.allows(self.source_kind):
            return False
        if rule.scope.is_degenerate:
            return False
        for level, discriminator in self.levels:
            if rule.scope.level != level:
                continue
            if level == ScopeLevel.GLOBAL or rule.scope.discriminator == discriminator:
                return True
        return False

    @property
    def cache_key(self) -> str:
        parts = [f"{level.value}={value or ''}" for level, value in self.levels]
        source = self.source_kind.value if self.source_kind else "*"
        return "|".join(parts) + f"|source={source}"


class RuleStore(ABC):
    """Persistence-side collaborator holding mapping rules."""

    @abstractmethod
    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        """Return active rules for ``field_type`` admitted by ``scope_filter``, in any order."""

    @abstractmethod
    def increment_usage(self, rule_id: str) -> None:
        """Record one successful use of a rule. May raise; callers treat it as best effort."""


class NullRuleStore(RuleStore):
    """No rules, no bookkeeping."""

    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        return []

    def increment_usage(self, rule_id: str) -> None:
        return None


class InMemoryRuleStore(RuleStore):
    """Rules held in process memory; usage counters are updated in place."""

    def __init__(self, rules: Iterable[MappingRule] = ()) -> None:
        self._rules: dict[str, MappingRule] = {}
        self._lock = threading.Lock()
        for rule in rules:
            self.add(rule)

    def add(self, rule: MappingRule) -> None:
        with self._lock:
            self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Optional[MappingRule]:
        return self._rules.get(rule_id)

    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        now = datetime.now(timezone.utc)
        with self._lock:
            rules = list(self._rules.values())
        return [r for r in rules if r.field_type == field_type and scope_filter.admits(r, now)]

    def increment_usage(self, rule_id: str) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                raise KeyError(rule_id)
            rule.usage.times_used += 1
            rule.usage.successful_matches += 1
            rule.usage.last_used = datetime.now(timezone.utc)


class CachingRuleStore(RuleStore):
    """
    TTL cache in front of another store.

    Only lookups are cached; usage writes pass straight through. Cached rule
    lists may lag store edits by up to ``ttl_s`` seconds.
    """

    def __init__(self, inner: RuleStore, ttl_s: float = 300.0) -> None:
        self._inner = inner
        self._ttl_s = ttl_s
        self._cache: dict[str, tuple[float, list[MappingRule]]] = {}
        self._lock = threading.Lock()

    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        if self._ttl_s <= 0:
            return self._inner.find_active_rules(field_type, scope_filter)
        key = f"{field_type}:{scope_filter.cache_key}"
        now = time.monotonic()
        with self._lock:
            hit = self._cache.get(key)
        if hit and now - hit[0] < self._ttl_s:
            return list(hit[1])
        rules = self._inner.find_active_rules(field_type, scope_filter)
        with self._lock:
            self._cache[key] = (now, rules)
        return list(rules)

    def increment_usage(self, rule_id: str) -> None:
        self._inner.increment_usage(rule_id)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("rule_cache_cleared")
