"""
Scope resolution: which rules apply to a field in a given context, best first.
"""
from __future__ import annotations

from typing import Optional

from shared.models.domain import MappingRule, ScopeContext
from shared.models.enums import SourceKind
from shared.utils.logging import get_logger

from reconciler.rules.store import RuleStore, ScopeFilter

logger = get_logger(__name__)


def rank(rule: MappingRule) -> tuple[int, int]:
    """Sort key: explicit priority first, then narrower scope."""
    return (rule.priority, rule.scope.level.specificity)


class ScopeResolver:
    """Unions global/league/sport/team/player rules and orders them."""

    def __init__(self, store: RuleStore) -> None:
        self._store = store

    def resolve(
        self,
        field_type: str,
        scope: ScopeContext,
        source_kind: Optional[SourceKind] = None,
    ) -> list[MappingRule]:
        scope_filter = ScopeFilter.from_context(scope, source_kind)
        try:
            found = self._store.find_active_rules(field_type, scope_filter)
        except Exception as exc:
            # an unreachable store resolves to no rules
            logger.error("rule_lookup_failed", field_type=field_type, error=str(exc))
            return []
        rules = [r for r in found if r.field_type == field_type and scope_filter.admits(r)]
        # stable: ties keep store order
        rules.sort(key=rank, reverse=True)
        if rules:
            logger.debug("rules_resolved", field_type=field_type, count=len(rules))
        return rules
