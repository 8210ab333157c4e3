"""
Unit tests for the rule layer: stores, scope resolution and rule evaluation.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from shared.models.domain import ScopeContext
from shared.models.enums import FieldType, ScopeLevel, SourceKind

from reconciler.rules.evaluator import RuleEvaluator
from reconciler.rules.scope import ScopeResolver
from reconciler.rules.store import (
    CachingRuleStore,
    InMemoryRuleStore,
    NullRuleStore,
    RuleStore,
    ScopeFilter,
)

TEAM_CTX = ScopeContext(league="NCAA", sport="football", team_id="t-1", player_id="p-1")


class BrokenStore(RuleStore):
    def find_active_rules(self, field_type, scope_filter):
        raise ConnectionError("db down")

    def increment_usage(self, rule_id):
        raise ConnectionError("db down")


# ── ScopeFilter ─────────────────────────────────────────────────────────

class TestScopeFilter:

    def test_levels_follow_context(self) -> None:
        scope_filter = ScopeFilter.from_context(ScopeContext(sport="football"))
        assert scope_filter.levels == ((ScopeLevel.GLOBAL, None), (ScopeLevel.SPORT, "football"))

    def test_degenerate_team_scope_never_admitted(self, rule) -> None:
        degenerate = rule("jersey", level="team", team_id=None)
        assert not ScopeFilter.from_context(TEAM_CTX).admits(degenerate)

    def test_cache_key_distinguishes_source(self) -> None:
        a = ScopeFilter.from_context(TEAM_CTX, SourceKind.API)
        b = ScopeFilter.from_context(TEAM_CTX, SourceKind.ORACLE)
        assert a.cache_key != b.cache_key


# ── Stores ──────────────────────────────────────────────────────────────

class TestInMemoryRuleStore:

    def test_increment_usage(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        store = InMemoryRuleStore([r])
        store.increment_usage(r.id)
        store.increment_usage(r.id)
        assert store.get(r.id).usage.times_used == 2
        assert store.get(r.id).usage.last_used is not None

    def test_increment_unknown_rule(self) -> None:
        with pytest.raises(KeyError):
            InMemoryRuleStore().increment_usage("nope")

    def test_null_store(self) -> None:
        store = NullRuleStore()
        assert store.find_active_rules("jersey", ScopeFilter.from_context(TEAM_CTX)) == []
        store.increment_usage("anything")


class TestCachingRuleStore:

    def test_lookups_cached(self, rule, counting_store) -> None:
        inner = counting_store(rule("jersey", primary="0", equivalents=["00"]))
        cached = CachingRuleStore(inner, ttl_s=60)
        scope_filter = ScopeFilter.from_context(TEAM_CTX)
        first = cached.find_active_rules("jersey", scope_filter)
        second = cached.find_active_rules("jersey", scope_filter)
        assert first == second
        assert inner.lookups == ["jersey"]

    def test_zero_ttl_bypasses_cache(self, rule, counting_store) -> None:
        inner = counting_store(rule("jersey"))
        cached = CachingRuleStore(inner, ttl_s=0)
        scope_filter = ScopeFilter.from_context(TEAM_CTX)
        cached.find_active_rules("jersey", scope_filter)
        cached.find_active_rules("jersey", scope_filter)
        assert len(inner.lookups) == 2

    def test_clear(self, rule, counting_store) -> None:
        inner = counting_store(rule("jersey"))
        cached = CachingRuleStore(inner, ttl_s=60)
        scope_filter = ScopeFilter.from_context(TEAM_CTX)
        cached.find_active_rules("jersey", scope_filter)
        cached.clear()
        cached.find_active_rules("jersey", scope_filter)
        assert len(inner.lookups) == 2

    def test_usage_passes_through(self, rule) -> None:
        r = rule("jersey")
        inner = InMemoryRuleStore([r])
        CachingRuleStore(inner).increment_usage(r.id)
        assert inner.get(r.id).usage.times_used == 1


# ── ScopeResolver ───────────────────────────────────────────────────────

class TestScopeResolver:

    def test_narrower_scope_first(self, rule) -> None:
        g = rule("position", level="global")
        s = rule("position", level="sport", sport="football")
        t = rule("position", level="team", team_id="t-1")
        p = rule("position", level="player", player_id="p-1")
        resolver = ScopeResolver(InMemoryRuleStore([g, s, t, p]))
        assert [r.id for r in resolver.resolve("position", TEAM_CTX)] == [p.id, t.id, s.id, g.id]

    def test_priority_overrides_specificity(self, rule) -> None:
        g = rule("position", level="global", priority=10)
        t = rule("position", level="team", team_id="t-1")
        resolver = ScopeResolver(InMemoryRuleStore([t, g]))
        assert [r.id for r in resolver.resolve("position", TEAM_CTX)] == [g.id, t.id]

    def test_other_team_excluded(self, rule) -> None:
        other = rule("position", level="team", team_id="t-2")
        resolver = ScopeResolver(InMemoryRuleStore([other]))
        assert resolver.resolve("position", TEAM_CTX) == []

    def test_missing_discriminator_omits_level(self, rule) -> None:
        t = rule("position", level="team", team_id="t-1")
        g = rule("position")
        resolver = ScopeResolver(InMemoryRuleStore([t, g]))
        assert [r.id for r in resolver.resolve("position", ScopeContext(sport="football"))] == [g.id]

    def test_inactive_and_expired_excluded(self, rule) -> None:
        past = datetime.now(timezone.utc) - timedelta(days=1)
        future = datetime.now(timezone.utc) + timedelta(days=1)
        inactive = rule("position", active=False)
        expired = rule("position", expires_at=past)
        live = rule("position", expires_at=future)
        resolver = ScopeResolver(InMemoryRuleStore([inactive, expired, live]))
        assert [r.id for r in resolver.resolve("position", TEAM_CTX)] == [live.id]

    def test_source_kind_filter(self, rule) -> None:
        scraped_only = rule("position", applies_to={"api": False, "oracle": False})
        resolver = ScopeResolver(InMemoryRuleStore([scraped_only]))
        assert resolver.resolve("position", TEAM_CTX, SourceKind.API) == []
        assert resolver.resolve("position", TEAM_CTX, SourceKind.SCRAPED) == [scraped_only]
        assert resolver.resolve("position", TEAM_CTX) == [scraped_only]

    def test_field_type_filter(self, rule) -> None:
        resolver = ScopeResolver(InMemoryRuleStore([rule("weight")]))
        assert resolver.resolve("height", TEAM_CTX) == []

    def test_ties_keep_store_order(self, rule) -> None:
        a, b = rule("position"), rule("position")
        resolver = ScopeResolver(InMemoryRuleStore([a, b]))
        assert [r.id for r in resolver.resolve("position", TEAM_CTX)] == [a.id, b.id]

    def test_store_failure_resolves_nothing(self) -> None:
        assert ScopeResolver(BrokenStore()).resolve("position", TEAM_CTX) == []


# ── RuleEvaluator ───────────────────────────────────────────────────────

class TestEvaluatorEquivalence:

    def test_identical_text_needs_no_rule(self) -> None:
        evaluation = RuleEvaluator(NullRuleStore()).evaluate(" 23 ", 23, "jersey", [])
        assert evaluation.equivalent
        assert evaluation.mapping_used is None

    def test_equivalence_rule(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        store = InMemoryRuleStore([r])
        evaluator = RuleEvaluator(store)
        evaluation = evaluator.evaluate("QB", "Quarterback", "position", [r])
        assert evaluation.equivalent
        assert evaluation.mapping_used == r
        assert evaluator.usage[r.id] == 1
        assert store.get(r.id).usage.times_used == 1

    def test_case_insensitive_by_default(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        assert RuleEvaluator(NullRuleStore()).evaluate("qb", "QUARTERBACK", "position", [r]).equivalent

    def test_case_sensitive_rule(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"], case_sensitive=True)
        assert not RuleEvaluator(NullRuleStore()).evaluate("qb", "Quarterback", "position", [r]).equivalent

    def test_both_values_must_belong(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        assert not RuleEvaluator(NullRuleStore()).evaluate("QB", "RB", "position", [r]).equivalent

    def test_primary_listed_among_equivalents(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["QB", "Quarterback"])
        assert RuleEvaluator(NullRuleStore()).evaluate("Quarterback", "QB", "position", [r]).equivalent

    def test_no_rules_not_equivalent(self) -> None:
        evaluation = RuleEvaluator(NullRuleStore()).evaluate("QB", "RB", "position", [])
        assert not evaluation.equivalent
        assert not evaluation.is_mapped


class TestEvaluatorTolerance:

    @pytest.mark.parametrize("scraped, ok", [("205", True), ("195", True), ("205.01", False), ("194.99", False), ("206", False)])
    def test_absolute_boundary(self, rule, scraped: str, ok: bool) -> None:
        r = rule("weight", "tolerance", tolerance=5)
        assert RuleEvaluator(NullRuleStore()).evaluate("200", scraped, "weight", [r]).equivalent is ok

    def test_float_boundary(self, rule) -> None:
        r = rule("weight", "tolerance", tolerance=5)
        assert RuleEvaluator(NullRuleStore()).evaluate("74.1", "69.1", "weight", [r]).equivalent

    def test_percentage_of_larger_value(self, rule) -> None:
        r = rule("weight", "tolerance", tolerance=5, tolerance_type="percentage")
        evaluator = RuleEvaluator(NullRuleStore())
        assert evaluator.evaluate("100", "105", "weight", [r]).equivalent
        assert not evaluator.evaluate("100", "110", "weight", [r]).equivalent

    def test_unparsable_skips_rule(self, rule) -> None:
        r = rule("weight", "tolerance", tolerance=5)
        assert not RuleEvaluator(NullRuleStore()).evaluate("heavy", "light", "weight", [r]).equivalent

    def test_units_suffix_parsed(self, rule) -> None:
        r = rule("weight", "tolerance", tolerance=5)
        assert RuleEvaluator(NullRuleStore()).evaluate("215 lbs", "212", "weight", [r]).equivalent


class TestEvaluatorIgnore:

    def test_ignore_hit(self, rule) -> None:
        r = rule("jersey", "ignore", primary="TBD", reason="jersey not yet assigned")
        evaluation = RuleEvaluator(NullRuleStore()).evaluate("tbd", "12", "jersey", [r])
        assert evaluation.equivalent
        assert evaluation.ignored
        assert evaluation.mapping_used == r

    def test_ignore_miss(self, rule) -> None:
        r = rule("jersey", "ignore", primary="TBD")
        assert not RuleEvaluator(NullRuleStore()).evaluate("11", "12", "jersey", [r]).equivalent

    def test_check_ignored(self, rule) -> None:
        r = rule("name", "ignore", primary="Team Totals")
        evaluator = RuleEvaluator(NullRuleStore())
        assert evaluator.check_ignored("team totals", [r]).ignored
        assert evaluator.check_ignored("John Doe", [r]) is None
        assert evaluator.check_ignored("", [r]) is None
        assert evaluator.usage[r.id] == 1

    def test_first_matching_rule_wins(self, rule) -> None:
        ignore = rule("jersey", "ignore", primary="00", priority=5)
        equivalence = rule("jersey", primary="0", equivalents=["00"])
        evaluation = RuleEvaluator(NullRuleStore()).evaluate("0", "00", "jersey", [ignore, equivalence])
        assert evaluation.ignored


class TestEvaluatorHeight:

    def test_auto_converted_without_rules(self) -> None:
        evaluator = RuleEvaluator(NullRuleStore())
        evaluation = evaluator.evaluate("6'2\"", "74", FieldType.HEIGHT.value, [])
        assert evaluation.equivalent
        assert evaluation.auto_converted
        assert evaluation.mapping_used is None
        assert not evaluator.usage

    def test_different_heights(self) -> None:
        evaluation = RuleEvaluator(NullRuleStore()).evaluate("6-2", "6-3", FieldType.HEIGHT.value, [])
        assert not evaluation.equivalent

    def test_conversion_only_for_height(self) -> None:
        assert not RuleEvaluator(NullRuleStore()).evaluate("6-2", "74", "weight", []).equivalent


class TestEvaluatorUsageWrites:

    def test_failed_write_never_fails_evaluation(self, rule, failing_usage_store) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        evaluator = RuleEvaluator(failing_usage_store(r))
        evaluation = evaluator.evaluate("QB", "Quarterback", "position", [r])
        assert evaluation.equivalent
        assert evaluator.usage[r.id] == 1

    def test_unreachable_store(self, rule) -> None:
        r = rule("position", primary="QB", equivalents=["Quarterback"])
        assert RuleEvaluator(BrokenStore()).evaluate("QB", "Quarterback", "position", [r]).equivalent
