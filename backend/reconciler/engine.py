"""
Reconciliation engine: the four comparison entry points.

Each call is synchronous and independent. The only state shared between
calls is the rule store.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from shared.config import Settings, get_settings
from shared.models.domain import ComparisonResult, MappingRule, MatchEntry, MissingEntry, ScopeContext
from shared.models.enums import EntityKind, FieldType, MappingType, SourceKind
from shared.utils.database import DatabaseManager
from shared.utils.logging import comparison_context, get_logger
from shared.utils.metrics import (
    COMPARISON_LATENCY,
    COMPARISONS,
    DISCREPANCIES,
    MATCH_PERCENTAGE,
    track_latency,
)

from reconciler.aggregator import aggregate
from reconciler.comparator import FieldComparator, RuleBook
from reconciler.config import ReconcilerSettings, get_reconciler_settings
from reconciler.matching import MatchOutcome, Unmatched, match_by_name, match_schedule
from reconciler.normalize import normalize_date
from reconciler.records import wrap_all
from reconciler.rules.evaluator import RuleEvaluator
from reconciler.rules.scope import ScopeResolver
from reconciler.rules.sql_store import SqlRuleStore
from reconciler.rules.store import CachingRuleStore, RuleStore
from reconciler.schema import (
    EntitySchema,
    boxscore_schema,
    game_date,
    player_id_of,
    roster_schema,
    schedule_schema,
    stats_schema,
)

logger = get_logger(__name__)

RawRecords = Optional[Iterable[Mapping[str, Any]]]


class ReconciliationEngine:
    """Compares a scraped dataset against a reference dataset for one entity kind."""

    def __init__(self, rule_store: RuleStore, settings: Optional[ReconcilerSettings] = None) -> None:
        self._store = rule_store
        self._settings = settings or get_reconciler_settings()
        self._resolver = ScopeResolver(rule_store)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        reconciler_settings: Optional[ReconcilerSettings] = None,
    ) -> "ReconciliationEngine":
        """Engine over the configured SQL rule store, behind the rule cache."""
        reconciler_settings = reconciler_settings or get_reconciler_settings()
        db = DatabaseManager(settings or get_settings())
        db.connect()
        store = CachingRuleStore(SqlRuleStore(db), ttl_s=reconciler_settings.rule_cache_ttl_s)
        return cls(store, reconciler_settings)

    # ── Entry points ────────────────────────────────────────────────────

    def compare_roster(
        self,
        reference_records: RawRecords,
        scraped_records: RawRecords,
        sport: Optional[str] = None,
        team_id: Optional[str] = None,
        league: Optional[str] = None,
        source_kind: Optional[SourceKind] = SourceKind.SCRAPED,
    ) -> ComparisonResult:
        scope = ScopeContext(league=league, sport=sport, team_id=team_id)
        return self.compare(EntityKind.ROSTER, reference_records, scraped_records, scope, source_kind)

    def compare_stats(
        self,
        scraped_players: RawRecords,
        reference_players: RawRecords,
        sport: Optional[str] = None,
        team_id: Optional[str] = None,
        league: Optional[str] = None,
        source_kind: Optional[SourceKind] = SourceKind.SCRAPED,
    ) -> ComparisonResult:
        scope = ScopeContext(league=league, sport=sport, team_id=team_id)
        return self.compare(EntityKind.STATS, reference_players, scraped_players, scope, source_kind)

    def compare_schedule(
        self,
        scraped_games: RawRecords,
        reference_games: RawRecords,
        sport: Optional[str] = None,
        team_id: Optional[str] = None,
        league: Optional[str] = None,
        source_kind: Optional[SourceKind] = SourceKind.SCRAPED,
        ignored_dates: Iterable[Any] = (),
    ) -> ComparisonResult:
        scope = ScopeContext(league=league, sport=sport, team_id=team_id)
        return self.compare(EntityKind.SCHEDULE, reference_games, scraped_games, scope, source_kind, ignored_dates)

    def compare_boxscore(
        self,
        scraped_players: RawRecords,
        reference_players: RawRecords,
        team_id: Optional[str] = None,
        source_kind: Optional[SourceKind] = SourceKind.SCRAPED,
    ) -> ComparisonResult:
        scope = ScopeContext(
            league=self._settings.boxscore_league,
            sport=self._settings.boxscore_sport,
            team_id=team_id,
        )
        return self.compare(EntityKind.BOXSCORE, reference_players, scraped_players, scope, source_kind)

    def compare(
        self,
        kind: Union[EntityKind, str],
        reference: RawRecords,
        scraped: RawRecords,
        scope: ScopeContext,
        source_kind: Optional[Union[SourceKind, str]] = None,
        ignored_dates: Iterable[Any] = (),
    ) -> ComparisonResult:
        """
        Run one comparison.

        Raises:
            ValueError: unknown entity kind or source kind.
            TypeError: a record collection is None.
        """
        kind = EntityKind(kind)
        if source_kind is not None:
            source_kind = SourceKind(source_kind)
        reference_records = wrap_all(kind, reference, "reference")
        scraped_records = wrap_all(kind, scraped, "scraped")
        skip_dates = {normalize_date(d) for d in ignored_dates or ()}

        run_context = comparison_context(
            kind=kind.value,
            sport=scope.sport,
            team_id=scope.team_id,
            source_kind=source_kind.value if source_kind else None,
        )
        with run_context, track_latency(COMPARISON_LATENCY, kind=kind.value):
            evaluator = RuleEvaluator(self._store)
            book = RuleBook(self._resolver, scope, source_kind)
            schema = self._schema(kind, scope)

            name_rules: list[MappingRule] = []
            if kind == EntityKind.SCHEDULE:
                outcome = match_schedule(reference_records, scraped_records)
            else:
                name_rules = book.rules(FieldType.NAME.value)
                outcome = match_by_name(reference_records, scraped_records, schema, name_rules)

            matches = self._compare_pairs(outcome, schema, evaluator, book, name_rules)
            missing_in_scraped, inactive_ref = self._missing(
                outcome.unmatched_reference, schema, evaluator, name_rules, skip_dates
            )
            missing_in_reference, inactive_scr = self._missing(
                outcome.unmatched_scraped, schema, evaluator, name_rules, skip_dates
            )

            result = aggregate(
                kind,
                matches,
                missing_in_reference,
                missing_in_scraped,
                evaluator.usage,
                percentage_decimals=schema.percentage_decimals,
                name_mappings_available=sum(1 for r in name_rules if r.mapping_type == MappingType.EQUIVALENCE),
                filtered_inactive=inactive_ref + inactive_scr,
            )

        COMPARISONS.labels(kind=kind.value).inc()
        DISCREPANCIES.labels(kind=kind.value).inc(len(result.discrepancies))
        MATCH_PERCENTAGE.labels(kind=kind.value).set(result.match_percentage)
        logger.info(
            "comparison_complete",
            kind=kind.value,
            sport=scope.sport,
            team_id=scope.team_id,
            source_kind=source_kind.value if source_kind else None,
            matches=len(result.matches),
            discrepancies=len(result.discrepancies),
            missing_in_reference=len(result.missing_in_reference),
            missing_in_scraped=len(result.missing_in_scraped),
            match_percentage=result.match_percentage,
        )
        return result

    # ── Internals ───────────────────────────────────────────────────────

    def _schema(self, kind: EntityKind, scope: ScopeContext) -> EntitySchema:
        if kind == EntityKind.ROSTER:
            return roster_schema(scope.sport, tuple(self._settings.weightless_sports))
        if kind == EntityKind.SCHEDULE:
            return schedule_schema(self._settings.schedule_percentage_decimals)
        if kind == EntityKind.STATS:
            return stats_schema(scope.sport)
        return boxscore_schema()

    def _compare_pairs(
        self,
        outcome: MatchOutcome,
        schema: EntitySchema,
        evaluator: RuleEvaluator,
        book: RuleBook,
        name_rules: Sequence[MappingRule],
    ) -> list[MatchEntry]:
        comparators: dict[Optional[str], FieldComparator] = {}
        by_id = {r.id: r for r in name_rules}
        entries: list[MatchEntry] = []
        for pair in outcome.pairs:
            if pair.name_rule_id in by_id:
                evaluator.record_use(by_id[pair.name_rule_id])
            player_id = None
            if schema.kind != EntityKind.SCHEDULE:
                player_id = player_id_of(pair.reference) or player_id_of(pair.scraped)
            if player_id not in comparators:
                comparators[player_id] = FieldComparator(
                    evaluator, book.for_player(player_id), self._settings.minutes_drift_tolerance
                )
            compared = comparators[player_id].compare(pair, schema)
            entries.append(
                MatchEntry(
                    match_key=pair.match_key,
                    reference=pair.reference.as_dict(),
                    scraped=pair.scraped.as_dict(),
                    strategy=pair.strategy,
                    discrepancies=compared.discrepancies,
                    mapped_fields=compared.mapped_fields,
                    ignored=compared.ignored,
                )
            )
        return entries

    def _missing(
        self,
        unmatched: Sequence[Unmatched],
        schema: EntitySchema,
        evaluator: RuleEvaluator,
        name_rules: Sequence[MappingRule],
        skip_dates: set[str],
    ) -> tuple[list[MissingEntry], int]:
        """Missing-list entries for one side, and how many inactive players were dropped."""
        entries: list[MissingEntry] = []
        inactive = 0
        for item in unmatched:
            if schema.activity is not None and not schema.activity(item.record):
                inactive += 1
                continue
            if schema.kind == EntityKind.SCHEDULE:
                ignored = game_date(item.record) in skip_dates
            else:
                ignored = evaluator.check_ignored(item.label, name_rules) is not None
            entries.append(MissingEntry(key=item.key, label=item.label, record=item.record.as_dict(), ignored=ignored))
        if inactive:
            logger.debug("inactive_players_filtered", kind=schema.kind.value, count=inactive)
        return entries, inactive
