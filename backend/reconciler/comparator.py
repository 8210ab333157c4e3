"""
Field comparison for matched pairs.

One routine for every entity kind; the per-kind differences come from the
``EntitySchema`` (reconciler.schema).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from shared.models.domain import Discrepancy, MappingRule, ScopeContext
from shared.models.enums import SourceKind

from reconciler.normalize import parse_minutes, parse_number, value_text
from reconciler.records import MatchedPair
from reconciler.rules.evaluator import Evaluation, RuleEvaluator
from reconciler.rules.scope import ScopeResolver
from reconciler.schema import EntitySchema, FieldSpec

AUTO_CONVERTED = "auto_converted"
_EPSILON = 1e-9


class RuleBook:
    """Resolved rules per field type, looked up once per comparison run."""

    def __init__(self, resolver: ScopeResolver, scope: ScopeContext, source_kind: Optional[SourceKind] = None) -> None:
        self._resolver = resolver
        self._scope = scope
        self._source_kind = source_kind
        self._rules: dict[str, list[MappingRule]] = {}

    def rules(self, field_type: str) -> list[MappingRule]:
        if field_type not in self._rules:
            self._rules[field_type] = self._resolver.resolve(field_type, self._scope, self._source_kind)
        return self._rules[field_type]

    def for_player(self, player_id: Optional[str]) -> RuleBook:
        """Book that also sees rules scoped to ``player_id``; this book when the scope already names a player."""
        if not player_id or self._scope.player_id:
            return self
        scope = self._scope.model_copy(update={"player_id": player_id})
        return RuleBook(self._resolver, scope, self._source_kind)


@dataclass
class PairComparison:
    discrepancies: list[Discrepancy] = field(default_factory=list)
    mapped_fields: dict[str, Any] = field(default_factory=dict)
    ignored: bool = False


def _blank(value: Any) -> bool:
    return value is None or value_text(value) == ""


def _note(result: PairComparison, name: str, evaluation: Evaluation) -> None:
    if evaluation.mapping_used is not None:
        result.mapped_fields[name] = evaluation.mapping_used.id
    elif evaluation.auto_converted:
        result.mapped_fields[name] = AUTO_CONVERTED


class FieldComparator:
    """Walks a schema over one matched pair and collects discrepancies."""

    def __init__(self, evaluator: RuleEvaluator, book: RuleBook, minutes_tolerance: float = 1.0) -> None:
        self._evaluator = evaluator
        self._book = book
        self._minutes_tolerance = minutes_tolerance

    def compare(self, pair: MatchedPair, schema: EntitySchema) -> PairComparison:
        result = PairComparison(mapped_fields=dict(pair.mapped_fields))
        for spec in schema.fields_for(pair.reference, pair.scraped):
            if spec.applies is not None and not spec.applies(pair.reference, pair.scraped):
                continue
            ref_value, scr_value = spec.reference(pair.reference), spec.scraped(pair.scraped)
            if spec.multi:
                agreed = self._compare_set(spec, ref_value or [], scr_value or [], result)
            else:
                agreed = self._compare_scalar(spec, pair, ref_value, scr_value, result)
            if not agreed:
                result.discrepancies.append(
                    Discrepancy(
                        match_key=pair.match_key,
                        field=spec.name,
                        reference_value=ref_value,
                        scraped_value=scr_value,
                        category=spec.category,
                        mapping_applied=pair.name_rule_id,
                    )
                )
        return result

    def _compare_scalar(
        self,
        spec: FieldSpec,
        pair: MatchedPair,
        ref_value: Any,
        scr_value: Any,
        result: PairComparison,
    ) -> bool:
        if spec.require_both and (_blank(ref_value) or _blank(scr_value)):
            return True
        if spec.agree is not None and spec.agree(pair.reference, pair.scraped):
            return True

        a, b = ref_value, scr_value
        if spec.normalize is not None:
            a, b = spec.normalize(a), spec.normalize(b)
        if spec.numeric:
            a, b = parse_number(a) or 0.0, parse_number(b) or 0.0
            if a == b:
                return True
        if spec.clock:
            minutes_a, minutes_b = parse_minutes(a), parse_minutes(b)
            if minutes_a is not None and minutes_b is not None:
                if abs(minutes_a - minutes_b) <= self._minutes_tolerance + _EPSILON:
                    return True

        evaluation = self._evaluator.evaluate(a, b, spec.field_type, self._book.rules(spec.field_type))
        if not evaluation.equivalent:
            for fallback in spec.fallback_field_types:
                evaluation = self._evaluator.evaluate(a, b, fallback, self._book.rules(fallback))
                if evaluation.equivalent:
                    break
        if not evaluation.equivalent:
            return False
        _note(result, spec.name, evaluation)
        if evaluation.ignored:
            result.ignored = True
        return True

    def _compare_set(
        self,
        spec: FieldSpec,
        ref_values: Sequence[Any],
        scr_values: Sequence[Any],
        result: PairComparison,
    ) -> bool:
        """
        Case-insensitive set comparison.

        Each element on one side only is probed against ignore rules, then
        against every element of the other side; an ignore hit drops that
        element without flagging the entity.
        """
        ref_set = {value_text(v).lower(): value_text(v) for v in ref_values if value_text(v)}
        scr_set = {value_text(v).lower(): value_text(v) for v in scr_values if value_text(v)}
        if ref_set.keys() == scr_set.keys():
            return True

        rules = self._book.rules(spec.field_type)
        unresolved = 0
        for own, other in ((ref_set, scr_set), (scr_set, ref_set)):
            for key, element in own.items():
                if key in other:
                    continue
                probe = self._evaluator.check_ignored(element, rules)
                if probe is not None:
                    _note(result, spec.name, probe)
                    continue
                for counterpart in other.values():
                    evaluation = self._evaluator.evaluate(element, counterpart, spec.field_type, rules)
                    if evaluation.equivalent and not evaluation.ignored:
                        _note(result, spec.name, evaluation)
                        break
                else:
                    unresolved += 1
        return unresolved == 0
