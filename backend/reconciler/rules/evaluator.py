"""
Rule evaluation: decide whether two field values agree, given the resolved rules.

Order of checks (first success wins):
1. trimmed text equality
2. height unit conversion (a physical fact, not a policy, so no rule is consulted)
3. each resolved rule in rank order: equivalence, tolerance, ignore
"""
from __future__ import annotations

import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from shared.models.domain import MappingRule
from shared.models.enums import FieldType, MappingType, ToleranceType
from shared.utils.logging import get_logger
from shared.utils.metrics import RULE_USAGE_WRITES

from reconciler.normalize import normalize_height, parse_number, value_text
from reconciler.rules.store import RuleStore

logger = get_logger(__name__)

# float slack so 74.1 vs 69.1 still sits inside a tolerance of 5
_EPSILON = 1e-9


@dataclass(frozen=True)
class Evaluation:
    equivalent: bool
    mapping_used: Optional[MappingRule] = None
    auto_converted: bool = False
    ignored: bool = False

    @property
    def is_mapped(self) -> bool:
        return self.mapping_used is not None or self.auto_converted


NOT_EQUIVALENT = Evaluation(equivalent=False)
IDENTICAL = Evaluation(equivalent=True)


def _fold(value: str, case_sensitive: bool) -> str:
    text = unicodedata.normalize("NFC", value).strip()
    return text if case_sensitive else text.lower()


def equivalence_holds(rule: MappingRule, a: str, b: str) -> bool:
    members = {_fold(v, rule.case_sensitive) for v in rule.values}
    return _fold(a, rule.case_sensitive) in members and _fold(b, rule.case_sensitive) in members


def tolerance_holds(rule: MappingRule, a: str, b: str) -> bool:
    num_a, num_b = parse_number(a), parse_number(b)
    if num_a is None or num_b is None:
        return False
    diff = abs(num_a - num_b)
    if rule.payload.tolerance_type == ToleranceType.PERCENTAGE:
        base = max(abs(num_a), abs(num_b))
        percent = (diff / base) * 100 if base else 0.0
        return percent <= rule.payload.tolerance + _EPSILON
    return diff <= rule.payload.tolerance + _EPSILON


def ignore_hits(rule: MappingRule, *values: str) -> bool:
    primary = rule.payload.primary_value
    if primary is None or not primary.strip():
        return False
    target = _fold(primary, case_sensitive=False)
    return any(_fold(v, case_sensitive=False) == target for v in values)


class RuleEvaluator:
    """
    Applies resolved rules to value pairs and tallies which rules fired.

    One evaluator serves one comparison run; ``usage`` holds the per-run tally
    reported in the summary. Store-side usage counters are bumped best effort.
    """

    def __init__(self, store: RuleStore) -> None:
        self._store = store
        self.usage: Counter[str] = Counter()

    def evaluate(self, a: Any, b: Any, field_type: str, rules: Sequence[MappingRule]) -> Evaluation:
        text_a, text_b = value_text(a), value_text(b)
        if text_a == text_b:
            return IDENTICAL

        if field_type == FieldType.HEIGHT.value:
            inches_a, inches_b = normalize_height(text_a), normalize_height(text_b)
            if inches_a is not None and inches_a == inches_b:
                return Evaluation(equivalent=True, auto_converted=True)

        for rule in rules:
            if rule.mapping_type == MappingType.EQUIVALENCE:
                if equivalence_holds(rule, text_a, text_b):
                    self.record_use(rule)
                    return Evaluation(equivalent=True, mapping_used=rule)
            elif rule.mapping_type == MappingType.TOLERANCE:
                if tolerance_holds(rule, text_a, text_b):
                    self.record_use(rule)
                    return Evaluation(equivalent=True, mapping_used=rule)
            elif rule.mapping_type == MappingType.IGNORE:
                if ignore_hits(rule, text_a, text_b):
                    self.record_use(rule)
                    logger.debug("value_ignored", field_type=field_type, rule_id=rule.id)
                    return Evaluation(equivalent=True, mapping_used=rule, ignored=True)

        return NOT_EQUIVALENT

    def check_ignored(self, value: Any, rules: Sequence[MappingRule]) -> Optional[Evaluation]:
        """Ignore probe for a single value (unmatched entities, one-sided set elements)."""
        text = value_text(value)
        if not text:
            return None
        for rule in rules:
            if rule.mapping_type == MappingType.IGNORE and ignore_hits(rule, text):
                self.record_use(rule)
                return Evaluation(equivalent=True, mapping_used=rule, ignored=True)
        return None

    def record_use(self, rule: MappingRule) -> None:
        self.usage[rule.id] += 1
        try:
            self._store.increment_usage(rule.id)
        except Exception as exc:
            # a failed counter write never fails the comparison
            RULE_USAGE_WRITES.labels(status="failed").inc()
            logger.warning("rule_usage_write_failed", rule_id=rule.id, error=str(exc))
        else:
            RULE_USAGE_WRITES.labels(status="ok").inc()
