"""
Result assembly: totals, match percentage and summary counters.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Sequence

from shared.models.domain import ComparisonResult, ComparisonSummary, MatchEntry, MissingEntry
from shared.models.enums import EntityKind


def round_half_up(value: float, decimals: int = 0) -> float:
    exponent = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def match_percentage(matched: int, total_reference: int, total_scraped: int, decimals: int = 0) -> float:
    """``100 * matched / max(reference, scraped)``, 0 when both populations are empty."""
    denominator = max(total_reference, total_scraped)
    if denominator <= 0:
        return 0.0
    return round_half_up(100.0 * matched / denominator, decimals)


def aggregate(
    kind: EntityKind,
    matches: Sequence[MatchEntry],
    missing_in_reference: Sequence[MissingEntry],
    missing_in_scraped: Sequence[MissingEntry],
    rule_usage: Mapping[str, int],
    percentage_decimals: int = 0,
    name_mappings_available: int = 0,
    filtered_inactive: int = 0,
) -> ComparisonResult:
    """
    Build the ComparisonResult for one run.

    Ignored unmatched entities leave their side's population before the
    percentage is taken. A pair whose differences were all ignored still counts as a match.
    """
    total_reference = len(matches) + len(missing_in_scraped)
    total_scraped = len(matches) + len(missing_in_reference)

    ignored_matches = sum(1 for m in matches if m.ignored)
    ignored_only_reference = sum(1 for m in missing_in_scraped if m.ignored)
    ignored_only_scraped = sum(1 for m in missing_in_reference if m.ignored)

    percentage = match_percentage(
        len(matches),
        total_reference - ignored_only_reference,
        total_scraped - ignored_only_scraped,
        percentage_decimals,
    )

    discrepancies = [d.model_copy() for m in matches for d in m.discrepancies]
    summary = ComparisonSummary(
        perfect_matches=sum(1 for m in matches if not m.discrepancies),
        matches_with_discrepancies=sum(1 for m in matches if m.discrepancies),
        unique_to_reference=len(missing_in_scraped) - ignored_only_reference,
        unique_to_scraped=len(missing_in_reference) - ignored_only_scraped,
        missing_in_reference=len(missing_in_reference),
        missing_in_scraped=len(missing_in_scraped),
        total_discrepancies=len(discrepancies),
        ignored_entities=ignored_matches + ignored_only_reference + ignored_only_scraped,
        total_mappings_used=sum(rule_usage.values()),
        name_mappings_available=name_mappings_available,
        filtered_inactive=filtered_inactive,
        rule_usage=dict(rule_usage),
    )
    return ComparisonResult(
        entity_kind=kind,
        total_reference=total_reference,
        total_scraped=total_scraped,
        matches=list(matches),
        discrepancies=discrepancies,
        missing_in_reference=list(missing_in_reference),
        missing_in_scraped=list(missing_in_scraped),
        match_percentage=percentage,
        summary=summary,
    )
