"""
Entity matching: pair reference and scraped records 1:1.

Two keying strategies:
- name-keyed (roster, stats, boxscore): normalized player name, after name rules
- date-and-opponent-keyed (schedule): calendar day, then a cascade of opponent strategies
"""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from shared.models.domain import MappingRule
from shared.models.enums import MappingType
from shared.utils.logging import get_logger

from reconciler.normalize import normalize_name, value_text
from reconciler.records import MatchedPair, Record
from reconciler.schema import EntitySchema, game_date, name_of, opponent_id, opponent_name, opponent_nickname

logger = get_logger(__name__)

UNNAMED = "<unnamed>"


@dataclass(frozen=True)
class Unmatched:
    key: str
    label: str
    record: Record


@dataclass
class MatchOutcome:
    pairs: list[MatchedPair] = field(default_factory=list)
    unmatched_reference: list[Unmatched] = field(default_factory=list)
    unmatched_scraped: list[Unmatched] = field(default_factory=list)


# ── Name-keyed ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NamedRecord:
    record: Record
    original_name: str
    mapped_name: str
    rule: Optional[MappingRule] = None


def canonical_name(name: str, rules: Sequence[MappingRule]) -> tuple[str, Optional[MappingRule]]:
    """Primary value of the first equivalence rule listing ``name``; ``name`` itself otherwise."""
    text = unicodedata.normalize("NFC", name.strip())
    for rule in rules:
        if rule.mapping_type != MappingType.EQUIVALENCE or rule.payload.primary_value is None:
            continue
        if rule.case_sensitive:
            members = {unicodedata.normalize("NFC", v).strip() for v in rule.values}
            probe = text
        else:
            members = {unicodedata.normalize("NFC", v).strip().lower() for v in rule.values}
            probe = text.lower()
        if probe in members:
            return rule.payload.primary_value, rule
    return name, None


def index_by_name(
    records: Sequence[Record],
    name_keys: tuple[str, ...],
    name_rules: Sequence[MappingRule],
    side: str,
) -> tuple[dict[str, NamedRecord], list[Unmatched]]:
    """
    Normalized name -> record for one side, plus the records with no usable name.

    A later record with the same normalized name replaces an earlier one.
    Nameless records are keyed by their position in the input.
    """
    index: dict[str, NamedRecord] = {}
    nameless: list[Unmatched] = []
    for position, record in enumerate(records):
        original = name_of(record, name_keys)
        mapped, rule = canonical_name(original, name_rules)
        key = normalize_name(mapped)
        if not key:
            logger.debug("nameless_record", side=side, position=position)
            nameless.append(Unmatched(key=f"#{position}", label=UNNAMED, record=record))
            continue
        if rule is not None:
            logger.debug("name_mapping_applied", side=side, name=original, canonical=mapped, rule_id=rule.id)
        if key in index:
            logger.debug("duplicate_name_overwritten", side=side, key=key, name=original)
        index[key] = NamedRecord(record=record, original_name=original, mapped_name=mapped, rule=rule)
    return index, nameless


def match_by_name(
    reference: Sequence[Record],
    scraped: Sequence[Record],
    schema: EntitySchema,
    name_rules: Sequence[MappingRule],
) -> MatchOutcome:
    ref_index, ref_nameless = index_by_name(reference, schema.reference_name_keys, name_rules, "reference")
    scr_index, scr_nameless = index_by_name(scraped, schema.scraped_name_keys, name_rules, "scraped")

    outcome = MatchOutcome(unmatched_reference=ref_nameless)
    for key, ref in ref_index.items():
        scr = scr_index.get(key)
        if scr is None:
            outcome.unmatched_reference.append(Unmatched(key=key, label=ref.original_name, record=ref.record))
            continue
        via_rule = ref.original_name != scr.original_name and ref.mapped_name == scr.mapped_name
        rule = (ref.rule or scr.rule) if via_rule else None
        outcome.pairs.append(
            MatchedPair(
                reference=ref.record,
                scraped=scr.record,
                match_key=ref.original_name or key,
                strategy="name_rule" if rule else "name",
                name_rule_id=rule.id if rule else None,
                mapped_fields={"name": rule.id} if rule else {},
            )
        )

    for key, scr in scr_index.items():
        if key not in ref_index:
            outcome.unmatched_scraped.append(Unmatched(key=key, label=scr.original_name, record=scr.record))
    outcome.unmatched_scraped.extend(scr_nameless)
    return outcome


# ── Date-and-opponent-keyed ─────────────────────────────────────────────

@dataclass(frozen=True)
class Candidate:
    index: int
    record: Record


Strategy = Callable[[Record, Sequence[Candidate]], Optional[Candidate]]


def by_opponent_name(scraped: Record, candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """Same opponent name; on doubleheaders the matching ``gameNumber`` wins."""
    name = opponent_name(scraped)
    if not name:
        return None
    same = [c for c in candidates if opponent_name(c.record) == name]
    if not same:
        return None
    number = value_text(scraped.get("gameNumber"))
    if number and len(same) > 1:
        for candidate in same:
            if value_text(candidate.record.get("gameNumber")) == number:
                return candidate
    return same[0]


def by_nickname(scraped: Record, candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """Nickname against nickname, or a nickname on one side against the name on the other."""
    scr_name, scr_nick = opponent_name(scraped), opponent_nickname(scraped)
    for candidate in candidates:
        ref_name, ref_nick = opponent_name(candidate.record), opponent_nickname(candidate.record)
        if scr_nick and (scr_nick == ref_nick or scr_nick == ref_name):
            return candidate
        if scr_name and scr_name == ref_nick:
            return candidate
    return None


def by_opponent_id(scraped: Record, candidates: Sequence[Candidate]) -> Optional[Candidate]:
    scr_id = opponent_id(scraped)
    if scr_id is None:
        return None
    for candidate in candidates:
        if opponent_id(candidate.record) == scr_id:
            return candidate
    return None


SCHEDULE_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("opponent", by_opponent_name),
    ("nickname", by_nickname),
    ("opponent_id", by_opponent_id),
)


def game_label(date: str, record: Record) -> str:
    opponent = value_text(record.first(("opponentName", "opponent"))) or "?"
    number = value_text(record.get("gameNumber"))
    label = f"{date} vs {opponent}"
    return f"{label} (game {number})" if number else label


def _by_date(records: Sequence[Record]) -> dict[str, list[Record]]:
    grouped: dict[str, list[Record]] = {}
    for record in records:
        grouped.setdefault(game_date(record), []).append(record)
    return grouped


def match_schedule(
    reference: Sequence[Record],
    scraped: Sequence[Record],
    strategies: Sequence[tuple[str, Strategy]] = SCHEDULE_STRATEGIES,
) -> MatchOutcome:
    """
    Pair games day by day.

    Each scraped game runs the strategy cascade against the still-unused
    reference games of its day. Afterwards, if exactly one game per side is
    left unmatched on that day, the two are paired as a singleton.
    """
    ref_by_date = _by_date(reference)
    scr_by_date = _by_date(scraped)
    outcome = MatchOutcome()

    for date, scr_games in scr_by_date.items():
        ref_games = ref_by_date.get(date, [])
        if len(scr_games) > 1 or len(ref_games) > 1:
            logger.debug("multi_game_date", date=date, scraped=len(scr_games), reference=len(ref_games))
        used: set[int] = set()
        matched: set[int] = set()

        for si, game in enumerate(scr_games):
            candidates = [Candidate(oi, r) for oi, r in enumerate(ref_games) if oi not in used]
            if not candidates:
                break
            for name, strategy in strategies:
                hit = strategy(game, candidates)
                if hit is not None:
                    used.add(hit.index)
                    matched.add(si)
                    outcome.pairs.append(
                        MatchedPair(
                            reference=hit.record,
                            scraped=game,
                            match_key=game_label(date, hit.record),
                            strategy=name,
                        )
                    )
                    break

        left_scr = [si for si in range(len(scr_games)) if si not in matched]
        left_ref = [oi for oi in range(len(ref_games)) if oi not in used]
        if len(left_scr) == 1 and len(left_ref) == 1:
            si, oi = left_scr[0], left_ref[0]
            used.add(oi)
            matched.add(si)
            outcome.pairs.append(
                MatchedPair(
                    reference=ref_games[oi],
                    scraped=scr_games[si],
                    match_key=game_label(date, ref_games[oi]),
                    strategy="singleton",
                )
            )

        for si, game in enumerate(scr_games):
            if si not in matched:
                label = game_label(date, game)
                outcome.unmatched_scraped.append(Unmatched(key=label, label=label, record=game))
        for oi, game in enumerate(ref_games):
            if oi not in used:
                label = game_label(date, game)
                outcome.unmatched_reference.append(Unmatched(key=label, label=label, record=game))

    for date, ref_games in ref_by_date.items():
        if date in scr_by_date:
            continue
        for game in ref_games:
            label = game_label(date, game)
            outcome.unmatched_reference.append(Unmatched(key=label, label=label, record=game))

    return outcome
