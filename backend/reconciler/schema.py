"""
Comparable-field schemas, one per entity kind.

The comparator is a single generic routine; everything kind-specific (which
fields, where to read them, how to pre-agree, which stats are calculated and
therefore not comparable) lives here as data.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from shared.models.enums import EntityKind, FieldType, Sport

from reconciler.normalize import normalize_date, normalize_team_name, parse_minutes, parse_number, value_text
from reconciler.records import Record

Extractor = Callable[[Record], Any]
PairPredicate = Callable[[Record, Record], bool]


@dataclass(frozen=True)
class FieldSpec:
    """How to read, pre-agree and evaluate one comparable field."""
    name: str
    field_type: str
    reference: Extractor
    scraped: Extractor
    require_both: bool = False
    normalize: Optional[Callable[[Any], Any]] = None
    agree: Optional[PairPredicate] = None
    applies: Optional[PairPredicate] = None
    fallback_field_types: tuple[str, ...] = ()
    multi: bool = False
    numeric: bool = False
    clock: bool = False
    category: Optional[str] = None


@dataclass(frozen=True)
class GroupSpec:
    """A nested stat category compared key by key; ``*`` in ``excluded`` drops the category."""
    category: str
    excluded: frozenset[str] = frozenset()

    @property
    def skipped(self) -> bool:
        return "*" in self.excluded


@dataclass(frozen=True)
class EntitySchema:
    kind: EntityKind
    reference_name_keys: tuple[str, ...] = ()
    scraped_name_keys: tuple[str, ...] = ()
    fields: tuple[FieldSpec, ...] = ()
    groups: tuple[GroupSpec, ...] = ()
    activity: Optional[Callable[[Record], bool]] = None
    percentage_decimals: int = 0

    def fields_for(self, reference: Record, scraped: Record) -> list[FieldSpec]:
        specs = list(self.fields)
        for group in self.groups:
            if group.skipped:
                continue
            ref_stats, scr_stats = reference.group(group.category), scraped.group(group.category)
            if not ref_stats and not scr_stats:
                continue
            stat_names = list(dict.fromkeys([*scr_stats.keys(), *ref_stats.keys()]))
            specs.extend(_group_stat(group.category, stat) for stat in stat_names if stat not in group.excluded)
        return specs


# ── Extractors ──────────────────────────────────────────────────────────

def keys(*names: str, default: Any = None) -> Extractor:
    return lambda record: record.first(names, default)


def stat_value(name: str) -> Extractor:
    """Missing or null numeric stat reads as 0."""
    return lambda record: record.get(name) if record.get(name) is not None else 0


def name_of(record: Record, name_keys: tuple[str, ...]) -> str:
    name = record.first(name_keys)
    if name is not None:
        return value_text(name)
    first, last = value_text(record.get("firstName")), value_text(record.get("lastName"))
    return f"{first} {last}".strip()


def player_id_of(record: Record) -> Optional[str]:
    return value_text(record.first(("playerId", "rosterPlayerId", "player_id"))) or None


def _group_stat(category: str, stat: str) -> FieldSpec:
    def read(record: Record) -> Any:
        value = record.group(category).get(stat)
        return value if value is not None else 0

    return FieldSpec(
        name=stat,
        field_type=f"{category}.{stat}",
        reference=read,
        scraped=read,
        numeric=True,
        category=category,
    )


# ── Schedule accessors ──────────────────────────────────────────────────

def game_date(record: Record) -> str:
    """Calendar day of a game; ``gameDate`` is the locally corrected date and wins over ``date``."""
    return normalize_date(record.first(("gameDate", "date")))


def opponent_name(record: Record) -> str:
    return normalize_team_name(record.first(("opponentName", "opponent")))


def opponent_nickname(record: Record) -> str:
    return normalize_team_name(record.get("opponentNickname"))


def opponent_id(record: Record) -> Optional[str]:
    value = record.get("opponentId")
    return value_text(value) or None


def opponents_agree(reference: Record, scraped: Record) -> bool:
    """Same opponent by name, by nickname, or by one side's name against the other's nickname."""
    ref_name, scr_name = opponent_name(reference), opponent_name(scraped)
    ref_nick, scr_nick = opponent_nickname(reference), opponent_nickname(scraped)
    if ref_name and ref_name == scr_name:
        return True
    if ref_nick and ref_nick == scr_nick:
        return True
    return bool((scr_name and scr_name == ref_nick) or (scr_nick and scr_nick == ref_name))


def tv_networks(record: Record) -> list[str]:
    listed = record.get("tvArray")
    if isinstance(listed, (list, tuple)):
        return [value_text(v) for v in listed if value_text(v)]
    raw = value_text(record.get("tv"))
    return sorted(part.strip() for part in raw.split(",") if part.strip())


def _both_neutral(reference: Record, scraped: Record) -> bool:
    return reference.get("locationIndicator") == "N" and scraped.get("locationIndicator") == "N"


def _lower(value: Any) -> str:
    return value_text(value).lower()


# ── Roster ──────────────────────────────────────────────────────────────

def tracks_weight(sport: Optional[str], weightless_sports: tuple[str, ...] = ("womensBasketball",)) -> bool:
    if not sport:
        return True
    return sport not in weightless_sports and "women" not in sport.lower()


def roster_schema(sport: Optional[str] = None, weightless_sports: tuple[str, ...] = ("womensBasketball",)) -> EntitySchema:
    fields = [
        FieldSpec("jersey", FieldType.JERSEY.value, keys("jersey"), keys("jersey"), require_both=True),
        FieldSpec(
            "position",
            FieldType.POSITION.value,
            keys("position", "positionAbbr"),
            keys("position"),
            require_both=True,
        ),
        FieldSpec("weight", FieldType.WEIGHT.value, keys("weight"), keys("weight"), require_both=True),
        FieldSpec("height", FieldType.HEIGHT.value, keys("height"), keys("height"), require_both=True),
        FieldSpec(
            "year",
            FieldType.YEAR.value,
            keys("year", "eligibility"),
            keys("year", "eligibility"),
            require_both=True,
            fallback_field_types=(FieldType.ELIGIBILITY.value,),
        ),
    ]
    if not tracks_weight(sport, weightless_sports):
        fields = [f for f in fields if f.name != "weight"]
    return EntitySchema(
        kind=EntityKind.ROSTER,
        reference_name_keys=("displayName", "fullName", "player", "name"),
        scraped_name_keys=("displayName", "fullName", "name"),
        fields=tuple(fields),
    )


# ── Schedule ────────────────────────────────────────────────────────────

def schedule_schema(percentage_decimals: int = 1) -> EntitySchema:
    return EntitySchema(
        kind=EntityKind.SCHEDULE,
        fields=(
            FieldSpec(
                "opponent",
                FieldType.OPPONENT.value,
                keys("opponentName", "opponent"),
                keys("opponentName", "opponent"),
                require_both=True,
                agree=opponents_agree,
            ),
            FieldSpec(
                "locationIndicator",
                FieldType.LOCATION_INDICATOR.value,
                keys("locationIndicator"),
                keys("locationIndicator"),
                normalize=value_text,
            ),
            FieldSpec(
                "neutralHomeAway",
                FieldType.NEUTRAL_HOME_AWAY.value,
                lambda r: "H" if r.get("isHome") else "A",
                lambda r: "H" if r.get("neutralHometeam") else "A",
                applies=_both_neutral,
                normalize=value_text,
            ),
            FieldSpec("venue", FieldType.VENUE.value, keys("venue"), keys("venue"), normalize=_lower),
            FieldSpec("tv", FieldType.TV.value, tv_networks, tv_networks, multi=True),
            FieldSpec("time", FieldType.TIME.value, keys("time24", "time"), keys("time24", "time"), normalize=_lower),
        ),
        percentage_decimals=percentage_decimals,
    )


# ── Stats ───────────────────────────────────────────────────────────────

FOOTBALL_GROUPS = (
    GroupSpec("passing", frozenset({"rating", "sackedYards"})),
    GroupSpec("rushing", frozenset({"yardsGained", "yardsLost", "average"})),
    GroupSpec("receiving", frozenset({"average"})),
    GroupSpec("defense", frozenset({"*"})),
    GroupSpec("kicking"),
    GroupSpec("punting", frozenset({"average", "inside20", "fairCatches", "plus50", "touchbacks", "blocked"})),
    GroupSpec("returns"),
)

BASKETBALL_GROUPS = (
    GroupSpec("fieldGoals", frozenset({"percentage"})),
    GroupSpec("threePointers", frozenset({"percentage"})),
    GroupSpec("freeThrows", frozenset({"percentage"})),
    GroupSpec("rebounds"),
)

BASKETBALL_SIMPLE_STATS = ("assists", "turnovers", "steals", "blocks", "fouls", "points")


def is_basketball(sport: Optional[str]) -> bool:
    try:
        return Sport(sport).is_basketball
    except ValueError:
        return False


def _any_nonzero(stats: Mapping[str, Any]) -> bool:
    return any(parse_number(v) for v in stats.values())


def _football_active(record: Record) -> bool:
    return any(_any_nonzero(record.group(c)) for c in ("passing", "rushing", "receiving"))


def _basketball_active(record: Record) -> bool:
    minutes = parse_minutes(record.get("minutesPlayed"))
    return bool(
        (parse_number(record.get("points")) or 0) > 0
        or (parse_number(record.group("fieldGoals").get("attempts")) or 0) > 0
        or (parse_number(record.get("assists")) or 0) > 0
        or (parse_number(record.group("rebounds").get("total")) or 0) > 0
        or (minutes is not None and minutes > 0)
    )


def stats_schema(sport: Optional[str] = None) -> EntitySchema:
    basketball = is_basketball(sport)
    fields: tuple[FieldSpec, ...] = ()
    groups = FOOTBALL_GROUPS
    if basketball:
        groups = FOOTBALL_GROUPS + BASKETBALL_GROUPS
        fields = (
            FieldSpec(
                "minutesPlayed",
                FieldType.MINUTES.value,
                stat_value("minutesPlayed"),
                stat_value("minutesPlayed"),
                clock=True,
            ),
            *(FieldSpec(stat, stat, stat_value(stat), stat_value(stat), numeric=True) for stat in BASKETBALL_SIMPLE_STATS),
        )
    return EntitySchema(
        kind=EntityKind.STATS,
        reference_name_keys=("fullName", "displayName"),
        scraped_name_keys=("fullName", "name"),
        fields=fields,
        groups=groups,
        activity=_basketball_active if basketball else _football_active,
    )


# ── Boxscore ────────────────────────────────────────────────────────────

BOXSCORE_FIELDS = (
    "points",
    "fieldGoalsMade",
    "fieldGoalsAttempted",
    "threePointersMade",
    "threePointersAttempted",
    "freeThrowsMade",
    "freeThrowsAttempted",
    "offensiveRebounds",
    "defensiveRebounds",
    "rebounds",
    "assists",
    "steals",
    "blocks",
    "turnovers",
    "personalFouls",
    "plusMinusPoints",
)


def boxscore_schema() -> EntitySchema:
    fields = [FieldSpec(name, name, stat_value(name), stat_value(name), numeric=True) for name in BOXSCORE_FIELDS]
    fields.append(
        FieldSpec(
            "minutes",
            FieldType.MINUTES.value,
            keys("minutes", default="0:00"),
            keys("minutes", default="0:00"),
            clock=True,
        )
    )
    return EntitySchema(
        kind=EntityKind.BOXSCORE,
        reference_name_keys=("playerName", "name"),
        scraped_name_keys=("playerName", "name"),
        fields=tuple(fields),
    )
