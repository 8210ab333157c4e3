"""Domain enumerations for the reconciliation core."""
from __future__ import annotations

from enum import Enum


class Sport(str, Enum):
    FOOTBALL = "football"
    MENS_BASKETBALL = "mensBasketball"
    WOMENS_BASKETBALL = "womensBasketball"
    BASEBALL = "baseball"
    SOFTBALL = "softball"
    NBA = "nba"

    @property
    def is_basketball(self) -> bool:
        return self in (Sport.MENS_BASKETBALL, Sport.WOMENS_BASKETBALL, Sport.NBA)


class EntityKind(str, Enum):
    ROSTER = "roster"
    SCHEDULE = "schedule"
    STATS = "stats"
    BOXSCORE = "boxscore"


class SourceKind(str, Enum):
    """Which reference source a comparison runs against."""
    SCRAPED = "scraped"
    API = "api"
    ORACLE = "oracle"


class ScopeLevel(str, Enum):
    GLOBAL = "global"
    LEAGUE = "league"
    SPORT = "sport"
    TEAM = "team"
    PLAYER = "player"

    @property
    def specificity(self) -> int:
        return _SPECIFICITY[self]


_SPECIFICITY = {
    ScopeLevel.GLOBAL: 0,
    ScopeLevel.LEAGUE: 1,
    ScopeLevel.SPORT: 2,
    ScopeLevel.TEAM: 3,
    ScopeLevel.PLAYER: 4,
}


class MappingType(str, Enum):
    EQUIVALENCE = "equivalence"
    TOLERANCE = "tolerance"
    IGNORE = "ignore"


class ToleranceType(str, Enum):
    ABSOLUTE = "absolute"
    PERCENTAGE = "percentage"


class FieldType(str, Enum):
    """Rule field types with a fixed meaning; stats rules use ``category.stat`` strings."""
    NAME = "name"
    POSITION = "position"
    WEIGHT = "weight"
    HEIGHT = "height"
    YEAR = "year"
    ELIGIBILITY = "eligibility"
    JERSEY = "jersey"
    OPPONENT = "opponent"
    VENUE = "venue"
    LOCATION_INDICATOR = "locationIndicator"
    NEUTRAL_HOME_AWAY = "neutralHomeAway"
    TV = "tv"
    TIME = "time"
    MINUTES = "minutes"
