"""
SQLAlchemy-backed rule store over the ``data_mappings`` table.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, or_, select, update

from shared.models.domain import AppliesTo, MappingRule, RulePayload, RuleUsage, Scope
from shared.models.enums import MappingType, ScopeLevel, ToleranceType
from shared.models.orm import MappingRuleORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from reconciler.rules.store import RuleStore, ScopeFilter

logger = get_logger(__name__)

_SCOPE_COLUMNS = {
    ScopeLevel.LEAGUE: MappingRuleORM.scope_league,
    ScopeLevel.SPORT: MappingRuleORM.scope_sport,
    ScopeLevel.TEAM: MappingRuleORM.scope_team_id,
    ScopeLevel.PLAYER: MappingRuleORM.scope_player_id,
}

_APPLIES_COLUMNS = {
    "scraped": MappingRuleORM.applies_scraped,
    "api": MappingRuleORM.applies_api,
    "oracle": MappingRuleORM.applies_oracle,
}


def rule_from_row(row: MappingRuleORM) -> MappingRule:
    return MappingRule(
        id=row.id,
        field_type=row.field_type,
        mapping_type=MappingType(row.mapping_type),
        scope=Scope(
            level=ScopeLevel(row.scope_level),
            league=row.scope_league,
            sport=row.scope_sport,
            team_id=row.scope_team_id,
            player_id=row.scope_player_id,
        ),
        payload=RulePayload(
            primary_value=row.primary_value,
            equivalents=[str(v) for v in (row.equivalents or [])],
            tolerance=row.tolerance,
            tolerance_type=ToleranceType(row.tolerance_type),
            reason=row.ignore_reason,
        ),
        case_sensitive=row.case_sensitive,
        priority=row.priority,
        active=row.active,
        applies_to=AppliesTo(scraped=row.applies_scraped, api=row.applies_api, oracle=row.applies_oracle),
        expires_at=row.expires_at,
        usage=RuleUsage(
            times_used=row.times_used,
            successful_matches=row.successful_matches,
            last_used=row.last_used,
        ),
    )


def row_from_rule(rule: MappingRule) -> MappingRuleORM:
    return MappingRuleORM(
        id=rule.id,
        field_type=rule.field_type,
        mapping_type=rule.mapping_type.value,
        scope_level=rule.scope.level.value,
        scope_league=rule.scope.league,
        scope_sport=rule.scope.sport,
        scope_team_id=rule.scope.team_id,
        scope_player_id=rule.scope.player_id,
        primary_value=rule.payload.primary_value,
        equivalents=list(rule.payload.equivalents),
        tolerance=rule.payload.tolerance,
        tolerance_type=rule.payload.tolerance_type.value,
        ignore_reason=rule.payload.reason,
        case_sensitive=rule.case_sensitive,
        priority=rule.priority,
        active=rule.active,
        applies_scraped=rule.applies_to.scraped,
        applies_api=rule.applies_to.api,
        applies_oracle=rule.applies_to.oracle,
        expires_at=rule.expires_at,
        times_used=rule.usage.times_used,
        successful_matches=rule.usage.successful_matches,
        last_used=rule.usage.last_used,
    )


class SqlRuleStore(RuleStore):
    """Reads rules with one OR-of-scopes query; usage bumps are atomic UPDATEs."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    def add(self, rule: MappingRule) -> None:
        with self._db.write_session() as session:
            session.merge(row_from_rule(rule))
        logger.info("mapping_rule_saved", rule_id=rule.id, field_type=rule.field_type)

    def find_active_rules(self, field_type: str, scope_filter: ScopeFilter) -> list[MappingRule]:
        scope_clauses: list[Any] = []
        for level, discriminator in scope_filter.levels:
            if level == ScopeLevel.GLOBAL:
                scope_clauses.append(MappingRuleORM.scope_level == level.value)
            elif discriminator:
                scope_clauses.append(
                    and_(MappingRuleORM.scope_level == level.value, _SCOPE_COLUMNS[level] == discriminator)
                )
        stmt = select(MappingRuleORM).where(
            MappingRuleORM.field_type == field_type,
            MappingRuleORM.active.is_(True),
            or_(*scope_clauses),
        )
        if scope_filter.source_kind is not None:
            stmt = stmt.where(_APPLIES_COLUMNS[scope_filter.source_kind.value].is_(True))
        stmt = stmt.order_by(MappingRuleORM.priority.desc(), MappingRuleORM.id)

        now = datetime.now(timezone.utc)
        with self._db.read_session() as session:
            rows = session.execute(stmt).scalars().all()
            rules = [rule_from_row(r) for r in rows]
        # expiry is checked in Python: SQLite drops tz info on DateTime columns
        return [r for r in rules if r.is_live(now)]

    def increment_usage(self, rule_id: str) -> None:
        stmt = (
            update(MappingRuleORM)
            .where(MappingRuleORM.id == rule_id)
            .values(
                times_used=MappingRuleORM.times_used + 1,
                successful_matches=MappingRuleORM.successful_matches + 1,
                last_used=datetime.now(timezone.utc),
            )
        )
        with self._db.write_session() as session:
            session.execute(stmt)
