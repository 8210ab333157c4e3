"""
SQLAlchemy 2.0 ORM models for the mapping-rule store.
Column types stay portable so the same schema runs on PostgreSQL and SQLite.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


class MappingRuleORM(Base):
    __tablename__ = "data_mappings"
    __table_args__ = (
        Index("ix_data_mappings_field_level_active", "field_type", "scope_level", "active"),
        Index("ix_data_mappings_team_field", "scope_team_id", "field_type", "active"),
        Index("ix_data_mappings_priority", "priority"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    field_type: Mapped[str] = mapped_column(String(100), nullable=False)
    mapping_type: Mapped[str] = mapped_column(String(20), nullable=False)

    scope_level: Mapped[str] = mapped_column(String(20), nullable=False, default="global")
    scope_league: Mapped[Optional[str]] = mapped_column(String(100))
    scope_sport: Mapped[Optional[str]] = mapped_column(String(50))
    scope_team_id: Mapped[Optional[str]] = mapped_column(String(100))
    scope_player_id: Mapped[Optional[str]] = mapped_column(String(100))

    primary_value: Mapped[Optional[str]] = mapped_column(Text)
    equivalents: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    tolerance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tolerance_type: Mapped[str] = mapped_column(String(20), nullable=False, default="absolute")
    ignore_reason: Mapped[Optional[str]] = mapped_column(Text)
    case_sensitive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_scraped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_api: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_oracle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    times_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_matches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
