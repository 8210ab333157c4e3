"""
Rule-store connection manager using a SQLAlchemy 2.0 engine.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """Manages the SQLAlchemy engine and session factory."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None

    def connect(self) -> None:
        """Create the engine and session factory."""
        kwargs: dict[str, Any] = {"echo": self._settings.debug}
        if not self._settings.is_sqlite:
            kwargs.update(
                pool_size=self._settings.db_pool_min,
                max_overflow=self._settings.db_pool_max - self._settings.db_pool_min,
                pool_pre_ping=True,
                pool_recycle=300,
            )
        self._engine = create_engine(self._settings.database_url, **kwargs)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info("database_connected", url=self._settings.database_url_safe_log)

    def disconnect(self) -> None:
        """Dispose of the engine and all connections."""
        if self._engine:
            self._engine.dispose()
            logger.info("database_disconnected")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("DatabaseManager not connected.")
        return self._engine

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Provide a read-only session (no commit)."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not connected.")
        with self._session_factory() as session:
            yield session

    @contextmanager
    def write_session(self) -> Iterator[Session]:
        """Provide a transactional session that auto-commits on success."""
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not connected.")
        with self._session_factory() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
