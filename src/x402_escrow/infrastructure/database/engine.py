"""Database engine and session management for the event store.

Provides:
    - create_event_store_engine: build an engine for a given URL.
    - init_event_store / close_event_store: lifecycle hooks (lazy singleton
      configured from Settings), called by the app factory and the lifespan.

The escrow core is synchronous, so this uses the plain (non-async) engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from x402_escrow.config import get_settings
from x402_escrow.infrastructure.database.orm_models import Base
from x402_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from x402_escrow.config import Settings

logger = get_logger(__name__)

# Module-level singletons (initialized in init_event_store)
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def create_event_store_engine(database_url: str, echo: bool = False) -> Engine:
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    logger.info("database.engine_created", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: Engine, create_tables: bool = True) -> sessionmaker[Session]:
    """Bind a session factory to ``engine``, creating the schema if asked."""
    if create_tables:
        Base.metadata.create_all(engine)
        logger.info("database.tables_created")
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def init_event_store(settings: Settings | None = None) -> sessionmaker[Session]:
    """Get or create the process-wide session factory.

    Tables are created with ``create_all`` in development only; elsewhere
    the schema is expected to exist already.
    """
    global _engine, _session_factory
    if _session_factory is None:
        settings = settings or get_settings()
        _engine = create_event_store_engine(settings.database_url, settings.db_echo_sql)
        _session_factory = create_session_factory(_engine, create_tables=settings.is_development)
        if not settings.is_development:
            logger.info("database.skipping_create_all", reason="not in development mode")
    return _session_factory


def close_event_store() -> None:
    """Dispose of the engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
