"""
Database connection and session management.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all tables."""

    pass


def create_db_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    settings = get_settings()
    url = database_url or settings.database_url

    kwargs = {"echo": settings.database_echo if echo is None else echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["connect_args"] = {"application_name": "payflow_engine", "connect_timeout": 30}

    return create_engine(url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the engine."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_db_engine()
        _session_factory = create_session_factory(_engine)
    return _session_factory


def get_engine() -> Engine:
    """Get the process-wide engine."""
    get_session_factory()
    return _engine


def init_db(engine: Engine) -> None:
    """Create all tables."""
    from . import db_models  # noqa: F401  registers the tables on Base.metadata

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
