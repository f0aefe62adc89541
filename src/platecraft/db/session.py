"""Engine and session factory construction.

Engines are built explicitly by the API lifespan and the worker context and
disposed when those shut down; nothing here is created at import time.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from platecraft.db.models import Base, GeneratedImage, Recipe

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine for *database_url*.

    In-memory SQLite URLs share a single connection so that every session
    sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,  # detect connections dropped by the server
        pool_recycle=3600,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine, *, include_recipes: bool = False) -> None:
    """Create any missing tables.

    Args:
        engine: Target engine.
        include_recipes: Also create the ``recipes`` table.  It belongs to the
            owning application, so this is only useful for local setups and
            tests.
    """
    tables = [GeneratedImage.__table__]
    if include_recipes:
        tables.append(Recipe.__table__)
    Base.metadata.create_all(bind=engine, tables=tables)
    logger.info("Database schema ensured on %s.", engine.url.render_as_string(hide_password=True))
