"""Persistence layer: SQLAlchemy models, engine setup and repositories."""

from platecraft.db.models import Base, GeneratedImage, Recipe
from platecraft.db.session import create_db_engine, create_session_factory, init_db

__all__ = [
    "Base",
    "GeneratedImage",
    "Recipe",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
