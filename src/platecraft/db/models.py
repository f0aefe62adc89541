"""SQLAlchemy models for Platecraft.

``GeneratedImage`` is owned by this service.  ``Recipe`` belongs to the
owning application's schema; only the columns the worker writes are mapped.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from platecraft.core.prompt_builder import IMAGE_STYLES

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """``DateTime`` that always reads back as timezone-aware UTC.

    Values are converted to UTC before they are stored.  Backends that drop the
    offset (SQLite) return naive values, which get ``timezone.utc`` reattached.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class GeneratedImage(Base):
    __tablename__ = "generated_images"

    id = Column(String(36), primary_key=True, default=new_id)

    # Ownership: every query is scoped to this column.
    owner_id = Column(String(64), nullable=False)

    # Informational link to the recipe the image was generated for.
    recipe_id = Column(String(36), nullable=True)

    image_url = Column(Text, nullable=False)
    storage_key = Column(Text, nullable=False)

    # Generation parameters
    prompt = Column(Text, nullable=False)
    negative_prompt = Column(Text, nullable=True)
    style = Column(
        Enum(*IMAGE_STYLES, name="image_style"),
        nullable=False,
        default="watercolor",
    )
    aspect_ratio = Column(String(16), nullable=False, default="1:1")
    prompt_version = Column(Integer, nullable=False)

    # Source data, kept for audit and reproducibility
    source_title = Column(String(200), nullable=True)
    source_category = Column(String(100), nullable=True)
    source_ingredients = Column(Text, nullable=True)  # JSON array

    file_size = Column(Integer, nullable=True)
    content_type = Column(String(64), nullable=False, default="image/png")

    created_at = Column(UTCDateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_generated_images_owner_created", "owner_id", "created_at"),
        Index("ix_generated_images_owner_recipe", "owner_id", "recipe_id"),
    )

    def __repr__(self) -> str:
        return f"<GeneratedImage id={self.id} owner={self.owner_id} style={self.style}>"


class Recipe(Base):
    """Recipe row of the owning application (partial mapping)."""

    __tablename__ = "recipes"

    id = Column(String(36), primary_key=True)
    hero_image_url = Column(Text, nullable=True)
    updated_at = Column(UTCDateTime(timezone=True), nullable=True)
