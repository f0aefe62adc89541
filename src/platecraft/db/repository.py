"""Owner-scoped data access helpers.

This module isolates the SQLAlchemy queries from the orchestrators so the
service layer can focus on sequencing and error policy while the queries stay
testable as small units.

The rules are deliberately strict:

- every read and delete of a ``GeneratedImage`` filters on ``owner_id``
- listings are reverse-chronological (newest first)
- a record owned by someone else is indistinguishable from a missing one

Callers own the session and its transaction; these helpers never commit
except where noted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from platecraft.db.models import GeneratedImage, Recipe, utcnow

logger = logging.getLogger(__name__)


def serialize_ingredients(ingredients: Sequence[str] | None) -> str | None:
    """Serialise an ingredient list for the audit column."""
    if ingredients is None:
        return None
    return json.dumps(list(ingredients))


def deserialize_ingredients(raw: str | None) -> list[str] | None:
    """Inverse of :func:`serialize_ingredients`; unreadable values become ``None``."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed source_ingredients value.")
        return None
    return value if isinstance(value, list) else None


def insert_image(session: Session, image: GeneratedImage) -> GeneratedImage:
    """Add *image* and commit.

    The commit is performed here so that server-assigned timestamps are final
    when the record is returned.
    """
    session.add(image)
    session.commit()
    return image


def get_image(session: Session, owner_id: str, image_id: str) -> GeneratedImage | None:
    """Return the image with *image_id* if it belongs to *owner_id*."""
    stmt = select(GeneratedImage).where(
        GeneratedImage.id == image_id,
        GeneratedImage.owner_id == owner_id,
    )
    return session.execute(stmt).scalars().first()


def list_images(
    session: Session,
    owner_id: str,
    *,
    limit: int,
    offset: int = 0,
    style: str | None = None,
    recipe_id: str | None = None,
) -> list[GeneratedImage]:
    """Return up to *limit* images for *owner_id*, newest first.

    Args:
        session: Active session.
        owner_id: Owner whose images are listed.
        limit: Maximum rows to return.
        offset: Rows to skip.
        style: Optional style filter.
        recipe_id: Optional recipe filter.
    """
    stmt = select(GeneratedImage).where(GeneratedImage.owner_id == owner_id)

    if style:
        stmt = stmt.where(GeneratedImage.style == style)
    if recipe_id:
        stmt = stmt.where(GeneratedImage.recipe_id == recipe_id)

    stmt = stmt.order_by(GeneratedImage.created_at.desc(), GeneratedImage.id.desc()).limit(limit).offset(offset)
    return list(session.execute(stmt).scalars().all())


def delete_image(session: Session, owner_id: str, image_id: str) -> bool:
    """Delete the owner's image row and commit.

    Returns:
        ``True`` if a row was deleted.
    """
    stmt = delete(GeneratedImage).where(
        GeneratedImage.id == image_id,
        GeneratedImage.owner_id == owner_id,
    )
    result = session.execute(stmt)
    session.commit()
    return result.rowcount > 0


def update_recipe_image(
    session: Session,
    recipe_id: str,
    image_url: str,
    *,
    now: datetime | None = None,
) -> bool:
    """Point a recipe's hero image at *image_url* and commit.

    Re-running with the same values rewrites the same row, so the update is
    safe under job redelivery.

    Returns:
        ``True`` if the recipe row exists and was updated.
    """
    stmt = (
        update(Recipe)
        .where(Recipe.id == recipe_id)
        .values(hero_image_url=image_url, updated_at=now or utcnow())
    )
    result = session.execute(stmt)
    session.commit()
    return result.rowcount > 0
