"""Request orchestration for the HTTP API.

:class:`ImageService` owns the synchronous per-request sequence that turns a
validated :class:`~platecraft.api.models.GenerateRequest` into a stored,
addressable image::

    Received -> Validated -> PromptBuilt -> Generating -> Uploading
             -> Persisting -> Responded

Every transition is logged with the image id so one request can be followed
through the logs.  A failure at any stage is logged as ``Failed(<kind>)`` and
re-raised as a typed :class:`~platecraft.core.errors.PlatecraftError`.

Partial Failure
---------------
- A generation failure aborts before anything is uploaded.
- An upload failure aborts before anything is persisted.
- A database failure after a successful upload raises
  :class:`~platecraft.core.errors.PersistenceError`.  The uploaded object is
  removed on a best-effort basis; if that removal fails too the orphan is
  logged and left behind.

The service also implements the owner-scoped read and delete operations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from platecraft.api.models import (
    DeleteResponse,
    GenerateRequest,
    GenerateResponse,
    ImageDetail,
    ImageListResponse,
    ImageSummary,
    Pagination,
)
from platecraft.core.errors import GenerationError, NotFoundError, PersistenceError, PlatecraftError
from platecraft.core.generation import GenerationBackend, GenerationRequest
from platecraft.core.prompt_builder import PROMPT_SET_VERSION, RecipeData, build_prompt
from platecraft.core.storage import StoragePublisher, extension_for, generated_image_key
from platecraft.db import repository
from platecraft.db.models import GeneratedImage, new_id, utcnow

logger = logging.getLogger(__name__)


class RequestStage(str, Enum):
    """Lifecycle stages of a generation request."""

    RECEIVED = "Received"
    VALIDATED = "Validated"
    PROMPT_BUILT = "PromptBuilt"
    GENERATING = "Generating"
    UPLOADING = "Uploading"
    PERSISTING = "Persisting"
    RESPONDED = "Responded"


def _failure_kind(exc: PlatecraftError) -> str:
    if isinstance(exc, GenerationError):
        return exc.kind.value
    return type(exc).__name__


class ImageService:
    """Generate, list, fetch and delete images on behalf of an owner.

    Args:
        session_factory: Callable returning a new SQLAlchemy ``Session``.
        storage: Publisher for the object storage bucket.
        backend: Generation backend used for new images.
        aspect_ratio: Aspect ratio requested from the backend.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: StoragePublisher,
        backend: GenerationBackend,
        *,
        aspect_ratio: str = "1:1",
    ) -> None:
        self._session_factory = session_factory
        self.storage = storage
        self.backend = backend
        self.aspect_ratio = aspect_ratio

    def _stage(self, image_id: str, stage: RequestStage) -> None:
        logger.info("[%s] %s", image_id, stage.value)

    # -- Generation ---------------------------------------------------------

    def generate(self, owner_id: str, request: GenerateRequest) -> GenerateResponse:
        """Run the full generation sequence for *request*.

        Args:
            owner_id: Owner the new image belongs to.
            request: Validated request body.

        Returns:
            The created image summary.

        Raises:
            GenerationError: The backend failed; nothing was stored.
            StorageError: The upload failed; nothing was persisted.
            PersistenceError: The record could not be written.
        """
        image_id = new_id()
        self._stage(image_id, RequestStage.RECEIVED)
        # Body validation has already happened at the edge.
        self._stage(image_id, RequestStage.VALIDATED)

        try:
            return self._generate(image_id, owner_id, request)
        except PlatecraftError as exc:
            logger.warning("[%s] Failed(%s): %s", image_id, _failure_kind(exc), exc.message)
            raise

    def _generate(self, image_id: str, owner_id: str, request: GenerateRequest) -> GenerateResponse:
        recipe = RecipeData(
            title=request.title,
            category=request.category,
            ingredients=tuple(request.ingredients or ()),
        )
        prompts = build_prompt(recipe, request.style)
        self._stage(image_id, RequestStage.PROMPT_BUILT)

        self._stage(image_id, RequestStage.GENERATING)
        generated = self.backend.generate(
            GenerationRequest(
                prompt=prompts.positive,
                negative_prompt=prompts.negative,
                aspect_ratio=self.aspect_ratio,
            )
        )

        self._stage(image_id, RequestStage.UPLOADING)
        storage_key = generated_image_key(owner_id, image_id, extension_for(generated.content_type))
        image_url = self.storage.publish(storage_key, generated.image_bytes, generated.content_type)

        self._stage(image_id, RequestStage.PERSISTING)
        now = utcnow()
        record = GeneratedImage(
            id=image_id,
            owner_id=owner_id,
            recipe_id=str(request.recipeId) if request.recipeId else None,
            image_url=image_url,
            storage_key=storage_key,
            prompt=prompts.positive,
            negative_prompt=prompts.negative,
            style=request.style,
            aspect_ratio=self.aspect_ratio,
            prompt_version=PROMPT_SET_VERSION,
            source_title=request.title,
            source_category=request.category,
            source_ingredients=repository.serialize_ingredients(request.ingredients),
            file_size=generated.size,
            content_type=generated.content_type,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session_factory() as session:
                repository.insert_image(session, record)
        except SQLAlchemyError as exc:
            logger.exception("[%s] Failed to save image metadata.", image_id)
            if not self.storage.remove(storage_key):
                logger.error("[%s] Orphaned object left in storage: %s", image_id, storage_key)
            raise PersistenceError("Failed to save image metadata") from exc

        self._stage(image_id, RequestStage.RESPONDED)
        return GenerateResponse(
            id=image_id,
            imageUrl=image_url,
            style=request.style,
            prompt=prompts.positive,
            createdAt=now,
        )

    # -- Reads and deletes --------------------------------------------------

    def list_images(
        self,
        owner_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
        style: str | None = None,
        recipe_id: str | None = None,
    ) -> ImageListResponse:
        """List the owner's images, newest first.

        One extra row is fetched to decide ``hasMore`` without a count query.
        """
        try:
            with self._session_factory() as session:
                rows = repository.list_images(
                    session,
                    owner_id,
                    limit=limit + 1,
                    offset=offset,
                    style=style,
                    recipe_id=recipe_id,
                )
        except SQLAlchemyError as exc:
            logger.exception("Failed to list images for owner %s.", owner_id)
            raise PersistenceError("Failed to fetch images") from exc

        has_more = len(rows) > limit
        return ImageListResponse(
            images=[_to_summary(row) for row in rows[:limit]],
            pagination=Pagination(limit=limit, offset=offset, hasMore=has_more),
        )

    def get_image(self, owner_id: str, image_id: str) -> ImageDetail:
        """Return the full record for one of the owner's images.

        Raises:
            NotFoundError: If the image does not exist or belongs to another
                owner.
        """
        try:
            with self._session_factory() as session:
                row = repository.get_image(session, owner_id, image_id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to fetch image %s.", image_id)
            raise PersistenceError("Failed to fetch image") from exc

        if row is None:
            raise NotFoundError("Image not found")
        return _to_detail(row)

    def delete_image(self, owner_id: str, image_id: str) -> DeleteResponse:
        """Delete one of the owner's images from storage and the database.

        A storage failure is logged and does not prevent the database row
        from being removed.

        Raises:
            NotFoundError: If the image does not exist or belongs to another
                owner.
        """
        try:
            with self._session_factory() as session:
                row = repository.get_image(session, owner_id, image_id)
                if row is None:
                    raise NotFoundError("Image not found")

                if not self.storage.remove(row.storage_key):
                    logger.warning(
                        "Storage delete failed for %s; removing the record anyway.",
                        row.storage_key,
                    )

                repository.delete_image(session, owner_id, image_id)
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete image %s.", image_id)
            raise PersistenceError("Failed to delete image") from exc

        logger.info("Deleted image %s for owner %s.", image_id, owner_id)
        return DeleteResponse(success=True, deletedId=image_id)


def _to_summary(row: GeneratedImage) -> ImageSummary:
    return ImageSummary(
        id=row.id,
        imageUrl=row.image_url,
        style=row.style,
        sourceTitle=row.source_title,
        recipeId=row.recipe_id,
        createdAt=row.created_at,
    )


def _to_detail(row: GeneratedImage) -> ImageDetail:
    return ImageDetail(
        id=row.id,
        imageUrl=row.image_url,
        style=row.style,
        prompt=row.prompt,
        negativePrompt=row.negative_prompt,
        aspectRatio=row.aspect_ratio,
        promptVersion=row.prompt_version,
        sourceTitle=row.source_title,
        sourceCategory=row.source_category,
        sourceIngredients=repository.deserialize_ingredients(row.source_ingredients),
        recipeId=row.recipe_id,
        fileSize=row.file_size,
        contentType=row.content_type,
        createdAt=row.created_at,
        updatedAt=row.updated_at,
    )
