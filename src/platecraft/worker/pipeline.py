"""Recipe hero-image pipeline run by the queue worker.

:class:`RecipeImagePipeline` performs one job end to end and reports progress
at fixed checkpoints:

========  =====================================================
Progress  Stage
========  =====================================================
10        build the prompt
20        generate the raw image
60        cover-crop and recompress
80        publish to ``recipes/{recipeId}/hero.{format}``
90        point ``recipes.hero_image_url`` at the new URL
100       complete
========  =====================================================

Any exception aborts the job and propagates to the queue, which owns retry
and redelivery.  Re-running a job overwrites the same storage key and
rewrites the same recipe row, so redelivery is harmless.

The pipeline is independent of Celery; :mod:`platecraft.worker.tasks` adapts
it to a task and forwards progress to the result backend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from platecraft.core.config import PlatecraftConfig
from platecraft.core.generation import GenerationBackend, GenerationRequest
from platecraft.core.image_processor import process_image
from platecraft.core.prompt_builder import ImageStyle, RecipeData, build_prompt
from platecraft.core.storage import StoragePublisher, recipe_hero_key
from platecraft.db.repository import update_recipe_image

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class RecipeImageJob(BaseModel):
    """Payload of a ``GenerateRecipeImage`` job."""

    recipeId: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    category: str | None = None
    ingredients: list[str] = Field(default_factory=list)


def _ignore_progress(progress: int) -> None:
    pass


class RecipeImagePipeline:
    """Generate, post-process, publish and link a recipe hero image.

    Args:
        session_factory: Callable returning a new SQLAlchemy ``Session``.
        storage: Publisher for the object storage bucket.
        backend: Generation backend.
        style: Art style used for every job.
        width: Output width in pixels.
        height: Output height in pixels.
        quality: Compression quality for lossy formats.
        image_format: Stored image format.
        steps: Optional diffusion step count passed to the backend.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: StoragePublisher,
        backend: GenerationBackend,
        *,
        style: ImageStyle = "photo",
        width: int = 1024,
        height: int = 1024,
        quality: int = 85,
        image_format: str = "webp",
        steps: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.storage = storage
        self.backend = backend
        self.style = style
        self.width = width
        self.height = height
        self.quality = quality
        self.image_format = image_format
        self.steps = steps

    @classmethod
    def from_config(
        cls,
        config: PlatecraftConfig,
        session_factory: Callable[[], Session],
        storage: StoragePublisher,
        backend: GenerationBackend,
    ) -> RecipeImagePipeline:
        """Create a pipeline using the image settings in *config*."""
        width, height = config.image_dimensions
        return cls(
            session_factory,
            storage,
            backend,
            style=config.worker_style,
            width=width,
            height=height,
            quality=config.image_quality,
            image_format=config.image_format,
        )

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"

    def run(self, job: RecipeImageJob, report_progress: ProgressCallback = _ignore_progress) -> dict:
        """Run *job* to completion.

        Args:
            job: Validated job payload.
            report_progress: Called with 10, 20, 60, 80, 90 and 100 as the
                corresponding stage starts.

        Returns:
            ``{"imageUrl": <public url>}``.
        """
        recipe_id = job.recipeId

        report_progress(10)
        prompts = build_prompt(
            RecipeData(title=job.title, category=job.category, ingredients=tuple(job.ingredients)),
            self.style,
        )
        logger.info("[recipe %s] Prompt built (%s): %s", recipe_id, self.style, prompts.positive)

        report_progress(20)
        generated = self.backend.generate(
            GenerationRequest(
                prompt=prompts.positive,
                negative_prompt=prompts.negative,
                size=self.size,
                steps=self.steps,
            )
        )
        logger.info("[recipe %s] Image generated: %d bytes.", recipe_id, generated.size)

        report_progress(60)
        processed = process_image(
            generated.image_bytes,
            width=self.width,
            height=self.height,
            quality=self.quality,
            image_format=self.image_format,
        )

        report_progress(80)
        key = recipe_hero_key(recipe_id, processed.extension)
        image_url = self.storage.publish(key, processed.image_bytes, processed.content_type)

        report_progress(90)
        with self._session_factory() as session:
            updated = update_recipe_image(session, recipe_id, image_url)
        if updated:
            logger.info("[recipe %s] Hero image updated.", recipe_id)
        else:
            logger.warning("[recipe %s] Recipe not found; hero image not linked.", recipe_id)

        report_progress(100)
        return {"imageUrl": image_url}
