"""Celery tasks for recipe image generation."""

from __future__ import annotations

import logging
from typing import Any

from celery.result import AsyncResult
from celery.signals import worker_process_init, worker_process_shutdown

from platecraft.core.config import PlatecraftConfig, config
from platecraft.worker.app import celery_app
from platecraft.worker.context import WorkerContext
from platecraft.worker.pipeline import RecipeImageJob

logger = logging.getLogger(__name__)


class RecipeImageTask(celery_app.Task):
    """Task base that owns the worker process's :class:`WorkerContext`.

    Celery keeps a single instance of each task per process, so the context
    lives exactly as long as the process.  It is opened from the
    ``worker_process_init`` signal, or on the first job when no such signal
    fires (solo and threaded pools), and closed on ``worker_process_shutdown``.
    """

    _context: WorkerContext | None = None

    def open_context(self, worker_config: PlatecraftConfig | None = None) -> WorkerContext:
        """Build a fresh context, releasing any existing one."""
        self.close_context()
        self._context = WorkerContext.build(worker_config or config)
        return self._context

    def close_context(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None

    @property
    def worker_context(self) -> WorkerContext:
        if self._context is None:
            return self.open_context()
        return self._context


@celery_app.task(
    bind=True,
    base=RecipeImageTask,
    name="platecraft.generate_recipe_image",
    acks_late=True,
    rate_limit=config.job_rate_limit,
)
def generate_recipe_image(self, payload: dict[str, Any]) -> dict:
    """Generate and link the hero image for one recipe.

    Progress is published as ``PROGRESS`` state with ``{"progress": n}``.
    Failures propagate so the queue records them and may redeliver.
    """
    job = RecipeImageJob.model_validate(payload)
    job_id = self.request.id
    logger.info("=== Processing job %s for recipe %s ===", job_id, job.recipeId)

    def report_progress(progress: int) -> None:
        self.update_state(state="PROGRESS", meta={"progress": progress})

    try:
        result = self.worker_context.pipeline.run(job, report_progress)
    except Exception:
        logger.exception("Job %s for recipe %s failed.", job_id, job.recipeId)
        raise

    logger.info("=== Job %s completed: %s ===", job_id, result["imageUrl"])
    return result


@worker_process_init.connect
def _open_worker_context(**kwargs) -> None:
    generate_recipe_image.open_context(config)


@worker_process_shutdown.connect
def _close_worker_context(**kwargs) -> None:
    generate_recipe_image.close_context()


def submit_recipe_image_job(job: RecipeImageJob | dict[str, Any]) -> AsyncResult:
    """Enqueue a job and return its handle.

    Raises:
        pydantic.ValidationError: If *job* is a dict that is not a valid
            payload.
    """
    if not isinstance(job, RecipeImageJob):
        job = RecipeImageJob.model_validate(job)
    return generate_recipe_image.apply_async(
        args=[job.model_dump()],
        queue=celery_app.conf.task_default_queue,
    )
