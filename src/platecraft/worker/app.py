"""Celery application for the recipe image worker.

The worker consumes the ``GenerateRecipeImage`` queue one job at a time.
Jobs are acknowledged only after they finish, so a job interrupted by a
crash or a lost worker is redelivered rather than dropped.  The submission
ceiling (10 jobs per minute by default) is the task's ``rate_limit``.

Usage
-----
CLI (installed entry point)::

    platecraft-worker

Equivalent Celery invocation::

    celery -A platecraft.worker.app worker --concurrency=1 -Q GenerateRecipeImage
"""

from __future__ import annotations

import logging

from celery import Celery

from platecraft.core.config import config

logger = logging.getLogger(__name__)

celery_app = Celery(
    "platecraft",
    broker=config.redis_url,
    backend=config.redis_url,
    include=["platecraft.worker.tasks"],
)

celery_app.conf.update(
    task_default_queue=config.queue_name,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_concurrency=1,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)


def main() -> None:
    """Start a worker with concurrency 1 on the configured queue.

    This function is registered as the ``platecraft-worker`` console script
    in ``pyproject.toml``.
    """
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting worker on queue %s (rate limit %s).", config.queue_name, config.job_rate_limit)

    celery_app.worker_main(
        [
            "worker",
            f"--loglevel={config.log_level.upper()}",
            "--concurrency=1",
            "-Q",
            config.queue_name,
        ]
    )


if __name__ == "__main__":
    main()
