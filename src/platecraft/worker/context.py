"""Per-process resources for the queue worker.

A :class:`WorkerContext` bundles the database engine, the generation backend
and the :class:`~platecraft.worker.pipeline.RecipeImagePipeline` built from
them.  The task base class in :mod:`platecraft.worker.tasks` owns one per
worker process: it is built when the process starts (or on the first job when
the pool does not fork) and released on shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from platecraft.core.config import PlatecraftConfig
from platecraft.core.generation import GenerationBackend, create_backend
from platecraft.core.storage import StoragePublisher
from platecraft.db.session import create_db_engine, create_session_factory
from platecraft.worker.pipeline import RecipeImagePipeline

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    engine: Engine
    backend: GenerationBackend
    pipeline: RecipeImagePipeline

    @classmethod
    def build(cls, worker_config: PlatecraftConfig) -> WorkerContext:
        """Create all worker resources from *worker_config*."""
        engine = create_db_engine(worker_config.database_url)
        backend = create_backend(worker_config.worker_backend, worker_config)
        pipeline = RecipeImagePipeline.from_config(
            worker_config,
            create_session_factory(engine),
            StoragePublisher.from_config(worker_config),
            backend,
        )
        logger.info(
            "Worker context ready (backend=%s, style=%s, size=%s, format=%s).",
            backend.name,
            pipeline.style,
            pipeline.size,
            pipeline.image_format,
        )
        return cls(engine=engine, backend=backend, pipeline=pipeline)

    def close(self) -> None:
        self.backend.close()
        self.engine.dispose()
        logger.info("Worker context released.")
