"""Platecraft: FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :class:`~platecraft.core.config.PlatecraftConfig`
  (environment variables with the ``PLATECRAFT_`` prefix).
- **Generation, storage and persistence** are wired once per process in the
  lifespan handler and held on ``app.state.service`` as an
  :class:`~platecraft.api.service.ImageService`.
- **Authentication** is a bearer JWT verified by
  :func:`~platecraft.api.auth.get_current_user`; every image route is scoped
  to the caller's owner id.
- **Errors** are raised as :class:`~platecraft.core.errors.PlatecraftError`
  subclasses and rendered by a single exception handler as
  ``{"detail": ..., "details": ...}``.

Route handlers are plain ``def`` functions: the generation backend and the
database session are blocking, so FastAPI runs them in its threadpool.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/health``                   Liveness probe
GET       ``/``                         Service information
POST      ``/images/generate``          Generate and store a food image
GET       ``/images``                   Paginated, owner-scoped listing
GET       ``/images/{id}``              Single image record
DELETE    ``/images/{id}``              Delete image and record
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    platecraft

Direct invocation::

    python -m platecraft.api.main
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from platecraft import __version__
from platecraft.api.auth import AuthenticatedUser, get_current_user
from platecraft.api.models import (
    DeleteResponse,
    GenerateRequest,
    GenerateResponse,
    ImageDetail,
    ImageListResponse,
)
from platecraft.api.service import ImageService
from platecraft.core.config import PlatecraftConfig, config
from platecraft.core.errors import PlatecraftError, ValidationError
from platecraft.core.generation import create_backend
from platecraft.core.prompt_builder import ImageStyle
from platecraft.core.storage import StoragePublisher
from platecraft.db.session import create_db_engine, create_session_factory, init_db

logger = logging.getLogger(__name__)

SERVICE_NAME = "platecraft"

# ---------------------------------------------------------------------------
# Application lifecycle: service wiring and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Builds the database engine, the storage publisher and the generation
        backend from ``app.state.config`` and stores an
        :class:`ImageService` on ``app.state``.  When a service was injected
        through :func:`create_app` nothing is built.

    On shutdown:
        Closes the backend's connection pool and disposes of the engine.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    if getattr(app.state, "service", None) is not None:
        yield
        return

    # --- Startup -----------------------------------------------------------
    cfg: PlatecraftConfig = app.state.config
    engine = create_db_engine(cfg.database_url)
    init_db(engine)
    backend = create_backend(cfg.api_backend, cfg)
    app.state.service = ImageService(
        create_session_factory(engine),
        StoragePublisher.from_config(cfg),
        backend,
        aspect_ratio=cfg.default_aspect_ratio,
    )
    logger.info("ImageService initialised (backend=%s, bucket=%s).", backend.name, cfg.storage_bucket)

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    backend.close()
    engine.dispose()
    app.state.service = None
    logger.info("ImageService released on shutdown.")


# ---------------------------------------------------------------------------
# Exception handlers.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, detail: str, details=None) -> JSONResponse:
    body = {"detail": detail}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def _handle_platecraft_error(request: Request, exc: PlatecraftError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message, exc.details)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError("Invalid request", details=exc.errors())
    return _error_response(error.status_code, error.message, error.details)


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal server error")


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_service(request: Request) -> ImageService:
    return request.app.state.service


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    app_config: PlatecraftConfig | None = None,
    service: ImageService | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        app_config: Configuration to use; defaults to the global ``config``.
        service: Pre-built service.  When given, the lifespan handler does not
            build one (used by tests).

    Returns:
        The configured application.
    """
    cfg = app_config or config

    app = FastAPI(
        title="Platecraft",
        description="AI food image generation for recipes.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(PlatecraftError, _handle_platecraft_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict:
        """Liveness probe; no authentication."""
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/")
    def index() -> dict:
        """Return service name, version and the available endpoints."""
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "health": "GET /health",
                "generate": "POST /images/generate",
                "list": "GET /images",
                "get": "GET /images/{id}",
                "delete": "DELETE /images/{id}",
            },
        }

    @app.post("/images/generate", response_model=GenerateResponse)
    def generate_image(
        req: GenerateRequest,
        user: AuthenticatedUser = Depends(get_current_user),
        service: ImageService = Depends(get_service),
    ) -> GenerateResponse:
        """Generate a food image for a recipe and store it.

        Raises:
            GenerationError: Mapped to 400/402/429/502/503 by kind.
            StorageError: 502 when the upload fails.
            PersistenceError: 500 when the record cannot be written.
        """
        return service.generate(user.owner_id, req)

    @app.get("/images", response_model=ImageListResponse)
    def list_images(
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
        style: ImageStyle | None = Query(default=None),
        recipeId: uuid.UUID | None = Query(default=None),
        user: AuthenticatedUser = Depends(get_current_user),
        service: ImageService = Depends(get_service),
    ) -> ImageListResponse:
        """List the caller's images, newest first."""
        return service.list_images(
            user.owner_id,
            limit=limit,
            offset=offset,
            style=style,
            recipe_id=str(recipeId) if recipeId else None,
        )

    @app.get("/images/{image_id}", response_model=ImageDetail)
    def get_image(
        image_id: uuid.UUID,
        user: AuthenticatedUser = Depends(get_current_user),
        service: ImageService = Depends(get_service),
    ) -> ImageDetail:
        """Return one of the caller's images.

        Raises:
            NotFoundError: 404 if the image is missing or not the caller's.
        """
        return service.get_image(user.owner_id, str(image_id))

    @app.delete("/images/{image_id}", response_model=DeleteResponse)
    def delete_image(
        image_id: uuid.UUID,
        user: AuthenticatedUser = Depends(get_current_user),
        service: ImageService = Depends(get_service),
    ) -> DeleteResponse:
        """Delete one of the caller's images from storage and the database."""
        return service.delete_image(user.owner_id, str(image_id))


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~platecraft.core.config.config`
    (``PLATECRAFT_SERVER_HOST``, ``PLATECRAFT_SERVER_PORT`` and
    ``PLATECRAFT_LOG_LEVEL``).  Defaults to ``0.0.0.0:8787``.

    This function is registered as the ``platecraft`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "platecraft.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
