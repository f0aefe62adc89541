"""Configuration management for Platecraft.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PLATECRAFT_ prefix,
so the API server and the queue worker can be deployed from the same code with
different environments.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PLATECRAFT_* prefix)
2. .env file in the working directory
3. Default values defined in PlatecraftConfig

Example .env file:
    PLATECRAFT_DATABASE_URL=postgresql+psycopg://app:secret@db/app
    PLATECRAFT_JWT_SECRET=super-secret-jwt-signing-key
    PLATECRAFT_STABILITY_API_KEY=sk-...
    PLATECRAFT_STORAGE_BUCKET=food-images
    PLATECRAFT_STORAGE_PUBLIC_URL=https://images.example.com

Global Configuration Instance
------------------------------
A global `config` instance is created at module import time and serves as the
default for the two entry points (``platecraft`` and ``platecraft-worker``).
Components never read it implicitly: the FastAPI app factory, the worker
context and every client take the configuration as an explicit argument.

Usage Example
-------------
    from platecraft.core.config import config

    print(config.database_url)
    print(config.image_dimensions)

Backend Selection
-----------------
Two generation backends are supported:
- ``stability``: Stability AI SD3 (synchronous multipart HTTPS, SaaS)
- ``localai``: a self-hosted OpenAI-images-compatible endpoint

``api_backend`` selects the backend used by the HTTP API and
``worker_backend`` the one used by the queue worker.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ImageFormat = Literal["webp", "jpeg", "png"]
BackendName = Literal["stability", "localai"]


class PlatecraftConfig(BaseSettings):
    """Main configuration for Platecraft.

    Values are loaded from environment variables with the PLATECRAFT_ prefix,
    with fallback to the defaults defined here.  Every field has a default so
    the application can be imported (and tested) without a populated
    environment; production deployments are expected to override at least
    the credentials, the database URL and the storage settings.

    Attributes
    ----------
    Server Settings:
        server_host : str
            Bind address for the uvicorn server
        server_port : int
            Port for the uvicorn server (1024-65535)
        cors_origins : list[str]
            Allowed CORS origins for the HTTP API
        log_level : str
            Root logging level for both entry points

    Database / Auth:
        database_url : str
            SQLAlchemy database URL
        jwt_secret : str
            HS256 secret used to verify bearer tokens
        jwt_algorithm : str
            Accepted JWT signing algorithm
        jwt_audience : str | None
            Expected ``aud`` claim; ``None`` disables audience checking

    Generation Backends:
        stability_api_key, stability_api_url, stability_output_format
        localai_base_url, localai_api_key, localai_model, localai_steps
        api_backend, worker_backend
        default_aspect_ratio : str
            Aspect ratio sent to the SaaS backend in API mode
        generation_timeout : float
            Transport timeout (seconds) for a single generation call

    Object Storage:
        storage_endpoint_url, storage_region, storage_access_key_id,
        storage_secret_access_key, storage_bucket, storage_public_url,
        storage_cache_control

    Queue / Worker:
        redis_url, queue_name, job_rate_limit, worker_style
        image_size, image_quality, image_format
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PLATECRAFT_",
        case_sensitive=False,
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8787,
        description="Server port",
        ge=1024,
        le=65535,
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Allowed CORS origins",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the API server and worker",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./platecraft.db",
        description="SQLAlchemy database URL",
    )

    # Authentication
    jwt_secret: str = Field(
        default="change-me",
        description="Secret used to verify HS256 bearer tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="Accepted JWT signing algorithm",
    )
    jwt_audience: str | None = Field(
        default="authenticated",
        description="Expected audience claim (None disables the check)",
    )

    # Stability AI (SaaS backend)
    stability_api_key: str = Field(
        default="",
        description="Bearer credential for the Stability AI API",
    )
    stability_api_url: str = Field(
        default="https://api.stability.ai/v2beta/stable-image/generate/sd3",
        description="Stability AI SD3 generation endpoint",
    )
    stability_output_format: ImageFormat = Field(
        default="png",
        description="Output format requested from Stability AI",
    )
    default_aspect_ratio: Literal["1:1", "16:9", "9:16", "4:3", "3:4"] = Field(
        default="1:1",
        description="Aspect ratio requested in API mode",
    )

    # LocalAI (self-hosted backend)
    localai_base_url: str = Field(
        default="http://localhost:8080/v1",
        description="Base URL of the OpenAI-compatible image endpoint",
    )
    localai_api_key: str = Field(
        default="sk-local",
        description="API key for the self-hosted endpoint",
    )
    localai_model: str = Field(
        default="stablediffusion",
        description="Model name served by the self-hosted endpoint",
    )
    localai_steps: int = Field(
        default=4,
        description="Diffusion steps requested from the self-hosted model",
        ge=1,
        le=150,
    )

    # Backend selection
    api_backend: BackendName = Field(
        default="stability",
        description="Generation backend used by the HTTP API",
    )
    worker_backend: BackendName = Field(
        default="localai",
        description="Generation backend used by the queue worker",
    )
    generation_timeout: float = Field(
        default=120.0,
        description="Transport timeout in seconds for a generation call",
        gt=0,
    )

    # Object storage (S3-compatible: R2, MinIO, S3)
    storage_endpoint_url: str | None = Field(
        default=None,
        description="S3-compatible endpoint URL (None for AWS S3)",
    )
    storage_region: str = Field(
        default="auto",
        description="Storage region (R2 uses 'auto')",
    )
    storage_access_key_id: str = Field(default="", description="Storage access key id")
    storage_secret_access_key: str = Field(default="", description="Storage secret key")
    storage_bucket: str = Field(
        default="food-images",
        description="Bucket that holds generated images",
    )
    storage_public_url: str = Field(
        default="http://localhost:9000/food-images",
        description="Public base URL that serves the bucket",
    )
    storage_cache_control: str = Field(
        default="public, max-age=31536000, immutable",
        description="Cache-Control header applied to uploaded images",
    )

    # Queue / worker
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used as Celery broker and result backend",
    )
    queue_name: str = Field(
        default="GenerateRecipeImage",
        description="Queue consumed by the worker",
    )
    job_rate_limit: str = Field(
        default="10/m",
        description="Celery task rate limit for recipe image jobs",
    )
    worker_style: Literal["watercolor", "pencil", "photo"] = Field(
        default="photo",
        description="Prompt style used for recipe hero images",
    )

    # Image post-processing (worker)
    image_size: str = Field(
        default="1024x1024",
        description="Generated and stored image size as WIDTHxHEIGHT",
    )
    image_quality: int = Field(
        default=85,
        description="Recompression quality",
        ge=1,
        le=100,
    )
    image_format: ImageFormat = Field(
        default="webp",
        description="Stored image format for recipe hero images",
    )

    @field_validator("image_size")
    @classmethod
    def _validate_image_size(cls, value: str) -> str:
        """Ensure ``image_size`` is of the form ``WIDTHxHEIGHT``."""
        width, sep, height = value.lower().partition("x")
        if not sep or not width.isdigit() or not height.isdigit():
            raise ValueError("image_size must look like '1024x1024'")
        if int(width) <= 0 or int(height) <= 0:
            raise ValueError("image_size dimensions must be positive")
        return f"{int(width)}x{int(height)}"

    @field_validator("storage_public_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        """Public URLs are built as ``{base}/{key}``, so drop a trailing slash."""
        return value.rstrip("/")

    @property
    def image_dimensions(self) -> tuple[int, int]:
        """``image_size`` parsed into a ``(width, height)`` tuple."""
        width, _, height = self.image_size.partition("x")
        return int(width), int(height)


# Global configuration instance
# Created when the module is imported; entry points pass it down explicitly.
config = PlatecraftConfig()
