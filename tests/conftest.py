"""Shared pytest fixtures for Platecraft tests.

Nothing here touches the network: object storage is an in-memory fake of the
boto3 S3 client, the generation backend is a fake that returns a small PNG,
and the database is in-memory SQLite shared across sessions.
"""

from __future__ import annotations

import io
import time
from collections.abc import Generator

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from jose import jwt
from PIL import Image

from platecraft.api.main import create_app
from platecraft.api.service import ImageService
from platecraft.core.config import PlatecraftConfig
from platecraft.core.errors import GenerationError
from platecraft.core.generation import GeneratedImage, GenerationBackend, GenerationRequest
from platecraft.core.storage import StoragePublisher
from platecraft.db.session import create_db_engine, create_session_factory, init_db

JWT_SECRET = "test-jwt-secret"
PUBLIC_BASE = "https://images.test"
BUCKET = "test-bucket"


# ---------------------------------------------------------------------------
# Test doubles.
# ---------------------------------------------------------------------------


class FakeS3Client:
    """In-memory stand-in for the subset of the boto3 S3 client we use.

    Set ``fail_put`` / ``fail_delete`` to make the next calls raise a
    ``ClientError`` the way botocore does.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict] = {}
        self.put_calls: list[dict] = []
        self.delete_calls: list[dict] = []
        self.fail_put = False
        self.fail_delete = False

    def put_object(self, **kwargs) -> dict:
        self.put_calls.append(kwargs)
        if self.fail_put:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = kwargs
        return {"ETag": '"fake"'}

    def delete_object(self, **kwargs) -> dict:
        self.delete_calls.append(kwargs)
        if self.fail_delete:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "DeleteObject")
        self.objects.pop((kwargs["Bucket"], kwargs["Key"]), None)
        return {}

    def keys(self) -> list[str]:
        return [key for _, key in self.objects]


class FakeBackend(GenerationBackend):
    """Generation backend returning fixed bytes, or raising ``error`` if set."""

    name = "fake"

    def __init__(self, image_bytes: bytes, content_type: str = "image/png") -> None:
        self.image_bytes = image_bytes
        self.content_type = content_type
        self.error: GenerationError | None = None
        self.requests: list[GenerationRequest] = []
        self.closed = False

    def generate(self, request: GenerationRequest) -> GeneratedImage:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return GeneratedImage(image_bytes=self.image_bytes, content_type=self.content_type)

    def close(self) -> None:
        self.closed = True


def make_png(width: int = 96, height: int = 64, color: tuple[int, int, int] = (200, 80, 40)) -> bytes:
    """Encode a solid-colour RGB PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Configuration.
# ---------------------------------------------------------------------------


@pytest.fixture
def test_config() -> PlatecraftConfig:
    """Create a test configuration that ignores the environment's .env file.

    Returns:
        PlatecraftConfig instance for testing
    """
    return PlatecraftConfig(
        _env_file=None,
        database_url="sqlite://",
        jwt_secret=JWT_SECRET,
        jwt_algorithm="HS256",
        jwt_audience="authenticated",
        stability_api_key="sk-test",
        storage_bucket=BUCKET,
        storage_public_url=PUBLIC_BASE,
        image_size="64x64",
        image_quality=80,
        image_format="webp",
        worker_style="photo",
        cors_origins=["http://localhost:3000"],
    )


# ---------------------------------------------------------------------------
# Persistence.
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    """In-memory SQLite engine with both tables created."""
    db_engine = create_db_engine("sqlite://")
    init_db(db_engine, include_recipes=True)
    try:
        yield db_engine
    finally:
        db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


# ---------------------------------------------------------------------------
# Storage and generation.
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(fake_s3: FakeS3Client) -> StoragePublisher:
    return StoragePublisher(fake_s3, BUCKET, PUBLIC_BASE)


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def fake_backend(png_bytes: bytes) -> FakeBackend:
    return FakeBackend(png_bytes)


# ---------------------------------------------------------------------------
# Authentication.
# ---------------------------------------------------------------------------


@pytest.fixture
def make_token():
    """Factory producing signed bearer tokens.

    Returns:
        Callable ``(sub="user-1", household_id=None, **overrides) -> str``
    """

    def _make(
        sub: str | None = "user-1",
        household_id: str | None = None,
        secret: str = JWT_SECRET,
        expires_in: int = 3600,
        **overrides,
    ) -> str:
        now = int(time.time())
        claims: dict = {"aud": "authenticated", "iat": now, "exp": now + expires_in}
        if sub is not None:
            claims["sub"] = sub
        if household_id is not None:
            claims["app_metadata"] = {"household_id": household_id}
        claims.update(overrides)
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    """Authorization header for owner ``household-1``."""
    return {"Authorization": f"Bearer {make_token(household_id='household-1')}"}


# ---------------------------------------------------------------------------
# API.
# ---------------------------------------------------------------------------


@pytest.fixture
def image_service(session_factory, storage, fake_backend) -> ImageService:
    return ImageService(session_factory, storage, fake_backend)


@pytest.fixture
def test_client(test_config, image_service) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client backed by the fakes above.

    Yields:
        TestClient with the lifespan running
    """
    app = create_app(test_config, service=image_service)
    with TestClient(app) as client:
        yield client
