"""Integration tests for platecraft.api.main: FastAPI REST API endpoints.

All tests use the FastAPI TestClient with an in-memory database, a fake S3
client and either a fake generation backend or the real Stability client
over an ``httpx.MockTransport``.  Tests cover every endpoint:

- ``GET /health`` and ``GET /``: unauthenticated service endpoints.
- ``POST /images/generate``: generation, validation and error mapping.
- ``GET /images``: owner-scoped, filtered, newest-first listing.
- ``GET /images/{id}``: single record.
- ``DELETE /images/{id}``: deletion, including storage failure.
"""

from __future__ import annotations

import base64
import uuid
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from platecraft.api.main import create_app
from platecraft.api.service import ImageService
from platecraft.core.errors import GenerationError, GenerationErrorKind
from platecraft.core.generation import StabilityBackend

SALMON = {
    "title": "Grilled Salmon with Asparagus",
    "ingredients": ["salmon", "asparagus", "lemon", "olive oil", "garlic"],
    "style": "watercolor",
}


# ---------------------------------------------------------------------------
# Unauthenticated endpoints.
# ---------------------------------------------------------------------------


class TestServiceEndpoints:
    """Test GET /health and GET /."""

    def test_health(self, test_client):
        """Health needs no token."""
        resp = test_client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "service": "platecraft"}

    def test_index(self, test_client):
        """The index lists the service version and endpoints."""
        resp = test_client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["service"] == "platecraft"
        assert "version" in data
        assert data["endpoints"]["generate"] == "POST /images/generate"

    def test_cors_preflight(self, test_client):
        """Configured origins are allowed."""
        resp = test_client.options(
            "/images",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


# ---------------------------------------------------------------------------
# Authentication.
# ---------------------------------------------------------------------------


class TestAuthentication:
    """Every image route requires a valid bearer token."""

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/images"),
            ("get", f"/images/{uuid.uuid4()}"),
            ("delete", f"/images/{uuid.uuid4()}"),
        ],
    )
    def test_missing_token(self, test_client, method, path):
        resp = getattr(test_client, method)(path)
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing or invalid Authorization header"

    def test_missing_token_on_generate(self, test_client, fake_backend):
        """An unauthenticated request never reaches the backend."""
        resp = test_client.post("/images/generate", json=SALMON)
        assert resp.status_code == 401
        assert fake_backend.requests == []

    def test_invalid_token(self, test_client, make_token):
        headers = {"Authorization": f"Bearer {make_token(secret='wrong')}"}
        resp = test_client.get("/images", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid or expired token"


# ---------------------------------------------------------------------------
# Generation.
# ---------------------------------------------------------------------------


class TestGenerate:
    """Test POST /images/generate."""

    def test_salmon_watercolor(self, test_client, auth_headers, fake_backend, fake_s3):
        """The compiled prompt features exactly the first three ingredients."""
        resp = test_client.post("/images/generate", json=SALMON, headers=auth_headers)

        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"id", "imageUrl", "style", "prompt", "createdAt"}
        assert data["style"] == "watercolor"
        assert "watercolor illustration of Grilled Salmon with Asparagus" in data["prompt"]
        assert "featuring salmon, asparagus, lemon" in data["prompt"]
        assert "olive oil" not in data["prompt"]
        assert "garlic" not in data["prompt"]

        (request,) = fake_backend.requests
        assert "photorealistic" in request.negative_prompt

        key = f"household-1/generated/{data['id']}.png"
        assert fake_s3.keys() == [key]
        assert data["imageUrl"] == f"https://images.test/{key}"

    def test_generated_image_is_fetchable(self, test_client, auth_headers):
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()

        resp = test_client.get(f"/images/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        detail = resp.json()
        assert detail["imageUrl"] == created["imageUrl"]
        assert detail["sourceIngredients"] == SALMON["ingredients"]
        assert detail["negativePrompt"].startswith("photorealistic")
        assert detail["promptVersion"] == 1

    def test_owner_defaults_to_user(self, test_client, make_token, fake_s3):
        """Without a household claim images are keyed by the user id."""
        headers = {"Authorization": f"Bearer {make_token(sub='solo-user')}"}
        data = test_client.post("/images/generate", json={"title": "Toast"}, headers=headers).json()
        assert fake_s3.keys() == [f"solo-user/generated/{data['id']}.png"]

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"title": ""},
            {"title": "x" * 201},
            {"title": "Soup", "style": "oil"},
            {"title": "Soup", "ingredients": ["i"] * 21},
            {"title": "Soup", "recipeId": "not-a-uuid"},
        ],
    )
    def test_validation_errors(self, test_client, auth_headers, fake_backend, body):
        """Invalid bodies are rejected with 400 before any side effect."""
        resp = test_client.post("/images/generate", json=body, headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid request"
        assert fake_backend.requests == []

    def test_malformed_json(self, test_client, auth_headers):
        resp = test_client.post(
            "/images/generate",
            content=b"{not json",
            headers={**auth_headers, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (GenerationErrorKind.INVALID_INPUT, 400),
            (GenerationErrorKind.INSUFFICIENT_CREDIT, 402),
            (GenerationErrorKind.RATE_LIMITED, 429),
            (GenerationErrorKind.UNAUTHORIZED, 502),
            (GenerationErrorKind.BACKEND_UNAVAILABLE, 502),
            (GenerationErrorKind.UNEXPECTED_RESPONSE, 502),
            (GenerationErrorKind.TRANSPORT_FAILURE, 503),
        ],
    )
    def test_generation_error_mapping(self, test_client, auth_headers, fake_backend, fake_s3, kind, status):
        """Each generation failure kind maps to its HTTP status; nothing is stored."""
        fake_backend.error = GenerationError(kind, details="upstream body")

        resp = test_client.post("/images/generate", json=SALMON, headers=auth_headers)

        assert resp.status_code == status
        assert resp.json()["details"] == "upstream body"
        assert fake_s3.put_calls == []

    def test_storage_failure(self, test_client, auth_headers, fake_s3):
        fake_s3.fail_put = True
        resp = test_client.post("/images/generate", json=SALMON, headers=auth_headers)
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Failed to store generated image"

    def test_persistence_failure(self, test_client, auth_headers, fake_s3):
        """A failed insert is a 500 and the upload is rolled back."""
        error = OperationalError("INSERT", {}, Exception("disk full"))
        with patch("platecraft.db.repository.insert_image", side_effect=error):
            resp = test_client.post("/images/generate", json=SALMON, headers=auth_headers)

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to save image metadata"}
        assert fake_s3.keys() == []


class TestGenerateWithStability:
    """Drive the real Stability client through a mock transport."""

    @pytest.fixture
    def stability_client(self, test_config, session_factory, storage):
        def _build(handler) -> TestClient:
            backend = StabilityBackend(
                "sk-test",
                test_config.stability_api_url,
                client=httpx.Client(transport=httpx.MockTransport(handler)),
            )
            service = ImageService(session_factory, storage, backend)
            return TestClient(create_app(test_config, service=service))

        return _build

    def test_json_envelope(self, stability_client, auth_headers, fake_s3):
        image = base64.b64encode(b"png-bytes").decode()
        client = stability_client(lambda request: httpx.Response(200, json={"images": [{"base64": image}]}))

        resp = client.post("/images/generate", json=SALMON, headers=auth_headers)

        assert resp.status_code == 200
        (key,) = fake_s3.keys()
        assert fake_s3.objects[("test-bucket", key)]["Body"] == b"png-bytes"

    def test_backend_401(self, stability_client, auth_headers):
        """A rejected service credential is a gateway error, not a caller 401."""
        client = stability_client(lambda request: httpx.Response(401, json={"message": "bad key"}))
        resp = client.post("/images/generate", json=SALMON, headers=auth_headers)
        assert resp.status_code == 502
        assert "bad key" in resp.json()["details"]

    def test_backend_402(self, stability_client, auth_headers):
        client = stability_client(lambda request: httpx.Response(402, json={"message": "no credits"}))
        resp = client.post("/images/generate", json=SALMON, headers=auth_headers)
        assert resp.status_code == 402
        assert resp.json()["detail"] == "Insufficient image generation credits"

    def test_malformed_envelope(self, stability_client, auth_headers, fake_s3):
        client = stability_client(lambda request: httpx.Response(200, json={"artifacts": "?"}))
        resp = client.post("/images/generate", json=SALMON, headers=auth_headers)
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Unexpected response format from image generation backend"
        assert fake_s3.put_calls == []


# ---------------------------------------------------------------------------
# Listing.
# ---------------------------------------------------------------------------


class TestListImages:
    """Test GET /images."""

    def test_style_filter_owner_scoped_newest_first(self, test_client, auth_headers, make_token):
        """Only the caller's photo images are listed, newest first."""
        other = {"Authorization": f"Bearer {make_token(sub='user-2', household_id='household-2')}"}
        mine = []
        for style in ("photo", "watercolor", "photo", "pencil", "photo"):
            data = test_client.post(
                "/images/generate", json={"title": f"{style} dish", "style": style}, headers=auth_headers
            ).json()
            if style == "photo":
                mine.append(data["id"])
        test_client.post("/images/generate", json={"title": "theirs", "style": "photo"}, headers=other)

        resp = test_client.get("/images", params={"style": "photo"}, headers=auth_headers)

        assert resp.status_code == 200
        images = resp.json()["images"]
        assert {image["id"] for image in images} == set(mine)
        assert all(image["style"] == "photo" for image in images)
        created = [image["createdAt"] for image in images]
        assert created == sorted(created, reverse=True)

    def test_pagination(self, test_client, auth_headers):
        for title in ("a", "b", "c"):
            test_client.post("/images/generate", json={"title": title}, headers=auth_headers)

        first = test_client.get("/images", params={"limit": 2}, headers=auth_headers).json()
        assert len(first["images"]) == 2
        assert first["pagination"] == {"limit": 2, "offset": 0, "hasMore": True}

        second = test_client.get("/images", params={"limit": 2, "offset": 2}, headers=auth_headers).json()
        assert len(second["images"]) == 1
        assert second["pagination"]["hasMore"] is False

    def test_recipe_filter(self, test_client, auth_headers):
        recipe_id = str(uuid.uuid4())
        linked = test_client.post(
            "/images/generate", json={"title": "a", "recipeId": recipe_id}, headers=auth_headers
        ).json()
        test_client.post("/images/generate", json={"title": "b"}, headers=auth_headers)

        images = test_client.get("/images", params={"recipeId": recipe_id}, headers=auth_headers).json()["images"]
        assert [image["id"] for image in images] == [linked["id"]]
        assert images[0]["recipeId"] == recipe_id

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}, {"style": "oil"}])
    def test_invalid_query(self, test_client, auth_headers, params):
        resp = test_client.get("/images", params=params, headers=auth_headers)
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Single image and deletion.
# ---------------------------------------------------------------------------


class TestImageById:
    """Test GET and DELETE /images/{id}."""

    def test_malformed_id(self, test_client, auth_headers):
        assert test_client.get("/images/not-a-uuid", headers=auth_headers).status_code == 400
        assert test_client.delete("/images/not-a-uuid", headers=auth_headers).status_code == 400

    def test_unknown_id(self, test_client, auth_headers):
        resp = test_client.get(f"/images/{uuid.uuid4()}", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Image not found"

    def test_created_at_matches_across_endpoints(self, test_client, auth_headers):
        """Generate, fetch and list report the same createdAt for one record."""
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()

        fetched = test_client.get(f"/images/{created['id']}", headers=auth_headers).json()
        listed = test_client.get("/images", headers=auth_headers).json()["images"]

        assert fetched["createdAt"] == created["createdAt"]
        assert [image["createdAt"] for image in listed] == [created["createdAt"]]
        assert created["createdAt"].endswith(("Z", "+00:00"))

    def test_foreign_image_is_not_found(self, test_client, auth_headers, make_token):
        """Another owner's image cannot be read or deleted."""
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()
        other = {"Authorization": f"Bearer {make_token(sub='user-2', household_id='household-2')}"}

        assert test_client.get(f"/images/{created['id']}", headers=other).status_code == 404
        assert test_client.delete(f"/images/{created['id']}", headers=other).status_code == 404
        assert test_client.get(f"/images/{created['id']}", headers=auth_headers).status_code == 200

    def test_delete_then_fetch(self, test_client, auth_headers, fake_s3):
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()

        resp = test_client.delete(f"/images/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deletedId": created["id"]}
        assert fake_s3.keys() == []
        assert test_client.get(f"/images/{created['id']}", headers=auth_headers).status_code == 404

    def test_delete_with_storage_failure(self, test_client, auth_headers, fake_s3):
        """A storage delete error does not block removal of the record."""
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()
        fake_s3.fail_delete = True

        resp = test_client.delete(f"/images/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert test_client.get(f"/images/{created['id']}", headers=auth_headers).status_code == 404

    def test_delete_with_unexpected_storage_error(self, test_client, auth_headers, fake_s3):
        """Any storage client exception still lets the record be removed."""
        created = test_client.post("/images/generate", json=SALMON, headers=auth_headers).json()

        with patch.object(fake_s3, "delete_object", side_effect=RuntimeError("connection reset")):
            resp = test_client.delete(f"/images/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["deletedId"] == created["id"]
        assert test_client.get(f"/images/{created['id']}", headers=auth_headers).status_code == 404
