"""Tests for platecraft.core.config: configuration management.

Tests cover:
- Default values for the main configuration fields.
- Environment variable overrides via the PLATECRAFT_ prefix.
- Pydantic validation constraints (port range, image size, quality).
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from platecraft.core.config import PlatecraftConfig


class TestConfigDefaults:
    """Verify that PlatecraftConfig provides sensible defaults."""

    def test_default_server_port(self, monkeypatch):
        """Default server port should be 8787."""
        monkeypatch.delenv("PLATECRAFT_SERVER_PORT", raising=False)
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.server_port == 8787

    def test_default_backends(self, monkeypatch):
        """The API uses Stability and the worker uses LocalAI by default."""
        monkeypatch.delenv("PLATECRAFT_API_BACKEND", raising=False)
        monkeypatch.delenv("PLATECRAFT_WORKER_BACKEND", raising=False)
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.api_backend == "stability"
        assert cfg.worker_backend == "localai"

    def test_default_queue_settings(self, monkeypatch):
        """Jobs go to GenerateRecipeImage at 10 per minute."""
        monkeypatch.delenv("PLATECRAFT_QUEUE_NAME", raising=False)
        monkeypatch.delenv("PLATECRAFT_JOB_RATE_LIMIT", raising=False)
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.queue_name == "GenerateRecipeImage"
        assert cfg.job_rate_limit == "10/m"

    def test_default_image_settings(self, monkeypatch):
        """Worker images are 1024px WebP at quality 85 in photo style."""
        for name in ("IMAGE_SIZE", "IMAGE_QUALITY", "IMAGE_FORMAT", "WORKER_STYLE"):
            monkeypatch.delenv(f"PLATECRAFT_{name}", raising=False)
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.image_dimensions == (1024, 1024)
        assert cfg.image_quality == 85
        assert cfg.image_format == "webp"
        assert cfg.worker_style == "photo"


class TestConfigEnvironment:
    """Environment variables override defaults."""

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PLATECRAFT_STORAGE_BUCKET", "other-bucket")
        monkeypatch.setenv("PLATECRAFT_IMAGE_QUALITY", "60")
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.storage_bucket == "other-bucket"
        assert cfg.image_quality == 60

    def test_env_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("platecraft_queue_name", "custom-queue")
        cfg = PlatecraftConfig(_env_file=None)
        assert cfg.queue_name == "custom-queue"


class TestConfigValidation:
    """Verify validation constraints."""

    def test_image_size_parsed(self):
        cfg = PlatecraftConfig(_env_file=None, image_size="768X512")
        assert cfg.image_size == "768x512"
        assert cfg.image_dimensions == (768, 512)

    @pytest.mark.parametrize("size", ["1024", "axb", "1024x", "0x512", "-1x5"])
    def test_image_size_rejected(self, size):
        with pytest.raises(ValidationError):
            PlatecraftConfig(_env_file=None, image_size=size)

    @pytest.mark.parametrize("quality", [0, 101])
    def test_image_quality_range(self, quality):
        with pytest.raises(ValidationError):
            PlatecraftConfig(_env_file=None, image_quality=quality)

    def test_port_range(self):
        with pytest.raises(ValidationError):
            PlatecraftConfig(_env_file=None, server_port=80)

    def test_unknown_image_format(self):
        with pytest.raises(ValidationError):
            PlatecraftConfig(_env_file=None, image_format="gif")

    def test_public_url_trailing_slash(self):
        cfg = PlatecraftConfig(_env_file=None, storage_public_url="https://cdn.test/")
        assert cfg.storage_public_url == "https://cdn.test"
