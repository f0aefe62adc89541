"""Object storage publishing for generated images.

Images are stored in an S3-compatible bucket (Cloudflare R2, MinIO or AWS
S3) and served from a public base URL.  The public URL of an object is always
``{public_base}/{key}``, so it can be recomputed from the stored key alone.

Key Conventions
---------------
========  =====================================  ==============================
Mode      Key                                    Builder
========  =====================================  ==============================
API       ``{ownerId}/generated/{imageId}.{ext}``  :func:`generated_image_key`
Worker    ``recipes/{recipeId}/hero.{ext}``        :func:`recipe_hero_key`
========  =====================================  ==============================

Both are deterministic from their inputs and collision-free across owners,
images and recipes.  The worker key depends only on the recipe, which makes
re-running a job overwrite the previous artifact instead of duplicating it.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from platecraft.core.config import PlatecraftConfig
from platecraft.core.errors import StorageError

logger = logging.getLogger(__name__)


def generated_image_key(owner_id: str, image_id: str, extension: str) -> str:
    """Storage key for an image generated through the HTTP API."""
    return f"{owner_id}/generated/{image_id}.{extension}"


def recipe_hero_key(recipe_id: str, extension: str) -> str:
    """Storage key for a recipe hero image generated by the worker."""
    return f"recipes/{recipe_id}/hero.{extension}"


def extension_for(content_type: str) -> str:
    """Derive a file extension from an ``image/*`` content type."""
    subtype = content_type.split(";", 1)[0].split("/", 1)[-1].strip().lower()
    if subtype in ("jpg", "jpeg", "pjpeg"):
        return "jpeg"
    return subtype or "png"


def create_s3_client(config: PlatecraftConfig) -> Any:
    """Build a boto3 S3 client from configuration.

    Args:
        config: Configuration providing endpoint, region and credentials.

    Returns:
        A ``botocore`` S3 client.
    """
    return boto3.client(
        "s3",
        endpoint_url=config.storage_endpoint_url,
        region_name=config.storage_region,
        aws_access_key_id=config.storage_access_key_id or None,
        aws_secret_access_key=config.storage_secret_access_key or None,
        config=Config(signature_version="s3v4"),
    )


class StoragePublisher:
    """Uploads and removes images in a bucket and resolves their public URLs.

    Attributes:
        bucket: Target bucket name.
        public_base: Public base URL without a trailing slash.
        cache_control: ``Cache-Control`` header applied to uploads.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        public_base: str,
        *,
        cache_control: str = "public, max-age=31536000, immutable",
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.public_base = public_base.rstrip("/")
        self.cache_control = cache_control

    @classmethod
    def from_config(cls, config: PlatecraftConfig, client: Any | None = None) -> StoragePublisher:
        """Create a publisher using the storage settings in *config*."""
        return cls(
            client if client is not None else create_s3_client(config),
            bucket=config.storage_bucket,
            public_base=config.storage_public_url,
            cache_control=config.storage_cache_control,
        )

    def public_url(self, key: str) -> str:
        """Return the public URL for *key*."""
        return f"{self.public_base}/{key}"

    def publish(self, key: str, data: bytes, content_type: str) -> str:
        """Upload *data* under *key* and return its public URL.

        Uploading to an existing key overwrites the object.

        Raises:
            StorageError: If the upload fails.
        """
        logger.info("Uploading %d bytes to %s/%s.", len(data), self.bucket, key)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=self.cache_control,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Upload of %s failed: %s", key, exc)
            raise StorageError("Failed to store generated image", details=str(exc)) from exc

        url = self.public_url(key)
        logger.info("Uploaded successfully: %s", url)
        return url

    def remove(self, key: str) -> bool:
        """Delete the object stored under *key*.

        Any failure is logged and reported through the return value rather than
        raised, so callers can continue with database cleanup.

        Returns:
            ``True`` if the delete request succeeded, ``False`` otherwise.
        """
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            logger.error("Failed to delete %s from storage: %s", key, exc)
            return False
        logger.info("Deleted %s from storage.", key)
        return True
