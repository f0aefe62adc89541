"""Post-processing of generated images with Pillow.

Generated images are cover-cropped to the target dimensions (scaled until
both sides fit, then centre-cropped) and recompressed into the configured
storage format.  The output is deterministic for a given input, size, format
and quality, so re-running a job produces the same stored artifact.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "webp": "image/webp",
    "jpeg": "image/jpeg",
    "png": "image/png",
}


@dataclass(frozen=True)
class ProcessedImage:
    """Recompressed image ready for upload."""

    image_bytes: bytes
    content_type: str
    extension: str


def content_type_for(image_format: str) -> str:
    """Return the MIME type for ``webp``, ``jpeg`` or ``png``."""
    try:
        return _CONTENT_TYPES[image_format]
    except KeyError:
        raise ValueError(f"Unsupported image format: {image_format}") from None


def process_image(
    data: bytes,
    *,
    width: int = 1024,
    height: int = 1024,
    quality: int = 85,
    image_format: str = "webp",
) -> ProcessedImage:
    """Resize, crop and recompress an image.

    Args:
        data: Encoded source image (any format Pillow can read).
        width: Target width in pixels.
        height: Target height in pixels.
        quality: Compression quality (1-100) for lossy formats.
        image_format: ``webp``, ``jpeg`` or ``png``.

    Returns:
        The recompressed :class:`ProcessedImage`.

    Raises:
        ValueError: If *image_format* is unsupported.
        PIL.UnidentifiedImageError: If *data* is not a decodable image.
    """
    content_type = content_type_for(image_format)

    logger.info("Processing image: %dx%d %s @ %d%%.", width, height, image_format, quality)

    with Image.open(io.BytesIO(data)) as source:
        source.load()
        fitted = ImageOps.fit(
            source,
            (width, height),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

    # JPEG has no alpha channel; WebP and PNG keep it if present.
    if image_format == "jpeg" and fitted.mode != "RGB":
        fitted = fitted.convert("RGB")
    elif fitted.mode not in ("RGB", "RGBA"):
        fitted = fitted.convert("RGBA" if "A" in fitted.getbands() else "RGB")

    buffer = io.BytesIO()
    if image_format == "webp":
        fitted.save(buffer, format="WEBP", quality=quality)
    elif image_format == "jpeg":
        fitted.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True)
    else:
        fitted.save(buffer, format="PNG", optimize=True, compress_level=9)

    output = buffer.getvalue()
    logger.info("Image processed: %d -> %d bytes.", len(data), len(output))
    return ProcessedImage(image_bytes=output, content_type=content_type, extension=image_format)
