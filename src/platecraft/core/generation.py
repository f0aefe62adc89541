"""Image generation backends for Platecraft.

This module provides the generation clients that turn a compiled prompt into
raw image bytes.  Two backends share one logical contract:

- :class:`StabilityBackend` talks to the Stability AI SD3 REST API over
  HTTPS with a bearer credential (the SaaS backend used by the HTTP API).
- :class:`LocalAIBackend` talks to a self-hosted, OpenAI-images-compatible
  endpoint through the ``openai`` SDK (the backend used by the worker).

Both return a :class:`GeneratedImage` on success and raise a classified
:class:`~platecraft.core.errors.GenerationError` on failure, so orchestrators
never need to know which backend they are driving.

Error Classification
--------------------
Non-success HTTP statuses are mapped to a closed taxonomy by
:func:`~platecraft.core.errors.kind_for_status` (401, 402, 400, 429, other).
Network-level failures (timeouts, refused or reset connections) are reported
as ``transport-failure``, distinct from backend-reported errors, because they
are retryable while a 400/401/402 is not.  Every error keeps the backend
status code and the raw response body for diagnostics.

Response Shapes (Stability)
---------------------------
The SD3 endpoint answers with either raw image bytes or a JSON envelope whose
base64 image lives under one of two keys::

    {"image": "<b64>", ...}
    {"images": [{"base64": "<b64>"}, ...]}

The envelope is decoded as a tagged union of two pydantic models, tried left
to right.  A JSON body matching neither variant is an
``unexpected-response-shape`` error rather than a crash.

Usage
-----
::

    from platecraft.core.config import config
    from platecraft.core.generation import GenerationRequest, create_backend

    backend = create_backend("stability", config)
    result = backend.generate(
        GenerationRequest(prompt="watercolor illustration of ...", negative_prompt="...")
    )
    result.image_bytes, result.content_type
    backend.close()
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Any, Union

import httpx
import openai
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from platecraft.core.config import PlatecraftConfig
from platecraft.core.errors import GenerationError, GenerationErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """Parameters for a single image generation call.

    Attributes:
        prompt: Positive prompt.
        negative_prompt: Optional negative prompt.
        aspect_ratio: Aspect ratio understood by the SaaS backend.
        size: ``WIDTHxHEIGHT`` size understood by the self-hosted backend.
        steps: Optional diffusion step count (self-hosted backend only).
    """

    prompt: str
    negative_prompt: str | None = None
    aspect_ratio: str = "1:1"
    size: str = "1024x1024"
    steps: int | None = None


@dataclass(frozen=True)
class GeneratedImage:
    """Raw image produced by a backend."""

    image_bytes: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.image_bytes)


class GenerationBackend(ABC):
    """Abstract base class for generation backends.

    Subclasses wrap one remote service and translate its wire format and
    failure modes into :class:`GeneratedImage` / :class:`GenerationError`.
    """

    name: str = "base"

    @abstractmethod
    def generate(self, request: GenerationRequest) -> GeneratedImage:
        """Generate one image.

        Raises:
            GenerationError: On any backend or transport failure.
        """

    def close(self) -> None:
        """Release any pooled connections held by the backend."""


def _decode_base64(data: str, raw: Any) -> bytes:
    """Decode a base64 image, mapping malformed data to a shape error."""
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise GenerationError(GenerationErrorKind.UNEXPECTED_RESPONSE, details=raw) from exc


# ---------------------------------------------------------------------------
# Stability AI (SaaS, multipart HTTPS).
# ---------------------------------------------------------------------------


class _InlineImageEnvelope(BaseModel):
    """``{"image": "<b64>"}``"""

    image: str = Field(min_length=1)


class _Artifact(BaseModel):
    base64: str = Field(min_length=1)


class _ArtifactListEnvelope(BaseModel):
    """``{"images": [{"base64": "<b64>"}, ...]}``"""

    images: list[_Artifact] = Field(min_length=1)


_StabilityEnvelope = TypeAdapter(
    Annotated[
        Union[_InlineImageEnvelope, _ArtifactListEnvelope],
        Field(union_mode="left_to_right"),
    ]
)


def decode_stability_envelope(payload: Any) -> bytes:
    """Extract the image bytes from a Stability JSON envelope.

    Args:
        payload: Parsed JSON body.

    Returns:
        Decoded image bytes.

    Raises:
        GenerationError: ``unexpected-response-shape`` if the payload matches
            neither envelope variant or carries invalid base64.
    """
    try:
        envelope = _StabilityEnvelope.validate_python(payload)
    except PydanticValidationError as exc:
        raise GenerationError(
            GenerationErrorKind.UNEXPECTED_RESPONSE,
            backend_status=None,
            details=json.dumps(payload, default=str),
        ) from exc

    if isinstance(envelope, _InlineImageEnvelope):
        encoded = envelope.image
    else:
        encoded = envelope.images[0].base64
    return _decode_base64(encoded, raw=json.dumps(payload, default=str))


class StabilityBackend(GenerationBackend):
    """Stability AI SD3 client.

    Attributes:
        api_url: SD3 generation endpoint.
        output_format: Requested image format (``png``, ``jpeg`` or ``webp``).
    """

    name = "stability"

    def __init__(
        self,
        api_key: str,
        api_url: str,
        *,
        output_format: str = "png",
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            api_key: Stability bearer credential.
            api_url: SD3 generation endpoint URL.
            output_format: Image format requested from the backend.
            timeout: Transport timeout in seconds.
            client: Optional pre-built ``httpx.Client`` (used by tests to
                inject a mock transport).
        """
        self._api_key = api_key
        self.api_url = api_url
        self.output_format = output_format
        self._client = client or httpx.Client(timeout=timeout)

    def generate(self, request: GenerationRequest) -> GeneratedImage:
        form: dict[str, str] = {
            "prompt": request.prompt,
            "output_format": self.output_format,
            "aspect_ratio": request.aspect_ratio,
        }
        if request.negative_prompt:
            form["negative_prompt"] = request.negative_prompt

        logger.info(
            "Requesting image from Stability (aspect_ratio=%s, format=%s, prompt_len=%d).",
            request.aspect_ratio,
            self.output_format,
            len(request.prompt),
        )

        try:
            # The endpoint only accepts multipart/form-data; an empty file
            # part forces httpx to encode the form that way.
            response = self._client.post(
                self.api_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
                data=form,
                files={"none": ("", b"")},
            )
        except httpx.TransportError as exc:
            logger.warning("Stability transport failure: %s", exc)
            raise GenerationError(
                GenerationErrorKind.TRANSPORT_FAILURE, details=str(exc)
            ) from exc

        if not response.is_success:
            logger.warning("Stability returned HTTP %d.", response.status_code)
            raise GenerationError.from_status(response.status_code, details=response.text)

        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                payload = response.json()
            except ValueError as exc:
                raise GenerationError(
                    GenerationErrorKind.UNEXPECTED_RESPONSE,
                    backend_status=response.status_code,
                    details=response.text,
                ) from exc
            image_bytes = decode_stability_envelope(payload)
            content_type = f"image/{self.output_format}"
        else:
            image_bytes = response.content
            content_type = content_type.split(";", 1)[0].strip() or f"image/{self.output_format}"

        if not image_bytes:
            raise GenerationError(
                GenerationErrorKind.UNEXPECTED_RESPONSE,
                backend_status=response.status_code,
                details="empty image body",
            )

        logger.info("Stability image received (%d bytes, %s).", len(image_bytes), content_type)
        return GeneratedImage(image_bytes=image_bytes, content_type=content_type)

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# LocalAI (self-hosted, OpenAI images API).
# ---------------------------------------------------------------------------


def combine_prompts(prompt: str, negative_prompt: str | None) -> str:
    """Join prompts with the ``positive|negative`` convention LocalAI expects."""
    if negative_prompt:
        return f"{prompt}|{negative_prompt}"
    return prompt


class LocalAIBackend(GenerationBackend):
    """Self-hosted OpenAI-images-compatible client.

    Attributes:
        model: Model name served by the endpoint.
        default_steps: Step count used when a request does not specify one.
    """

    name = "localai"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        default_steps: int = 4,
        timeout: float = 120.0,
        client: openai.OpenAI | None = None,
    ) -> None:
        self.model = model
        self.default_steps = default_steps
        # Retries are left to the job queue, which redelivers failed jobs.
        self._client = client or openai.OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    def generate(self, request: GenerationRequest) -> GeneratedImage:
        full_prompt = combine_prompts(request.prompt, request.negative_prompt)
        steps = request.steps or self.default_steps

        logger.info(
            "Requesting image from LocalAI (model=%s, size=%s, steps=%d, prompt_len=%d).",
            self.model,
            request.size,
            steps,
            len(full_prompt),
        )

        try:
            response = self._client.images.generate(
                model=self.model,
                prompt=full_prompt,
                size=request.size,
                n=1,
                response_format="b64_json",
                extra_body={"step": steps},
            )
        except openai.APIConnectionError as exc:
            # APITimeoutError is a subclass of APIConnectionError.
            logger.warning("LocalAI transport failure: %s", exc)
            raise GenerationError(
                GenerationErrorKind.TRANSPORT_FAILURE, details=str(exc)
            ) from exc
        except openai.APIStatusError as exc:
            logger.warning("LocalAI returned HTTP %d.", exc.status_code)
            raise GenerationError.from_status(exc.status_code, details=exc.response.text) from exc

        data = response.data or []
        b64_image = data[0].b64_json if data else None
        if not b64_image:
            raise GenerationError(
                GenerationErrorKind.UNEXPECTED_RESPONSE,
                details="No image data returned from LocalAI",
            )

        image_bytes = _decode_base64(b64_image, raw="invalid base64 from LocalAI")
        logger.info("LocalAI image received (%d bytes).", len(image_bytes))
        return GeneratedImage(image_bytes=image_bytes, content_type="image/png")

    def close(self) -> None:
        self._client.close()


def create_backend(name: str, config: PlatecraftConfig) -> GenerationBackend:
    """Construct a generation backend by name.

    Args:
        name: ``"stability"`` or ``"localai"``.
        config: Configuration supplying credentials and endpoints.

    Returns:
        A ready-to-use :class:`GenerationBackend`.

    Raises:
        ValueError: If *name* is not a known backend.
    """
    if name == "stability":
        return StabilityBackend(
            api_key=config.stability_api_key,
            api_url=config.stability_api_url,
            output_format=config.stability_output_format,
            timeout=config.generation_timeout,
        )
    if name == "localai":
        return LocalAIBackend(
            base_url=config.localai_base_url,
            api_key=config.localai_api_key,
            model=config.localai_model,
            default_steps=config.localai_steps,
            timeout=config.generation_timeout,
        )
    raise ValueError(f"Unknown generation backend: {name}")
