"""Core functionality for food image generation.

- **config.py**: Configuration management using Pydantic Settings
- **prompt_builder.py**: Recipe metadata to style-specific prompts
- **generation.py**: Stability AI and LocalAI generation backends
- **image_processor.py**: Pillow resize/crop/recompress
- **storage.py**: S3-compatible object storage publishing
- **errors.py**: Error taxonomy shared across the API and the worker

The core never talks HTTP to callers or to the job queue; those transports
live in :mod:`platecraft.api` and :mod:`platecraft.worker`.
"""

from platecraft.core.config import PlatecraftConfig, config
from platecraft.core.errors import GenerationError, GenerationErrorKind, PlatecraftError
from platecraft.core.generation import GenerationBackend, GenerationRequest, create_backend
from platecraft.core.prompt_builder import PromptPair, RecipeData, build_prompt
from platecraft.core.storage import StoragePublisher

__all__ = [
    "PlatecraftConfig",
    "config",
    "GenerationError",
    "GenerationErrorKind",
    "PlatecraftError",
    "GenerationBackend",
    "GenerationRequest",
    "create_backend",
    "PromptPair",
    "RecipeData",
    "build_prompt",
    "StoragePublisher",
]
