"""Platecraft - AI-generated food imagery from recipe metadata."""

__version__ = "1.0.0"

from platecraft.core.config import PlatecraftConfig, config
from platecraft.core.prompt_builder import PromptPair, RecipeData, build_prompt

__all__ = [
    "PlatecraftConfig",
    "config",
    "PromptPair",
    "RecipeData",
    "build_prompt",
]
