"""Pydantic request and response models for the Platecraft API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation and serialisation.  Field names follow
the camelCase wire format used by the client applications.

Models
------
GenerateRequest
    Payload for ``POST /images/generate``.
GenerateResponse, ImageSummary, ImageDetail, ImageListResponse,
DeleteResponse
    Response bodies.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from platecraft.core.prompt_builder import ImageStyle


class GenerateRequest(BaseModel):
    """Request body for the ``POST /images/generate`` endpoint.

    Attributes:
        title: Recipe title (1-200 characters).
        category: Optional recipe category (at most 100 characters).
        ingredients: Optional ingredient list (at most 20 items).
        style: Art style; defaults to ``watercolor``.
        recipeId: Optional UUID of the recipe the image belongs to.
    """

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Recipe title.",
    )
    category: str | None = Field(
        default=None,
        max_length=100,
        description="Recipe category, used for plating inference in photo style.",
    )
    ingredients: list[str] | None = Field(
        default=None,
        max_length=20,
        description="Ingredients in recipe order; the first three are featured.",
    )
    style: ImageStyle = Field(
        default="watercolor",
        description="Art style: 'watercolor', 'pencil' or 'photo'.",
    )
    recipeId: uuid.UUID | None = Field(
        default=None,
        description="Optional recipe UUID to link the image to.",
    )

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value


class GenerateResponse(BaseModel):
    """Response body for a successful generation."""

    id: str
    imageUrl: str
    style: ImageStyle
    prompt: str
    createdAt: datetime


class ImageSummary(BaseModel):
    """One entry of an image listing."""

    id: str
    imageUrl: str
    style: ImageStyle
    sourceTitle: str | None = None
    recipeId: str | None = None
    createdAt: datetime


class Pagination(BaseModel):
    limit: int
    offset: int
    hasMore: bool


class ImageListResponse(BaseModel):
    """Response body for ``GET /images``."""

    images: list[ImageSummary]
    pagination: Pagination


class ImageDetail(BaseModel):
    """Full image record returned by ``GET /images/{id}``."""

    id: str
    imageUrl: str
    style: ImageStyle
    prompt: str
    negativePrompt: str | None = None
    aspectRatio: str
    promptVersion: int
    sourceTitle: str | None = None
    sourceCategory: str | None = None
    sourceIngredients: list[str] | None = None
    recipeId: str | None = None
    fileSize: int | None = None
    contentType: str
    createdAt: datetime
    updatedAt: datetime


class DeleteResponse(BaseModel):
    success: bool
    deletedId: str
