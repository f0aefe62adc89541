"""Style-specific prompt compilation for recipe food images.

The prompt system turns unstructured recipe metadata (title, category,
ingredients) into a positive and a negative prompt for one of three art
styles.  The transformation is pure and deterministic: the same recipe and
style always produce byte-identical prompt strings.

Clause Tables
-------------
Each style owns a fixed, ordered list of descriptive clauses.  The title and
the optional ingredient clause are interpolated into the first two slots and
the remaining clauses are appended verbatim.  Empty clauses are dropped and
the survivors are joined with ``", "``.

The tables are versioned through :data:`PROMPT_SET_VERSION`.  The version is
recorded on every generated image so a stored prompt can always be traced
back to the wording that produced it.  Any change to a clause below must bump
the version.

Structure (photo style)::

    professional food photography of {title},
    featuring {first three ingredients},      <- omitted when none
    {plating style inferred from category},
    on white ceramic plate,
    ...

Plating Inference
-----------------
Only the photo style uses the recipe category.  The lower-cased category is
checked against an ordered list of substring rules and the first match wins,
because a category such as ``"healthy breakfast"`` matches more than one rule.

Usage
-----
::

    prompts = build_prompt(
        RecipeData(title="Grilled Salmon", ingredients=["salmon", "lemon"]),
        style="watercolor",
    )
    prompts.positive   # "watercolor illustration of Grilled Salmon, featuring ..."
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, get_args

ImageStyle = Literal["watercolor", "pencil", "photo"]

IMAGE_STYLES: tuple[str, ...] = get_args(ImageStyle)
DEFAULT_STYLE: ImageStyle = "watercolor"

# Bump whenever any clause, negative list or plating phrase changes.
PROMPT_SET_VERSION = 1

# Maximum number of ingredients mentioned in the "featuring" clause.
MAX_FEATURED_INGREDIENTS = 3


@dataclass(frozen=True)
class RecipeData:
    """Recipe metadata consumed by the prompt builder.

    Attributes:
        title: Recipe title (required, 1-200 characters; validated upstream).
        category: Optional free-text category such as ``"Sunday Breakfast"``.
        ingredients: Optional ingredient names in recipe order.
    """

    title: str
    category: str | None = None
    ingredients: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class PromptPair:
    """Positive and negative prompt strings for one generation."""

    positive: str
    negative: str


# ---------------------------------------------------------------------------
# Negative prompt lists.
# Illustrated styles reject photorealism and rendering artefacts; the photo
# style rejects illustration, people and exposure defects.
# ---------------------------------------------------------------------------

_ILLUSTRATION_NEGATIVE: tuple[str, ...] = (
    "photorealistic, 3d render, CGI, plastic, glossy",
    "neon, oversaturated, high contrast, harsh shadows, HDR",
    "text, logo, watermark, signature",
    "blurry, low detail, messy background",
)

_PHOTO_NEGATIVE: tuple[str, ...] = (
    "illustration, drawing, painting, cartoon, sketch, watercolor",
    "artificial, fake, low quality, blurry",
    "text, logo, watermark",
    "hands, people, utensils in frame",
    "overexposed, underexposed, harsh shadows",
    "messy, cluttered, unappetizing",
)

# ---------------------------------------------------------------------------
# Positive clause tables (everything after the subject and ingredient slots).
# ---------------------------------------------------------------------------

_WATERCOLOR_CLAUSES: tuple[str, ...] = (
    "hand-painted, transparent washes, subtle pigment granulation",
    "soft edges, minimal ink linework, realistic proportions",
    "gentle cast shadow, clean white paper background",
    "fine art print, high detail, calm natural color palette",
    "studio scan look",
)

_PENCIL_CLAUSES: tuple[str, ...] = (
    "fine pencil texture, soft watercolor shading",
    "clean white background, subtle shadow",
    "crisp edges, minimal palette",
    "product illustration style, high detail",
    "no background clutter",
)

_PHOTO_CLAUSES: tuple[str, ...] = (
    "on white ceramic plate",
    "soft natural lighting, window light",
    "shallow depth of field, f/2.8, 50mm lens",
    "appetizing, fresh, vibrant colors",
    "food magazine quality, clean composition",
    "4K, high resolution",
)

_SUBJECT_TEMPLATES: dict[str, str] = {
    "watercolor": "watercolor illustration of {title}",
    "pencil": "colored pencil and watercolor wash illustration of {title}",
    "photo": "professional food photography of {title}",
}

# ---------------------------------------------------------------------------
# Plating inference rules, evaluated in order; first match wins.
# ---------------------------------------------------------------------------

DEFAULT_PLATING = "elegant plating, restaurant quality"

_PLATING_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("breakfast",), "rustic breakfast plating, morning light"),
    (("dessert", "sweet"), "elegant dessert plating, garnished"),
    (("salad",), "fresh, colorful salad presentation"),
    (("keto", "low-carb", "healthy"), "modern healthy plating, clean presentation"),
    (("soup", "stew"), "rustic bowl presentation, steam rising"),
    (("appetizer", "snack"), "stylish appetizer plating, shareable presentation"),
)


def plating_style(category: str | None) -> str:
    """Infer a plating phrase from a recipe category.

    Args:
        category: Free-text category, or ``None``.

    Returns:
        The phrase of the first matching rule, or :data:`DEFAULT_PLATING`.
    """
    if not category:
        return DEFAULT_PLATING

    lowered = category.lower()
    for needles, phrase in _PLATING_RULES:
        if any(needle in lowered for needle in needles):
            return phrase
    return DEFAULT_PLATING


def featured_ingredients(ingredients: Sequence[str] | None) -> str:
    """Return the first :data:`MAX_FEATURED_INGREDIENTS` ingredients joined by ``", "``.

    Returns an empty string when there are no ingredients, which callers use
    to drop the "featuring" clause entirely.
    """
    if not ingredients:
        return ""
    return ", ".join(list(ingredients)[:MAX_FEATURED_INGREDIENTS])


def _join(clauses: Sequence[str]) -> str:
    return ", ".join(clause for clause in clauses if clause)


def build_prompt(recipe: RecipeData, style: str = DEFAULT_STYLE) -> PromptPair:
    """Compile the positive and negative prompts for a recipe.

    Args:
        recipe: Recipe metadata.  Missing optional fields are omitted from
            the prompt rather than treated as errors.
        style: One of :data:`IMAGE_STYLES`.  Unrecognised values fall back to
            :data:`DEFAULT_STYLE` so an unknown style never reaches a backend.

    Returns:
        A :class:`PromptPair` with the compiled prompt strings.
    """
    if style not in IMAGE_STYLES:
        style = DEFAULT_STYLE

    ingredients = featured_ingredients(recipe.ingredients)
    featuring = f"featuring {ingredients}" if ingredients else ""
    subject = _SUBJECT_TEMPLATES[style].format(title=recipe.title)

    if style == "photo":
        positive = _join(
            [subject, featuring, plating_style(recipe.category), *_PHOTO_CLAUSES]
        )
        return PromptPair(positive=positive, negative=_join(_PHOTO_NEGATIVE))

    clauses = _WATERCOLOR_CLAUSES if style == "watercolor" else _PENCIL_CLAUSES
    positive = _join([subject, featuring, *clauses])
    return PromptPair(positive=positive, negative=_join(_ILLUSTRATION_NEGATIVE))
