from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# only these three slots are valid
MealSlot = Literal["breakfast", "lunch", "dinner"]
MEAL_SLOTS: tuple[MealSlot, ...] = ("breakfast", "lunch", "dinner")


class QuotaClass(str, Enum):
    free = "free"
    premium = "premium"


class Ingredient(BaseModel):
    name: str
    amount: float | None = None
    unit: str | None = None


class Nutrition(BaseModel):
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0


class CandidateRecipe(BaseModel):
    """
    A recipe as returned by the synthesizer.

    Drafts carry no identity; they only get an id once persisted as a
    `TemporaryRecipe` row.
    """

    name: str
    description: str = "No description available"
    meal_type: str = ""
    prep_time: int = 0
    cook_time: int = 0
    servings: int = 2
    ingredients: list[Ingredient] = []
    instructions: list[str] = []
    tags: list[str] = []
    nutrition: Nutrition = Nutrition()
    complexity: int = 1
    image_url: str | None = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("prep_time", "cook_time", mode="before")
    @classmethod
    def _non_negative(cls, v):
        try:
            return max(0, int(float(v)))
        except (TypeError, ValueError):
            return 0

    @field_validator("servings", mode="before")
    @classmethod
    def _at_least_one(cls, v):
        try:
            return max(1, int(float(v)))
        except (TypeError, ValueError):
            return 2

    @field_validator("complexity", mode="before")
    @classmethod
    def _clamp_complexity(cls, v):
        try:
            return max(1, min(3, int(float(v))))
        except (TypeError, ValueError):
            return 1


class Constraints(BaseModel):
    dietary: list[str] = []
    allergies: list[str] = []
    cuisine: list[str] = []
    proteins: list[str] = []

    @field_validator("dietary", "allergies", "cuisine", "proteins", mode="after")
    @classmethod
    def _drop_blanks(cls, v: list[str]) -> list[str]:
        return [s.strip() for s in v if s and s.strip()]


class GenerationRequest(BaseModel):
    owner_id: int
    days: int = Field(..., ge=1)
    quota_class: QuotaClass = QuotaClass.free
    constraints: Constraints = Constraints()


class GenerationTask(BaseModel):
    """One (day, slot) cell of the batch grid; identity is the pair itself."""

    day: int
    slot: MealSlot

    model_config = ConfigDict(frozen=True)
