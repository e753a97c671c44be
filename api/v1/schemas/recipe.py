from __future__ import annotations
from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field

from config import settings


class IngredientOut(BaseModel):
    name: str
    amount: float | None = None
    unit: str | None = None


class RecipeOut(BaseModel):
    id: int
    name: str
    description: str | None
    meal_plan_id: int | None = None
    day_index: int | None = None
    meal_slot: str | None = None
    prep_time: int
    cook_time: int
    servings: int
    ingredients: list[IngredientOut]
    instructions: list[str]
    tags: list[str]
    nutrition: dict
    complexity: int
    image_url: str | None = None
    permanent_url: str | None = None
    favorited: bool
    favorites_count: int
    expires_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_image(self) -> str:
        """Stable image once materialized, transient one until then, else the fallback."""
        return self.permanent_url or self.image_url or settings.fallback_image_url
