# api/v1/schemas/plan.py
from __future__ import annotations
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from core.models.recipe import MealSlot
from .recipe import RecipeOut


class GeneratePlanIn(BaseModel):
    days: int = Field(..., ge=1, le=31)
    dietary: list[str] = []
    allergies: list[str] = []
    cuisine: list[str] = []
    proteins: list[str] = Field(default_factory=list, examples=[["chicken", "fish"]])


class MissingSlot(BaseModel):
    day: int
    slot: MealSlot

    model_config = ConfigDict(from_attributes=True)


class MealPlanOut(BaseModel):
    id: int
    name: str
    quota_class: str
    start_date: datetime
    end_date: datetime
    days_requested: int
    days_generated: int
    expiration_date: datetime | None
    is_expired: bool
    status: Literal["active", "expiring-soon", "expired"] = "active"

    model_config = ConfigDict(from_attributes=True)


class GeneratePlanOut(BaseModel):
    status: Literal["success", "partial"]
    plan: MealPlanOut
    recipes: list[RecipeOut]
    missing: list[MissingSlot]


class MealPlanDetailOut(BaseModel):
    plan: MealPlanOut
    recipes: list[RecipeOut]
    missing: list[MissingSlot]


class RegenerateSlotIn(BaseModel):
    day: int = Field(..., ge=1)
    slot: MealSlot
    # None → reuse the constraints the plan was generated with
    dietary: list[str] | None = None
    allergies: list[str] | None = None
    cuisine: list[str] | None = None
    proteins: list[str] | None = None
