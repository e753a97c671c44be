"""Re-export individual schema modules for easy imports."""

from .recipe import IngredientOut, RecipeOut
from .plan import (
    GeneratePlanIn,
    GeneratePlanOut,
    MealPlanDetailOut,
    MealPlanOut,
    MissingSlot,
    RegenerateSlotIn,
)

__all__ = [
    "IngredientOut",
    "RecipeOut",
    "GeneratePlanIn",
    "GeneratePlanOut",
    "MealPlanDetailOut",
    "MealPlanOut",
    "MissingSlot",
    "RegenerateSlotIn",
]
