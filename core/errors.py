"""
core/errors.py
────────────────────────────────────────────────────────────────────────
Error taxonomy shared by the generation batch and the recipe lifecycle.

  • Synthesis errors   → fatal (abort batch) vs retryable (absorbed)
  • Lifecycle errors   → surfaced to the caller as 4xx outcomes
  • Quota / plan errors → surfaced to the caller as 4xx outcomes, including
    a new plan requested while the previous one is still live

Image pipeline failures have no class here: they never leave the pipeline.
"""
from __future__ import annotations


# ───────── synthesis ─────────────────────────────────────────────────
class SynthesisError(Exception):
    """Base class for anything the recipe synthesizer can raise."""


class FatalSynthesisError(SynthesisError):
    """Credential / permission / quota failure – no retry, abort the batch."""


class RetryableSynthesisError(SynthesisError):
    """Malformed output, slot mismatch, name collision, timeout, network."""

    def __init__(self, message: str, raw_output: str | None = None) -> None:
        super().__init__(message)
        self.raw_output = raw_output


# ───────── lifecycle ─────────────────────────────────────────────────
class LifecycleError(Exception):
    pass


class RecipeNotFoundError(LifecycleError):
    def __init__(self, recipe_id: int) -> None:
        super().__init__(f"recipe {recipe_id} not found")
        self.recipe_id = recipe_id


class InvalidRecipeStateError(LifecycleError):
    pass


# ───────── plans / quota ─────────────────────────────────────────────
class QuotaExceededError(Exception):
    pass


class ActivePlanExistsError(Exception):
    """The owner still has unexpired, unsaved recipes from an earlier plan."""


class MealPlanNotFoundError(Exception):
    def __init__(self, plan_id: int) -> None:
        super().__init__(f"meal plan {plan_id} not found")
        self.plan_id = plan_id


class SlotRegenerationError(Exception):
    """Targeted regeneration of one slot exhausted its budget again."""
