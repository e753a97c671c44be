"""Capability contracts for the collaborators the planner core consumes."""
from __future__ import annotations

from typing import Protocol, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.models.recipe import CandidateRecipe, Constraints, MealSlot, QuotaClass


class RecipeSynthesizer(Protocol):
    async def synthesize(
        self,
        constraints: Constraints,
        meal_slot: MealSlot,
        exclude_names: Sequence[str],
        temperature: float,
        guidance: str,
    ) -> CandidateRecipe:
        """
        Return one structured recipe.

        Raises `FatalSynthesisError` for credential / quota problems and
        `RetryableSynthesisError` for anything content related.
        """
        ...


class ImageSynthesizer(Protocol):
    async def synthesize(self, subject: str, allergy_hints: Sequence[str]) -> bytes | str:
        """Raw image bytes, or a transient http(s) URL to fetch them from."""
        ...


class ImageStore(Protocol):
    async def store(self, data: bytes, recipe_id: int) -> str:
        """Persist image bytes and return a stable public reference."""
        ...


class QuotaProvider(Protocol):
    def allowed_days(self, tier: QuotaClass) -> int: ...

    async def remaining_free_generations(self, db: AsyncSession, owner_id: int) -> int: ...
