"""Quota classes: how many days a plan may span and how many free plans remain."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.models.recipe import QuotaClass
from services.db import MealPlan


class SettingsQuotaProvider:
    def allowed_days(self, tier: QuotaClass) -> int:
        if tier == QuotaClass.premium:
            return settings.premium_tier_days
        return settings.free_tier_days

    async def remaining_free_generations(self, db: AsyncSession, owner_id: int) -> int:
        used = await db.scalar(
            select(func.count(MealPlan.id)).where(
                MealPlan.user_id == owner_id,
                MealPlan.quota_class == QuotaClass.free.value,
            )
        )
        return max(settings.free_generation_limit - (used or 0), 0)


quota = SettingsQuotaProvider()
