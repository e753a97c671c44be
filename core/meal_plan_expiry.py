"""
core/meal_plan_expiry.py
────────────────────────────────────────────────────────────────────────
Meal plan expiration.

    active ──► expiring-soon (last 24h, display only) ──► expired (terminal)

`expired` is written by `mark_expired_plans()`, the periodic job; the
other two states are derived on read. Expired plans are never extended:
regenerating starts a fresh plan.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.models.recipe import QuotaClass
from core.quota import quota
from services.db import MealPlan, utcnow

_LOG = logging.getLogger(__name__)

PlanStatus = Literal["active", "expiring-soon", "expired"]
EXPIRING_SOON_WINDOW = timedelta(hours=24)


def days_to_generate(requested_days: int, tier: QuotaClass, allowed_days: int | None = None) -> int:
    limit = allowed_days if allowed_days is not None else quota.allowed_days(tier)
    return max(1, min(requested_days, limit))


def expiration_date(start_date: datetime, days_generated: int) -> datetime:
    return start_date + timedelta(days=days_generated)


def plan_status(plan: MealPlan, now: datetime | None = None) -> PlanStatus:
    now = now or utcnow()
    if plan.is_expired:
        return "expired"
    if plan.expiration_date is None:
        return "active"
    if now > plan.expiration_date:
        return "expired"
    if plan.expiration_date - now <= EXPIRING_SOON_WINDOW:
        return "expiring-soon"
    return "active"


def new_meal_plan(
    owner_id: int,
    requested_days: int,
    tier: QuotaClass,
    *,
    allowed_days: int | None = None,
    constraints: dict | None = None,
    start_date: datetime | None = None,
) -> MealPlan:
    start = start_date or utcnow()
    days = days_to_generate(requested_days, tier, allowed_days)
    expires = expiration_date(start, days)
    return MealPlan(
        user_id=owner_id,
        name=f"{days}-day meal plan ({start:%Y-%m-%d})",
        quota_class=tier.value,
        start_date=start,
        end_date=expires,
        days_requested=requested_days,
        days_generated=days,
        expiration_date=expires,
        is_expired=False,
        constraints=constraints or {},
        created_at=start,
    )


async def is_expired(db: AsyncSession, plan_id: int, now: datetime | None = None) -> bool:
    plan = await db.get(MealPlan, plan_id)
    if plan is None or plan.expiration_date is None:
        return False
    return plan.is_expired or (now or utcnow()) > plan.expiration_date


async def mark_expired_plans(db: AsyncSession, now: datetime | None = None) -> list[int]:
    now = now or utcnow()
    ids = (
        await db.execute(
            select(MealPlan.id).where(
                MealPlan.expiration_date < now,
                MealPlan.is_expired.is_(False),
            )
        )
    ).scalars().all()
    if not ids:
        return []

    await db.execute(
        update(MealPlan)
        .where(MealPlan.id.in_(ids))
        .values(is_expired=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    _LOG.info("marked %d meal plans expired", len(ids))
    return list(ids)
