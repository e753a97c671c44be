"""
core/lifecycle.py
────────────────────────────────────────────────────────────────────────
Lifecycle of generated (temporary) recipes.

    created ──► ephemeral (favorited=False, expires in TTL days)
                   │  favorite()             ▲ unfavorite()
                   ▼                         │
                favorited (expires in ~1 year)
    ephemeral + expires_at < now ──► deleted by sweep()

`favorites_count` is shared by every row carrying the same recipe name,
whoever owns it. All counter changes are single UPDATE statements with
the arithmetic done by the database, never read-modify-write here.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.errors import InvalidRecipeStateError, RecipeNotFoundError
from core.models.recipe import CandidateRecipe, GenerationTask
from services.db import TemporaryRecipe, utcnow

_LOG = logging.getLogger(__name__)

# columns copied verbatim when a favorite spawns a copy for another owner
_CONTENT_FIELDS = (
    "name", "description", "prep_time", "cook_time", "servings",
    "ingredients", "instructions", "tags", "nutrition", "complexity",
    "image_url", "permanent_url",
)


def temporary_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.temp_recipe_ttl_days)


def favorite_expiry(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.favorite_ttl_days)


class RecipeLifecycle:
    # ──────────────────────────── create ──────────────────────────── #
    def build(
        self,
        candidate: CandidateRecipe,
        owner_id: int,
        *,
        meal_plan_id: int | None = None,
        task: GenerationTask | None = None,
        now: datetime | None = None,
    ) -> TemporaryRecipe:
        now = now or utcnow()
        return TemporaryRecipe(
            user_id=owner_id,
            meal_plan_id=meal_plan_id,
            day_index=task.day if task else None,
            meal_slot=task.slot if task else (candidate.meal_type.lower() or None),
            name=candidate.name,
            description=candidate.description,
            prep_time=candidate.prep_time,
            cook_time=candidate.cook_time,
            servings=candidate.servings,
            ingredients=[i.model_dump() for i in candidate.ingredients],
            instructions=list(candidate.instructions),
            tags=list(candidate.tags),
            nutrition=candidate.nutrition.model_dump(),
            complexity=candidate.complexity,
            image_url=candidate.image_url,
            permanent_url=None,
            favorited=False,
            favorites_count=0,
            expires_at=temporary_expiry(now),
            created_at=now,
        )

    async def create(
        self,
        db: AsyncSession,
        candidate: CandidateRecipe,
        owner_id: int,
        **kwargs,
    ) -> TemporaryRecipe:
        row = self.build(candidate, owner_id, **kwargs)
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row

    # ──────────────────────────── favorite ────────────────────────── #
    async def favorite(
        self,
        db: AsyncSession,
        recipe_id: int,
        owner_id: int,
        now: datetime | None = None,
    ) -> TemporaryRecipe:
        """
        Give `owner_id` a favorited copy of the recipe and bump the shared counter.

        The counter moves only when this call is the one that turned a
        copy into a favorite: the flip is a conditional UPDATE and a new
        copy is guarded by the one-favorite-per-(owner, name) unique index,
        so racing retries of the same favorite collapse into a no-op.
        """
        now = now or utcnow()
        try:
            target = (
                await db.execute(
                    select(TemporaryRecipe)
                    .where(TemporaryRecipe.id == recipe_id)
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if target is None:
                raise RecipeNotFoundError(recipe_id)
            name = target.name

            sibling = await self._owned_by_name(db, owner_id, name)
            if sibling is not None and sibling.favorited:
                # retrying an already applied favorite: counter untouched
                await db.commit()
                return sibling

            if sibling is None:
                sibling = TemporaryRecipe(
                    user_id=owner_id,
                    **{f: getattr(target, f) for f in _CONTENT_FIELDS},
                    favorites_count=target.favorites_count or 0,
                    favorited=True,
                    expires_at=favorite_expiry(now),
                    created_at=now,
                )
                db.add(sibling)
                try:
                    await db.flush()
                except IntegrityError:
                    # a concurrent favorite by the same owner inserted first
                    await db.rollback()
                    return await self._already_favorited(db, owner_id, name)
            else:
                flipped = await db.execute(
                    update(TemporaryRecipe)
                    .where(
                        TemporaryRecipe.id == sibling.id,
                        TemporaryRecipe.favorited.is_(False),
                    )
                    .values(favorited=True, expires_at=favorite_expiry(now))
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount == 0:
                    await db.commit()
                    return await self._already_favorited(db, owner_id, name)

            await db.execute(
                update(TemporaryRecipe)
                .where(TemporaryRecipe.name == name)
                .values(favorites_count=func.coalesce(TemporaryRecipe.favorites_count, 0) + 1)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await db.refresh(sibling)
        _LOG.info(
            "user %s favorited '%s' (row %s, count=%s)",
            owner_id, sibling.name, sibling.id, sibling.favorites_count,
        )
        return sibling

    # ─────────────────────────── unfavorite ───────────────────────── #
    async def unfavorite(
        self,
        db: AsyncSession,
        recipe_id: int,
        owner_id: int,
        now: datetime | None = None,
    ) -> TemporaryRecipe:
        now = now or utcnow()
        try:
            row = (
                await db.execute(
                    select(TemporaryRecipe)
                    .where(
                        TemporaryRecipe.id == recipe_id,
                        TemporaryRecipe.user_id == owner_id,
                    )
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                raise RecipeNotFoundError(recipe_id)
            if not row.favorited:
                raise InvalidRecipeStateError(f"recipe {recipe_id} is not favorited")

            row.favorited = False
            row.expires_at = temporary_expiry(now)
            await db.flush()

            count = TemporaryRecipe.favorites_count
            await db.execute(
                update(TemporaryRecipe)
                .where(TemporaryRecipe.name == row.name)
                .values(
                    favorites_count=case(
                        (func.coalesce(count, 0) > 0, func.coalesce(count, 0) - 1),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        await db.refresh(row)
        _LOG.info(
            "user %s unfavorited '%s' (row %s, count=%s)",
            owner_id, row.name, row.id, row.favorites_count,
        )
        return row

    # ───────────────────────────── sweep ──────────────────────────── #
    async def sweep(self, db: AsyncSession, now: datetime | None = None) -> list[TemporaryRecipe]:
        """Delete unfavorited rows whose expiry has passed; return what was deleted."""
        now = now or utcnow()
        # one statement: a row favorited or re-dated meanwhile no longer matches
        deleted = (
            await db.scalars(
                delete(TemporaryRecipe)
                .where(
                    TemporaryRecipe.favorited.is_(False),
                    TemporaryRecipe.expires_at < now,
                )
                .returning(TemporaryRecipe)
            )
        ).all()
        await db.commit()
        if deleted:
            _LOG.info(
                "swept %d expired recipes: %s",
                len(deleted), ", ".join(str(r.id) for r in deleted),
            )
        return list(deleted)

    # ──────────────────────────── queries ─────────────────────────── #
    async def _owned_by_name(
        self, db: AsyncSession, owner_id: int, name: str
    ) -> TemporaryRecipe | None:
        rows = (
            await db.execute(
                select(TemporaryRecipe)
                .where(TemporaryRecipe.user_id == owner_id, TemporaryRecipe.name == name)
                .order_by(TemporaryRecipe.favorited.desc(), TemporaryRecipe.id)
                .with_for_update()
            )
        ).scalars().all()
        return rows[0] if rows else None

    async def _already_favorited(
        self, db: AsyncSession, owner_id: int, name: str
    ) -> TemporaryRecipe:
        row = (
            await db.execute(
                select(TemporaryRecipe).where(
                    TemporaryRecipe.user_id == owner_id,
                    TemporaryRecipe.name == name,
                    TemporaryRecipe.favorited.is_(True),
                )
            )
        ).scalar_one_or_none()
        if row is None:
            raise InvalidRecipeStateError(f"favorite of '{name}' for user {owner_id} was not applied")
        _LOG.info("user %s already has '%s' favorited (row %s)", owner_id, name, row.id)
        return row

    async def active_for(
        self, db: AsyncSession, owner_id: int, now: datetime | None = None
    ) -> list[TemporaryRecipe]:
        now = now or utcnow()
        res = await db.execute(
            select(TemporaryRecipe)
            .where(TemporaryRecipe.user_id == owner_id, TemporaryRecipe.expires_at > now)
            .order_by(TemporaryRecipe.id)
        )
        return list(res.scalars().all())

    async def has_unsaved(
        self, db: AsyncSession, owner_id: int, now: datetime | None = None
    ) -> bool:
        """True while the owner holds unexpired recipes they have not favorited."""
        now = now or utcnow()
        found = await db.scalar(
            select(TemporaryRecipe.id)
            .where(
                TemporaryRecipe.user_id == owner_id,
                TemporaryRecipe.favorited.is_(False),
                TemporaryRecipe.expires_at > now,
            )
            .limit(1)
        )
        return found is not None

    async def favorites_for(self, db: AsyncSession, owner_id: int) -> list[TemporaryRecipe]:
        res = await db.execute(
            select(TemporaryRecipe)
            .where(TemporaryRecipe.user_id == owner_id, TemporaryRecipe.favorited.is_(True))
            .order_by(TemporaryRecipe.created_at.desc())
        )
        return list(res.scalars().all())

    async def community(self, db: AsyncSession, limit: int = 20) -> list[TemporaryRecipe]:
        """Most-favorited recipes, one row per name."""
        first_ids = (
            select(func.min(TemporaryRecipe.id))
            .where(TemporaryRecipe.favorited.is_(True))
            .group_by(TemporaryRecipe.name)
        )
        res = await db.execute(
            select(TemporaryRecipe)
            .where(TemporaryRecipe.id.in_(first_ids))
            .order_by(TemporaryRecipe.favorites_count.desc(), TemporaryRecipe.name)
            .limit(limit)
        )
        return list(res.scalars().all())


lifecycle = RecipeLifecycle()
