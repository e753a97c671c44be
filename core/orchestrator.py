"""
core/orchestrator.py
────────────────────────────────────────────────────────────────────────
Multi-day meal plan generation.

`MealPlanOrchestrator.generate_plan(...)`:

  1. refuses while recipes of the owner's previous plan are still live
     and unsaved, then clamps the requested days to the quota class
  2. fans out one task per (day, slot) over a bounded worker pool
  3. waits for *every* task to reach accepted / missing
  4. persists the plan and its accepted recipes as temporary recipes
  5. schedules image materialization per recipe without awaiting it

A slot that exhausts its retry budget is reported as missing; only a
fatal synthesizer error aborts the whole batch (nothing is persisted).
`regenerate_slot(...)` later fills exactly one missing slot.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.errors import (
    ActivePlanExistsError,
    FatalSynthesisError,
    InvalidRecipeStateError,
    MealPlanNotFoundError,
    QuotaExceededError,
    RetryableSynthesisError,
    SlotRegenerationError,
)
from core.image_pipeline import ImagePipeline
from core.interfaces import QuotaProvider
from core.lifecycle import RecipeLifecycle, lifecycle as default_lifecycle
from core.meal_plan_expiry import new_meal_plan
from core.models.recipe import (
    MEAL_SLOTS,
    CandidateRecipe,
    Constraints,
    GenerationRequest,
    GenerationTask,
    MealSlot,
    QuotaClass,
)
from core.quota import quota as default_quota
from core.synthesis import RecipeSynthesisEngine
from core.uniqueness import UniqueNameTracker
from services.db import GenerationFailure, MealPlan, TemporaryRecipe

_LOG = logging.getLogger(__name__)

BatchStatus = Literal["success", "partial"]


@dataclass
class PlanResult:
    plan: MealPlan
    accepted: list[TemporaryRecipe]
    missing: list[GenerationTask]
    days_requested: int

    @property
    def expected(self) -> int:
        return self.plan.days_generated * len(MEAL_SLOTS)

    @property
    def status(self) -> BatchStatus:
        return "success" if len(self.accepted) == self.expected else "partial"


@dataclass
class _FailureLog:
    """Synthesis failures buffered during a batch, written once it settles."""

    owner_id: int
    entries: list[GenerationFailure] = field(default_factory=list)

    def hook_for(self, task: GenerationTask):
        async def _hook(slot: MealSlot, attempt: int, level: int, exc: RetryableSynthesisError) -> None:
            self.entries.append(
                GenerationFailure(
                    user_id=self.owner_id,
                    meal_type=slot,
                    stage=f"day{task.day}:attempt{attempt}:level{level}",
                    error_message=str(exc),
                    raw_output=exc.raw_output,
                )
            )

        return _hook

    def fatal(self, exc: FatalSynthesisError) -> None:
        self.entries.append(
            GenerationFailure(
                user_id=self.owner_id,
                meal_type="any",
                stage="fatal",
                error_message=str(exc),
            )
        )

    async def flush(self, db: AsyncSession) -> None:
        if not self.entries:
            return
        try:
            db.add_all(self.entries)
            await db.commit()
        except Exception as e:
            await db.rollback()
            _LOG.error("could not persist %d synthesis failures: %s", len(self.entries), e)


def build_grid(days: int) -> list[GenerationTask]:
    return [GenerationTask(day=d, slot=s) for d in range(1, days + 1) for s in MEAL_SLOTS]


class MealPlanOrchestrator:
    def __init__(
        self,
        engine: RecipeSynthesisEngine,
        images: ImagePipeline | None = None,
        *,
        lifecycle: RecipeLifecycle = default_lifecycle,
        quota: QuotaProvider = default_quota,
        workers: int | None = None,
    ) -> None:
        self._engine = engine
        self._images = images
        self._lifecycle = lifecycle
        self._quota = quota
        self._workers = workers or settings.generation_workers

    # ─────────────────────────── generate ─────────────────────────── #
    async def generate_plan(self, db: AsyncSession, request: GenerationRequest) -> PlanResult:
        if await self._lifecycle.has_unsaved(db, request.owner_id):
            raise ActivePlanExistsError(
                "You already have an active meal plan. Save its recipes or wait "
                "for them to expire before generating a new one."
            )
        if request.quota_class == QuotaClass.free:
            remaining = await self._quota.remaining_free_generations(db, request.owner_id)
            if remaining <= 0:
                raise QuotaExceededError("No free meal plan generations remaining")

        plan = new_meal_plan(
            request.owner_id,
            request.days,
            request.quota_class,
            allowed_days=self._quota.allowed_days(request.quota_class),
            constraints=request.constraints.model_dump(),
        )
        grid = build_grid(plan.days_generated)
        _LOG.info(
            "user %s: generating %d-day plan (%d requested, %d tasks)",
            request.owner_id, plan.days_generated, request.days, len(grid),
        )

        failures = _FailureLog(request.owner_id)
        try:
            outcomes = await self._run_batch(grid, request.constraints, UniqueNameTracker(), failures)
        except FatalSynthesisError as exc:
            failures.fatal(exc)
            await failures.flush(db)
            raise

        accepted_pairs = [(t, c) for t, c in outcomes if c is not None]
        missing = [t for t, c in outcomes if c is None]

        db.add(plan)
        await db.flush()
        rows = [
            self._lifecycle.build(c, request.owner_id, meal_plan_id=plan.id, task=t)
            for t, c in accepted_pairs
        ]
        db.add_all(rows)
        await db.commit()
        await failures.flush(db)

        self._schedule_images(rows, request.constraints)

        result = PlanResult(plan=plan, accepted=rows, missing=missing, days_requested=request.days)
        _LOG.info(
            "user %s: plan %s %s (%d accepted, %d missing)",
            request.owner_id, plan.id, result.status, len(rows), len(missing),
        )
        return result

    async def _run_batch(
        self,
        grid: list[GenerationTask],
        constraints: Constraints,
        tracker: UniqueNameTracker,
        failures: _FailureLog,
    ) -> list[tuple[GenerationTask, CandidateRecipe | None]]:
        sem = asyncio.Semaphore(self._workers)

        async def _one(task: GenerationTask) -> tuple[GenerationTask, CandidateRecipe | None]:
            async with sem:
                try:
                    res = await self._engine.synthesize_one(
                        constraints, task.slot, tracker, on_failure=failures.hook_for(task)
                    )
                except FatalSynthesisError:
                    raise
                except Exception:
                    _LOG.exception("day %d %s crashed; recording as missing", task.day, task.slot)
                    return task, None
            if res.missing:
                _LOG.warning("day %d %s is missing", task.day, task.slot)
            return task, res.recipe

        running = [asyncio.create_task(_one(t)) for t in grid]
        try:
            return list(await asyncio.gather(*running))
        except FatalSynthesisError:
            for t in running:
                t.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise

    # ────────────────────────── regenerate ────────────────────────── #
    async def regenerate_slot(
        self,
        db: AsyncSession,
        plan_id: int,
        owner_id: int,
        day: int,
        slot: MealSlot,
        constraints: Constraints | None = None,
    ) -> TemporaryRecipe:
        plan, recipes = await self.load_plan(db, plan_id, owner_id)
        if not 1 <= day <= plan.days_generated:
            raise InvalidRecipeStateError(
                f"day {day} is outside plan {plan_id} (1..{plan.days_generated})"
            )
        if any(r.day_index == day and r.meal_slot == slot for r in recipes):
            raise InvalidRecipeStateError(f"day {day} {slot} already has a recipe")

        constraints = constraints or Constraints.model_validate(plan.constraints or {})
        tracker = UniqueNameTracker(r.name for r in recipes)
        task = GenerationTask(day=day, slot=slot)
        failures = _FailureLog(owner_id)

        try:
            res = await self._engine.synthesize_one(
                constraints, slot, tracker, on_failure=failures.hook_for(task)
            )
        except FatalSynthesisError as exc:
            failures.fatal(exc)
            await failures.flush(db)
            raise
        await failures.flush(db)

        if res.recipe is None:
            raise SlotRegenerationError(f"could not generate day {day} {slot}; try again later")

        row = self._lifecycle.build(res.recipe, owner_id, meal_plan_id=plan.id, task=task)
        db.add(row)
        await db.commit()
        await db.refresh(row)
        self._schedule_images([row], constraints)
        _LOG.info("user %s: plan %s day %d %s filled with '%s'", owner_id, plan.id, day, slot, row.name)
        return row

    # ──────────────────────────── reads ───────────────────────────── #
    async def load_plan(
        self, db: AsyncSession, plan_id: int, owner_id: int
    ) -> tuple[MealPlan, list[TemporaryRecipe]]:
        plan = await db.get(MealPlan, plan_id)
        if plan is None or plan.user_id != owner_id:
            raise MealPlanNotFoundError(plan_id)
        res = await db.execute(
            select(TemporaryRecipe)
            .where(TemporaryRecipe.meal_plan_id == plan.id)
            .order_by(TemporaryRecipe.day_index, TemporaryRecipe.id)
        )
        return plan, list(res.scalars().all())

    @staticmethod
    def missing_slots(plan: MealPlan, recipes: list[TemporaryRecipe]) -> list[GenerationTask]:
        filled = {(r.day_index, r.meal_slot) for r in recipes}
        return [t for t in build_grid(plan.days_generated) if (t.day, t.slot) not in filled]

    def _schedule_images(self, rows: list[TemporaryRecipe], constraints: Constraints) -> None:
        if self._images is None:
            return
        for row in rows:
            self._images.schedule(row.id, row.name, constraints.allergies, row.image_url)
