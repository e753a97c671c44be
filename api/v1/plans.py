# api/v1/plans.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    ActivePlanExistsError,
    FatalSynthesisError,
    InvalidRecipeStateError,
    MealPlanNotFoundError,
    QuotaExceededError,
    SlotRegenerationError,
)
from core.meal_plan_expiry import plan_status
from core.models.recipe import Constraints, GenerationRequest
from core.orchestrator import MealPlanOrchestrator
from services.auth import Principal
from services.db import MealPlan, get_session
from api.v1.deps import current_principal, get_orchestrator, http_error
from api.v1.schemas import (
    GeneratePlanIn,
    GeneratePlanOut,
    MealPlanDetailOut,
    MealPlanOut,
    MissingSlot,
    RecipeOut,
    RegenerateSlotIn,
)

router = APIRouter()


def _plan_out(plan: MealPlan) -> MealPlanOut:
    out = MealPlanOut.model_validate(plan, from_attributes=True)
    out.status = plan_status(plan)
    return out


# ───────────────────────── generate ─────────────────────────
@router.post(
    "/generate",
    response_model=GeneratePlanOut,
    status_code=status.HTTP_200_OK,
    summary="Generate a multi-day plan (breakfast, lunch, dinner per day)",
)
async def generate_plan(
    body: GeneratePlanIn,
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    orchestrator: MealPlanOrchestrator = Depends(get_orchestrator),
) -> GeneratePlanOut:
    request = GenerationRequest(
        owner_id=who.user_id,
        days=body.days,
        quota_class=who.tier,
        constraints=Constraints(
            dietary=body.dietary,
            allergies=body.allergies,
            cuisine=body.cuisine,
            proteins=body.proteins,
        ),
    )
    try:
        result = await orchestrator.generate_plan(db, request)
    except (ActivePlanExistsError, QuotaExceededError, FatalSynthesisError) as exc:
        raise http_error(exc)

    return GeneratePlanOut(
        status=result.status,
        plan=_plan_out(result.plan),
        recipes=[RecipeOut.model_validate(r) for r in result.accepted],
        missing=[MissingSlot(day=t.day, slot=t.slot) for t in result.missing],
    )


# ───────────────────────── list / fetch ─────────────────────
@router.get("", response_model=list[MealPlanOut])
async def list_plans(
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
) -> list[MealPlanOut]:
    res = await db.execute(
        select(MealPlan)
        .where(MealPlan.user_id == who.user_id)
        .order_by(MealPlan.created_at.desc())
    )
    return [_plan_out(p) for p in res.scalars().all()]


@router.get("/{plan_id}", response_model=MealPlanDetailOut)
async def fetch_plan(
    plan_id: int,
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    orchestrator: MealPlanOrchestrator = Depends(get_orchestrator),
) -> MealPlanDetailOut:
    try:
        plan, recipes = await orchestrator.load_plan(db, plan_id, who.user_id)
    except MealPlanNotFoundError as exc:
        raise http_error(exc)
    return MealPlanDetailOut(
        plan=_plan_out(plan),
        recipes=[RecipeOut.model_validate(r) for r in recipes],
        missing=[
            MissingSlot(day=t.day, slot=t.slot)
            for t in orchestrator.missing_slots(plan, recipes)
        ],
    )


# ───────────────────────── regenerate one slot ──────────────
@router.post(
    "/{plan_id}/regenerate",
    response_model=RecipeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Fill one missing (day, slot) of an existing plan",
)
async def regenerate_slot(
    plan_id: int,
    body: RegenerateSlotIn,
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    orchestrator: MealPlanOrchestrator = Depends(get_orchestrator),
) -> RecipeOut:
    overrides = body.model_dump(include={"dietary", "allergies", "cuisine", "proteins"}, exclude_none=True)
    constraints = None
    if overrides:
        plan, _ = await _owned_plan(orchestrator, db, plan_id, who.user_id)
        constraints = Constraints.model_validate({**(plan.constraints or {}), **overrides})

    try:
        row = await orchestrator.regenerate_slot(
            db, plan_id, who.user_id, body.day, body.slot, constraints
        )
    except (
        MealPlanNotFoundError,
        InvalidRecipeStateError,
        SlotRegenerationError,
        FatalSynthesisError,
    ) as exc:
        raise http_error(exc)
    return RecipeOut.model_validate(row)


async def _owned_plan(orchestrator: MealPlanOrchestrator, db: AsyncSession, plan_id: int, owner_id: int):
    try:
        return await orchestrator.load_plan(db, plan_id, owner_id)
    except MealPlanNotFoundError as exc:
        raise http_error(exc)
