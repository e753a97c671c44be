# api/v1/recipes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InvalidRecipeStateError, RecipeNotFoundError
from core.lifecycle import RecipeLifecycle
from services.auth import Principal
from services.db import get_session
from api.v1.deps import current_principal, get_lifecycle, http_error
from api.v1.schemas import RecipeOut

router = APIRouter()


@router.get(
    "/temporary",
    response_model=list[RecipeOut],
    summary="Recipes of the caller that have not expired yet",
)
async def list_temporary(
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    lc: RecipeLifecycle = Depends(get_lifecycle),
) -> list[RecipeOut]:
    return [RecipeOut.model_validate(r) for r in await lc.active_for(db, who.user_id)]


@router.get("/favorites", response_model=list[RecipeOut])
async def list_favorites(
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    lc: RecipeLifecycle = Depends(get_lifecycle),
) -> list[RecipeOut]:
    return [RecipeOut.model_validate(r) for r in await lc.favorites_for(db, who.user_id)]


@router.get(
    "/community",
    response_model=list[RecipeOut],
    summary="Most favorited recipes across all users",
)
async def list_community(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
    lc: RecipeLifecycle = Depends(get_lifecycle),
) -> list[RecipeOut]:
    return [RecipeOut.model_validate(r) for r in await lc.community(db, limit)]


@router.post(
    "/{recipe_id}/favorite",
    response_model=RecipeOut,
    status_code=status.HTTP_200_OK,
)
async def favorite(
    recipe_id: int,
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    lc: RecipeLifecycle = Depends(get_lifecycle),
) -> RecipeOut:
    try:
        row = await lc.favorite(db, recipe_id, who.user_id)
    except RecipeNotFoundError as exc:
        raise http_error(exc)
    return RecipeOut.model_validate(row)


@router.delete(
    "/{recipe_id}/favorite",
    response_model=RecipeOut,
    status_code=status.HTTP_200_OK,
)
async def unfavorite(
    recipe_id: int,
    who: Principal = Depends(current_principal),
    db: AsyncSession = Depends(get_session),
    lc: RecipeLifecycle = Depends(get_lifecycle),
) -> RecipeOut:
    try:
        row = await lc.unfavorite(db, recipe_id, who.user_id)
    except (RecipeNotFoundError, InvalidRecipeStateError) as exc:
        raise http_error(exc)
    return RecipeOut.model_validate(row)
