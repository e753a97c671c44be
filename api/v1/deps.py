# api/v1/deps.py
from __future__ import annotations

from functools import lru_cache

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import (
    ActivePlanExistsError,
    FatalSynthesisError,
    InvalidRecipeStateError,
    MealPlanNotFoundError,
    QuotaExceededError,
    RecipeNotFoundError,
    SlotRegenerationError,
)
from core.image_pipeline import ImagePipeline
from core.lifecycle import RecipeLifecycle, lifecycle
from core.orchestrator import MealPlanOrchestrator
from core.synthesis import RecipeSynthesisEngine
from services.auth import Principal, verify_token
from services.gemini import GeminiImageSynthesizer, GeminiRecipeSynthesizer
from services.image_store import LocalImageStore

_bearer = HTTPBearer(auto_error=False)

# exception → HTTP status for everything the core surfaces to callers
_STATUS = {
    RecipeNotFoundError: status.HTTP_404_NOT_FOUND,
    MealPlanNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidRecipeStateError: status.HTTP_409_CONFLICT,
    QuotaExceededError: status.HTTP_403_FORBIDDEN,
    ActivePlanExistsError: status.HTTP_409_CONFLICT,
    SlotRegenerationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    FatalSynthesisError: status.HTTP_502_BAD_GATEWAY,
}


def http_error(exc: Exception) -> HTTPException:
    for cls, code in _STATUS.items():
        if isinstance(exc, cls):
            return HTTPException(status_code=code, detail=str(exc))
    raise exc


def current_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Principal:
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return verify_token(creds.credentials)
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


@lru_cache
def get_image_pipeline() -> ImagePipeline:
    return ImagePipeline(GeminiImageSynthesizer(), LocalImageStore())


@lru_cache
def get_orchestrator() -> MealPlanOrchestrator:
    return MealPlanOrchestrator(
        RecipeSynthesisEngine(GeminiRecipeSynthesizer()),
        get_image_pipeline(),
    )


def get_lifecycle() -> RecipeLifecycle:
    return lifecycle
