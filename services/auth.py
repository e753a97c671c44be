from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from config import settings
from core.models.recipe import QuotaClass

_ALGO = "HS256"


@dataclass(frozen=True)
class Principal:
    user_id: int
    tier: QuotaClass


def create_token(user_id: int, tier: QuotaClass = QuotaClass.free, ttl_minutes: int | None = None) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes or settings.jwt_ttl_minutes)
    payload = {"sub": str(user_id), "tier": QuotaClass(tier).value, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=_ALGO)


def verify_token(token: str) -> Principal:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[_ALGO])
    return Principal(
        user_id=int(payload["sub"]),
        tier=QuotaClass(payload.get("tier", QuotaClass.free.value)),
    )
