"""
services/db.py
────────────────────────────────────────────────────────────────────────
* Async SQLAlchemy v2 setup
* Models for temporary recipes, meal plans and synthesis failures
* Session helpers for request handlers and detached background work
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncAttrs,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from config import settings

# ───────── connection helper ────────────────────────────────────────
_ENGINE: AsyncEngine | None = None
_SESSIONMAKER: async_sessionmaker[AsyncSession] | None = None


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def _create_engine() -> AsyncEngine:
    # 1) plain URL (postgres+asyncpg, sqlite+aiosqlite, ...)
    if settings.database_url:
        return create_async_engine(settings.database_url, pool_pre_ping=True)

    # 2) Cloud SQL connector (only if URL not supplied)
    if not settings.cloud_sql_instance:
        raise RuntimeError(
            "Set either DATABASE_URL or CLOUD_SQL_CONNECTION_NAME env var"
        )

    # lazy import here
    try:
        from google.cloud.sql.connector import Connector, IPTypes  # type: ignore
    except ImportError as exc:
        raise RuntimeError(
            "cloud-sql-python-connector missing. Run:\n"
            "pip install 'cloud-sql-python-connector[asyncpg]>=1.4.0'"
        ) from exc

    connector = Connector()

    async def _getconn():  # type: ignore[name-defined]
        return await connector.connect_async(
            settings.cloud_sql_instance,
            "asyncpg",
            user=settings.db_user,
            password=settings.db_pass,
            db=settings.db_name,
            ip_type=IPTypes.PRIVATE,
        )

    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_getconn,
        pool_pre_ping=True,
    )


async def engine() -> AsyncEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = await _create_engine()
    return _ENGINE


def bind_engine(eng: AsyncEngine) -> None:
    """Swap the process-wide engine (tests, alternative deployments)."""
    global _ENGINE, _SESSIONMAKER
    _ENGINE = eng
    _SESSIONMAKER = async_sessionmaker(eng, expire_on_commit=False)


async def sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _SESSIONMAKER
    if _SESSIONMAKER is None:
        _SESSIONMAKER = async_sessionmaker(await engine(), expire_on_commit=False)
    return _SESSIONMAKER


# ───────── declarative base ──────────────────────────────────────────
Base = declarative_base(cls=AsyncAttrs)


class MealPlan(Base):
    __tablename__ = "meal_plans"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    name: Mapped[str] = mapped_column(String)
    quota_class: Mapped[str] = mapped_column(String, default="free")
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)
    days_requested: Mapped[int] = mapped_column(Integer)
    days_generated: Mapped[int] = mapped_column(Integer, default=2)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime)
    is_expired: Mapped[bool] = mapped_column(Boolean, default=False)
    constraints: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class TemporaryRecipe(Base):
    __tablename__ = "temporary_recipes"
    __table_args__ = (
        Index("idx_temp_recipes_owner_name", "user_id", "name"),
        Index("idx_temp_recipes_favorites_count", "favorites_count"),
        # at most one favorited copy of a recipe per owner
        Index(
            "uq_temp_recipes_owner_name_favorited",
            "user_id",
            "name",
            unique=True,
            postgresql_where=text("favorited"),
            sqlite_where=text("favorited = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    meal_plan_id: Mapped[int | None] = mapped_column(
        ForeignKey("meal_plans.id", ondelete="SET NULL"), index=True
    )
    day_index: Mapped[int | None] = mapped_column(Integer)
    meal_slot: Mapped[str | None] = mapped_column(String)

    name: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    prep_time: Mapped[int] = mapped_column(Integer, default=0)
    cook_time: Mapped[int] = mapped_column(Integer, default=0)
    servings: Mapped[int] = mapped_column(Integer, default=2)
    ingredients: Mapped[list] = mapped_column(JSON, default=list)
    instructions: Mapped[list] = mapped_column(JSON, default=list)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    nutrition: Mapped[dict] = mapped_column(JSON, default=dict)
    complexity: Mapped[int] = mapped_column(Integer, default=1)

    image_url: Mapped[str | None] = mapped_column(Text)       # transient
    permanent_url: Mapped[str | None] = mapped_column(Text)   # stable, filled async

    favorited: Mapped[bool] = mapped_column(Boolean, default=False)
    favorites_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class GenerationFailure(Base):
    __tablename__ = "generation_failures"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int]
    meal_type: Mapped[str]
    stage: Mapped[str]
    error_message: Mapped[str] = mapped_column(Text)
    raw_input: Mapped[str | None] = mapped_column(Text)
    raw_output: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


async def init_models() -> None:
    eng = await engine()
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ───────── session helpers ───────────────────────────────────────────

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    maker = await sessionmaker()
    async with maker() as session:
        yield session


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for work that outlives a request (image pipeline, sweeps)."""
    maker = await sessionmaker()
    async with maker() as session:
        yield session
