"""
Shared fixtures: an in-memory database per test and scripted fakes for
the recipe synthesizer, image synthesizer and image store.
"""
from __future__ import annotations

import asyncio
import itertools
from contextlib import asynccontextmanager
from typing import Callable, Sequence

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.models.recipe import CandidateRecipe, Constraints, Ingredient, MealSlot
from services import db as db_module
from services.db import Base


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    db_module.bind_engine(eng)
    yield eng
    db_module._ENGINE = None
    db_module._SESSIONMAKER = None
    await eng.dispose()


@pytest.fixture
async def db(engine):
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def serial_sessions(engine):
    """
    Session factory for detached work. The in-memory database is a single
    shared connection, so background sessions take turns.
    """
    maker = async_sessionmaker(engine, expire_on_commit=False)
    lock = asyncio.Lock()

    @asynccontextmanager
    async def _scope():
        async with lock:
            async with maker() as session:
                yield session

    return _scope


# =============================================================================
# Recipes
# =============================================================================

def make_recipe(name: str, slot: MealSlot = "dinner", **overrides) -> CandidateRecipe:
    data = dict(
        name=name,
        description=f"A tasty {name.lower()}",
        meal_type=slot,
        prep_time=10,
        cook_time=20,
        servings=2,
        ingredients=[Ingredient(name="eggs", amount=2, unit="pcs")],
        instructions=["Prep everything.", "Cook it."],
        tags=["test"],
        complexity=2,
    )
    data.update(overrides)
    return CandidateRecipe(**data)


@pytest.fixture
def recipe():
    return make_recipe


class FakeRecipeSynthesizer:
    """
    Plays `script(slot, exclude_names, call_no)` for every call.

    The script returns a recipe, or an exception instance to raise. The
    default script returns a fresh, unique, valid recipe for the slot.
    """

    def __init__(self, script: Callable | None = None, delay: float = 0.0) -> None:
        self._counter = itertools.count(1)
        self._script = script or self._unique
        self._delay = delay
        self.calls: list[dict] = []

    @staticmethod
    def _unique(slot: MealSlot, exclude: Sequence[str], n: int) -> CandidateRecipe:
        return make_recipe(f"{slot.title()} Special {n}", slot)

    async def synthesize(
        self,
        constraints: Constraints,
        meal_slot: MealSlot,
        exclude_names: Sequence[str],
        temperature: float,
        guidance: str,
    ) -> CandidateRecipe:
        n = next(self._counter)
        self.calls.append(
            dict(slot=meal_slot, exclude=list(exclude_names), temperature=temperature, guidance=guidance)
        )
        if self._delay:
            await asyncio.sleep(self._delay)
        out = self._script(meal_slot, exclude_names, n)
        if isinstance(out, BaseException):
            raise out
        return out


@pytest.fixture
def fake_synth():
    return FakeRecipeSynthesizer


class FakeImageSynthesizer:
    def __init__(self, result: bytes | str | BaseException = b"raw-image") -> None:
        self.result = result
        self.subjects: list[tuple[str, list[str]]] = []

    async def synthesize(self, subject: str, allergy_hints: Sequence[str]) -> bytes | str:
        self.subjects.append((subject, list(allergy_hints)))
        await asyncio.sleep(0)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class FakeImageStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.stored: dict[int, bytes] = {}

    async def store(self, data: bytes, recipe_id: int) -> str:
        if self.fail:
            raise OSError("disk full")
        self.stored[recipe_id] = data
        return f"/api/images/{recipe_id}.webp"


@pytest.fixture
def fake_images():
    return FakeImageSynthesizer


@pytest.fixture
def fake_store():
    return FakeImageStore
