# tests/test_synthesis.py
from __future__ import annotations

import asyncio

import pytest

from core.errors import FatalSynthesisError, RetryableSynthesisError
from core.models.recipe import Constraints
from core.synthesis import RecipeSynthesisEngine, validate_candidate
from core.uniqueness import UniqueNameTracker

NO_PREFS = Constraints()


def _engine(synth, **kw):
    kw.setdefault("max_attempts", 3)
    kw.setdefault("max_level", 4)
    kw.setdefault("timeout", 1.0)
    return RecipeSynthesisEngine(synth, **kw)


async def test_first_call_accepted(fake_synth):
    synth = fake_synth()
    tracker = UniqueNameTracker()
    res = await _engine(synth).synthesize_one(NO_PREFS, "lunch", tracker)

    assert res.recipe is not None
    assert res.recipe.name in tracker
    assert len(synth.calls) == 1
    assert res.attempts[0].level == 1


async def test_structural_failures_are_retried(fake_synth, recipe):
    def script(slot, exclude, n):
        if n == 1:
            return recipe("Empty Bowl", slot, ingredients=[])
        if n == 2:
            return recipe("No Steps Stew", slot, instructions=[])
        return recipe("Proper Chili", slot)

    synth = fake_synth(script)
    res = await _engine(synth).synthesize_one(NO_PREFS, "dinner", UniqueNameTracker())

    assert res.recipe.name == "Proper Chili"
    assert [a.error is not None for a in res.attempts] == [True, True, False]


async def test_meal_slot_must_match_case_insensitively(fake_synth, recipe):
    def script(slot, exclude, n):
        return recipe("Pancakes", "Lunch") if n == 1 else recipe("Pancake Stack", "BREAKFAST")

    res = await _engine(fake_synth(script)).synthesize_one(NO_PREFS, "breakfast", UniqueNameTracker())
    assert res.recipe.name == "Pancake Stack"
    assert "declared meal type" in res.attempts[0].error


async def test_name_collision_retried_and_exclusions_passed(fake_synth, recipe):
    tracker = UniqueNameTracker(["Veggie Omelet"])

    def script(slot, exclude, n):
        return recipe("Veggie Omelet", slot) if n == 1 else recipe("Spinach Frittata", slot)

    synth = fake_synth(script)
    res = await _engine(synth).synthesize_one(NO_PREFS, "breakfast", tracker)

    assert res.recipe.name == "Spinach Frittata"
    assert synth.calls[0]["exclude"] == ["Veggie Omelet"]
    assert "collision" in res.attempts[0].error
    assert tracker.names() == ["Veggie Omelet", "Spinach Frittata"]


async def test_fatal_error_stops_immediately(fake_synth):
    synth = fake_synth(lambda slot, exclude, n: FatalSynthesisError("invalid API key"))
    with pytest.raises(FatalSynthesisError):
        await _engine(synth).synthesize_one(NO_PREFS, "dinner", UniqueNameTracker())
    assert len(synth.calls) == 1


async def test_budget_exhaustion_reports_missing(fake_synth):
    synth = fake_synth(lambda slot, exclude, n: RetryableSynthesisError("garbage"))
    res = await _engine(synth, max_attempts=2, max_level=3).synthesize_one(
        NO_PREFS, "dinner", UniqueNameTracker()
    )

    assert res.missing
    assert len(synth.calls) == 6
    assert [(a.attempt, a.level) for a in res.attempts] == [
        (1, 1), (2, 1), (1, 2), (2, 2), (1, 3), (2, 3)
    ]
    temps = [c["temperature"] for c in synth.calls]
    assert temps == sorted(temps)
    assert temps[0] < temps[-1]


async def test_timeout_consumes_one_attempt(fake_synth, recipe):
    class Slow:
        def __init__(self):
            self.n = 0

        async def synthesize(self, constraints, meal_slot, exclude_names, temperature, guidance):
            self.n += 1
            if self.n == 1:
                await asyncio.sleep(5)
            return recipe("Quick Soup", meal_slot)

    res = await _engine(Slow(), timeout=0.05).synthesize_one(NO_PREFS, "lunch", UniqueNameTracker())
    assert res.recipe.name == "Quick Soup"
    assert "timed out" in res.attempts[0].error


async def test_failure_hook_sees_every_retryable_failure(fake_synth, recipe):
    seen = []

    async def hook(slot, attempt, level, exc):
        seen.append((slot, attempt, level))

    def script(slot, exclude, n):
        return RetryableSynthesisError("bad json") if n < 3 else recipe("Third Time Lucky", slot)

    res = await _engine(fake_synth(script)).synthesize_one(
        NO_PREFS, "dinner", UniqueNameTracker(), on_failure=hook
    )
    assert res.recipe is not None
    assert seen == [("dinner", 1, 1), ("dinner", 2, 1)]


def test_validate_candidate_accepts_good_recipe(recipe):
    validate_candidate(recipe("Fine Dish", "dinner"), "dinner")
    with pytest.raises(RetryableSynthesisError):
        validate_candidate(recipe("Blank Steps", "dinner", instructions=["  "]), "dinner")
