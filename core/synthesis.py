"""
core/synthesis.py
────────────────────────────────────────────────────────────────────────
Retry / relaxation engine for a single (day, slot) task.

`RecipeSynthesisEngine.synthesize_one(...)` drives a `RelaxationPolicy`
against the external recipe synthesizer until one of three terminal
states is reached:

  • accepted → a structurally valid candidate whose name was reserved
  • fatal    → `FatalSynthesisError` propagates immediately
  • missing  → every (attempt, level) pair failed; returns None

Structural problems, meal-slot mismatches, name collisions and per-call
timeouts all consume one attempt.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from config import settings
from core.errors import FatalSynthesisError, RetryableSynthesisError
from core.interfaces import RecipeSynthesizer
from core.models.recipe import CandidateRecipe, Constraints, MealSlot
from core.retry_policy import RelaxationPolicy
from core.uniqueness import UniqueNameTracker

_LOG = logging.getLogger(__name__)

# (slot, attempt, level, error) → None; used to audit failures
FailureHook = Callable[[MealSlot, int, int, RetryableSynthesisError], Awaitable[None]]


@dataclass
class SynthesisAttempt:
    attempt: int
    level: int
    temperature: float
    error: str | None = None


@dataclass
class SynthesisResult:
    recipe: CandidateRecipe | None
    attempts: list[SynthesisAttempt] = field(default_factory=list)

    @property
    def missing(self) -> bool:
        return self.recipe is None


def validate_candidate(candidate: CandidateRecipe, meal_slot: MealSlot) -> None:
    """Raise `RetryableSynthesisError` unless `candidate` is usable for `meal_slot`."""
    if not candidate.name:
        raise RetryableSynthesisError("recipe has no name")
    if not candidate.ingredients:
        raise RetryableSynthesisError(f"'{candidate.name}' has no ingredients")
    if not candidate.instructions or not any(s.strip() for s in candidate.instructions):
        raise RetryableSynthesisError(f"'{candidate.name}' has no instructions")
    declared = candidate.meal_type.strip().lower()
    if declared != meal_slot:
        raise RetryableSynthesisError(
            f"'{candidate.name}' declared meal type {declared or '<none>'!r}, wanted {meal_slot!r}"
        )


class RecipeSynthesisEngine:
    def __init__(
        self,
        synthesizer: RecipeSynthesizer,
        *,
        max_attempts: int | None = None,
        max_level: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self._synth = synthesizer
        self._max_attempts = max_attempts or settings.synth_max_attempts
        self._max_level = max_level or settings.synth_relaxation_levels
        self._timeout = timeout if timeout is not None else settings.synth_timeout_seconds

    def new_policy(self) -> RelaxationPolicy:
        return RelaxationPolicy(
            max_attempts=self._max_attempts,
            max_level=self._max_level,
            base_temperature=settings.synth_base_temperature,
            temperature_step=settings.synth_temperature_step,
            max_temperature=settings.synth_max_temperature,
        )

    async def synthesize_one(
        self,
        constraints: Constraints,
        meal_slot: MealSlot,
        tracker: UniqueNameTracker,
        on_failure: FailureHook | None = None,
    ) -> SynthesisResult:
        policy = self.new_policy()
        result = SynthesisResult(recipe=None)

        while not policy.done:
            step = SynthesisAttempt(policy.attempt, policy.level, policy.temperature)
            result.attempts.append(step)
            try:
                candidate = await self._call(constraints, meal_slot, tracker.names(), policy)
                validate_candidate(candidate, meal_slot)
                if not tracker.try_reserve(candidate.name):
                    raise RetryableSynthesisError(f"name collision: '{candidate.name}'")
            except FatalSynthesisError:
                policy.fail_fatal()
                _LOG.error("fatal synthesizer error for %s – aborting", meal_slot)
                raise
            except RetryableSynthesisError as exc:
                step.error = str(exc)
                _LOG.warning(
                    "%s attempt %d level %d failed: %s",
                    meal_slot, policy.attempt, policy.level, exc,
                )
                await _report(on_failure, meal_slot, policy, exc)
                policy.advance()
                continue

            policy.accept()
            result.recipe = candidate

        if result.missing:
            _LOG.warning("%s exhausted %d synthesizer calls", meal_slot, policy.calls_budget)
        return result

    async def _call(
        self,
        constraints: Constraints,
        meal_slot: MealSlot,
        exclude: list[str],
        policy: RelaxationPolicy,
    ) -> CandidateRecipe:
        try:
            return await asyncio.wait_for(
                self._synth.synthesize(
                    constraints,
                    meal_slot,
                    exclude,
                    temperature=policy.temperature,
                    guidance=policy.guidance,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise RetryableSynthesisError(f"synthesizer timed out after {self._timeout}s") from exc


async def _report(
    hook: FailureHook | None,
    meal_slot: MealSlot,
    policy: RelaxationPolicy,
    exc: RetryableSynthesisError,
) -> None:
    if hook is None:
        return
    try:
        await hook(meal_slot, policy.attempt, policy.level, exc)
    except Exception as hook_exc:  # auditing never changes the outcome
        _LOG.error("failure hook raised: %s", hook_exc)
