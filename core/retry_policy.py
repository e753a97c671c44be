"""
core/retry_policy.py
────────────────────────────────────────────────────────────────────────
Finite-state retry / relaxation policy for one slot task.

State is the pair (attempt, level). `advance()` moves to the next attempt
inside the current relaxation level; once attempts are used up the level
steps up and the attempt counter resets. Running off the last level puts
the policy into the terminal `missing` state. `accept()` and `fail_fatal()`
are the other two terminal transitions.

Temperature grows with every call of the budget, across level
boundaries too, so later attempts trade determinism for variety.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Terminal = Literal["accepted", "fatal", "missing"]

# prompt strictness per relaxation level (1 = strictest)
RELAXATION_GUIDANCE: dict[int, str] = {
    1: (
        "The recipe must be creatively unique: its name must not match or "
        "closely resemble any recipe already listed."
    ),
    2: (
        "A creative variation on a common, well-known dish is acceptable as "
        "long as the name is different from the recipes already listed."
    ),
    3: (
        "A variation of an existing classic dish is acceptable; give it a "
        "distinct name from the recipes already listed."
    ),
    4: (
        "Any recipe that satisfies the dietary, allergy and cuisine "
        "requirements is acceptable."
    ),
}


@dataclass
class RelaxationPolicy:
    max_attempts: int = 3
    max_level: int = 4
    base_temperature: float = 0.7
    temperature_step: float = 0.1
    max_temperature: float = 1.5

    attempt: int = 1
    level: int = 1
    outcome: Terminal | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1 or self.max_level < 1:
            raise ValueError("max_attempts and max_level must be >= 1")
        if self.max_level > len(RELAXATION_GUIDANCE):
            raise ValueError(f"at most {len(RELAXATION_GUIDANCE)} relaxation levels")

    @property
    def done(self) -> bool:
        return self.outcome is not None

    @property
    def temperature(self) -> float:
        steps = (self.level - 1) * self.max_attempts + (self.attempt - 1)
        return round(
            min(self.max_temperature, self.base_temperature + steps * self.temperature_step),
            3,
        )

    @property
    def guidance(self) -> str:
        return RELAXATION_GUIDANCE[self.level]

    @property
    def calls_budget(self) -> int:
        return self.max_attempts * self.max_level

    def advance(self) -> None:
        """Record a retryable failure at the current (attempt, level)."""
        if self.done:
            raise RuntimeError(f"policy already terminal ({self.outcome})")
        if self.attempt < self.max_attempts:
            self.attempt += 1
        elif self.level < self.max_level:
            self.level += 1
            self.attempt = 1
        else:
            self.outcome = "missing"

    def accept(self) -> None:
        self.outcome = "accepted"

    def fail_fatal(self) -> None:
        self.outcome = "fatal"
