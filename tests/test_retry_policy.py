# tests/test_retry_policy.py
from __future__ import annotations

import math

import pytest

from core.retry_policy import RELAXATION_GUIDANCE, RelaxationPolicy


def test_attempts_advance_before_levels():
    p = RelaxationPolicy(max_attempts=3, max_level=4)
    seen = []
    while not p.done:
        seen.append((p.attempt, p.level))
        p.advance()

    assert seen[:4] == [(1, 1), (2, 1), (3, 1), (1, 2)]
    assert len(seen) == 12 == p.calls_budget
    assert p.outcome == "missing"


def test_temperature_grows_with_attempt_and_level():
    p = RelaxationPolicy(base_temperature=0.7, temperature_step=0.1, max_temperature=2.0)
    assert math.isclose(p.temperature, 0.7)
    p.advance()                              # attempt 2, level 1
    assert math.isclose(p.temperature, 0.8)
    p.advance()                              # attempt 3, level 1
    assert math.isclose(p.temperature, 0.9)
    p.advance()                              # attempt 1, level 2
    assert math.isclose(p.temperature, 1.0)
    p.advance()                              # attempt 2, level 2
    assert math.isclose(p.temperature, 1.1)


def test_temperature_never_drops_across_the_budget():
    p = RelaxationPolicy(max_attempts=3, max_level=4, base_temperature=0.7,
                         temperature_step=0.1, max_temperature=1.5)
    temps = []
    while not p.done:
        temps.append(p.temperature)
        p.advance()
    assert len(temps) == 12
    assert temps == sorted(temps)
    assert temps[-1] == 1.5


def test_temperature_is_capped():
    p = RelaxationPolicy(base_temperature=1.0, temperature_step=0.5, max_temperature=1.2)
    p.advance()
    p.advance()
    assert p.temperature == 1.2


def test_guidance_follows_level():
    p = RelaxationPolicy(max_attempts=1)
    levels = []
    while not p.done:
        levels.append(p.guidance)
        p.advance()
    assert levels == [RELAXATION_GUIDANCE[i] for i in (1, 2, 3, 4)]


def test_terminal_states_reject_further_transitions():
    p = RelaxationPolicy()
    p.accept()
    assert p.done and p.outcome == "accepted"
    with pytest.raises(RuntimeError):
        p.advance()

    f = RelaxationPolicy()
    f.fail_fatal()
    assert f.outcome == "fatal"


def test_invalid_bounds():
    with pytest.raises(ValueError):
        RelaxationPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RelaxationPolicy(max_level=5)
