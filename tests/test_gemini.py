# tests/test_gemini.py
from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from google.genai import errors as gerrors

from core.errors import FatalSynthesisError, RetryableSynthesisError
from core.models.recipe import Constraints
from scripts.helpers import extract_clean_json
from services import gemini

GOOD = {
    "name": "Chickpea Curry",
    "description": "Warm and filling",
    "meal_type": "dinner",
    "prep_time": "10",
    "cook_time": 25,
    "servings": 4,
    "ingredients": [{"name": "chickpeas", "amount": 400, "unit": "g"}],
    "instructions": ["Simmer everything."],
    "tags": ["vegan"],
    "nutrition": {"calories": 420, "protein": 15, "carbs": 50, "fat": 12},
    "complexity": 7,
}


def _api_error(code, status):
    return gerrors.APIError(code, {"error": {"code": code, "message": "nope", "status": status}})


class _FakeModels:
    def __init__(self, outcome):
        self.outcome = outcome
        self.kwargs = None

    async def generate_content(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return SimpleNamespace(text=self.outcome)


@pytest.fixture
def fake_client(monkeypatch):
    def _install(outcome):
        models = _FakeModels(outcome)
        monkeypatch.setattr(gemini, "_client", lambda: SimpleNamespace(aio=SimpleNamespace(models=models)))
        return models

    return _install


# ───────────── JSON extraction ─────────────
def test_extract_fenced_json():
    raw = "Here you go:\n```json\n" + json.dumps(GOOD) + "\n```\nEnjoy!"
    assert extract_clean_json(raw)["name"] == "Chickpea Curry"


def test_extract_bare_object_with_chatter():
    assert extract_clean_json('Sure! {"name": "Soup"} hope that helps')["name"] == "Soup"


def test_extract_unwraps_recipe_key():
    assert extract_clean_json('{"recipe": {"name": "x"}}') == {"name": "x"}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{not: valid}", "[1, 2]"])
def test_extract_rejects_garbage(raw):
    with pytest.raises(ValueError):
        extract_clean_json(raw)


# ───────────── prompt / parse ─────────────
def test_prompt_carries_constraints_and_exclusions():
    c = Constraints(dietary=["vegan"], allergies=["peanuts"], cuisine=["Thai"], proteins=["tofu"])
    prompt = gemini.build_recipe_prompt(c, "lunch", ["Pad Thai", "Green Curry"], "Stay close.")

    assert "suitable for lunch" in prompt
    assert "vegan" in prompt and "peanuts" in prompt and "Thai" in prompt
    assert "Must NOT generate any of these recipes: Pad Thai, Green Curry" in prompt
    assert '"meal_type": "lunch"' in prompt
    assert "Stay close." in prompt


def test_prompt_without_constraints():
    prompt = gemini.build_recipe_prompt(Constraints(), "dinner", [], "")
    assert "No allergies to consider" in prompt
    assert "Must NOT generate" not in prompt


def test_parse_recipe_normalises_fields():
    r = gemini.parse_recipe(json.dumps(GOOD))
    assert r.prep_time == 10
    assert r.complexity == 3
    assert r.ingredients[0].name == "chickpeas"


def test_parse_recipe_keeps_raw_output_on_failure():
    with pytest.raises(RetryableSynthesisError) as info:
        gemini.parse_recipe("the model rambled")
    assert info.value.raw_output == "the model rambled"


# ───────────── synthesizer ─────────────
async def test_synthesizer_returns_candidate(fake_client):
    models = fake_client(json.dumps(GOOD))
    out = await gemini.GeminiRecipeSynthesizer(model="test-model").synthesize(
        Constraints(), "dinner", ["Old Dish"], temperature=0.9, guidance="Be creative."
    )

    assert out.name == "Chickpea Curry"
    assert models.kwargs["model"] == "test-model"
    assert models.kwargs["config"].temperature == 0.9
    assert "Old Dish" in models.kwargs["contents"][0]


@pytest.mark.parametrize(
    "code,status",
    [(401, "UNAUTHENTICATED"), (403, "PERMISSION_DENIED"), (429, "RESOURCE_EXHAUSTED")],
)
async def test_auth_and_quota_errors_are_fatal(fake_client, code, status):
    fake_client(_api_error(code, status))
    with pytest.raises(FatalSynthesisError):
        await gemini.GeminiRecipeSynthesizer().synthesize(Constraints(), "dinner", [], 0.7, "")


@pytest.mark.parametrize(
    "outcome",
    [_api_error(500, "INTERNAL"), _api_error(503, "UNAVAILABLE"), ConnectionResetError("reset"), "", "oops"],
)
async def test_transient_problems_are_retryable(fake_client, outcome):
    fake_client(outcome)
    with pytest.raises(RetryableSynthesisError):
        await gemini.GeminiRecipeSynthesizer().synthesize(Constraints(), "dinner", [], 0.7, "")


def test_missing_api_key_is_fatal(monkeypatch):
    from config import settings

    gemini._client.cache_clear()
    monkeypatch.setattr(settings, "gemini_api_key", "")
    with pytest.raises(FatalSynthesisError):
        gemini._client()
    gemini._client.cache_clear()
