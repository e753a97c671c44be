# services/gemini.py
from __future__ import annotations

import functools
import logging
from typing import Sequence

import httpx
from google import genai
from google.genai import types, errors as gerrors
from pydantic import ValidationError

from config import settings
from core.errors import FatalSynthesisError, RetryableSynthesisError
from core.models.recipe import CandidateRecipe, Constraints, MealSlot
from scripts.helpers import extract_clean_json

_LOG = logging.getLogger(__name__)

# HTTP codes / RPC statuses that mean "stop, retrying cannot help"
_FATAL_CODES = {401, 403, 429}
_FATAL_STATUSES = {"UNAUTHENTICATED", "PERMISSION_DENIED", "RESOURCE_EXHAUSTED"}

SYSTEM_PROMPT = (
    "You are a professional chef and nutritionist. Create detailed, healthy "
    "recipes following the dietary restrictions and allergies exactly. Always "
    "respond with complete, valid JSON containing all required fields."
)


# ───────────── API Key & Client ─────────────
@functools.lru_cache(maxsize=1)
def _client() -> genai.Client:
    if not settings.gemini_api_key:
        raise FatalSynthesisError("GEMINI_API_KEY not set in environment")
    return genai.Client(api_key=settings.gemini_api_key)


def is_fatal(exc: gerrors.APIError) -> bool:
    return exc.code in _FATAL_CODES or (exc.status or "") in _FATAL_STATUSES


# ───────────── Prompt ─────────────
def build_recipe_prompt(
    constraints: Constraints,
    meal_slot: MealSlot,
    exclude_names: Sequence[str],
    guidance: str,
) -> str:
    c = constraints
    lines = [
        f"Generate a unique and detailed recipe that is suitable for {meal_slot}. "
        "Do not include recipes with Tofu unless the user chose Vegetarian or Vegan.",
        f"Must follow dietary restrictions: {', '.join(c.dietary)}"
        if c.dietary else "No specific dietary restrictions",
        "STRICT REQUIREMENT - Must completely avoid these allergens and any "
        f"ingredients that contain them: {', '.join(c.allergies)}"
        if c.allergies else "No allergies to consider",
        f"Preferred cuisines: {', '.join(c.cuisine)}"
        if c.cuisine else "No specific cuisine preference",
        f"Preferred protein types: {', '.join(c.proteins)}"
        if c.proteins else "No specific protein preference",
    ]
    if exclude_names:
        lines.append(f"Must NOT generate any of these recipes: {', '.join(exclude_names)}")
    lines.append(guidance)
    lines.append(
        "\nYou must respond with a valid recipe in this exact JSON format:\n"
        "{\n"
        '  "name": "Recipe Name",\n'
        '  "description": "Brief description",\n'
        f'  "meal_type": "{meal_slot}",\n'
        '  "prep_time": minutes (number),\n'
        '  "cook_time": minutes (number),\n'
        '  "servings": number,\n'
        '  "ingredients": [{ "name": "ingredient", "amount": number, "unit": "unit" }],\n'
        '  "instructions": ["step 1", "step 2"],\n'
        '  "tags": ["tag1", "tag2"],\n'
        '  "nutrition": { "calories": number, "protein": number, "carbs": number, "fat": number },\n'
        '  "complexity": number (1 for easy, 2 for medium, 3 for hard)\n'
        "}"
    )
    return "\n".join(lines)


def parse_recipe(raw: str) -> CandidateRecipe:
    try:
        data = extract_clean_json(raw)
        return CandidateRecipe.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise RetryableSynthesisError(f"unparseable recipe: {e}", raw_output=raw) from e


# ───────────── Recipe synthesizer ─────────────
class GeminiRecipeSynthesizer:
    def __init__(self, model: str | None = None, max_output_tokens: int = 2000) -> None:
        self._model = model or settings.chat_model
        self._max_tokens = max_output_tokens

    async def synthesize(
        self,
        constraints: Constraints,
        meal_slot: MealSlot,
        exclude_names: Sequence[str],
        temperature: float,
        guidance: str,
    ) -> CandidateRecipe:
        prompt = build_recipe_prompt(constraints, meal_slot, exclude_names, guidance)
        _LOG.debug("recipe prompt (%s, t=%.2f):\n%s", meal_slot, temperature, prompt)
        try:
            resp = await _client().aio.models.generate_content(
                model=self._model,
                contents=[prompt],
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    temperature=temperature,
                    max_output_tokens=self._max_tokens,
                    response_mime_type="application/json",
                ),
            )
        except gerrors.APIError as e:
            if is_fatal(e):
                raise FatalSynthesisError(f"Gemini refused request: {e.code} {e.status}") from e
            raise RetryableSynthesisError(f"Gemini error: {e}") from e
        except (httpx.TransportError, OSError) as e:
            raise RetryableSynthesisError(f"Failed to connect to Gemini: {e}") from e

        text = resp.text
        if not text:
            raise RetryableSynthesisError("Empty response from Gemini")
        return parse_recipe(text)


# ───────────── Image synthesizer ─────────────
class GeminiImageSynthesizer:
    def __init__(self, model: str | None = None) -> None:
        self._model = model or settings.image_model

    async def synthesize(self, subject: str, allergy_hints: Sequence[str]) -> bytes:
        prompt = (
            f"A professional, appetizing photo of {subject}. The image should be "
            "well-lit, showing the complete dish from a top-down or 45-degree angle."
        )
        if allergy_hints:
            prompt += f" The dish contains no {', '.join(allergy_hints)}; do not show them."
        resp = await _client().aio.models.generate_images(
            model=self._model,
            prompt=prompt,
            config=types.GenerateImagesConfig(number_of_images=1),
        )
        if not resp.generated_images or resp.generated_images[0].image is None:
            raise RuntimeError(f"no image generated for '{subject}'")
        data = resp.generated_images[0].image.image_bytes
        if not data:
            raise RuntimeError(f"empty image payload for '{subject}'")
        return data

