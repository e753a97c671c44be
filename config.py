"""
Centralised settings loader.

Every tunable of the generation batch, the recipe lifecycle and the image
pipeline lives here so deployments can override them from the environment
or a `.env` file.
"""

from __future__ import annotations
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ------------------------------------------------------------------ #
#  Master settings model
# ------------------------------------------------------------------ #
class _Settings(BaseSettings):
    # ─── runtime / DB / API keys ────────────────────────────────────
    env_name: str = "local"
    log_level: str = "INFO"
    database_url: str | None = "sqlite+aiosqlite:///./mealplanner.db"
    cloud_sql_instance: str | None = Field(None, validation_alias="CLOUD_SQL_CONNECTION_NAME")
    db_user: str | None = None
    db_pass: str | None = None
    db_name: str | None = None
    jwt_secret: str = "changeme"
    jwt_ttl_minutes: int = 60

    # ─── Gemini ─────────────────────────────────────────────────────
    gemini_api_key: str | None = None
    chat_model: str = "models/gemini-2.0-flash"
    image_model: str = "imagen-3.0-generate-002"

    # ─── recipe synthesis (attempts × relaxation levels) ────────────
    synth_max_attempts: int = Field(3, ge=1)
    synth_relaxation_levels: int = Field(4, ge=1, le=4)
    synth_base_temperature: float = 0.7
    synth_temperature_step: float = 0.1
    synth_max_temperature: float = 1.5
    synth_timeout_seconds: float = 45.0
    generation_workers: int = Field(6, ge=1)

    # ─── temporary recipe lifecycle ─────────────────────────────────
    temp_recipe_ttl_days: int = 2
    favorite_ttl_days: int = 365

    # ─── quota classes ──────────────────────────────────────────────
    free_tier_days: int = 2
    premium_tier_days: int = 7
    free_generation_limit: int = 3

    # ─── images ─────────────────────────────────────────────────────
    fallback_image_url: str = "/static/images/recipe-placeholder.webp"
    image_storage_dir: str = "storage/recipes"
    image_public_path: str = "/api/images"
    image_max_dimension: int = 1024
    image_fetch_attempts: int = Field(2, ge=1)
    image_fetch_timeout_seconds: float = 30.0

    # ─── background jobs ────────────────────────────────────────────
    sweep_interval_seconds: int = 60 * 60
    run_background_jobs: bool = True

    # allow other teammates’ env-vars without crashing
    model_config = SettingsConfigDict(
        extra="ignore", env_file=".env", env_file_encoding="utf-8"
    )


# ------------------------------------------------------------------ #
#  Cached singleton accessor
# ------------------------------------------------------------------ #
@lru_cache
def _cached() -> _Settings:  # pragma: no cover
    return _Settings()  # type: ignore[call-arg]


settings: _Settings = _cached()
