import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from starlette.staticfiles import StaticFiles

from config import settings
from api.v1.deps import get_image_pipeline
from api.v1.router import api_router
from services.db import init_models
from workers.sweep_expired import run_forever

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    Path(settings.image_storage_dir).mkdir(parents=True, exist_ok=True)
    sweeper = asyncio.create_task(run_forever()) if settings.run_background_jobs else None
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    # let in-flight image uploads land before the loop goes away
    await get_image_pipeline().drain()


app = FastAPI(title="Meal-Plan API", version="1.0.0", lifespan=lifespan)

# CORS (public demo only – lock down in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")

app.mount(
    settings.image_public_path,
    StaticFiles(directory=settings.image_storage_dir, check_dir=False),
    name="images",
)


@app.get("/health", tags=["meta"])
def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.env_name}
