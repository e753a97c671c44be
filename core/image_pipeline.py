"""
core/image_pipeline.py
────────────────────────────────────────────────────────────────────────
Fire-and-forget image materialization for freshly saved recipes.

For each recipe the pipeline
  1. obtains a transient image (given ref, or asks the image synthesizer),
  2. fetches the bytes when the transient ref is a URL,
  3. uploads them to the permanent store,
  4. patches `permanent_url` on the recipe row.

Any failure along the way resolves to the fixed fallback reference. Work
runs as detached asyncio tasks with their own DB sessions, so neither a
slow image nor a disconnected client touches the generation response.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable, Sequence

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.interfaces import ImageStore, ImageSynthesizer
from services.db import TemporaryRecipe, session_scope

_LOG = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ImagePipeline:
    def __init__(
        self,
        synthesizer: ImageSynthesizer,
        store: ImageStore,
        *,
        fallback_url: str | None = None,
        fetch_attempts: int | None = None,
        fetch_timeout: float | None = None,
        session_factory: SessionFactory = session_scope,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._synth = synthesizer
        self._store = store
        self.fallback_url = fallback_url or settings.fallback_image_url
        self._attempts = fetch_attempts or settings.image_fetch_attempts
        self._timeout = fetch_timeout or settings.image_fetch_timeout_seconds
        self._sessions = session_factory
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    # ─────────────────────────── scheduling ───────────────────────── #
    def schedule(
        self,
        recipe_id: int,
        subject: str,
        allergy_hints: Sequence[str] = (),
        transient_ref: str | None = None,
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self.materialize(recipe_id, subject, allergy_hints, transient_ref),
            name=f"image-{recipe_id}",
        )
        # the event loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight materialization (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ─────────────────────────── the work ─────────────────────────── #
    async def materialize(
        self,
        recipe_id: int,
        subject: str,
        allergy_hints: Sequence[str] = (),
        transient_ref: str | None = None,
    ) -> str:
        try:
            ref = transient_ref or await self._synth.synthesize(subject, list(allergy_hints))
            if isinstance(ref, str):
                data = await self._fetch(ref)
            else:
                data = ref
            permanent = await self._store.store(data, recipe_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _LOG.warning("image for recipe %s ('%s') fell back: %s", recipe_id, subject, e)
            permanent = self.fallback_url

        await self._patch(recipe_id, permanent)
        return permanent

    async def _fetch(self, url: str) -> bytes:
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"unsupported image reference: {url!r}")

        last: Exception | None = None
        async with httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True, transport=self._transport
        ) as client:
            for attempt in range(1, self._attempts + 1):
                try:
                    resp = await client.get(url)
                    resp.raise_for_status()
                    return resp.content
                except httpx.HTTPError as e:
                    last = e
                    _LOG.debug("image fetch %d/%d failed for %s: %s", attempt, self._attempts, url, e)
        raise RuntimeError(f"image fetch failed after {self._attempts} attempts: {last}")

    async def _patch(self, recipe_id: int, permanent: str) -> None:
        try:
            async with self._sessions() as db:
                await db.execute(
                    update(TemporaryRecipe)
                    .where(TemporaryRecipe.id == recipe_id)
                    .values(permanent_url=permanent)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        except Exception as e:
            _LOG.error("could not record image for recipe %s: %s", recipe_id, e)
