"""
`python -m workers.sweep_expired`           → one pass, then exit
`python -m workers.sweep_expired --loop`    → pass every SWEEP_INTERVAL_SECONDS

A pass deletes unfavorited temporary recipes past their expiry and marks
meal plans past their expiration date as expired. Both halves are
idempotent, so overlapping or repeated runs are harmless.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from config import settings
from core.lifecycle import lifecycle
from core.meal_plan_expiry import mark_expired_plans
from services.db import init_models, session_scope, utcnow

_LOG = logging.getLogger(__name__)


@dataclass
class SweepReport:
    recipes_deleted: list[int]
    plans_expired: list[int]


async def run_once(now: datetime | None = None) -> SweepReport:
    now = now or utcnow()
    async with session_scope() as db:
        deleted = await lifecycle.sweep(db, now)
    async with session_scope() as db:
        expired = await mark_expired_plans(db, now)
    return SweepReport([r.id for r in deleted], expired)


async def run_forever(interval: int | None = None) -> None:
    interval = interval or settings.sweep_interval_seconds
    while True:
        try:
            report = await run_once()
            _LOG.info(
                "sweep done: %d recipes deleted, %d plans expired",
                len(report.recipes_deleted), len(report.plans_expired),
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            _LOG.exception("expiration sweep failed; retrying next interval")
        await asyncio.sleep(interval)


async def _main(loop: bool) -> None:
    await init_models()
    if loop:
        await run_forever()
    else:
        report = await run_once()
        print(f"✓ deleted {len(report.recipes_deleted)} recipes, expired {len(report.plans_expired)} plans")


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--loop", action="store_true", help="keep running on the sweep interval")
    args = ap.parse_args()
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(_main(args.loop))


if __name__ == "__main__":
    main()
