"""Background task scheduler: runs the daily invoice overdue sweep.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
No external dependencies (no Celery, no APScheduler), just a simple
asyncio.sleep loop that fires once per day at the configured hour.

Configuration:
    OVERDUE_SWEEP_HOUR=2   (run at 02:00 UTC daily, via .env)

With several API workers each one runs its own loop; the sweep is
idempotent and version-checked, so a second run finds nothing to flip.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from fastapi import FastAPI

from jobflow.auth.permissions import Actor
from jobflow.config import settings
from jobflow.database import async_session
from jobflow.models.employee import EmployeeRole
from jobflow.services.errors import ConflictError
from jobflow.services.invoices import mark_overdue_invoices
from jobflow.utils.cache import close_redis

logger = logging.getLogger("jobflow.scheduler")

SYSTEM_ACTOR = Actor(employee_id="system", role=EmployeeRole.ADMIN)


async def run_overdue_sweep(
    session_factory=async_session,
    today: date | None = None,
    attempts: int = 2,
) -> list[str]:
    """Mark past-due SENT invoices OVERDUE; retry once on a version conflict."""
    logger.info("Starting overdue sweep")

    for attempt in range(1, attempts + 1):
        async with session_factory() as db:
            try:
                flipped = await mark_overdue_invoices(db, SYSTEM_ACTOR, today=today)
                await db.commit()
            except ConflictError:
                await db.rollback()
                logger.warning("Overdue sweep hit a version conflict (attempt %d/%d)", attempt, attempts)
                continue
            except Exception:
                await db.rollback()
                raise

        logger.info("Overdue sweep complete: %d invoice(s) marked overdue", len(flipped))
        return flipped

    logger.error("Overdue sweep gave up after %d attempts", attempts)
    return []


def seconds_until(target_hour: int, now: datetime) -> float:
    """Seconds from ``now`` until the next ``target_hour``:00 (today or tomorrow)."""
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    """Sleep loop that fires the sweep once per day."""
    while True:
        now = datetime.now(timezone.utc)
        wait_seconds = seconds_until(settings.overdue_sweep_hour, now)
        logger.info("Next overdue sweep in %.0f seconds", wait_seconds)

        await asyncio.sleep(wait_seconds)

        try:
            await run_overdue_sweep()
        except Exception:
            logger.exception("Unhandled error in overdue sweep")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = asyncio.create_task(_scheduler_loop())
    logger.info("Overdue sweep scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await close_redis()
        logger.info("Overdue sweep scheduler stopped")
