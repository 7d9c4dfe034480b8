"""Background task scheduler: daily licensure review.

Licenses expire with time, so a licensure section stored as complete can
become stale. Once a day every stored profile's licenses are re-validated
and the completion flag, percentage, and `is_complete` are brought up to
date.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that fires once per day at the configured hour:

    LICENSE_REVIEW_HOUR=3   (run at 03:00 UTC daily, via .env)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

from fastapi import FastAPI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session
from app.models.physician_profile import PhysicianProfile
from app.schemas.profile import normalize_section
from app.services.profile_gateway import normalize_completion
from app.services.profile_sections import SectionId, calculate_progress, validate_licensure
from app.utils.redis_client import close_redis

logger = logging.getLogger(__name__)


async def review_licenses(db: AsyncSession, today: date | None = None) -> int:
    """Re-validate stored licenses; returns the number of profiles updated."""
    key = SectionId.LICENSURE.value
    result = await db.execute(
        select(PhysicianProfile).where(PhysicianProfile.licenses.is_not(None))
    )

    changed = 0
    for profile in result.scalars():
        licensure = normalize_section(key, profile.licenses or [])
        is_complete = validate_licensure(licensure, today).is_complete

        completion = normalize_completion(profile.completion_status)
        if completion[key] == is_complete:
            continue

        completion[key] = is_complete
        profile.completion_status = completion
        profile.completion_percentage = calculate_progress(completion)
        if profile.completion_percentage < 100:
            profile.is_complete = False
        changed += 1
        logger.info(
            "Licensure for user %s is now %s",
            profile.user_id, "complete" if is_complete else "incomplete",
        )

    await db.commit()
    return changed


async def run_daily_license_review() -> None:
    logger.info("Starting daily license review")
    async with async_session() as db:
        try:
            changed = await review_licenses(db)
        except Exception:
            await db.rollback()
            raise
    logger.info("Daily license review complete: %d profiles updated", changed)


def seconds_until(hour: int, now: datetime | None = None) -> float:
    """Seconds from `now` until the next `hour`:00 UTC."""
    now = now or datetime.now(timezone.utc)
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    while True:
        wait_seconds = seconds_until(settings.license_review_hour)
        logger.info("Next license review in %.0f seconds", wait_seconds)
        await asyncio.sleep(wait_seconds)

        try:
            await run_daily_license_review()
        except Exception:
            logger.exception("Unhandled error in daily license review")

        # Avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = asyncio.create_task(_scheduler_loop())
    logger.info("License review scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await close_redis()
        logger.info("License review scheduler stopped")
