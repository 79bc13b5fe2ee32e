"""Season settlement arq worker.

Runs the settlement job on a cron schedule:
    arq soltap.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.config import get_settings
from soltap.database import close_db, get_session, init_db
from soltap.seasons.service import process_next_season

logger = logging.getLogger(__name__)


async def season_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Season worker started")


async def season_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Season worker shut down")


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def settle_season(ctx: dict) -> dict | None:  # type: ignore[type-arg]
    """Scheduled task: settle the earliest ended season, if any.

    Failures are logged and the season stays pending for the next tick.
    """
    redis_client: aioredis.Redis = ctx["redis"]
    db = await _get_db_session()

    try:
        result = await process_next_season(db, redis_client)
    except Exception:
        logger.exception("Season settlement run failed")
        return None
    finally:
        await db.close()

    if result.processed:
        logger.info(
            "Season %s settled: %d rewards, %d skipped",
            result.season, result.rewards_generated, result.rewards_skipped,
        )
    return result.to_response()


def _cron_minutes(step: int) -> set[int]:
    step = max(1, min(step, 60))
    return set(range(0, 60, step))


class WorkerSettings:
    """arq worker settings for season settlement."""

    functions = [settle_season]
    cron_jobs = [
        cron(settle_season, minute=_cron_minutes(get_settings().season_cron_minutes), run_at_startup=False),
    ]
    on_startup = season_startup
    on_shutdown = season_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = 300
