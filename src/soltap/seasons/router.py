"""Season settlement trigger."""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.config import get_settings
from soltap.database import get_session
from soltap.redis_client import get_redis
from soltap.seasons.service import process_next_season

router = APIRouter(prefix="/api/v1/seasons", tags=["Seasons"])


def _check_cron_secret(x_cron_secret: str | None = Header(None)) -> None:
    """When a cron secret is configured, callers must present it."""
    expected = get_settings().cron_secret
    if expected and not hmac.compare_digest(expected, x_cron_secret or ""):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.post("/process", dependencies=[Depends(_check_cron_secret)])
async def process_season(
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
) -> JSONResponse:
    """Settle the earliest pending season. No body required."""
    try:
        result = await process_next_season(db, redis)
    except Exception:
        return JSONResponse(status_code=500, content={"error": "Season processing failed"})
    return JSONResponse(content=result.to_response())
