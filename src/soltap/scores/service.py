"""Score submission and leaderboard queries."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from soltap.db.models import Score

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

# game mode -> ranking metric. Timed modes rank lower-is-better.
GAME_MODES: dict[str, str] = {
    "reaction_test": "time_ms",
    "multi_zone": "time_ms",
    "speed_run": "score",
}

LEADERBOARD_DEFAULT_LIMIT = 50
LEADERBOARD_MAX_LIMIT = 100


async def submit_score(
    db: AsyncSession,
    wallet_address: str,
    tx_signature: str,
    game_mode: str = "reaction_test",
    time_ms: int | None = None,
    score: int | None = None,
) -> Score:
    """
    Record a finished run. Scores are never updated afterwards.

    Raises:
        ValueError: Unknown game mode, missing metric, or a reused payment signature.
    """
    metric = GAME_MODES.get(game_mode)
    if metric is None:
        msg = f"Unknown game mode: {game_mode}"
        raise ValueError(msg)
    if metric == "time_ms" and time_ms is None:
        msg = f"time_ms is required for {game_mode}"
        raise ValueError(msg)
    if metric == "score" and score is None:
        msg = f"score is required for {game_mode}"
        raise ValueError(msg)

    row = Score(
        wallet_address=wallet_address,
        tx_signature=tx_signature,
        game_mode=game_mode,
        time_ms=time_ms,
        score=score,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        msg = "Transaction signature already used for a score"
        raise ValueError(msg) from e

    logger.info("score_submitted", score_id=row.id, game_mode=game_mode, wallet_address=wallet_address)
    return row


async def fetch_leaderboard(
    db: AsyncSession,
    game_mode: str = "reaction_test",
    limit: int = LEADERBOARD_DEFAULT_LIMIT,
) -> list[Score]:
    """Top scores for a mode: fastest first for timed modes, highest first otherwise."""
    metric = GAME_MODES.get(game_mode)
    if metric is None:
        msg = f"Unknown game mode: {game_mode}"
        raise ValueError(msg)
    limit = max(1, min(limit, LEADERBOARD_MAX_LIMIT))

    stmt = select(Score).where(Score.game_mode == game_mode)
    if metric == "time_ms":
        stmt = stmt.where(Score.time_ms.is_not(None)).order_by(Score.time_ms.asc(), Score.created_at.asc())
    else:
        stmt = stmt.where(Score.score.is_not(None)).order_by(Score.score.desc(), Score.created_at.asc())

    result = await db.execute(stmt.limit(limit))
    return list(result.scalars().all())
