"""Scores & leaderboard API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.database import get_session
from soltap.db.models import Score
from soltap.scores.schemas import LeaderboardResponse, ScoreEntry, ScoreSubmitRequest
from soltap.scores.service import LEADERBOARD_DEFAULT_LIMIT, LEADERBOARD_MAX_LIMIT, fetch_leaderboard, submit_score

router = APIRouter(prefix="/api/v1", tags=["Scores"])


def _entry(row: Score) -> ScoreEntry:
    return ScoreEntry(
        id=row.id,
        wallet_address=row.wallet_address,
        game_mode=row.game_mode,
        time_ms=row.time_ms,
        score=row.score,
        created_at=row.created_at,
    )


@router.post("/scores", response_model=ScoreEntry, status_code=201)
async def post_score(
    body: ScoreSubmitRequest,
    db: AsyncSession = Depends(get_session),
) -> ScoreEntry:
    try:
        row = await submit_score(
            db,
            wallet_address=body.wallet_address,
            tx_signature=body.tx_signature,
            game_mode=body.game_mode,
            time_ms=body.time_ms,
            score=body.score,
        )
    except ValueError as e:
        detail = str(e)
        status = 409 if "already used" in detail else 400
        raise HTTPException(status_code=status, detail=detail) from e
    await db.commit()
    return _entry(row)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    game_mode: str = Query("reaction_test"),
    limit: int = Query(LEADERBOARD_DEFAULT_LIMIT, ge=1, le=LEADERBOARD_MAX_LIMIT),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    try:
        rows = await fetch_leaderboard(db, game_mode=game_mode, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return LeaderboardResponse(game_mode=game_mode, entries=[_entry(r) for r in rows])
