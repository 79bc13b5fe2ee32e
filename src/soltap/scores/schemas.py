"""Pydantic schemas for score submission and leaderboards."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ScoreSubmitRequest(BaseModel):
    wallet_address: str = Field(..., min_length=32, max_length=44)
    tx_signature: str = Field(..., min_length=32, max_length=128)
    game_mode: str = "reaction_test"
    time_ms: int | None = Field(None, ge=0, le=600_000)
    score: int | None = Field(None, ge=0)


class ScoreEntry(BaseModel):
    id: int
    wallet_address: str
    game_mode: str
    time_ms: int | None
    score: int | None
    created_at: datetime


class LeaderboardResponse(BaseModel):
    game_mode: str
    entries: list[ScoreEntry]
