"""Pydantic schemas for reward listing and claims."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ClaimRequest(BaseModel):
    reward_id: str = Field(..., min_length=1, max_length=64)
    idempotency_key: str | None = Field(None, min_length=8, max_length=128)


class ClaimResult(BaseModel):
    """Body of every claim response. Errors also travel with HTTP 200."""

    success: bool = False
    tx: str | None = None
    error: str | None = None
    details: str | None = None


class RewardEntry(BaseModel):
    """A user reward with its token and season flattened in."""

    id: str
    season_id: int
    season_name: str
    token_symbol: str
    token_decimals: int
    amount: int
    claimed: bool
    claimed_at: datetime | None
    tx_hash: str | None
    claims_enabled: bool
    created_at: datetime


class RewardListResponse(BaseModel):
    rewards: list[RewardEntry]
    total: int
