"""ORM models for users, scores, seasons and rewards.

Column types stay portable so the same models run on PostgreSQL (asyncpg)
and on SQLite (aiosqlite) in the test suite.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from soltap.db.base import Base, BigIntPK, JSONType


def _uuid_str() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Wallet-backed identity. The wallet lives in ``user_metadata``."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)
    user_metadata: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    refresh_tokens: Mapped[list[RefreshToken]] = relationship("RefreshToken", back_populates="user")
    rewards: Mapped[list[UserReward]] = relationship("UserReward", back_populates="user")

    @property
    def wallet_address(self) -> str | None:
        metadata = self.user_metadata or {}
        return metadata.get("wallet_address") or metadata.get("address")


# ---------------------------------------------------------------------------
# Auth: Refresh Tokens
# ---------------------------------------------------------------------------


class RefreshToken(Base):
    """JWT refresh token tracking for revocation and rotation."""

    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    replaced_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="refresh_tokens")


# ---------------------------------------------------------------------------
# Scores (append-only)
# ---------------------------------------------------------------------------


class Score(Base):
    """One finished game run, paid for with an on-chain transaction."""

    __tablename__ = "scores"
    __table_args__ = (
        Index("idx_scores_mode_time", "game_mode", "time_ms"),
        Index("idx_scores_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    game_mode: Mapped[str] = mapped_column(String(32), nullable=False, server_default="reaction_test")
    tx_signature: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Seasons & reward configuration
# ---------------------------------------------------------------------------


class Season(Base):
    """A leaderboard window. open -> ended -> processed -> claimable."""

    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rewards_enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claims_enabled: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")

    campaigns: Mapped[list[RewardCampaign]] = relationship("RewardCampaign", back_populates="season")


class RewardToken(Base):
    """An SPL token paid out from a treasury wallet."""

    __tablename__ = "reward_tokens"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(16), nullable=False)
    mint_address: Mapped[str] = mapped_column(String(64), nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=9)
    treasury_secret_id: Mapped[str] = mapped_column(String(64), nullable=False)


class RewardCampaign(Base):
    """Groups the tiers paid out for one season."""

    __tablename__ = "reward_campaigns"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    season_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")

    season: Mapped[Season] = relationship("Season", back_populates="campaigns")
    tiers: Mapped[list[RewardTier]] = relationship("RewardTier", back_populates="campaign")


class RewardTier(Base):
    """Inclusive rank range -> token amount (base units)."""

    __tablename__ = "reward_tiers"
    __table_args__ = (CheckConstraint("rank_min >= 1 AND rank_max >= rank_min"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("reward_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    reward_token_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("reward_tokens.id"), nullable=False)
    rank_min: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_max: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    campaign: Mapped[RewardCampaign] = relationship("RewardCampaign", back_populates="tiers")
    reward_token: Mapped[RewardToken] = relationship("RewardToken")


# ---------------------------------------------------------------------------
# User rewards
# ---------------------------------------------------------------------------


class UserReward(Base):
    """A payout owed to a user. Mutated exactly once, when claimed."""

    __tablename__ = "user_rewards"
    __table_args__ = (CheckConstraint("NOT claimed OR tx_hash IS NOT NULL"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    season_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("seasons.id"), nullable=False)
    reward_token_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("reward_tokens.id"), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user: Mapped[User] = relationship("User", back_populates="rewards")
    season: Mapped[Season] = relationship("Season")
    reward_token: Mapped[RewardToken] = relationship("RewardToken")
