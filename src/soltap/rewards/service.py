"""
Reward listing and the claim executor.

A claim moves tokens on-chain first and marks the row claimed second. If
the transfer lands but the database write fails, the tokens are gone and the
row still reads unclaimed; that case is logged at CRITICAL with the
signature and left for manual reconciliation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from solders.pubkey import Pubkey
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from soltap.chain.client import TransactionFailedError, TreasuryKeyError
from soltap.config import get_settings
from soltap.db.models import UserReward
from soltap.redis_client import acquire_lease, release_lease
from soltap.rewards.errors import (
    AlreadyClaimedError,
    ClaimInProgressError,
    ClaimsDisabledError,
    InsufficientTreasuryError,
    RewardNotFoundError,
    TransferFailedError,
    TreasuryMisconfiguredError,
)
from soltap.rewards.schemas import RewardEntry

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

    from soltap.chain.client import TreasuryClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimableReward:
    """A reward row joined with its season and token, flattened."""

    id: str
    user_id: int
    wallet_address: str
    amount: int
    claimed: bool
    claims_enabled: bool
    mint_address: str
    treasury_secret_id: str


def claim_lock_key(reward_id: str) -> str:
    return f"claim:lock:{reward_id}"


def claim_result_key(user_id: int, reward_id: str, idempotency_key: str) -> str:
    return f"claim:result:{user_id}:{reward_id}:{idempotency_key}"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def load_claimable_reward(db: AsyncSession, reward_id: str, user_id: int) -> ClaimableReward | None:
    """Load a reward owned by ``user_id``. Someone else's reward reads as missing."""
    result = await db.execute(
        select(UserReward)
        .options(joinedload(UserReward.season), joinedload(UserReward.reward_token))
        .where(UserReward.id == reward_id, UserReward.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return None
    return ClaimableReward(
        id=row.id,
        user_id=row.user_id,
        wallet_address=row.wallet_address,
        amount=int(row.amount),
        claimed=bool(row.claimed),
        claims_enabled=bool(row.season.claims_enabled),
        mint_address=row.reward_token.mint_address,
        treasury_secret_id=row.reward_token.treasury_secret_id,
    )


async def list_user_rewards(db: AsyncSession, user_id: int) -> list[RewardEntry]:
    """All rewards of a user, newest first."""
    result = await db.execute(
        select(UserReward)
        .options(joinedload(UserReward.season), joinedload(UserReward.reward_token))
        .where(UserReward.user_id == user_id)
        .order_by(UserReward.created_at.desc(), UserReward.id)
    )
    return [
        RewardEntry(
            id=row.id,
            season_id=row.season_id,
            season_name=row.season.name,
            token_symbol=row.reward_token.symbol,
            token_decimals=row.reward_token.decimals,
            amount=int(row.amount),
            claimed=bool(row.claimed),
            claimed_at=row.claimed_at,
            tx_hash=row.tx_hash,
            claims_enabled=bool(row.season.claims_enabled),
            created_at=row.created_at,
        )
        for row in result.scalars().all()
    ]


# ---------------------------------------------------------------------------
# Claim executor
# ---------------------------------------------------------------------------


async def claim_reward(
    db: AsyncSession,
    redis: Redis,
    chain: TreasuryClient,
    user_id: int,
    reward_id: str,
    idempotency_key: str | None = None,
) -> str:
    """
    Pay out a reward and mark it claimed.

    Only one claim per reward runs at a time (Redis lease). A repeated
    request carrying the same ``idempotency_key`` gets the first result back
    without touching the chain.

    Returns:
        The transfer's transaction signature.

    Raises:
        ClaimRejectedError: Any business-rule rejection (see ``rewards.errors``).
    """
    settings = get_settings()
    lock_key = claim_lock_key(reward_id)
    lease = await acquire_lease(redis, lock_key, settings.claim_lock_ttl_seconds)
    if lease is None:
        raise ClaimInProgressError

    try:
        if idempotency_key:
            cached = await redis.get(claim_result_key(user_id, reward_id, idempotency_key))
            if cached:
                logger.info("claim_replayed", reward_id=reward_id, user_id=user_id, tx=cached)
                return str(cached)

        signature = await _execute_claim(db, chain, user_id, reward_id)

        if idempotency_key:
            await redis.set(
                claim_result_key(user_id, reward_id, idempotency_key),
                signature,
                ex=settings.claim_idempotency_ttl_seconds,
            )
        return signature
    finally:
        await release_lease(redis, lock_key, lease)


async def _execute_claim(db: AsyncSession, chain: TreasuryClient, user_id: int, reward_id: str) -> str:
    settings = get_settings()

    reward = await load_claimable_reward(db, reward_id, user_id)
    if reward is None:
        raise RewardNotFoundError
    if reward.claimed:
        raise AlreadyClaimedError
    if not reward.claims_enabled:
        raise ClaimsDisabledError

    try:
        treasury = chain.load_treasury(reward.treasury_secret_id)
    except TreasuryKeyError as e:
        logger.error("treasury_key_unavailable", reward_id=reward_id, secret_id=reward.treasury_secret_id)
        msg = "Server configuration error: treasury unavailable"
        raise TreasuryMisconfiguredError(msg) from e

    balance = await chain.get_balance(treasury.pubkey())
    if balance < settings.treasury_min_balance_lamports:
        logger.warning("treasury_low_balance", balance_lamports=balance, reward_id=reward_id)
        raise InsufficientTreasuryError(balance)

    try:
        mint = Pubkey.from_string(reward.mint_address)
        recipient = Pubkey.from_string(reward.wallet_address)
    except ValueError as e:
        msg = "Invalid mint or recipient address"
        raise TransferFailedError(msg) from e

    instructions = await chain.build_transfer_instructions(treasury.pubkey(), mint, recipient, reward.amount)
    try:
        signature = await chain.send_and_confirm(instructions, treasury)
    except TransactionFailedError as e:
        raise TransferFailedError(str(e)) from e

    await _mark_claimed(db, reward.id, signature)
    logger.info("reward_claimed", reward_id=reward.id, user_id=user_id, amount=reward.amount, tx=signature)
    return signature


async def _mark_claimed(db: AsyncSession, reward_id: str, signature: str) -> None:
    try:
        await db.execute(
            update(UserReward)
            .where(UserReward.id == reward_id)
            .values(claimed=True, claimed_at=datetime.now(timezone.utc), tx_hash=signature)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.critical(
            "reward_claim_db_update_failed",
            reward_id=reward_id,
            signature=signature,
            exc_info=True,
        )
