"""Rewards API: list and claim."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Header
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from soltap.auth.dependencies import get_current_user
from soltap.chain.client import ChainError, TreasuryClient, get_treasury_client
from soltap.database import get_session
from soltap.db.models import User
from soltap.redis_client import get_redis
from soltap.rewards.errors import ClaimRejectedError
from soltap.rewards.schemas import ClaimRequest, ClaimResult, RewardListResponse
from soltap.rewards.service import claim_reward, list_user_rewards

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


@router.get("", response_model=RewardListResponse)
async def get_rewards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RewardListResponse:
    rewards = await list_user_rewards(db, user.id)
    return RewardListResponse(rewards=rewards, total=len(rewards))


@router.post("/claim", response_model=ClaimResult, response_model_exclude_none=True)
async def claim(
    body: ClaimRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),  # type: ignore[assignment]
    chain: TreasuryClient = Depends(get_treasury_client),
    idempotency_header: str | None = Header(None, alias="Idempotency-Key"),
) -> ClaimResult:
    """Claim a reward. Rejections come back with HTTP 200 and an ``error`` field."""
    idempotency_key = body.idempotency_key or idempotency_header
    try:
        signature = await claim_reward(
            db,
            redis,
            chain,
            user_id=user.id,
            reward_id=body.reward_id,
            idempotency_key=idempotency_key,
        )
    except ClaimRejectedError as e:
        logger.info("claim_rejected", reward_id=body.reward_id, user_id=user.id, reason=str(e))
        return ClaimResult(error=str(e), details=type(e).__name__)
    except ChainError as e:
        logger.error("claim_chain_error", reward_id=body.reward_id, user_id=user.id, error=str(e))
        return ClaimResult(error="On-chain transfer failed", details=type(e).__name__)
    except Exception as e:
        logger.exception("claim_failed", reward_id=body.reward_id, user_id=user.id)
        await db.rollback()
        return ClaimResult(error="Unknown error", details=type(e).__name__)

    return ClaimResult(success=True, tx=signature)
