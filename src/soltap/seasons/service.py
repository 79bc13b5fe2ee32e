"""Season settlement.

Called by the arq cron job or the HTTP trigger. Each run settles at most one
season: the earliest ended, unprocessed season with rewards enabled. All
writes (provisioned users, reward rows, the processed flag) commit together,
so a failed run leaves nothing behind and the next run starts over.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from soltap.auth.service import find_wallet_user, load_wallet_user_map, provision_wallet_user
from soltap.config import get_settings
from soltap.db.models import RewardCampaign, Score, Season, UserReward
from soltap.redis_client import acquire_lease, release_lease
from soltap.seasons.ranking import TierRule, allocate_tiers, rank_best_per_wallet

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

NO_SEASONS = "No seasons to process"
NO_CAMPAIGNS = "No campaigns"
SEASON_BUSY = "Season already being processed"


@dataclass
class SeasonRunResult:
    """Outcome of one settlement run."""

    processed: bool
    message: str | None = None
    season: str | None = None
    season_id: int | None = None
    rewards_generated: int = 0
    rewards_skipped: int = 0

    def to_response(self) -> dict[str, Any]:
        if self.processed and self.message is None:
            return {
                "success": True,
                "season": self.season,
                "rewards_generated": self.rewards_generated,
            }
        return {"message": self.message}


def season_lock_key(season_id: int) -> str:
    return f"season:lock:{season_id}"


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


async def select_pending_season(db: AsyncSession, now: datetime) -> Season | None:
    """Earliest season that has ended, is unprocessed and pays rewards."""
    result = await db.execute(
        select(Season)
        .where(
            Season.end_at < now,
            Season.processed_at.is_(None),
            Season.rewards_enabled == True,  # noqa: E712
        )
        .order_by(Season.end_at.asc(), Season.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def load_season_tiers(db: AsyncSession, season_id: int) -> tuple[int, list[TierRule]]:
    """Active campaigns of a season, flattened to tier rules.

    Returns:
        Tuple of (active campaign count, tiers in campaign then rank order).
    """
    result = await db.execute(
        select(RewardCampaign)
        .options(selectinload(RewardCampaign.tiers))
        .where(RewardCampaign.season_id == season_id, RewardCampaign.active == True)  # noqa: E712
        .order_by(RewardCampaign.id)
    )
    campaigns = result.scalars().all()
    tiers = [
        TierRule(
            rank_min=tier.rank_min,
            rank_max=tier.rank_max,
            amount=int(tier.amount),
            reward_token_id=tier.reward_token_id,
        )
        for campaign in campaigns
        for tier in sorted(campaign.tiers, key=lambda t: (t.rank_min, t.id))
    ]
    return len(campaigns), tiers


async def load_season_scores(db: AsyncSession, season: Season, limit: int) -> list[dict[str, Any]]:
    """Timed scores inside the season window, fastest first."""
    result = await db.execute(
        select(Score.wallet_address, Score.time_ms, Score.created_at)
        .where(
            Score.created_at >= season.start_at,
            Score.created_at <= season.end_at,
            Score.time_ms.is_not(None),
        )
        .order_by(Score.time_ms.asc(), Score.created_at.asc())
        .limit(limit)
    )
    return [
        {"wallet_address": row.wallet_address, "time_ms": row.time_ms, "created_at": row.created_at}
        for row in result.all()
    ]


async def mark_processed(db: AsyncSession, season_id: int, now: datetime) -> None:
    await db.execute(
        update(Season)
        .where(Season.id == season_id)
        .values(processed_at=now, claims_enabled=True)
    )


async def _resolve_user_id(db: AsyncSession, wallet: str, wallet_to_user: dict[str, int]) -> int | None:
    """Known user for a wallet, or a freshly provisioned one. None if provisioning fails."""
    user_id = wallet_to_user.get(wallet)
    if user_id is not None:
        return user_id

    existing = await find_wallet_user(db, wallet)
    if existing is not None:
        wallet_to_user[wallet] = existing.id
        return existing.id

    logger.info("provisioning_user", wallet_address=wallet)
    try:
        async with db.begin_nested():
            user = await provision_wallet_user(db, wallet)
    except IntegrityError:
        logger.warning("user_provisioning_failed", wallet_address=wallet, exc_info=True)
        return None
    wallet_to_user[wallet] = user.id
    return user.id


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


async def process_next_season(
    db: AsyncSession,
    redis: Redis,
    now: datetime | None = None,
) -> SeasonRunResult:
    """Settle the next pending season, if any."""
    settings = get_settings()
    now = now or datetime.now(timezone.utc)

    season = await select_pending_season(db, now)
    if season is None:
        return SeasonRunResult(processed=False, message=NO_SEASONS)

    lock_key = season_lock_key(season.id)
    lease = await acquire_lease(redis, lock_key, settings.season_lock_ttl_seconds)
    if lease is None:
        logger.warning("season_lease_held", season_id=season.id)
        return SeasonRunResult(processed=False, message=SEASON_BUSY, season=season.name, season_id=season.id)

    try:
        # Another worker may have finished between selection and the lease
        await db.refresh(season)
        if season.processed_at is not None:
            return SeasonRunResult(processed=False, message=NO_SEASONS)

        result = await _settle(db, season, now, settings.season_score_limit)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("season_processing_failed", season_id=season.id)
        raise
    finally:
        await release_lease(redis, lock_key, lease)

    logger.info(
        "season_processed",
        season_id=season.id,
        season=season.name,
        rewards_generated=result.rewards_generated,
        rewards_skipped=result.rewards_skipped,
    )
    return result


async def _settle(db: AsyncSession, season: Season, now: datetime, score_limit: int) -> SeasonRunResult:
    logger.info("season_processing_started", season_id=season.id, season=season.name)

    wallet_to_user = await load_wallet_user_map(db)

    campaign_count, tiers = await load_season_tiers(db, season.id)
    if campaign_count == 0:
        logger.info("season_has_no_campaigns", season_id=season.id)
        await mark_processed(db, season.id, now)
        return SeasonRunResult(processed=True, message=NO_CAMPAIGNS, season=season.name, season_id=season.id)

    entries = await load_season_scores(db, season, score_limit)
    ranked = rank_best_per_wallet(entries)
    allocations = allocate_tiers(ranked, tiers)

    staged: list[dict[str, Any]] = []
    for allocation in allocations:
        wallet = allocation["wallet_address"]
        staged.append({
            "user_id": await _resolve_user_id(db, wallet, wallet_to_user),
            "season_id": season.id,
            "reward_token_id": allocation["reward_token_id"],
            "wallet_address": wallet,
            "amount": allocation["amount"],
            "claimed": False,
            "created_at": now,
        })

    valid = [r for r in staged if r["user_id"] is not None]
    skipped = len(staged) - len(valid)
    if skipped:
        logger.warning("season_rewards_skipped", season_id=season.id, skipped=skipped)

    if valid:
        await db.execute(insert(UserReward), valid)

    await mark_processed(db, season.id, now)
    return SeasonRunResult(
        processed=True,
        season=season.name,
        season_id=season.id,
        rewards_generated=len(valid),
        rewards_skipped=skipped,
    )
