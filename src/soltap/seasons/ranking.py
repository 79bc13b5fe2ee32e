"""Season ranking and tier allocation: pure functions, no I/O.

Scores are ranked by time_ms ASC (lower is better). Each wallet holds one
leaderboard slot per season: its best run. Ties keep the order the scores
arrived in, which the loader fixes to created_at ASC.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TierRule:
    """Inclusive rank range paying ``amount`` base units of a reward token."""

    rank_min: int
    rank_max: int
    amount: int
    reward_token_id: int

    def covers(self, rank: int) -> bool:
        return self.rank_min <= rank <= self.rank_max


def rank_best_per_wallet(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep each wallet's best entry and number the survivors.

    Input: dicts with at least ``wallet_address`` and ``time_ms``.
    Output: new dicts, sorted best first, each with a 1-indexed ``rank``.
    """
    ordered = sorted(entries, key=lambda e: e["time_ms"])

    seen: set[str] = set()
    ranked: list[dict[str, Any]] = []
    for entry in ordered:
        wallet = entry.get("wallet_address")
        if not wallet or wallet in seen:
            continue
        seen.add(wallet)
        ranked.append({**entry, "rank": len(ranked) + 1})
    return ranked


def allocate_tiers(
    ranked: list[dict[str, Any]],
    tiers: list[TierRule],
) -> list[dict[str, Any]]:
    """Match every ranked entry against every tier.

    An entry inside several tiers (overlapping ranges, or several campaigns)
    receives one allocation per matching tier.
    """
    allocations: list[dict[str, Any]] = []
    for entry in ranked:
        for tier in tiers:
            if tier.covers(entry["rank"]):
                allocations.append({
                    "rank": entry["rank"],
                    "wallet_address": entry["wallet_address"],
                    "reward_token_id": tier.reward_token_id,
                    "amount": tier.amount,
                })
    return allocations
