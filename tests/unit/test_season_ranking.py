"""Unit tests for season ranking and tier allocation."""

from soltap.seasons.ranking import TierRule, allocate_tiers, rank_best_per_wallet


def _tier(rank_min: int, rank_max: int, amount: int, token: int = 1) -> TierRule:
    return TierRule(rank_min=rank_min, rank_max=rank_max, amount=amount, reward_token_id=token)


class TestRankBestPerWallet:
    def test_best_time_per_wallet(self):
        entries = [
            {"wallet_address": "A", "time_ms": 100},
            {"wallet_address": "B", "time_ms": 150},
            {"wallet_address": "A", "time_ms": 90},
        ]
        ranked = rank_best_per_wallet(entries)
        assert [(e["wallet_address"], e["time_ms"], e["rank"]) for e in ranked] == [
            ("A", 90, 1),
            ("B", 150, 2),
        ]

    def test_tie_keeps_arrival_order(self):
        entries = [
            {"wallet_address": "late", "time_ms": 120, "seq": 1},
            {"wallet_address": "early", "time_ms": 120, "seq": 2},
        ]
        ranked = rank_best_per_wallet(entries)
        assert ranked[0]["wallet_address"] == "late"
        assert ranked[1]["rank"] == 2

    def test_ranks_are_dense(self):
        entries = [{"wallet_address": w, "time_ms": t} for w, t in [("A", 1), ("A", 2), ("B", 3), ("C", 4)]]
        assert [e["rank"] for e in rank_best_per_wallet(entries)] == [1, 2, 3]

    def test_entries_without_wallet_skipped(self):
        entries = [{"wallet_address": None, "time_ms": 1}, {"wallet_address": "A", "time_ms": 5}]
        ranked = rank_best_per_wallet(entries)
        assert len(ranked) == 1
        assert ranked[0]["rank"] == 1

    def test_empty(self):
        assert rank_best_per_wallet([]) == []

    def test_input_not_mutated(self):
        entries = [{"wallet_address": "A", "time_ms": 10}]
        rank_best_per_wallet(entries)
        assert "rank" not in entries[0]


class TestAllocateTiers:
    def test_single_tier_pays_winner_only(self):
        ranked = rank_best_per_wallet([
            {"wallet_address": "A", "time_ms": 100},
            {"wallet_address": "B", "time_ms": 150},
            {"wallet_address": "A", "time_ms": 90},
        ])
        allocations = allocate_tiers(ranked, [_tier(1, 1, 500)])
        assert allocations == [{"rank": 1, "wallet_address": "A", "reward_token_id": 1, "amount": 500}]

    def test_tier_bounds_inclusive(self):
        ranked = [{"wallet_address": w, "rank": r} for r, w in enumerate("ABCD", start=1)]
        allocations = allocate_tiers(ranked, [_tier(2, 3, 10)])
        assert [a["wallet_address"] for a in allocations] == ["B", "C"]

    def test_overlapping_tiers_pay_twice(self):
        ranked = [{"wallet_address": "A", "rank": 1}]
        allocations = allocate_tiers(ranked, [_tier(1, 3, 10, token=1), _tier(1, 1, 50, token=2)])
        assert [(a["reward_token_id"], a["amount"]) for a in allocations] == [(1, 10), (2, 50)]

    def test_ranks_outside_every_tier(self):
        ranked = [{"wallet_address": "A", "rank": 11}]
        assert allocate_tiers(ranked, [_tier(1, 10, 100)]) == []

    def test_no_tiers(self):
        assert allocate_tiers([{"wallet_address": "A", "rank": 1}], []) == []
