"""
Tests for the accumulator accounting in tower_sdk/distribution.py.
"""

import pytest

from tower_sdk import (
    PRECISION,
    DistributionLedger,
    InvalidAmount,
    NothingToClaim,
    TowerConfig,
    Variant,
)


@pytest.fixture
def ledger():
    config = TowerConfig.for_variant(Variant.TOWER, "owner", entry_cost=100)
    return DistributionLedger(config)


@pytest.fixture
def stack_ledger():
    config = TowerConfig.for_variant(Variant.STACK, "owner", entry_cost=100)
    return DistributionLedger(config)


class TestSplit:
    """Basis-point split of one entry."""

    def test_tower_split(self, ledger):
        split = ledger.compute_split(100)
        assert (split.participant, split.burn, split.instant, split.pool) == (80, 10, 0, 10)

    def test_remainder_goes_to_pool(self, ledger):
        split = ledger.compute_split(7)
        # 7 * 0.8 = 5.6 -> 5, 7 * 0.1 = 0.7 -> 0
        assert split.participant == 5
        assert split.burn == 0
        assert split.pool == 2
        assert split.total == 7

    def test_stack_split_has_instant_share(self, stack_ledger):
        split = stack_ledger.compute_split(1000)
        assert (split.participant, split.burn, split.instant, split.pool) == (700, 100, 100, 100)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_rejects_non_positive(self, ledger, amount):
        with pytest.raises(InvalidAmount):
            ledger.compute_split(amount)


class TestEntryTrace:
    """Entry cost 100, ratios 80/10/10, three sequential entries."""

    def test_first_entrant_share_lands_in_pot(self, ledger):
        before = ledger.pool
        ledger.enter(100, "alice")
        assert ledger.pool - before == 90
        assert ledger.total_burned == 10
        assert ledger.total_paid_out == 0
        assert ledger.unclaimed(1) == 0

    def test_three_entries(self, ledger):
        ledger.enter(100, "alice")
        assert ledger.pool == 90

        ledger.enter(100, "bob")
        assert ledger.pool == 100
        assert ledger.unclaimed(1) == 80
        assert ledger.unclaimed(2) == 0

        ledger.enter(100, "carol")
        assert ledger.pool == 110
        assert ledger.unclaimed(1) == 120
        assert ledger.unclaimed(2) == 40
        assert ledger.unclaimed(3) == 0

        assert ledger.total_burned == 30
        assert ledger.total_paid_out == 160
        assert ledger.active_count == 3

    def test_earnings_debt_is_accumulator_at_entry(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        assert ledger.positions[2].earnings_debt == 80 * PRECISION
        ledger.enter(100, "carol")
        assert ledger.positions[2].earnings_debt == 80 * PRECISION
        assert ledger.positions[3].earnings_debt == 120 * PRECISION

    def test_position_ids_are_sequential(self, ledger):
        ids = [ledger.enter(100, "alice")[0].position_id for _ in range(4)]
        assert ids == [1, 2, 3, 4]
        assert ledger.positions_of("alice") == [1, 2, 3, 4]


class TestUnclaimed:

    def test_unknown_position_is_zero(self, ledger):
        assert ledger.unclaimed(42) == 0

    def test_unclaimed_of_sums_positions(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        # alice#1: 80 + 40, alice#2: 40
        assert ledger.unclaimed_of("alice") == 160
        assert ledger.unclaimed_of("bob") == 0


class TestClaim:

    def test_claim_then_nothing(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        total, touched = ledger.claim("alice")
        assert total == 80
        assert [p.position_id for p, _ in touched] == [1]
        with pytest.raises(NothingToClaim):
            ledger.claim("alice")

    def test_claim_reaccrues_after_new_entry(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        ledger.claim("alice")
        ledger.enter(100, "carol")
        assert ledger.unclaimed(1) == 40
        total, _ = ledger.claim("alice")
        assert total == 40

    def test_revert_claim_restores_state(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        reserve = ledger.earnings_reserve
        total, touched = ledger.claim("alice")
        ledger.revert_claim(total, touched)
        assert ledger.unclaimed(1) == 80
        assert ledger.earnings_reserve == reserve


class TestConservation:
    """Value in == unclaimed + claimed + pool + burned + instant + dust."""

    @pytest.mark.parametrize("entries", [1, 2, 7, 50])
    def test_tower_conservation(self, ledger, entries):
        for i in range(entries):
            ledger.enter(100, f"p{i % 3}")
        value = 100 * entries
        accounted = ledger.outstanding() + ledger.pool + ledger.total_burned + ledger.total_instant_paid
        dust = value - accounted
        assert 0 <= dust <= entries
        assert ledger.is_solvent()

    def test_stack_conservation_with_odd_amounts(self, stack_ledger):
        amounts = [97, 101, 333, 7, 1000, 13, 59]
        for i, amount in enumerate(amounts):
            stack_ledger.enter(amount, f"p{i % 2}")
        value = sum(amounts)
        accounted = (stack_ledger.outstanding() + stack_ledger.pool
                     + stack_ledger.total_burned + stack_ledger.total_instant_paid)
        assert 0 <= value - accounted <= len(amounts)
        assert stack_ledger.outstanding() <= stack_ledger.earnings_reserve

    def test_dust_is_retained_not_paid(self, ledger):
        # 80 split over 3 positions: 26 each, 2 stays behind
        for name in ("a", "b", "c", "d"):
            ledger.enter(100, name)
        assert ledger.unclaimed(1) == 80 + 40 + 26
        assert ledger.unclaimed(2) == 40 + 26
        assert ledger.unclaimed(3) == 26
        assert ledger.earnings_reserve - ledger.outstanding() == 2


class TestRounds:

    def test_new_round_freezes_old_positions(self, ledger):
        ledger.enter(100, "alice")
        ledger.enter(100, "bob")
        ended = ledger.start_new_round()
        assert ended == 2
        assert ledger.active_count == 0

        ledger.enter(100, "carol")      # redirected into the pool, round 1
        ledger.enter(100, "dave")       # pays carol only
        assert ledger.unclaimed(1) == 80
        assert ledger.unclaimed(2) == 0
        assert ledger.unclaimed(3) == 80
        assert ledger.positions[3].round_id == 1

    def test_drain_pool(self, ledger):
        ledger.enter(100, "alice")
        assert ledger.drain_pool() == 90
        assert ledger.pool == 0
        with pytest.raises(InvalidAmount):
            ledger.drain_pool(1)


class TestSerialization:

    def test_round_trip_preserves_entitlements(self, ledger):
        for name in ("alice", "bob", "carol"):
            ledger.enter(100, name)
        ledger.claim("alice")
        ledger.start_new_round()
        ledger.enter(100, "dave")

        restored = DistributionLedger.from_dict(ledger.to_dict(), ledger.config)
        for pid in ledger.positions:
            assert restored.unclaimed(pid) == ledger.unclaimed(pid)
        assert restored.round_id == 1
        assert restored.pool == ledger.pool
        assert restored.positions_of("alice") == [1]
        assert restored.next_position_id == 5
