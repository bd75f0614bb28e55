"""
Tests for the local block producer used in dev mode and simulations.
"""

import pytest

from tower_sdk import LocalChain
from tower_sdk.randomness import BLOCKHASH_HISTORY, in_blockhash_range


class TestLocalChain:

    def test_current_block_has_no_hash(self):
        chain = LocalChain()
        assert chain.current_height() == 0
        assert chain.block_hash(0) is None
        chain.mine()
        assert chain.current_height() == 1
        assert len(chain.block_hash(0)) == 32
        assert chain.block_hash(1) is None

    def test_seeded_chains_agree(self):
        a = LocalChain(seed=b"seed")
        b = LocalChain(seed=b"seed")
        a.mine(5)
        b.mine(5)
        assert [a.block_hash(h) for h in range(5)] == [b.block_hash(h) for h in range(5)]

    def test_unseeded_hashes_differ(self):
        a, b = LocalChain(), LocalChain()
        a.mine()
        b.mine()
        assert a.block_hash(0) != b.block_hash(0)

    def test_old_hashes_fall_out_of_range(self):
        chain = LocalChain()
        chain.mine(BLOCKHASH_HISTORY)
        assert chain.block_hash(0) is not None
        chain.mine()
        assert chain.block_hash(0) is None
        assert chain.block_hash(1) is not None

    def test_start_height(self):
        chain = LocalChain(start_height=100)
        assert chain.mine(2) == 102
        assert chain.block_hash(101) is not None

    def test_negative_mine_rejected(self):
        with pytest.raises(ValueError):
            LocalChain().mine(-1)


@pytest.mark.parametrize("height,current,expected", [
    (9, 10, True),
    (10, 10, False),
    (10 - 256, 10, True),
    (10 - 257, 10, False),
])
def test_in_blockhash_range(height, current, expected):
    assert in_blockhash_range(height, current) is expected
