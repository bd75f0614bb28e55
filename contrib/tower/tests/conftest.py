"""
Shared fixtures: funded in-memory token, scripted chain, tower and stack.
"""

import pytest
from web3 import Web3

from tower_sdk import (
    InMemoryAssetLedger,
    LobsterStack,
    LobsterTower,
    TowerConfig,
    Variant,
    roll_for,
)
from tower_sdk.randomness import RandomnessSource, in_blockhash_range

OWNER = "owner"
CUSTODY = "custody"
ENTRY_COST = 100
PLAYERS = ["alice", "bob", "carol", "dave"]


class ScriptedChain(RandomnessSource):
    """Chain whose block hashes are known in advance: keccak('block' || height)."""

    def __init__(self, height: int = 10):
        self.height = height

    @staticmethod
    def hash_at(height: int) -> bytes:
        return bytes(Web3.keccak(b"block" + height.to_bytes(32, "big")))

    def current_height(self) -> int:
        return self.height

    def block_hash(self, height: int):
        if not in_blockhash_range(height, self.height):
            return None
        return self.hash_at(height)

    def mine(self, blocks: int = 1) -> int:
        self.height += blocks
        return self.height


def find_reveal(randomness: bytes, winning: bool = True, modulo: int = 69, start: int = 1) -> bytes:
    """First reveal (counting up from `start`) whose roll wins / loses."""
    i = start
    while True:
        reveal = i.to_bytes(32, "big")
        if (roll_for(reveal, randomness, modulo) == 0) == winning:
            return reveal
        i += 1


def fund(assets: InMemoryAssetLedger, account: str, entries: int = 10, cost: int = ENTRY_COST):
    assets.mint(account, cost * entries)
    assets.approve(account, CUSTODY, cost * entries)


@pytest.fixture
def assets():
    ledger = InMemoryAssetLedger()
    for player in PLAYERS:
        fund(ledger, player, entries=50)
    return ledger


@pytest.fixture
def chain():
    return ScriptedChain()


@pytest.fixture
def tower_config():
    return TowerConfig.for_variant(Variant.TOWER, OWNER, entry_cost=ENTRY_COST)


@pytest.fixture
def stack_config():
    return TowerConfig.for_variant(Variant.STACK, OWNER, entry_cost=ENTRY_COST)


@pytest.fixture
def tower(assets, tower_config, chain):
    return LobsterTower(assets, tower_config, CUSTODY, chain)


@pytest.fixture
def stack(assets, stack_config):
    return LobsterStack(assets, stack_config, CUSTODY)
