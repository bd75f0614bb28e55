"""
Lobster Tower SDK - Delayed Public Randomness

The lottery rolls against the hash of the block a commitment landed in.
That hash does not exist when the commit is made and, like the EVM's
BLOCKHASH, it can only be read for a bounded number of later blocks.

Sources:
  - LocalChain: in-process block producer (dev mode, tests, simulations)
  - RPCBlockSource: block hashes of a live EVM node
"""

import logging
import secrets
import threading
from typing import Dict, Optional

from web3 import Web3

from .rpc_client import RPCClient

log = logging.getLogger(__name__)

# BLOCKHASH only serves the 256 most recent blocks
BLOCKHASH_HISTORY = 256


class RandomnessSource:
    """Current height plus hashes of recent sealed blocks."""

    def current_height(self) -> int:
        raise NotImplementedError

    def block_hash(self, height: int) -> Optional[bytes]:
        """Hash of a sealed block, or None when unavailable (future or too old)."""
        raise NotImplementedError


def in_blockhash_range(height: int, current: int) -> bool:
    return current - BLOCKHASH_HISTORY <= height < current


class LocalChain(RandomnessSource):
    """
    Minimal block producer.

    `height` is the block currently being built (the block a transaction
    submitted now would land in); every block below it is sealed and has
    a hash. Hashes chain keccak256(prev_hash || salt), with a random salt
    per block unless a seed is given for reproducible runs.

    Usage:
        chain = LocalChain()
        chain.mine()            # seal the current block
        chain.block_hash(0)     # now readable
    """

    def __init__(self, start_height: int = 0, seed: Optional[bytes] = None):
        self.height = start_height
        self.seed = seed
        self._hashes: Dict[int, bytes] = {}
        self._last_hash = b"\x00" * 32
        self._lock = threading.Lock()

    def current_height(self) -> int:
        return self.height

    def mine(self, blocks: int = 1) -> int:
        """Seal `blocks` blocks. Returns the new current height."""
        if blocks < 0:
            raise ValueError(f"blocks must be non-negative, got {blocks}")
        with self._lock:
            for _ in range(blocks):
                if self.seed is not None:
                    salt = self.seed + self.height.to_bytes(32, "big")
                else:
                    salt = secrets.token_bytes(32)
                self._last_hash = bytes(Web3.keccak(self._last_hash + salt))
                self._hashes[self.height] = self._last_hash
                self.height += 1
                # Keep memory bounded to what BLOCKHASH can ever return
                self._hashes.pop(self.height - BLOCKHASH_HISTORY - 1, None)
            height = self.height
        log.debug(f"Mined {blocks} block(s), height now {height}")
        return height

    def block_hash(self, height: int) -> Optional[bytes]:
        with self._lock:
            if not in_blockhash_range(height, self.height):
                return None
            return self._hashes.get(height)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "height": self.height,
                "seed": self.seed.hex() if self.seed is not None else None,
                "last_hash": self._last_hash.hex(),
                "hashes": {str(h): value.hex() for h, value in self._hashes.items()},
            }

    def load_dict(self, data: dict) -> None:
        with self._lock:
            self.height = int(data["height"])
            seed = data.get("seed")
            self.seed = bytes.fromhex(seed) if seed is not None else None
            self._last_hash = bytes.fromhex(data.get("last_hash", "00" * 32))
            self._hashes = {int(h): bytes.fromhex(value)
                            for h, value in data.get("hashes", {}).items()}


class RPCBlockSource(RandomnessSource):
    """Block hashes from an EVM node, limited to the BLOCKHASH range."""

    def __init__(self, rpc: RPCClient):
        self.rpc = rpc

    def current_height(self) -> int:
        # Next transaction lands in the block after the latest sealed one
        return self.rpc.block_number() + 1

    def block_hash(self, height: int) -> Optional[bytes]:
        if not in_blockhash_range(height, self.current_height()):
            return None
        value = self.rpc.block_hash(height)
        if not value:
            return None
        return Web3.to_bytes(hexstr=value)
