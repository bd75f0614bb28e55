"""
Lobster Tower SDK - Data Types

Positions, lottery commitments, splits and events, plus their JSON forms.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import time

from web3 import Web3


def to_hex32(value: bytes) -> str:
    """Render a 32-byte value as 0x-prefixed hex."""
    return Web3.to_hex(value)


def from_hex32(value: str) -> bytes:
    """Parse 0x-prefixed (or bare) hex into exactly 32 bytes."""
    raw = Web3.to_bytes(hexstr=value)
    if len(raw) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(raw)}")
    return raw


class Variant(Enum):
    """Ledger variant"""
    STACK = "stack"
    TOWER = "tower"


class CommitmentStatus(Enum):
    """Commitment lifecycle: OPEN -> WON | LOST | EXPIRED (terminal)"""
    OPEN = "open"
    WON = "won"
    LOST = "lost"
    EXPIRED = "expired"

    @property
    def resolved(self) -> bool:
        return self is not CommitmentStatus.OPEN


@dataclass
class Position:
    """
    One participant's entry.

    Entitlement of a position is implicit:
        accrued = (accumulator[round_id] - earnings_debt) // PRECISION

    Only `claimed` ever changes after creation.
    """
    position_id: int
    owner: str
    round_id: int = 0
    earnings_debt: int = 0
    claimed: int = 0
    created_ts: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {
            "position_id": self.position_id,
            "owner": self.owner,
            "round_id": self.round_id,
            "earnings_debt": self.earnings_debt,
            "claimed": self.claimed,
            "created_ts": self.created_ts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(
            position_id=int(data["position_id"]),
            owner=data["owner"],
            round_id=int(data.get("round_id", 0)),
            earnings_debt=int(data.get("earnings_debt", 0)),
            claimed=int(data.get("claimed", 0)),
            created_ts=int(data.get("created_ts", time.time())),
        )


@dataclass
class Commitment:
    """
    Lottery commitment bound to a position.

    commit_hash = keccak256(reveal); the randomness it is rolled against is
    the hash of the block at commit_height, unknown when the commit lands.
    """
    position_id: int
    commit_hash: bytes
    commit_height: int
    committer: str
    status: CommitmentStatus = CommitmentStatus.OPEN
    resolved_height: Optional[int] = None
    created_ts: int = field(default_factory=lambda: int(time.time()))

    @property
    def is_open(self) -> bool:
        return self.status is CommitmentStatus.OPEN

    def to_dict(self) -> dict:
        return {
            "position_id": self.position_id,
            "commit_hash": to_hex32(self.commit_hash),
            "commit_height": self.commit_height,
            "committer": self.committer,
            "status": self.status.value,
            "resolved_height": self.resolved_height,
            "created_ts": self.created_ts,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Commitment":
        resolved = data.get("resolved_height")
        return cls(
            position_id=int(data["position_id"]),
            commit_hash=from_hex32(data["commit_hash"]),
            commit_height=int(data["commit_height"]),
            committer=data["committer"],
            status=CommitmentStatus(data.get("status", "open")),
            resolved_height=int(resolved) if resolved is not None else None,
            created_ts=int(data.get("created_ts", time.time())),
        )


@dataclass(frozen=True)
class Split:
    """How one entry payment is divided."""
    amount: int
    participant: int
    burn: int
    instant: int
    pool: int

    @property
    def total(self) -> int:
        return self.participant + self.burn + self.instant + self.pool


@dataclass(frozen=True)
class OutcomeCheck:
    """
    Read-only lottery evaluation (the frontend's fullCheck).

    blocks_remaining: blocks left to submit the winning reveal; 0 once expired.
    available: randomness exists (False while pending or after expiry).
    """
    is_winner: bool
    roll: Optional[int]
    expired: bool
    blocks_remaining: int
    available: bool = True

    def to_dict(self) -> dict:
        return {
            "winner": self.is_winner,
            "roll": self.roll,
            "expired": self.expired,
            "blocks_remaining": self.blocks_remaining,
            "available": self.available,
        }


@dataclass(frozen=True)
class LedgerStats:
    """Aggregate counters shared by both variants."""
    height: int
    round_id: int
    pool: int
    entry_cost: int
    total_burned: int
    total_paid_out: int
    total_instant_paid: int
    total_positions: int
    paused: bool

    def to_dict(self) -> dict:
        return {
            "height": self.height,
            "round": self.round_id,
            "pool": self.pool,
            "entry_cost": self.entry_cost,
            "total_burned": self.total_burned,
            "total_paid_out": self.total_paid_out,
            "total_instant_paid": self.total_instant_paid,
            "total_positions": self.total_positions,
            "paused": self.paused,
        }


@dataclass(frozen=True)
class TowerStats(LedgerStats):
    """Tower counters, in the order the frontend's getTowerStats reads them."""
    total_toppled: int = 0
    block_height: int = 0

    @property
    def pot(self) -> int:
        return self.pool

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["pot"] = data.pop("pool")
        data["total_toppled"] = self.total_toppled
        data["block_height"] = self.block_height
        return data


@dataclass
class Event:
    """Auditable record emitted by every successful mutation."""
    seq: int
    name: str
    args: Dict[str, Any]
    block_height: int = 0
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "name": self.name,
            "args": dict(self.args),
            "block_height": self.block_height,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            seq=int(data["seq"]),
            name=data["name"],
            args=dict(data.get("args", {})),
            block_height=int(data.get("block_height", 0)),
            timestamp=int(data.get("timestamp", time.time())),
        )
