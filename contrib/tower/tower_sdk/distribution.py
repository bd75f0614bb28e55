"""
Lobster Tower SDK - Distribution Ledger

Proportional earnings accounting in O(1) per entry.

Each entry's participant share is spread over all active positions by
advancing a per-round accumulator:

    accumulator += participant_share * PRECISION // active_count

A new position stores the accumulator value at entry time as its
earnings debt, so it is owed nothing from earlier entries. What a
position has earned is then

    accrued  = (accumulator[round] - earnings_debt) // PRECISION
    unclaimed = accrued - claimed

Truncation dust from both divisions stays in the earnings reserve and is
never paid out, so the ledger can never promise more than it holds.

This class is pure accounting. It does not move tokens and does not
lock; the engine calls it from inside its critical section.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .config import BPS_DENOMINATOR, PRECISION, TowerConfig
from .errors import InvalidAmount, NothingToClaim, UnknownPosition
from .tower_types import Position, Split

log = logging.getLogger(__name__)


class DistributionLedger:
    """
    Positions, accumulators and aggregate counters.

    Usage:
        ledger = DistributionLedger(config)
        position, split, instant_to = ledger.enter(100, "alice")
        ledger.unclaimed(position.position_id)
        total, claimed = ledger.claim("alice")
    """

    _SCALARS = ("next_position_id", "active_count", "round_id", "last_position_id",
                "pool", "earnings_reserve", "total_burned", "total_paid_out",
                "total_instant_paid", "total_claimed")

    def __init__(self, config: TowerConfig):
        self.config = config

        self.positions: Dict[int, Position] = {}
        self.positions_by_owner: Dict[str, List[int]] = {}
        self.next_position_id = 1

        # Active positions of the current round (denominator of future splits)
        self.active_count = 0
        self.round_id = 0
        self.accumulators: Dict[int, int] = {0: 0}
        # Position id of the newest entry in the current round
        self.last_position_id: Optional[int] = None

        self.pool = 0                   # pool (stack) / pot (tower)
        self.earnings_reserve = 0       # distributed participant shares not yet claimed
        self.total_burned = 0
        self.total_paid_out = 0
        self.total_instant_paid = 0
        self.total_claimed = 0

    # ═══════════════════════════════════════════════════════════════════════
    # SPLIT
    # ═══════════════════════════════════════════════════════════════════════

    def compute_split(self, amount: int) -> Split:
        """Divide `amount` by the configured basis-point ratios; pool takes the rest."""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"Amount must be a positive integer, got {amount}")

        participant = amount * self.config.participant_bps // BPS_DENOMINATOR
        burn = amount * self.config.burn_bps // BPS_DENOMINATOR
        instant = amount * self.config.instant_bps // BPS_DENOMINATOR
        pool = amount - participant - burn - instant

        split = Split(amount=amount, participant=participant, burn=burn,
                      instant=instant, pool=pool)
        if min(participant, burn, instant, pool) < 0 or split.total != amount:
            raise AssertionError(f"Split does not conserve value: {split}")
        return split

    # ═══════════════════════════════════════════════════════════════════════
    # ENTRY
    # ═══════════════════════════════════════════════════════════════════════

    def enter(self, amount: int, account: str) -> Tuple[Position, Split, Optional[str]]:
        """
        Record an entry of `amount` by `account`.

        Returns (new position, split, instant reward recipient). The
        recipient is None when there was no earlier position this round, in
        which case the instant share went to the pool instead.
        """
        split = self.compute_split(amount)
        accumulator = self.accumulators[self.round_id]

        if self.active_count == 0:
            # Nobody to pay: participant share lands in the pool
            self.pool += split.participant
        else:
            accumulator += split.participant * PRECISION // self.active_count
            self.accumulators[self.round_id] = accumulator
            self.earnings_reserve += split.participant
            self.total_paid_out += split.participant

        instant_to = None
        if split.instant:
            if self.last_position_id is not None:
                instant_to = self.positions[self.last_position_id].owner
                self.total_instant_paid += split.instant
            else:
                self.pool += split.instant

        self.pool += split.pool
        self.total_burned += split.burn

        position = Position(
            position_id=self.next_position_id,
            owner=account,
            round_id=self.round_id,
            earnings_debt=accumulator,
        )
        self.positions[position.position_id] = position
        self.positions_by_owner.setdefault(account, []).append(position.position_id)
        self.next_position_id += 1
        self.active_count += 1
        self.last_position_id = position.position_id

        return position, split, instant_to

    # ═══════════════════════════════════════════════════════════════════════
    # EARNINGS
    # ═══════════════════════════════════════════════════════════════════════

    def get_position(self, position_id: int) -> Position:
        position = self.positions.get(position_id)
        if position is None:
            raise UnknownPosition(f"Position {position_id} does not exist")
        return position

    def accrued(self, position: Position) -> int:
        """Total ever earned by a position (claimed or not)."""
        accumulator = self.accumulators.get(position.round_id, 0)
        return (accumulator - position.earnings_debt) // PRECISION

    def unclaimed(self, position_id: int) -> int:
        """Unclaimed earnings of a position; 0 for positions that never existed."""
        position = self.positions.get(position_id)
        if position is None:
            return 0
        return self.accrued(position) - position.claimed

    def unclaimed_of(self, account: str) -> int:
        return sum(self.unclaimed(pid) for pid in self.positions_by_owner.get(account, []))

    def positions_of(self, account: str) -> List[int]:
        return list(self.positions_by_owner.get(account, []))

    def claim(self, account: str) -> Tuple[int, List[Tuple[Position, int]]]:
        """
        Advance every position of `account` to fully claimed.

        Returns (total, [(position, previous claimed), ...]) so the caller
        can roll back with revert_claim() if the payout transfer fails.
        """
        total = 0
        touched: List[Tuple[Position, int]] = []
        for pid in self.positions_by_owner.get(account, []):
            position = self.positions[pid]
            accrued = self.accrued(position)
            owed = accrued - position.claimed
            if owed > 0:
                touched.append((position, position.claimed))
                position.claimed = accrued
                total += owed

        if total == 0:
            raise NothingToClaim(f"{account} has nothing to claim")

        if total > self.earnings_reserve:
            raise AssertionError(
                f"Claim of {total} exceeds earnings reserve {self.earnings_reserve}")
        self.earnings_reserve -= total
        self.total_claimed += total
        return total, touched

    def revert_claim(self, total: int, touched: List[Tuple[Position, int]]) -> None:
        for position, previous in touched:
            position.claimed = previous
        self.earnings_reserve += total
        self.total_claimed -= total

    # ═══════════════════════════════════════════════════════════════════════
    # POOL / ROUNDS
    # ═══════════════════════════════════════════════════════════════════════

    def drain_pool(self, amount: Optional[int] = None) -> int:
        """Take `amount` (default: everything) out of the pool."""
        if amount is None:
            amount = self.pool
        if amount < 0 or amount > self.pool:
            raise InvalidAmount(f"Cannot take {amount} from pool of {self.pool}")
        self.pool -= amount
        return amount

    def checkpoint(self) -> dict:
        """
        Everything a single entry, topple or withdrawal can change.

        Constant size: new positions are found by id, and claims are
        undone separately with revert_claim().
        """
        data = {name: getattr(self, name) for name in self._SCALARS}
        data["accumulator"] = self.accumulators[self.round_id]
        return data

    def rollback(self, checkpoint: dict) -> None:
        """Return to `checkpoint`, dropping positions and rounds created since."""
        for pid in range(checkpoint["next_position_id"], self.next_position_id):
            position = self.positions.pop(pid, None)
            if position is None:
                continue
            owned = self.positions_by_owner.get(position.owner, [])
            if pid in owned:
                owned.remove(pid)
            if not owned:
                self.positions_by_owner.pop(position.owner, None)
        for round_id in [r for r in self.accumulators if r > checkpoint["round_id"]]:
            del self.accumulators[round_id]
        for name in self._SCALARS:
            setattr(self, name, checkpoint[name])
        self.accumulators[self.round_id] = checkpoint["accumulator"]


    def start_new_round(self) -> int:
        """
        Freeze the current round and open the next one.

        Earlier positions keep accruing against their own (now frozen)
        accumulator, so past entitlements stay claimable. Returns the
        height (active count) of the round that ended.
        """
        ended_height = self.active_count
        self.round_id += 1
        self.accumulators[self.round_id] = 0
        self.active_count = 0
        self.last_position_id = None
        return ended_height

    # ═══════════════════════════════════════════════════════════════════════
    # AUDIT
    # ═══════════════════════════════════════════════════════════════════════

    def outstanding(self) -> int:
        """Sum of unclaimed earnings over every position. O(positions)."""
        return sum(self.unclaimed(pid) for pid in self.positions)

    def held(self) -> int:
        """Tokens the ledger must hold in custody."""
        return self.pool + self.earnings_reserve

    def is_solvent(self) -> bool:
        return self.outstanding() <= self.earnings_reserve

    # ═══════════════════════════════════════════════════════════════════════
    # SERIALIZATION
    # ═══════════════════════════════════════════════════════════════════════

    def to_dict(self) -> dict:
        return {
            "positions": [p.to_dict() for p in self.positions.values()],
            "next_position_id": self.next_position_id,
            "active_count": self.active_count,
            "round_id": self.round_id,
            "accumulators": {str(r): acc for r, acc in self.accumulators.items()},
            "last_position_id": self.last_position_id,
            "pool": self.pool,
            "earnings_reserve": self.earnings_reserve,
            "total_burned": self.total_burned,
            "total_paid_out": self.total_paid_out,
            "total_instant_paid": self.total_instant_paid,
            "total_claimed": self.total_claimed,
        }

    @classmethod
    def from_dict(cls, data: dict, config: TowerConfig) -> "DistributionLedger":
        ledger = cls(config)
        for position_data in data.get("positions", []):
            position = Position.from_dict(position_data)
            ledger.positions[position.position_id] = position
            ledger.positions_by_owner.setdefault(position.owner, []).append(position.position_id)
        for pids in ledger.positions_by_owner.values():
            pids.sort()
        ledger.next_position_id = int(data.get("next_position_id", len(ledger.positions) + 1))
        ledger.active_count = int(data.get("active_count", 0))
        ledger.round_id = int(data.get("round_id", 0))
        ledger.accumulators = {int(r): int(acc) for r, acc in data.get("accumulators", {"0": 0}).items()}
        ledger.accumulators.setdefault(ledger.round_id, 0)
        last = data.get("last_position_id")
        ledger.last_position_id = int(last) if last is not None else None
        for name in ("pool", "earnings_reserve", "total_burned", "total_paid_out",
                     "total_instant_paid", "total_claimed"):
            setattr(ledger, name, int(data.get(name, 0)))
        return ledger
