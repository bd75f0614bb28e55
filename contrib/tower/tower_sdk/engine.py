"""
Lobster Tower SDK - Ledger Engine

The serialization boundary around all ledger and lottery state.

Every mutation (enter, claim, commit, topple, resolve_loss, expire and
admin changes) runs inside one critical section, in total order. Token
movements happen through the AssetLedger, which is the only place
control can leave the engine. The payer debit happens before any state
changes. State is final before any outbound transfer. A mutation
re-entered from inside such a transfer is rejected with ReentrancyError.

A mutation is all or nothing: if anything raises after it started, its
token movements are reverted through AssetLedger.transaction() and the
ledger, lottery, config and event log return to their prior state.

Variants:
  - LobsterStack: open-ended stack, with an instant reward to the entrant below
  - LobsterTower: stack plus commit-reveal topple lottery over the pot
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from .admin import AdminPolicy
from .asset_ledger import AssetLedger
from .config import TowerConfig
from .distribution import DistributionLedger
from .errors import (
    AuthorizationError,
    PausedError,
    ReentrancyError,
    StaleOrInvalidCommitment,
    TowerError,
)
from .lottery import ZERO_HASH, CommitRevealLottery, mask_secret
from .randomness import RandomnessSource
from .tower_types import (
    Commitment,
    Event,
    LedgerStats,
    OutcomeCheck,
    Position,
    TowerStats,
    Variant,
    to_hex32,
)

log = logging.getLogger(__name__)

EventCallback = Callable[[Event], None]


class LedgerEngine:
    """
    Shared machinery of both variants.

    Usage:
        stack = LobsterStack(assets, TowerConfig.for_variant(Variant.STACK, "owner"), "stack")
        assets.approve("alice", "stack", stack.config.entry_cost)
        position_id = stack.enter("alice")
        stack.claim("alice")
    """

    variant = Variant.STACK

    def __init__(self, assets: AssetLedger, config: TowerConfig, custody_address: str):
        config.validate(self.variant)
        self.assets = assets
        self.config = config
        self.custody_address = custody_address
        self.ledger = DistributionLedger(config)
        self.admin = AdminPolicy(config, self.ledger, self.variant)

        self.events: List[Event] = []
        self._subscribers: List[EventCallback] = []

        self._lock = threading.Lock()
        self._writer: Optional[int] = None

    # ═══════════════════════════════════════════════════════════════════════
    # SERIALIZATION BOUNDARY
    # ═══════════════════════════════════════════════════════════════════════

    @contextmanager
    def _mutation(self, operation: str, rollback: bool = True):
        if self._writer == threading.get_ident():
            raise ReentrancyError(f"{operation} attempted during another mutation")
        with self._lock:
            self._writer = threading.get_ident()
            checkpoint = self._checkpoint() if rollback else None
            try:
                with self.assets.transaction():
                    yield
            except Exception as e:
                if checkpoint is not None:
                    self._rollback(checkpoint)
                if isinstance(e, TowerError):
                    log.warning(f"{operation} rejected: {e.__class__.__name__}: {e}")
                else:
                    log.error(f"{operation} failed and was rolled back: {e!r}")
                raise
            finally:
                self._writer = None

    def _checkpoint(self) -> dict:
        return {
            "ledger": self.ledger.checkpoint(),
            "config": self.config.to_dict(),
            "events": len(self.events),
        }

    def _rollback(self, checkpoint: dict):
        self.ledger.rollback(checkpoint["ledger"])
        # AdminPolicy shares this config object, so restore it in place
        for name, value in checkpoint["config"].items():
            setattr(self.config, name, value)
        del self.events[checkpoint["events"]:]

    @contextmanager
    def _read(self):
        # Reads from inside a mutation (e.g. a transfer hook) see finalized state
        if self._writer == threading.get_ident():
            yield
            return
        with self._lock:
            yield

    # ═══════════════════════════════════════════════════════════════════════
    # EVENTS
    # ═══════════════════════════════════════════════════════════════════════

    def subscribe(self, callback: EventCallback) -> None:
        self._subscribers.append(callback)

    def _emit(self, name: str, **args) -> Event:
        event = Event(seq=len(self.events) + 1, name=name, args=args,
                      block_height=self._block_height())
        self.events.append(event)
        for callback in list(self._subscribers):
            callback(event)
        return event

    def recent_events(self, name: str = "", limit: int = 10) -> List[Event]:
        """Newest first, optionally filtered by event name."""
        with self._read():
            matching = [e for e in reversed(self.events) if not name or e.name == name]
        return matching[:limit] if limit else matching

    def _block_height(self) -> int:
        return 0

    # ═══════════════════════════════════════════════════════════════════════
    # ENTRY
    # ═══════════════════════════════════════════════════════════════════════

    def _require_active(self):
        if self.config.paused:
            raise PausedError("Ledger is paused")

    def _enter(self, account: str, after_position: Optional[Callable[[Position], None]] = None) -> Position:
        self._require_active()
        amount = self.config.entry_cost
        # Validates the split before any token moves
        self.ledger.compute_split(amount)

        self.assets.transfer_from(self.custody_address, account, self.custody_address, amount)

        position, split, instant_to = self.ledger.enter(amount, account)
        if after_position is not None:
            after_position(position)

        if split.burn:
            self.assets.burn(self.custody_address, split.burn)
        if instant_to is not None:
            self.assets.transfer(self.custody_address, instant_to, split.instant)
            self._emit("InstantReward", account=instant_to,
                       from_position=position.position_id, amount=split.instant)

        self._emit("LobsterPlaced", account=account, position_id=position.position_id,
                   amount=amount, round=position.round_id, height=self.ledger.active_count)
        log.info(f"Position #{position.position_id} placed by {account} "
                 f"(height {self.ledger.active_count}, pool {self.ledger.pool})")
        return position

    def enter(self, account: str) -> int:
        """Pay the entry cost and append a position. Returns its id."""
        with self._mutation("enter"):
            return self._enter(account).position_id

    # ═══════════════════════════════════════════════════════════════════════
    # CLAIM
    # ═══════════════════════════════════════════════════════════════════════

    def claim(self, account: str) -> int:
        """Pay out every unclaimed earning of `account`. Raises NothingToClaim."""
        with self._mutation("claim"):
            total, touched = self.ledger.claim(account)
            try:
                self.assets.transfer(self.custody_address, account, total)
            except Exception:
                self.ledger.revert_claim(total, touched)
                raise
            self._emit("EarningsClaimed", account=account, amount=total,
                       positions=[p.position_id for p, _ in touched])
            log.info(f"{account} claimed {total} across {len(touched)} position(s)")
            return total

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def unclaimed(self, position_id: int) -> int:
        with self._read():
            return self.ledger.unclaimed(position_id)

    def unclaimed_of(self, account: str) -> int:
        with self._read():
            return self.ledger.unclaimed_of(account)

    def positions_of(self, account: str) -> List[int]:
        with self._read():
            return self.ledger.positions_of(account)

    def get_position(self, position_id: int) -> Position:
        with self._read():
            return self.ledger.get_position(position_id)

    def stats(self) -> LedgerStats:
        with self._read():
            return LedgerStats(**self._base_stats())

    def _base_stats(self) -> dict:
        ledger = self.ledger
        return dict(
            height=ledger.active_count,
            round_id=ledger.round_id,
            pool=ledger.pool,
            entry_cost=self.config.entry_cost,
            total_burned=ledger.total_burned,
            total_paid_out=ledger.total_paid_out,
            total_instant_paid=ledger.total_instant_paid,
            total_positions=len(ledger.positions),
            paused=self.config.paused,
        )

    def check_solvency(self) -> bool:
        """Custody covers pool + reserve, and reserve covers every promise."""
        with self._read():
            held = self.assets.balance_of(self.custody_address)
            return self.ledger.is_solvent() and held >= self.ledger.held()

    # ═══════════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════════

    def set_entry_cost(self, caller: str, entry_cost: int) -> None:
        with self._mutation("set_entry_cost"):
            change = self.admin.set_entry_cost(caller, entry_cost)
            self._emit("EntryCostUpdated", **change)
            log.info(f"Entry cost {change['old']} -> {change['new']}")

    def set_ratios(self, caller: str, participant_bps: int, burn_bps: int,
                   instant_bps: int = 0) -> None:
        with self._mutation("set_ratios"):
            change = self.admin.set_ratios(caller, participant_bps, burn_bps, instant_bps)
            self._emit("RatiosUpdated", **change)
            log.info(f"Ratios updated: {change}")

    def set_paused(self, caller: str, paused: bool) -> None:
        with self._mutation("set_paused"):
            change = self.admin.set_paused(caller, paused)
            self._emit("PauseUpdated", **change)
            log.info(f"Paused: {change['paused']}")

    def withdraw_pool(self, caller: str, amount: int, recipient: Optional[str] = None) -> int:
        with self._mutation("withdraw_pool"):
            change = self.admin.withdraw_pool(caller, amount, recipient)
            self.assets.transfer(self.custody_address, change["recipient"], amount)
            self._emit("PoolWithdrawn", **change)
            log.info(f"Withdrew {amount} from pool to {change['recipient']}")
            return amount

    # ═══════════════════════════════════════════════════════════════════════
    # SERIALIZATION
    # ═══════════════════════════════════════════════════════════════════════

    def to_dict(self, **collaborators) -> dict:
        """
        Consistent snapshot of the full state.

        Keyword arguments name objects with their own to_dict() (the asset
        ledger, a local chain) whose state is captured under the same lock,
        so the snapshot never holds tokens from a half-finished mutation.
        """
        with self._read():
            data = self._snapshot()
            for name, collaborator in collaborators.items():
                data[name] = collaborator.to_dict()
            return data

    def load_dict(self, data: dict) -> None:
        """Replace in-memory state with a snapshot produced by to_dict()."""
        if data.get("variant", self.variant.value) != self.variant.value:
            raise ValueError(f"Snapshot is a {data['variant']}, not a {self.variant.value}")
        with self._mutation("load", rollback=False):
            self._restore(data)

    def _snapshot(self) -> dict:
        return {
            "variant": self.variant.value,
            "custody_address": self.custody_address,
            "config": self.config.to_dict(),
            "ledger": self.ledger.to_dict(),
            "events": [e.to_dict() for e in self.events],
        }

    def _restore(self, data: dict):
        # Parse everything before assigning, so a bad snapshot changes nothing
        config = TowerConfig.from_dict(data["config"])
        config.validate(self.variant)
        ledger = DistributionLedger.from_dict(data["ledger"], config)
        events = [Event.from_dict(e) for e in data.get("events", [])]

        self.config = config
        self.custody_address = data.get("custody_address", self.custody_address)
        self.ledger = ledger
        self.admin = AdminPolicy(config, ledger, self.variant)
        self.events = events


class LobsterStack(LedgerEngine):
    """Open-ended stack; every entrant pays everyone below."""
    variant = Variant.STACK


class LobsterTower(LedgerEngine):
    """
    Stack with a topple lottery.

    Each entry may carry a commit hash. A commitment whose reveal rolls 0
    wins the whole pot for its committer and resets the tower: active
    height drops to zero and a new round starts. Earnings accrued before
    the topple stay claimable.

    Usage:
        tower = LobsterTower(assets, config, "tower", chain)
        reveal, commit_hash = generate_reveal()
        pid = tower.enter("alice", commit_hash)
        chain.mine()
        if tower.check_outcome(pid, reveal).is_winner:
            tower.topple(pid, reveal, "alice")
    """

    variant = Variant.TOWER

    def __init__(self, assets: AssetLedger, config: TowerConfig, custody_address: str,
                 source: RandomnessSource):
        super().__init__(assets, config, custody_address)
        self.source = source
        self.lottery = CommitRevealLottery(source, config.reveal_window, config.modulo)
        self.total_toppled = 0

    def _block_height(self) -> int:
        return self.source.current_height()

    # ═══════════════════════════════════════════════════════════════════════
    # ENTRY / COMMIT
    # ═══════════════════════════════════════════════════════════════════════

    def enter(self, account: str, commit_hash: Optional[bytes] = None) -> int:
        """Pay the entry cost, append a position and optionally commit to a reveal."""
        with self._mutation("enter"):
            after = None
            if commit_hash is not None:
                if len(commit_hash) != 32 or commit_hash == ZERO_HASH:
                    raise StaleOrInvalidCommitment("Commit hash must be 32 non-zero bytes")

                def after(position: Position):
                    self._commit(position, commit_hash, account)

            return self._enter(account, after).position_id

    def commit(self, position_id: int, commit_hash: bytes, caller: str) -> Commitment:
        """Commit for an existing position of the current round."""
        with self._mutation("commit"):
            self._require_active()
            position = self.ledger.get_position(position_id)
            if caller != position.owner:
                raise AuthorizationError(f"{caller} does not own position {position_id}")
            self._require_current_round(position)
            return self._commit(position, commit_hash, caller)

    def _commit(self, position: Position, commit_hash: bytes, caller: str) -> Commitment:
        commitment = self.lottery.commit(position.position_id, commit_hash, caller)
        self._emit("Committed", position_id=position.position_id, account=caller,
                   commit_hash=to_hex32(commit_hash), commit_height=commitment.commit_height)
        log.info(f"Position #{position.position_id} committed "
                 f"{mask_secret(to_hex32(commit_hash))} at block {commitment.commit_height}")
        return commitment

    def _require_current_round(self, position: Position):
        if position.round_id != self.ledger.round_id:
            raise StaleOrInvalidCommitment(
                f"Position {position.position_id} belongs to round {position.round_id}, "
                f"current round is {self.ledger.round_id}")

    # ═══════════════════════════════════════════════════════════════════════
    # LOTTERY
    # ═══════════════════════════════════════════════════════════════════════

    def check_outcome(self, position_id: int, reveal: bytes) -> OutcomeCheck:
        """Read-only pre-evaluation of a reveal (the frontend's fullCheck)."""
        with self._read():
            return self.lottery.check_outcome(position_id, reveal)

    def commitment_of(self, position_id: int) -> Optional[Commitment]:
        with self._read():
            return self.lottery.latest(position_id)

    def topple(self, position_id: int, reveal: bytes, caller: str) -> int:
        """Resolve a winning commitment: pay the whole pot to `caller`. Returns the pot."""
        with self._mutation("topple"):
            self._require_active()
            position = self.ledger.get_position(position_id)
            self._require_current_round(position)
            self.lottery.resolve_win(position_id, reveal, caller)

            ended_round = self.ledger.round_id
            pot = self.ledger.drain_pool()
            ended_height = self.ledger.start_new_round()
            self.total_toppled += 1

            self.assets.transfer(self.custody_address, caller, pot)

            self._emit("TowerToppled", round=ended_round, toppler=caller, pot=pot,
                       height=ended_height, position_id=position_id)
            log.info(f"Tower toppled by {caller} via #{position_id}: "
                     f"round {ended_round}, height {ended_height}, pot {pot}")
            return pot

    def resolve_loss(self, position_id: int, reveal: bytes) -> OutcomeCheck:
        """Finalize a losing roll so the position may commit again."""
        with self._mutation("resolve_loss"):
            commitment, outcome = self.lottery.resolve_loss(position_id, reveal)
            self._emit("CommitmentLost", position_id=position_id,
                       account=commitment.committer, roll=outcome.roll)
            log.info(f"Position #{position_id} rolled {outcome.roll}, commitment lost")
            return outcome

    def expire(self, position_id: int) -> Commitment:
        """Mark a commitment whose reveal window has passed as expired. Callable by anyone."""
        with self._mutation("expire"):
            commitment = self.lottery.expire(position_id)
            self._emit("CommitmentExpired", position_id=position_id,
                       account=commitment.committer, commit_height=commitment.commit_height)
            log.info(f"Commitment of position #{position_id} expired "
                     f"(committed at block {commitment.commit_height})")
            return commitment

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES / SERIALIZATION
    # ═══════════════════════════════════════════════════════════════════════

    def stats(self) -> TowerStats:
        with self._read():
            return TowerStats(total_toppled=self.total_toppled,
                              block_height=self.source.current_height(),
                              **self._base_stats())

    def _snapshot(self) -> dict:
        data = super()._snapshot()
        data["lottery"] = self.lottery.to_dict()
        data["total_toppled"] = self.total_toppled
        return data

    def _restore(self, data: dict):
        lottery = CommitRevealLottery(self.source)
        lottery.load_dict(data.get("lottery", {}))
        total_toppled = int(data.get("total_toppled", 0))
        super()._restore(data)
        lottery.reveal_window = self.config.reveal_window
        lottery.modulo = self.config.modulo
        self.lottery = lottery
        self.total_toppled = total_toppled

    def _checkpoint(self) -> dict:
        checkpoint = super()._checkpoint()
        checkpoint["total_toppled"] = self.total_toppled
        self.lottery.checkpoint()
        return checkpoint

    def _rollback(self, checkpoint: dict):
        super()._rollback(checkpoint)
        self.lottery.rollback()
        self.total_toppled = checkpoint["total_toppled"]


def build_engine(variant: Variant, assets: AssetLedger, config: TowerConfig,
                 custody_address: str, source: Optional[RandomnessSource] = None) -> LedgerEngine:
    if variant is Variant.TOWER:
        if source is None:
            raise ValueError("Tower needs a randomness source")
        return LobsterTower(assets, config, custody_address, source)
    return LobsterStack(assets, config, custody_address)
