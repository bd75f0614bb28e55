"""
Lobster Tower SDK - Asset Ledger

Fungible-token custody used by the ledger. The core only needs three
operations from it:

  - transfer_from(spender, payer, recipient, amount)  (allowance-checked debit)
  - transfer(sender, recipient, amount)              (credit from custody)
  - burn(sender, amount)                             (send to BURN_ADDRESS)

plus transaction(), a block whose token movements are all undone if it
raises. On a chain that is what a reverting transaction gives for free.

InMemoryAssetLedger is an ERC20-like implementation used for local
runs and tests. Each call is atomic: it either moves the full amount or
raises without touching any balance, including when a recipient hook
raises after the move.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Tuple

from .errors import InsufficientAllowance, InsufficientFunds, InsufficientReserve, InvalidAmount

log = logging.getLogger(__name__)

# Conventional unspendable sink
BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"

TransferHook = Callable[[str, str, int], None]


class AssetLedger:
    """Contract the core consumes. Implementations must be atomic per call."""

    def transfer_from(self, spender: str, payer: str, recipient: str, amount: int) -> None:
        raise NotImplementedError

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        raise NotImplementedError

    def burn(self, sender: str, amount: int) -> None:
        self.transfer(sender, BURN_ADDRESS, amount)

    def balance_of(self, account: str) -> int:
        raise NotImplementedError

    @contextmanager
    def transaction(self):
        """Group calls so they are reverted together if the block raises."""
        yield


class InMemoryAssetLedger(AssetLedger):
    """
    ERC20-style balances and allowances held in process memory.

    Every change made inside transaction() by the calling thread is
    journaled, and the journal is replayed backwards if the block raises.
    Single calls run in their own transaction, so a failing hook undoes
    the transfer that triggered it.

    Usage:
        assets = InMemoryAssetLedger()
        assets.mint("alice", 1_000)
        assets.approve("alice", "tower", 100)
        assets.transfer_from("tower", "alice", "tower", 100)
    """

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0
        self._lock = threading.Lock()
        self._local = threading.local()
        # Called after every completed transfer; stands in for recipient code.
        self.hooks: List[TransferHook] = []

    @staticmethod
    def _check_amount(amount: int):
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidAmount(f"Amount must be integer, got {type(amount).__name__}")
        if amount < 0:
            raise InvalidAmount(f"Amount must be non-negative, got {amount}")

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    # ═══════════════════════════════════════════════════════════════════════
    # JOURNAL
    # ═══════════════════════════════════════════════════════════════════════

    @contextmanager
    def transaction(self):
        local = self._local
        if not hasattr(local, "journal"):
            local.journal = []
            local.depth = 0
        journal = local.journal
        mark = len(journal)
        local.depth += 1
        try:
            yield
        except Exception:
            self._undo(journal, mark)
            raise
        finally:
            local.depth -= 1
            if local.depth == 0:
                journal.clear()

    def _record(self, entry: tuple):
        if getattr(self._local, "depth", 0):
            self._local.journal.append(entry)

    def _undo(self, journal: list, mark: int):
        with self._lock:
            while len(journal) > mark:
                kind, *args = journal.pop()
                if kind == "move":
                    sender, recipient, amount = args
                    self._move(recipient, sender, amount)
                elif kind == "allowance":
                    owner, spender, previous = args
                    self.allowances[(owner, spender)] = previous
                elif kind == "mint":
                    account, amount = args
                    self.balances[account] = self.balance_of(account) - amount
                    self.total_supply -= amount
        log.debug(f"Reverted asset changes back to journal entry {mark}")

    # ═══════════════════════════════════════════════════════════════════════
    # OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    def mint(self, account: str, amount: int) -> None:
        self._check_amount(amount)
        with self._lock:
            self.balances[account] = self.balance_of(account) + amount
            self.total_supply += amount
            self._record(("mint", account, amount))
        log.debug(f"Minted {amount} to {account}")

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._check_amount(amount)
        with self._lock:
            self._set_allowance(owner, spender, amount)

    def transfer_from(self, spender: str, payer: str, recipient: str, amount: int) -> None:
        self._check_amount(amount)
        with self.transaction():
            with self._lock:
                if self.balance_of(payer) < amount:
                    raise InsufficientFunds(
                        f"{payer} holds {self.balance_of(payer)}, needs {amount}")
                allowed = self.allowance(payer, spender)
                if allowed < amount:
                    raise InsufficientAllowance(
                        f"{spender} may spend {allowed} of {payer}, needs {amount}")
                self._set_allowance(payer, spender, allowed - amount)
                self._transfer(payer, recipient, amount)
            self._notify(payer, recipient, amount)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._check_amount(amount)
        with self.transaction():
            with self._lock:
                if self.balance_of(sender) < amount:
                    raise InsufficientReserve(
                        f"{sender} holds {self.balance_of(sender)}, cannot send {amount}")
                self._transfer(sender, recipient, amount)
            self._notify(sender, recipient, amount)

    def _set_allowance(self, owner: str, spender: str, amount: int):
        self._record(("allowance", owner, spender, self.allowance(owner, spender)))
        self.allowances[(owner, spender)] = amount

    def _transfer(self, sender: str, recipient: str, amount: int):
        self._move(sender, recipient, amount)
        self._record(("move", sender, recipient, amount))

    def _move(self, sender: str, recipient: str, amount: int):
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[recipient] = self.balance_of(recipient) + amount

    def _notify(self, sender: str, recipient: str, amount: int):
        # Outside the ledger lock: hooks may call back into anything.
        for hook in list(self.hooks):
            hook(sender, recipient, amount)

    # ═══════════════════════════════════════════════════════════════════════
    # SERIALIZATION
    # ═══════════════════════════════════════════════════════════════════════

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "balances": dict(self.balances),
                "allowances": [[owner, spender, amount]
                               for (owner, spender), amount in self.allowances.items()],
                "total_supply": self.total_supply,
            }

    def load_dict(self, data: dict) -> None:
        with self._lock:
            self.balances = {account: int(amount)
                             for account, amount in data.get("balances", {}).items()}
            self.allowances = {(owner, spender): int(amount)
                               for owner, spender, amount in data.get("allowances", [])}
            self.total_supply = int(data.get("total_supply", sum(self.balances.values())))
