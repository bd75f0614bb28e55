"""
Lobster Tower SDK - Admin Policy

Owner-gated, bounded configuration changes. Every method validates
fully before touching the config and returns the change record the
engine publishes as an event.
"""

from typing import Optional

from .config import TowerConfig, check_ratios
from .distribution import DistributionLedger
from .errors import AuthorizationError, ConfigurationError, InvalidAmount
from .tower_types import Variant


class AdminPolicy:
    def __init__(self, config: TowerConfig, ledger: DistributionLedger, variant: Variant):
        self.config = config
        self.ledger = ledger
        self.variant = variant

    def require_owner(self, caller: str):
        if caller != self.config.owner:
            raise AuthorizationError(f"{caller} is not the owner")

    def set_entry_cost(self, caller: str, entry_cost: int) -> dict:
        self.require_owner(caller)
        if not isinstance(entry_cost, int) or isinstance(entry_cost, bool) or entry_cost <= 0:
            raise ConfigurationError(f"Entry cost must be a positive integer, got {entry_cost}")
        old = self.config.entry_cost
        self.config.entry_cost = entry_cost
        return {"old": old, "new": entry_cost}

    def set_ratios(self, caller: str, participant_bps: int, burn_bps: int,
                   instant_bps: int = 0) -> dict:
        self.require_owner(caller)
        check_ratios(participant_bps, burn_bps, instant_bps)
        if self.variant is Variant.TOWER and instant_bps:
            raise ConfigurationError("Tower has no instant reward share")

        self.config.participant_bps = participant_bps
        self.config.burn_bps = burn_bps
        self.config.instant_bps = instant_bps
        return {
            "participant_bps": participant_bps,
            "burn_bps": burn_bps,
            "instant_bps": instant_bps,
            "pool_bps": self.config.pool_bps,
        }

    def set_paused(self, caller: str, paused: bool) -> dict:
        self.require_owner(caller)
        self.config.paused = bool(paused)
        return {"paused": self.config.paused}

    def withdraw_pool(self, caller: str, amount: int,
                      recipient: Optional[str] = None) -> dict:
        """Take up to the current pool balance out of the ledger."""
        self.require_owner(caller)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"Withdraw amount must be a positive integer, got {amount}")
        if amount > self.ledger.pool:
            raise InvalidAmount(f"Pool holds {self.ledger.pool}, cannot withdraw {amount}")
        self.ledger.drain_pool(amount)
        return {"amount": amount, "recipient": recipient or self.config.owner}
