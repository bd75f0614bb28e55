"""
Lobster Tower SDK - Configuration

TowerConfig holds the economic parameters of one ledger (owned and
mutated through AdminPolicy). ServiceConfig holds process settings for
the server and CLI and can be read from TOWER_* environment variables.
"""

import os
from dataclasses import asdict, dataclass
from typing import Optional

from .errors import ConfigurationError
from .tower_types import Variant

# =============================================================================
# CONSTANTS
# =============================================================================

BPS_DENOMINATOR = 10_000
PRECISION = 10 ** 18            # Fixed-point scale of the accumulator
TOWER_MODULO = 69               # 1-in-69 topple chance
REVEAL_WINDOW_BLOCKS = 255      # Must stay within BLOCKHASH history (256)

TOKEN_DECIMALS = 18
DEFAULT_ENTRY_COST = 1_000 * 10 ** TOKEN_DECIMALS


@dataclass
class TowerConfig:
    """
    Economic parameters.

    participant_bps + burn_bps + instant_bps <= 10000; whatever is left
    goes to the pool (stack) or pot (tower).
    """
    owner: str
    entry_cost: int = DEFAULT_ENTRY_COST
    participant_bps: int = 8000
    burn_bps: int = 1000
    instant_bps: int = 0
    paused: bool = False
    reveal_window: int = REVEAL_WINDOW_BLOCKS
    modulo: int = TOWER_MODULO

    @property
    def pool_bps(self) -> int:
        return BPS_DENOMINATOR - self.participant_bps - self.burn_bps - self.instant_bps

    def validate(self, variant: Variant = Variant.TOWER) -> None:
        if not self.owner:
            raise ConfigurationError("Owner must be set")
        if (not isinstance(self.entry_cost, int) or isinstance(self.entry_cost, bool)
                or self.entry_cost <= 0):
            raise ConfigurationError(f"Entry cost must be a positive integer, got {self.entry_cost}")
        check_ratios(self.participant_bps, self.burn_bps, self.instant_bps)
        if variant is Variant.TOWER and self.instant_bps != 0:
            raise ConfigurationError("Tower has no instant reward share")
        if not 0 < self.reveal_window < 256:
            raise ConfigurationError(f"Reveal window must be in 1..255, got {self.reveal_window}")
        if self.modulo < 1:
            raise ConfigurationError(f"Modulo must be positive, got {self.modulo}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TowerConfig":
        return cls(**data)

    @classmethod
    def for_variant(cls, variant: Variant, owner: str, **overrides) -> "TowerConfig":
        """Defaults: tower 80/10/10, stack 70/10/10/10."""
        if variant is Variant.STACK:
            params = dict(participant_bps=7000, burn_bps=1000, instant_bps=1000)
        else:
            params = dict(participant_bps=8000, burn_bps=1000, instant_bps=0)
        params.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(owner=owner, **params)
        config.validate(variant)
        return config


def check_ratios(participant_bps: int, burn_bps: int, instant_bps: int = 0) -> None:
    """Reject negative ratios or ratios exceeding 100% in aggregate."""
    for name, value in (("participant", participant_bps), ("burn", burn_bps),
                        ("instant", instant_bps)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigurationError(f"{name} ratio must be a non-negative integer, got {value}")
    total = participant_bps + burn_bps + instant_bps
    if total > BPS_DENOMINATOR:
        raise ConfigurationError(f"Ratios sum to {total} bps, max {BPS_DENOMINATOR}")


# =============================================================================
# SERVICE CONFIG
# =============================================================================

@dataclass
class ServiceConfig:
    variant: str = "tower"
    owner: str = "0x0000000000000000000000000000000000000001"
    custody_address: str = "lobster-tower"
    entry_cost: int = DEFAULT_ENTRY_COST

    host: str = "127.0.0.1"
    port: int = 8080
    storage_path: Optional[str] = None

    # EVM node for block hashes; ignored in dev mode
    rpc_url: str = "https://mainnet.base.org"
    dev_mode: bool = True

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None) -> "ServiceConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            variant=env.get("TOWER_VARIANT", defaults.variant),
            owner=env.get("TOWER_OWNER", defaults.owner),
            custody_address=env.get("TOWER_CUSTODY_ADDRESS", defaults.custody_address),
            entry_cost=int(env.get("TOWER_ENTRY_COST", defaults.entry_cost)),
            host=env.get("TOWER_HOST", defaults.host),
            port=int(env.get("TOWER_PORT", defaults.port)),
            storage_path=env.get("TOWER_STORAGE_PATH") or defaults.storage_path,
            rpc_url=env.get("TOWER_RPC_URL", defaults.rpc_url),
            dev_mode=env.get("TOWER_DEV_MODE", "1").lower() not in ("0", "false", "no"),
            log_level=env.get("TOWER_LOG_LEVEL", defaults.log_level),
        )
