"""
Lobster Tower SDK

Participant-funded reward ledger in two variants:
  - LobsterStack: each entry pays every earlier position in equal parts
  - LobsterTower: the same, plus a commit-reveal lottery over the pot

Architecture:
  - DistributionLedger: O(1) accumulator accounting of earnings
  - CommitRevealLottery: keccak commit, block-hash randomness, 1-in-69 roll
  - AdminPolicy: owner-gated entry cost, ratios, pause, pool withdrawal
  - LedgerEngine: single critical section around all of the above
  - AssetLedger: token custody (external; in-memory version included)

Usage:
    from tower_sdk import LobsterTower, InMemoryAssetLedger, LocalChain, TowerConfig, Variant

    assets = InMemoryAssetLedger()
    chain = LocalChain()
    tower = LobsterTower(assets, TowerConfig.for_variant(Variant.TOWER, "owner"), "tower", chain)

    reveal, commit_hash = generate_reveal()
    position_id = tower.enter("alice", commit_hash)
"""

from .tower_types import (
    Commitment,
    CommitmentStatus,
    Event,
    LedgerStats,
    OutcomeCheck,
    Position,
    Split,
    TowerStats,
    Variant,
)
from .errors import (
    AssetLedgerError,
    AuthorizationError,
    ConfigurationError,
    InsufficientAllowance,
    InsufficientFunds,
    InsufficientReserve,
    InvalidAmount,
    NothingToClaim,
    PausedError,
    ReentrancyError,
    StaleOrInvalidCommitment,
    TowerError,
    UnknownPosition,
)
from .config import (
    BPS_DENOMINATOR,
    PRECISION,
    REVEAL_WINDOW_BLOCKS,
    TOWER_MODULO,
    ServiceConfig,
    TowerConfig,
)
from .asset_ledger import BURN_ADDRESS, AssetLedger, InMemoryAssetLedger
from .rpc_client import RPCClient, RPCError
from .randomness import LocalChain, RandomnessSource, RPCBlockSource
from .distribution import DistributionLedger
from .lottery import CommitRevealLottery, compute_commit, generate_reveal, roll_for, verify_reveal
from .admin import AdminPolicy
from .engine import LedgerEngine, LobsterStack, LobsterTower, build_engine
from .store import TowerStore

__version__ = "0.1.0"
__all__ = [
    # Types
    "Position", "Commitment", "CommitmentStatus", "Split", "OutcomeCheck",
    "LedgerStats", "TowerStats", "Event", "Variant",
    # Errors
    "TowerError", "ConfigurationError", "AuthorizationError", "InvalidAmount",
    "PausedError", "UnknownPosition", "StaleOrInvalidCommitment", "NothingToClaim",
    "ReentrancyError", "AssetLedgerError", "InsufficientFunds",
    "InsufficientAllowance", "InsufficientReserve",
    # Config
    "TowerConfig", "ServiceConfig", "BPS_DENOMINATOR", "PRECISION",
    "TOWER_MODULO", "REVEAL_WINDOW_BLOCKS",
    # Collaborators
    "AssetLedger", "InMemoryAssetLedger", "BURN_ADDRESS",
    "RPCClient", "RPCError", "RandomnessSource", "LocalChain", "RPCBlockSource",
    # Core
    "DistributionLedger", "CommitRevealLottery", "AdminPolicy",
    "LedgerEngine", "LobsterStack", "LobsterTower", "build_engine",
    "generate_reveal", "compute_commit", "verify_reveal", "roll_for",
    "TowerStore",
]
