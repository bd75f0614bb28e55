"""
Lobster Tower SDK - Errors

Every rejection raised by the ledger, the lottery and the admin policy
derives from TowerError. The `code` attribute is stable and is what the
REST layer reports to clients.
"""


class TowerError(Exception):
    """Base class for all ledger/lottery rejections."""
    code = "tower_error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ConfigurationError(TowerError):
    """Invalid ratios, zero entry cost or an otherwise unusable config."""
    code = "configuration"


class AuthorizationError(TowerError):
    """Caller is not allowed to perform the operation."""
    code = "unauthorized"


class InvalidAmount(TowerError, ValueError):
    """Amount must be a positive integer."""
    code = "invalid_amount"


class PausedError(TowerError):
    """Mutation rejected while the system is paused."""
    code = "paused"


class UnknownPosition(TowerError, KeyError):
    """No position with the given id."""
    code = "unknown_position"

    def __str__(self):
        return self.message


class StaleOrInvalidCommitment(TowerError):
    """Hash mismatch, already resolved, window expired or losing roll."""
    code = "stale_commitment"


class NothingToClaim(TowerError):
    """Account has no unclaimed earnings."""
    code = "nothing_to_claim"


class ReentrancyError(TowerError):
    """A mutation was attempted while another one is still in flight."""
    code = "reentrancy"


# ═══════════════════════════════════════════════════════════════════════════════
# ASSET LEDGER ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class AssetLedgerError(TowerError):
    """Raised by the asset ledger; no partial transfer ever happens."""
    code = "asset_ledger"


class InsufficientFunds(AssetLedgerError):
    code = "insufficient_funds"


class InsufficientAllowance(AssetLedgerError):
    code = "insufficient_allowance"


class InsufficientReserve(AssetLedgerError):
    code = "insufficient_reserve"
