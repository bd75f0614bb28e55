"""
Lobster Tower SDK - Commit-Reveal Lottery

Flow:
  1. Player picks a secret reveal R and submits C = keccak256(R) with
     their entry. The commitment records the block height it landed in.
  2. Once that block is sealed its hash B becomes readable, for a window
     of `reveal_window` blocks.
  3. roll = keccak256(R || B) mod modulo; roll == 0 topples the tower.

The player cannot bias the roll (B did not exist at commit time) and
observers cannot front-run it (they do not know R). A commitment moves
from OPEN to exactly one of WON, LOST or EXPIRED and is never reused or
deleted.
"""

import logging
import secrets
from typing import Dict, List, Optional, Tuple

from web3 import Web3

from .config import REVEAL_WINDOW_BLOCKS, TOWER_MODULO
from .errors import AuthorizationError, StaleOrInvalidCommitment
from .randomness import RandomnessSource
from .tower_types import Commitment, CommitmentStatus, OutcomeCheck

log = logging.getLogger(__name__)

ZERO_HASH = b"\x00" * 32


def mask_secret(secret: str, visible_prefix: int = 8, visible_suffix: int = 4) -> str:
    """Mask a secret for safe logging. NEVER log full reveals."""
    if not secret or len(secret) <= visible_prefix + visible_suffix:
        return "***"
    return f"{secret[:visible_prefix]}...{secret[-visible_suffix:]}"


def generate_reveal() -> Tuple[bytes, bytes]:
    """
    Generate random 32-byte reveal R and commit hash C = keccak256(R).

    Returns:
        (reveal, commit_hash)
    """
    reveal = secrets.token_bytes(32)
    return reveal, compute_commit(reveal)


def compute_commit(reveal: bytes) -> bytes:
    """keccak256 of the raw reveal bytes."""
    return bytes(Web3.keccak(reveal))


def verify_reveal(commit_hash: bytes, reveal: bytes) -> bool:
    """True if keccak256(reveal) == commit_hash."""
    return compute_commit(reveal) == commit_hash


def roll_for(reveal: bytes, randomness: bytes, modulo: int = TOWER_MODULO) -> int:
    """roll = uint256(keccak256(reveal || randomness)) mod modulo"""
    digest = Web3.keccak(reveal + randomness)
    return int.from_bytes(digest, "big") % modulo


class CommitRevealLottery:
    """
    Commitments per position plus the win/expiry rules.

    Usage:
        lottery = CommitRevealLottery(chain)
        reveal, commit_hash = generate_reveal()
        lottery.commit(position_id, commit_hash, "alice")
        chain.mine()
        lottery.check_outcome(position_id, reveal)
    """

    def __init__(self, source: RandomnessSource,
                 reveal_window: int = REVEAL_WINDOW_BLOCKS,
                 modulo: int = TOWER_MODULO):
        self.source = source
        self.reveal_window = reveal_window
        self.modulo = modulo
        # position_id -> commitments, oldest first
        self.commitments: Dict[int, List[Commitment]] = {}
        # Changes since the last checkpoint(), undone by rollback()
        self._journal: List[tuple] = []

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def latest(self, position_id: int) -> Optional[Commitment]:
        history = self.commitments.get(position_id)
        return history[-1] if history else None

    def active(self, position_id: int) -> Optional[Commitment]:
        """The open commitment of a position, if any."""
        commitment = self.latest(position_id)
        if commitment is not None and commitment.is_open:
            return commitment
        return None

    def history(self, position_id: int) -> List[Commitment]:
        return list(self.commitments.get(position_id, []))

    def _require_latest(self, position_id: int) -> Commitment:
        commitment = self.latest(position_id)
        if commitment is None:
            raise StaleOrInvalidCommitment(f"No commitment for position {position_id}")
        return commitment

    def _require_open(self, position_id: int) -> Commitment:
        commitment = self._require_latest(position_id)
        if not commitment.is_open:
            raise StaleOrInvalidCommitment(
                f"Commitment for position {position_id} already {commitment.status.value}")
        return commitment

    def is_expired(self, commitment: Commitment) -> bool:
        return self.source.current_height() - commitment.commit_height > self.reveal_window

    # ═══════════════════════════════════════════════════════════════════════
    # COMMIT
    # ═══════════════════════════════════════════════════════════════════════

    def commit(self, position_id: int, commit_hash: bytes, committer: str) -> Commitment:
        if len(commit_hash) != 32:
            raise StaleOrInvalidCommitment(f"Commit hash must be 32 bytes, got {len(commit_hash)}")
        if commit_hash == ZERO_HASH:
            raise StaleOrInvalidCommitment("Commit hash must not be zero")
        if self.active(position_id) is not None:
            raise StaleOrInvalidCommitment(f"Position {position_id} already has an open commitment")

        commitment = Commitment(
            position_id=position_id,
            commit_hash=commit_hash,
            commit_height=self.source.current_height(),
            committer=committer,
        )
        self.commitments.setdefault(position_id, []).append(commitment)
        self._journal.append(("commit", position_id))
        return commitment

    # ═══════════════════════════════════════════════════════════════════════
    # EVALUATION (read-only)
    # ═══════════════════════════════════════════════════════════════════════

    def evaluate(self, commitment: Commitment, reveal: bytes) -> OutcomeCheck:
        """
        Roll a reveal against a commitment without mutating anything.

        Raises StaleOrInvalidCommitment if the reveal does not match.
        """
        if not verify_reveal(commitment.commit_hash, reveal):
            raise StaleOrInvalidCommitment(
                f"Reveal does not match commitment of position {commitment.position_id}")

        current = self.source.current_height()
        age = current - commitment.commit_height
        if age <= 0:
            # Commit block not sealed yet
            return OutcomeCheck(is_winner=False, roll=None, expired=False,
                                blocks_remaining=self.reveal_window, available=False)
        if age > self.reveal_window:
            return OutcomeCheck(is_winner=False, roll=None, expired=True,
                                blocks_remaining=0, available=False)

        randomness = self.source.block_hash(commitment.commit_height)
        if randomness is None:
            return OutcomeCheck(is_winner=False, roll=None, expired=True,
                                blocks_remaining=0, available=False)

        roll = roll_for(reveal, randomness, self.modulo)
        return OutcomeCheck(
            is_winner=(roll == 0),
            roll=roll,
            expired=False,
            blocks_remaining=self.reveal_window - age,
        )

    def check_outcome(self, position_id: int, reveal: bytes) -> OutcomeCheck:
        """Pre-evaluate the latest commitment of a position. Callable by anyone."""
        return self.evaluate(self._require_latest(position_id), reveal)

    # ═══════════════════════════════════════════════════════════════════════
    # RESOLUTION
    # ═══════════════════════════════════════════════════════════════════════

    def _require_roll(self, commitment: Commitment, reveal: bytes) -> OutcomeCheck:
        outcome = self.evaluate(commitment, reveal)
        if outcome.expired:
            raise StaleOrInvalidCommitment(
                f"Reveal window of position {commitment.position_id} has passed")
        if not outcome.available:
            raise StaleOrInvalidCommitment(
                f"Randomness for position {commitment.position_id} not available yet")
        return outcome

    def resolve_win(self, position_id: int, reveal: bytes, caller: str) -> Commitment:
        """Mark a winning commitment WON. Only the committer may claim the win."""
        commitment = self._require_open(position_id)
        if caller != commitment.committer:
            raise AuthorizationError(f"{caller} did not commit position {position_id}")
        outcome = self._require_roll(commitment, reveal)
        if not outcome.is_winner:
            raise StaleOrInvalidCommitment(
                f"Roll {outcome.roll} for position {position_id} is not a winner")

        self._resolve(commitment, CommitmentStatus.WON)
        return commitment

    def resolve_loss(self, position_id: int, reveal: bytes) -> Tuple[Commitment, OutcomeCheck]:
        """Finalize a losing commitment as LOST so the position can commit again."""
        commitment = self._require_open(position_id)
        outcome = self._require_roll(commitment, reveal)
        if outcome.is_winner:
            raise StaleOrInvalidCommitment(
                f"Position {position_id} rolled a winner; it can only be won or expire")

        self._resolve(commitment, CommitmentStatus.LOST)
        return commitment, outcome

    def expire(self, position_id: int) -> Commitment:
        """Mark an unresolved commitment EXPIRED once its window has passed."""
        commitment = self._require_open(position_id)
        if not self.is_expired(commitment):
            remaining = commitment.commit_height + self.reveal_window - self.source.current_height()
            raise StaleOrInvalidCommitment(
                f"Commitment of position {position_id} still open for {remaining} block(s)")

        self._resolve(commitment, CommitmentStatus.EXPIRED)
        return commitment

    def _resolve(self, commitment: Commitment, status: CommitmentStatus):
        self._journal.append(("resolve", commitment, commitment.status, commitment.resolved_height))
        commitment.status = status
        commitment.resolved_height = self.source.current_height()

    # ═══════════════════════════════════════════════════════════════════════
    # CHECKPOINTS
    # ═══════════════════════════════════════════════════════════════════════

    def checkpoint(self) -> None:
        self._journal = []

    def rollback(self) -> None:
        """Undo every commit and resolution made since checkpoint()."""
        while self._journal:
            kind, *args = self._journal.pop()
            if kind == "commit":
                history = self.commitments[args[0]]
                history.pop()
                if not history:
                    del self.commitments[args[0]]
            else:
                commitment, status, resolved_height = args
                commitment.status = status
                commitment.resolved_height = resolved_height

    # ═══════════════════════════════════════════════════════════════════════
    # SERIALIZATION
    # ═══════════════════════════════════════════════════════════════════════

    def to_dict(self) -> dict:
        return {
            "reveal_window": self.reveal_window,
            "modulo": self.modulo,
            "commitments": [c.to_dict() for history in self.commitments.values() for c in history],
        }

    def load_dict(self, data: dict) -> None:
        self.reveal_window = int(data.get("reveal_window", self.reveal_window))
        self.modulo = int(data.get("modulo", self.modulo))
        self._journal = []
        self.commitments = {}
        for item in data.get("commitments", []):
            commitment = Commitment.from_dict(item)
            self.commitments.setdefault(commitment.position_id, []).append(commitment)
