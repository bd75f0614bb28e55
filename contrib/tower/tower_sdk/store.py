"""
Lobster Tower SDK - State Store

JSON snapshots of an engine: positions, commitments, per-round
accumulators, counters, config and the event log. When the service owns
its token ledger and chain (dev mode), their state is saved in the same
snapshot so custody balances and block heights survive a restart.
"""

import json
import logging
import os
import tempfile
import threading
import time
from typing import Optional

from .asset_ledger import InMemoryAssetLedger
from .engine import LedgerEngine
from .randomness import LocalChain

log = logging.getLogger(__name__)

STORE_VERSION = "1.0"


class TowerStore:
    """
    File-backed persistence.

    Saves are serialized: the snapshot is taken and written under one
    lock, so a later save never loses to an earlier one.

    Usage:
        store = TowerStore("/var/lib/tower/state.json", assets=assets, chain=chain)
        store.load(tower)       # False if no snapshot yet
        ...
        store.save(tower)
    """

    def __init__(self, storage_path: str = "tower_state.json",
                 assets: Optional[InMemoryAssetLedger] = None,
                 chain: Optional[LocalChain] = None):
        self.storage_path = storage_path
        self.assets = assets
        self.chain = chain
        self._lock = threading.Lock()

    def _collaborators(self) -> dict:
        collaborators = {}
        if self.assets is not None:
            collaborators["assets"] = self.assets
        if self.chain is not None:
            collaborators["chain"] = self.chain
        return collaborators

    def exists(self) -> bool:
        return os.path.exists(self.storage_path)

    def read(self) -> Optional[dict]:
        """Raw snapshot, or None if nothing has been saved yet."""
        if not self.exists():
            return None
        with open(self.storage_path, "r") as f:
            data = json.load(f)
        version = data.get("version")
        if version != STORE_VERSION:
            raise ValueError(f"Unsupported state version {version!r} in {self.storage_path}")
        return data["state"]

    def load(self, engine: LedgerEngine) -> bool:
        """Load the snapshot into `engine` (and attached assets/chain). False if there is none."""
        state = self.read()
        if state is None:
            return False
        engine.load_dict(state)
        for name, collaborator in self._collaborators().items():
            if name in state:
                collaborator.load_dict(state[name])
        log.info(f"Loaded {len(engine.ledger.positions)} position(s) from {self.storage_path}")
        return True

    def save(self, engine: LedgerEngine) -> None:
        """Write the snapshot atomically (unique temp file + rename)."""
        directory = os.path.dirname(os.path.abspath(self.storage_path))
        os.makedirs(directory, exist_ok=True)
        with self._lock:
            data = {
                "version": STORE_VERSION,
                "updated_ts": int(time.time()),
                "state": engine.to_dict(**self._collaborators()),
            }
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tower-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.storage_path)
            except Exception:
                os.unlink(tmp_path)
                raise
        log.debug(f"Saved state to {self.storage_path}")
