"""
Lobster Tower SDK - RPC Client

JSON-RPC client for an EVM node. Only the block queries the lottery
needs are typed; anything else is reachable through __getattr__.
"""

import requests
from typing import Any, Optional


class RPCError(Exception):
    """RPC call failed."""
    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC Error {code}: {message}")


class RPCClient:
    """
    JSON-RPC client for an EVM node.

    Usage:
        rpc = RPCClient("https://mainnet.base.org")
        height = rpc.block_number()
        block_hash = rpc.block_hash(height - 1)
    """

    def __init__(self, url: str = "http://127.0.0.1:8545", timeout: int = 30):
        self.url = url
        self.timeout = timeout
        self._id = 0

    def _call(self, method: str, params: list = None) -> Any:
        """Make RPC call."""
        self._id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id,
            "method": method,
            "params": params or []
        }

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RPCError(-1, f"Connection failed: {e}")

        result = response.json()

        if "error" in result and result["error"]:
            raise RPCError(result["error"]["code"], result["error"]["message"])

        return result.get("result")

    def __getattr__(self, name: str):
        """Allow calling RPC methods as attributes."""
        if name.startswith("_"):
            raise AttributeError(name)

        def method(*args):
            return self._call(name, list(args))
        return method

    # ═══════════════════════════════════════════════════════════════════════
    # BLOCK METHODS
    # ═══════════════════════════════════════════════════════════════════════

    def block_number(self) -> int:
        """Get current block height."""
        return int(self._call("eth_blockNumber"), 16)

    def get_block(self, height: int) -> Optional[dict]:
        """Get block header (without transactions) or None if unknown."""
        return self._call("eth_getBlockByNumber", [hex(height), False])

    def block_hash(self, height: int) -> Optional[str]:
        """Get block hash as 0x-hex, or None if the node doesn't have it."""
        block = self.get_block(height)
        if not block:
            return None
        return block.get("hash")

    def test_connection(self) -> bool:
        """Test if RPC connection works."""
        try:
            self.block_number()
            return True
        except RPCError:
            return False
