"""
Tests for the JSON-RPC client and the node-backed randomness source.
"""

import pytest
import requests

from tower_sdk import rpc_client
from tower_sdk.randomness import RPCBlockSource
from tower_sdk.rpc_client import RPCClient, RPCError

BLOCK_HASH = "0x" + "ab" * 32


class FakeResponse:

    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class FakeNode:
    """Answers eth_blockNumber / eth_getBlockByNumber for a chain at `head`."""

    def __init__(self, head=100):
        self.head = head
        self.calls = []

    def __call__(self, url, json=None, timeout=None):
        self.calls.append(json)
        method = json["method"]
        if method == "eth_blockNumber":
            result = hex(self.head)
        elif method == "eth_getBlockByNumber":
            height = int(json["params"][0], 16)
            result = {"number": hex(height), "hash": BLOCK_HASH} if height <= self.head else None
        else:
            return FakeResponse({"jsonrpc": "2.0", "id": json["id"],
                                 "error": {"code": -32601, "message": "method not found"}})
        return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "result": result})


@pytest.fixture
def node(monkeypatch):
    fake = FakeNode()
    monkeypatch.setattr(rpc_client.requests, "post", fake)
    return fake


class TestRPCClient:

    def test_block_number(self, node):
        assert RPCClient().block_number() == 100
        assert node.calls[0]["method"] == "eth_blockNumber"
        assert node.calls[0]["params"] == []

    def test_get_block_params(self, node):
        RPCClient().block_hash(42)
        assert node.calls[0]["params"] == ["0x2a", False]

    def test_unknown_block(self, node):
        assert RPCClient().block_hash(500) is None

    def test_error_payload(self, node):
        with pytest.raises(RPCError) as excinfo:
            RPCClient().eth_foo()
        assert excinfo.value.code == -32601

    def test_connection_failure(self, monkeypatch):
        def refuse(url, json=None, timeout=None):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(rpc_client.requests, "post", refuse)
        client = RPCClient()
        with pytest.raises(RPCError) as excinfo:
            client.block_number()
        assert excinfo.value.code == -1
        assert client.test_connection() is False

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(rpc_client.requests, "post",
                            lambda url, json=None, timeout=None: FakeResponse({}, status=503))
        with pytest.raises(RPCError):
            RPCClient().block_number()

    def test_private_attributes_are_not_rpc_methods(self):
        with pytest.raises(AttributeError):
            RPCClient()._missing


class TestRPCBlockSource:

    def test_current_height_is_next_block(self, node):
        assert RPCBlockSource(RPCClient()).current_height() == 101

    def test_block_hash_in_range(self, node):
        value = RPCBlockSource(RPCClient()).block_hash(100)
        assert value == bytes.fromhex("ab" * 32)

    def test_block_hash_out_of_range(self, node):
        node.head = 1000
        source = RPCBlockSource(RPCClient())
        assert source.block_hash(1001) is None      # not sealed
        assert source.block_hash(744) is None
        assert source.block_hash(745) is not None
