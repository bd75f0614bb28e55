"""
Tests for the Flask REST surface.
"""

import pytest

from conftest import CUSTODY, OWNER, ScriptedChain, find_reveal
from tower_sdk import ServiceConfig, TowerStore, compute_commit
from tower_sdk.server import build_service, create_app
from tower_sdk.tower_types import to_hex32


@pytest.fixture
def client(tower, assets, chain):
    app = create_app(tower, assets=assets, chain=chain, dev_mode=True)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def stack_client(stack, assets):
    app = create_app(stack, assets=assets)
    return app.test_client()


class TestQueries:

    def test_health(self, client):
        assert client.get("/health").get_json()["ok"] is True

    def test_status(self, client, chain):
        data = client.get("/api/status").get_json()
        assert data["variant"] == "tower"
        assert data["custody_address"] == CUSTODY
        assert data["block_height"] == chain.height
        assert data["modulo"] == 69

    def test_stats_after_entries(self, client):
        for account in ("alice", "bob", "carol"):
            assert client.post("/api/enter", json={"account": account}).status_code == 200
        stats = client.get("/api/stats").get_json()
        assert stats["pot"] == 110
        assert stats["height"] == 3
        assert stats["total_burned"] == 30

    def test_positions_and_unclaimed(self, client):
        client.post("/api/enter", json={"account": "alice"})
        client.post("/api/enter", json={"account": "bob"})
        data = client.get("/api/positions/alice").get_json()
        assert data["count"] == 1
        assert data["positions"][0]["unclaimed"] == 80
        assert data["positions"][0]["commitment"] is None
        assert client.get("/api/unclaimed/alice").get_json()["unclaimed"] == 80

    def test_events(self, client):
        client.post("/api/enter", json={"account": "alice"})
        client.post("/api/enter", json={"account": "bob"})
        data = client.get("/api/events?name=LobsterPlaced&limit=1").get_json()
        assert data["count"] == 1
        assert data["events"][0]["args"]["account"] == "bob"


class TestMutations:

    def test_claim_flow(self, client):
        client.post("/api/enter", json={"account": "alice"})
        client.post("/api/enter", json={"account": "bob"})
        resp = client.post("/api/claim", json={"account": "alice"})
        assert resp.get_json() == {"success": True, "amount": 80}

        resp = client.post("/api/claim", json={"account": "alice"})
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "nothing_to_claim"

    def test_enter_commit_check_topple(self, client, chain):
        client.post("/api/enter", json={"account": "alice"})
        reveal = find_reveal(ScriptedChain.hash_at(chain.height), winning=True)
        resp = client.post("/api/enter", json={"account": "bob",
                                               "commit": to_hex32(compute_commit(reveal))})
        pid = resp.get_json()["position_id"]

        client.post("/api/dev/mine", json={"blocks": 1})
        check = client.get(f"/api/check/{pid}?reveal={to_hex32(reveal)}").get_json()
        assert check["winner"] is True
        assert check["roll"] == 0
        assert check["blocks_remaining"] == 254

        resp = client.post("/api/topple", json={"account": "bob", "position_id": pid,
                                                "reveal": to_hex32(reveal)})
        assert resp.get_json() == {"success": True, "pot": 100}
        assert client.get("/api/stats").get_json()["round"] == 1

    def test_lose_and_expire(self, client, chain):
        reveal = find_reveal(ScriptedChain.hash_at(chain.height), winning=False)
        pid = client.post("/api/enter", json={
            "account": "alice", "commit": to_hex32(compute_commit(reveal))}).get_json()["position_id"]
        client.post("/api/dev/mine", json={"blocks": 1})
        resp = client.post("/api/lose", json={"position_id": pid, "reveal": to_hex32(reveal)})
        assert resp.get_json()["outcome"]["roll"] != 0

        commit_hash = compute_commit(b"\x05" * 32)
        client.post("/api/commit", json={"account": "alice", "position_id": pid,
                                         "commit": to_hex32(commit_hash)})
        assert client.post("/api/expire", json={"position_id": pid}).status_code == 409
        client.post("/api/dev/mine", json={"blocks": 300})
        resp = client.post("/api/expire", json={"position_id": pid})
        assert resp.get_json()["commitment"]["status"] == "expired"

    def test_wrong_reveal_is_conflict(self, client, chain):
        pid = client.post("/api/enter", json={
            "account": "alice", "commit": to_hex32(compute_commit(b"\x01" * 32))}).get_json()["position_id"]
        client.post("/api/dev/mine", json={"blocks": 1})
        wrong = to_hex32(b"\x02" * 32)
        resp = client.get(f"/api/check/{pid}?reveal={wrong}")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "stale_commitment"


class TestErrors:

    def test_missing_account(self, client):
        resp = client.post("/api/enter", json={})
        assert resp.status_code == 400

    def test_bad_hex(self, client):
        resp = client.post("/api/enter", json={"account": "alice", "commit": "0x1234"})
        assert resp.status_code == 400

    def test_insufficient_allowance_is_402(self, client):
        resp = client.post("/api/enter", json={"account": "nobody"})
        assert resp.status_code == 402
        assert resp.get_json()["error"] == "insufficient_funds"

    def test_admin_requires_owner(self, client):
        resp = client.post("/api/admin/entry-cost", json={"caller": "alice", "entry_cost": 5})
        assert resp.status_code == 403

    def test_admin_ratios_invalid(self, client):
        resp = client.post("/api/admin/ratios", json={
            "caller": OWNER, "participant_bps": 9500, "burn_bps": 1000})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "configuration"

    def test_unknown_position(self, client):
        resp = client.post("/api/topple", json={"account": "alice", "position_id": 99,
                                                "reveal": to_hex32(b"\x01" * 32)})
        assert resp.status_code == 404

    def test_bad_block_count(self, client, chain):
        height = chain.height
        for blocks in ("abc", [1], -1):
            resp = client.post("/api/dev/mine", json={"blocks": blocks})
            assert resp.status_code == 400
            assert resp.get_json()["error"] == "bad_request"
        assert chain.height == height

    def test_wrong_method_is_json(self, client):
        resp = client.get("/api/enter")
        assert resp.status_code == 405
        assert resp.get_json()["error"] == "method_not_allowed"


class TestAdminAndDev:

    def test_pause_and_withdraw(self, client, assets):
        client.post("/api/enter", json={"account": "alice"})
        assert client.post("/api/admin/pause", json={"caller": OWNER, "paused": True}).status_code == 200
        assert client.post("/api/enter", json={"account": "bob"}).status_code == 409
        client.post("/api/admin/pause", json={"caller": OWNER, "paused": False})

        resp = client.post("/api/admin/withdraw", json={"caller": OWNER, "amount": 50})
        assert resp.get_json()["amount"] == 50
        assert assets.balance_of(OWNER) == 50

    def test_mint_and_approve(self, client):
        client.post("/api/dev/mint", json={"account": "zed", "amount": 500})
        client.post("/api/dev/approve", json={"account": "zed"})
        balance = client.get("/api/dev/balance/zed").get_json()
        assert balance == {"account": "zed", "balance": 500, "allowance": 100}
        assert client.post("/api/enter", json={"account": "zed"}).status_code == 200


class TestStackServer:

    def test_lottery_endpoints_absent(self, stack_client):
        resp = stack_client.post("/api/topple", json={"account": "a", "position_id": 1,
                                                      "reveal": to_hex32(b"\x01" * 32)})
        assert resp.status_code == 404

    def test_dev_endpoints_absent(self, stack_client):
        assert stack_client.post("/api/dev/mint", json={"account": "a", "amount": 1}).status_code == 404

    def test_stack_entry(self, stack_client):
        resp = stack_client.post("/api/enter", json={"account": "alice"})
        assert resp.get_json()["position_id"] == 1
        assert stack_client.get("/api/stats").get_json()["pool"] == 90


class TestBuildService:

    def test_dev_service_persists(self, tmp_path):
        path = str(tmp_path / "state.json")
        config = ServiceConfig(variant="tower", owner=OWNER, entry_cost=100,
                               storage_path=path, dev_mode=True)
        engine, app = build_service(config)
        client = app.test_client()
        client.post("/api/dev/mint", json={"account": "alice", "amount": 1000})
        client.post("/api/dev/approve", json={"account": "alice", "amount": 1000})
        assert client.post("/api/enter", json={"account": "alice"}).status_code == 200

        assert TowerStore(path).exists()
        engine2, _ = build_service(config)
        assert engine2.stats().pot == 90

    def test_claim_after_restart(self, tmp_path):
        config = ServiceConfig(variant="tower", owner=OWNER, entry_cost=100,
                               storage_path=str(tmp_path / "state.json"), dev_mode=True)
        _, app = build_service(config)
        client = app.test_client()
        for account in ("alice", "bob"):
            client.post("/api/dev/mint", json={"account": account, "amount": 1000})
            client.post("/api/dev/approve", json={"account": account, "amount": 1000})
            assert client.post("/api/enter", json={"account": account}).status_code == 200
        client.post("/api/dev/mine", json={"blocks": 3})

        engine2, app2 = build_service(config)
        client2 = app2.test_client()
        resp = client2.post("/api/claim", json={"account": "alice"})
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "amount": 80}
        assert engine2.check_solvency()
        balance = client2.get("/api/dev/balance/alice").get_json()
        assert balance == {"account": "alice", "balance": 980, "allowance": 900}
        assert client2.get("/api/status").get_json()["block_height"] == 3
