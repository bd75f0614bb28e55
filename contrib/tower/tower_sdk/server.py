#!/usr/bin/env python3
"""
Lobster Tower SDK Server - REST API for the Tower frontend

Endpoints:
  GET  /health                     - Liveness
  GET  /api/status                 - Variant, custody, block height
  GET  /api/stats                  - Aggregate counters (getTowerStats)
  GET  /api/positions/<account>    - Positions with unclaimed earnings
  GET  /api/unclaimed/<account>    - Unclaimed total of an account
  GET  /api/events                 - Event history (newest first)
  POST /api/enter                  - Enter (tower: optional commit hash)
  POST /api/claim                  - Claim all earnings of an account
  POST /api/commit                 - Commit for an existing position   (tower)
  GET  /api/check/<position_id>    - Read-only roll check (fullCheck)   (tower)
  POST /api/topple                 - Resolve a winning reveal           (tower)
  POST /api/lose                   - Finalize a losing reveal           (tower)
  POST /api/expire                 - Expire a stale commitment          (tower)
  POST /api/admin/<action>         - entry-cost, ratios, pause, withdraw
  POST /api/dev/<action>           - mine, mint, approve (dev mode only)
"""

import logging
import time
from typing import Optional

from flask import Flask, abort, jsonify, request
from flask_cors import CORS

from .asset_ledger import InMemoryAssetLedger
from .config import ServiceConfig, TowerConfig
from .engine import LedgerEngine, LobsterTower, build_engine
from .errors import (
    AssetLedgerError,
    AuthorizationError,
    ConfigurationError,
    InvalidAmount,
    TowerError,
    UnknownPosition,
)
from .randomness import LocalChain, RandomnessSource, RPCBlockSource
from .rpc_client import RPCClient
from .store import TowerStore
from .tower_types import Variant, from_hex32

log = logging.getLogger(__name__)

# =============================================================================
# ERROR MAPPING
# =============================================================================

def status_for(error: TowerError) -> int:
    if isinstance(error, (ConfigurationError, InvalidAmount)):
        return 400
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, AssetLedgerError):
        return 402
    if isinstance(error, UnknownPosition):
        return 404
    return 409


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="JSON body required")
    return data


def _field(data: dict, name: str):
    if name not in data or data[name] in (None, ""):
        abort(400, description=f"Missing {name}")
    return data[name]


def _int_field(data: dict, name: str, default: Optional[int] = None) -> int:
    if default is not None and data.get(name) in (None, ""):
        return default
    value = _field(data, name)
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an integer")


def _hex32_field(value: str, name: str) -> bytes:
    try:
        return from_hex32(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be 32 bytes of hex")


# =============================================================================
# FLASK APP
# =============================================================================

def create_app(engine: LedgerEngine,
               assets: Optional[InMemoryAssetLedger] = None,
               chain: Optional[LocalChain] = None,
               store: Optional[TowerStore] = None,
               dev_mode: bool = False) -> Flask:
    app = Flask(__name__)
    CORS(app)  # Allow cross-origin for the frontend

    def persist():
        if store is not None:
            store.save(engine)

    def tower() -> LobsterTower:
        if not isinstance(engine, LobsterTower):
            abort(404, description="Lottery endpoints are only available on the tower")
        return engine

    @app.errorhandler(TowerError)
    def handle_tower_error(e: TowerError):
        return jsonify({'error': e.code, 'message': e.message}), status_for(e)

    @app.errorhandler(400)
    @app.errorhandler(404)
    @app.errorhandler(405)
    @app.errorhandler(500)
    def handle_http_error(e):
        if e.code >= 500:
            log.error(f"{request.method} {request.path} failed: {e.description}")
        error = (e.name or 'error').lower().replace(' ', '_')
        return jsonify({'error': error, 'message': e.description}), e.code

    # -------------------------------------------------------------------------
    # STATUS / QUERIES
    # -------------------------------------------------------------------------

    @app.route('/health')
    def health():
        """Simple health check - returns ok if server is running"""
        return jsonify({'ok': True, 'timestamp': int(time.time())})

    @app.route('/api/status')
    def api_status():
        status = {
            'status': 'ok',
            'timestamp': int(time.time()),
            'variant': engine.variant.value,
            'custody_address': engine.custody_address,
            'owner': engine.config.owner,
            'dev_mode': dev_mode,
        }
        if isinstance(engine, LobsterTower):
            status['block_height'] = engine.source.current_height()
            status['reveal_window'] = engine.config.reveal_window
            status['modulo'] = engine.config.modulo
        return jsonify(status)

    @app.route('/api/stats')
    def api_stats():
        return jsonify(engine.stats().to_dict())

    @app.route('/api/positions/<account>')
    def api_positions(account: str):
        positions = []
        for pid in engine.positions_of(account):
            item = engine.get_position(pid).to_dict()
            item['unclaimed'] = engine.unclaimed(pid)
            if isinstance(engine, LobsterTower):
                commitment = engine.commitment_of(pid)
                item['commitment'] = commitment.to_dict() if commitment else None
            positions.append(item)
        return jsonify({'account': account, 'positions': positions, 'count': len(positions)})

    @app.route('/api/unclaimed/<account>')
    def api_unclaimed(account: str):
        return jsonify({'account': account, 'unclaimed': engine.unclaimed_of(account)})

    @app.route('/api/events')
    def api_events():
        name = request.args.get('name', '')
        limit = request.args.get('limit', 10, type=int)
        events = engine.recent_events(name=name, limit=limit)
        return jsonify({'events': [e.to_dict() for e in events], 'count': len(events)})

    # -------------------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------------------

    @app.route('/api/enter', methods=['POST'])
    def api_enter():
        """
        Request:
        {
            "account": "0x...",
            "commit": "0x..."      # tower only, optional keccak256(reveal)
        }
        """
        data = _body()
        account = _field(data, 'account')
        if isinstance(engine, LobsterTower):
            commit = data.get('commit')
            commit_hash = _hex32_field(commit, 'commit') if commit else None
            position_id = engine.enter(account, commit_hash)
        else:
            position_id = engine.enter(account)
        persist()
        return jsonify({'success': True, 'position_id': position_id})

    @app.route('/api/claim', methods=['POST'])
    def api_claim():
        data = _body()
        amount = engine.claim(_field(data, 'account'))
        persist()
        return jsonify({'success': True, 'amount': amount})

    @app.route('/api/commit', methods=['POST'])
    def api_commit():
        t = tower()
        data = _body()
        commitment = t.commit(_int_field(data, 'position_id'),
                              _hex32_field(_field(data, 'commit'), 'commit'),
                              _field(data, 'account'))
        persist()
        return jsonify({'success': True, 'commitment': commitment.to_dict()})

    @app.route('/api/check/<int:position_id>')
    def api_check(position_id: int):
        t = tower()
        reveal = request.args.get('reveal', '')
        if not reveal:
            abort(400, description="Missing reveal")
        outcome = t.check_outcome(position_id, _hex32_field(reveal, 'reveal'))
        return jsonify(outcome.to_dict())

    @app.route('/api/topple', methods=['POST'])
    def api_topple():
        t = tower()
        data = _body()
        pot = t.topple(_int_field(data, 'position_id'),
                       _hex32_field(_field(data, 'reveal'), 'reveal'),
                       _field(data, 'account'))
        persist()
        return jsonify({'success': True, 'pot': pot})

    @app.route('/api/lose', methods=['POST'])
    def api_lose():
        t = tower()
        data = _body()
        outcome = t.resolve_loss(_int_field(data, 'position_id'),
                                 _hex32_field(_field(data, 'reveal'), 'reveal'))
        persist()
        return jsonify({'success': True, 'outcome': outcome.to_dict()})

    @app.route('/api/expire', methods=['POST'])
    def api_expire():
        t = tower()
        commitment = t.expire(_int_field(_body(), 'position_id'))
        persist()
        return jsonify({'success': True, 'commitment': commitment.to_dict()})

    # -------------------------------------------------------------------------
    # ADMIN
    # -------------------------------------------------------------------------

    @app.route('/api/admin/entry-cost', methods=['POST'])
    def api_admin_entry_cost():
        data = _body()
        engine.set_entry_cost(_field(data, 'caller'), _int_field(data, 'entry_cost'))
        persist()
        return jsonify({'success': True, 'entry_cost': engine.config.entry_cost})

    @app.route('/api/admin/ratios', methods=['POST'])
    def api_admin_ratios():
        data = _body()
        engine.set_ratios(_field(data, 'caller'),
                          _int_field(data, 'participant_bps'),
                          _int_field(data, 'burn_bps'),
                          _int_field(data, 'instant_bps', 0))
        persist()
        return jsonify({'success': True, 'pool_bps': engine.config.pool_bps})

    @app.route('/api/admin/pause', methods=['POST'])
    def api_admin_pause():
        data = _body()
        engine.set_paused(_field(data, 'caller'), bool(data.get('paused', True)))
        persist()
        return jsonify({'success': True, 'paused': engine.config.paused})

    @app.route('/api/admin/withdraw', methods=['POST'])
    def api_admin_withdraw():
        data = _body()
        amount = engine.withdraw_pool(_field(data, 'caller'), _int_field(data, 'amount'),
                                      data.get('recipient'))
        persist()
        return jsonify({'success': True, 'amount': amount})

    # -------------------------------------------------------------------------
    # DEV MODE (local chain + in-memory token)
    # -------------------------------------------------------------------------

    if dev_mode:
        @app.route('/api/dev/mine', methods=['POST'])
        def api_dev_mine():
            if chain is None:
                abort(404, description="No local chain")
            data = request.get_json(silent=True) or {}
            if not isinstance(data, dict):
                abort(400, description="JSON object body required")
            blocks = _int_field(data, 'blocks', 1)
            if blocks < 0:
                abort(400, description="blocks must be non-negative")
            height = chain.mine(blocks)
            persist()
            return jsonify({'success': True, 'block_height': height})

        @app.route('/api/dev/mint', methods=['POST'])
        def api_dev_mint():
            if assets is None:
                abort(404, description="No in-memory asset ledger")
            data = _body()
            account = _field(data, 'account')
            assets.mint(account, _int_field(data, 'amount'))
            persist()
            return jsonify({'success': True, 'balance': assets.balance_of(account)})

        @app.route('/api/dev/approve', methods=['POST'])
        def api_dev_approve():
            if assets is None:
                abort(404, description="No in-memory asset ledger")
            data = _body()
            account = _field(data, 'account')
            amount = _int_field(data, 'amount', engine.config.entry_cost)
            assets.approve(account, engine.custody_address, amount)
            persist()
            return jsonify({'success': True, 'allowance': amount})

        @app.route('/api/dev/balance/<account>')
        def api_dev_balance(account: str):
            if assets is None:
                abort(404, description="No in-memory asset ledger")
            return jsonify({
                'account': account,
                'balance': assets.balance_of(account),
                'allowance': assets.allowance(account, engine.custody_address),
            })

    return app


# =============================================================================
# SERVICE WIRING
# =============================================================================

def build_service(config: ServiceConfig):
    """Build (engine, app) from a ServiceConfig, restoring saved state if any."""
    variant = Variant(config.variant)
    assets = InMemoryAssetLedger()

    chain: Optional[LocalChain] = None
    source: Optional[RandomnessSource] = None
    if variant is Variant.TOWER:
        if config.dev_mode:
            chain = LocalChain()
            source = chain
        else:
            source = RPCBlockSource(RPCClient(config.rpc_url))

    tower_config = TowerConfig.for_variant(variant, config.owner, entry_cost=config.entry_cost)
    engine = build_engine(variant, assets, tower_config, config.custody_address, source)

    store = None
    if config.storage_path:
        store = TowerStore(config.storage_path, assets=assets, chain=chain)
    if store is not None:
        store.load(engine)

    app = create_app(engine, assets=assets, chain=chain, store=store, dev_mode=config.dev_mode)
    return engine, app


def run(config: ServiceConfig):
    engine, app = build_service(config)
    log.info(f"Starting Lobster {engine.variant.value} server on {config.host}:{config.port}")
    log.info(f"Custody: {engine.custody_address}  Owner: {engine.config.owner}")
    log.info(f"Entry cost: {engine.config.entry_cost}  Dev mode: {config.dev_mode}")
    if config.storage_path:
        log.info(f"State file: {config.storage_path}")
    app.run(host=config.host, port=config.port, debug=False)


if __name__ == '__main__':
    service_config = ServiceConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, service_config.log_level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    run(service_config)
