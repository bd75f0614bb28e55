#!/usr/bin/env python3
"""
Lobster Tower CLI

Usage:
    # Run the REST server (dev mode: local chain + in-memory token)
    tower-cli serve --variant tower --port 8080 --state tower_state.json

    # Generate a reveal and its commit hash
    tower-cli secret

    # Roll a reveal against a known block hash
    tower-cli check --reveal 0x... --block-hash 0x...

    # Simulate N entries on a local tower and print the ledger
    tower-cli simulate --entries 200 --players 5
"""

import argparse
import logging
import random
import sys

from .asset_ledger import InMemoryAssetLedger
from .config import ServiceConfig, TowerConfig
from .engine import LobsterStack, LobsterTower
from .errors import TowerError
from .lottery import compute_commit, generate_reveal, roll_for
from .randomness import LocalChain
from .tower_types import Variant, from_hex32, to_hex32

log = logging.getLogger("tower-cli")


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_serve(args) -> int:
    from .server import run

    config = ServiceConfig.from_env()
    if args.variant:
        config.variant = args.variant
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.state:
        config.storage_path = args.state
    if args.rpc_url:
        config.rpc_url = args.rpc_url
        config.dev_mode = False
    if args.owner:
        config.owner = args.owner
    run(config)
    return 0


def cmd_secret(args) -> int:
    reveal, commit_hash = generate_reveal()
    print(f"reveal: {to_hex32(reveal)}")
    print(f"commit: {to_hex32(commit_hash)}")
    print("Keep the reveal private until you topple or resolve.")
    return 0


def cmd_check(args) -> int:
    reveal = from_hex32(args.reveal)
    block_hash = from_hex32(args.block_hash)
    roll = roll_for(reveal, block_hash, args.modulo)
    print(f"commit: {to_hex32(compute_commit(reveal))}")
    print(f"roll:   {roll}/{args.modulo}  {'WINNER' if roll == 0 else 'no topple'}")
    return 0


def cmd_simulate(args) -> int:
    rng = random.Random(args.seed)
    assets = InMemoryAssetLedger()
    chain = LocalChain(seed=args.seed.to_bytes(8, "big") if args.seed is not None else None)
    variant = Variant(args.variant)
    config = TowerConfig.for_variant(variant, "owner", entry_cost=args.entry_cost)

    if variant is Variant.TOWER:
        engine = LobsterTower(assets, config, "custody", chain)
    else:
        engine = LobsterStack(assets, config, "custody")

    players = [f"player{i}" for i in range(args.players)]
    for player in players:
        assets.mint(player, args.entry_cost * args.entries)
        assets.approve(player, "custody", args.entry_cost * args.entries)

    print("=" * 64)
    print(f"  Lobster {variant.value} simulation: {args.entries} entries, {args.players} players")
    print("=" * 64)

    for _ in range(args.entries):
        player = rng.choice(players)
        if isinstance(engine, LobsterTower):
            reveal, commit_hash = generate_reveal()
            pid = engine.enter(player, commit_hash)
            chain.mine()
            if engine.check_outcome(pid, reveal).is_winner:
                pot = engine.topple(pid, reveal, player)
                print(f"  TOPPLE  #{pid:<5} {player:<10} pot {pot}")
            else:
                engine.resolve_loss(pid, reveal)
        else:
            engine.enter(player)

    stats = engine.stats().to_dict()
    print("-" * 64)
    for key, value in stats.items():
        print(f"  {key:<20} {value}")
    print("-" * 64)
    for player in players:
        print(f"  {player:<10} positions {len(engine.positions_of(player)):>4}  "
              f"unclaimed {engine.unclaimed_of(player):>12}  "
              f"balance {assets.balance_of(player):>12}")
    print(f"  solvent: {engine.check_solvency()}")
    return 0


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Lobster Tower / Stack ledger")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the REST server")
    serve_parser.add_argument("--variant", choices=["tower", "stack"], help="Ledger variant")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="HTTP port")
    serve_parser.add_argument("--state", help="JSON state file")
    serve_parser.add_argument("--rpc-url", help="EVM node for block hashes (disables dev mode)")
    serve_parser.add_argument("--owner", help="Owner account for admin calls")

    subparsers.add_parser("secret", help="Generate a reveal and its commit hash")

    check_parser = subparsers.add_parser("check", help="Roll a reveal against a block hash")
    check_parser.add_argument("--reveal", required=True, help="32-byte reveal (hex)")
    check_parser.add_argument("--block-hash", required=True, help="Commit block hash (hex)")
    check_parser.add_argument("--modulo", type=int, default=TowerConfig.modulo,
                              help="Win modulo (default: 69)")

    sim_parser = subparsers.add_parser("simulate", help="Run a local simulation")
    sim_parser.add_argument("--variant", choices=["tower", "stack"], default="tower")
    sim_parser.add_argument("--entries", type=int, default=100, help="Number of entries")
    sim_parser.add_argument("--players", type=int, default=5, help="Number of players")
    sim_parser.add_argument("--entry-cost", type=int, default=100, help="Entry cost")
    sim_parser.add_argument("--seed", type=int, help="Seed for reproducible runs")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    commands = {
        "serve": cmd_serve,
        "secret": cmd_secret,
        "check": cmd_check,
        "simulate": cmd_simulate,
    }
    if args.command not in commands:
        parser.print_help()
        return 1

    try:
        return commands[args.command](args)
    except (TowerError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
