#!/usr/bin/env python3
"""
RL Model Ledger - Main runner script

Usage:
    python run.py deploy                      # Build the ledger from config/config.yaml
    python run.py deploy --fee-bps 100        # Override the marketplace fee
    python run.py metadata                    # Print metadata for the sample model
    python run.py metadata --input model.yaml # Print metadata for a model file
    python run.py demo                        # Mint, split profits, list and sell a model
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from typing import Any

from dotenv import load_dotenv

from modelmarket.config import get_validated_config, load_config, set_config_value
from modelmarket.metadata import SAMPLE_MODEL, generate_model_metadata, load_model_spec
from modelmarket.world import World, format_units, parse_units

# Load environment variables
load_dotenv()


def build_world(run_id: str | None) -> World:
    config = get_validated_config()
    logging.basicConfig(
        level=getattr(logging, config.logging.level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return World(config, run_id=run_id)


def cmd_deploy(world: World) -> None:
    print("=== Deployed ===")
    print(f"Registry:    {world.registry.address} ({world.registry.name}/{world.registry.symbol})")
    print(f"Marketplace: {world.marketplace.address}")
    print(f"Operator:    {world.marketplace.operator}")
    print(f"Fee:         {world.marketplace.fee_bps} bps")


def cmd_metadata(args: argparse.Namespace) -> None:
    model = load_model_spec(args.input) if args.input else SAMPLE_MODEL
    print(json.dumps(generate_model_metadata(model), indent=2))


def run_demo(world: World, verbose: bool = True) -> dict[str, Any]:
    """Reference scenario: creator mints, splits profits, sells to a buyer."""
    decimals = world.ledger.decimals
    creator, partner, buyer = "alice", "bob", "carol"
    one = parse_units("1.0", decimals)

    world.fund(creator, one)
    world.fund(buyer, parse_units("2.0", decimals))

    asset_id = world.mint(creator, "ipfs://cartpole-solver-v1")
    world.update_metrics(asset_id, 0.8, 90, 0.6, invoker_id=creator)
    world.set_profit_config(asset_id, [creator, partner], [60, 40], invoker_id=creator)
    payouts = world.distribute_profits(asset_id, one, invoker_id=creator)

    world.approve(asset_id, world.marketplace.address, invoker_id=creator)
    world.list_model(asset_id, one, invoker_id=creator)
    settlement = world.buy_model(asset_id, one, invoker_id=buyer)

    if verbose:
        print("=== Demo ===")
        for payout in payouts:
            print(f"Payout to {payout['beneficiary']}: {format_units(payout['amount'], decimals)}")
        print(f"Model {asset_id} sold to {world.owner_of(asset_id)}, "
              f"fee {format_units(settlement['fee'], decimals)}")
        print("Balances:")
        for pid, info in world.ledger.get_all_balances().items():
            print(f"  {pid}: {info['display']}")
        print(f"Summary: {json.dumps(world.get_state_summary(), default=str)}")
    return world.get_state_summary()


def main() -> None:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="RL model ownership ledger and marketplace"
    )
    parser.add_argument("--config", default=None, help="Path to config file")
    parser.add_argument("--run-id", default=None, help="Per-run log directory name")
    parser.add_argument("--fee-bps", type=int, help="Override the marketplace fee")
    parser.add_argument("--quiet", action="store_true", help="Suppress output")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("deploy", help="Build the ledger and print its addresses")
    metadata_parser = sub.add_parser("metadata", help="Print a model metadata document")
    metadata_parser.add_argument("--input", help="Model description (.json or .yaml)")
    sub.add_parser("demo", help="Run the reference trading scenario")
    args: argparse.Namespace = parser.parse_args()

    if args.command == "metadata":
        cmd_metadata(args)
        return

    load_config(args.config)
    if args.fee_bps is not None:
        set_config_value("marketplace.fee_bps", args.fee_bps)

    run_id = args.run_id
    if run_id is None and get_validated_config().logging.logs_dir:
        run_id = datetime.now().strftime("run_%Y%m%d_%H%M%S")

    world = build_world(run_id)
    if args.command == "deploy":
        if not args.quiet:
            cmd_deploy(world)
    else:
        run_demo(world, verbose=not args.quiet)


if __name__ == "__main__":
    main()
