#!/usr/bin/env python3
"""Mint price quote.

Computes the price a wallet pays for the next mint of a collection, using the
collection pricing config stored as JSON.
"""

import argparse
import logging
import os
import sys
from datetime import datetime, timezone

from .src.MintPricingEngine import MintPricingError, compute_mint_price
from .src.PricingConfig import InvalidConfigError, parse_time
from .src.PricingConfigStore import PricingConfigStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute the mint price of a collection for a wallet",
    )
    parser.add_argument(
        "--store-dir",
        dest="store_dir",
        type=str,
        help="Directory containing <collection>.json pricing configs",
        default=os.environ.get("PRICING_STORE_DIR") or "pricing",
    )
    parser.add_argument(
        "--collection",
        type=str,
        required=True,
        help="Collection id",
    )
    parser.add_argument(
        "--supply",
        type=int,
        required=True,
        help="Number of items already minted",
    )
    parser.add_argument(
        "--wallet",
        type=str,
        required=True,
        help="Minting wallet address",
    )
    parser.add_argument(
        "--at",
        type=str,
        help="ISO-8601 time to price at (default: now)",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def main() -> None:
    """Main entry point for the mint price quote CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.supply < 0:
        parser.error("--supply must not be negative")

    try:
        now = parse_time(args.at, "--at") if args.at else datetime.now(timezone.utc)
    except InvalidConfigError as e:
        parser.error(str(e))

    store = PricingConfigStore(args.store_dir)
    try:
        config = store.load(args.collection)
        quote = compute_mint_price(config, args.supply, args.wallet, now)
    except KeyError:
        logger.error(f"No pricing config for collection '{args.collection}'")
        sys.exit(1)
    except (InvalidConfigError, MintPricingError) as e:
        logger.error(f"Cannot price mint: {e}")
        sys.exit(1)

    details = []
    if quote.applied_phase_id:
        details.append(f"phase={quote.applied_phase_id}")
    if quote.curve_applied:
        details.append("bonding curve")
    suffix = f" ({', '.join(details)})" if details else ""
    print(f"{quote.price:.6f}{suffix}")


if __name__ == "__main__":
    main()
