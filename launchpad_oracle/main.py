#!/usr/bin/env python3
"""Launchpad Price Oracle.

Fetches the launchpad token price from prioritized off-chain sources and pushes
it to the on-chain price oracle when it moved past the update threshold and
the cooldown since the last update has expired.

Configure with CLI args or env vars (CLI args take precedence).
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.OracleConfig import AutomationConfig
from .src.OracleScheduler import FatalAutomationError, OracleReconciliationScheduler
from .src.OracleUpdateSubmitter import build_submitter
from .src.PriceSourceAggregator import PriceSourceAggregator
from .src.sources import DEFAULT_SOURCE_ORDER, get_available_sources, get_source

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: coingecko=demo:abc123,coinmarketcap=xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Parse API keys from individual environment variables.

    Looks for: API_KEY_COINGECKO, API_KEY_COINMARKETCAP, etc.

    :returns: Dict mapping source names to API keys.
    """
    api_keys = {}
    prefixes = ["API_KEY_", "APIKEY_"]

    for key, value in os.environ.items():
        for prefix in prefixes:
            if key.startswith(prefix) and value:
                source = key[len(prefix):].lower()
                api_keys[source] = value
                break

    return api_keys


def build_parser(available_sources: list[str]) -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment-derived defaults."""
    parser = argparse.ArgumentParser(
        description="Launchpad Price Oracle: threshold/cooldown oracle updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # Local development node with default sources
  python -m launchpad_oracle.main --oracle-address 0x5FbDB2315678afecb367f032d93F642f64180aa3

  # Tighter threshold, CoinMarketCap first
  python -m launchpad_oracle.main --oracle-address 0x... \\
      --sources coinmarketcap,coingecko,jupiter --threshold 0.5 \\
      --api-keys coinmarketcap=your-api-key

Environment variables (CLI args take precedence):
  ENABLED, CHECK_INTERVAL_MS, UPDATE_THRESHOLD_PERCENT, MIN_TIME_BETWEEN_UPDATES_MS,
  MAX_CONSECUTIVE_ERRORS, ORACLE_SEED, ORACLE_ADDRESS, AUTHORITY_KEY, RPC_URL,
  NETWORK, ASSET, SOURCES, FETCH_TIMEOUT, API_KEY_COINGECKO, API_KEY_COINMARKETCAP, etc.
""",
    )

    try:
        defaults = AutomationConfig.from_env()
    except ValueError as e:
        parser.error(f"Invalid environment configuration: {e}")

    parser.add_argument(
        "--asset",
        type=str,
        help="Asset symbol to price (default: los)",
        default=os.environ.get("ASSET") or "los",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources in priority order. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or ",".join(DEFAULT_SOURCE_ORDER),
    )

    parser.add_argument(
        "--check-interval-ms",
        dest="check_interval_ms",
        type=int,
        help="Milliseconds between price checks (default: 60000)",
        default=defaults.check_interval_ms,
    )

    parser.add_argument(
        "--threshold",
        dest="update_threshold_percent",
        type=float,
        help="Minimum price change percent that triggers an update (default: 1.0)",
        default=defaults.update_threshold_percent,
    )

    parser.add_argument(
        "--cooldown-ms",
        dest="min_time_between_updates_ms",
        type=int,
        help="Minimum milliseconds between on-chain updates (default: 300000)",
        default=defaults.min_time_between_updates_ms,
    )

    parser.add_argument(
        "--max-consecutive-errors",
        dest="max_consecutive_errors",
        type=int,
        help="Consecutive failures before the automation stops itself (default: 5)",
        default=defaults.max_consecutive_errors,
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network to connect to (localnet, sapphire, sapphire-testnet)",
        default=defaults.network,
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="RPC endpoint (overrides the network default)",
        default=defaults.rpc_url,
    )

    parser.add_argument(
        "--oracle-address",
        dest="oracle_address",
        type=str,
        help="Address of the price oracle contract",
        default=defaults.oracle_address,
    )

    parser.add_argument(
        "--oracle-seed",
        dest="oracle_seed",
        type=str,
        help="Seed used to derive the oracle feed key (default: price_oracle)",
        default=defaults.oracle_seed,
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., coingecko=demo:abc,coinmarketcap=xyz)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for each price source request in seconds (default: 5.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "5.0"),
    )

    parser.add_argument(
        "--disabled",
        action="store_true",
        help="Load configuration but do not start the automation",
        default=not defaults.enabled,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def main() -> None:
    """Main entry point for the Launchpad Price Oracle CLI."""
    available_sources = get_available_sources()

    parser = build_parser(available_sources)
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    if not sources:
        parser.error("At least one source must be specified")

    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    if not args.oracle_address:
        parser.error("--oracle-address (or ORACLE_ADDRESS) is required")

    try:
        config = AutomationConfig(
            enabled=not args.disabled,
            check_interval_ms=args.check_interval_ms,
            update_threshold_percent=args.update_threshold_percent,
            min_time_between_updates_ms=args.min_time_between_updates_ms,
            max_consecutive_errors=args.max_consecutive_errors,
            oracle_seed=args.oracle_seed,
            oracle_address=args.oracle_address,
            authority_key=os.environ.get("AUTHORITY_KEY"),
            rpc_url=args.rpc_url,
            network=args.network,
        )
    except ValueError as e:
        parser.error(str(e))

    # Parse API keys (CLI + environment)
    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Launchpad Price Oracle - Threshold/Cooldown Updates")
    logger.info("=" * 60)
    logger.info(f"Network:           {config.network}")
    logger.info(f"Oracle:            {config.oracle_address}")
    logger.info(f"Oracle Seed:       {config.oracle_seed}")
    logger.info(f"Asset:             {args.asset.upper()}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Check Interval:    {config.check_interval_seconds}s")
    logger.info(f"Update Threshold:  {config.update_threshold_percent}%")
    logger.info(f"Cooldown:          {config.min_time_between_updates_seconds}s")
    logger.info(f"Max Errors:        {config.max_consecutive_errors}")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    if not config.enabled:
        logger.warning("Automation is disabled, exiting")
        return

    try:
        aggregator = PriceSourceAggregator(
            [
                get_source(
                    name,
                    asset=args.asset,
                    api_key=api_keys.get(name),
                    timeout=args.fetch_timeout,
                )
                for name in sources
            ],
            fetch_timeout=args.fetch_timeout,
        )
        scheduler = OracleReconciliationScheduler(
            config=config,
            aggregator=aggregator,
            submitter=build_submitter(config),
        )
        asyncio.run(_run(scheduler))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except FatalAutomationError as e:
        logger.error(f"{e}; restart required")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


async def _run(scheduler: OracleReconciliationScheduler) -> None:
    try:
        await scheduler.run()
    finally:
        # Clean up shared HTTP client
        await scheduler.aggregator.close()


if __name__ == "__main__":
    main()
