"""
Price sources for the launchpad token.

Each source issues one bounded-timeout GET request and parses a positive price
from the JSON response. Sources are queried in a fixed priority order by
PriceSourceAggregator.

Usage:
    from launchpad_oracle.src.sources import get_source, get_available_sources

    available = get_available_sources()
    # ['coingecko', 'coinmarketcap', 'jupiter']

    source = get_source("coingecko", asset="los")
    price = await source.fetch()

    # For sources requiring API keys
    source = get_source("coinmarketcap", api_key="your-api-key")
"""

from .base import (
    SOURCE_REGISTRY,
    PriceSource,
    SourceConfigError,
    SourceFetchError,
    SourceHTTPError,
    get_available_sources,
    get_source,
    register_source,
)

# Import all source implementations to trigger registration
from .coingecko import CoinGeckoSource
from .coinmarketcap import CoinMarketCapSource
from .jupiter import JupiterSource

# Priority order used when no explicit source list is configured
DEFAULT_SOURCE_ORDER = ["coingecko", "coinmarketcap", "jupiter"]

__all__ = [
    "DEFAULT_SOURCE_ORDER",
    # Base classes
    "PriceSource",
    "SourceFetchError",
    "SourceConfigError",
    "SourceHTTPError",
    # Registry functions
    "register_source",
    "get_source",
    "get_available_sources",
    "SOURCE_REGISTRY",
    # Source implementations
    "CoinGeckoSource",
    "CoinMarketCapSource",
    "JupiterSource",
]
