"""CoinMarketCap source.

Endpoint: https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest?symbol={SYMBOL}
Rate Limit: 333 calls/day (free tier)
API Key: Required
"""

import logging
from typing import Any

from .base import PriceSource, SourceConfigError, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinMarketCapSource(PriceSource):
    """Source for the CoinMarketCap quotes API.

    API key is REQUIRED; without one the source is skipped.
    """

    name = "coinmarketcap"
    BASE_URL = "https://pro-api.coinmarketcap.com"

    @property
    def url(self) -> str:
        return f"{self.BASE_URL}/v1/cryptocurrency/quotes/latest"

    @property
    def params(self) -> dict:
        return {"symbol": self.symbol}

    @property
    def headers(self) -> dict | None:
        if not self.has_api_key:
            return None
        return {"X-CMC_PRO_API_KEY": self.api_key}

    def validate(self) -> None:
        if not self.has_api_key:
            raise SourceConfigError("API key required but not provided")

    def parse(self, data: Any) -> float | None:
        """Read ``data["data"][SYMBOL]["quote"]["USD"]["price"]``."""
        symbol_data = (data.get("data") or {}).get(self.symbol)
        if not symbol_data:
            logger.warning(f"[coinmarketcap] Symbol {self.symbol} not found")
            return None

        # v2-style responses return a list of matches, take the first one
        if isinstance(symbol_data, list):
            symbol_data = symbol_data[0]

        quote_data = symbol_data.get("quote", {}).get("USD")
        if not quote_data:
            logger.warning(f"[coinmarketcap] No USD quote for {self.symbol}")
            return None
        return quote_data["price"]
