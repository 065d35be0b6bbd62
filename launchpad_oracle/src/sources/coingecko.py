"""CoinGecko source.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies=usd
Rate Limit: 30 calls/min (free), higher with API key
LOS Support: Yes (id: "los-token")
"""

import logging
from typing import Any

from .base import PriceSource, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinGeckoSource(PriceSource):
    """Source for the CoinGecko simple price API.

    API tiers:
        - Free: api.coingecko.com (no key)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    """

    name = "coingecko"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    # Map launchpad symbols to CoinGecko IDs
    COIN_IDS = {
        "los": "los-token",
        "sol": "solana",
        "usdc": "usd-coin",
        "usdt": "tether",
    }

    def __init__(
        self,
        asset: str = "los",
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]
        super().__init__(asset=asset, api_key=api_key, timeout=timeout)

    @property
    def coin_id(self) -> str:
        """CoinGecko ID for the asset (falls back to the raw symbol)."""
        return self.COIN_IDS.get(self.asset, self.asset)

    @property
    def url(self) -> str:
        base_url = self.BASE_URL_FREE
        if self.has_api_key and not self._is_demo:
            base_url = self.BASE_URL_PRO
        return f"{base_url}/simple/price"

    @property
    def params(self) -> dict:
        return {"ids": self.coin_id, "vs_currencies": "usd"}

    @property
    def headers(self) -> dict | None:
        if not self.has_api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return {header_name: self.api_key}

    def parse(self, data: Any) -> float | None:
        """Read ``data[coin_id]["usd"]``."""
        entry = data.get(self.coin_id)
        if not entry:
            logger.warning(f"[coingecko] Coin {self.coin_id} not in response: {data}")
            return None
        return entry.get("usd")
