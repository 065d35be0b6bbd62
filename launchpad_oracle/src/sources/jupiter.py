"""Jupiter aggregator source.

Endpoint: https://price.jup.ag/v4/price?ids={SYMBOL}
Rate Limit: High (no key required)
"""

from typing import Any

from .base import PriceSource, register_source


@register_source
class JupiterSource(PriceSource):
    """Source for the Jupiter price API.

    No API key required.
    """

    name = "jupiter"
    BASE_URL = "https://price.jup.ag/v4"

    @property
    def url(self) -> str:
        return f"{self.BASE_URL}/price"

    @property
    def params(self) -> dict:
        return {"ids": self.symbol}

    def parse(self, data: Any) -> float | None:
        """Read ``data["data"][SYMBOL]["price"]``."""
        entry = (data.get("data") or {}).get(self.symbol)
        if not entry:
            return None
        return entry.get("price")
