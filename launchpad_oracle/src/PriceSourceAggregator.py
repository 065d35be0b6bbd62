"""PriceSourceAggregator: First-success fallback over prioritized price sources.

Sources are queried one at a time in their configured order. Each request is
bounded by ``fetch_timeout``. The first source that yields a positive price
wins; there is no quorum and no averaging. The threshold and cooldown checks in
the scheduler are the safety gate for what actually reaches the chain.

.. code-block:: python

    >>> aggregator = PriceSourceAggregator([get_source("coingecko"), get_source("jupiter")])
    >>> quote = await aggregator.fetch_price()
    >>> quote.source_id
    'coingecko'
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .sources import PriceSource, SourceFetchError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """A single price observation from one source.

    :ivar source_id: Name of the source that produced the price.
    :ivar value: Positive price in USD.
    :ivar observed_at: Unix timestamp of the observation.
    """

    source_id: str
    value: float
    observed_at: float


class AllSourcesFailedError(Exception):
    """Raised when every configured source failed to produce a price.

    :ivar failures: Dict mapping source name to failure description.
    """

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        detail = ", ".join(f"{s}: {e}" for s, e in failures.items()) or "no sources"
        super().__init__(f"All price sources failed ({detail})")


class PriceSourceAggregator:
    """Queries price sources in priority order and returns the first success.

    :ivar sources: Ordered list of price sources.
    :ivar fetch_timeout: Upper bound in seconds for each source request.
    """

    def __init__(
        self,
        sources: Sequence[PriceSource],
        fetch_timeout: float = 5.0,
    ) -> None:
        """Initialize the aggregator.

        :param sources: Price sources, highest priority first.
        :param fetch_timeout: Per-source timeout in seconds (default: 5.0).
        :raises ValueError: If no sources are given or the timeout is not positive.
        """
        if not sources:
            raise ValueError("At least one price source must be configured")
        if fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")

        self.sources = list(sources)
        self.fetch_timeout = fetch_timeout

    @property
    def source_names(self) -> list[str]:
        """Names of the configured sources in priority order."""
        return [s.name for s in self.sources]

    async def fetch_price(self) -> PriceQuote:
        """Fetch a price from the first source that succeeds.

        :returns: PriceQuote from the winning source.
        :raises AllSourcesFailedError: If every source failed.
        """
        failures: dict[str, str] = {}

        for source in self.sources:
            logger.debug(f"[{source.name}] Requesting {source.symbol} price")
            try:
                value = await asyncio.wait_for(
                    source.fetch(), timeout=self.fetch_timeout
                )
            except asyncio.TimeoutError:
                failures[source.name] = f"timeout after {self.fetch_timeout}s"
                logger.warning(f"[{source.name}] Timeout fetching {source.symbol}")
                continue
            except SourceFetchError as e:
                failures[source.name] = str(e)
                logger.warning(f"[{source.name}] Failed to fetch {source.symbol}: {e}")
                continue
            except Exception as e:
                failures[source.name] = repr(e)
                logger.warning(f"[{source.name}] Error fetching {source.symbol}: {e!r}")
                continue

            if not math.isfinite(value) or not value > 0:
                failures[source.name] = f"invalid price {value}"
                logger.warning(f"[{source.name}] Ignoring invalid price {value}")
                continue

            logger.info(f"[{source.name}] {source.symbol} = ${value:.6f}")
            return PriceQuote(
                source_id=source.name, value=float(value), observed_at=time.time()
            )

        raise AllSourcesFailedError(failures)

    async def close(self) -> None:
        """Release the shared HTTP client used by the sources."""
        await PriceSource.close_shared_client()
