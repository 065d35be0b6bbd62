"""Base price source interface and shared HTTP client management.

Every provider inherits from PriceSource and describes a single GET request
(``url``, ``params``, ``headers``) plus a ``parse()`` method that extracts the
price from the decoded JSON body. A shared httpx.AsyncClient is used across all
sources to avoid connection overhead.

.. code-block:: python

    @register_source
    class MySource(PriceSource):
        name = "mysource"

        @property
        def url(self) -> str:
            return f"https://api.example.com/price/{self.symbol}"

        def parse(self, data) -> float | None:
            return data["price"]
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)


class SourceFetchError(Exception):
    """Base exception for price source errors."""

    pass


class SourceConfigError(SourceFetchError):
    """Raised when source configuration is invalid (e.g., missing API key)."""

    pass


class SourceHTTPError(SourceFetchError):
    """Raised when the HTTP request returns a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class PriceSource(ABC):
    """Abstract base class for external price providers.

    Subclasses must implement:
        - name: Class variable identifying the provider (e.g., "coingecko")
        - url: Endpoint queried for the asset
        - parse(): Extract the price from the JSON response

    :cvar name: Unique identifier for this source.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar asset: Asset symbol being priced (lowercase, e.g., "los").
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 5.0

    def __init__(
        self,
        asset: str = "los",
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the source.

        :param asset: Asset symbol to price (default: "los").
        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 5).
        """
        self.asset = asset.lower()
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def symbol(self) -> str:
        """Upper-case ticker symbol of the asset."""
        return self.asset.upper()

    @property
    def has_api_key(self) -> bool:
        """Check if this source has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @property
    @abstractmethod
    def url(self) -> str:
        """Endpoint queried for the current price."""
        pass

    @property
    def params(self) -> dict | None:
        """Optional query parameters for the request."""
        return None

    @property
    def headers(self) -> dict | None:
        """Optional request headers."""
        return None

    @abstractmethod
    def parse(self, data: Any) -> float | None:
        """Extract the price from a decoded JSON response.

        :param data: Decoded JSON body.
        :returns: Price, or None if the response carries no usable price.
        """
        pass

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all source instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if PriceSource._shared_client is None or PriceSource._shared_client.is_closed:
            PriceSource._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                headers={"Accept": "application/json"},
                follow_redirects=True,
            )
        return PriceSource._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g., with a mock transport in tests).

        :param client: Client to share, or None to recreate lazily.
        """
        PriceSource._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = PriceSource._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        PriceSource._shared_client = None

    def validate(self) -> None:
        """Check the source is usable before issuing a request.

        :raises SourceConfigError: If the source is misconfigured.
        """
        return None

    async def fetch(self) -> float:
        """Fetch the current price from this source.

        :returns: Positive price.
        :raises SourceFetchError: On request, HTTP, parse, or value errors.
        """
        self.validate()
        response = await self._get(self.url, params=self.params, headers=self.headers)

        try:
            price = self.parse(response.json())
        except (KeyError, ValueError, TypeError, IndexError, AttributeError) as e:
            raise SourceFetchError(f"Failed to parse response: {e}") from e

        if price is None:
            raise SourceFetchError(f"No price for {self.symbol} in response")
        try:
            price = float(price)
        except (TypeError, ValueError) as e:
            raise SourceFetchError(f"Non-numeric price {price!r}") from e
        if not math.isfinite(price):
            raise SourceFetchError(f"Non-finite price {price}")
        if not price > 0:
            raise SourceFetchError(f"Non-positive price {price}")
        return price

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises SourceHTTPError: On non-2xx response.
        :raises SourceFetchError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise SourceFetchError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise SourceFetchError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise SourceHTTPError(response.status_code, response.text[:200])
        return response


# Registry of available sources (populated by subclass imports)
SOURCE_REGISTRY: dict[str, type[PriceSource]] = {}


def register_source(cls: type[PriceSource]) -> type[PriceSource]:
    """Decorator to register a price source class in the global registry.

    :param cls: Source class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If source has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Source {cls.__name__} must define a 'name' class variable")
    SOURCE_REGISTRY[cls.name] = cls
    return cls


def get_source(
    name: str,
    asset: str = "los",
    api_key: str | None = None,
    timeout: float | None = None,
) -> PriceSource:
    """Get a price source instance by name.

    :param name: Source name (e.g., "coingecko", "jupiter").
    :param asset: Asset symbol to price.
    :param api_key: Optional API key.
    :param timeout: Optional request timeout in seconds.
    :returns: Source instance.
    :raises ValueError: If source name is unknown.
    """
    if name not in SOURCE_REGISTRY:
        available = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{name}'. Available: {available}")
    return SOURCE_REGISTRY[name](asset=asset, api_key=api_key, timeout=timeout)


def get_available_sources() -> list[str]:
    """Get list of available source names.

    :returns: Sorted list of registered source names.
    """
    return sorted(SOURCE_REGISTRY.keys())
