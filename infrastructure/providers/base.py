import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import httpx

from domain.exceptions.pricing import (
    ConfigErrorKind,
    ConfigurationError,
    ParseError,
    RemoteApiError,
    TransportError,
)
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint, TickerMatch
from infrastructure.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

USER_AGENT = "pricr/0.1.0"
DEFAULT_TIMEOUT = 10.0


def build_http_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": USER_AGENT, "accept": "application/json"},
        follow_redirects=True,
    )


def as_finite_float(value: Any) -> float | None:
    """Numeric JSON value as a float, or None for null, strings, bools and NaN/inf."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def trim_points_to_days(points: list[PricePoint], days: int) -> list[PricePoint]:
    """Keep the points within `days` of the newest one. Expects sorted input."""
    if not points or days <= 0:
        return points
    cutoff = points[-1].timestamp - timedelta(days=days)
    return [p for p in points if p.timestamp >= cutoff]


@dataclass(frozen=True)
class ProviderCapabilities:
    history: bool = False
    history_window: bool = False
    search: bool = False


class PriceProvider(ABC):
    """Contract every price data source implements.

    Only `get_prices` is mandatory. The optional capabilities raise a
    ConfigurationError by default and are advertised through `capabilities`.
    """

    capabilities = ProviderCapabilities()
    cache_namespace = "default"

    def __init__(self, client: httpx.AsyncClient | None = None, cache: TTLCache | None = None):
        self._owns_client = client is None
        self._client = client or build_http_client()
        self.cache = cache or TTLCache()

    @property
    @abstractmethod
    def id(self) -> str:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def get_prices(self, symbols: list[str], currency: str) -> list[CoinPrice]:
        ...

    async def get_price_history(
        self, symbols: list[str], currency: str, days: int, interval: HistoryInterval
    ) -> list[PriceHistory]:
        raise ConfigurationError(
            f"provider '{self.id}' does not support chart mode",
            kind=ConfigErrorKind.UNSUPPORTED_CAPABILITY,
        )

    async def get_price_history_window(
        self,
        symbols: list[str],
        currency: str,
        start: datetime | None,
        end: datetime,
        interval: HistoryInterval,
    ) -> list[PriceHistory]:
        raise ConfigurationError(
            f"provider '{self.id}' does not support explicit chart date windows",
            kind=ConfigErrorKind.UNSUPPORTED_HISTORY_WINDOW,
        )

    async def search_tickers(self, query: str, limit: int) -> list[TickerMatch]:
        raise ConfigurationError(
            f"provider '{self.id}' does not support ticker search",
            kind=ConfigErrorKind.UNSUPPORTED_CAPABILITY,
        )

    async def _fetch_text(
        self,
        url: str,
        *,
        cache_key: str,
        ttl_seconds: int,
        label: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        """GET `url` through the TTL cache and return the raw body."""
        cached = await self.cache.read(self.cache_namespace, cache_key, ttl_seconds)
        if isinstance(cached, str):
            logger.debug(f"Using cached {label} response", extra={"extra_data": {"cache_key": cache_key}})
            return cached

        try:
            response = await self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteApiError(
                f"{label} returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"{label} request failed: {e.__class__.__name__}") from e

        body = response.text
        logger.debug(f"{label} response received", extra={"extra_data": {"url": url, "body_len": len(body)}})

        await self.cache.write(self.cache_namespace, cache_key, body)
        return body

    @staticmethod
    def _parse_json(body: str, label: str) -> Any:
        try:
            return json.loads(body)
        except ValueError as e:
            raise ParseError(f"{label} JSON: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def __repr__(self):
        return f"<{self.__class__.__name__}(id={self.id})>"
