import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from domain.exceptions.pricing import (
    ConfigErrorKind,
    ConfigurationError,
    NoResultsError,
    ParseError,
    PricrError,
    RemoteApiError,
)
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint
from infrastructure.cache.ttl_cache import TTLCache

from .base import PriceProvider, ProviderCapabilities, as_finite_float, trim_points_to_days

logger = logging.getLogger(__name__)

PRICE_CACHE_TTL = 30
CATALOG_CACHE_TTL = 24 * 60 * 60
HOURLY_CHART_CACHE_TTL = 60 * 60
DAILY_CHART_CACHE_TTL = 12 * 60 * 60

USD_CONVERT_ID = 2781

# Used when the coin catalog is unavailable.
STATIC_COIN_IDS: dict[str, tuple[int, str]] = {
    "BTC": (1, "Bitcoin"),
    "ETH": (1027, "Ethereum"),
    "USDT": (825, "Tether"),
    "BNB": (1839, "BNB"),
    "SOL": (5426, "Solana"),
    "XRP": (52, "XRP"),
    "USDC": (3408, "USDC"),
    "ADA": (2010, "Cardano"),
    "DOGE": (74, "Dogecoin"),
    "DOT": (6636, "Polkadot"),
    "MATIC": (3890, "Polygon"),
    "LTC": (2, "Litecoin"),
    "AVAX": (5805, "Avalanche"),
    "LINK": (1975, "Chainlink"),
    "ATOM": (3794, "Cosmos"),
    "UNI": (7083, "Uniswap"),
    "XMR": (328, "Monero"),
}

CatalogEntries = dict[str, tuple[int, str]]


class CoinCatalog:
    """Symbol -> (coin id, name) lookup, loaded at most once per instance.

    Lookups after the first load take no lock. The first concurrent callers
    serialize on the lock and re-check, so the loader runs exactly once. A failed
    load is remembered as an empty catalog.
    """

    def __init__(self, loader: Callable[[], Awaitable[CatalogEntries]]):
        self._loader = loader
        self._entries: CatalogEntries | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._entries is not None

    async def lookup(self, symbol: str) -> tuple[int, str] | None:
        key = symbol.strip().upper()
        entries = self._entries
        if entries is not None:
            return entries.get(key)

        async with self._lock:
            if self._entries is None:
                try:
                    self._entries = await self._loader()
                except PricrError as e:
                    logger.debug(f"Failed to load CoinMarketCap coin catalog: {e}")
                    self._entries = {}
            return self._entries.get(key)


def parse_coin_catalog(payload: Any) -> CatalogEntries:
    if not isinstance(payload, list):
        raise ParseError("CMC coin catalog JSON: expected a list")

    catalog: CatalogEntries = {}
    for entry in payload:
        try:
            symbol = str(entry["symbol"]).upper()
            catalog.setdefault(symbol, (int(entry["id"]), str(entry["name"])))
        except (KeyError, TypeError, ValueError):
            continue
    return catalog


def to_web_range(days: int) -> str:
    if days <= 1:
        return "1D"
    if days <= 7:
        return "7D"
    if days <= 30:
        return "1M"
    if days <= 90:
        return "3M"
    if days <= 180:
        return "6M"
    return "1Y"


def chart_cache_ttl(interval: str) -> int:
    return DAILY_CHART_CACHE_TTL if interval in ("1d", "daily") else HOURLY_CHART_CACHE_TTL


def history_payload_for_symbol(data: Any, symbol_upper: str) -> dict | None:
    """The pro endpoint nests quotes directly, under the symbol, or in a per-symbol list."""
    if not isinstance(data, dict):
        return None
    if "quotes" in data:
        return data

    by_symbol = data.get(symbol_upper)
    if isinstance(by_symbol, dict) and "quotes" in by_symbol:
        return by_symbol
    if isinstance(by_symbol, list) and by_symbol and isinstance(by_symbol[0], dict):
        return by_symbol[0]
    return None


def parse_history_data(data: Any, symbol_upper: str, convert: str, provider: str) -> PriceHistory:
    payload = history_payload_for_symbol(data, symbol_upper)
    if payload is None:
        raise ParseError("CMC history response missing payload")

    quotes = payload.get("quotes")
    if not isinstance(quotes, list):
        raise ParseError("CMC history response missing quotes")

    points = []
    for entry in quotes:
        if not isinstance(entry, dict):
            continue
        try:
            timestamp = datetime.fromisoformat(entry["timestamp"])
        except (KeyError, TypeError, ValueError):
            continue
        if timestamp.tzinfo is None:
            continue

        quote = entry.get("quote")
        if not isinstance(quote, dict):
            continue
        converted = quote.get(convert) or quote.get(convert.lower())
        if not isinstance(converted, dict):
            continue
        price = as_finite_float(converted.get("price"))
        if price is None:
            continue
        points.append(PricePoint(timestamp=timestamp.astimezone(UTC), price=price))

    points.sort(key=lambda p: p.timestamp)
    if not points:
        raise NoResultsError()

    name = payload.get("name")
    symbol = payload.get("symbol")
    return PriceHistory(
        symbol=(symbol if isinstance(symbol, str) else symbol_upper).upper(),
        name=name if isinstance(name, str) else symbol_upper,
        currency=convert.upper(),
        provider=provider,
        points=points,
    )


class CoinMarketCapProvider(PriceProvider):
    """Price lookups need a pro API key. USD charts use the public web endpoint
    and fall back to the pro historical endpoint.
    """

    BASE_URL = "https://pro-api.coinmarketcap.com/v1"
    CHART_BASE_URL = "https://api.coinmarketcap.com/data-api/v3.3"
    COIN_SUMMARIES_URL = "https://s3.coinmarketcap.com/whitepaper/summaries/coins.json"

    capabilities = ProviderCapabilities(history=True)
    cache_namespace = "coinmarketcap"

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        base_url: str | None = None,
        chart_base_url: str | None = None,
        coin_summaries_url: str | None = None,
    ):
        super().__init__(client=client, cache=cache)
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.chart_base_url = (chart_base_url or self.CHART_BASE_URL).rstrip("/")
        self.coin_summaries_url = coin_summaries_url or self.COIN_SUMMARIES_URL
        self.coin_catalog = CoinCatalog(self._fetch_coin_catalog)

    @property
    def id(self) -> str:
        return "cmc"

    @property
    def name(self) -> str:
        return "CoinMarketCap"

    def _required_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError(
                "CoinMarketCap requires an API key "
                "(set COINMARKETCAP_API_KEY or coinmarketcap.api_key)",
                kind=ConfigErrorKind.MISSING_CREDENTIAL,
            )
        return self.api_key

    async def get_prices(self, symbols: list[str], currency: str) -> list[CoinPrice]:
        api_key = self._required_api_key()
        symbols_upper = [symbol.strip().upper() for symbol in symbols]
        symbols_joined = ",".join(symbols_upper)
        convert = currency.strip().upper()

        body = await self._fetch_text(
            f"{self.base_url}/cryptocurrency/quotes/latest",
            params={"symbol": symbols_joined, "convert": convert},
            headers={"X-CMC_PRO_API_KEY": api_key},
            cache_key=f"quotes_latest:{self.base_url}:{symbols_joined}:{convert}",
            ttl_seconds=PRICE_CACHE_TTL,
            label="CoinMarketCap",
        )

        raw = self._parse_json(body, "CMC")
        if not isinstance(raw, dict):
            raise ParseError("CMC JSON: expected an object")

        error_message = (raw.get("status") or {}).get("error_message")
        if error_message:
            raise RemoteApiError(f"CoinMarketCap: {error_message}")

        data = raw.get("data") or {}
        now = datetime.now(UTC)
        results = []
        for symbol in symbols_upper:
            coin = data.get(symbol)
            # duplicate tickers come back as a list; the first entry is the ranked one
            if isinstance(coin, list):
                coin = coin[0] if coin else None
            if not isinstance(coin, dict):
                continue

            quote = (coin.get("quote") or {}).get(convert)
            if not isinstance(quote, dict):
                continue
            price = as_finite_float(quote.get("price"))
            if price is None:
                continue

            results.append(
                CoinPrice(
                    symbol=coin.get("symbol", symbol),
                    name=coin.get("name", symbol),
                    price=price,
                    change_24h=as_finite_float(quote.get("percent_change_24h")),
                    market_cap=as_finite_float(quote.get("market_cap")),
                    currency=convert,
                    provider=self.name,
                    timestamp=now,
                )
            )

        if not results:
            raise NoResultsError()
        return results

    async def get_price_history(
        self, symbols: list[str], currency: str, days: int, interval: HistoryInterval
    ) -> list[PriceHistory]:
        convert = currency.strip().upper()
        if interval is HistoryInterval.AUTO:
            interval_param = "hourly" if days <= 30 else "daily"
        else:
            interval_param = "hourly" if interval is HistoryInterval.HOURLY else "daily"

        histories = await asyncio.gather(
            *(self._fetch_history_for_symbol(symbol, convert, days, interval_param) for symbol in symbols)
        )
        if not histories:
            raise NoResultsError()
        return list(histories)

    async def _resolve_coin(self, symbol_upper: str) -> tuple[int, str] | None:
        found = await self.coin_catalog.lookup(symbol_upper)
        if found is not None:
            return found
        return STATIC_COIN_IDS.get(symbol_upper)

    async def _fetch_history_for_symbol(
        self, symbol: str, convert: str, days: int, interval_param: str
    ) -> PriceHistory:
        """Web chart for USD on a known coin, the pro historical endpoint otherwise."""
        symbol_upper = symbol.strip().upper()
        coin = await self._resolve_coin(symbol_upper)
        if coin is not None and convert == "USD":
            try:
                return await self._fetch_web_chart(symbol_upper, coin, convert, days, interval_param)
            except PricrError as e:
                logger.debug(
                    f"CoinMarketCap web chart failed for {symbol_upper}, trying the pro historical endpoint: {e}",
                    extra={"extra_data": {"symbol": symbol_upper, "currency": convert}},
                )

        return await self._fetch_pro_history(symbol_upper, convert, days, interval_param)

    async def _fetch_web_chart(
        self, symbol_upper: str, coin: tuple[int, str], convert: str, days: int, interval_param: str
    ) -> PriceHistory:
        coin_id, display_name = coin
        web_interval = "1h" if interval_param == "hourly" else "1d"
        web_range = to_web_range(days)

        body = await self._fetch_text(
            f"{self.chart_base_url}/cryptocurrency/detail/chart",
            params={
                "id": str(coin_id),
                "interval": web_interval,
                "convertId": str(USD_CONVERT_ID),
                "range": web_range,
            },
            headers={"accept": "application/json, text/plain, */*", "platform": "web"},
            cache_key=f"chart:{self.chart_base_url}:{coin_id}:{USD_CONVERT_ID}:{web_interval}:{web_range.lower()}",
            ttl_seconds=chart_cache_ttl(web_interval),
            label="CoinMarketCap web chart",
        )

        payload = self._parse_json(body, "CMC web chart")
        try:
            raw_points = payload["data"]["points"]
        except (KeyError, TypeError) as e:
            raise ParseError(f"CMC web chart JSON: missing {e}") from e

        points = []
        for point in raw_points:
            try:
                ts_seconds = int(point["s"])
                price = float(point["v"][0])
            except (KeyError, TypeError, ValueError, IndexError):
                continue
            if not math.isfinite(price):
                continue
            points.append(PricePoint(timestamp=datetime.fromtimestamp(ts_seconds, tz=UTC), price=price))

        points.sort(key=lambda p: p.timestamp)
        points = trim_points_to_days(points, days)
        if not points:
            raise NoResultsError()

        return PriceHistory(
            symbol=symbol_upper,
            name=display_name,
            currency=convert,
            provider=self.name,
            points=points,
        )

    async def _fetch_pro_history(
        self, symbol_upper: str, convert: str, days: int, interval_param: str
    ) -> PriceHistory:
        api_key = self._required_api_key()
        time_end = datetime.now(UTC)
        time_start = time_end - timedelta(days=days)

        body = await self._fetch_text(
            f"{self.base_url}/cryptocurrency/quotes/historical",
            params={
                "symbol": symbol_upper,
                "convert": convert,
                "time_start": time_start.isoformat(),
                "time_end": time_end.isoformat(),
                "interval": interval_param,
            },
            headers={"X-CMC_PRO_API_KEY": api_key},
            cache_key=f"quotes_historical:{self.base_url}:{symbol_upper}:{convert}:{days}:{interval_param}",
            ttl_seconds=chart_cache_ttl(interval_param),
            label="CoinMarketCap historical",
        )

        raw = self._parse_json(body, "CMC history")
        if not isinstance(raw, dict):
            raise ParseError("CMC history JSON: expected an object")

        error_message = (raw.get("status") or {}).get("error_message")
        if error_message:
            raise RemoteApiError(f"CoinMarketCap: {error_message}")

        return parse_history_data(raw.get("data"), symbol_upper, convert, self.name)

    async def _fetch_coin_catalog(self) -> CatalogEntries:
        body = await self._fetch_text(
            self.coin_summaries_url,
            cache_key=f"coin_summaries:{self.coin_summaries_url}",
            ttl_seconds=CATALOG_CACHE_TTL,
            label="CoinMarketCap coin catalog",
        )
        return parse_coin_catalog(self._parse_json(body, "CMC coin catalog"))
