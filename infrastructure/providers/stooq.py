import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from domain.exceptions.pricing import ConfigurationError, NoResultsError
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint, TickerMatch
from infrastructure.cache.ttl_cache import TTLCache

from .base import PriceProvider, ProviderCapabilities, trim_points_to_days
from .yahoo import parse_search_matches

logger = logging.getLogger(__name__)

PRICE_CACHE_TTL = 30
HISTORY_CACHE_TTL = 12 * 60 * 60
SEARCH_CACHE_TTL = 10 * 60


@dataclass(frozen=True)
class QuoteRow:
    symbol: str
    open: float | None
    close: float


def parse_decimal(value: str) -> float | None:
    try:
        parsed = float(value.strip())
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_quote_row(line: str) -> QuoteRow | None:
    cols = line.strip().split(",")
    if len(cols) < 7 or cols[1].strip() == "N/D":
        return None
    close = parse_decimal(cols[6])
    if close is None:
        return None
    return QuoteRow(symbol=cols[0].strip().upper(), open=parse_decimal(cols[3]), close=close)


def parse_history_csv(body: str) -> list[PricePoint]:
    points = []
    for line in body.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("Date,"):
            continue
        cols = trimmed.split(",")
        if len(cols) < 5:
            continue
        try:
            date = datetime.strptime(cols[0].strip(), "%Y-%m-%d").replace(tzinfo=UTC)
        except ValueError:
            continue
        close = parse_decimal(cols[4])
        if close is None:
            continue
        points.append(PricePoint(timestamp=date, price=close))
    points.sort(key=lambda p: p.timestamp)
    return points


def normalize_symbol(symbol: str) -> str:
    """Bare tickers are US listings on Stooq: `aapl` -> `aapl.us`."""
    trimmed = symbol.strip().lower()
    return trimmed if "." in trimmed else f"{trimmed}.us"


def currency_for_symbol(normalized_symbol: str, fallback: str) -> str:
    return "USD" if normalized_symbol.endswith(".us") else fallback


class StooqProvider(PriceProvider):
    BASE_URL = "https://stooq.com"
    SEARCH_BASE_URL = "https://query2.finance.yahoo.com"

    capabilities = ProviderCapabilities(history=True, search=True)
    cache_namespace = "stooq"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        base_url: str | None = None,
        search_base_url: str | None = None,
    ):
        super().__init__(client=client, cache=cache)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.search_base_url = (search_base_url or self.SEARCH_BASE_URL).rstrip("/")

    @property
    def id(self) -> str:
        return "stooq"

    @property
    def name(self) -> str:
        return "Stooq"

    async def get_prices(self, symbols: list[str], currency: str) -> list[CoinPrice]:
        requested_currency = currency.strip().upper()
        quotes = await asyncio.gather(
            *(self._fetch_quote(symbol, requested_currency) for symbol in symbols)
        )
        results = [quote for quote in quotes if quote is not None]
        if not results:
            raise NoResultsError()
        return results

    async def get_price_history(
        self, symbols: list[str], currency: str, days: int, interval: HistoryInterval
    ) -> list[PriceHistory]:
        if interval is HistoryInterval.HOURLY:
            raise ConfigurationError(f"provider '{self.id}' supports daily history only")

        requested_currency = currency.strip().upper()
        histories = await asyncio.gather(
            *(self._fetch_history(symbol, requested_currency, days) for symbol in symbols)
        )
        if not histories:
            raise NoResultsError()
        return list(histories)

    async def search_tickers(self, query: str, limit: int) -> list[TickerMatch]:
        trimmed = query.strip()
        if not trimmed:
            raise ConfigurationError("ticker search query cannot be empty")

        logger.debug(f"Searching tickers for '{trimmed}' via Yahoo Finance search API")
        body = await self._fetch_text(
            f"{self.search_base_url}/v1/finance/search",
            params={"q": trimmed, "quotesCount": str(limit), "newsCount": "0"},
            cache_key=f"search:{self.search_base_url}:{trimmed.lower()}:{limit}",
            ttl_seconds=SEARCH_CACHE_TTL,
            label="ticker search",
        )

        matches = parse_search_matches(self._parse_json(body, "ticker search"), self.name, limit)
        if not matches:
            raise NoResultsError()
        return matches

    async def _fetch_quote(self, symbol: str, requested_currency: str) -> CoinPrice | None:
        display_symbol = symbol.strip().upper()
        normalized = normalize_symbol(symbol)

        body = await self._fetch_text(
            f"{self.base_url}/q/l/",
            params={"s": normalized, "i": "d"},
            cache_key=f"quote:{self.base_url}:{normalized}",
            ttl_seconds=PRICE_CACHE_TTL,
            label="Stooq",
        )

        key = normalized.upper()
        row = next(
            (row for row in map(parse_quote_row, body.splitlines()) if row is not None and row.symbol == key),
            None,
        )
        if row is None:
            return None

        change = None
        if row.open is not None and abs(row.open) > 1e-12:
            change = (row.close - row.open) / row.open * 100.0

        return CoinPrice(
            symbol=display_symbol,
            name=display_symbol,
            price=row.close,
            change_24h=change,
            market_cap=None,
            currency=currency_for_symbol(normalized, requested_currency),
            provider=self.name,
            timestamp=datetime.now(UTC),
        )

    async def _fetch_history(self, symbol: str, requested_currency: str, days: int) -> PriceHistory:
        display_symbol = symbol.strip().upper()
        normalized = normalize_symbol(symbol)

        body = await self._fetch_text(
            f"{self.base_url}/q/d/l/",
            params={"s": normalized, "i": "d"},
            cache_key=f"history:{self.base_url}:{normalized}:{days}",
            ttl_seconds=HISTORY_CACHE_TTL,
            label="Stooq chart",
        )

        points = trim_points_to_days(parse_history_csv(body), days)
        if not points:
            raise NoResultsError()

        return PriceHistory(
            symbol=display_symbol,
            name=display_symbol,
            currency=currency_for_symbol(normalized, requested_currency),
            provider=self.name,
            points=points,
        )
