import asyncio
import logging
import math
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from domain.exceptions.pricing import ConfigurationError, NoResultsError, ParseError, RemoteApiError
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint, TickerMatch
from infrastructure.cache.ttl_cache import TTLCache

from .base import PriceProvider, ProviderCapabilities, as_finite_float

logger = logging.getLogger(__name__)

QUOTE_CACHE_TTL = 30
SEARCH_CACHE_TTL = 10 * 60
HOURLY_HISTORY_CACHE_TTL = 60 * 60
DAILY_HISTORY_CACHE_TTL = 12 * 60 * 60


def percent_change(previous: float | None, current: float) -> float | None:
    if previous is None or not math.isfinite(previous) or abs(previous) <= 1e-12:
        return None
    change = (current - previous) / previous * 100.0
    return change if math.isfinite(change) else None


def chart_interval(interval: HistoryInterval, start: datetime | None, end: datetime) -> str:
    if interval is HistoryInterval.DAILY:
        return "1d"
    if interval is HistoryInterval.HOURLY:
        return "1h"
    days = max((end - start).days, 1) if start is not None else 366
    return "1h" if days <= 5 else "1d"


def parse_search_matches(payload: Any, provider_name: str, limit: int) -> list[TickerMatch]:
    """Turn a Yahoo `/v1/finance/search` payload into ticker matches.

    Quotes with a blank symbol are skipped. Missing exchange or type
    become "Unknown".
    """
    try:
        quotes = payload["quotes"]
    except (KeyError, TypeError) as e:
        raise ParseError(f"ticker search JSON: missing {e}") from e

    matches = []
    for quote in quotes:
        if not isinstance(quote, dict):
            continue
        symbol = str(quote.get("symbol") or "").strip().upper()
        if not symbol:
            continue
        matches.append(
            TickerMatch(
                symbol=symbol,
                name=quote.get("longname") or quote.get("shortname") or symbol,
                exchange=quote.get("exchDisp") or "Unknown",
                asset_type=quote.get("typeDisp") or "Unknown",
                provider=provider_name,
            )
        )
        if len(matches) >= limit:
            break
    return matches


def _first_chart_result(payload: Any) -> dict | None:
    try:
        chart = payload["chart"]
    except (KeyError, TypeError) as e:
        raise ParseError(f"Yahoo chart JSON: missing {e}") from e

    description = (chart.get("error") or {}).get("description")
    if description:
        raise RemoteApiError(f"Yahoo Finance: {description}")

    results = chart.get("result") or []
    return results[0] if results else None


def _closes(result: dict) -> list[float | None]:
    quotes = (result.get("indicators") or {}).get("quote") or []
    if not quotes:
        return []
    return quotes[0].get("close") or []


class YahooFinanceProvider(PriceProvider):
    """Stocks, ETFs and indices. Also the ticker search backend."""

    BASE_URL = "https://query2.finance.yahoo.com"

    capabilities = ProviderCapabilities(history=True, history_window=True, search=True)
    cache_namespace = "yahoo"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        base_url: str | None = None,
    ):
        super().__init__(client=client, cache=cache)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    @property
    def id(self) -> str:
        return "yahoo"

    @property
    def name(self) -> str:
        return "Yahoo Finance"

    async def get_prices(self, symbols: list[str], currency: str) -> list[CoinPrice]:
        requested_currency = currency.strip().upper()
        quotes = await asyncio.gather(
            *(self._fetch_latest_quote(symbol, requested_currency) for symbol in symbols)
        )
        results = [quote for quote in quotes if quote is not None]
        if not results:
            raise NoResultsError()
        return results

    async def get_price_history(
        self, symbols: list[str], currency: str, days: int, interval: HistoryInterval
    ) -> list[PriceHistory]:
        end = datetime.now(UTC)
        return await self.get_price_history_window(symbols, currency, end - timedelta(days=days), end, interval)

    async def get_price_history_window(
        self,
        symbols: list[str],
        currency: str,
        start: datetime | None,
        end: datetime,
        interval: HistoryInterval,
    ) -> list[PriceHistory]:
        requested_currency = currency.strip().upper()
        histories = await asyncio.gather(
            *(self._fetch_history(symbol, requested_currency, start, end, interval) for symbol in symbols)
        )
        if not histories:
            raise NoResultsError()
        return list(histories)

    async def search_tickers(self, query: str, limit: int) -> list[TickerMatch]:
        trimmed = query.strip()
        if not trimmed:
            raise ConfigurationError("ticker search query cannot be empty")

        body = await self._fetch_text(
            f"{self.base_url}/v1/finance/search",
            params={"q": trimmed, "quotesCount": str(limit), "newsCount": "0"},
            cache_key=f"search:{self.base_url}:{trimmed}:{limit}",
            ttl_seconds=SEARCH_CACHE_TTL,
            label="Yahoo Finance search",
        )

        matches = parse_search_matches(self._parse_json(body, "Yahoo search"), self.name, limit)
        if not matches:
            raise NoResultsError()
        return matches

    async def _fetch_latest_quote(self, symbol: str, requested_currency: str) -> CoinPrice | None:
        symbol_upper = symbol.strip().upper()
        logger.debug(f"Fetching latest Yahoo Finance quote for {symbol_upper}")

        body = await self._fetch_text(
            f"{self.base_url}/v8/finance/chart/{symbol_upper}",
            params={"range": "5d", "interval": "1d"},
            cache_key=f"latest_chart:{self.base_url}:{symbol_upper}",
            ttl_seconds=QUOTE_CACHE_TTL,
            label="Yahoo Finance quote",
        )

        result = _first_chart_result(self._parse_json(body, "Yahoo quote chart"))
        if result is None:
            return None

        closes = [value for value in map(as_finite_float, _closes(result)) if value is not None]
        if not closes:
            return None

        meta = result.get("meta") or {}
        price = as_finite_float(meta.get("regularMarketPrice"))
        if price is None:
            price = closes[-1]

        change = percent_change(as_finite_float(meta.get("chartPreviousClose")), price)
        if change is None and len(closes) >= 2:
            change = percent_change(closes[-2], price)

        return CoinPrice(
            symbol=symbol_upper,
            name=meta.get("longName") or meta.get("shortName") or symbol_upper,
            price=float(price),
            change_24h=change,
            market_cap=None,
            currency=(meta.get("currency") or requested_currency).upper(),
            provider=self.name,
            timestamp=datetime.now(UTC),
        )

    async def _fetch_history(
        self,
        symbol: str,
        requested_currency: str,
        start: datetime | None,
        end: datetime,
        interval: HistoryInterval,
    ) -> PriceHistory:
        symbol_upper = symbol.strip().upper()
        interval_param = chart_interval(interval, start, end)
        period1 = int(start.timestamp()) if start is not None else 0
        period2 = max(int(end.timestamp()) + 1, period1 + 1)

        body = await self._fetch_text(
            f"{self.base_url}/v8/finance/chart/{symbol_upper}",
            params={"period1": str(period1), "period2": str(period2), "interval": interval_param},
            cache_key=f"chart:{self.base_url}:{symbol_upper}:{period1}:{period2}:{interval_param}",
            ttl_seconds=HOURLY_HISTORY_CACHE_TTL if interval_param == "1h" else DAILY_HISTORY_CACHE_TTL,
            label="Yahoo Finance chart",
        )

        result = _first_chart_result(self._parse_json(body, "Yahoo chart"))
        if result is None:
            raise NoResultsError()

        points = []
        for ts, close in zip(result.get("timestamp") or [], _closes(result), strict=False):
            close = as_finite_float(close)
            if close is None:
                continue
            timestamp = datetime.fromtimestamp(int(ts), tz=UTC)
            if timestamp > end or (start is not None and timestamp < start):
                continue
            points.append(PricePoint(timestamp=timestamp, price=close))

        points.sort(key=lambda p: p.timestamp)
        if not points:
            raise NoResultsError()

        meta = result.get("meta") or {}
        return PriceHistory(
            symbol=symbol_upper,
            name=meta.get("longName") or meta.get("shortName") or symbol_upper,
            currency=(meta.get("currency") or requested_currency).upper(),
            provider=self.name,
            points=points,
        )
