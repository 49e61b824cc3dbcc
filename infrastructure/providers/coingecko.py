import asyncio
import logging
import math
from datetime import UTC, datetime

import httpx

from domain.exceptions.pricing import NoResultsError, ParseError
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint
from infrastructure.cache.ttl_cache import TTLCache

from .base import PriceProvider, ProviderCapabilities, as_finite_float

logger = logging.getLogger(__name__)

PRICE_CACHE_TTL = 30
HOURLY_HISTORY_CACHE_TTL = 60 * 60
DAILY_HISTORY_CACHE_TTL = 12 * 60 * 60

# ticker / common name -> (CoinGecko id, display name)
KNOWN_COINS: dict[str, tuple[str, str]] = {
    "btc": ("bitcoin", "Bitcoin"),
    "bitcoin": ("bitcoin", "Bitcoin"),
    "eth": ("ethereum", "Ethereum"),
    "ethereum": ("ethereum", "Ethereum"),
    "usdt": ("tether", "Tether"),
    "tether": ("tether", "Tether"),
    "bnb": ("binancecoin", "BNB"),
    "sol": ("solana", "Solana"),
    "solana": ("solana", "Solana"),
    "xrp": ("ripple", "XRP"),
    "ripple": ("ripple", "XRP"),
    "usdc": ("usd-coin", "USDC"),
    "ada": ("cardano", "Cardano"),
    "cardano": ("cardano", "Cardano"),
    "doge": ("dogecoin", "Dogecoin"),
    "dogecoin": ("dogecoin", "Dogecoin"),
    "dot": ("polkadot", "Polkadot"),
    "polkadot": ("polkadot", "Polkadot"),
    "matic": ("matic-network", "Polygon"),
    "polygon": ("matic-network", "Polygon"),
    "ltc": ("litecoin", "Litecoin"),
    "litecoin": ("litecoin", "Litecoin"),
    "avax": ("avalanche-2", "Avalanche"),
    "avalanche": ("avalanche-2", "Avalanche"),
    "link": ("chainlink", "Chainlink"),
    "chainlink": ("chainlink", "Chainlink"),
    "atom": ("cosmos", "Cosmos"),
    "cosmos": ("cosmos", "Cosmos"),
    "uni": ("uniswap", "Uniswap"),
    "uniswap": ("uniswap", "Uniswap"),
    "xlm": ("stellar", "Stellar"),
    "stellar": ("stellar", "Stellar"),
    "shib": ("shiba-inu", "Shiba Inu"),
    "trx": ("tron", "TRON"),
    "tron": ("tron", "TRON"),
    "ton": ("the-open-network", "Toncoin"),
    "pepe": ("pepe", "Pepe"),
    "near": ("near", "NEAR"),
    "apt": ("aptos", "Aptos"),
    "aptos": ("aptos", "Aptos"),
    "arb": ("arbitrum", "Arbitrum"),
    "arbitrum": ("arbitrum", "Arbitrum"),
    "op": ("optimism", "Optimism"),
    "optimism": ("optimism", "Optimism"),
    "sui": ("sui", "Sui"),
    "xmr": ("monero", "Monero"),
    "monero": ("monero", "Monero"),
}


def resolve_coin(symbol: str) -> tuple[str, str]:
    lower = symbol.strip().lower()
    if lower in KNOWN_COINS:
        return KNOWN_COINS[lower]
    return lower, lower[:1].upper() + lower[1:]


def history_cache_ttl(interval: HistoryInterval, days: int) -> int:
    if interval is HistoryInterval.DAILY:
        return DAILY_HISTORY_CACHE_TTL
    if interval is HistoryInterval.HOURLY:
        return HOURLY_HISTORY_CACHE_TTL
    return DAILY_HISTORY_CACHE_TTL if days > 30 else HOURLY_HISTORY_CACHE_TTL


class CoinGeckoProvider(PriceProvider):
    """Free public API, no key required."""

    BASE_URL = "https://api.coingecko.com/api/v3"

    capabilities = ProviderCapabilities(history=True)
    cache_namespace = "coingecko"

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
        return "coingecko"

    @property
    def name(self) -> str:
        return "CoinGecko"

    async def get_prices(self, symbols: list[str], currency: str) -> list[CoinPrice]:
        resolved = [resolve_coin(symbol) for symbol in symbols]
        ids_param = ",".join(coin_id for coin_id, _ in resolved)
        cur = currency.strip().lower()

        body = await self._fetch_text(
            f"{self.base_url}/simple/price",
            params={
                "ids": ids_param,
                "vs_currencies": cur,
                "include_24hr_change": "true",
                "include_market_cap": "true",
            },
            cache_key=f"simple_price:{self.base_url}:{ids_param}:{cur}",
            ttl_seconds=PRICE_CACHE_TTL,
            label="CoinGecko",
        )

        data = self._parse_json(body, "CoinGecko")
        if not isinstance(data, dict):
            raise ParseError("CoinGecko JSON: expected an object keyed by coin id")

        now = datetime.now(UTC)
        results = []
        for symbol, (coin_id, display_name) in zip(symbols, resolved, strict=True):
            coin_data = data.get(coin_id)
            if not isinstance(coin_data, dict):
                continue
            price = as_finite_float(coin_data.get(cur))
            if price is None:
                logger.debug(
                    f"CoinGecko returned no usable {cur} price for {coin_id}",
                    extra={"extra_data": {"coin_id": coin_id, "value": coin_data.get(cur)}},
                )
                continue
            results.append(
                CoinPrice(
                    symbol=symbol.strip().upper(),
                    name=display_name,
                    price=price,
                    change_24h=as_finite_float(coin_data.get(f"{cur}_24h_change")),
                    market_cap=as_finite_float(coin_data.get(f"{cur}_market_cap")),
                    currency=cur.upper(),
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
        cur = currency.strip().lower()
        histories = await asyncio.gather(
            *(self._fetch_history_for_symbol(symbol, cur, days, interval) for symbol in symbols)
        )
        if not histories:
            raise NoResultsError()
        return list(histories)

    async def _fetch_history_for_symbol(
        self, symbol: str, currency: str, days: int, interval: HistoryInterval
    ) -> PriceHistory:
        coin_id, display_name = resolve_coin(symbol)
        params = {"vs_currency": currency, "days": str(days)}
        if interval is not HistoryInterval.AUTO:
            params["interval"] = interval.value

        body = await self._fetch_text(
            f"{self.base_url}/coins/{coin_id}/market_chart",
            params=params,
            cache_key=f"market_chart:{self.base_url}:{coin_id}:{currency}:{days}:{interval.value}",
            ttl_seconds=history_cache_ttl(interval, days),
            label="CoinGecko market chart",
        )

        payload = self._parse_json(body, "CoinGecko market chart")
        try:
            raw_points = payload["prices"]
        except (KeyError, TypeError) as e:
            raise ParseError(f"CoinGecko market chart JSON: missing {e}") from e

        points = []
        for pair in raw_points:
            try:
                ts_ms, price = float(pair[0]), float(pair[1])
            except (TypeError, ValueError, IndexError):
                continue
            if not math.isfinite(price):
                continue
            points.append(PricePoint(timestamp=datetime.fromtimestamp(ts_ms / 1000, tz=UTC), price=price))

        if not points:
            raise NoResultsError()

        points.sort(key=lambda p: p.timestamp)
        return PriceHistory(
            symbol=symbol.strip().upper(),
            name=display_name,
            currency=currency.upper(),
            provider=self.name,
            points=points,
        )
