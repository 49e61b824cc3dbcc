import logging
from collections import defaultdict
from datetime import datetime

from domain.exceptions.pricing import (
    ConfigErrorKind,
    ConfigurationError,
    NoResultsError,
    PricrError,
    is_ignorable_price_error,
)
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory
from domain.models.ranges import ChartWindow
from infrastructure.providers.base import PriceProvider
from infrastructure.providers.registry import provider_ids_for_indices, resolve_provider_indices

from .watchlist_service import expand_symbol_tokens

logger = logging.getLogger(__name__)


async def fetch_prices_with_fallback(
    providers: list[PriceProvider],
    indices: list[int],
    symbols: list[str],
    currency: str,
) -> list[CoinPrice]:
    """Resolve `symbols` against the providers one at a time, in `indices` order.

    Each provider is asked only for the symbols still pending. A provider that
    fails is skipped; its error surfaces only if nothing resolved at all.
    """
    pending: list[tuple[int, str]] = list(enumerate(symbols))
    resolved: list[CoinPrice | None] = [None] * len(symbols)
    last_error: PricrError | None = None

    for index in indices:
        if not pending:
            break

        provider = providers[index]
        pending_symbols = [symbol for _, symbol in pending]

        try:
            prices = await provider.get_prices(pending_symbols, currency)
        except PricrError as e:
            if is_ignorable_price_error(e):
                logger.info(f"Provider {provider.id} skipped: {e}")
            else:
                logger.warning(f"Provider {provider.id} failed: {e}")
                last_error = e
            continue

        by_symbol: dict[str, list[CoinPrice]] = defaultdict(list)
        for price in prices:
            by_symbol[price.symbol.strip().upper()].append(price)

        still_pending = []
        for slot, symbol in pending:
            matches = by_symbol.get(symbol.strip().upper())
            if matches:
                resolved[slot] = matches.pop()
            else:
                still_pending.append((slot, symbol))

        logger.debug(
            f"Provider {provider.id} resolved {len(pending) - len(still_pending)} of {len(pending)} symbols"
        )
        pending = still_pending

    results = [price for price in resolved if price is not None]
    if results:
        return results
    if last_error is not None:
        raise last_error
    raise NoResultsError()


def filter_histories_by_time_window(
    histories: list[PriceHistory], start: datetime | None, end: datetime
) -> list[PriceHistory]:
    filtered = []
    for history in histories:
        points = [
            point
            for point in history.points
            if point.timestamp <= end and (start is None or point.timestamp >= start)
        ]
        if points:
            filtered.append(
                PriceHistory(
                    symbol=history.symbol,
                    name=history.name,
                    currency=history.currency,
                    provider=history.provider,
                    points=points,
                )
            )
    return filtered


class PriceService:
    def __init__(
        self,
        providers: list[PriceProvider],
        provider_order: list[str] | None = None,
        watchlists: dict[str, list[str]] | None = None,
    ):
        self.providers = providers
        self.provider_order = provider_order
        self.watchlists = watchlists or {}

    def _expand_symbols(self, symbols: list[str]) -> list[str]:
        expanded = expand_symbol_tokens(symbols, self.watchlists)
        if not expanded:
            raise ConfigurationError("at least one symbol is required")
        return expanded

    async def get_prices(
        self, symbols: list[str], currency: str, provider: str | None = None
    ) -> list[CoinPrice]:
        expanded = self._expand_symbols(symbols)
        indices = resolve_provider_indices(self.providers, provider, self.provider_order)

        if provider is not None:
            pinned = self.providers[indices[0]]
            logger.info(f"Fetching prices from {pinned.id} for {expanded} in {currency}")
            return await pinned.get_prices(expanded, currency)

        logger.info(
            f"Fetching prices with provider fallback {provider_ids_for_indices(self.providers, indices)} "
            f"for {expanded} in {currency}"
        )
        return await fetch_prices_with_fallback(self.providers, indices, expanded, currency)

    async def get_history(
        self,
        symbols: list[str],
        currency: str,
        window: ChartWindow,
        interval: HistoryInterval = HistoryInterval.AUTO,
        provider: str | None = None,
    ) -> list[PriceHistory]:
        """Chart data from the first resolved provider, clipped to `window`.

        Providers without explicit window support are asked for
        `window.fetch_days` of history instead.
        """
        expanded = self._expand_symbols(symbols)
        indices = resolve_provider_indices(self.providers, provider, self.provider_order)
        chart_provider = self.providers[indices[0]]

        logger.info(
            f"Fetching {window.label} history from {chart_provider.id} for {expanded} in {currency}",
            extra={"extra_data": {"fetch_days": window.fetch_days, "interval": interval}},
        )

        try:
            histories = await chart_provider.get_price_history_window(
                expanded, currency, window.start, window.end, interval
            )
        except ConfigurationError as e:
            if e.kind is not ConfigErrorKind.UNSUPPORTED_HISTORY_WINDOW:
                raise
            histories = await chart_provider.get_price_history(
                expanded, currency, window.fetch_days, interval
            )

        histories = filter_histories_by_time_window(histories, window.start, window.end)
        if not histories:
            raise NoResultsError()
        return histories
