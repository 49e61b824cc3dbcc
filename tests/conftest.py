"""
Shared test configuration and fixtures.
"""

import dataclasses
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from domain.exceptions.pricing import NoResultsError
from domain.models.quotes import CoinPrice, TickerMatch
from infrastructure.cache.ttl_cache import TTLCache
from infrastructure.providers.base import PriceProvider, ProviderCapabilities

FIXED_NOW = datetime(2025, 9, 30, 10, 0, 0, tzinfo=UTC)


class FakeProvider(PriceProvider):
    """In-memory provider recording every symbol batch it is asked for."""

    def __init__(
        self,
        provider_id: str,
        name: str | None = None,
        prices: dict[str, float] | None = None,
        error: Exception | None = None,
        matches: list[TickerMatch] | None = None,
        search_error: Exception | None = None,
    ):
        super().__init__(client=AsyncMock(spec=httpx.AsyncClient), cache=Mock(spec=TTLCache))
        self._id = provider_id
        self._name = name or provider_id.title()
        self.prices = prices or {}
        self.error = error
        self.matches = matches
        self.search_error = search_error
        self.calls: list[list[str]] = []
        self.search_calls: list[tuple[str, int]] = []
        if matches is not None:
            self.capabilities = ProviderCapabilities(search=True)

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    async def get_prices(self, symbols, currency):
        self.calls.append(list(symbols))
        if self.error is not None:
            raise self.error

        results = [
            CoinPrice(
                symbol=symbol.upper(),
                name=symbol.upper(),
                price=self.prices[symbol.upper()],
                change_24h=None,
                market_cap=None,
                currency=currency.upper(),
                provider=self.name,
                timestamp=FIXED_NOW,
            )
            for symbol in symbols
            if symbol.upper() in self.prices
        ]
        if not results:
            raise NoResultsError()
        return results

    async def search_tickers(self, query, limit):
        self.search_calls.append((query, limit))
        if self.search_error is not None:
            raise self.search_error
        if self.matches is None:
            return await super().search_tickers(query, limit)
        if not self.matches:
            raise NoResultsError()
        return [dataclasses.replace(match, provider=self.name) for match in self.matches]


def ticker(symbol: str, name: str, exchange: str = 'NASDAQ', asset_type: str = 'Equity') -> TickerMatch:
    return TickerMatch(symbol=symbol, name=name, exchange=exchange, asset_type=asset_type, provider='')


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep a developer's own pricr.toml and API key out of the tests."""
    monkeypatch.setenv('PRICR_CONFIG_FILE', str(tmp_path / 'absent' / 'pricr.toml'))
    monkeypatch.delenv('COINMARKETCAP_API_KEY', raising=False)


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def make_ticker():
    return ticker


@pytest.fixture
def cache(tmp_path):
    return TTLCache(root=tmp_path)


@pytest.fixture
def mock_client():
    return AsyncMock(spec=httpx.AsyncClient)


def make_response(text: str) -> Mock:
    response = Mock()
    response.text = text
    response.raise_for_status = Mock()
    return response


@pytest.fixture
def response_factory():
    return make_response


def http_status_error(status_code: int, text: str) -> httpx.HTTPStatusError:
    error_response = Mock()
    error_response.status_code = status_code
    error_response.text = text
    return httpx.HTTPStatusError('HTTP error', request=Mock(), response=error_response)


@pytest.fixture
def status_error_factory():
    return http_status_error
