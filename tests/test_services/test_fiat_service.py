from datetime import UTC, datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from application.services.fiat_service import FiatService
from domain.exceptions.pricing import ConfigurationError, NoResultsError
from domain.models.quotes import HistoryInterval, PriceHistory, PricePoint
from domain.models.ranges import ChartWindow
from infrastructure.providers.frankfurter import FrankfurterProvider

WINDOW = ChartWindow(
    start=datetime(2025, 9, 1, tzinfo=UTC),
    end=datetime(2025, 9, 5, 23, 59, 59, tzinfo=UTC),
    fetch_days=30,
    label='2025-09-01..2025-09-05',
)


def eur_history(*days: int) -> PriceHistory:
    return PriceHistory(
        symbol='EUR',
        name='Euro',
        currency='USD',
        provider='Frankfurter/ECB',
        points=[PricePoint(timestamp=datetime(2025, 9, d, tzinfo=UTC), price=1.1) for d in days],
    )


@pytest.fixture
def fiat_provider():
    provider = FrankfurterProvider(client=AsyncMock(spec=httpx.AsyncClient))
    provider.get_history = AsyncMock(return_value=[eur_history(2, 4, 8)])
    return provider


@pytest.mark.asyncio
async def test_get_history_fetches_and_clips_to_window(fiat_provider):
    service = FiatService(fiat_provider)

    histories = await service.get_history('usd', ['eur'], WINDOW)

    fiat_provider.get_history.assert_awaited_once_with('USD', ['EUR'], 30, HistoryInterval.AUTO)
    assert [p.timestamp.day for p in histories[0].points] == [2, 4]


@pytest.mark.asyncio
async def test_get_history_rejects_crypto_targets(fiat_provider):
    service = FiatService(fiat_provider)

    with pytest.raises(ConfigurationError) as exc_info:
        await service.get_history('usd', ['eur', 'btc'], WINDOW)

    assert 'only supports fiat currency codes' in str(exc_info.value)
    fiat_provider.get_history.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_history_requires_a_target(fiat_provider):
    with pytest.raises(ConfigurationError):
        await FiatService(fiat_provider).get_history('usd', [], WINDOW)


@pytest.mark.asyncio
async def test_get_history_rejects_unknown_base(fiat_provider):
    with pytest.raises(ConfigurationError):
        await FiatService(fiat_provider).get_history('btc', ['eur'], WINDOW)


@pytest.mark.asyncio
async def test_get_history_outside_window_raises_no_results(fiat_provider):
    fiat_provider.get_history.return_value = [eur_history(10)]

    with pytest.raises(NoResultsError):
        await FiatService(fiat_provider).get_history('usd', ['eur'], WINDOW)
