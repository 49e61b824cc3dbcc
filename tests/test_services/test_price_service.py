from datetime import UTC, datetime, timedelta

import pytest

from application.services.price_service import (
    PriceService,
    fetch_prices_with_fallback,
    filter_histories_by_time_window,
)
from domain.exceptions.pricing import (
    ConfigErrorKind,
    ConfigurationError,
    NoResultsError,
    RemoteApiError,
    TransportError,
)
from domain.models.quotes import CoinPrice, HistoryInterval, PriceHistory, PricePoint
from domain.models.ranges import ChartWindow
from infrastructure.providers.coingecko import CoinGeckoProvider


def quote(symbol: str, name: str, price: float) -> CoinPrice:
    return CoinPrice(
        symbol=symbol,
        name=name,
        price=price,
        change_24h=None,
        market_cap=None,
        currency='USD',
        provider='Fake',
        timestamp=datetime(2025, 9, 30, tzinfo=UTC),
    )


# ============================================================================
# TEST: fetch_prices_with_fallback() - waterfall
# ============================================================================


@pytest.mark.asyncio
async def test_fallback_unions_results_and_only_asks_for_pending_symbols(make_provider):
    first = make_provider('a', name='ProviderA', prices={'BTC': 50000.0})
    second = make_provider('b', name='ProviderB', prices={'BTC': 1.0, 'AAPL': 190.0})

    prices = await fetch_prices_with_fallback([first, second], [0, 1], ['btc', 'aapl'], 'usd')

    assert [(p.symbol, p.provider, p.price) for p in prices] == [
        ('BTC', 'ProviderA', 50000.0),
        ('AAPL', 'ProviderB', 190.0),
    ]
    assert first.calls == [['btc', 'aapl']]
    assert second.calls == [['aapl']]


@pytest.mark.asyncio
async def test_fallback_preserves_requested_order(make_provider):
    first = make_provider('a', prices={'ETH': 3000.0})
    second = make_provider('b', prices={'BTC': 50000.0, 'SOL': 150.0})

    prices = await fetch_prices_with_fallback([first, second], [0, 1], ['btc', 'eth', 'sol'], 'usd')

    assert [p.symbol for p in prices] == ['BTC', 'ETH', 'SOL']


@pytest.mark.asyncio
async def test_fallback_follows_resolved_index_order(make_provider):
    first = make_provider('a', name='ProviderA', prices={'BTC': 1.0})
    second = make_provider('b', name='ProviderB', prices={'BTC': 2.0})

    prices = await fetch_prices_with_fallback([first, second], [1, 0], ['btc'], 'usd')

    assert prices[0].provider == 'ProviderB'
    assert first.calls == []


@pytest.mark.asyncio
async def test_fallback_stops_when_nothing_is_pending(make_provider):
    first = make_provider('a', prices={'BTC': 1.0})
    second = make_provider('b', prices={'BTC': 2.0})

    await fetch_prices_with_fallback([first, second], [0, 1], ['btc'], 'usd')

    assert second.calls == []


@pytest.mark.asyncio
async def test_fallback_all_no_results_raises_no_results(make_provider):
    first = make_provider('a')
    second = make_provider(
        'b',
        error=ConfigurationError('requires an API key', kind=ConfigErrorKind.MISSING_CREDENTIAL),
    )

    with pytest.raises(NoResultsError):
        await fetch_prices_with_fallback([first, second], [0, 1], ['btc'], 'usd')


@pytest.mark.asyncio
async def test_fallback_transport_error_then_success_surfaces_no_error(make_provider):
    first = make_provider('a', error=TransportError('CoinGecko request failed: ConnectError'))
    second = make_provider('b', name='ProviderB', prices={'BTC': 50000.0, 'ETH': 3000.0})

    prices = await fetch_prices_with_fallback([first, second], [0, 1], ['btc', 'eth'], 'usd')

    assert [p.provider for p in prices] == ['ProviderB', 'ProviderB']
    assert second.calls == [['btc', 'eth']]


@pytest.mark.asyncio
async def test_fallback_reraises_last_hard_error_when_nothing_resolves(make_provider):
    first = make_provider('a', error=TransportError('first'))
    second = make_provider('b', error=RemoteApiError('second'))
    third = make_provider('c')

    with pytest.raises(RemoteApiError) as exc_info:
        await fetch_prices_with_fallback([first, second, third], [0, 1, 2], ['btc'], 'usd')

    assert str(exc_info.value) == 'second'
    assert third.calls == [['btc']]


@pytest.mark.asyncio
async def test_fallback_partial_result_is_success(make_provider):
    first = make_provider('a', prices={'BTC': 1.0})

    prices = await fetch_prices_with_fallback([first], [0], ['btc', 'nope'], 'usd')

    assert [p.symbol for p in prices] == ['BTC']


@pytest.mark.asyncio
async def test_fallback_consumes_one_duplicate_entry_per_request(make_provider):
    provider = make_provider('a')

    async def get_prices(symbols, currency):
        return [quote('BTC', 'first', 1.0), quote('BTC', 'last', 2.0)]

    provider.get_prices = get_prices

    prices = await fetch_prices_with_fallback([provider], [0], ['btc', 'BTC'], 'usd')

    assert [p.name for p in prices] == ['last', 'first']


@pytest.mark.asyncio
async def test_fallback_prefers_last_entry_for_a_duplicated_symbol(make_provider):
    provider = make_provider('a')

    async def get_prices(symbols, currency):
        return [quote('BTC', 'first', 1.0), quote('BTC', 'last', 2.0)]

    provider.get_prices = get_prices

    prices = await fetch_prices_with_fallback([provider], [0], ['btc'], 'usd')

    assert [(p.name, p.price) for p in prices] == [('last', 2.0)]


@pytest.mark.asyncio
@pytest.mark.parametrize('body', ['{"bitcoin": {"usd": null}}', '{"bitcoin": {"usd": "n/a"}}', '{"bitcoin": {}}'])
async def test_fallback_continues_past_provider_with_unusable_price(
    make_provider, mock_client, cache, response_factory, body
):
    mock_client.get.return_value = response_factory(body)
    coingecko = CoinGeckoProvider(client=mock_client, cache=cache)
    backup = make_provider('b', name='ProviderB', prices={'BTC': 50000.0})

    prices = await fetch_prices_with_fallback([coingecko, backup], [0, 1], ['btc'], 'usd')

    assert [(p.symbol, p.provider, p.price) for p in prices] == [('BTC', 'ProviderB', 50000.0)]
    assert backup.calls == [['btc']]


# ============================================================================
# TEST: PriceService
# ============================================================================


@pytest.mark.asyncio
async def test_price_service_expands_watchlists(make_provider):
    provider = make_provider('a', prices={'GC=F': 2300.0, 'BTC': 1.0})
    service = PriceService([provider], watchlists={'metals': ['GC=F', ' ']})

    prices = await service.get_prices(['@Metals', 'btc'], 'usd')

    assert [p.symbol for p in prices] == ['GC=F', 'BTC']
    assert provider.calls == [['GC=F', 'btc']]


@pytest.mark.asyncio
async def test_price_service_rejects_empty_symbol_list(make_provider):
    service = PriceService([make_provider('a')])

    with pytest.raises(ConfigurationError) as exc_info:
        await service.get_prices([], 'usd')

    assert exc_info.value.kind is ConfigErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_price_service_pinned_provider_skips_fallback(make_provider):
    first = make_provider('a', prices={'BTC': 1.0})
    second = make_provider('b')
    service = PriceService([first, second])

    with pytest.raises(NoResultsError):
        await service.get_prices(['btc'], 'usd', provider='b')

    assert first.calls == []


@pytest.mark.asyncio
async def test_price_service_uses_configured_order(make_provider):
    first = make_provider('a', name='ProviderA', prices={'BTC': 1.0})
    second = make_provider('b', name='ProviderB', prices={'BTC': 2.0})
    service = PriceService([first, second], provider_order=['B'])

    prices = await service.get_prices(['btc'], 'usd')

    assert prices[0].provider == 'ProviderB'


@pytest.mark.asyncio
async def test_price_service_rejects_provider_typo(make_provider):
    service = PriceService([make_provider('stooq')])

    with pytest.raises(ConfigurationError) as exc_info:
        await service.get_prices(['aapl'], 'usd', provider='stoq')

    assert exc_info.value.kind is ConfigErrorKind.UNKNOWN_PROVIDER


# ============================================================================
# TEST: PriceService.get_history()
# ============================================================================

START = datetime(2025, 9, 1, tzinfo=UTC)
END = datetime(2025, 9, 10, 23, 59, 59, tzinfo=UTC)


def history(symbol: str, days: list[int]) -> PriceHistory:
    return PriceHistory(
        symbol=symbol,
        name=symbol,
        currency='USD',
        provider='Fake',
        points=[PricePoint(timestamp=START + timedelta(days=d), price=float(d + 1)) for d in days],
    )


def test_filter_histories_drops_points_outside_window_and_empty_histories():
    histories = [history('BTC', [-2, 0, 5, 12]), history('ETH', [-5, 20])]

    filtered = filter_histories_by_time_window(histories, START, END)

    assert [h.symbol for h in filtered] == ['BTC']
    assert [p.price for p in filtered[0].points] == [1.0, 6.0]


def test_filter_histories_without_start_keeps_everything_before_end():
    filtered = filter_histories_by_time_window([history('BTC', [-400, 3, 30])], None, END)

    assert [p.price for p in filtered[0].points] == [-399.0, 4.0]


@pytest.mark.asyncio
async def test_get_history_falls_back_to_days_based_history(make_provider):
    provider = make_provider('a')
    requested = {}

    async def get_price_history(symbols, currency, days, interval):
        requested.update(symbols=symbols, days=days, interval=interval)
        return [history('BTC', [-3, 1, 2])]

    provider.get_price_history = get_price_history
    service = PriceService([provider])
    window = ChartWindow(start=START, end=END, fetch_days=30, label='2025-09-01..2025-09-10')

    histories = await service.get_history(['btc'], 'usd', window, HistoryInterval.DAILY)

    assert requested == {'symbols': ['btc'], 'days': 30, 'interval': HistoryInterval.DAILY}
    assert [p.price for p in histories[0].points] == [2.0, 3.0]


@pytest.mark.asyncio
async def test_get_history_prefers_window_and_uses_first_resolved_provider(make_provider):
    first = make_provider('a')
    second = make_provider('b')
    calls = []

    async def get_price_history_window(symbols, currency, start, end, interval):
        calls.append((start, end))
        return [history('AAPL', [0])]

    second.get_price_history_window = get_price_history_window
    service = PriceService([first, second], provider_order=['b'])
    window = ChartWindow(start=START, end=END, fetch_days=30, label='x')

    histories = await service.get_history(['aapl'], 'usd', window)

    assert calls == [(START, END)]
    assert histories[0].symbol == 'AAPL'


@pytest.mark.asyncio
async def test_get_history_unsupported_provider_raises(make_provider):
    service = PriceService([make_provider('a')])
    window = ChartWindow(start=START, end=END, fetch_days=30, label='x')

    with pytest.raises(ConfigurationError) as exc_info:
        await service.get_history(['btc'], 'usd', window)

    assert exc_info.value.kind is ConfigErrorKind.UNSUPPORTED_CAPABILITY
    assert 'does not support chart mode' in str(exc_info.value)


@pytest.mark.asyncio
async def test_get_history_empty_after_filtering_raises_no_results(make_provider):
    provider = make_provider('a')

    async def get_price_history(symbols, currency, days, interval):
        return [history('BTC', [40])]

    provider.get_price_history = get_price_history
    service = PriceService([provider])
    window = ChartWindow(start=START, end=END, fetch_days=30, label='x')

    with pytest.raises(NoResultsError):
        await service.get_history(['btc'], 'usd', window)
