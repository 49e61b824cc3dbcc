import pytest

from application.services.search_service import (
    SearchService,
    append_provider_name,
    search_tickers_across_providers,
)
from domain.exceptions.pricing import ConfigErrorKind, ConfigurationError, NoResultsError, TransportError


def test_append_provider_name_adds_unique_values():
    provider = append_provider_name('Yahoo Finance', 'Stooq')
    provider = append_provider_name(provider, 'stooq')

    assert provider == 'Yahoo Finance, Stooq'


def test_append_provider_name_to_blank():
    assert append_provider_name('', 'Stooq') == 'Stooq'


@pytest.mark.asyncio
async def test_identical_matches_are_merged_with_both_provider_names(make_provider, make_ticker):
    apple = make_ticker('AAPL', 'Apple Inc.')
    first = make_provider('a', name='ProviderA', matches=[apple])
    second = make_provider('b', name='ProviderB', matches=[make_ticker('aapl', 'APPLE INC.', 'nasdaq', 'equity')])

    matches = await search_tickers_across_providers([first, second], [0, 1], 'apple', 10)

    assert len(matches) == 1
    assert matches[0].provider == 'ProviderA, ProviderB'
    assert matches[0].name == 'Apple Inc.'


@pytest.mark.asyncio
async def test_same_provider_name_twice_is_not_duplicated(make_provider, make_ticker):
    apple = make_ticker('AAPL', 'Apple Inc.')
    first = make_provider('a', name='ProviderA', matches=[apple])
    second = make_provider('b', name='providera', matches=[apple])

    matches = await search_tickers_across_providers([first, second], [0, 1], 'apple', 10)

    assert matches[0].provider == 'ProviderA'


@pytest.mark.asyncio
async def test_matches_keep_discovery_order_and_respect_limit(make_provider, make_ticker):
    first = make_provider('a', name='ProviderA', matches=[make_ticker('AAPL', 'Apple Inc.')])
    second = make_provider(
        'b',
        name='ProviderB',
        matches=[
            make_ticker('APLE', 'Apple Hospitality'),
            make_ticker('AAPL', 'Apple Inc.'),
            make_ticker('APC.DE', 'Apple Inc.', 'XETRA'),
        ],
    )

    matches = await search_tickers_across_providers([first, second], [0, 1], 'apple', 2)

    assert [m.symbol for m in matches] == ['AAPL', 'APLE']
    assert matches[0].provider == 'ProviderA, ProviderB'


@pytest.mark.asyncio
async def test_duplicates_still_widen_provider_names_after_limit(make_provider, make_ticker):
    first = make_provider('a', name='ProviderA', matches=[make_ticker('AAPL', 'Apple Inc.')])
    second = make_provider(
        'b', name='ProviderB', matches=[make_ticker('MSFT', 'Microsoft'), make_ticker('AAPL', 'Apple Inc.')]
    )

    matches = await search_tickers_across_providers([first, second], [0, 1], 'a', 1)

    assert [(m.symbol, m.provider) for m in matches] == [('AAPL', 'ProviderA, ProviderB')]


@pytest.mark.asyncio
async def test_unsupported_and_empty_providers_are_skipped(make_provider, make_ticker):
    no_search = make_provider('a')
    empty = make_provider('b', matches=[])
    working = make_provider('c', name='ProviderC', matches=[make_ticker('AAPL', 'Apple Inc.')])

    matches = await search_tickers_across_providers([no_search, empty, working], [0, 1, 2], 'apple', 5)

    assert [m.provider for m in matches] == ['ProviderC']


@pytest.mark.asyncio
async def test_all_ignorable_failures_raise_no_results(make_provider):
    with pytest.raises(NoResultsError):
        await search_tickers_across_providers(
            [make_provider('a'), make_provider('b', matches=[])], [0, 1], 'apple', 5
        )


@pytest.mark.asyncio
async def test_hard_failure_is_reported_when_nothing_matches(make_provider):
    failing = make_provider('a', matches=[], search_error=TransportError('search request failed'))

    with pytest.raises(TransportError):
        await search_tickers_across_providers([failing, make_provider('b')], [0, 1], 'apple', 5)


@pytest.mark.asyncio
async def test_hard_failure_is_ignored_when_another_provider_matches(make_provider, make_ticker):
    failing = make_provider('a', matches=[], search_error=TransportError('search request failed'))
    working = make_provider('b', name='ProviderB', matches=[make_ticker('AAPL', 'Apple Inc.')])

    matches = await search_tickers_across_providers([failing, working], [0, 1], 'apple', 5)

    assert len(matches) == 1


# ============================================================================
# TEST: SearchService
# ============================================================================


@pytest.mark.asyncio
async def test_search_service_rejects_blank_query(make_provider):
    service = SearchService([make_provider('a')])

    with pytest.raises(ConfigurationError) as exc_info:
        await service.search('   ')

    assert exc_info.value.kind is ConfigErrorKind.INVALID_INPUT


@pytest.mark.asyncio
@pytest.mark.parametrize('limit', [0, 51])
async def test_search_service_rejects_out_of_range_limit(make_provider, limit):
    service = SearchService([make_provider('a')])

    with pytest.raises(ConfigurationError):
        await service.search('apple', limit=limit)


@pytest.mark.asyncio
async def test_search_service_strips_query_before_searching(make_provider, make_ticker):
    provider = make_provider('a', matches=[make_ticker('AAPL', 'Apple Inc.')])
    service = SearchService([provider])

    await service.search('  apple  ', limit=3)

    assert provider.search_calls == [('apple', 3)]


@pytest.mark.asyncio
async def test_search_service_pinned_provider_surfaces_unsupported(make_provider):
    service = SearchService([make_provider('a'), make_provider('b', matches=[])])

    with pytest.raises(ConfigurationError) as exc_info:
        await service.search('apple', provider='a')

    assert exc_info.value.kind is ConfigErrorKind.UNSUPPORTED_CAPABILITY
