import logging

import httpx

from config.settings import Settings
from domain.exceptions.pricing import ConfigErrorKind, ConfigurationError
from infrastructure.cache.ttl_cache import TTLCache

from .base import PriceProvider
from .coingecko import CoinGeckoProvider
from .coinmarketcap import CoinMarketCapProvider
from .stooq import StooqProvider
from .yahoo import YahooFinanceProvider

logger = logging.getLogger(__name__)


def available_providers(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    cache: TTLCache | None = None,
) -> list[PriceProvider]:
    """All providers in registration order. This order is the fallback default."""
    cache = cache or TTLCache(root=settings.CACHE_DIR)
    return [
        CoinGeckoProvider(client=client, cache=cache),
        CoinMarketCapProvider(api_key=settings.coinmarketcap_api_key, client=client, cache=cache),
        YahooFinanceProvider(client=client, cache=cache),
        StooqProvider(client=client, cache=cache),
    ]


def get_provider(providers: list[PriceProvider], provider_id: str) -> int | None:
    for index, provider in enumerate(providers):
        if provider.id == provider_id:
            return index
    return None


def resolve_provider_indices(
    providers: list[PriceProvider],
    explicit_provider: str | None,
    configured_order: list[str] | None,
) -> list[int]:
    """Decide which providers to try, in order.

    An explicit choice pins a single provider. Otherwise the configured order
    comes first and the remaining registered providers follow in registration
    order. Configured ids are matched case-insensitively and deduplicated.
    """
    if explicit_provider is not None:
        wanted = explicit_provider.strip()
        if not wanted:
            raise ConfigurationError("provider id cannot be empty")

        index = get_provider(providers, wanted)
        if index is None:
            raise ConfigurationError(
                f"unknown provider '{wanted}' -- see /api/providers for the available ids",
                kind=ConfigErrorKind.UNKNOWN_PROVIDER,
            )
        return [index]

    indices: list[int] = []
    for raw_id in configured_order or []:
        wanted = raw_id.strip().lower()
        if not wanted:
            continue

        index = get_provider(providers, wanted)
        if index is None:
            raise ConfigurationError(
                f"unknown provider '{raw_id.strip()}' in defaults.provider_order",
                kind=ConfigErrorKind.UNKNOWN_CONFIGURED_PROVIDER,
            )
        if index not in indices:
            indices.append(index)

    for index in range(len(providers)):
        if index not in indices:
            indices.append(index)

    if not indices:
        raise ConfigurationError("no providers available", kind=ConfigErrorKind.NO_PROVIDERS)

    logger.debug(f"Resolved provider order: {provider_ids_for_indices(providers, indices)}")
    return indices


def provider_ids_for_indices(providers: list[PriceProvider], indices: list[int]) -> list[str]:
    return [providers[index].id for index in indices]
