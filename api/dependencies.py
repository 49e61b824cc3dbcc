import logging
from typing import Annotated

import httpx
from fastapi import Depends

from application.services import ConversionService, FiatService, PriceService, SearchService
from config.settings import Settings, get_settings
from infrastructure.cache.ttl_cache import TTLCache
from infrastructure.providers import FrankfurterProvider, PriceProvider, available_providers
from infrastructure.providers.base import build_http_client

logger = logging.getLogger(__name__)


class AppDependencies:
	"""Container for application-wide singleton dependencies."""

	client: httpx.AsyncClient | None = None
	cache: TTLCache | None = None
	providers: list[PriceProvider] | None = None
	fiat_provider: FrankfurterProvider | None = None


deps = AppDependencies()


def init_dependencies(settings: Settings | None = None) -> None:
	"""Initialize all singleton dependencies. Called at app startup."""
	logger.info('Initializing dependencies...')
	settings = settings or get_settings()

	deps.client = build_http_client(settings.HTTP_TIMEOUT)
	deps.cache = TTLCache(root=settings.CACHE_DIR)
	if not deps.cache.enabled:
		logger.warning('No cache directory could be resolved, response caching is disabled')

	deps.providers = available_providers(settings, client=deps.client, cache=deps.cache)
	deps.fiat_provider = FrankfurterProvider(client=deps.client)
	logger.info(
		'Dependencies initialized',
		extra={'extra_data': {'providers': [p.id for p in deps.providers], 'cache_root': deps.cache.root}},
	)


async def cleanup_dependencies() -> None:
	logger.info('Cleaning up dependencies...')

	if deps.providers:
		for provider in deps.providers:
			await provider.close()
	if deps.fiat_provider:
		await deps.fiat_provider.close()
	if deps.client:
		await deps.client.aclose()

	deps.client = None
	deps.providers = None
	deps.fiat_provider = None
	logger.info('Cleanup complete')


def get_providers() -> list[PriceProvider]:
	if deps.providers is None:
		raise RuntimeError('Providers not initialized')
	return deps.providers


def get_fiat_provider() -> FrankfurterProvider:
	if deps.fiat_provider is None:
		raise RuntimeError('Fiat provider not initialized')
	return deps.fiat_provider


def get_price_service(
	providers: Annotated[list[PriceProvider], Depends(get_providers)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> PriceService:
	return PriceService(
		providers=providers,
		provider_order=settings.defaults.provider_order,
		watchlists=settings.watchlists,
	)


def get_search_service(
	providers: Annotated[list[PriceProvider], Depends(get_providers)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> SearchService:
	return SearchService(providers=providers, provider_order=settings.defaults.provider_order)


def get_conversion_service(
	providers: Annotated[list[PriceProvider], Depends(get_providers)],
	fiat_provider: Annotated[FrankfurterProvider, Depends(get_fiat_provider)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> ConversionService:
	return ConversionService(
		fiat_provider=fiat_provider,
		providers=providers,
		provider_order=settings.defaults.provider_order,
	)


def get_fiat_service(
	fiat_provider: Annotated[FrankfurterProvider, Depends(get_fiat_provider)],
) -> FiatService:
	return FiatService(fiat_provider=fiat_provider)
