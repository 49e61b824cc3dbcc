from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import (
	get_conversion_service,
	get_fiat_service,
	get_price_service,
	get_providers,
	get_search_service,
)
from api.schemas import (
	ConversionQuery,
	ConversionResponse,
	ConversionsResponse,
	ErrorResponse,
	FiatHistoryQuery,
	HistoriesResponse,
	HistoryQuery,
	HistoryResponse,
	PriceQuery,
	PriceResponse,
	PricesResponse,
	ProviderResponse,
	ProvidersResponse,
	SearchQuery,
	SearchResponse,
	TickerMatchResponse,
)
from application.services import ConversionService, FiatService, PriceService, SearchService
from config.settings import Settings, get_settings
from domain.models.ranges import resolve_chart_window
from infrastructure.providers import PriceProvider, resolve_provider_indices

router = APIRouter(
	prefix='/api',
	tags=['prices'],
	responses={
		400: {'model': ErrorResponse},
		404: {'model': ErrorResponse},
		502: {'model': ErrorResponse},
		503: {'model': ErrorResponse},
	},
)


@router.get(
	'/providers',
	response_model=ProvidersResponse,
	status_code=status.HTTP_200_OK,
	summary='List price providers in fallback order',
)
async def list_providers(
	providers: Annotated[list[PriceProvider], Depends(get_providers)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> ProvidersResponse:
	indices = resolve_provider_indices(providers, None, settings.defaults.provider_order)
	return ProvidersResponse(
		providers=[
			ProviderResponse(
				id=providers[i].id,
				name=providers[i].name,
				history=providers[i].capabilities.history,
				history_window=providers[i].capabilities.history_window,
				search=providers[i].capabilities.search,
			)
			for i in indices
		]
	)


@router.get(
	'/prices',
	response_model=PricesResponse,
	status_code=status.HTTP_200_OK,
	summary='Get latest prices with provider fallback',
)
async def get_prices(
	query: Annotated[PriceQuery, Query()],
	service: Annotated[PriceService, Depends(get_price_service)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> PricesResponse:
	currency = query.currency or settings.default_currency
	prices = await service.get_prices(query.symbol_list, currency, provider=query.provider)
	return PricesResponse(prices=[PriceResponse.model_validate(p) for p in prices])


@router.get(
	'/history',
	response_model=HistoriesResponse,
	status_code=status.HTTP_200_OK,
	summary='Get chart history from the first resolved provider',
)
async def get_history(
	query: Annotated[HistoryQuery, Query()],
	service: Annotated[PriceService, Depends(get_price_service)],
	settings: Annotated[Settings, Depends(get_settings)],
) -> HistoriesResponse:
	window = resolve_chart_window(query.range, query.start_date, query.end_date)
	currency = query.currency or settings.default_currency
	histories = await service.get_history(
		query.symbol_list, currency, window, interval=query.sampling, provider=query.provider
	)
	return HistoriesResponse(
		range=window.label,
		histories=[HistoryResponse.model_validate(h) for h in histories],
	)


@router.get(
	'/fiat-history',
	response_model=HistoriesResponse,
	status_code=status.HTTP_200_OK,
	summary='Get daily ECB rate history for fiat currencies',
)
async def get_fiat_history(
	query: Annotated[FiatHistoryQuery, Query()],
	service: Annotated[FiatService, Depends(get_fiat_service)],
) -> HistoriesResponse:
	window = resolve_chart_window(query.range, query.start_date, query.end_date)
	histories = await service.get_history(query.base, query.target_list, window, interval=query.sampling)
	return HistoriesResponse(
		range=window.label,
		histories=[HistoryResponse.model_validate(h) for h in histories],
	)


@router.get(
	'/search',
	response_model=SearchResponse,
	status_code=status.HTTP_200_OK,
	summary='Search tickers across providers',
)
async def search_tickers(
	query: Annotated[SearchQuery, Query()],
	service: Annotated[SearchService, Depends(get_search_service)],
) -> SearchResponse:
	matches = await service.search(query.q, limit=query.limit, provider=query.provider)
	return SearchResponse(
		query=query.q.strip(),
		matches=[TickerMatchResponse.model_validate(m) for m in matches],
	)


@router.get(
	'/convert',
	response_model=ConversionsResponse,
	status_code=status.HTTP_200_OK,
	summary='Convert a fiat amount into fiat currencies and assets',
)
async def convert(
	query: Annotated[ConversionQuery, Query()],
	service: Annotated[ConversionService, Depends(get_conversion_service)],
) -> ConversionsResponse:
	conversions = await service.convert(query.amount, query.target_list, provider=query.provider)
	return ConversionsResponse(conversions=[ConversionResponse.model_validate(c) for c in conversions])
