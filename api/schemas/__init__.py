from .requests import ConversionQuery, FiatHistoryQuery, HistoryQuery, PriceQuery, SearchQuery
from .responses import (
	ConversionResponse,
	ConversionsResponse,
	ErrorResponse,
	HistoriesResponse,
	HistoryResponse,
	PriceResponse,
	PricesResponse,
	ProviderResponse,
	ProvidersResponse,
	SearchResponse,
	TickerMatchResponse,
)

__all__ = [
	'ConversionQuery',
	'ConversionResponse',
	'ConversionsResponse',
	'ErrorResponse',
	'FiatHistoryQuery',
	'HistoriesResponse',
	'HistoryQuery',
	'HistoryResponse',
	'PriceQuery',
	'PriceResponse',
	'PricesResponse',
	'ProviderResponse',
	'ProvidersResponse',
	'SearchQuery',
	'SearchResponse',
	'TickerMatchResponse',
]
