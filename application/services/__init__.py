from .conversion_service import ConversionService
from .fiat_service import FiatService
from .price_service import PriceService, fetch_prices_with_fallback, filter_histories_by_time_window
from .search_service import SearchService, append_provider_name, search_tickers_across_providers
from .watchlist_service import expand_symbol_tokens

__all__ = [
	'ConversionService',
	'FiatService',
	'PriceService',
	'SearchService',
	'append_provider_name',
	'expand_symbol_tokens',
	'fetch_prices_with_fallback',
	'filter_histories_by_time_window',
	'search_tickers_across_providers',
]
