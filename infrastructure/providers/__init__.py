from .base import PriceProvider, ProviderCapabilities
from .coingecko import CoinGeckoProvider
from .coinmarketcap import CoinMarketCapProvider
from .frankfurter import FrankfurterProvider
from .registry import available_providers, get_provider, provider_ids_for_indices, resolve_provider_indices
from .stooq import StooqProvider
from .yahoo import YahooFinanceProvider

__all__ = [
	'PriceProvider',
	'ProviderCapabilities',
	'CoinGeckoProvider',
	'CoinMarketCapProvider',
	'FrankfurterProvider',
	'StooqProvider',
	'YahooFinanceProvider',
	'available_providers',
	'get_provider',
	'provider_ids_for_indices',
	'resolve_provider_indices',
]
