from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ProviderResponse(BaseModel):
	id: str = Field(..., description='Identifier accepted by the provider parameter')
	name: str
	history: bool = Field(..., description='Supports chart history')
	history_window: bool = Field(..., description='Supports explicit start/end chart windows')
	search: bool = Field(..., description='Supports ticker search')


class ProvidersResponse(BaseModel):
	providers: list[ProviderResponse] = Field(description='Providers in fallback order')


class PriceResponse(BaseModel):
	symbol: str
	name: str
	price: float
	change_24h: float | None = Field(None, description='Percent change over the last day')
	market_cap: float | None = None
	currency: str
	provider: str
	timestamp: datetime

	model_config = ConfigDict(
		from_attributes=True,
		json_schema_extra={
			'example': {
				'symbol': 'BTC',
				'name': 'Bitcoin',
				'price': 64250.12,
				'change_24h': 1.84,
				'market_cap': 1265000000000.0,
				'currency': 'USD',
				'provider': 'CoinGecko',
				'timestamp': '2025-09-27T10:30:00Z',
			}
		},
	)


class PricesResponse(BaseModel):
	prices: list[PriceResponse]


class PricePointResponse(BaseModel):
	timestamp: datetime
	price: float

	model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
	symbol: str
	name: str
	currency: str
	provider: str
	points: list[PricePointResponse]

	model_config = ConfigDict(from_attributes=True)


class HistoriesResponse(BaseModel):
	range: str = Field(..., description='Resolved chart window label')
	histories: list[HistoryResponse]


class TickerMatchResponse(BaseModel):
	symbol: str
	name: str
	exchange: str
	asset_type: str
	provider: str = Field(..., description='Comma-separated names of every provider reporting the match')

	model_config = ConfigDict(from_attributes=True)


class SearchResponse(BaseModel):
	query: str
	matches: list[TickerMatchResponse]


class ConversionResponse(BaseModel):
	from_amount: float = Field(..., description='Original amount requested')
	from_currency: str = Field(..., description='Source currency code')
	to_symbol: str = Field(..., description='Target currency code or asset symbol')
	to_name: str
	to_amount: float = Field(..., description='Converted amount')
	rate: float = Field(..., description='Price of one target unit in the source currency')
	provider: str
	timestamp: datetime

	model_config = ConfigDict(
		from_attributes=True,
		json_schema_extra={
			'example': {
				'from_amount': 100.0,
				'from_currency': 'USD',
				'to_symbol': 'EUR',
				'to_name': 'Euro',
				'to_amount': 92.0,
				'rate': 1.087,
				'provider': 'Frankfurter/ECB',
				'timestamp': '2025-09-27T10:30:00Z',
			}
		},
	)


class ConversionsResponse(BaseModel):
	conversions: list[ConversionResponse]


class ErrorResponse(BaseModel):
	detail: str
	error: str
