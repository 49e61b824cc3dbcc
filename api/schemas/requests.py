from datetime import date

from pydantic import BaseModel, Field, field_validator

from domain.models.quotes import HistoryInterval
from domain.models.ranges import ChartRange


def split_csv(value: str | list[str]) -> list[str]:
	raw = value if isinstance(value, list) else [value]
	return [part.strip() for item in raw for part in item.split(',') if part.strip()]


class PriceQuery(BaseModel):
	symbols: str = Field(..., min_length=1, description='Comma-separated symbols or @watchlist names')
	currency: str | None = Field(None, min_length=3, max_length=5)
	provider: str | None = None

	@property
	def symbol_list(self) -> list[str]:
		return split_csv(self.symbols)

	model_config = {'json_schema_extra': {'example': {'symbols': 'btc,eth,@metals', 'currency': 'usd'}}}


class HistoryQuery(PriceQuery):
	range: ChartRange = ChartRange.ONE_MONTH
	sampling: HistoryInterval = HistoryInterval.AUTO
	start_date: date | None = None
	end_date: date | None = None

	@field_validator('range', mode='before')
	@classmethod
	def uppercase_range(cls, v):
		return v.upper() if isinstance(v, str) else v

	@field_validator('sampling', mode='before')
	@classmethod
	def lowercase_sampling(cls, v):
		return v.lower() if isinstance(v, str) else v


class FiatHistoryQuery(BaseModel):
	base: str = Field(..., min_length=3, max_length=3)
	targets: str = Field(..., min_length=3, description='Comma-separated fiat codes')
	range: ChartRange = ChartRange.ONE_MONTH
	sampling: HistoryInterval = HistoryInterval.AUTO
	start_date: date | None = None
	end_date: date | None = None

	@property
	def target_list(self) -> list[str]:
		return split_csv(self.targets)

	@field_validator('range', mode='before')
	@classmethod
	def uppercase_range(cls, v):
		return v.upper() if isinstance(v, str) else v

	@field_validator('sampling', mode='before')
	@classmethod
	def lowercase_sampling(cls, v):
		return v.lower() if isinstance(v, str) else v


class SearchQuery(BaseModel):
	q: str = Field(..., min_length=1, description='Company name, ticker or keyword')
	limit: int = 10
	provider: str | None = None


class ConversionQuery(BaseModel):
	amount: str = Field(..., min_length=2, description='Amount followed by a fiat code, e.g. 100usd')
	targets: str = Field(..., min_length=1, description='Comma-separated fiat codes and/or symbols')
	provider: str | None = None

	@property
	def target_list(self) -> list[str]:
		return split_csv(self.targets)

	model_config = {'json_schema_extra': {'example': {'amount': '100usd', 'targets': 'eur,btc'}}}
