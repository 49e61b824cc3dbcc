import logging
import math
from datetime import UTC, date, datetime, timedelta

import httpx

from domain.currencies import fiat_name
from domain.exceptions.pricing import (
	ConfigurationError,
	NoResultsError,
	ParseError,
	RemoteApiError,
	TransportError,
)
from domain.models.quotes import HistoryInterval, PriceHistory, PricePoint

from .base import build_http_client

logger = logging.getLogger(__name__)

PROVIDER_NAME = 'Frankfurter/ECB'


class FrankfurterProvider:
	"""ECB reference rates. Rates read as "1 base = rate target"."""

	BASE_URL = 'https://api.frankfurter.dev/v1'

	def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
		self._owns_client = client is None
		self._client = client or build_http_client()
		self.base_url = (base_url or self.BASE_URL).rstrip('/')

	@property
	def name(self) -> str:
		return PROVIDER_NAME

	async def _request(self, endpoint: str, params: dict) -> dict:
		url = f'{self.base_url}/{endpoint}'
		logger.debug(f'Fetching forex rates from Frankfurter: {url}', extra={'extra_data': params})

		try:
			response = await self._client.get(url, params=params)
			response.raise_for_status()
			data = response.json()
		except httpx.HTTPStatusError as e:
			raise RemoteApiError(
				f'Frankfurter returned {e.response.status_code}: {e.response.text[:200]}'
			) from e
		except httpx.RequestError as e:
			raise TransportError(f'Frankfurter request failed: {e.__class__.__name__}') from e
		except ValueError as e:
			raise ParseError(f'Frankfurter JSON: {e}') from e

		if not isinstance(data, dict) or not isinstance(data.get('rates'), dict):
			raise ParseError('Frankfurter JSON: missing rates')
		return data

	async def get_rates(self, base: str, targets: list[str]) -> dict[str, float]:
		data = await self._request(
			'latest',
			{'from': base.strip().upper(), 'to': ','.join(t.strip().upper() for t in targets)},
		)

		rates = {}
		for code, rate in data['rates'].items():
			try:
				rates[code.upper()] = float(rate)
			except (TypeError, ValueError):
				continue

		if not rates:
			raise NoResultsError()
		return rates

	async def get_history(
		self,
		base: str,
		targets: list[str],
		days: int,
		interval: HistoryInterval = HistoryInterval.DAILY,
		today: date | None = None,
	) -> list[PriceHistory]:
		"""
		One daily history per target. Each point is the price of one target
		unit in the base currency, i.e. the inverse of the ECB rate.
		"""
		if interval is HistoryInterval.HOURLY:
			raise ConfigurationError(
				'fiat chart mode supports daily history only -- use sampling auto or daily'
			)

		base_upper = base.strip().upper()
		targets_upper = [t.strip().upper() for t in targets]
		end = today or datetime.now(UTC).date()
		start = end - timedelta(days=days)

		data = await self._request(
			f'{start.isoformat()}..{end.isoformat()}',
			{'from': base_upper, 'to': ','.join(targets_upper)},
		)

		series: dict[str, list[PricePoint]] = {target: [] for target in targets_upper}
		for day, day_rates in data['rates'].items():
			try:
				timestamp = datetime.strptime(day, '%Y-%m-%d').replace(tzinfo=UTC)
			except ValueError:
				continue
			if not isinstance(day_rates, dict):
				continue
			for target in targets_upper:
				rate = day_rates.get(target)
				if not isinstance(rate, int | float) or not math.isfinite(rate) or rate <= 0:
					continue
				series[target].append(PricePoint(timestamp=timestamp, price=1.0 / rate))

		histories = []
		for target in targets_upper:
			points = sorted(series[target], key=lambda p: p.timestamp)
			if not points:
				continue
			histories.append(
				PriceHistory(
					symbol=target,
					name=fiat_name(target),
					currency=base_upper,
					provider=self.name,
					points=points,
				)
			)

		if not histories:
			raise NoResultsError()
		return histories

	async def close(self) -> None:
		if self._owns_client:
			await self._client.aclose()
