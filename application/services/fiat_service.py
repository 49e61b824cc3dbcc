import logging

from application.services.price_service import filter_histories_by_time_window
from domain.currencies import is_known_fiat
from domain.exceptions.pricing import ConfigurationError, NoResultsError
from domain.models.quotes import HistoryInterval, PriceHistory
from domain.models.ranges import ChartWindow
from infrastructure.providers.frankfurter import FrankfurterProvider

logger = logging.getLogger(__name__)


class FiatService:
	def __init__(self, fiat_provider: FrankfurterProvider):
		self.fiat_provider = fiat_provider

	async def get_history(
		self,
		base: str,
		targets: list[str],
		window: ChartWindow,
		interval: HistoryInterval = HistoryInterval.AUTO,
	) -> list[PriceHistory]:
		base_code = base.strip().upper()
		target_codes = [t.strip().upper() for t in targets if t.strip()]

		if not is_known_fiat(base_code):
			raise ConfigurationError(f"'{base}' is not a supported fiat currency code")
		if not target_codes:
			raise ConfigurationError('fiat chart mode requires a base and at least one target currency')
		if any(not is_known_fiat(code) for code in target_codes):
			raise ConfigurationError('fiat chart mode only supports fiat currency codes (example: usd eur gbp)')

		logger.info(
			f'Fetching {window.label} fiat history for {base_code} -> {target_codes}',
			extra={'extra_data': {'fetch_days': window.fetch_days}},
		)

		histories = await self.fiat_provider.get_history(base_code, target_codes, window.fetch_days, interval)
		histories = filter_histories_by_time_window(histories, window.start, window.end)
		if not histories:
			raise NoResultsError()
		return histories
