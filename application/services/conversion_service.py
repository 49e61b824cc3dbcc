import asyncio
import logging
import math
from datetime import UTC, datetime

from application.services.price_service import fetch_prices_with_fallback
from domain.currencies import fiat_name, is_known_fiat, parse_fiat_amount
from domain.exceptions.pricing import ConfigurationError
from domain.models.quotes import CoinPrice, Conversion, FiatAmount
from infrastructure.providers.base import PriceProvider
from infrastructure.providers.frankfurter import FrankfurterProvider
from infrastructure.providers.registry import resolve_provider_indices

logger = logging.getLogger(__name__)


def _usable_rate(value: float | None) -> bool:
	return value is not None and math.isfinite(value) and value > 0


class ConversionService:
	def __init__(
		self,
		fiat_provider: FrankfurterProvider,
		providers: list[PriceProvider],
		provider_order: list[str] | None = None,
	):
		self.fiat_provider = fiat_provider
		self.providers = providers
		self.provider_order = provider_order

	async def convert(
		self,
		amount: str | FiatAmount,
		targets: list[str],
		provider: str | None = None,
	) -> list[Conversion]:
		"""
		Convert a fiat amount into every target. Fiat targets are priced by the
		ECB rates, everything else through the price providers. Fiat results
		come first, each side keeps its own order.
		"""
		source = amount if isinstance(amount, FiatAmount) else parse_fiat_amount(amount)
		if source is None:
			raise ConfigurationError(
				f"invalid amount '{amount}' -- expected a number followed by a fiat code, e.g. 100usd"
			)

		targets = [t.strip() for t in targets if t.strip()]
		if not targets:
			raise ConfigurationError('at least one conversion target is required')

		fiat_targets = [t.upper() for t in targets if is_known_fiat(t)]
		crypto_targets = [t for t in targets if not is_known_fiat(t)]
		indices = resolve_provider_indices(self.providers, provider, self.provider_order)

		logger.info(
			f'Converting {source.amount} {source.currency}',
			extra={'extra_data': {'fiat_targets': fiat_targets, 'crypto_targets': crypto_targets}},
		)

		rates: dict[str, float] = {}
		prices: list[CoinPrice] = []
		if fiat_targets and crypto_targets:
			rates, prices = await asyncio.gather(
				self.fiat_provider.get_rates(source.currency, fiat_targets),
				self._fetch_crypto(indices, crypto_targets, source.currency, pinned=provider is not None),
			)
		elif fiat_targets:
			rates = await self.fiat_provider.get_rates(source.currency, fiat_targets)
		elif crypto_targets:
			prices = await self._fetch_crypto(indices, crypto_targets, source.currency, pinned=provider is not None)
		else:
			raise AssertionError('conversion targets were validated as non-empty')

		now = datetime.now(UTC)
		conversions = []
		for target in fiat_targets:
			rate = rates.get(target)
			if not _usable_rate(rate):
				continue
			conversions.append(
				Conversion(
					from_amount=source.amount,
					from_currency=source.currency,
					to_symbol=target,
					to_name=fiat_name(target),
					to_amount=source.amount * rate,
					rate=1.0 / rate,
					provider=self.fiat_provider.name,
					timestamp=now,
				)
			)

		for price in prices:
			if not _usable_rate(price.price):
				logger.debug(f'Skipping {price.symbol}: unusable price {price.price} from {price.provider}')
				continue
			conversions.append(
				Conversion(
					from_amount=source.amount,
					from_currency=source.currency,
					to_symbol=price.symbol,
					to_name=price.name,
					to_amount=source.amount / price.price,
					rate=price.price,
					provider=price.provider,
					timestamp=now,
				)
			)

		return conversions

	async def _fetch_crypto(
		self, indices: list[int], symbols: list[str], currency: str, pinned: bool
	) -> list[CoinPrice]:
		if pinned:
			return await self.providers[indices[0]].get_prices(symbols, currency)
		return await fetch_prices_with_fallback(self.providers, indices, symbols, currency)
